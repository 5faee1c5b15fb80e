"""
配置验证服务
"""
import os
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Any, Optional
import logging

from ..models import DEFAULT_PORT, MAX_EXPIRY_THRESHOLD_DAYS
from .error_handler import ConfigError, NetworkErrorHandler


@dataclass(frozen=True)
class MonitorSettings:
    """监控运行配置"""
    config_location: Optional[str] = None
    sns_topic_arn: Optional[str] = None
    log_level: str = 'INFO'
    default_port: int = DEFAULT_PORT
    expiry_threshold_days: int = 14
    probe_timeout_seconds: float = 10.0
    max_workers: int = 10
    deadline_seconds: float = 240.0
    network_retries: int = 0

    @property
    def expiry_threshold(self) -> timedelta:
        return timedelta(days=self.expiry_threshold_days)


class ConfigValidator:
    """配置验证器"""

    def __init__(self):
        """初始化配置验证器"""
        self.logger = logging.getLogger(__name__)

        # 可选的环境变量
        self.optional_env_vars = {
            'CONFIG_LOCATION': '检查目标配置位置（s3://bucket/key）',
            'SNS_TOPIC_ARN': 'SNS主题ARN',
            'LOG_LEVEL': '日志级别',
            'DEFAULT_PORT': '默认端口',
            'EXPIRY_THRESHOLD_DAYS': '默认过期阈值（天）',
            'PROBE_TIMEOUT_SECONDS': '连接和握手超时时间（秒）',
            'MAX_WORKERS': '最大并发检查数',
            'CHECK_DEADLINE_SECONDS': '整次检查截止时间（秒）',
            'NETWORK_RETRIES': '网络错误重试次数'
        }

        self.valid_log_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}

    def load_settings(self) -> MonitorSettings:
        """
        从环境变量加载运行配置

        Returns:
            MonitorSettings: 运行配置

        Raises:
            ConfigError: 任意环境变量无效
        """
        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        if log_level not in self.valid_log_levels:
            raise ConfigError(f"日志级别无效: {log_level}")

        settings = MonitorSettings(
            config_location=os.getenv('CONFIG_LOCATION') or None,
            sns_topic_arn=os.getenv('SNS_TOPIC_ARN') or None,
            log_level=log_level,
            default_port=self._int_env('DEFAULT_PORT', DEFAULT_PORT, 1, 65535),
            expiry_threshold_days=self._int_env('EXPIRY_THRESHOLD_DAYS', 14, 0, MAX_EXPIRY_THRESHOLD_DAYS),
            probe_timeout_seconds=self._float_env('PROBE_TIMEOUT_SECONDS', 10.0),
            max_workers=self._int_env('MAX_WORKERS', 10, 1, 256),
            deadline_seconds=self._float_env('CHECK_DEADLINE_SECONDS', 240.0),
            network_retries=self._int_env('NETWORK_RETRIES', 0, 0, NetworkErrorHandler.MAX_RETRIES_LIMIT)
        )

        self.logger.debug(f"加载运行配置: {settings}")
        return settings

    def _int_env(self, name: str, default: int, minimum: int, maximum: int) -> int:
        value = os.getenv(name)
        if value is None or not value.strip():
            return default

        try:
            number = int(value.strip())
        except ValueError:
            raise ConfigError(f"环境变量 {name} 必须是整数: {value!r}")

        if not minimum <= number <= maximum:
            raise ConfigError(f"环境变量 {name} 必须在 {minimum} 到 {maximum} 之间: {number}")

        return number

    def _float_env(self, name: str, default: float) -> float:
        value = os.getenv(name)
        if value is None or not value.strip():
            return default

        try:
            number = float(value.strip())
        except ValueError:
            raise ConfigError(f"环境变量 {name} 必须是数字: {value!r}")

        if number <= 0:
            raise ConfigError(f"环境变量 {name} 必须大于0: {number}")

        return number

    def validate_all_configurations(self) -> Dict[str, Any]:
        """
        验证所有配置

        Returns:
            Dict[str, Any]: 验证结果
        """
        validation_result = {
            'is_valid': True,
            'errors': [],
            'warnings': [],
            'configurations': {}
        }

        try:
            settings = self.load_settings()
            validation_result['configurations']['settings'] = settings
        except ConfigError as e:
            validation_result['is_valid'] = False
            validation_result['errors'].append(str(e))

        env_validation = self.validate_environment_variables()
        validation_result['configurations']['environment'] = env_validation
        validation_result['warnings'].extend(env_validation['warnings'])

        sns_validation = self.validate_sns_configuration()
        validation_result['configurations']['sns'] = sns_validation
        if not sns_validation['is_valid']:
            validation_result['warnings'].extend(sns_validation['errors'])

        lambda_validation = self.validate_lambda_configuration()
        validation_result['configurations']['lambda'] = lambda_validation
        validation_result['warnings'].extend(lambda_validation['warnings'])

        return validation_result

    def validate_environment_variables(self) -> Dict[str, Any]:
        """
        检查环境变量是否存在

        Returns:
            Dict[str, Any]: 环境变量验证结果
        """
        result = {
            'warnings': [],
            'missing_optional': [],
            'present_vars': {}
        }

        for var_name, description in self.optional_env_vars.items():
            value = os.getenv(var_name)
            if not value:
                result['missing_optional'].append({
                    'name': var_name,
                    'description': description
                })
            else:
                result['present_vars'][var_name] = self._sanitize_env_value(var_name, value)

        if not os.getenv('CONFIG_LOCATION'):
            result['warnings'].append("CONFIG_LOCATION未设置，调用事件中必须提供配置位置或内联目标")

        return result

    def validate_sns_configuration(self) -> Dict[str, Any]:
        """
        验证SNS配置

        Returns:
            Dict[str, Any]: SNS配置验证结果
        """
        result = {
            'is_valid': True,
            'errors': [],
            'topic_arn': None,
            'arn_format_valid': False
        }

        topic_arn = os.getenv('SNS_TOPIC_ARN')

        if not topic_arn:
            result['is_valid'] = False
            result['errors'].append("SNS_TOPIC_ARN环境变量未设置，报告不会被投递")
            return result

        result['topic_arn'] = topic_arn

        arn_pattern = r'^arn:aws:sns:[a-z0-9-]+:\d{12}:[a-zA-Z0-9_-]+$'
        if re.match(arn_pattern, topic_arn):
            result['arn_format_valid'] = True
        else:
            result['is_valid'] = False
            result['errors'].append(f"SNS主题ARN格式无效: {topic_arn}")

        return result

    def validate_lambda_configuration(self) -> Dict[str, Any]:
        """
        验证Lambda配置

        Returns:
            Dict[str, Any]: Lambda配置验证结果
        """
        result = {
            'warnings': [],
            'function_name': None,
            'timeout': None
        }

        function_name = os.getenv('AWS_LAMBDA_FUNCTION_NAME')
        if function_name:
            result['function_name'] = function_name
        else:
            result['warnings'].append("AWS_LAMBDA_FUNCTION_NAME未设置，可能不在Lambda环境中运行")

        timeout = os.getenv('AWS_LAMBDA_FUNCTION_TIMEOUT')
        if timeout:
            try:
                timeout_seconds = int(timeout)
                result['timeout'] = timeout_seconds

                if timeout_seconds < 30:
                    result['warnings'].append(f"Lambda超时时间过短: {timeout_seconds}秒，建议至少30秒")

            except ValueError:
                result['warnings'].append(f"Lambda超时时间格式无效: {timeout}")

        return result

    def _sanitize_env_value(self, var_name: str, value: str) -> str:
        """
        隐藏环境变量中的敏感部分

        Args:
            var_name: 变量名
            value: 变量值

        Returns:
            str: 可以写入日志的值
        """
        if var_name == 'SNS_TOPIC_ARN' and value.startswith('arn:'):
            parts = value.split(':')
            if len(parts) >= 6:
                return f"{':'.join(parts[:4])}:***:{parts[-1]}"
            return "***"
        return value
