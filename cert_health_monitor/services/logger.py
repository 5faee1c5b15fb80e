"""
日志服务
"""
import os
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from ..interfaces import LoggerServiceInterface
from ..models import DomainOutcome, Issue, Report, NearExpiry, Expired


class LoggerService(LoggerServiceInterface):
    """日志服务实现"""

    def __init__(self, logger_name: str = "cert_health_monitor", log_level: Optional[str] = None):
        """
        初始化日志服务

        Args:
            logger_name: 日志器名称
            log_level: 日志级别，如果为None则从环境变量读取
        """
        self.logger_name = logger_name
        self.log_level = log_level or os.getenv('LOG_LEVEL', 'INFO')

        # 配置日志器
        self.logger = logging.getLogger(logger_name)
        self._configure_logger()

        # 执行统计
        self.execution_stats = self._empty_stats()

    def _empty_stats(self) -> Dict[str, Any]:
        return {
            'start_time': None,
            'end_time': None,
            'total_domains': 0,
            'healthy': 0,
            'issues': 0,
            'errors': []
        }

    def _configure_logger(self):
        """配置日志器"""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        self.logger.setLevel(level)

        # 避免重复添加处理器
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)

            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)

            self.logger.addHandler(handler)

        # 防止日志传播到根日志器
        self.logger.propagate = False

    def log_check_start(self, domain_count: int):
        """
        记录检查开始

        Args:
            domain_count: 要检查的目标数量
        """
        self.reset_stats()
        self.execution_stats['start_time'] = datetime.now(timezone.utc)
        self.execution_stats['total_domains'] = domain_count

        self.logger.info(f"开始TLS证书检查，共 {domain_count} 个目标")
        self.logger.info(f"检查开始时间: {self.execution_stats['start_time'].isoformat()}")

    def log_outcome(self, outcome: DomainOutcome):
        """
        记录单个域名的检查结果

        Args:
            outcome: 检查结果
        """
        if not isinstance(outcome, Issue):
            self.execution_stats['healthy'] += 1
            self.logger.info(f"证书正常 - 域名: {outcome.domain}")
            return

        self.execution_stats['issues'] += 1
        reason = outcome.reason

        if isinstance(reason, Expired):
            self.logger.warning(
                f"证书已过期 - 域名: {outcome.domain}, 过期时间: {reason.at.isoformat()}"
            )
        elif isinstance(reason, NearExpiry):
            self.logger.warning(
                f"证书即将过期 - 域名: {outcome.domain}, "
                f"过期时间: {reason.at.isoformat()}, 剩余天数: {reason.days_left} 天"
            )
        else:
            self.logger.error(f"证书检查失败 - 域名: {outcome.domain}, 错误: {reason.describe()}")

    def log_error(self, domain: str, error: Exception):
        """
        记录错误信息

        Args:
            domain: 域名
            error: 异常对象
        """
        error_info = {
            'domain': domain,
            'error_type': type(error).__name__,
            'error_message': str(error),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

        self.execution_stats['errors'].append(error_info)

        self.logger.error(
            f"域名 {domain} 检查时发生错误: {type(error).__name__}: {str(error)}"
        )

        # 详细的堆栈跟踪（调试级别）
        self.logger.debug(f"域名 {domain} 错误堆栈跟踪:\n{traceback.format_exc()}")

    def log_check_end(self):
        """记录检查结束"""
        self.execution_stats['end_time'] = datetime.now(timezone.utc)

        if self.execution_stats['start_time']:
            duration = (self.execution_stats['end_time'] - self.execution_stats['start_time']).total_seconds()
        else:
            duration = 0

        self.logger.info("TLS证书检查完成")
        self.logger.info(f"总执行时间: {duration:.2f} 秒")
        self.logger.info(
            f"检查统计: 总计 {self.execution_stats['total_domains']} 个目标, "
            f"正常 {self.execution_stats['healthy']} 个, "
            f"问题 {self.execution_stats['issues']} 个"
        )

    def log_report(self, report: Report):
        """
        记录最终报告

        Args:
            report: 检查报告
        """
        if report.is_valid:
            self.logger.info("报告: Valid")
        else:
            self.logger.warning(f"报告: Invalid\n{report.message}")

    def log_notification_sent(self, notification_type: str, success: bool):
        """
        记录报告投递状态

        Args:
            notification_type: 投递类型（如 "SNS"）
            success: 是否发送成功
        """
        if success:
            self.logger.info(f"{notification_type} 报告投递成功")
        else:
            self.logger.error(f"{notification_type} 报告投递失败")

    def log_configuration_info(self, config: Dict[str, Any]):
        """
        记录配置信息

        Args:
            config: 配置信息字典
        """
        safe_config = self._sanitize_config(config)

        self.logger.info("系统配置信息:")
        for key, value in safe_config.items():
            self.logger.info(f"  {key}: {value}")

    def _sanitize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        清理配置信息中的敏感数据

        Args:
            config: 原始配置

        Returns:
            Dict[str, Any]: 清理后的配置
        """
        sensitive_keys = {'password', 'secret', 'token', 'key', 'sns_topic_arn'}
        sensitive_suffixes = ('_key', '_secret', '_password', '_token')

        safe_config = {}
        for key, value in config.items():
            key_lower = key.lower()
            is_sensitive = key_lower in sensitive_keys or key_lower.endswith(sensitive_suffixes)

            if is_sensitive and isinstance(value, str) and value:
                if value.startswith('arn:'):
                    # ARN类型，隐藏账号
                    parts = value.split(':')
                    if len(parts) >= 6:
                        safe_value = f"{':'.join(parts[:4])}:***:{parts[-1]}"
                    else:
                        safe_value = "***"
                else:
                    safe_value = value[:3] + "***" if len(value) > 3 else "***"
                safe_config[key] = safe_value
            else:
                safe_config[key] = value

        return safe_config

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        获取执行摘要

        Returns:
            Dict[str, Any]: 执行摘要信息
        """
        stats = self.execution_stats
        duration = 0
        if stats['start_time'] and stats['end_time']:
            duration = (stats['end_time'] - stats['start_time']).total_seconds()

        return {
            'start_time': stats['start_time'].isoformat() if stats['start_time'] else None,
            'end_time': stats['end_time'].isoformat() if stats['end_time'] else None,
            'duration_seconds': duration,
            'total_domains': stats['total_domains'],
            'healthy': stats['healthy'],
            'issues': stats['issues'],
            'healthy_rate': (
                stats['healthy'] / stats['total_domains']
                if stats['total_domains'] > 0 else 0
            ),
            'error_count': len(stats['errors']),
            'errors': stats['errors']
        }

    def log_execution_summary(self):
        """记录执行摘要"""
        summary = self.get_execution_summary()

        self.logger.info("=" * 50)
        self.logger.info("执行摘要")
        self.logger.info("=" * 50)
        self.logger.info(f"执行时长: {summary['duration_seconds']:.2f} 秒")
        self.logger.info(f"总目标数: {summary['total_domains']}")
        self.logger.info(f"正常: {summary['healthy']}")
        self.logger.info(f"问题: {summary['issues']}")
        self.logger.info(f"健康率: {summary['healthy_rate']:.1%}")

        if summary['errors']:
            self.logger.info(f"错误数量: {summary['error_count']}")
            for i, error in enumerate(summary['errors'][:5], 1):
                self.logger.info(f"  错误 {i}: {error['domain']} - {error['error_type']}: {error['error_message']}")

            if len(summary['errors']) > 5:
                self.logger.info(f"  ... 还有 {len(summary['errors']) - 5} 个错误")

        self.logger.info("=" * 50)

    def reset_stats(self):
        """重置执行统计"""
        self.execution_stats = self._empty_stats()
