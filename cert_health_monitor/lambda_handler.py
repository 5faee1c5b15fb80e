"""
AWS Lambda函数入口点
"""
import os
from typing import Dict, Any, Callable, Optional
from datetime import datetime, timezone

from botocore.exceptions import BotoCoreError

from .interfaces import (
    TargetSourceInterface, CertificateProbeInterface, ReportSinkInterface
)
from .services.config_validator import ConfigValidator, MonitorSettings
from .services.error_handler import ConfigError, MonitorError, NetworkErrorHandler
from .services.target_parser import TargetParser
from .services.target_source import S3TargetSource, StaticTargetSource
from .services.certificate_probe import CertificateProbe
from .services.outcome_classifier import OutcomeClassifier
from .services.check_coordinator import CheckCoordinator
from .services.report_aggregator import ReportAggregator
from .services.report_sink import SNSReportSink
from .services.logger import LoggerService
from .models import Report, report_from_dict


# 为Lambda运行时保留的收尾时间（秒）
DEADLINE_SAFETY_MARGIN_SECONDS = 5.0
MIN_DEADLINE_SECONDS = 1.0
# 配置了SNS时为一次报告投递预留的时间（秒）
DELIVERY_RESERVE_SECONDS = SNSReportSink.ATTEMPT_TIMEOUT_SECONDS + 2.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CertificateHealthMonitor:
    """TLS证书健康监控器主类"""

    def __init__(self, settings: MonitorSettings,
                 target_source: TargetSourceInterface,
                 probe: Optional[CertificateProbeInterface] = None,
                 report_sink: Optional[ReportSinkInterface] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 logger_service: Optional[LoggerService] = None):
        """
        初始化监控器

        Args:
            settings: 运行配置
            target_source: 检查目标配置来源
            probe: 证书探测器，默认使用真实的TLS握手
            report_sink: 报告投递服务，为None时不投递
            clock: 返回参考时间的函数，默认使用当前UTC时间
            logger_service: 日志服务
        """
        self.settings = settings
        self.target_source = target_source
        self.logger_service = logger_service or LoggerService(log_level=settings.log_level)
        self.clock = clock or utc_now

        self.parser = TargetParser(
            default_port=settings.default_port,
            default_threshold=settings.expiry_threshold
        )
        self.probe = probe or CertificateProbe(
            connect_timeout=settings.probe_timeout_seconds,
            handshake_timeout=settings.probe_timeout_seconds
        )
        self.coordinator = CheckCoordinator(
            probe=self.probe,
            classifier=OutcomeClassifier(),
            max_workers=settings.max_workers,
            deadline_seconds=settings.deadline_seconds,
            error_handler=NetworkErrorHandler(max_retries=settings.network_retries),
            logger_service=self.logger_service
        )
        self.aggregator = ReportAggregator()
        self.report_sink = report_sink

        self._log_configuration()

    def _log_configuration(self):
        """记录系统配置信息"""
        config = {
            'config_location': self.settings.config_location or '',
            'sns_topic_arn': self.settings.sns_topic_arn or '',
            'log_level': self.settings.log_level,
            'default_port': self.settings.default_port,
            'expiry_threshold_days': self.settings.expiry_threshold_days,
            'probe_timeout_seconds': self.settings.probe_timeout_seconds,
            'max_workers': self.settings.max_workers,
            'deadline_seconds': self.settings.deadline_seconds,
            'network_retries': self.settings.network_retries,
            'lambda_function_name': os.getenv('AWS_LAMBDA_FUNCTION_NAME', 'unknown')
        }

        self.logger_service.log_configuration_info(config)

    def execute(self, deadline_seconds: Optional[float] = None,
                remaining_time: Optional[Callable[[], Optional[float]]] = None) -> Report:
        """
        执行TLS证书检查

        Args:
            deadline_seconds: 本次调用的截止时间，默认使用配置值
            remaining_time: 返回调用剩余秒数的函数，用于限制报告投递

        Returns:
            Report: 检查报告

        Raises:
            ConfigError: 配置文本格式错误，不会执行任何检查
            TargetSourceError: 无法读取配置文本
        """
        text = self.target_source.read_text()
        targets = self.parser.parse(text)

        self.logger_service.log_check_start(len(targets))
        if not targets:
            self.logger_service.logger.warning("没有找到要检查的目标")

        outcomes = self.coordinator.run(targets, self.clock(), deadline_seconds)

        self.logger_service.log_check_end()

        report = self.aggregator.aggregate(outcomes)
        self.logger_service.log_report(report)

        self._deliver(report, remaining_time)

        self.logger_service.log_execution_summary()
        return report

    def _deliver(self, report: Report,
                 remaining_time: Optional[Callable[[], Optional[float]]] = None) -> bool:
        """
        投递报告，投递失败或超时不影响返回的报告

        Args:
            report: 检查报告
            remaining_time: 返回调用剩余秒数的函数

        Returns:
            bool: 是否投递成功
        """
        if self.report_sink is None:
            return False

        budget = delivery_budget(remaining_time() if remaining_time else None)
        if budget is not None and budget <= 0:
            self.logger_service.logger.warning("调用剩余时间不足，跳过报告投递")
            self.logger_service.log_notification_sent("SNS", False)
            return False

        try:
            delivered = self.report_sink.publish(report, time_budget=budget)
        except BotoCoreError as e:
            self.logger_service.logger.error(f"投递报告时发生错误: {str(e)}")
            delivered = False

        self.logger_service.log_notification_sent("SNS", delivered)
        return delivered


def build_target_source(event: Dict[str, Any], settings: MonitorSettings) -> TargetSourceInterface:
    """
    根据调用事件选择配置来源

    Args:
        event: 调用事件，可包含 "targets"（内联文本）或 "s3_config_location"
        settings: 运行配置

    Returns:
        TargetSourceInterface: 配置来源
    """
    inline_targets = event.get('targets')
    if inline_targets is not None:
        if not isinstance(inline_targets, str):
            raise ConfigError("targets 必须是换行分隔的文本")
        return StaticTargetSource(inline_targets)

    location = event.get('s3_config_location') or settings.config_location
    if not location:
        raise ConfigError("未提供 s3_config_location，且 CONFIG_LOCATION 未设置")

    return S3TargetSource(location)


def remaining_seconds(context: Any) -> Optional[float]:
    """Lambda调用剩余秒数，没有运行时上下文时返回None"""
    get_remaining = getattr(context, 'get_remaining_time_in_millis', None)
    if callable(get_remaining):
        remaining_ms = get_remaining()
        if isinstance(remaining_ms, (int, float)):
            return remaining_ms / 1000.0
    return None


def delivery_budget(remaining: Optional[float]) -> Optional[float]:
    if remaining is None:
        return None
    return remaining - DEADLINE_SAFETY_MARGIN_SECONDS


def invocation_deadline(settings: MonitorSettings, context: Any) -> float:
    """
    计算本次调用的检查截止时间，配置了SNS时为报告投递预留时间

    Args:
        settings: 运行配置
        context: Lambda运行时上下文

    Returns:
        float: 截止时间（秒）
    """
    deadline = settings.deadline_seconds

    remaining = remaining_seconds(context)
    if remaining is not None:
        available = remaining - DEADLINE_SAFETY_MARGIN_SECONDS
        if settings.sns_topic_arn:
            available -= DELIVERY_RESERVE_SECONDS
        deadline = min(deadline, max(available, MIN_DEADLINE_SECONDS))

    return deadline


def load_settings(logger_service: LoggerService) -> MonitorSettings:
    """
    验证并加载运行配置，记录所有配置警告

    Raises:
        ConfigError: 任意环境变量无效
    """
    validation = ConfigValidator().validate_all_configurations()
    environment = validation['configurations']['environment']

    logger_service.logger.info(f"已设置的配置: {environment['present_vars']}")
    missing = [item['name'] for item in environment['missing_optional']]
    if missing:
        logger_service.logger.debug(f"未设置的配置（使用默认值）: {', '.join(missing)}")

    for warning in validation['warnings']:
        logger_service.logger.warning(f"配置警告: {warning}")

    if not validation['is_valid']:
        raise ConfigError("; ".join(validation['errors']))

    return validation['configurations']['settings']


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    检查阶段的Lambda入口点

    Args:
        event: 调用事件
        context: Lambda运行时上下文

    Returns:
        dict: {"Valid": None} 或 {"Invalid": "..."}

    Raises:
        MonitorError: 配置错误或无法读取配置，调用失败而不是返回报告
    """
    logger_service = LoggerService()

    try:
        settings = load_settings(logger_service)
        target_source = build_target_source(event or {}, settings)
        report_sink = SNSReportSink(topic_arn=settings.sns_topic_arn) if settings.sns_topic_arn else None

        monitor = CertificateHealthMonitor(settings, target_source, report_sink=report_sink)
        report = monitor.execute(
            deadline_seconds=invocation_deadline(settings, context),
            remaining_time=lambda: remaining_seconds(context)
        )

        return report.to_dict()

    except MonitorError as e:
        logger_service.logger.error(f"TLS证书检查调用失败: {type(e).__name__}: {str(e)}")
        raise


def report_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    报告阶段的Lambda入口点：解析检查阶段的报告并投递到SNS

    Args:
        event: 报告本身，或 {"report": 报告}
        context: Lambda运行时上下文

    Returns:
        dict: 投递结果
    """
    logger_service = LoggerService()

    payload = event.get('report', event) if isinstance(event, dict) else event
    report = report_from_dict(payload)
    logger_service.log_report(report)

    settings = load_settings(logger_service)
    if not settings.sns_topic_arn:
        raise ConfigError("SNS_TOPIC_ARN未设置，无法投递报告")

    budget = delivery_budget(remaining_seconds(context))
    published = SNSReportSink(topic_arn=settings.sns_topic_arn).publish(report, time_budget=budget)
    logger_service.log_notification_sent("SNS", published)

    return {
        'published': published,
        'valid': report.is_valid
    }
