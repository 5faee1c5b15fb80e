"""
服务接口定义
"""
from abc import ABC, abstractmethod
from typing import Optional

from .models import CheckTarget, ProbeResult, Report, DomainOutcome


class TargetSourceInterface(ABC):
    """检查目标配置文本来源接口"""

    @abstractmethod
    def read_text(self) -> str:
        """读取原始配置文本"""
        pass


class CertificateProbeInterface(ABC):
    """证书探测器接口"""

    @abstractmethod
    def probe(self, target: CheckTarget) -> ProbeResult:
        """对单个目标执行TLS握手并提取证书信息"""
        pass


class ReportSinkInterface(ABC):
    """报告投递接口"""

    @abstractmethod
    def publish(self, report: Report, time_budget: Optional[float] = None) -> bool:
        """投递报告，time_budget 为可用秒数"""
        pass


class LoggerServiceInterface(ABC):
    """日志服务接口"""

    @abstractmethod
    def log_check_start(self, domain_count: int):
        """记录检查开始"""
        pass

    @abstractmethod
    def log_outcome(self, outcome: DomainOutcome):
        """记录单个域名的检查结果"""
        pass

    @abstractmethod
    def log_error(self, domain: str, error: Exception):
        """记录错误信息"""
        pass
