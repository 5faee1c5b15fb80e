"""
数据模型定义
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Union, Dict, Any


DEFAULT_PORT = 443
DEFAULT_EXPIRY_THRESHOLD = timedelta(days=14)
MAX_EXPIRY_THRESHOLD_DAYS = 3650


@dataclass(frozen=True)
class CheckTarget:
    """检查目标（一行配置对应一个）"""
    domain: str
    port: int = DEFAULT_PORT
    expiry_threshold: timedelta = DEFAULT_EXPIRY_THRESHOLD


@dataclass(frozen=True)
class CertificateFacts:
    """握手成功后从叶子证书中提取的信息"""
    not_before: datetime
    not_after: datetime
    subject_identity: str
    chain_trusted: bool


@dataclass(frozen=True)
class NetworkError:
    """网络错误：DNS解析、连接失败、超时"""
    detail: str

    def describe(self) -> str:
        return f"network error: {self.detail}"


@dataclass(frozen=True)
class HandshakeError:
    """TLS握手被拒绝：证书链不受信任、主机名不匹配、协议错误"""
    detail: str

    def describe(self) -> str:
        return f"handshake error: {self.detail}"


@dataclass(frozen=True)
class Expired:
    """证书已过期"""
    at: datetime

    def describe(self) -> str:
        return f"expired (not_after={self.at.isoformat()})"


@dataclass(frozen=True)
class NearExpiry:
    """证书在阈值内即将过期"""
    at: datetime
    days_left: int

    def describe(self) -> str:
        return f"expires soon (not_after={self.at.isoformat()}, days_left={self.days_left})"


IssueReason = Union[NetworkError, HandshakeError, Expired, NearExpiry]
ProbeResult = Union[CertificateFacts, NetworkError, HandshakeError]


@dataclass(frozen=True)
class Healthy:
    """域名证书健康"""
    domain: str


@dataclass(frozen=True)
class Issue:
    """域名存在问题"""
    domain: str
    reason: IssueReason

    @property
    def category(self) -> str:
        return type(self.reason).__name__

    def render(self) -> str:
        return f"{self.domain}: {self.reason.describe()}"


DomainOutcome = Union[Healthy, Issue]


@dataclass(frozen=True)
class Valid:
    """所有域名健康"""

    @property
    def is_valid(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"Valid": None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Invalid:
    """发现一个或多个问题，message 为聚合后的多行文本"""
    message: str

    def __post_init__(self):
        if not self.message:
            raise ValueError("Invalid report requires a non-empty message")

    @property
    def is_valid(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {"Invalid": self.message}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


Report = Union[Valid, Invalid]


def report_from_dict(data: Dict[str, Any]) -> Report:
    """
    从字典解析报告（供独立的报告处理进程使用）

    Args:
        data: {"Valid": None} 或 {"Invalid": "..."}

    Returns:
        Report: 解析后的报告

    Raises:
        ValueError: 格式不符合报告约定
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"报告格式无效: {data!r}")

    if "Valid" in data:
        if data["Valid"] is not None:
            raise ValueError(f"Valid 报告不应携带内容: {data['Valid']!r}")
        return Valid()

    if "Invalid" in data:
        message = data["Invalid"]
        if not isinstance(message, str) or not message:
            raise ValueError(f"Invalid 报告需要非空字符串: {message!r}")
        return Invalid(message)

    raise ValueError(f"未知的报告类型: {list(data)}")


@dataclass
class CheckSummary:
    """检查结果统计（仅用于日志，不属于报告约定）"""
    total_domains: int = 0
    healthy: int = 0
    issues_by_category: Dict[str, int] = field(default_factory=dict)

    @property
    def issue_count(self) -> int:
        return sum(self.issues_by_category.values())

    @classmethod
    def from_outcomes(cls, outcomes: List[DomainOutcome]) -> "CheckSummary":
        summary = cls(total_domains=len(outcomes))
        for outcome in outcomes:
            if isinstance(outcome, Issue):
                summary.issues_by_category[outcome.category] = (
                    summary.issues_by_category.get(outcome.category, 0) + 1
                )
            else:
                summary.healthy += 1
        return summary
