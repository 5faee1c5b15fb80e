"""
检查结果分类服务
"""
from datetime import datetime
from typing import Optional

from ..models import (
    CheckTarget, CertificateFacts, NetworkError, HandshakeError,
    ProbeResult, DomainOutcome, Healthy, Issue
)
from .expiry_evaluator import ExpiryEvaluator


class OutcomeClassifier:
    """将探测结果和过期评估合并为每个域名的最终结果"""

    def __init__(self, evaluator: Optional[ExpiryEvaluator] = None):
        self.evaluator = evaluator or ExpiryEvaluator()

    def classify(self, target: CheckTarget, probe_result: ProbeResult, now: datetime) -> DomainOutcome:
        """
        分类单个目标的检查结果

        Args:
            target: 检查目标
            probe_result: 探测结果
            now: 参考时间

        Returns:
            DomainOutcome: Healthy 或 Issue
        """
        if isinstance(probe_result, (NetworkError, HandshakeError)):
            return Issue(domain=target.domain, reason=probe_result)

        if not isinstance(probe_result, CertificateFacts):
            raise TypeError(f"未知的探测结果类型: {type(probe_result).__name__}")

        finding = self.evaluator.evaluate(probe_result, target.expiry_threshold, now)
        if finding is None:
            return Healthy(domain=target.domain)

        return Issue(domain=target.domain, reason=finding)
