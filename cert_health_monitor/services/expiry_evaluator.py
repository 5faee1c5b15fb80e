"""
证书过期评估服务
"""
from datetime import datetime, timedelta
from typing import Optional, Union

from ..models import CertificateFacts, Expired, NearExpiry


class ExpiryEvaluator:
    """
    证书过期评估器

    只检查证书的 not_after，not_before 由TLS层负责。
    阈值边界归为即将过期：剩余时间恰好等于阈值时返回 NearExpiry。
    """

    def evaluate(self, facts: CertificateFacts, threshold: timedelta,
                 now: datetime) -> Optional[Union[Expired, NearExpiry]]:
        """
        评估证书有效期

        Args:
            facts: 证书信息
            threshold: 提前警告阈值
            now: 参考时间（必须带时区）

        Returns:
            Expired / NearExpiry，证书健康时返回 None
        """
        if now.tzinfo is None or facts.not_after.tzinfo is None:
            raise ValueError("参考时间和证书时间必须带时区信息")

        if now > facts.not_after:
            return Expired(at=facts.not_after)

        remaining = facts.not_after - now
        if remaining <= threshold:
            return NearExpiry(at=facts.not_after, days_left=self.days_left(remaining))

        return None

    def days_left(self, remaining: timedelta) -> int:
        """
        计算剩余整天数（向下取整）

        Args:
            remaining: 剩余时间

        Returns:
            int: 剩余天数
        """
        return remaining // timedelta(days=1)
