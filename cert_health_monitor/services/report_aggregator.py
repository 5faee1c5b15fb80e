"""
报告聚合服务
"""
from typing import List
import logging

from ..models import DomainOutcome, Issue, Report, Valid, Invalid, CheckSummary


class ReportAggregator:
    """将所有域名的检查结果折叠为一个报告"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def aggregate(self, outcomes: List[DomainOutcome]) -> Report:
        """
        聚合检查结果

        Args:
            outcomes: 按目标顺序排列的检查结果

        Returns:
            Report: 全部健康时为 Valid，否则为 Invalid
        """
        issues = [outcome for outcome in outcomes if isinstance(outcome, Issue)]

        if not issues:
            self.logger.info("所有证书状态正常")
            return Valid()

        summary = CheckSummary.from_outcomes(outcomes)
        breakdown = ", ".join(f"{name}={count}" for name, count in sorted(summary.issues_by_category.items()))
        self.logger.info(f"问题分类: {breakdown} / 正常 {summary.healthy} 个")

        lines = [f"Found {summary.issue_count} issues."]
        lines.extend(issue.render() for issue in issues)
        message = "\n".join(lines)

        self.logger.info(f"生成报告:\n{message}")
        return Invalid(message)
