"""
并发检查协调服务
"""
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import List, Optional
import logging

from ..interfaces import CertificateProbeInterface, LoggerServiceInterface
from ..models import CheckTarget, DomainOutcome, Issue, NetworkError
from .error_handler import NetworkErrorHandler
from .outcome_classifier import OutcomeClassifier


class CheckCoordinator:
    """
    检查协调器

    每个目标是一个独立任务，由线程池限制同时进行的连接数。
    所有任务结束（或总截止时间到达）后在调用线程中按目标顺序汇总结果，
    未完成的目标记为 NetworkError("timeout")。
    """

    def __init__(self, probe: CertificateProbeInterface,
                 classifier: Optional[OutcomeClassifier] = None,
                 max_workers: int = 10,
                 deadline_seconds: float = 240.0,
                 error_handler: Optional[NetworkErrorHandler] = None,
                 logger_service: Optional[LoggerServiceInterface] = None):
        """
        初始化检查协调器

        Args:
            probe: 证书探测器
            classifier: 结果分类器
            max_workers: 最大并发检查数
            deadline_seconds: 整次调用的截止时间（秒）
            error_handler: 网络错误重试策略
            logger_service: 日志服务
        """
        if max_workers < 1:
            raise ValueError(f"max_workers 必须大于0: {max_workers}")

        self.probe = probe
        self.classifier = classifier or OutcomeClassifier()
        self.max_workers = max_workers
        self.deadline_seconds = deadline_seconds
        self.error_handler = error_handler or NetworkErrorHandler()
        self.logger_service = logger_service
        self.logger = logging.getLogger(__name__)

    def run(self, targets: List[CheckTarget], now: datetime,
            deadline_seconds: Optional[float] = None) -> List[DomainOutcome]:
        """
        并发检查所有目标

        Args:
            targets: 检查目标列表
            now: 参考时间
            deadline_seconds: 覆盖默认的截止时间

        Returns:
            List[DomainOutcome]: 与 targets 一一对应的检查结果
        """
        if not targets:
            return []

        deadline = self.deadline_seconds if deadline_seconds is None else deadline_seconds
        workers = min(self.max_workers, len(targets))

        self.logger.info(f"开始并发检查 {len(targets)} 个目标，并发数 {workers}，截止时间 {deadline:.1f} 秒")

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cert-check")
        try:
            futures = [executor.submit(self._check_target, target, now) for target in targets]
            _, not_done = wait(futures, timeout=deadline)
        finally:
            # 截止时间到达后不再等待仍在进行的握手
            executor.shutdown(wait=False, cancel_futures=True)

        if not_done:
            self.logger.warning(f"截止时间已到，{len(not_done)} 个目标未完成检查")

        outcomes = []
        for target, future in zip(targets, futures):
            if future in not_done:
                outcome = Issue(domain=target.domain, reason=NetworkError("timeout"))
            else:
                outcome = self._collect(target, future)

            outcomes.append(outcome)
            if self.logger_service:
                self.logger_service.log_outcome(outcome)

        return outcomes

    def _check_target(self, target: CheckTarget, now: datetime) -> DomainOutcome:
        probe_result = self.error_handler.with_retry(self.probe.probe, target)
        return self.classifier.classify(target, probe_result, now)

    def _collect(self, target: CheckTarget, future) -> DomainOutcome:
        """
        读取已完成任务的结果

        Args:
            target: 检查目标
            future: 已完成的任务

        Returns:
            DomainOutcome: 检查结果，任务异常时记为网络错误
        """
        try:
            return future.result()
        except Exception as e:
            if self.logger_service:
                self.logger_service.log_error(target.domain, e)
            else:
                self.logger.error(f"域名 {target.domain} 检查时发生错误: {type(e).__name__}: {str(e)}")
            return Issue(
                domain=target.domain,
                reason=NetworkError(f"unexpected error: {type(e).__name__}: {str(e)}")
            )
