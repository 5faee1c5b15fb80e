"""
SNS报告投递服务
"""
import os
import time
from typing import Optional
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ..interfaces import ReportSinkInterface
from ..models import Report


class SNSReportSink(ReportSinkInterface):
    """SNS报告投递实现"""

    # SNS Subject 最长100个字符
    SUBJECT_MAX_LENGTH = 100

    # 单次发布的最长耗时，重试由本类控制
    CONNECT_TIMEOUT_SECONDS = 3
    READ_TIMEOUT_SECONDS = 5
    ATTEMPT_TIMEOUT_SECONDS = CONNECT_TIMEOUT_SECONDS + READ_TIMEOUT_SECONDS

    def __init__(self, topic_arn: Optional[str] = None, region_name: Optional[str] = None,
                 max_retries: int = 3, sns_client=None):
        """
        初始化SNS报告投递服务

        Args:
            topic_arn: SNS主题ARN，如果为None则从环境变量读取
            region_name: AWS区域名称，如果为None则自动检测
            max_retries: 最大重试次数
            sns_client: 预先创建的SNS客户端
        """
        self.topic_arn = topic_arn or os.getenv('SNS_TOPIC_ARN')
        self.max_retries = max_retries

        if region_name:
            self.region_name = region_name
        elif self.topic_arn and self.topic_arn.startswith('arn:aws:sns:'):
            # 从SNS ARN中提取区域
            self.region_name = self.topic_arn.split(':')[3]
        else:
            self.region_name = os.getenv('AWS_REGION', 'us-east-1')

        self.logger = logging.getLogger(__name__)
        self.sns_client = sns_client or boto3.client(
            'sns',
            region_name=self.region_name,
            config=Config(
                connect_timeout=self.CONNECT_TIMEOUT_SECONDS,
                read_timeout=self.READ_TIMEOUT_SECONDS,
                retries={'total_max_attempts': 1, 'mode': 'standard'}
            )
        )

    def publish(self, report: Report, time_budget: Optional[float] = None) -> bool:
        """
        投递报告

        Args:
            report: 检查报告
            time_budget: 可用于投递的秒数，为None时不限制

        Returns:
            bool: 发送是否成功
        """
        if not self.topic_arn:
            self.logger.error("SNS主题ARN未配置")
            return False

        deadline = None if time_budget is None else time.monotonic() + time_budget
        return self._publish_with_retry(self.format_subject(report), report.to_json(), deadline)

    def format_subject(self, report: Report) -> str:
        """
        格式化消息主题

        Args:
            report: 检查报告

        Returns:
            str: 消息主题
        """
        if report.is_valid:
            return "TLS certificate report: all domains healthy"

        summary = report.message.splitlines()[0]
        subject = f"TLS certificate report: {summary}"
        return subject[:self.SUBJECT_MAX_LENGTH]

    def _publish_with_retry(self, subject: str, message: str, deadline: Optional[float] = None) -> bool:
        """
        带重试机制的SNS消息发布，不会在截止时间之后开始新的尝试

        Args:
            subject: 消息主题
            message: 消息内容
            deadline: time.monotonic() 截止时间

        Returns:
            bool: 发送是否成功
        """
        for attempt in range(self.max_retries + 1):
            if not self._has_time_for_attempt(deadline):
                self.logger.error(f"剩余时间不足，放弃SNS发送 (尝试 {attempt + 1}/{self.max_retries + 1})")
                return False

            try:
                response = self.sns_client.publish(
                    TopicArn=self.topic_arn,
                    Subject=subject,
                    Message=message
                )

                self.logger.info(f"SNS报告发送成功，MessageId: {response.get('MessageId')}")
                return True

            except ClientError as e:
                error_code = e.response['Error']['Code']
                error_message = e.response['Error'].get('Message', '')

                wait_time = 2 ** attempt  # 指数退避
                if (self._is_retryable_error(error_code) and attempt < self.max_retries
                        and self._has_time_for_attempt(deadline, wait_time)):
                    self.logger.warning(
                        f"SNS发送失败 (尝试 {attempt + 1}/{self.max_retries + 1}) - {error_code}: {error_message}，"
                        f"{wait_time}秒后重试"
                    )
                    time.sleep(wait_time)
                    continue

                self.logger.error(f"SNS发送失败 - {error_code}: {error_message}")
                return False

        return False

    def _has_time_for_attempt(self, deadline: Optional[float], wait_time: float = 0) -> bool:
        if deadline is None:
            return True
        return time.monotonic() + wait_time + self.ATTEMPT_TIMEOUT_SECONDS <= deadline

    def _is_retryable_error(self, error_code: str) -> bool:
        """
        判断错误是否可重试

        Args:
            error_code: AWS错误代码

        Returns:
            bool: 是否可重试
        """
        retryable_errors = {
            'Throttling',
            'ThrottlingException',
            'ServiceUnavailable',
            'InternalError',
            'RequestTimeout'
        }
        return error_code in retryable_errors
