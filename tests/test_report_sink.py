"""
SNS报告投递服务测试
"""
import json
import pytest
import os
from unittest.mock import patch, MagicMock
from botocore.exceptions import ClientError
from moto import mock_aws
import boto3

from cert_health_monitor.services.report_sink import SNSReportSink
from cert_health_monitor.models import Valid, Invalid


INVALID_REPORT = Invalid(
    "Found 2 issues.\n"
    "expired.example: expired (not_after=2026-10-15T00:00:00+00:00)\n"
    "down.example: network error: timeout"
)


class FakeClock:
    """可控的单调时钟"""

    def __init__(self):
        self.now = 0.0

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def client_error(code: str) -> ClientError:
    return ClientError({'Error': {'Code': code, 'Message': f'{code} message'}}, 'Publish')


class TestSNSReportSink:
    """SNS报告投递服务测试类"""

    def setup_method(self):
        """测试前准备"""
        self.topic_arn = "arn:aws:sns:eu-west-1:123456789012:cert-reports"

    @patch('cert_health_monitor.services.report_sink.boto3')
    def test_init_region_from_arn(self, mock_boto3):
        """测试从ARN中提取区域"""
        service = SNSReportSink(topic_arn=self.topic_arn)

        assert service.region_name == 'eu-west-1'
        mock_boto3.client.assert_called_once()
        assert mock_boto3.client.call_args.args == ('sns',)
        assert mock_boto3.client.call_args.kwargs['region_name'] == 'eu-west-1'

    @patch('cert_health_monitor.services.report_sink.boto3')
    def test_client_timeouts_bounded(self, mock_boto3):
        """测试SNS客户端的连接和读取超时有上限，且不自动重试"""
        SNSReportSink(topic_arn=self.topic_arn)

        config = mock_boto3.client.call_args.kwargs['config']
        assert config.connect_timeout == SNSReportSink.CONNECT_TIMEOUT_SECONDS
        assert config.read_timeout == SNSReportSink.READ_TIMEOUT_SECONDS
        assert config.retries == {'total_max_attempts': 1, 'mode': 'standard'}

    @patch.dict(os.environ, {'SNS_TOPIC_ARN': 'arn:aws:sns:us-east-1:123456789012:env-topic'})
    @patch('cert_health_monitor.services.report_sink.boto3')
    def test_init_from_env(self, mock_boto3):
        """测试从环境变量初始化"""
        service = SNSReportSink()

        assert service.topic_arn == 'arn:aws:sns:us-east-1:123456789012:env-topic'
        assert service.region_name == 'us-east-1'

    def test_format_subject(self):
        """测试消息主题"""
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=MagicMock())

        assert service.format_subject(Valid()) == "TLS certificate report: all domains healthy"
        assert service.format_subject(INVALID_REPORT) == "TLS certificate report: Found 2 issues."

    def test_format_subject_truncated(self):
        """测试主题长度不超过SNS限制"""
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=MagicMock())

        subject = service.format_subject(Invalid("x" * 300))

        assert len(subject) == SNSReportSink.SUBJECT_MAX_LENGTH

    def test_publish_sends_report_json(self):
        """测试发送报告JSON"""
        client = MagicMock()
        client.publish.return_value = {'MessageId': 'msg-1'}
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=client)

        assert service.publish(INVALID_REPORT) is True

        kwargs = client.publish.call_args.kwargs
        assert kwargs['TopicArn'] == self.topic_arn
        assert json.loads(kwargs['Message']) == {"Invalid": INVALID_REPORT.message}

    def test_publish_without_topic(self):
        """测试未配置主题"""
        client = MagicMock()
        with patch.dict(os.environ, {}, clear=True):
            service = SNSReportSink(sns_client=client)

        assert service.publish(Valid()) is False
        client.publish.assert_not_called()

    @patch('time.sleep')
    def test_publish_retries_throttling(self, mock_sleep):
        """测试限流时重试"""
        client = MagicMock()
        client.publish.side_effect = [client_error('Throttling'), {'MessageId': 'msg-2'}]
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=client)

        assert service.publish(Valid()) is True
        assert client.publish.call_count == 2
        mock_sleep.assert_called_once_with(1)

    @patch('time.sleep')
    def test_publish_retries_exhausted(self, mock_sleep):
        """测试重试次数用尽"""
        client = MagicMock()
        client.publish.side_effect = client_error('ServiceUnavailable')
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=client, max_retries=2)

        assert service.publish(Valid()) is False
        assert client.publish.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @patch('time.sleep')
    def test_publish_non_retryable_error(self, mock_sleep):
        """测试不可重试的错误"""
        client = MagicMock()
        client.publish.side_effect = client_error('AuthorizationError')
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=client)

        assert service.publish(Valid()) is False
        client.publish.assert_called_once()
        mock_sleep.assert_not_called()

    @patch('time.sleep')
    def test_publish_without_time_for_first_attempt(self, mock_sleep):
        """测试剩余时间不足一次发送时不发送"""
        client = MagicMock()
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=client)

        assert service.publish(Valid(), time_budget=SNSReportSink.ATTEMPT_TIMEOUT_SECONDS - 1) is False
        client.publish.assert_not_called()

    def test_publish_retries_within_time_budget(self):
        """测试只在时间预算内重试"""
        clock = FakeClock()
        client = MagicMock()

        def slow_throttled_publish(**kwargs):
            clock.sleep(SNSReportSink.ATTEMPT_TIMEOUT_SECONDS)
            raise client_error('Throttling')

        client.publish.side_effect = slow_throttled_publish
        service = SNSReportSink(topic_arn=self.topic_arn, sns_client=client, max_retries=3)

        # 预算只够首次发送、1秒退避和一次重试
        budget = 2 * SNSReportSink.ATTEMPT_TIMEOUT_SECONDS + 1.5
        with patch('time.monotonic', clock.monotonic), patch('time.sleep', side_effect=clock.sleep) as mock_sleep:
            assert service.publish(Valid(), time_budget=budget) is False

        assert client.publish.call_count == 2
        mock_sleep.assert_called_once_with(1)

    @mock_aws
    def test_publish_with_moto(self):
        """测试向模拟的SNS主题发送"""
        sns = boto3.client('sns', region_name='us-east-1')
        topic_arn = sns.create_topic(Name='cert-reports')['TopicArn']

        service = SNSReportSink(topic_arn=topic_arn)

        assert service.publish(INVALID_REPORT) is True

    @mock_aws
    def test_publish_to_missing_topic_with_moto(self):
        """测试主题不存在"""
        service = SNSReportSink(topic_arn="arn:aws:sns:us-east-1:123456789012:missing")

        assert service.publish(Valid()) is False
