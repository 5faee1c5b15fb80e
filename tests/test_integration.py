"""
集成测试
"""
import json
import os
import socket
import threading
import time
from datetime import datetime, timezone, timedelta
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from cert_health_monitor.lambda_handler import CertificateHealthMonitor, lambda_handler
from cert_health_monitor.interfaces import CertificateProbeInterface
from cert_health_monitor.services.certificate_probe import CertificateProbe
from cert_health_monitor.services.config_validator import MonitorSettings
from cert_health_monitor.services.error_handler import ConfigError, TargetSourceError
from cert_health_monitor.services.target_source import StaticTargetSource
from cert_health_monitor.models import (
    CheckTarget, CertificateFacts, NetworkError, HandshakeError, Valid, Invalid
)


NOW = datetime(2026, 10, 16, tzinfo=timezone.utc)

AWS_ENV = {
    'AWS_ACCESS_KEY_ID': 'testing',
    'AWS_SECRET_ACCESS_KEY': 'testing',
    'AWS_DEFAULT_REGION': 'us-east-1',
    'AWS_REGION': 'us-east-1'
}


class ScriptedProbe(CertificateProbeInterface):
    """按域名返回预设结果，可选延迟"""

    def __init__(self, results, delays=None):
        self.results = results
        self.delays = delays or {}
        self.calls = []
        self._lock = threading.Lock()

    def probe(self, target):
        with self._lock:
            self.calls.append(target.domain)
        delay = self.delays.get(target.domain)
        if delay:
            time.sleep(delay)
        return self.results[target.domain]


def facts(not_after: datetime) -> CertificateFacts:
    return CertificateFacts(
        not_before=not_after - timedelta(days=90),
        not_after=not_after,
        subject_identity="stub",
        chain_trusted=True
    )


def closed_port() -> int:
    """返回一个当前没有监听的本地端口"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


@pytest.fixture
def plaintext_server():
    """只会返回HTTP明文的本地服务，TLS握手必然失败"""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(('127.0.0.1', 0))
    server.listen(1)

    def serve():
        try:
            conn, _ = server.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(0.5)
            try:
                while conn.recv(65536):
                    pass
            except socket.timeout:
                pass
            conn.sendall(b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n")
            conn.shutdown(socket.SHUT_WR)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield server.getsockname()[1]
    server.close()
    thread.join(timeout=5)


class TestEndToEndReports:
    """完整检查流程测试"""

    def _execute(self, text, probe, settings=None, deadline_seconds=None):
        monitor = CertificateHealthMonitor(
            settings or MonitorSettings(),
            StaticTargetSource(text),
            probe=probe,
            clock=lambda: NOW
        )
        return monitor.execute(deadline_seconds=deadline_seconds)

    def test_one_expired_domain(self):
        """测试一个已过期域名"""
        probe = ScriptedProbe({
            "good.example": facts(NOW + timedelta(days=90)),
            "expired.example": facts(NOW - timedelta(days=1)),
        })

        report = self._execute("good.example\nexpired.example\n", probe)

        assert report.to_dict() == {
            "Invalid": "Found 1 issues.\nexpired.example: expired (not_after=2026-10-15T00:00:00+00:00)"
        }

    def test_unreachable_domain(self):
        """测试不可达域名"""
        probe = ScriptedProbe({
            "good.example": facts(NOW + timedelta(days=90)),
            "unreachable.example": NetworkError("connection failed: [Errno 111] Connection refused"),
        })

        report = self._execute("unreachable.example\ngood.example\n", probe)

        assert report == Invalid(
            "Found 1 issues.\n"
            "unreachable.example: network error: connection failed: [Errno 111] Connection refused"
        )

    def test_exact_threshold_is_near_expiry(self):
        """测试剩余时间恰好等于阈值"""
        probe = ScriptedProbe({"edge.example": facts(NOW + timedelta(days=14))})

        report = self._execute("edge.example\n", probe)

        assert report == Invalid(
            "Found 1 issues.\n"
            "edge.example: expires soon (not_after=2026-10-30T00:00:00+00:00, days_left=14)"
        )

    def test_per_target_threshold_and_port(self):
        """测试每个目标的端口和阈值"""
        probe = ScriptedProbe({"api.example": facts(NOW + timedelta(days=20))})

        assert self._execute("api.example:8443 7d\n", probe) == Valid()
        assert self._execute("api.example:8443 30\n", probe) == Invalid(
            "Found 1 issues.\n"
            "api.example: expires soon (not_after=2026-11-05T00:00:00+00:00, days_left=20)"
        )

    def test_no_targets_is_valid(self):
        """测试没有目标"""
        probe = ScriptedProbe({})

        report = self._execute("# all checks disabled\n\n", probe)

        assert report.to_dict() == {"Valid": None}
        assert probe.calls == []

    def test_config_error_runs_no_probes(self):
        """测试配置错误时不执行探测"""
        probe = ScriptedProbe({"good.example": facts(NOW + timedelta(days=90))})

        with pytest.raises(ConfigError):
            self._execute("good.example\ngood.example:notaport\n", probe)

        assert probe.calls == []

    def test_deadline_marks_slow_domains_as_timeout(self):
        """测试截止时间到达后慢域名报告为超时"""
        probe = ScriptedProbe(
            {
                "fast.example": facts(NOW + timedelta(days=90)),
                "slow.example": facts(NOW + timedelta(days=90)),
            },
            delays={"slow.example": 2.0}
        )

        started = time.monotonic()
        report = self._execute("slow.example\nfast.example\n", probe, deadline_seconds=0.3)
        elapsed = time.monotonic() - started

        assert report == Invalid("Found 1 issues.\nslow.example: network error: timeout")
        assert elapsed < 1.5

    def test_repeated_runs_are_byte_identical(self):
        """测试重复执行得到相同的报告"""
        results = {
            "c.example": HandshakeError("certificate verify failed: self-signed certificate"),
            "a.example": facts(NOW - timedelta(days=10)),
            "b.example": facts(NOW + timedelta(days=3)),
        }
        text = "c.example\na.example\nb.example\n"

        reports = [
            self._execute(text, ScriptedProbe(results), MonitorSettings(max_workers=workers)).to_json()
            for workers in (1, 2, 10)
        ]

        assert len(set(reports)) == 1
        assert json.loads(reports[0]) == {
            "Invalid": (
                "Found 3 issues.\n"
                "c.example: handshake error: certificate verify failed: self-signed certificate\n"
                "a.example: expired (not_after=2026-10-06T00:00:00+00:00)\n"
                "b.example: expires soon (not_after=2026-10-19T00:00:00+00:00, days_left=3)"
            )
        }


class TestRealProbe:
    """使用本地套接字的真实探测测试"""

    def test_refused_connection_is_network_error(self):
        """测试连接被拒绝"""
        probe = CertificateProbe(connect_timeout=2, handshake_timeout=2)

        result = probe.probe(CheckTarget("127.0.0.1", closed_port(), timedelta(days=14)))

        assert isinstance(result, NetworkError)
        assert result.detail.startswith("connection failed:")

    def test_plaintext_server_is_handshake_error(self, plaintext_server):
        """测试对端不支持TLS"""
        probe = CertificateProbe(connect_timeout=2, handshake_timeout=5)

        result = probe.probe(CheckTarget("127.0.0.1", plaintext_server, timedelta(days=14)))

        assert isinstance(result, HandshakeError)


class TestLambdaWithAws:
    """使用模拟AWS服务的Lambda调用测试"""

    @mock_aws
    def test_s3_config_and_sns_report(self):
        """测试从S3读取配置并向SNS投递报告"""
        with patch.dict(os.environ, AWS_ENV):
            s3 = boto3.client('s3', region_name='us-east-1')
            s3.create_bucket(Bucket='cert-config')
            s3.put_object(
                Bucket='cert-config', Key='targets.txt',
                Body=b"# production\ngood.example\nexpired.example\n"
            )

            sns = boto3.client('sns', region_name='us-east-1')
            topic_arn = sns.create_topic(Name='cert-reports')['TopicArn']

            now = datetime.now(timezone.utc)
            probe = ScriptedProbe({
                "good.example": facts(now + timedelta(days=90)),
                "expired.example": facts(now - timedelta(days=1)),
            })

            with patch.dict(os.environ, {'SNS_TOPIC_ARN': topic_arn}), \
                    patch('cert_health_monitor.lambda_handler.CertificateProbe', return_value=probe):
                response = lambda_handler({'s3_config_location': 's3://cert-config/targets.txt'}, None)

        assert list(response) == ["Invalid"]
        assert response["Invalid"].startswith("Found 1 issues.\nexpired.example: expired (not_after=")
        assert sorted(probe.calls) == ["expired.example", "good.example"]

    @mock_aws
    def test_config_location_from_environment(self):
        """测试使用 CONFIG_LOCATION 环境变量"""
        with patch.dict(os.environ, AWS_ENV):
            s3 = boto3.client('s3', region_name='us-east-1')
            s3.create_bucket(Bucket='cert-config')
            s3.put_object(Bucket='cert-config', Key='targets.txt', Body=b"good.example\n")

            probe = ScriptedProbe({"good.example": facts(datetime.now(timezone.utc) + timedelta(days=90))})

            with patch.dict(os.environ, {'CONFIG_LOCATION': 's3://cert-config/targets.txt'}), \
                    patch('cert_health_monitor.lambda_handler.CertificateProbe', return_value=probe):
                response = lambda_handler({}, None)

        assert response == {"Valid": None}

    @mock_aws
    def test_missing_config_object_fails_invocation(self):
        """测试配置对象不存在时调用失败"""
        with patch.dict(os.environ, AWS_ENV):
            boto3.client('s3', region_name='us-east-1').create_bucket(Bucket='cert-config')

            with pytest.raises(TargetSourceError):
                lambda_handler({'s3_config_location': 's3://cert-config/missing.txt'}, None)
