"""
TLS证书探测服务
"""
import ssl
import socket
from datetime import datetime, timezone
from typing import Optional
import logging

from ..interfaces import CertificateProbeInterface
from ..models import CheckTarget, CertificateFacts, HandshakeError, ProbeResult
from .error_handler import NetworkErrorHandler


class CertificateProbe(CertificateProbeInterface):
    """TLS证书探测器实现"""

    def __init__(self, connect_timeout: float = 10, handshake_timeout: float = 10,
                 error_handler: Optional[NetworkErrorHandler] = None):
        """
        初始化TLS证书探测器

        Args:
            connect_timeout: DNS解析及TCP连接超时时间（秒）
            handshake_timeout: TLS握手超时时间（秒）
            error_handler: 错误分类器
        """
        self.connect_timeout = connect_timeout
        self.handshake_timeout = handshake_timeout
        self.logger = logging.getLogger(__name__)
        self.error_handler = error_handler or NetworkErrorHandler()

    def probe(self, target: CheckTarget) -> ProbeResult:
        """
        对单个目标执行TLS握手

        Args:
            target: 检查目标

        Returns:
            ProbeResult: 证书信息，或 NetworkError / HandshakeError
        """
        phase = "connect"
        try:
            with socket.create_connection((target.domain, target.port), timeout=self.connect_timeout) as sock:
                phase = "handshake"
                sock.settimeout(self.handshake_timeout)
                context = ssl.create_default_context()
                with context.wrap_socket(sock, server_hostname=target.domain) as ssock:
                    cert = ssock.getpeercert()

        except Exception as e:
            error_info = self.error_handler.handle_probe_error(target.domain, e, phase)
            return error_info['reason']

        if not cert:
            self.logger.error(f"域名 {target.domain} 未返回证书")
            return HandshakeError("no peer certificate")

        try:
            facts = CertificateFacts(
                not_before=self._parse_cert_time(cert, 'notBefore'),
                not_after=self._parse_cert_time(cert, 'notAfter'),
                subject_identity=self._parse_subject(cert),
                chain_trusted=True
            )
        except ValueError as e:
            self.logger.error(f"域名 {target.domain} 证书解析失败: {str(e)}")
            return HandshakeError(f"unparsable certificate: {str(e)}")

        self.logger.debug(
            f"域名 {target.domain}:{target.port} 握手成功，"
            f"主体: {facts.subject_identity}, 过期时间: {facts.not_after.isoformat()}"
        )
        return facts

    def _parse_cert_time(self, cert: dict, key: str) -> datetime:
        """
        解析证书时间字段

        Args:
            cert: getpeercert() 返回的证书信息
            key: 'notBefore' 或 'notAfter'

        Returns:
            datetime: UTC时间
        """
        value = cert.get(key)
        if not value:
            raise ValueError(f"证书中未找到 {key} 字段")

        # 格式：'Dec 31 23:59:59 2024 GMT'
        return datetime.fromtimestamp(ssl.cert_time_to_seconds(value), tz=timezone.utc)

    def _parse_subject(self, cert: dict) -> str:
        """
        解析证书主体标识

        Args:
            cert: getpeercert() 返回的证书信息

        Returns:
            str: 主体通用名称，没有则取第一个 DNS 类型的 subjectAltName
        """
        for item in cert.get('subject', ()):
            for key, value in item:
                if key == 'commonName':
                    return value

        for kind, value in cert.get('subjectAltName', ()):
            if kind == 'DNS':
                return value

        return "Unknown Subject"
