"""
错误处理服务
"""
import socket
import ssl
import time
from typing import Callable, Any, Dict
import logging

from ..models import NetworkError, HandshakeError, IssueReason


class MonitorError(Exception):
    """监控系统调用级错误基类"""


class ConfigError(MonitorError):
    """配置错误：目标行格式错误、环境变量无效、配置位置无效"""


class TargetSourceError(MonitorError):
    """无法读取检查目标配置"""


class NetworkErrorHandler:
    """网络错误处理器"""

    # 重试次数上限，握手错误永不重试
    MAX_RETRIES_LIMIT = 3

    def __init__(self, max_retries: int = 0, base_delay: float = 1.0):
        """
        初始化网络错误处理器

        Args:
            max_retries: 网络错误的最大重试次数（0 表示不重试）
            base_delay: 基础延迟时间（秒）
        """
        if max_retries < 0 or max_retries > self.MAX_RETRIES_LIMIT:
            raise ConfigError(f"重试次数必须在 0 到 {self.MAX_RETRIES_LIMIT} 之间: {max_retries}")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.logger = logging.getLogger(__name__)

    def classify_exception(self, error: Exception, phase: str = "connect") -> IssueReason:
        """
        将探测过程中的异常归类为问题原因

        只有TLS协议和证书错误（ssl.SSLError、CertificateError）是 HandshakeError，
        握手阶段的超时或连接重置仍是可重试的 NetworkError，阶段只影响超时的描述。

        Args:
            error: 异常对象
            phase: 发生异常的阶段，"connect" 或 "handshake"

        Returns:
            IssueReason: NetworkError 或 HandshakeError
        """
        # ssl.SSLError 是 OSError 的子类，必须先判断
        if isinstance(error, ssl.SSLCertVerificationError):
            detail = getattr(error, "verify_message", None) or self._describe(error)
            return HandshakeError(f"certificate verify failed: {detail}")

        if isinstance(error, (ssl.SSLError, ssl.CertificateError)):
            return HandshakeError(self._describe(error))

        if isinstance(error, (socket.timeout, TimeoutError)):
            if phase == "handshake":
                return NetworkError(f"handshake timed out: {self._describe(error)}")
            return NetworkError(f"connection timed out: {self._describe(error)}")

        if isinstance(error, socket.gaierror):
            return NetworkError(f"name resolution failed: {self._describe(error)}")

        if isinstance(error, ConnectionError):
            return NetworkError(f"connection failed: {self._describe(error)}")

        if isinstance(error, OSError):
            return NetworkError(self._describe(error))

        raise error

    def is_retryable(self, reason: Any) -> bool:
        """
        判断结果是否可重试（只有网络错误可以重试）

        Args:
            reason: 探测结果

        Returns:
            bool: 是否可重试
        """
        return isinstance(reason, NetworkError)

    def with_retry(self, func: Callable, *args, **kwargs) -> Any:
        """
        带重试机制执行探测函数

        函数返回 NetworkError 时按指数退避重试，其它结果直接返回。

        Args:
            func: 要执行的函数
            *args: 函数参数
            **kwargs: 函数关键字参数

        Returns:
            Any: 最后一次执行的结果
        """
        result = func(*args, **kwargs)

        for attempt in range(self.max_retries):
            if not self.is_retryable(result):
                return result

            # 计算延迟时间（指数退避）
            delay = self.base_delay * (2 ** attempt)

            self.logger.warning(
                f"尝试 {attempt + 1}/{self.max_retries + 1} 失败: {result.describe()}，"
                f"{delay:.1f}秒后重试"
            )

            time.sleep(delay)
            result = func(*args, **kwargs)

        if self.max_retries and self.is_retryable(result):
            self.logger.error(f"重试次数用尽，最终失败: {result.describe()}")

        return result

    def handle_probe_error(self, domain: str, error: Exception, phase: str = "connect") -> Dict[str, Any]:
        """
        处理探测错误

        Args:
            domain: 域名
            error: 异常对象
            phase: 发生异常的阶段

        Returns:
            Dict[str, Any]: 错误处理结果
        """
        reason = self.classify_exception(error, phase)

        error_info = {
            'domain': domain,
            'error_type': type(error).__name__,
            'reason': reason,
            'is_retryable': self.is_retryable(reason),
            'suggested_action': self._get_suggested_action(error)
        }

        # 记录错误
        if error_info['is_retryable']:
            self.logger.warning(
                f"域名 {domain} 连接错误（可重试）: {reason.describe()}，建议: {error_info['suggested_action']}"
            )
        else:
            self.logger.error(
                f"域名 {domain} TLS握手错误（不可重试）: {reason.describe()}，建议: {error_info['suggested_action']}"
            )

        return error_info

    def _describe(self, error: Exception) -> str:
        message = str(error)
        if not message:
            return type(error).__name__
        return message

    def _get_suggested_action(self, error: Exception) -> str:
        """
        获取错误的建议处理方案

        Args:
            error: 异常对象

        Returns:
            str: 建议的处理方案
        """
        error_message = str(error).lower()

        if isinstance(error, ssl.SSLCertVerificationError):
            return "证书验证失败，可能是自签名证书、证书链不完整或主机名不匹配"
        elif isinstance(error, ssl.CertificateError):
            return "证书验证失败，检查证书是否有效"
        elif isinstance(error, ssl.SSLError):
            if 'handshake failure' in error_message or 'protocol' in error_message:
                return "SSL握手失败，检查SSL/TLS版本兼容性"
            return "SSL连接问题，检查服务器SSL配置"
        elif isinstance(error, (socket.timeout, TimeoutError)):
            return "检查网络连接，考虑增加超时时间"
        elif isinstance(error, socket.gaierror):
            return "检查域名是否正确，DNS服务器是否可用"
        elif isinstance(error, ConnectionRefusedError):
            return "检查目标服务器是否运行，端口是否正确"
        elif 'network is unreachable' in error_message:
            return "网络不可达，检查网络连接和路由"
        elif 'no route to host' in error_message:
            return "无法路由到主机，检查防火墙和网络配置"
        else:
            return "检查网络连接和服务器状态"
