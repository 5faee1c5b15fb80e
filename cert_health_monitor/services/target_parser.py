"""
检查目标解析服务
"""
import re
from datetime import timedelta
from typing import List
import logging

from ..models import CheckTarget, DEFAULT_PORT, DEFAULT_EXPIRY_THRESHOLD, MAX_EXPIRY_THRESHOLD_DAYS
from .error_handler import ConfigError


class TargetParser:
    """
    检查目标解析器

    每行一个目标，格式为 ``domain[:port] [threshold]``，threshold 为天数（可带 d 后缀）。
    空行和以 # 开头的行被忽略，行内 `` #`` 之后的内容视为注释。
    """

    COMMENT_MARKER = '#'

    def __init__(self, default_port: int = DEFAULT_PORT,
                 default_threshold: timedelta = DEFAULT_EXPIRY_THRESHOLD):
        """
        初始化目标解析器

        Args:
            default_port: 行内未指定端口时使用的端口
            default_threshold: 行内未指定阈值时使用的过期阈值
        """
        self.default_port = default_port
        self.default_threshold = default_threshold
        self.logger = logging.getLogger(__name__)

        # 域名格式验证正则表达式
        self.domain_pattern = re.compile(
            r'^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$'
        )
        self.threshold_pattern = re.compile(r'^(\d+)d?$', re.IGNORECASE)

    def parse(self, text: str) -> List[CheckTarget]:
        """
        解析配置文本

        Args:
            text: 原始配置文本

        Returns:
            List[CheckTarget]: 按配置顺序排列的检查目标

        Raises:
            ConfigError: 任意一行无法解析
        """
        targets = []

        for line_number, raw_line in enumerate(text.splitlines(), 1):
            line = self._strip_comment(raw_line).strip()
            if not line:
                continue

            targets.append(self._parse_line(line, line_number))

        self.logger.debug(f"解析到 {len(targets)} 个检查目标")
        return targets

    def validate_domain(self, domain: str) -> bool:
        """
        验证域名格式

        Args:
            domain: 要验证的域名

        Returns:
            bool: 域名是否有效
        """
        if not domain or not isinstance(domain, str):
            return False

        if len(domain) > 253:
            return False

        return bool(self.domain_pattern.match(domain))

    def _strip_comment(self, line: str) -> str:
        stripped = line.lstrip()
        if stripped.startswith(self.COMMENT_MARKER):
            return ""

        match = re.search(r'\s' + re.escape(self.COMMENT_MARKER), line)
        if match:
            return line[:match.start()]
        return line

    def _parse_line(self, line: str, line_number: int) -> CheckTarget:
        """
        解析单行配置

        Args:
            line: 去除注释和空白后的行
            line_number: 行号（从1开始）

        Returns:
            CheckTarget: 检查目标
        """
        fields = line.split()
        if len(fields) > 2:
            raise ConfigError(f"第 {line_number} 行字段过多: {line!r}")

        host_part = self._clean_host(fields[0])
        domain, port = self._split_port(host_part, line_number)

        if not self.validate_domain(domain):
            raise ConfigError(f"第 {line_number} 行域名格式无效: {fields[0]!r}")

        threshold = self.default_threshold
        if len(fields) == 2:
            threshold = self._parse_threshold(fields[1], line_number)

        return CheckTarget(domain=domain, port=port, expiry_threshold=threshold)

    def _clean_host(self, host: str) -> str:
        """
        清理域名格式（移除协议前缀和末尾斜杠）

        Args:
            host: 原始主机字段

        Returns:
            str: 清理后的主机字段
        """
        lowered = host.lower()
        if lowered.startswith('https://'):
            host = host[8:]
        elif lowered.startswith('http://'):
            host = host[7:]

        if host.endswith('/'):
            host = host[:-1]

        return host.lower()

    def _split_port(self, host: str, line_number: int):
        if ':' not in host:
            return host, self.default_port

        domain, _, port_text = host.rpartition(':')
        if not port_text.isdigit():
            raise ConfigError(f"第 {line_number} 行端口无效: {port_text!r}")

        port = int(port_text)
        if not 1 <= port <= 65535:
            raise ConfigError(f"第 {line_number} 行端口超出范围: {port}")

        return domain, port

    def _parse_threshold(self, value: str, line_number: int) -> timedelta:
        match = self.threshold_pattern.match(value)
        if not match:
            raise ConfigError(f"第 {line_number} 行过期阈值无效: {value!r}")

        days = int(match.group(1))
        if days > MAX_EXPIRY_THRESHOLD_DAYS:
            raise ConfigError(
                f"第 {line_number} 行过期阈值超出范围: {days} 天，最大 {MAX_EXPIRY_THRESHOLD_DAYS} 天"
            )
        return timedelta(days=days)
