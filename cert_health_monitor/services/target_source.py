"""
检查目标配置来源
"""
import os
from typing import Optional, Tuple
from urllib.parse import urlparse
import logging

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from ..interfaces import TargetSourceInterface
from .error_handler import ConfigError, TargetSourceError


def parse_s3_location(location: str) -> Tuple[str, str]:
    """
    解析S3配置位置

    Args:
        location: s3://bucket/key

    Returns:
        Tuple[str, str]: (bucket, key)

    Raises:
        ConfigError: 位置格式无效
    """
    parsed = urlparse(location or "")
    key = parsed.path.lstrip('/')

    if parsed.scheme != 's3' or not parsed.netloc or not key:
        raise ConfigError(f"无法解析S3配置位置: {location!r}")

    return parsed.netloc, key


class StaticTargetSource(TargetSourceInterface):
    """内联配置文本"""

    def __init__(self, text: str):
        self.text = text

    def read_text(self) -> str:
        return self.text


class S3TargetSource(TargetSourceInterface):
    """从S3对象读取配置文本"""

    def __init__(self, location: str, region_name: Optional[str] = None, s3_client=None):
        """
        初始化S3配置来源

        Args:
            location: s3://bucket/key
            region_name: AWS区域名称，如果为None则从环境变量读取
            s3_client: 预先创建的S3客户端
        """
        self.bucket, self.key = parse_s3_location(location)
        self.location = location
        self.region_name = region_name or os.getenv('AWS_REGION', 'us-east-1')
        self.logger = logging.getLogger(__name__)
        self.s3_client = s3_client or boto3.client('s3', region_name=self.region_name)

    def read_text(self) -> str:
        """
        读取S3对象内容

        Returns:
            str: UTF-8 解码后的配置文本

        Raises:
            TargetSourceError: 对象无法读取或不是UTF-8文本
        """
        self.logger.info(f"读取检查目标配置，bucket: {self.bucket}, key: {self.key}")

        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=self.key)
            content = response['Body'].read()
        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error'].get('Message', '')
            self.logger.error(f"读取S3配置失败 - {error_code}: {error_message}")
            raise TargetSourceError(f"无法读取 {self.location}: {error_code}")
        except BotoCoreError as e:
            self.logger.error(f"读取S3配置时发生错误: {str(e)}")
            raise TargetSourceError(f"无法读取 {self.location}: {str(e)}")

        try:
            return content.decode('utf-8')
        except UnicodeDecodeError as e:
            raise TargetSourceError(f"{self.location} 不是有效的UTF-8文本: {str(e)}")
