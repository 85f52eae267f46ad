"""对象存储模块

提供S3兼容对象存储（AWS S3、Cloudflare R2、MinIO）的预签名URL生成和对象删除
"""

import asyncio
import re
from typing import Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from filebroker.core.config import Settings


_UNSAFE_HEADER_CHARS = re.compile(r'[^\x20-\x7e]|["\\]')


def build_content_disposition(file_name: str) -> str:
    """生成下载用的 Content-Disposition

    filename 只保留可打印ASCII并去掉引号和反斜杠；
    原始名称不同时再附加 RFC 5987 的 filename* 形式，中文文件名由此保留
    """
    fallback = _UNSAFE_HEADER_CHARS.sub("_", file_name) or "download"
    disposition = f'attachment; filename="{fallback}"'
    if fallback != file_name:
        disposition += f"; filename*=UTF-8''{quote(file_name, safe='')}"
    return disposition


class BlobStore(Protocol):
    """对象存储协作方接口"""

    configured: bool

    async def presign_put(self, key: str, content_type: str, content_length: int, ttl: int) -> str:
        ...

    async def presign_get(self, key: str, disposition_filename: str, ttl: int) -> str:
        ...

    async def delete(self, key: str) -> bool:
        ...


class S3BlobStore:
    """基于boto3的对象存储

    客户端创建开销较大，每个进程在应用生命周期内只构造一次
    """

    def __init__(self, settings: Settings, client: Optional[object] = None) -> None:
        """初始化对象存储

        Args:
            settings: 应用配置
            client: 预先构造的boto3客户端，为空时根据配置创建
        """
        self.bucket_name = settings.bucket_name
        self.configured = bool(settings.bucket_name and settings.aws_access_key_id and settings.aws_secret_access_key)

        if client is None:
            config = settings.s3_config
            client = boto3.client(config.pop("service_name"), **config)
        self.s3_client = client

        logger.info(f"对象存储已初始化，存储桶: {self.bucket_name}，端点: {settings.endpoint_url or 'AWS默认'}")

    async def presign_put(self, key: str, content_type: str, content_length: int, ttl: int) -> str:
        """生成预签名上传URL

        URL限定到指定的键名、内容类型和内容长度

        Raises:
            ClientError: 存储服务错误
            BotoCoreError: 凭证或配置错误
        """
        try:
            presigned_url = self.s3_client.generate_presigned_url(
                'put_object',
                Params={
                    'Bucket': self.bucket_name,
                    'Key': key,
                    'ContentType': content_type,
                    'ContentLength': content_length,
                },
                ExpiresIn=ttl
            )

            logger.info(f"预签名上传URL已生成: {key}")
            return presigned_url

        except (ClientError, BotoCoreError) as e:
            logger.error(f"生成预签名上传URL失败: {e}")
            raise

    async def presign_get(self, key: str, disposition_filename: str, ttl: int) -> str:
        """生成预签名下载URL

        通过 ResponseContentDisposition 让浏览器以原始文件名保存，
        文件名经过转义，不会破坏响应头

        Raises:
            ClientError: 存储服务错误
            BotoCoreError: 凭证或配置错误
        """
        try:
            presigned_url = self.s3_client.generate_presigned_url(
                'get_object',
                Params={
                    'Bucket': self.bucket_name,
                    'Key': key,
                    'ResponseContentDisposition': build_content_disposition(disposition_filename),
                },
                ExpiresIn=ttl
            )

            logger.info(f"预签名下载URL已生成: {key}")
            return presigned_url

        except (ClientError, BotoCoreError) as e:
            logger.error(f"生成预签名下载URL失败: {e}")
            raise

    async def delete(self, key: str) -> bool:
        """删除对象存储中的文件

        Returns:
            bool: 是否删除成功
        """
        try:
            await asyncio.get_event_loop().run_in_executor(
                None,
                lambda: self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
            )
            logger.info(f"对象已删除: {key}")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"删除对象失败 {key}: {e}")
            return False
