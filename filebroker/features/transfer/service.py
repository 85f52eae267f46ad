"""传输凭证签发模块

创建文件记录并向对象存储申请限时、限定范围的上传或下载凭证
"""

from dataclasses import dataclass

from loguru import logger

from filebroker.core.config import Settings
from filebroker.features.audit.models import AuditAction
from filebroker.features.audit.recorder import AuditRecorder
from filebroker.features.files.store import FileMetadataStore
from filebroker.shared.exceptions import InternalServerError

from .blob_store import BlobStore


@dataclass
class UploadCredential:
    url: str
    file_id: str
    storage_key: str
    expires_in: int


@dataclass
class DownloadCredential:
    url: str
    file_name: str
    content_type: str
    file_size: int
    expires_in: int


class TransferCredentialIssuer:
    """传输凭证签发器

    凭证有效期由配置决定（默认3600秒）
    """

    def __init__(self, blob_store: BlobStore, settings: Settings) -> None:
        self.blob_store = blob_store
        self.ttl = settings.credential_ttl

    async def issue_upload_credential(
        self,
        store: FileMetadataStore,
        recorder: AuditRecorder,
        file_name: str,
        content_type: str,
        file_size: int
    ) -> UploadCredential:
        """签发上传凭证

        流程：创建文件记录 -> 申请预签名上传URL -> 记录审计日志。
        记录创建失败时不申请凭证；凭证申请失败时 pending 记录保留，不做回滚

        Raises:
            PayloadTooLargeError: 文件过大
            UnsupportedMediaTypeError: 文件类型不允许
            InternalServerError: 对象存储签发失败
        """
        record = await store.create(file_name, content_type, file_size)

        try:
            url = await self.blob_store.presign_put(
                record.storage_key,
                record.content_type,
                record.file_size,
                self.ttl
            )
        except Exception as e:
            logger.error(f"上传凭证签发失败，文件记录 {record.file_id} 保留为 pending: {e}")
            raise InternalServerError()

        recorder.record(record.file_id, AuditAction.UPLOAD, {
            "fileName": record.file_name,
            "contentType": record.content_type,
            "fileSize": record.file_size,
            "storageKey": record.storage_key,
        })

        return UploadCredential(
            url=url,
            file_id=record.file_id,
            storage_key=record.storage_key,
            expires_in=self.ttl,
        )

    async def issue_download_credential(
        self,
        store: FileMetadataStore,
        recorder: AuditRecorder,
        file_id: str
    ) -> DownloadCredential:
        """签发下载凭证

        已删除的文件与不存在的文件返回相同的 NotFound

        Raises:
            NotFoundError: 文件不存在或已删除
            InternalServerError: 对象存储签发失败
        """
        record = await store.get(file_id, include_deleted=False)

        try:
            url = await self.blob_store.presign_get(record.storage_key, record.file_name, self.ttl)
        except Exception as e:
            logger.error(f"下载凭证签发失败 {record.file_id}: {e}")
            raise InternalServerError()

        recorder.record(record.file_id, AuditAction.DOWNLOAD, {
            "fileName": record.file_name,
            "storageKey": record.storage_key,
        })

        return DownloadCredential(
            url=url,
            file_name=record.file_name,
            content_type=record.content_type,
            file_size=record.file_size,
            expires_in=self.ttl,
        )
