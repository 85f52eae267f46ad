"""上传完成事件扩展点

当前没有任何机制在对象写入后回调本服务，文件状态停留在 pending。
对象存储通知（例如 S3 事件）可以通过实现 UploadEventListener 接入
"""

from typing import Protocol

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filebroker.core.config import Settings

from .models import FileRecord
from .store import FileMetadataStore


class UploadEventListener(Protocol):
    """对象上传完成的回调接口"""

    async def on_upload_completed(self, owner_id: str, file_id: str) -> FileRecord:
        ...


class MetadataUploadListener:
    """将上传完成事件应用到元数据存储"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> None:
        self.session_factory = session_factory
        self.settings = settings

    async def on_upload_completed(self, owner_id: str, file_id: str) -> FileRecord:
        async with self.session_factory() as session:
            store = FileMetadataStore(session, owner_id, self.settings)
            record = await store.mark_uploaded(file_id)

        logger.info(f"收到上传完成事件: {owner_id}/{file_id}")
        return record
