"""FastAPI依赖注入函数

进程级的协作方在应用生命周期中构造并挂在 app.state 上，这里按请求取出
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from filebroker.features.files.store import FileMetadataStore
from filebroker.features.transfer.blob_store import BlobStore
from filebroker.features.transfer.service import TransferCredentialIssuer

from .config import Settings
from .database import get_db
from .identity import get_current_owner
from .redis import RedisManager


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_redis_manager(request: Request) -> RedisManager:
    return request.app.state.redis_manager


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_credential_issuer(request: Request) -> TransferCredentialIssuer:
    return request.app.state.credential_issuer


def get_file_store(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> FileMetadataStore:
    """构造绑定到当前所有者的文件元数据存储"""
    return FileMetadataStore(db, owner_id, settings)
