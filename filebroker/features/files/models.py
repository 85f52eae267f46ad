"""文件元数据数据模型

定义文件生命周期记录及上传、下载、列表、删除接口的请求响应模型
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel


class FileStatus(str, Enum):
    """文件生命周期状态

    pending -> uploaded -> deleted，deleted 为终态
    """

    PENDING = "pending"
    UPLOADED = "uploaded"
    DELETED = "deleted"


MAX_FILE_NAME_LENGTH = 1024


class FileRecord(SQLModel, table=True):
    """文件记录表

    以 (owner_id, file_id) 为联合主键，所有读写都限定在所有者分区内
    """

    __tablename__ = "file_records"
    __table_args__ = (
        Index("ix_file_records_owner_created", "owner_id", "created_at"),
    )

    owner_id: str = Field(primary_key=True, max_length=255, description="所有者标识")
    file_id: str = Field(primary_key=True, max_length=36, description="文件ID（UUID）")
    file_name: str = Field(max_length=MAX_FILE_NAME_LENGTH, description="用户提供的原始文件名")
    content_type: str = Field(max_length=255, description="文件MIME类型")
    file_size: int = Field(description="文件大小（字节）")
    storage_key: str = Field(max_length=1024, unique=True, description="对象存储键名")
    status: str = Field(
        default=FileStatus.PENDING.value,
        max_length=20,
        description="生命周期状态: pending, uploaded, deleted"
    )
    # 显式声明为不带时区的列，数据库中统一保存UTC时间
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=False), nullable=False),
        description="创建时间"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=False), nullable=True),
        description="更新时间"
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=False), nullable=True),
        description="删除时间"
    )


class FileRecordRead(SQLModel):
    """文件记录响应模型"""

    file_id: str
    file_name: str
    content_type: str
    file_size: int
    status: FileStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


class FileListResponse(SQLModel):
    """文件列表响应模型"""

    files: list[FileRecordRead]
    count: int
    next_cursor: Optional[str] = None


class UploadUrlRequest(SQLModel):
    """上传凭证请求模型

    字段在模式层面可选，缺失时由处理器返回 MissingField
    """

    file_name: Optional[str] = Field(default=None, description="文件名")
    content_type: Optional[str] = Field(default=None, description="文件MIME类型")
    file_size: Optional[int] = Field(default=None, description="文件大小（字节）")


class UploadUrlResponse(SQLModel):
    """上传凭证响应模型"""

    upload_url: str = Field(description="预签名上传URL")
    file_id: str = Field(description="文件ID")
    storage_key: str = Field(description="文件存储键名")
    expires_in: int = Field(description="URL过期时间（秒）")


class DownloadUrlRequest(SQLModel):
    """下载凭证请求模型"""

    file_id: Optional[str] = Field(default=None, description="文件ID")


class DownloadUrlResponse(SQLModel):
    """下载凭证响应模型"""

    download_url: str = Field(description="预签名下载URL")
    file_name: str
    content_type: str
    file_size: int
    expires_in: int = Field(description="URL过期时间（秒）")


class DeleteFileRequest(SQLModel):
    """删除文件请求模型"""

    file_id: Optional[str] = Field(default=None, description="文件ID")
    hard_delete: bool = Field(default=False, description="客户端请求的删除方式，仅记录到审计日志")


class DeleteFileResponse(SQLModel):
    """删除文件响应模型"""

    message: str
    file_id: str
    file_name: str
