"""审计日志数据模型

审计条目一经写入不可修改、不可删除
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import JSON, BigInteger, Column
from sqlmodel import Field, SQLModel


MAX_FILE_ID_LENGTH = 255


class AuditAction(str, Enum):
    """审计动作枚举"""

    VIEW = "view"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    DELETE = "delete"
    SHARE = "share"
    ACCESS_ATTEMPT = "access_attempt"

    @classmethod
    def values(cls) -> list[str]:
        return [action.value for action in cls]


class AuditEntry(SQLModel, table=True):
    """文件审计表

    主键 (owner_id, timestamp, sequence)；sequence 在时间戳相同时作为确定的次级排序键
    """

    __tablename__ = "file_audit"

    owner_id: str = Field(primary_key=True, max_length=255, description="所有者标识")
    timestamp: str = Field(primary_key=True, max_length=32, description="ISO-8601 UTC时间戳")
    sequence: int = Field(
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
        description="同一时间戳内的单调序号"
    )
    file_id: str = Field(max_length=MAX_FILE_ID_LENGTH, index=True, description="目标文件ID，文件不必仍然存在")
    action: str = Field(max_length=32, description="审计动作")
    details: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
        description="自由格式的上下文信息"
    )


class AuditEntryRead(BaseModel):
    """审计条目响应模型"""

    owner_id: str
    timestamp: str
    file_id: str
    action: str
    metadata: dict[str, Any] = PydanticField(default_factory=dict)

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> "AuditEntryRead":
        return cls(
            owner_id=entry.owner_id,
            timestamp=entry.timestamp,
            file_id=entry.file_id,
            action=entry.action,
            metadata=entry.details or {},
        )


class AuditEntrySummary(BaseModel):
    """写入审计条目后返回的摘要"""

    owner_id: str
    timestamp: str
    file_id: str
    action: str


class AuditQueryResponse(BaseModel):
    """审计日志查询响应模型"""

    entries: list[AuditEntryRead]
    count: int
    next_cursor: Optional[str] = None


class AuditEventRequest(BaseModel):
    """客户端提交审计事件的请求模型"""

    file_id: Optional[str] = None
    action: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class AuditEventResponse(BaseModel):
    """客户端提交审计事件的响应模型"""

    message: str
    entry: AuditEntrySummary
