"""文件元数据存储模块

负责文件记录的创建、查询、分页列表和状态流转。
存储对象在构造时绑定到单个所有者，所有语句都以 owner_id 作为条件
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from filebroker.core.config import Settings
from filebroker.shared.clock import utcnow
from filebroker.shared.exceptions import (
    AlreadyDeletedError,
    ConflictError,
    InvalidCursorError,
    NotFoundError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from filebroker.shared.pagination import decode_cursor, encode_cursor

from .models import MAX_FILE_NAME_LENGTH, FileRecord, FileStatus


_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_DOT_RUNS = re.compile(r"\.{2,}")
MAX_SANITIZED_LENGTH = 255


def sanitize_file_name(file_name: str) -> str:
    """清理文件名，防止路径穿越和特殊字符

    白名单外的字符替换为下划线，连续的点合并为一个，最后截断到255个字符
    """
    cleaned = _UNSAFE_CHARS.sub("_", file_name)
    cleaned = _DOT_RUNS.sub(".", cleaned)
    return cleaned[:MAX_SANITIZED_LENGTH]


def build_storage_key(owner_id: str, file_id: str, file_name: str) -> str:
    """生成对象存储键名

    格式: owners/{owner_id}/uploads/{file_id}-{清理后的文件名}
    """
    owner_segment = sanitize_file_name(owner_id)
    return f"owners/{owner_segment}/uploads/{file_id}-{sanitize_file_name(file_name)}"


def validate_transfer_constraints(content_type: str, file_size: int, settings: Settings) -> None:
    """校验文件大小和类型

    Raises:
        PayloadTooLargeError: 文件超过最大允许大小
        UnsupportedMediaTypeError: 文件类型不在白名单内
    """
    if file_size > settings.max_file_size:
        raise PayloadTooLargeError(settings.max_file_size)

    if content_type not in settings.allowed_content_types:
        raise UnsupportedMediaTypeError(content_type, settings.allowed_content_types)


class FileMetadataStore:
    """单个所有者的文件元数据存储"""

    def __init__(self, session: AsyncSession, owner_id: str, settings: Settings) -> None:
        self.session = session
        self.owner_id = owner_id
        self.settings = settings

    async def create(self, file_name: str, content_type: str, file_size: int) -> FileRecord:
        """创建待上传的文件记录

        Args:
            file_name: 原始文件名
            content_type: 文件MIME类型
            file_size: 文件大小（字节）

        Returns:
            FileRecord: 状态为 pending 的新记录

        Raises:
            ValidationError: 文件名超过列宽
        """
        if len(file_name) > MAX_FILE_NAME_LENGTH:
            raise ValidationError(f"文件名长度不能超过{MAX_FILE_NAME_LENGTH}个字符")
        validate_transfer_constraints(content_type, file_size, self.settings)

        file_id = str(uuid.uuid4())
        record = FileRecord(
            owner_id=self.owner_id,
            file_id=file_id,
            file_name=file_name,
            content_type=content_type,
            file_size=file_size,
            storage_key=build_storage_key(self.owner_id, file_id, file_name),
            status=FileStatus.PENDING.value,
            created_at=utcnow(),
        )

        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)

        logger.info(f"文件记录已创建: {record.file_id} - {record.file_name}")
        return record

    async def get(self, file_id: str, include_deleted: bool = True) -> FileRecord:
        """按主键查询文件记录

        Args:
            file_id: 文件ID
            include_deleted: 为False时已删除的记录与不存在的记录同样处理

        Raises:
            NotFoundError: 记录不存在
        """
        record = await self.session.get(FileRecord, (self.owner_id, file_id))
        if record is None:
            raise NotFoundError("文件不存在")
        if not include_deleted and record.status == FileStatus.DELETED.value:
            raise NotFoundError("文件不存在")
        return record

    async def list(
        self,
        limit: int,
        cursor: Optional[str] = None
    ) -> tuple[list[FileRecord], Optional[str]]:
        """按创建时间倒序列出未删除的文件

        Args:
            limit: 每页数量
            cursor: 上一页返回的游标

        Returns:
            tuple: (记录列表, 下一页游标；没有更多数据时为None)
        """
        statement = select(FileRecord).where(
            FileRecord.owner_id == self.owner_id,
            FileRecord.status != FileStatus.DELETED.value,
        )

        if cursor:
            created_at, last_file_id = self._parse_cursor(cursor)
            statement = statement.where(
                or_(
                    col(FileRecord.created_at) < created_at,
                    and_(
                        col(FileRecord.created_at) == created_at,
                        col(FileRecord.file_id) < last_file_id,
                    ),
                )
            )

        statement = statement.order_by(
            col(FileRecord.created_at).desc(),
            col(FileRecord.file_id).desc(),
        ).limit(limit + 1)

        result = await self.session.execute(statement)
        records = list(result.scalars().all())

        next_cursor = None
        if len(records) > limit:
            records = records[:limit]
            last = records[-1]
            next_cursor = encode_cursor({
                "created_at": last.created_at.isoformat(),
                "file_id": last.file_id,
            })

        return records, next_cursor

    @staticmethod
    def _parse_cursor(cursor: str) -> tuple[datetime, str]:
        position = decode_cursor(cursor)
        try:
            return datetime.fromisoformat(position["created_at"]), str(position["file_id"])
        except (KeyError, TypeError, ValueError):
            raise InvalidCursorError()

    async def soft_delete(self, file_id: str) -> FileRecord:
        """软删除文件记录

        重复删除会被拒绝，而不是静默成功

        Raises:
            NotFoundError: 记录不存在
            AlreadyDeletedError: 记录已处于 deleted 状态
        """
        record = await self.get(file_id)
        if record.status == FileStatus.DELETED.value:
            raise AlreadyDeletedError()

        now = utcnow()
        record.status = FileStatus.DELETED.value
        record.deleted_at = now
        record.updated_at = now

        await self.session.commit()
        await self.session.refresh(record)

        logger.info(f"文件记录已软删除: {file_id}")
        return record

    async def mark_uploaded(self, file_id: str) -> FileRecord:
        """将文件记录从 pending 流转为 uploaded

        Raises:
            NotFoundError: 记录不存在
            AlreadyDeletedError: 记录已删除
            ConflictError: 记录不处于 pending 状态
        """
        record = await self.get(file_id)
        if record.status == FileStatus.DELETED.value:
            raise AlreadyDeletedError()
        if record.status != FileStatus.PENDING.value:
            raise ConflictError(f"文件状态为 {record.status}，无法标记为已上传")

        record.status = FileStatus.UPLOADED.value
        record.updated_at = utcnow()

        await self.session.commit()
        await self.session.refresh(record)

        logger.info(f"文件已标记为上传完成: {file_id}")
        return record
