"""审计账本模块

只提供追加和查询两种操作，没有更新或删除
"""

import time
from typing import Any, Optional, Union

from loguru import logger
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from filebroker.core.redis import RedisManager
from filebroker.shared.clock import iso_timestamp, utcnow
from filebroker.shared.exceptions import InvalidActionError, InvalidCursorError, ValidationError
from filebroker.shared.pagination import decode_cursor, encode_cursor

from .models import MAX_FILE_ID_LENGTH, AuditAction, AuditEntry


SEQUENCE_COUNTER = "audit"


def parse_action(action: Union[str, AuditAction]) -> AuditAction:
    """校验审计动作

    Raises:
        InvalidActionError: 动作不在枚举内
    """
    try:
        return AuditAction(action)
    except ValueError:
        raise InvalidActionError(str(action), AuditAction.values())


class AuditLedger:
    """单个所有者的审计账本"""

    def __init__(
        self,
        session: AsyncSession,
        owner_id: str,
        redis_manager: Optional[RedisManager] = None
    ) -> None:
        self.session = session
        self.owner_id = owner_id
        self.redis_manager = redis_manager

    async def _next_sequence(self) -> int:
        # Redis 计数器跨进程单调；不可用时退回纳秒时钟
        if self.redis_manager is not None:
            sequence = await self.redis_manager.next_sequence(SEQUENCE_COUNTER)
            if sequence is not None:
                return sequence
        return time.time_ns()

    async def append(
        self,
        file_id: str,
        action: Union[str, AuditAction],
        metadata: Optional[dict[str, Any]] = None,
        request_meta: Optional[dict[str, Any]] = None
    ) -> AuditEntry:
        """追加一条审计记录

        Args:
            file_id: 目标文件ID
            action: 审计动作
            metadata: 自由格式上下文
            request_meta: 请求上下文（IP、User-Agent），覆盖 metadata 中的同名键

        Returns:
            AuditEntry: 写入的审计条目

        Raises:
            InvalidActionError: 动作不在枚举内
            ValidationError: 文件ID超过列宽
        """
        audit_action = parse_action(action)
        if len(file_id) > MAX_FILE_ID_LENGTH:
            raise ValidationError(f"文件ID长度不能超过{MAX_FILE_ID_LENGTH}个字符")

        details = dict(metadata or {})
        if request_meta:
            details.update(request_meta)

        entry = AuditEntry(
            owner_id=self.owner_id,
            timestamp=iso_timestamp(utcnow()),
            sequence=await self._next_sequence(),
            file_id=file_id,
            action=audit_action.value,
            details=details,
        )

        self.session.add(entry)
        await self.session.commit()

        logger.info(f"审计日志已记录: {audit_action.value} {file_id}")
        return entry

    async def query(
        self,
        limit: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        file_id: Optional[str] = None,
        action: Optional[str] = None,
        cursor: Optional[str] = None
    ) -> tuple[list[AuditEntry], Optional[str]]:
        """按时间倒序查询审计记录

        start_date 和 end_date 构成闭区间，可以只给出一端；
        与存储的时间戳按字符串比较

        Returns:
            tuple: (审计条目列表, 下一页游标；没有更多数据时为None)
        """
        statement = select(AuditEntry).where(AuditEntry.owner_id == self.owner_id)

        if start_date:
            statement = statement.where(col(AuditEntry.timestamp) >= start_date)
        if end_date:
            statement = statement.where(col(AuditEntry.timestamp) <= end_date)

        if file_id:
            statement = statement.where(AuditEntry.file_id == file_id)
        if action:
            statement = statement.where(AuditEntry.action == action)

        if cursor:
            last_timestamp, last_sequence = self._parse_cursor(cursor)
            statement = statement.where(
                or_(
                    col(AuditEntry.timestamp) < last_timestamp,
                    and_(
                        col(AuditEntry.timestamp) == last_timestamp,
                        col(AuditEntry.sequence) < last_sequence,
                    ),
                )
            )

        statement = statement.order_by(
            col(AuditEntry.timestamp).desc(),
            col(AuditEntry.sequence).desc(),
        ).limit(limit + 1)

        result = await self.session.execute(statement)
        entries = list(result.scalars().all())

        next_cursor = None
        if len(entries) > limit:
            entries = entries[:limit]
            last = entries[-1]
            next_cursor = encode_cursor({"timestamp": last.timestamp, "sequence": last.sequence})

        return entries, next_cursor

    @staticmethod
    def _parse_cursor(cursor: str) -> tuple[str, int]:
        position = decode_cursor(cursor)
        try:
            return str(position["timestamp"]), int(position["sequence"])
        except (KeyError, TypeError, ValueError):
            raise InvalidCursorError()
