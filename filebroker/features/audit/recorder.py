"""审计记录分发模块

作为其他操作副作用的审计写入通过后台任务分发：
不阻塞响应，失败只记录日志，不影响被审计的操作
"""

from typing import Any, Optional

from fastapi import BackgroundTasks, Depends, Request
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filebroker.core.identity import CallerContext, get_caller_context, get_current_owner
from filebroker.core.redis import RedisManager

from .ledger import AuditLedger
from .models import AuditAction


class AuditRecorder:
    """绑定到单个请求的审计分发器"""

    def __init__(
        self,
        owner_id: str,
        context: CallerContext,
        background_tasks: BackgroundTasks,
        session_factory: async_sessionmaker[AsyncSession],
        redis_manager: Optional[RedisManager] = None
    ) -> None:
        self.owner_id = owner_id
        self.context = context
        self.background_tasks = background_tasks
        self.session_factory = session_factory
        self.redis_manager = redis_manager

    def record(
        self,
        file_id: str,
        action: AuditAction,
        metadata: Optional[dict[str, Any]] = None
    ) -> None:
        """分发一条审计记录，立即返回"""
        self.background_tasks.add_task(
            self.append_safely,
            file_id,
            action,
            dict(metadata or {}),
        )

    async def append_safely(
        self,
        file_id: str,
        action: AuditAction,
        metadata: dict[str, Any]
    ) -> None:
        """在独立会话中写入审计记录，吞掉并记录所有异常"""
        try:
            async with self.session_factory() as session:
                ledger = AuditLedger(session, self.owner_id, self.redis_manager)
                await ledger.append(file_id, action, metadata, self.context.request_metadata())
        except Exception as e:
            logger.error(f"记录审计日志失败 ({action} {file_id}): {type(e).__name__}: {e}")


def get_audit_recorder(
    request: Request,
    background_tasks: BackgroundTasks,
    owner_id: str = Depends(get_current_owner),
    context: CallerContext = Depends(get_caller_context),
) -> AuditRecorder:
    """FastAPI依赖：构造当前请求的审计分发器"""
    return AuditRecorder(
        owner_id=owner_id,
        context=context,
        background_tasks=background_tasks,
        session_factory=request.app.state.db_manager.async_session,
        redis_manager=request.app.state.redis_manager,
    )
