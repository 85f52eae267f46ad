"""审计日志路由模块

提供审计日志查询和客户端事件提交接口
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from filebroker.core.config import Settings
from filebroker.core.database import get_db
from filebroker.core.dependencies import get_app_settings, get_redis_manager
from filebroker.core.identity import CallerContext, get_caller_context, get_current_owner
from filebroker.core.redis import RedisManager
from filebroker.shared.exceptions import (
    BaseAPIException,
    InternalServerError,
    MissingFieldError,
)
from filebroker.shared.pagination import resolve_page_size
from filebroker.shared.schemas import APIResponse

from .ledger import AuditLedger, parse_action
from .models import (
    AuditEntryRead,
    AuditEntrySummary,
    AuditEventRequest,
    AuditEventResponse,
    AuditQueryResponse,
)


router = APIRouter()


def get_audit_ledger(
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    redis_manager: RedisManager = Depends(get_redis_manager),
) -> AuditLedger:
    """构造绑定到当前所有者的审计账本"""
    return AuditLedger(db, owner_id, redis_manager)


@router.get(
    "",
    response_model=APIResponse[AuditQueryResponse],
    summary="查询审计日志",
    description="按时间倒序查询当前用户的审计日志，支持时间范围、文件和动作过滤以及游标分页"
)
async def query_audit_logs(
    limit: Optional[str] = Query(default=None, description="每页数量，最大100"),
    start_date: Optional[str] = Query(default=None, description="起始时间（ISO-8601，包含）"),
    end_date: Optional[str] = Query(default=None, description="结束时间（ISO-8601，包含）"),
    file_id: Optional[str] = Query(default=None, description="按文件ID过滤"),
    action: Optional[str] = Query(default=None, description="按动作过滤"),
    cursor: Optional[str] = Query(default=None, description="上一页返回的 next_cursor"),
    ledger: AuditLedger = Depends(get_audit_ledger),
    settings: Settings = Depends(get_app_settings),
) -> APIResponse[AuditQueryResponse]:
    try:
        page_size = resolve_page_size(limit, settings.audit_page_size, settings.max_page_size)
        entries, next_cursor = await ledger.query(
            page_size,
            start_date=start_date,
            end_date=end_date,
            file_id=file_id,
            action=action,
            cursor=cursor,
        )

        items = [AuditEntryRead.from_entry(entry) for entry in entries]

        return APIResponse(
            success=True,
            data=AuditQueryResponse(entries=items, count=len(items), next_cursor=next_cursor),
            message=f"获取审计日志成功，共{len(items)}条",
            code=200
        )

    except BaseAPIException:
        raise
    except Exception as e:
        logger.exception(f"查询审计日志失败: {e}")
        raise InternalServerError()


@router.post(
    "",
    response_model=APIResponse[AuditEventResponse],
    status_code=201,
    summary="提交审计事件",
    description="记录客户端发起的文件访问事件，自动附加调用方IP和User-Agent"
)
async def log_audit_event(
    request: AuditEventRequest,
    ledger: AuditLedger = Depends(get_audit_ledger),
    context: CallerContext = Depends(get_caller_context),
) -> APIResponse[AuditEventResponse]:
    """提交审计事件

    这里的写入是请求本身的目的，失败会返回 Internal 错误

    Raises:
        MissingFieldError: 缺少 file_id 或 action
        InvalidActionError: 动作不在枚举内
    """
    try:
        missing = [
            name for name, value in (("file_id", request.file_id), ("action", request.action))
            if not value
        ]
        if missing:
            raise MissingFieldError(missing)

        action = parse_action(request.action)

        entry = await ledger.append(
            request.file_id,
            action,
            request.metadata,
            context.request_metadata(),
        )

        return APIResponse(
            success=True,
            data=AuditEventResponse(
                message="审计日志已记录",
                entry=AuditEntrySummary(
                    owner_id=entry.owner_id,
                    timestamp=entry.timestamp,
                    file_id=entry.file_id,
                    action=entry.action,
                ),
            ),
            message="审计日志已记录",
            code=201
        )

    except BaseAPIException:
        raise
    except Exception as e:
        logger.exception(f"记录审计日志失败: {e}")
        raise InternalServerError()
