"""FastAPI应用主入口

配置应用实例、中间件、路由和生命周期事件
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from filebroker.core.config import Settings, get_settings
from filebroker.core.database import DatabaseManager
from filebroker.core.identity import IdentityResolver
from filebroker.core.redis import RedisManager
from filebroker.features.audit.router import router as audit_router
from filebroker.features.files.router import router as files_router
from filebroker.features.transfer.blob_store import BlobStore, S3BlobStore
from filebroker.features.transfer.service import TransferCredentialIssuer
from filebroker.shared.exceptions import BaseAPIException
from filebroker.shared.schemas import APIResponse, HealthCheckResponse


def _build_lifespan(settings: Settings, blob_store: Optional[BlobStore] = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """应用生命周期管理

        启动时构造数据库、Redis、对象存储等进程级协作方并挂到 app.state，
        关闭时清理资源
        """
        logger.info("正在启动FastAPI应用...")

        try:
            db_manager = DatabaseManager(settings)
            redis_manager = RedisManager(settings)
            store = blob_store or S3BlobStore(settings)

            app.state.settings = settings
            app.state.db_manager = db_manager
            app.state.redis_manager = redis_manager
            app.state.blob_store = store
            app.state.identity_resolver = IdentityResolver()
            app.state.credential_issuer = TransferCredentialIssuer(store, settings)

            if settings.run_migrations_on_startup:
                try:
                    await db_manager.run_migrations()
                except Exception as migration_error:
                    logger.warning(f"数据库迁移失败: {migration_error}")
                    # 仅开发环境允许退回 create_all
                    if settings.debug:
                        await db_manager.create_tables()
                    else:
                        logger.error("生产环境下数据库迁移失败，应用启动终止")
                        raise

            logger.info("应用启动完成")

        except Exception as e:
            logger.error(f"应用启动失败: {e}")
            raise

        yield

        logger.info("正在关闭FastAPI应用...")

        try:
            await redis_manager.close()
            await db_manager.close()
            logger.info("应用关闭完成")
        except Exception as e:
            logger.error(f"应用关闭时出错: {e}")

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    blob_store: Optional[BlobStore] = None
) -> FastAPI:
    """创建FastAPI应用

    Args:
        settings: 应用配置，为空时从环境变量加载
        blob_store: 对象存储实现，为空时根据配置创建S3客户端

    Returns:
        FastAPI: 应用实例
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="直传对象存储的文件传输服务：签发限时凭证、管理文件生命周期并记录审计日志",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=_build_lifespan(settings, blob_store)
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
        """业务异常处理器

        将自定义异常转换为统一的API响应格式，extra 放入 data 字段
        """
        if exc.status_code >= 500:
            logger.error(f"API异常: {exc.status_code} - {exc.error_type}")
        else:
            logger.warning(f"API异常: {exc.status_code} - {exc.error_type}: {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=APIResponse(
                success=False,
                data=exc.extra,
                message=exc.detail,
                code=exc.status_code,
                error_type=exc.error_type
            ).model_dump(),
            headers=exc.headers
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """HTTP异常处理器"""
        logger.warning(f"HTTP异常: {exc.status_code} - {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=APIResponse(
                success=False,
                data=None,
                message=str(exc.detail),
                code=exc.status_code,
                error_type="HTTPException"
            ).model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """请求体或查询参数校验失败时同样返回统一格式"""
        logger.warning(f"请求参数校验失败: {request.url.path}")

        return JSONResponse(
            status_code=422,
            content=APIResponse(
                success=False,
                data={"errors": jsonable_encoder(exc.errors())},
                message="请求参数校验失败",
                code=422,
                error_type="ValidationError"
            ).model_dump()
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """通用异常处理器

        处理未捕获的异常，避免暴露内部错误信息
        """
        logger.error(f"未处理的异常: {type(exc).__name__}: {str(exc)}")

        return JSONResponse(
            status_code=500,
            content=APIResponse(
                success=False,
                data=None,
                message="服务器内部错误" if not settings.debug else str(exc),
                code=500,
                error_type="Internal"
            ).model_dump()
        )

    @app.get(
        "/health",
        response_model=APIResponse[HealthCheckResponse],
        summary="健康检查",
        description="检查数据库、Redis和对象存储的状态"
    )
    async def health_check(request: Request) -> JSONResponse:
        """健康检查端点

        Redis 为可选组件，未配置时不影响整体状态
        """
        state = request.app.state
        database_healthy = await state.db_manager.ping()

        redis_healthy = False
        if state.redis_manager.configured:
            redis_healthy = await state.redis_manager.ping()
        else:
            logger.info("Redis未配置，跳过健康检查")

        storage_healthy = bool(state.blob_store.configured)

        overall_healthy = database_healthy and storage_healthy and (
            redis_healthy or not state.redis_manager.configured
        )

        health_data = HealthCheckResponse(
            status="healthy" if overall_healthy else "unhealthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=settings.app_version,
            database=database_healthy,
            redis=redis_healthy,
            storage=storage_healthy
        )

        status_code = 200 if overall_healthy else 503
        return JSONResponse(
            status_code=status_code,
            content=APIResponse(
                success=overall_healthy,
                data=health_data,
                message="健康检查完成",
                code=status_code
            ).model_dump()
        )

    @app.get(
        "/",
        response_model=APIResponse[dict],
        summary="API信息",
        description="获取API基本信息"
    )
    async def root() -> APIResponse[dict]:
        return APIResponse(
            success=True,
            data={
                "name": settings.app_name,
                "version": settings.app_version,
                "docs_url": "/docs",
                "health_url": "/health"
            },
            message="欢迎使用文件传输API",
            code=200
        )

    app.include_router(files_router, prefix="/api/files", tags=["文件"])
    app.include_router(audit_router, prefix="/api/audit", tags=["审计日志"])

    return app


app = create_app()
