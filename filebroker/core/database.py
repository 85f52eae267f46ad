"""数据库连接模块

提供SQLAlchemy异步数据库连接和会话管理
"""

import asyncio
from typing import AsyncGenerator

from alembic import command
from alembic.config import Config
from fastapi import Request
from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from .config import Settings


class DatabaseManager:
    """数据库管理器

    管理异步数据库引擎和会话工厂。
    每个进程在应用生命周期内构造一次，通过 app.state 注入到各个请求
    """

    def __init__(self, settings: Settings) -> None:
        """初始化数据库管理器

        创建异步引擎和会话工厂，配置连接池参数

        Args:
            settings: 应用配置

        Raises:
            RuntimeError: 未配置数据库URL时
        """
        url = settings.async_database_url
        if not url:
            raise RuntimeError("数据库URL未配置，无法初始化数据库管理器")

        engine_options: dict = {"echo": settings.debug}
        if not url.startswith("sqlite"):
            engine_options.update(
                pool_size=10,  # 连接池大小
                max_overflow=20,  # 最大溢出连接数
                pool_pre_ping=True,  # 连接前ping检查
                pool_recycle=3600,  # 连接回收时间（秒）
            )

        self.engine = create_async_engine(url, **engine_options)

        self.async_session = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,  # 提交后不过期对象
            autoflush=True,
        )

        logger.info(f"数据库引擎已初始化: {url.split('@')[1] if '@' in url else url.split('://')[0]}")

    async def run_migrations(self) -> None:
        """运行数据库迁移

        使用 Alembic 将数据库升级到最新版本
        """
        try:
            # Alembic 是同步的，放到执行器中运行
            await asyncio.get_event_loop().run_in_executor(
                None, self._run_alembic_upgrade
            )
            logger.info("数据库迁移完成")
        except Exception as e:
            logger.error(f"数据库迁移失败: {e}")
            raise

    def _run_alembic_upgrade(self) -> None:
        alembic_cfg = Config("alembic.ini")
        command.upgrade(alembic_cfg, "head")

    async def create_tables(self) -> None:
        """直接创建所有表

        用于开发和测试环境，或在 Alembic 迁移失败时作为备用方法。
        不支持增量变更
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.warning("已通过 metadata.create_all 创建数据库表")

    async def ping(self) -> bool:
        """检查数据库连接状态

        Returns:
            bool: 连接是否正常
        """
        try:
            async with self.async_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"数据库健康检查失败: {e}")
            return False

    async def close(self) -> None:
        """关闭数据库连接

        在应用关闭时调用，清理资源
        """
        await self.engine.dispose()
        logger.info("数据库连接已关闭")

    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """获取数据库会话

        出错时回滚并继续抛出异常

        Yields:
            AsyncSession: 数据库会话
        """
        async with self.async_session() as session:
            try:
                yield session
            except Exception as e:
                await session.rollback()
                logger.error(f"数据库会话错误: {e}")
                raise


def get_db_manager(request: Request) -> DatabaseManager:
    """从应用状态中取出数据库管理器"""
    return request.app.state.db_manager


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话的依赖注入函数

    在FastAPI路由中使用: db: AsyncSession = Depends(get_db)

    Yields:
        AsyncSession: 数据库会话
    """
    async for session in get_db_manager(request).get_session():
        yield session
