"""Alembic 环境配置

配置数据库迁移环境，支持异步数据库连接
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

from filebroker.core.config import get_settings
# 导入所有模型以确保元数据完整
from filebroker.features.audit.models import AuditEntry  # noqa: F401
from filebroker.features.files.models import FileRecord  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def get_database_url() -> str:
    """获取数据库连接URL

    使用应用配置中的异步数据库URL

    Raises:
        RuntimeError: 未配置 DATABASE_URL 时
    """
    url = get_settings().async_database_url
    if not url:
        raise RuntimeError("DATABASE_URL 未配置，无法运行迁移")
    return url


def run_migrations_offline() -> None:
    """在 'offline' 模式下运行迁移

    只需要 URL，不创建 DBAPI 连接
    """
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        # SQLite 需要批处理模式才能修改表
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """在异步模式下运行迁移

    创建异步引擎并在同步上下文中运行迁移
    """
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
