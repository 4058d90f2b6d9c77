"""
Alembic 迁移环境（async engine）

日志沿用应用的 structlog 配置，不读取 alembic.ini 中的 logging 段。
"""
import asyncio

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from core.config import settings
from core.logging_config import get_logger
from infrastructure.database import to_async_url
from infrastructure.models import Base


config = context.config
target_metadata = Base.metadata
logger = get_logger("alembic.env")


def _database_url() -> str:
    # 配置里显式给出的 sqlalchemy.url 优先
    return to_async_url(config.get_main_option("sqlalchemy.url") or settings.database.url)


def run_migrations_offline() -> None:
    """只生成 SQL，不连接数据库"""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        {"sqlalchemy.url": _database_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    logger.info("database_migration_started", url=connectable.url.render_as_string(hide_password=True))
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
