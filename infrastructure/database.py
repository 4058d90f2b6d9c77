"""
数据库引擎与会话工厂
"""
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from core.config import settings
from infrastructure.models import Base


# 同步驱动名 -> 异步驱动名
ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
}


def to_async_url(database_url: str) -> str:
    """已指定驱动（如 sqlite+aiosqlite）的URL原样返回，否则换成异步驱动"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    try:
        driver = ASYNC_DRIVERS[url.drivername]
    except KeyError:
        raise ValueError(f"Unsupported database driver: {url.drivername}; set DATABASE__URL to an async driver")
    return url.set(drivername=driver).render_as_string(hide_password=False)


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    return create_async_engine(to_async_url(database_url), echo=echo)


engine = build_engine(settings.database.url, echo=settings.database.echo)

AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables(bind: AsyncEngine = engine) -> None:
    """按 ORM 模型建表（已存在的表跳过）"""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
