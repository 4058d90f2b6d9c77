import asyncio
from dataclasses import replace
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import make_order
from domain.common.exceptions import OrderNumberConflictException
from domain.order.order_number import MAX_ORDER_NUMBER_LENGTH
from infrastructure.database import build_engine
from infrastructure.models import OrderModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"


def alembic_config(url: str) -> Config:
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("sqlalchemy.url", url)
    return config


def describe_orders(connection) -> dict:
    inspector = inspect(connection)
    return {
        "tables": set(inspector.get_table_names()),
        "columns": {c["name"]: c["type"] for c in inspector.get_columns("orders")},
        "indexes": {i["name"] for i in inspector.get_indexes("orders")},
        "unique": {u["name"] for u in inspector.get_unique_constraints("orders")},
    }


@pytest.mark.asyncio
async def test_upgrade_head_matches_order_model(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path}/migrated.db"
    # env.py 内部自己跑事件循环
    await asyncio.to_thread(command.upgrade, alembic_config(url), "head")

    engine = build_engine(url)
    try:
        async with engine.connect() as conn:
            schema = await conn.run_sync(describe_orders)

        assert {"orders", "alembic_version"} <= schema["tables"]
        assert set(schema["columns"]) == set(OrderModel.__table__.columns.keys())
        assert schema["columns"]["order_number"].length == MAX_ORDER_NUMBER_LENGTH
        assert schema["indexes"] == {index.name for index in OrderModel.__table__.indexes}
        assert "uq_orders_order_number" in schema["unique"]

        # 迁移出的表可直接给仓储使用
        session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
        order = make_order()
        async with SQLAlchemyUnitOfWork(session_factory) as tx:
            await tx.order_repository.create(order)
        async with SQLAlchemyUnitOfWork(session_factory, readonly=True) as tx:
            assert (await tx.order_repository.get_by_id(order.id)) == order

        clash = replace(make_order(), order_number=order.order_number)
        with pytest.raises(OrderNumberConflictException):
            async with SQLAlchemyUnitOfWork(session_factory) as tx:
                await tx.order_repository.create(clash)
    finally:
        await engine.dispose()


def test_downgrade_base_drops_orders(tmp_path):
    db_path = tmp_path / "migrated.db"
    config = alembic_config(f"sqlite+aiosqlite:///{db_path}")
    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        assert "orders" not in inspect(engine).get_table_names()
    finally:
        engine.dispose()
