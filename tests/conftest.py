"""Pytest bootstrap configuration.

Settings are read at import time, so the environment is prepared before any
application module is imported. Service tests run against in-memory fakes of
the repository and unit of work; repository tests use a temporary SQLite file.
"""
import os

os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./test_guidee.db")

import asyncio
from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from application.dtos.orders import CreateOrderDTO, MeetingPointDTO
from application.services.order_service import OrderApplicationService
from core.config import OrderSettings
from domain.common.exceptions import (
    ConcurrentOrderUpdateException,
    OrderNotFoundException,
    OrderNumberConflictException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order import MeetingPoint, Order, OrderStatus, OrderRepository, create_order


NOW = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
MEETING_POINT = MeetingPoint(name="台北車站", address="台北市中正區北平西路3號", lat=25.0478, lng=121.5170)


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryOrderStore:
    def __init__(self):
        self.rows: Dict[str, Order] = {}


class InMemoryOrderRepository(OrderRepository):
    """内存仓储；读取后让出一次事件循环，便于构造并发交错"""

    def __init__(self, store: InMemoryOrderStore):
        self.store = store

    async def create(self, order: Order) -> Order:
        if any(o.order_number == order.order_number for o in self.store.rows.values()):
            raise OrderNumberConflictException(order.order_number)
        self.store.rows[order.id] = order
        return order

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        snapshot = self.store.rows.get(order_id)
        await asyncio.sleep(0)
        return snapshot

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        for order in self.store.rows.values():
            if order.order_number == order_number:
                return order
        return None

    def _matching(self, traveler_id, provider_id, status, include_deleted) -> List[Order]:
        result = []
        for order in self.store.rows.values():
            if traveler_id and order.traveler_id != traveler_id:
                continue
            if provider_id and order.provider_id != provider_id:
                continue
            if status and order.status != OrderStatus(status):
                continue
            if not include_deleted and order.is_deleted:
                continue
            result.append(order)
        return sorted(result, key=lambda o: o.created_at, reverse=True)

    async def list(self, *, traveler_id=None, provider_id=None, status=None, skip=0, limit=100, include_deleted=False):
        return self._matching(traveler_id, provider_id, status, include_deleted)[skip:skip + limit]

    async def count(self, *, traveler_id=None, provider_id=None, status=None, include_deleted=False):
        return len(self._matching(traveler_id, provider_id, status, include_deleted))

    async def update(self, order: Order) -> Order:
        current = self.store.rows.get(order.id)
        if current is None:
            raise OrderNotFoundException(order.id)
        if current.version != order.version:
            raise ConcurrentOrderUpdateException(order.id, order.version)
        saved = replace(order, version=order.version + 1)
        self.store.rows[order.id] = saved
        return saved


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryOrderStore, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.order_repository = InMemoryOrderRepository(store)
        self.commits = 0

    async def commit(self) -> None:
        self.commits += 1
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def uow_factory(order_store):
    def factory(readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(order_store, readonly=readonly)
    return factory


@pytest.fixture
def order_settings() -> OrderSettings:
    return OrderSettings(service_timezone="UTC")


@pytest.fixture
def order_service(uow_factory, clock, order_settings) -> OrderApplicationService:
    return OrderApplicationService(uow_factory, order_settings=order_settings, clock=clock)


def create_dto(**overrides) -> CreateOrderDTO:
    """10 天后开始、4 小时、NT$440/小时的预订"""
    payload = dict(
        traveler_id="traveler-1",
        provider_id="provider-1",
        service_id="service-1",
        rate_per_hour=Decimal("440"),
        service_date=date(2024, 6, 11),
        service_time=time(10, 0),
        duration_hours=4,
        participants_count=2,
        meeting_point=MeetingPointDTO(**MEETING_POINT.to_dict()),
    )
    payload.update(overrides)
    return CreateOrderDTO(**payload)


def make_order(**overrides) -> Order:
    """领域层直接构造的待确认订单（UTC 时区，10 天后开始）"""
    params = dict(
        traveler_id="traveler-1",
        provider_id="provider-1",
        service_id="service-1",
        rate_per_hour=Decimal("440"),
        service_date=date(2024, 6, 11),
        service_time=time(10, 0),
        duration_hours=4,
        participants_count=2,
        meeting_point=MEETING_POINT,
        service_timezone="UTC",
        now=NOW,
    )
    params.update(overrides)
    return create_order(**params)
