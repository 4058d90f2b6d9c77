"""SQLAlchemy Unit of Work：一个会话、一个事务、一个订单仓储"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        await self.session.begin()
        self.order_repository = SQLAlchemyOrderRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self.session.close()
            self.session = None

    async def commit(self) -> None:
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        # flush 失败后事务已失效，仍需显式回滚
        if self.session.in_transaction():
            await self.session.rollback()
