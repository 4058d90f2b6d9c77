"""
订单写入的事务边界

应用服务对每个用例开一个 Unit of Work：正常退出提交，异常退出回滚；
只读用例（readonly=True）结束时总是回滚，不会留下任何写入。
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderRepository


class AbstractUnitOfWork(ABC):
    order_repository: OrderRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self.readonly = readonly
        self._committed = False

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None or self.readonly:
            await self.rollback()
        elif not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
