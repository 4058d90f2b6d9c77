"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Order, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """
        创建订单

        订单号重复时抛出 OrderNumberConflictException
        """
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        pass

    @abstractmethod
    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        """根据订单号获取订单"""
        pass

    @abstractmethod
    async def list(
        self,
        *,
        traveler_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100,
        include_deleted: bool = False,
    ) -> List[Order]:
        """按条件获取订单列表（按创建时间倒序）"""
        pass

    @abstractmethod
    async def count(
        self,
        *,
        traveler_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        include_deleted: bool = False,
    ) -> int:
        """统计订单数量"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """
        乐观锁更新：仅当存储中的 version 等于 order.version 时写入，
        返回 version + 1 后的订单；否则抛出 ConcurrentOrderUpdateException
        """
        pass
