"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from dataclasses import replace
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import (
    ConcurrentOrderUpdateException,
    OrderNotFoundException,
    OrderNumberConflictException,
)
from domain.order.entity import MeetingPoint, Order, OrderStatus, ProviderResponse
from domain.order.pricing import quantize_money
from domain.order.refund_policy import RefundPolicy
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


# 创建后不再写入的列
_IMMUTABLE_COLUMNS = {"id", "order_number", "created_at", "version"}

# sqlite 报 "orders.order_number"，postgres 报约束名
_ORDER_NUMBER_CONSTRAINT_MARKERS = ("orders.order_number", "uq_orders_order_number")


def _is_order_number_conflict(error: IntegrityError) -> bool:
    # 只看驱动原始错误；str(error) 含 INSERT 语句本身，列名总会出现
    message = str(error.orig).lower()
    return any(marker in message for marker in _ORDER_NUMBER_CONSTRAINT_MARKERS)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_number=model.order_number,
            traveler_id=model.traveler_id,
            provider_id=model.provider_id,
            service_id=model.service_id,
            service_date=model.service_date,
            service_time=model.service_time,
            duration_hours=model.duration_hours,
            participants_count=model.participants_count,
            meeting_point=MeetingPoint.from_dict(model.meeting_point),
            rate_per_hour=quantize_money(model.rate_per_hour),
            service_amount=quantize_money(model.service_amount),
            platform_fee=quantize_money(model.platform_fee),
            provider_commission=quantize_money(model.provider_commission),
            total_amount=quantize_money(model.total_amount),
            provider_earning=quantize_money(model.provider_earning),
            currency=model.currency,
            status=OrderStatus(model.status),
            refund_policy=RefundPolicy.from_dict(model.refund_policy),
            service_timezone=model.service_timezone,
            special_requirements=model.special_requirements,
            provider_response=ProviderResponse(model.provider_response),
            provider_decline_reason=model.provider_decline_reason,
            provider_responded_at=model.provider_responded_at,
            payment_method=model.payment_method,
            payment_provider=model.payment_provider,
            payment_transaction_id=model.payment_transaction_id,
            paid_at=model.paid_at,
            service_started_at=model.service_started_at,
            service_completed_at=model.service_completed_at,
            cancelled_at=model.cancelled_at,
            cancelled_by_user_id=model.cancelled_by_user_id,
            cancellation_reason=model.cancellation_reason,
            refund_amount=quantize_money(model.refund_amount) if model.refund_amount is not None else None,
            refund_processed_at=model.refund_processed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
            version=model.version,
        )

    def _to_values(self, entity: Order) -> dict:
        """将领域实体转换为列值"""
        return {
            "id": entity.id,
            "order_number": entity.order_number,
            "version": entity.version,
            "traveler_id": entity.traveler_id,
            "provider_id": entity.provider_id,
            "service_id": entity.service_id,
            "service_date": entity.service_date,
            "service_time": entity.service_time,
            "service_timezone": entity.service_timezone,
            "duration_hours": entity.duration_hours,
            "participants_count": entity.participants_count,
            "meeting_point": entity.meeting_point.to_dict(),
            "special_requirements": entity.special_requirements,
            "rate_per_hour": entity.rate_per_hour,
            "service_amount": entity.service_amount,
            "platform_fee": entity.platform_fee,
            "provider_commission": entity.provider_commission,
            "total_amount": entity.total_amount,
            "provider_earning": entity.provider_earning,
            "currency": entity.currency,
            "status": entity.status.value,
            "refund_policy": entity.refund_policy.to_dict(),
            "provider_response": entity.provider_response.value,
            "provider_decline_reason": entity.provider_decline_reason,
            "provider_responded_at": entity.provider_responded_at,
            "payment_method": entity.payment_method,
            "payment_provider": entity.payment_provider,
            "payment_transaction_id": entity.payment_transaction_id,
            "paid_at": entity.paid_at,
            "service_started_at": entity.service_started_at,
            "service_completed_at": entity.service_completed_at,
            "cancelled_at": entity.cancelled_at,
            "cancelled_by_user_id": entity.cancelled_by_user_id,
            "cancellation_reason": entity.cancellation_reason,
            "refund_amount": entity.refund_amount,
            "refund_processed_at": entity.refund_processed_at,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
            "deleted_at": entity.deleted_at,
        }

    def _filtered(self, query, traveler_id, provider_id, status, include_deleted):
        if traveler_id:
            query = query.where(OrderModel.traveler_id == traveler_id)
        if provider_id:
            query = query.where(OrderModel.provider_id == provider_id)
        if status:
            query = query.where(OrderModel.status == OrderStatus(status).value)
        if not include_deleted:
            query = query.where(OrderModel.deleted_at.is_(None))
        return query

    async def create(self, order: Order) -> Order:
        """创建订单"""
        try:
            self.session.add(OrderModel(**self._to_values(order)))
            await self.session.flush()
        except IntegrityError as e:
            if _is_order_number_conflict(e):
                logger.warning("order_number_conflict", order_number=order.order_number)
                raise OrderNumberConflictException(order.order_number) from e
            logger.error("order_insert_failed", order_id=order.id, error=str(e.orig))
            raise
        logger.info("order_persisted", order_id=order.id, order_number=order.order_number)
        return order

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        """根据订单号获取订单"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.order_number == order_number)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

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
        """按条件获取订单列表"""
        query = self._filtered(select(OrderModel), traveler_id, provider_id, status, include_deleted)
        query = query.order_by(OrderModel.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(o) for o in result.scalars().all()]

    async def count(
        self,
        *,
        traveler_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        include_deleted: bool = False,
    ) -> int:
        """统计订单数量"""
        query = self._filtered(
            select(func.count()).select_from(OrderModel),
            traveler_id, provider_id, status, include_deleted,
        )
        result = await self.session.execute(query)
        return result.scalar_one()

    async def update(self, order: Order) -> Order:
        """乐观锁更新订单"""
        values = {k: v for k, v in self._to_values(order).items() if k not in _IMMUTABLE_COLUMNS}
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == order.version)
            .values(**values, version=order.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            exists = await self.session.scalar(select(OrderModel.id).where(OrderModel.id == order.id))
            if exists is None:
                raise OrderNotFoundException(order.id)
            logger.warning(
                "order_update_conflict",
                order_id=order.id,
                expected_version=order.version,
            )
            raise ConcurrentOrderUpdateException(order.id, order.version)

        logger.info(
            "order_updated",
            order_id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            version=order.version + 1,
        )
        return replace(order, version=order.version + 1)
