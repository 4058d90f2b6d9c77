"""
订单应用服务（application/services）- 编排订单用例

事务边界由 Unit of Work 控制；每次状态转换都是 读取 -> 转换 -> 乐观锁写回。
写回冲突时整体重试（重新读取最新版本），由状态机决定重试是否仍然合法。
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from application.dtos.orders import (
    CancelOrderDTO,
    CreateOrderDTO,
    DeclineOrderDTO,
    OrderResponseDTO,
    PaymentReportDTO,
    RefundQuoteDTO,
)
from core.config import OrderSettings, settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    ConcurrentOrderUpdateException,
    DomainValidationException,
    InvalidTransitionException,
    OrderNotFoundException,
    OrderNumberConflictException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import MeetingPoint, Order, OrderOperation, OrderStatus, transition
from domain.order.events import OrderCreated, OrderEvent, OrderPaymentDuplicate, OrderTransitioned
from domain.order.order_number import OrderNumberGenerator
from domain.order.pricing import FeeSchedule
from domain.order.refund_policy import DEFAULT_REFUND_POLICIES, RefundPolicy, RefundQuote, RefundTier
from domain.order.service import create_order


logger = get_logger(__name__)


def build_refund_policies(order_settings: OrderSettings) -> dict[str, RefundPolicy]:
    """内置政策 + 配置中的政策（同名时配置覆盖内置）"""
    policies = dict(DEFAULT_REFUND_POLICIES)
    for name, tiers in order_settings.refund_policies.items():
        policies[name] = RefundPolicy(
            name=name,
            tiers=tuple(RefundTier(**t.model_dump()) for t in tiers),
        )
    return policies


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderApplicationService:
    """订单应用服务 - 处理应用层逻辑"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        order_settings: Optional[OrderSettings] = None,
        number_generator: Optional[OrderNumberGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._uow_factory = uow_factory
        self.settings = order_settings or settings.order
        self.fee_schedule = FeeSchedule(self.settings.platform_fee_rate, self.settings.commission_rate)
        self.number_generator = number_generator or OrderNumberGenerator(self.settings.order_number_prefix)
        self.refund_policies = build_refund_policies(self.settings)
        if self.settings.cancellation_policy not in self.refund_policies:
            raise DomainValidationException(
                f"Unknown cancellation policy: {self.settings.cancellation_policy}",
                field="cancellation_policy",
            )
        self._clock = clock or _utcnow
        self.events: List[OrderEvent] = []

    def resolve_policy(self, name: Optional[str]) -> RefundPolicy:
        policy = self.refund_policies.get(name or self.settings.cancellation_policy)
        if policy is None:
            raise DomainValidationException(f"Unknown cancellation policy: {name}", field="cancellation_policy")
        return policy

    def _record(self, event: OrderEvent) -> None:
        # 事件暂存于内存，可由调用方转发到消息队列、通知等
        self.events.append(event)

    # ---- 创建与查询 ----

    async def create_order(self, data: CreateOrderDTO) -> OrderResponseDTO:
        """创建订单；订单号冲突时重新生成，最多 order_number_max_attempts 次"""
        policy = self.resolve_policy(data.cancellation_policy)
        attempts = self.settings.order_number_max_attempts
        order_number = None
        for attempt in range(1, attempts + 1):
            order = create_order(
                traveler_id=data.traveler_id,
                provider_id=data.provider_id,
                service_id=data.service_id,
                rate_per_hour=data.rate_per_hour,
                service_date=data.service_date,
                service_time=data.service_time,
                duration_hours=data.duration_hours,
                participants_count=data.participants_count,
                meeting_point=MeetingPoint(**data.meeting_point.model_dump()),
                special_requirements=data.special_requirements,
                fee_schedule=self.fee_schedule,
                number_generator=self.number_generator,
                refund_policy=policy,
                currency=self.settings.currency,
                service_timezone=self.settings.service_timezone,
                max_participants=self.settings.max_participants,
                now=self._clock(),
            )
            order_number = order.order_number
            try:
                async with self._uow_factory() as uow:
                    saved = await uow.order_repository.create(order)
            except OrderNumberConflictException:
                logger.warning("order_number_retry", order_number=order_number, attempt=attempt)
                continue

            self._record(OrderCreated(
                order_id=saved.id,
                order_number=saved.order_number,
                traveler_id=saved.traveler_id,
                provider_id=saved.provider_id,
                total_amount=str(saved.total_amount),
            ))
            logger.info(
                "order_created",
                order_id=saved.id,
                order_number=saved.order_number,
                total_amount=str(saved.total_amount),
                cancellation_policy=policy.name,
            )
            return OrderResponseDTO.from_entity(saved)

        raise OrderNumberConflictException(order_number)

    async def _load(self, uow: AbstractUnitOfWork, order_id: str) -> Order:
        order = await uow.order_repository.get_by_id(order_id)
        if order is None or order.is_deleted:
            raise OrderNotFoundException(order_id)
        return order

    async def get_order(self, order_id: str) -> OrderResponseDTO:
        """获取订单"""
        async with self._uow_factory(readonly=True) as uow:
            return OrderResponseDTO.from_entity(await self._load(uow, order_id))

    async def get_order_by_number(self, order_number: str) -> OrderResponseDTO:
        """根据订单号获取订单"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_number(order_number)
            if order is None or order.is_deleted:
                raise OrderNotFoundException(order_number=order_number)
            return OrderResponseDTO.from_entity(order)

    async def list_orders(
        self,
        *,
        traveler_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[OrderResponseDTO], int]:
        """按条件分页获取订单，返回 (订单列表, 总数)"""
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list(
                traveler_id=traveler_id,
                provider_id=provider_id,
                status=status,
                skip=skip,
                limit=limit,
            )
            total = await uow.order_repository.count(
                traveler_id=traveler_id,
                provider_id=provider_id,
                status=status,
            )
        return [OrderResponseDTO.from_entity(o) for o in orders], total

    # ---- 状态转换 ----

    async def _mutate(self, order_id: str, action: str, change: Callable[[Order], Order]) -> Tuple[Order, Order]:
        """
        读取 -> 变更 -> 乐观锁写回

        冲突时重新读取最新版本再执行一次变更；返回 (变更前, 变更后)。
        """
        retries = self.settings.transition_max_retries
        for attempt in range(1, retries + 1):
            try:
                async with self._uow_factory() as uow:
                    before = await self._load(uow, order_id)
                    after = await uow.order_repository.update(change(before))
                return before, after
            except ConcurrentOrderUpdateException:
                logger.info("order_transition_conflict", order_id=order_id, action=action, attempt=attempt)
                if attempt == retries:
                    raise
            except InvalidTransitionException as exc:
                logger.info(
                    "order_transition_rejected",
                    order_id=order_id,
                    action=action,
                    current_status=exc.current_status,
                )
                raise

    async def _transition(self, order_id: str, operation: OrderOperation, **kwargs) -> Order:
        def change(order: Order) -> Order:
            return transition(order, operation, now=self._clock(), **kwargs)

        before, after = await self._mutate(order_id, operation.value, change)
        self._record(OrderTransitioned(
            order_id=after.id,
            order_number=after.order_number,
            operation=operation.value,
            from_status=before.status.value,
            to_status=after.status.value,
        ))
        logger.info(
            "order_transitioned",
            order_id=after.id,
            order_number=after.order_number,
            operation=operation.value,
            from_status=before.status.value,
            to_status=after.status.value,
            version=after.version,
        )
        return after

    async def confirm(self, order_id: str) -> OrderResponseDTO:
        """地陪接受预订"""
        return OrderResponseDTO.from_entity(await self._transition(order_id, OrderOperation.CONFIRM))

    async def decline(self, order_id: str, data: Optional[DeclineOrderDTO] = None) -> OrderResponseDTO:
        """地陪拒绝预订"""
        reason = data.reason if data else None
        return OrderResponseDTO.from_entity(
            await self._transition(order_id, OrderOperation.DECLINE, reason=reason)
        )

    async def mark_as_paid(self, order_id: str, data: PaymentReportDTO) -> OrderResponseDTO:
        order = await self._transition(
            order_id,
            OrderOperation.MARK_AS_PAID,
            transaction_id=data.transaction_id,
            payment_method=data.payment_method,
            payment_provider=data.payment_provider,
        )
        return OrderResponseDTO.from_entity(order)

    async def record_payment(self, order_id: str, data: PaymentReportDTO) -> OrderResponseDTO:
        """
        处理支付方回调（可重复投递）

        同一交易号的重复回报直接返回当前订单；其他非法转换照常抛出。
        """
        try:
            return await self.mark_as_paid(order_id, data)
        except InvalidTransitionException:
            current = await self.get_order(order_id)
            if current.payment_transaction_id and current.payment_transaction_id == data.transaction_id:
                self._record(OrderPaymentDuplicate(
                    order_id=current.id,
                    order_number=current.order_number,
                    transaction_id=data.transaction_id,
                ))
                logger.info(
                    "order_payment_duplicate_ignored",
                    order_id=current.id,
                    transaction_id=data.transaction_id,
                    status=current.status,
                )
                return current
            raise

    async def start_service(self, order_id: str) -> OrderResponseDTO:
        """开始服务；premature_start=warn 时允许提前开始并记录警告"""
        allow_early = self.settings.premature_start == "warn"
        order = await self._transition(order_id, OrderOperation.START_SERVICE, allow_early=allow_early)
        if order.service_started_at < order.service_datetime:
            logger.warning(
                "order_started_early",
                order_id=order.id,
                scheduled_at=order.service_datetime.isoformat(),
                started_at=order.service_started_at.isoformat(),
            )
        return OrderResponseDTO.from_entity(order)

    async def complete_service(self, order_id: str) -> OrderResponseDTO:
        return OrderResponseDTO.from_entity(await self._transition(order_id, OrderOperation.COMPLETE_SERVICE))

    async def cancel(self, order_id: str, data: CancelOrderDTO) -> OrderResponseDTO:
        """取消订单（退款另行处理）"""
        order = await self._transition(
            order_id,
            OrderOperation.CANCEL,
            cancelled_by_user_id=data.cancelled_by_user_id,
            reason=data.reason,
        )
        return OrderResponseDTO.from_entity(order)

    async def process_refund(self, order_id: str, amount: Optional[Decimal] = None) -> OrderResponseDTO:
        """
        执行退款

        未指定金额时按取消当下的退款政策试算结果退款，与取消时看到的预览一致。
        """
        if amount is not None:
            order = await self._transition(order_id, OrderOperation.PROCESS_REFUND, amount=amount)
            return OrderResponseDTO.from_entity(order)

        def change(current: Order) -> Order:
            quote = self._quote(current, current.cancelled_at or self._clock())
            return transition(current, OrderOperation.PROCESS_REFUND, amount=quote.refund_amount, now=self._clock())

        before, after = await self._mutate(order_id, OrderOperation.PROCESS_REFUND.value, change)
        self._record(OrderTransitioned(
            order_id=after.id,
            order_number=after.order_number,
            operation=OrderOperation.PROCESS_REFUND.value,
            from_status=before.status.value,
            to_status=after.status.value,
        ))
        logger.info(
            "order_transitioned",
            order_id=after.id,
            order_number=after.order_number,
            operation=OrderOperation.PROCESS_REFUND.value,
            from_status=before.status.value,
            to_status=after.status.value,
            refund_amount=str(after.refund_amount),
            version=after.version,
        )
        return OrderResponseDTO.from_entity(after)

    async def dispute(self, order_id: str) -> OrderResponseDTO:
        return OrderResponseDTO.from_entity(await self._transition(order_id, OrderOperation.DISPUTE))

    # ---- 退款试算 ----

    def _quote(self, order: Order, at: datetime) -> RefundQuote:
        quote = order.preview_refund(at)
        if order.paid_at is None:
            # 未付款的订单没有可退金额
            return replace(
                quote,
                tier=None,
                refund_percentage=Decimal("0"),
                processing_fee=Decimal("0.00"),
                refund_amount=Decimal("0.00"),
            )
        return quote

    async def preview_refund(self, order_id: str, now: Optional[datetime] = None) -> RefundQuoteDTO:
        """
        退款试算

        已取消的订单按取消时刻计算，结果即 process_refund 的默认金额；
        未取消的订单按 now 计算，取消时若已跨过档位边界则以取消时刻为准。
        """
        async with self._uow_factory(readonly=True) as uow:
            order = await self._load(uow, order_id)
        if order.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED) and order.cancelled_at:
            at = order.cancelled_at
        else:
            at = now or self._clock()
        return RefundQuoteDTO.from_quote(self._quote(order, at))

    # ---- 删除 ----

    async def delete_order(self, order_id: str) -> None:
        """软删除订单"""
        _, after = await self._mutate(order_id, "delete", lambda o: o.mark_deleted(now=self._clock()))
        logger.info("order_soft_deleted", order_id=after.id, order_number=after.order_number)
