"""
订单领域实体 - 订单聚合根

订单是不可变值：每次状态转换返回新的 Order，失败的转换不会改动任何字段。
合法转换集中定义在 ORDER_TRANSITIONS 表中。
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from domain.common.exceptions import (
    DomainValidationException,
    InvalidAmountException,
    InvalidPaymentDataException,
    InvalidRefundAmountException,
    InvalidTransitionException,
    PrematureStartException,
)
from .pricing import OrderAmounts, quantize_money
from .refund_policy import RefundPolicy, RefundQuote, STANDARD_POLICY


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING_CONFIRMATION = "pending_confirmation"  # 待地陪确认
    CONFIRMED = "confirmed"                        # 已确认
    PAID = "paid"                                  # 已付款
    IN_PROGRESS = "in_progress"                    # 服务中
    COMPLETED = "completed"                        # 已完成
    CANCELLED = "cancelled"                        # 已取消
    REFUNDED = "refunded"                          # 已退款
    DISPUTED = "disputed"                          # 争议中


class ProviderResponse(str, Enum):
    """地陪回应"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class OrderOperation(str, Enum):
    """状态机操作；取值与 Order 上的方法名一致"""
    CONFIRM = "confirm"
    DECLINE = "decline"
    MARK_AS_PAID = "mark_as_paid"
    START_SERVICE = "start_service"
    COMPLETE_SERVICE = "complete_service"
    CANCEL = "cancel"
    PROCESS_REFUND = "process_refund"
    DISPUTE = "dispute"


TERMINAL_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
    OrderStatus.DISPUTED,
})

CANCELLABLE_STATUSES = frozenset({
    OrderStatus.PENDING_CONFIRMATION,
    OrderStatus.CONFIRMED,
    OrderStatus.PAID,
})

# (当前状态, 操作) -> 目标状态
ORDER_TRANSITIONS: dict[tuple[OrderStatus, OrderOperation], OrderStatus] = {
    (OrderStatus.PENDING_CONFIRMATION, OrderOperation.CONFIRM): OrderStatus.CONFIRMED,
    (OrderStatus.PENDING_CONFIRMATION, OrderOperation.DECLINE): OrderStatus.CANCELLED,
    (OrderStatus.CONFIRMED, OrderOperation.MARK_AS_PAID): OrderStatus.PAID,
    (OrderStatus.PAID, OrderOperation.START_SERVICE): OrderStatus.IN_PROGRESS,
    (OrderStatus.IN_PROGRESS, OrderOperation.COMPLETE_SERVICE): OrderStatus.COMPLETED,
    **{(s, OrderOperation.CANCEL): OrderStatus.CANCELLED for s in CANCELLABLE_STATUSES},
    (OrderStatus.CANCELLED, OrderOperation.PROCESS_REFUND): OrderStatus.REFUNDED,
    **{
        (s, OrderOperation.DISPUTE): OrderStatus.DISPUTED
        for s in OrderStatus
        if s not in TERMINAL_STATUSES
    },
}


def next_status(current: OrderStatus, operation: OrderOperation) -> OrderStatus:
    """查表得到目标状态；非法转换抛出 InvalidTransitionException"""
    try:
        return ORDER_TRANSITIONS[(OrderStatus(current), OrderOperation(operation))]
    except KeyError:
        raise InvalidTransitionException(operation, current) from None


def allowed_operations(current: OrderStatus) -> list[OrderOperation]:
    return [op for (status, op) in ORDER_TRANSITIONS if status == current]


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return _ensure_utc(now) if now is not None else datetime.now(timezone.utc)


@dataclass(frozen=True)
class MeetingPoint:
    """会面地点（核心不解析其内容）"""

    name: str
    address: str
    lat: float
    lng: float

    def to_dict(self) -> dict:
        return {"name": self.name, "address": self.address, "lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict) -> "MeetingPoint":
        return cls(name=data["name"], address=data["address"], lat=float(data["lat"]), lng=float(data["lng"]))


_TIMESTAMP_FIELDS = (
    "provider_responded_at",
    "paid_at",
    "service_started_at",
    "service_completed_at",
    "cancelled_at",
    "refund_processed_at",
    "created_at",
    "updated_at",
    "deleted_at",
)


@dataclass(frozen=True)
class Order:
    """
    订单聚合根 - 管理一笔预订交易的生命周期

    业务规则：
    1. total_amount == service_amount + platform_fee
    2. provider_earning == service_amount - provider_commission
    3. 状态转换必须遵循 ORDER_TRANSITIONS
    4. 订单号创建后不可变更
    5. 退款金额不能超过订单总额
    """

    id: str
    order_number: str
    traveler_id: str
    provider_id: str
    service_id: str

    # 服务详情（下单时的快照）
    service_date: date
    service_time: time
    duration_hours: int
    participants_count: int
    meeting_point: MeetingPoint
    rate_per_hour: Decimal

    # 金额
    service_amount: Decimal
    platform_fee: Decimal
    provider_commission: Decimal
    total_amount: Decimal
    provider_earning: Decimal
    currency: str = "TWD"

    status: OrderStatus = OrderStatus.PENDING_CONFIRMATION
    refund_policy: RefundPolicy = STANDARD_POLICY
    service_timezone: str = "Asia/Taipei"
    special_requirements: Optional[str] = None

    # 地陪回应
    provider_response: ProviderResponse = ProviderResponse.PENDING
    provider_decline_reason: Optional[str] = None
    provider_responded_at: Optional[datetime] = None

    # 付款资讯（由外部支付方回报）
    payment_method: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None

    # 服务执行
    service_started_at: Optional[datetime] = None
    service_completed_at: Optional[datetime] = None

    # 取消与退款
    cancelled_at: Optional[datetime] = None
    cancelled_by_user_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_processed_at: Optional[datetime] = None

    # 系统字段
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self):
        """初始化后验证"""
        self._validate_schedule()
        self._validate_currency()
        self.amounts.verify()
        for name in _TIMESTAMP_FIELDS:
            object.__setattr__(self, name, _ensure_utc(getattr(self, name)))

    def _validate_schedule(self) -> None:
        for name in ("duration_hours", "participants_count"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidAmountException(f"{name} must be a positive integer", field=name, value=value)
        try:
            ZoneInfo(self.service_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise DomainValidationException(
                f"Unknown time zone: {self.service_timezone}",
                field="service_timezone",
            )

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")

    # ---- 查询 ----

    @property
    def amounts(self) -> OrderAmounts:
        return OrderAmounts(
            service_amount=self.service_amount,
            platform_fee=self.platform_fee,
            provider_commission=self.provider_commission,
            total_amount=self.total_amount,
            provider_earning=self.provider_earning,
        )

    @property
    def service_datetime(self) -> datetime:
        """服务开始时间（service_date + service_time，按订单时区解释）"""
        return datetime.combine(self.service_date, self.service_time, tzinfo=ZoneInfo(self.service_timezone))

    def hours_until_service(self, now: Optional[datetime] = None) -> float:
        return (self.service_datetime - _now(now)).total_seconds() / 3600

    @property
    def can_be_cancelled(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def preview_refund(self, now: Optional[datetime] = None) -> RefundQuote:
        """退款试算，不修改订单"""
        return self.refund_policy.quote(self.total_amount, self.service_datetime, _now(now))

    # ---- 状态转换（返回新订单） ----

    def confirm(self, *, now: Optional[datetime] = None) -> "Order":
        """地陪接受预订"""
        status = next_status(self.status, OrderOperation.CONFIRM)
        now = _now(now)
        return replace(
            self,
            status=status,
            provider_response=ProviderResponse.ACCEPTED,
            provider_responded_at=now,
            updated_at=now,
        )

    def decline(self, reason: Optional[str] = None, *, now: Optional[datetime] = None) -> "Order":
        """地陪拒绝预订：尚未付款，无需计算退款"""
        status = next_status(self.status, OrderOperation.DECLINE)
        now = _now(now)
        return replace(
            self,
            status=status,
            provider_response=ProviderResponse.DECLINED,
            provider_responded_at=now,
            provider_decline_reason=reason,
            cancelled_at=now,
            updated_at=now,
        )

    def mark_as_paid(
        self,
        transaction_id: str,
        payment_method: str,
        payment_provider: str,
        *,
        now: Optional[datetime] = None,
    ) -> "Order":
        """
        记录付款

        业务规则：先校验状态（重复回调得到 InvalidTransition），再校验付款资料
        """
        status = next_status(self.status, OrderOperation.MARK_AS_PAID)
        provided = {
            "transaction_id": transaction_id,
            "payment_method": payment_method,
            "payment_provider": payment_provider,
        }
        missing = [k for k, v in provided.items() if not v or not str(v).strip()]
        if missing:
            raise InvalidPaymentDataException(missing)
        now = _now(now)
        return replace(
            self,
            status=status,
            payment_transaction_id=transaction_id,
            payment_method=payment_method,
            payment_provider=payment_provider,
            paid_at=now,
            updated_at=now,
        )

    def start_service(self, *, now: Optional[datetime] = None, allow_early: bool = False) -> "Order":
        """开始服务；默认不得早于预定时间"""
        status = next_status(self.status, OrderOperation.START_SERVICE)
        now = _now(now)
        if not allow_early and now < self.service_datetime:
            raise PrematureStartException(self.service_datetime, now)
        return replace(self, status=status, service_started_at=now, updated_at=now)

    def complete_service(self, *, now: Optional[datetime] = None) -> "Order":
        status = next_status(self.status, OrderOperation.COMPLETE_SERVICE)
        now = _now(now)
        return replace(self, status=status, service_completed_at=now, updated_at=now)

    def cancel(
        self,
        cancelled_by_user_id: str,
        reason: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> "Order":
        """取消订单；退款另行处理（可能需要人工审核）"""
        status = next_status(self.status, OrderOperation.CANCEL)
        if not cancelled_by_user_id:
            raise DomainValidationException("cancelled_by_user_id is required", field="cancelled_by_user_id")
        now = _now(now)
        return replace(
            self,
            status=status,
            cancelled_at=now,
            cancelled_by_user_id=cancelled_by_user_id,
            cancellation_reason=reason,
            updated_at=now,
        )

    def process_refund(self, amount, *, now: Optional[datetime] = None) -> "Order":
        """执行退款；金额须在 [0, total_amount] 内"""
        status = next_status(self.status, OrderOperation.PROCESS_REFUND)
        refund = quantize_money(amount)
        if refund < 0 or refund > self.total_amount:
            raise InvalidRefundAmountException(refund, self.total_amount)
        now = _now(now)
        return replace(
            self,
            status=status,
            refund_amount=refund,
            refund_processed_at=now,
            updated_at=now,
        )

    def dispute(self, *, now: Optional[datetime] = None) -> "Order":
        """提出争议；后续处理由管理端负责"""
        status = next_status(self.status, OrderOperation.DISPUTE)
        return replace(self, status=status, updated_at=_now(now))

    def mark_deleted(self, *, now: Optional[datetime] = None) -> "Order":
        """软删除标记，与业务状态无关"""
        if self.deleted_at is not None:
            raise DomainValidationException("Order already deleted", field="deleted_at")
        now = _now(now)
        return replace(self, deleted_at=now, updated_at=now)


def transition(order: Order, operation, **kwargs) -> Order:
    """按操作名执行状态转换"""
    op = OrderOperation(operation)
    return getattr(order, op.value)(**kwargs)


def preview_refund(order: Order, now: Optional[datetime] = None) -> RefundQuote:
    return order.preview_refund(now)
