"""
订单领域服务 - 创建订单
"""
from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidAmountException
from .entity import MeetingPoint, Order, OrderStatus, ProviderResponse
from .order_number import OrderNumberGenerator
from .pricing import FeeSchedule, to_decimal
from .refund_policy import RefundPolicy, STANDARD_POLICY


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise DomainValidationException(f"Invalid service date: {value}", field="service_date")


def _parse_time(value) -> time:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise DomainValidationException(f"Invalid service time: {value}", field="service_time")


def create_order(
    traveler_id: str,
    provider_id: str,
    service_id: str,
    rate_per_hour,
    service_date,
    service_time,
    duration_hours: int,
    participants_count: int,
    meeting_point: MeetingPoint,
    *,
    special_requirements: Optional[str] = None,
    fee_schedule: Optional[FeeSchedule] = None,
    number_generator: Optional[OrderNumberGenerator] = None,
    refund_policy: RefundPolicy = STANDARD_POLICY,
    currency: str = "TWD",
    service_timezone: str = "Asia/Taipei",
    max_participants: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Order:
    """
    创建待确认订单

    业务规则：
    1. 费率、时长、人数必须为正（否则 InvalidAmount，不产生订单）
    2. 金额由 FeeSchedule 计算并校验不变式
    3. 订单号在此处生成且仅生成一次
    4. 服务单价、退款政策在下单时快照
    """
    for name, value in (("traveler_id", traveler_id), ("provider_id", provider_id), ("service_id", service_id)):
        if not value:
            raise DomainValidationException(f"{name} is required", field=name)
    if traveler_id == provider_id:
        raise DomainValidationException("Traveler cannot book their own service", field="provider_id")

    if isinstance(participants_count, bool) or not isinstance(participants_count, int) or participants_count < 1:
        raise InvalidAmountException(
            "participants_count must be a positive integer",
            field="participants_count",
            value=participants_count,
        )
    if max_participants is not None and participants_count > max_participants:
        raise DomainValidationException(
            f"participants_count must be between 1 and {max_participants}",
            field="participants_count",
        )
    if isinstance(duration_hours, bool) or not isinstance(duration_hours, int) or duration_hours < 1:
        raise InvalidAmountException(
            "duration_hours must be a positive integer",
            field="duration_hours",
            value=duration_hours,
        )

    rate = to_decimal(rate_per_hour, field="rate_per_hour")
    amounts = (fee_schedule or FeeSchedule()).compute(rate, duration_hours)

    created_at = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    else:
        created_at = created_at.astimezone(timezone.utc)
    generator = number_generator or OrderNumberGenerator()

    return Order(
        id=str(uuid.uuid4()),
        order_number=generator.generate(created_at),
        traveler_id=traveler_id,
        provider_id=provider_id,
        service_id=service_id,
        service_date=_parse_date(service_date),
        service_time=_parse_time(service_time),
        duration_hours=duration_hours,
        participants_count=participants_count,
        meeting_point=meeting_point,
        rate_per_hour=rate,
        service_amount=amounts.service_amount,
        platform_fee=amounts.platform_fee,
        provider_commission=amounts.provider_commission,
        total_amount=amounts.total_amount,
        provider_earning=amounts.provider_earning,
        currency=(currency or "").upper(),
        status=OrderStatus.PENDING_CONFIRMATION,
        refund_policy=refund_policy,
        service_timezone=service_timezone,
        special_requirements=special_requirements,
        provider_response=ProviderResponse.PENDING,
        created_at=created_at,
        updated_at=created_at,
    )
