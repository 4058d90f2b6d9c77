"""
Order DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from domain.order.entity import Order
from domain.order.refund_policy import RefundQuote


class MeetingPointDTO(BaseModel):
    name: str
    address: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class CreateOrderDTO(BaseModel):
    traveler_id: str = Field(min_length=1)
    provider_id: str = Field(min_length=1)
    service_id: str = Field(min_length=1)
    # 金额是否为正由领域层判定（InvalidAmount）
    rate_per_hour: Decimal
    service_date: date
    service_time: time
    duration_hours: int
    participants_count: int = 1
    meeting_point: MeetingPointDTO
    special_requirements: Optional[str] = Field(default=None, max_length=2000)
    cancellation_policy: Optional[str] = None


class DeclineOrderDTO(BaseModel):
    reason: Optional[str] = None


class PaymentReportDTO(BaseModel):
    """外部支付方回报的付款事实"""
    transaction_id: str
    payment_method: str
    payment_provider: str

    @field_validator("payment_provider")
    @classmethod
    def _lower_provider(cls, v: str) -> str:
        return (v or "").strip().lower()


class CancelOrderDTO(BaseModel):
    cancelled_by_user_id: str = Field(min_length=1)
    reason: Optional[str] = None


class RefundOrderDTO(BaseModel):
    # 不传时按取消当下的退款政策计算
    amount: Optional[Decimal] = None


class RefundQuoteDTO(BaseModel):
    total_amount: Decimal
    hours_until_service: float
    tier: Optional[str] = None
    refund_percentage: Decimal
    processing_fee: Decimal
    refund_amount: Decimal

    @classmethod
    def from_quote(cls, quote: RefundQuote) -> "RefundQuoteDTO":
        return cls(
            total_amount=quote.total_amount,
            hours_until_service=round(quote.hours_until_service, 2),
            tier=quote.tier,
            refund_percentage=quote.refund_percentage,
            processing_fee=quote.processing_fee,
            refund_amount=quote.refund_amount,
        )


class OrderResponseDTO(BaseModel):
    id: str
    order_number: str
    traveler_id: str
    provider_id: str
    service_id: str
    service_date: date
    service_time: time
    service_timezone: str
    duration_hours: int
    participants_count: int
    meeting_point: MeetingPointDTO
    special_requirements: Optional[str] = None
    rate_per_hour: Decimal
    service_amount: Decimal
    platform_fee: Decimal
    provider_commission: Decimal
    total_amount: Decimal
    provider_earning: Decimal
    currency: str
    status: str
    cancellation_policy: str
    provider_response: str
    provider_decline_reason: Optional[str] = None
    provider_responded_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_provider: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    service_started_at: Optional[datetime] = None
    service_completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_user_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int

    @classmethod
    def from_entity(cls, order: Order) -> "OrderResponseDTO":
        return cls(
            id=order.id,
            order_number=order.order_number,
            traveler_id=order.traveler_id,
            provider_id=order.provider_id,
            service_id=order.service_id,
            service_date=order.service_date,
            service_time=order.service_time,
            service_timezone=order.service_timezone,
            duration_hours=order.duration_hours,
            participants_count=order.participants_count,
            meeting_point=MeetingPointDTO(**order.meeting_point.to_dict()),
            special_requirements=order.special_requirements,
            rate_per_hour=order.rate_per_hour,
            service_amount=order.service_amount,
            platform_fee=order.platform_fee,
            provider_commission=order.provider_commission,
            total_amount=order.total_amount,
            provider_earning=order.provider_earning,
            currency=order.currency,
            status=order.status.value,
            cancellation_policy=order.refund_policy.name,
            provider_response=order.provider_response.value,
            provider_decline_reason=order.provider_decline_reason,
            provider_responded_at=order.provider_responded_at,
            payment_method=order.payment_method,
            payment_provider=order.payment_provider,
            payment_transaction_id=order.payment_transaction_id,
            paid_at=order.paid_at,
            service_started_at=order.service_started_at,
            service_completed_at=order.service_completed_at,
            cancelled_at=order.cancelled_at,
            cancelled_by_user_id=order.cancelled_by_user_id,
            cancellation_reason=order.cancellation_reason,
            refund_amount=order.refund_amount,
            refund_processed_at=order.refund_processed_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
            version=order.version,
        )
