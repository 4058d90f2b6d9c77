import asyncio
from decimal import Decimal

import pytest

from application.dtos.orders import CancelOrderDTO, DeclineOrderDTO, PaymentReportDTO
from application.services.order_service import OrderApplicationService
from conftest import create_dto
from core.config import OrderSettings, RefundTierSettings
from domain.common.exceptions import (
    ConcurrentOrderUpdateException,
    DomainValidationException,
    InvalidAmountException,
    InvalidRefundAmountException,
    InvalidTransitionException,
    OrderNotFoundException,
    OrderNumberConflictException,
    PrematureStartException,
)
from domain.order.events import OrderCreated, OrderPaymentDuplicate, OrderTransitioned


PAYMENT = PaymentReportDTO(transaction_id="txn-1", payment_method="credit_card", payment_provider="ECPay")


class SequenceNumberGenerator:
    """按给定顺序返回订单号"""

    def __init__(self, *numbers: str):
        self.numbers = list(numbers)

    def generate(self, on=None) -> str:
        return self.numbers.pop(0)


async def paid_order(service: OrderApplicationService):
    order = await service.create_order(create_dto())
    await service.confirm(order.id)
    return await service.record_payment(order.id, PAYMENT)


@pytest.mark.asyncio
async def test_create_order(order_service, order_store):
    order = await order_service.create_order(create_dto())
    assert order.status == "pending_confirmation"
    assert order.total_amount == Decimal("1848.00")
    assert order.provider_earning == Decimal("1496.00")
    assert order.cancellation_policy == "standard"
    assert order.version == 0
    assert order.id in order_store.rows
    assert isinstance(order_service.events[-1], OrderCreated)


@pytest.mark.asyncio
async def test_create_order_with_zero_duration_stores_nothing(order_service, order_store):
    with pytest.raises(InvalidAmountException):
        await order_service.create_order(create_dto(duration_hours=0))
    assert order_store.rows == {}


@pytest.mark.asyncio
async def test_unknown_cancellation_policy_rejected(order_service):
    with pytest.raises(DomainValidationException):
        await order_service.create_order(create_dto(cancellation_policy="nonexistent"))


@pytest.mark.asyncio
async def test_order_number_conflict_is_retried(uow_factory, clock, order_settings):
    service = OrderApplicationService(
        uow_factory,
        order_settings=order_settings,
        clock=clock,
        number_generator=SequenceNumberGenerator("GD-20240601-001", "GD-20240601-001", "GD-20240601-002"),
    )
    first = await service.create_order(create_dto())
    second = await service.create_order(create_dto())
    assert first.order_number == "GD-20240601-001"
    assert second.order_number == "GD-20240601-002"


@pytest.mark.asyncio
async def test_order_number_conflict_gives_up_after_max_attempts(uow_factory, clock):
    service = OrderApplicationService(
        uow_factory,
        order_settings=OrderSettings(service_timezone="UTC", order_number_max_attempts=2),
        clock=clock,
        number_generator=SequenceNumberGenerator(*["GD-20240601-001"] * 3),
    )
    await service.create_order(create_dto())
    with pytest.raises(OrderNumberConflictException):
        await service.create_order(create_dto())


@pytest.mark.asyncio
async def test_full_lifecycle(order_service, clock):
    order = await order_service.create_order(create_dto())
    confirmed = await order_service.confirm(order.id)
    assert confirmed.status == "confirmed"
    assert confirmed.provider_response == "accepted"

    paid = await order_service.record_payment(order.id, PAYMENT)
    assert paid.status == "paid"
    assert paid.payment_provider == "ecpay"

    clock.advance(days=10)
    started = await order_service.start_service(order.id)
    assert started.status == "in_progress"

    clock.advance(hours=4)
    completed = await order_service.complete_service(order.id)
    assert completed.status == "completed"
    assert completed.version == 4
    assert completed.order_number == order.order_number

    operations = [e.operation for e in order_service.events if isinstance(e, OrderTransitioned)]
    assert operations == ["confirm", "mark_as_paid", "start_service", "complete_service"]


@pytest.mark.asyncio
@pytest.mark.parametrize("first", ["confirm", "decline"])
async def test_concurrent_confirm_and_decline(order_service, first):
    order = await order_service.create_order(create_dto())
    calls = {
        "confirm": lambda: order_service.confirm(order.id),
        "decline": lambda: order_service.decline(order.id, DeclineOrderDTO(reason="busy")),
    }
    second = "decline" if first == "confirm" else "confirm"
    results = await asyncio.gather(calls[first](), calls[second](), return_exceptions=True)

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], InvalidTransitionException)

    final = await order_service.get_order(order.id)
    assert final.status == succeeded[0].status
    assert failed[0].current_status == final.status
    assert final.version == 1


@pytest.mark.asyncio
async def test_conflict_surfaces_when_retries_exhausted(uow_factory, clock):
    service = OrderApplicationService(
        uow_factory,
        order_settings=OrderSettings(service_timezone="UTC", transition_max_retries=1),
        clock=clock,
    )
    order = await service.create_order(create_dto())
    results = await asyncio.gather(
        service.confirm(order.id),
        service.decline(order.id),
        return_exceptions=True,
    )
    assert sum(isinstance(r, ConcurrentOrderUpdateException) for r in results) == 1


@pytest.mark.asyncio
async def test_payment_webhook_is_idempotent(order_service):
    paid = await paid_order(order_service)
    again = await order_service.record_payment(paid.id, PAYMENT)
    assert again.status == "paid"
    assert again.version == paid.version
    assert again.paid_at == paid.paid_at
    assert isinstance(order_service.events[-1], OrderPaymentDuplicate)


@pytest.mark.asyncio
async def test_payment_with_different_transaction_is_rejected(order_service):
    paid = await paid_order(order_service)
    other = PaymentReportDTO(transaction_id="txn-2", payment_method="credit_card", payment_provider="ecpay")
    with pytest.raises(InvalidTransitionException):
        await order_service.record_payment(paid.id, other)


@pytest.mark.asyncio
async def test_payment_before_confirmation_rejected(order_service):
    order = await order_service.create_order(create_dto())
    with pytest.raises(InvalidTransitionException):
        await order_service.record_payment(order.id, PAYMENT)


@pytest.mark.asyncio
async def test_premature_start_rejected_by_default(order_service):
    paid = await paid_order(order_service)
    with pytest.raises(PrematureStartException):
        await order_service.start_service(paid.id)
    assert (await order_service.get_order(paid.id)).status == "paid"


@pytest.mark.asyncio
async def test_premature_start_allowed_in_warn_mode(uow_factory, clock):
    service = OrderApplicationService(
        uow_factory,
        order_settings=OrderSettings(service_timezone="UTC", premature_start="warn"),
        clock=clock,
    )
    paid = await paid_order(service)
    started = await service.start_service(paid.id)
    assert started.status == "in_progress"
    assert started.service_started_at == clock.now


@pytest.mark.asyncio
async def test_refund_uses_quote_at_cancellation_time(order_service, clock):
    paid = await paid_order(order_service)
    preview = await order_service.preview_refund(paid.id)
    assert preview.tier == "full_refund"

    await order_service.cancel(paid.id, CancelOrderDTO(cancelled_by_user_id="traveler-1", reason="plans changed"))
    # 取消后再过 9 天才处理退款，仍按取消当下的档位计算
    clock.advance(days=9)
    assert (await order_service.preview_refund(paid.id)).refund_amount == preview.refund_amount

    refunded = await order_service.process_refund(paid.id)
    assert refunded.status == "refunded"
    assert refunded.refund_amount == preview.refund_amount == Decimal("1848.00")


@pytest.mark.asyncio
async def test_preview_before_cancel_is_not_binding_across_tier_boundary(order_service, clock):
    paid = await paid_order(order_service)
    shown = await order_service.preview_refund(paid.id)
    assert shown.tier == "full_refund"

    # 距服务 144 小时才取消，已落入半退档
    clock.advance(days=4)
    await order_service.cancel(paid.id, CancelOrderDTO(cancelled_by_user_id="traveler-1"))
    at_cancel = await order_service.preview_refund(paid.id)
    assert at_cancel.tier == "half_refund"

    refunded = await order_service.process_refund(paid.id)
    assert refunded.refund_amount == at_cancel.refund_amount == Decimal("924.00")
    assert refunded.refund_amount != shown.refund_amount


@pytest.mark.asyncio
async def test_late_cancellation_refunds_nothing(order_service, clock):
    paid = await paid_order(order_service)
    clock.advance(days=9, hours=-6)  # 距服务 30 小时
    await order_service.cancel(paid.id, CancelOrderDTO(cancelled_by_user_id="traveler-1"))
    refunded = await order_service.process_refund(paid.id)
    assert refunded.refund_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_declined_order_has_nothing_to_refund(order_service):
    order = await order_service.create_order(create_dto())
    declined = await order_service.decline(order.id, DeclineOrderDTO(reason="schedule conflict"))
    assert declined.status == "cancelled"
    assert declined.refund_amount is None
    refunded = await order_service.process_refund(order.id)
    assert refunded.refund_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_explicit_refund_amount_is_bounded(order_service):
    paid = await paid_order(order_service)
    await order_service.cancel(paid.id, CancelOrderDTO(cancelled_by_user_id="admin-1"))
    with pytest.raises(InvalidRefundAmountException):
        await order_service.process_refund(paid.id, Decimal("5000"))
    refunded = await order_service.process_refund(paid.id, Decimal("500"))
    assert refunded.refund_amount == Decimal("500.00")


@pytest.mark.asyncio
async def test_configured_refund_policy(uow_factory, clock):
    settings = OrderSettings(
        service_timezone="UTC",
        refund_policies={
            "generous": [
                RefundTierSettings(name="any_time", min_hours_before_service=-1000, refund_percentage=Decimal("90")),
            ]
        },
    )
    service = OrderApplicationService(uow_factory, order_settings=settings, clock=clock)
    order = await service.create_order(create_dto(cancellation_policy="generous"))
    assert order.cancellation_policy == "generous"
    await service.confirm(order.id)
    await service.record_payment(order.id, PAYMENT)
    clock.advance(days=10, hours=1)
    quote = await service.preview_refund(order.id)
    assert quote.refund_amount == Decimal("1663.20")


@pytest.mark.asyncio
async def test_dispute_from_in_progress(order_service, clock):
    paid = await paid_order(order_service)
    clock.advance(days=10)
    await order_service.start_service(paid.id)
    disputed = await order_service.dispute(paid.id)
    assert disputed.status == "disputed"
    with pytest.raises(InvalidTransitionException):
        await order_service.complete_service(paid.id)


@pytest.mark.asyncio
async def test_lookup_and_listing(order_service):
    a = await order_service.create_order(create_dto())
    b = await order_service.create_order(create_dto(traveler_id="traveler-2"))
    await order_service.confirm(b.id)

    assert (await order_service.get_order_by_number(a.order_number)).id == a.id

    items, total = await order_service.list_orders(traveler_id="traveler-2")
    assert total == 1 and items[0].id == b.id

    items, total = await order_service.list_orders(status="pending_confirmation")
    assert [o.id for o in items] == [a.id]

    items, total = await order_service.list_orders(limit=1)
    assert total == 2 and len(items) == 1


@pytest.mark.asyncio
async def test_missing_order(order_service):
    with pytest.raises(OrderNotFoundException):
        await order_service.get_order("missing")
    with pytest.raises(OrderNotFoundException):
        await order_service.confirm("missing")
    with pytest.raises(OrderNotFoundException):
        await order_service.get_order_by_number("GD-20240601-999")


@pytest.mark.asyncio
async def test_soft_delete_hides_order(order_service, order_store):
    order = await order_service.create_order(create_dto())
    await order_service.delete_order(order.id)
    assert order_store.rows[order.id].deleted_at is not None
    with pytest.raises(OrderNotFoundException):
        await order_service.get_order(order.id)
    items, total = await order_service.list_orders()
    assert total == 0 and items == []
    with pytest.raises(OrderNotFoundException):
        await order_service.delete_order(order.id)
