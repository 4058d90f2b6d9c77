from decimal import Decimal

import pytest

from domain.common.exceptions import InvalidAmountException
from domain.order.pricing import FeeSchedule, OrderAmounts, compute_amounts, quantize_money


def test_compute_amounts_with_default_rates():
    amounts = compute_amounts(Decimal("440"), 4)
    assert amounts.service_amount == Decimal("1760.00")
    assert amounts.platform_fee == Decimal("88.00")
    assert amounts.total_amount == Decimal("1848.00")
    assert amounts.provider_commission == Decimal("264.00")
    assert amounts.provider_earning == Decimal("1496.00")


@pytest.mark.parametrize("rate,hours", [("333", 3), ("99.99", 7), ("1", 1), ("1234.56", 12)])
def test_amount_invariants_hold(rate, hours):
    a = compute_amounts(rate, hours)
    assert a.total_amount == a.service_amount + a.platform_fee
    assert a.provider_earning == a.service_amount - a.provider_commission
    assert Decimal("0") <= a.provider_commission <= a.service_amount


def test_rounding_is_half_up_to_cents():
    # 0.05 * 10.10 = 0.505 -> 0.51
    a = compute_amounts("10.10", 1)
    assert a.platform_fee == Decimal("0.51")
    assert quantize_money("2.345") == Decimal("2.35")


@pytest.mark.parametrize("rate,hours", [(0, 4), (-1, 4), (440, 0), (440, -2)])
def test_non_positive_inputs_rejected(rate, hours):
    with pytest.raises(InvalidAmountException):
        compute_amounts(rate, hours)


@pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, None])
def test_non_numeric_rate_rejected(value):
    with pytest.raises(InvalidAmountException):
        compute_amounts(value, 2)


def test_fee_schedule_is_injectable():
    schedule = FeeSchedule(platform_fee_rate=Decimal("0.10"), commission_rate=Decimal("0.20"))
    a = schedule.compute(Decimal("500"), 2)
    assert a.platform_fee == Decimal("100.00")
    assert a.total_amount == Decimal("1100.00")
    assert a.provider_commission == Decimal("200.00")
    assert a.provider_earning == Decimal("800.00")


@pytest.mark.parametrize("rate", ["-0.01", "1.5"])
def test_fee_schedule_rejects_rates_outside_unit_interval(rate):
    with pytest.raises(InvalidAmountException):
        FeeSchedule(platform_fee_rate=Decimal(rate))


def test_verify_detects_inconsistent_amounts():
    bad = OrderAmounts(
        service_amount=Decimal("100.00"),
        platform_fee=Decimal("5.00"),
        provider_commission=Decimal("15.00"),
        total_amount=Decimal("106.00"),
        provider_earning=Decimal("85.00"),
    )
    with pytest.raises(InvalidAmountException):
        bad.verify()
