import random
from datetime import date, datetime, timedelta, timezone

import pytest

from domain.common.exceptions import DomainValidationException
from domain.order.order_number import (
    MAX_ORDER_NUMBER_LENGTH,
    MAX_PREFIX_LENGTH,
    OrderNumberGenerator,
    is_valid_order_number,
)
from infrastructure.models.order import OrderModel


def test_format_uses_prefix_date_and_three_digits():
    gen = OrderNumberGenerator(rng=random.Random(7))
    number = gen.generate(date(2024, 3, 9))
    prefix, day, seq = number.split("-")
    assert prefix == "GD"
    assert day == "20240309"
    assert len(seq) == 3 and seq.isdigit()
    assert is_valid_order_number(number)


def test_datetime_is_converted_to_utc_date():
    gen = OrderNumberGenerator(rng=random.Random(1))
    # 台北 2024-03-10 01:00 仍是 UTC 2024-03-09
    taipei = timezone(timedelta(hours=8))
    number = gen.generate(datetime(2024, 3, 10, 1, 0, tzinfo=taipei))
    assert number.split("-")[1] == "20240309"


def test_custom_prefix_is_uppercased():
    assert OrderNumberGenerator("ab").generate(date(2024, 1, 1)).startswith("AB-20240101-")


@pytest.mark.parametrize("prefix", ["", "G1", "TOOLONGPREFIX", "G-D"])
def test_invalid_prefix_rejected(prefix):
    with pytest.raises(DomainValidationException) as exc_info:
        OrderNumberGenerator(prefix)
    assert exc_info.value.field == "order_number_prefix"


def test_longest_number_fits_order_number_column():
    number = OrderNumberGenerator("A" * MAX_PREFIX_LENGTH).generate(date(2024, 6, 1))
    assert len(number) == MAX_ORDER_NUMBER_LENGTH
    assert is_valid_order_number(number)
    assert OrderModel.__table__.c.order_number.type.length >= len(number)


@pytest.mark.parametrize("value", ["", "GD-2024-001", "gd-20240101-001", "GD-20240101-1", "GD-20240101-0001"])
def test_invalid_numbers(value):
    assert not is_valid_order_number(value)
