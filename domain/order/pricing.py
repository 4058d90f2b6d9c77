"""
订单金额计算 - 服务费用、平台服务费、平台抽成、地陪实收

纯函数，无副作用；费率通过 FeeSchedule 注入，不在计算逻辑中写死。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from domain.common.exceptions import InvalidAmountException


CURRENCY_QUANTUM = Decimal("0.01")

DEFAULT_PLATFORM_FEE_RATE = Decimal("0.05")  # 旅客支付的平台服务费
DEFAULT_COMMISSION_RATE = Decimal("0.15")    # 从地陪收入中扣除的平台抽成


def to_decimal(value, *, field: str = "amount") -> Decimal:
    """把 int/str/float/Decimal 统一转换为 Decimal（float 经 str 转换避免二进制误差）"""
    if isinstance(value, bool):
        raise InvalidAmountException(f"{field} must be a number", field=field, value=value)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountException(f"{field} must be a number", field=field, value=value)
    if not result.is_finite():
        raise InvalidAmountException(f"{field} must be finite", field=field, value=value)
    return result


def quantize_money(value) -> Decimal:
    """按货币精度（2位小数）四舍五入（ROUND_HALF_UP）"""
    return to_decimal(value).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def _validate_rate(rate, field: str) -> Decimal:
    rate = to_decimal(rate, field=field)
    if rate < 0 or rate > 1:
        raise InvalidAmountException(f"{field} must be within [0, 1]", field=field, value=rate)
    return rate


@dataclass(frozen=True)
class OrderAmounts:
    """一次计算得到的全部金额字段"""

    service_amount: Decimal
    platform_fee: Decimal
    provider_commission: Decimal
    total_amount: Decimal
    provider_earning: Decimal

    def verify(self) -> "OrderAmounts":
        """
        业务规则：
        1. total_amount == service_amount + platform_fee
        2. provider_earning == service_amount - provider_commission
        3. 0 <= platform_fee, 0 <= provider_commission <= service_amount
        """
        for name in ("service_amount", "platform_fee", "provider_commission", "total_amount", "provider_earning"):
            if getattr(self, name) < 0:
                raise InvalidAmountException(f"{name} must not be negative", field=name, value=getattr(self, name))
        if self.provider_commission > self.service_amount:
            raise InvalidAmountException(
                "provider_commission exceeds service_amount",
                field="provider_commission",
                value=self.provider_commission,
            )
        if self.total_amount != self.service_amount + self.platform_fee:
            raise InvalidAmountException(
                "total_amount must equal service_amount + platform_fee",
                field="total_amount",
                value=self.total_amount,
            )
        if self.provider_earning != self.service_amount - self.provider_commission:
            raise InvalidAmountException(
                "provider_earning must equal service_amount - provider_commission",
                field="provider_earning",
                value=self.provider_earning,
            )
        return self


def compute_amounts(
    rate_per_hour,
    duration_hours,
    platform_fee_rate=DEFAULT_PLATFORM_FEE_RATE,
    commission_rate=DEFAULT_COMMISSION_RATE,
) -> OrderAmounts:
    """
    计算订单金额

    service_amount = rate_per_hour × duration_hours
    platform_fee = service_amount × platform_fee_rate
    total_amount = service_amount + platform_fee
    provider_commission = service_amount × commission_rate
    provider_earning = service_amount - provider_commission
    """
    rate = to_decimal(rate_per_hour, field="rate_per_hour")
    if rate <= 0:
        raise InvalidAmountException("rate_per_hour must be positive", field="rate_per_hour", value=rate)
    duration = to_decimal(duration_hours, field="duration_hours")
    if duration <= 0:
        raise InvalidAmountException("duration_hours must be positive", field="duration_hours", value=duration)
    fee_rate = _validate_rate(platform_fee_rate, "platform_fee_rate")
    commission = _validate_rate(commission_rate, "commission_rate")

    service_amount = quantize_money(rate * duration)
    platform_fee = quantize_money(service_amount * fee_rate)
    provider_commission = quantize_money(service_amount * commission)

    return OrderAmounts(
        service_amount=service_amount,
        platform_fee=platform_fee,
        provider_commission=provider_commission,
        total_amount=service_amount + platform_fee,
        provider_earning=service_amount - provider_commission,
    ).verify()


@dataclass(frozen=True)
class FeeSchedule:
    """平台费率配置（可由 OrderSettings 注入）"""

    platform_fee_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE
    commission_rate: Decimal = DEFAULT_COMMISSION_RATE

    def __post_init__(self):
        object.__setattr__(self, "platform_fee_rate", _validate_rate(self.platform_fee_rate, "platform_fee_rate"))
        object.__setattr__(self, "commission_rate", _validate_rate(self.commission_rate, "commission_rate"))

    def compute(self, rate_per_hour, duration_hours) -> OrderAmounts:
        return compute_amounts(
            rate_per_hour,
            duration_hours,
            platform_fee_rate=self.platform_fee_rate,
            commission_rate=self.commission_rate,
        )
