"""
取消退款政策引擎

根据距离服务开始的小时数，按有序、具名的退款档位计算退款金额。
退款预览与实际退款使用同一计算，金额不会出现偏差。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import DomainValidationException
from .pricing import quantize_money, to_decimal


@dataclass(frozen=True)
class RefundTier:
    """退款档位：距服务开始至少 min_hours_before_service 小时取消，退 refund_percentage%"""

    name: str
    min_hours_before_service: float
    refund_percentage: Decimal
    processing_fee: Decimal = Decimal("0")

    def __post_init__(self):
        object.__setattr__(self, "min_hours_before_service", float(self.min_hours_before_service))
        pct = to_decimal(self.refund_percentage, field="refund_percentage")
        if pct < 0 or pct > 100:
            raise DomainValidationException(
                f"refund_percentage must be within [0, 100]: {pct}",
                field="refund_percentage",
            )
        object.__setattr__(self, "refund_percentage", pct)
        fee = quantize_money(self.processing_fee)
        if fee < 0:
            raise DomainValidationException(
                f"processing_fee must not be negative: {fee}",
                field="processing_fee",
            )
        object.__setattr__(self, "processing_fee", fee)

    def matches(self, hours_until_service: float) -> bool:
        return hours_until_service >= self.min_hours_before_service

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "min_hours_before_service": self.min_hours_before_service,
            "refund_percentage": str(self.refund_percentage),
            "processing_fee": str(self.processing_fee),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RefundTier":
        return cls(
            name=data["name"],
            min_hours_before_service=data["min_hours_before_service"],
            refund_percentage=Decimal(str(data["refund_percentage"])),
            processing_fee=Decimal(str(data.get("processing_fee", "0"))),
        )


@dataclass(frozen=True)
class RefundQuote:
    """退款试算结果"""

    total_amount: Decimal
    hours_until_service: float
    tier: Optional[str]
    refund_percentage: Decimal
    processing_fee: Decimal
    refund_amount: Decimal


@dataclass(frozen=True)
class RefundPolicy:
    """
    具名退款政策 - 有序档位表

    业务规则：
    1. 档位按门槛小时数降序评估，第一个命中的档位生效
    2. 门槛越低，退款比例不得上升、手续费不得下降（保证退款随时间单调不增）
    3. 未命中任何档位时不退款
    """

    name: str
    tiers: tuple[RefundTier, ...] = field(default_factory=tuple)

    def __post_init__(self):
        ordered = tuple(sorted(self.tiers, key=lambda t: t.min_hours_before_service, reverse=True))
        for higher, lower in zip(ordered, ordered[1:]):
            if higher.min_hours_before_service == lower.min_hours_before_service:
                raise DomainValidationException(
                    f"Duplicate refund tier threshold {lower.min_hours_before_service}h in policy {self.name}",
                    field="tiers",
                )
            if lower.refund_percentage > higher.refund_percentage or lower.processing_fee < higher.processing_fee:
                raise DomainValidationException(
                    f"Refund tier {lower.name} is more generous than {higher.name} in policy {self.name}",
                    field="tiers",
                )
        object.__setattr__(self, "tiers", ordered)

    def tier_for(self, hours_until_service: float) -> Optional[RefundTier]:
        for tier in self.tiers:
            if tier.matches(hours_until_service):
                return tier
        return None

    def quote(self, total_amount, service_datetime: datetime, now: datetime) -> RefundQuote:
        total = quantize_money(total_amount)
        if total < 0:
            raise DomainValidationException(f"total_amount must not be negative: {total}", field="total_amount")
        hours = hours_between(now, service_datetime)
        tier = self.tier_for(hours)
        if tier is None:
            return RefundQuote(
                total_amount=total,
                hours_until_service=hours,
                tier=None,
                refund_percentage=Decimal("0"),
                processing_fee=Decimal("0.00"),
                refund_amount=Decimal("0.00"),
            )
        gross = quantize_money(total * tier.refund_percentage / Decimal(100))
        amount = min(max(gross - tier.processing_fee, Decimal("0.00")), total)
        return RefundQuote(
            total_amount=total,
            hours_until_service=hours,
            tier=tier.name,
            refund_percentage=tier.refund_percentage,
            processing_fee=tier.processing_fee,
            refund_amount=amount,
        )

    def to_dict(self) -> dict:
        return {"name": self.name, "tiers": [t.to_dict() for t in self.tiers]}

    @classmethod
    def from_dict(cls, data: dict) -> "RefundPolicy":
        return cls(
            name=data["name"],
            tiers=tuple(RefundTier.from_dict(t) for t in data.get("tiers", [])),
        )


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def hours_between(now: datetime, service_datetime: datetime) -> float:
    """距服务开始的小时数，已过开始时间时为负数"""
    return (_as_utc(service_datetime) - _as_utc(now)).total_seconds() / 3600


STANDARD_POLICY = RefundPolicy(
    name="standard",
    tiers=(
        RefundTier("full_refund", 168, Decimal("100")),  # 7天前
        RefundTier("half_refund", 48, Decimal("50")),    # 48小时前
    ),
)

FLEXIBLE_POLICY = RefundPolicy(
    name="flexible",
    tiers=(
        RefundTier("full_refund", 48, Decimal("100")),
        RefundTier("most_refund", 24, Decimal("80"), Decimal("50")),
        RefundTier("half_refund", 12, Decimal("50"), Decimal("100")),
        RefundTier("late_refund", 0, Decimal("25"), Decimal("150")),
    ),
)

STRICT_POLICY = RefundPolicy(
    name="strict",
    tiers=(
        RefundTier("full_refund", 168, Decimal("100")),
        RefundTier("half_refund", 72, Decimal("50"), Decimal("200")),
    ),
)

DEFAULT_REFUND_POLICIES: dict[str, RefundPolicy] = {
    p.name: p for p in (STANDARD_POLICY, FLEXIBLE_POLICY, STRICT_POLICY)
}


def compute_refund_amount(
    total_amount,
    service_datetime: datetime,
    now: datetime,
    policy: RefundPolicy = STANDARD_POLICY,
) -> Decimal:
    """按政策计算退款金额，结果满足 0 <= result <= total_amount"""
    return policy.quote(total_amount, service_datetime, now).refund_amount
