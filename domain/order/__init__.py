"""Order domain exports."""
from .entity import (
    MeetingPoint,
    Order,
    OrderOperation,
    OrderStatus,
    ORDER_TRANSITIONS,
    ProviderResponse,
    preview_refund,
    transition,
)
from .order_number import OrderNumberGenerator
from .pricing import FeeSchedule, OrderAmounts, compute_amounts
from .refund_policy import (
    DEFAULT_REFUND_POLICIES,
    RefundPolicy,
    RefundQuote,
    RefundTier,
    STANDARD_POLICY,
    compute_refund_amount,
)
from .repository import OrderRepository
from .service import create_order

__all__ = [
    "MeetingPoint",
    "Order",
    "OrderOperation",
    "OrderStatus",
    "ORDER_TRANSITIONS",
    "ProviderResponse",
    "preview_refund",
    "transition",
    "OrderNumberGenerator",
    "FeeSchedule",
    "OrderAmounts",
    "compute_amounts",
    "DEFAULT_REFUND_POLICIES",
    "RefundPolicy",
    "RefundQuote",
    "RefundTier",
    "STANDARD_POLICY",
    "compute_refund_amount",
    "OrderRepository",
    "create_order",
]
