"""
订单领域事件

记录订单生命周期中的重要事实，供下游（通知、投影等）处理。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: str
    order_number: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderCreated(OrderEvent):
    traveler_id: str = ""
    provider_id: str = ""
    total_amount: str = ""


@dataclass
class OrderTransitioned(OrderEvent):
    """状态转换事件"""
    operation: str = ""
    from_status: str = ""
    to_status: str = ""


@dataclass
class OrderPaymentDuplicate(OrderEvent):
    """重复的付款回报（已处理过，忽略）"""
    transaction_id: Optional[str] = None
