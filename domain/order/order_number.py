"""
订单号生成 - 格式 <PREFIX>-<YYYYMMDD>-<3位序号>

序号只需局部唯一；全局唯一由仓储的唯一约束确认，冲突时由应用层重新生成。
"""
from __future__ import annotations

import random
import re
from datetime import date, datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException


MAX_PREFIX_LENGTH = 8
# 前缀 + "-" + YYYYMMDD + "-" + 3 位序号
MAX_ORDER_NUMBER_LENGTH = MAX_PREFIX_LENGTH + 1 + 8 + 1 + 3

ORDER_NUMBER_PATTERN = re.compile(
    rf"^(?P<prefix>[A-Z]{{1,{MAX_PREFIX_LENGTH}}})-(?P<date>\d{{8}})-(?P<seq>\d{{3}})$"
)


class OrderNumberGenerator:
    """订单号生成器"""

    def __init__(self, prefix: str = "GD", *, rng: Optional[random.Random] = None) -> None:
        prefix = (prefix or "").upper()
        if not re.fullmatch(rf"[A-Z]{{1,{MAX_PREFIX_LENGTH}}}", prefix):
            raise DomainValidationException(
                f"Order number prefix must be 1-{MAX_PREFIX_LENGTH} letters",
                field="order_number_prefix",
                details={"prefix": prefix},
            )
        self.prefix = prefix
        self._rng = rng or random.SystemRandom()

    def generate(self, on: Optional[date] = None) -> str:
        if on is None:
            on = datetime.now(timezone.utc).date()
        elif isinstance(on, datetime):
            on = on.astimezone(timezone.utc).date() if on.tzinfo else on.date()
        return f"{self.prefix}-{on:%Y%m%d}-{self._rng.randrange(1000):03d}"


def is_valid_order_number(value: str) -> bool:
    return bool(value) and ORDER_NUMBER_PATTERN.match(value) is not None
