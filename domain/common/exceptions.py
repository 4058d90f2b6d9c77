"""订单领域异常

每个异常携带 BusinessCode；HTTP 状态映射在 core.exceptions 中完成，领域层不依赖 core。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None, *, order_number: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if order_number is not None:
            details["order_number"] = order_number
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details or None,
        )


class InvalidTransitionException(BusinessException):
    """状态机拒绝的转换：携带尝试的操作与当前状态"""

    def __init__(self, operation, current_status):
        self.operation = getattr(operation, "value", operation)
        self.current_status = getattr(current_status, "value", current_status)
        super().__init__(
            code=BusinessCode.ORDER_INVALID_TRANSITION,
            message=f"Cannot {self.operation} an order in status {self.current_status}",
            error_type="InvalidTransition",
            details={"operation": self.operation, "current_status": self.current_status},
            field="status",
        )


class InvalidAmountException(BusinessException):
    def __init__(self, message: str, *, field: Optional[str] = None, value=None):
        details = {"value": str(value)} if value is not None else None
        super().__init__(
            code=BusinessCode.ORDER_INVALID_AMOUNT,
            message=message,
            error_type="InvalidAmount",
            details=details,
            field=field,
        )


class InvalidPaymentDataException(BusinessException):
    def __init__(self, missing: list[str]):
        super().__init__(
            code=BusinessCode.ORDER_INVALID_PAYMENT_DATA,
            message=f"Payment data is incomplete: {', '.join(missing)}",
            error_type="InvalidPaymentData",
            details={"missing": missing},
            field=missing[0] if missing else None,
        )


class InvalidRefundAmountException(BusinessException):
    def __init__(self, amount: Decimal, total_amount: Decimal):
        super().__init__(
            code=BusinessCode.ORDER_INVALID_REFUND_AMOUNT,
            message=f"Refund amount {amount} is outside [0, {total_amount}]",
            error_type="InvalidRefundAmount",
            details={"amount": str(amount), "total_amount": str(total_amount)},
            field="amount",
        )


class PrematureStartException(BusinessException):
    def __init__(self, scheduled_at, attempted_at):
        super().__init__(
            code=BusinessCode.ORDER_PREMATURE_START,
            message="Service cannot start before its scheduled time",
            error_type="PrematureStart",
            details={
                "scheduled_at": scheduled_at.isoformat(),
                "attempted_at": attempted_at.isoformat(),
            },
        )


class OrderNumberConflictException(BusinessException):
    def __init__(self, order_number: str):
        super().__init__(
            code=BusinessCode.ORDER_NUMBER_CONFLICT,
            message=f"Order number {order_number} already exists",
            error_type="OrderNumberConflict",
            details={"order_number": order_number},
            field="order_number",
        )


class ConcurrentOrderUpdateException(BusinessException):
    def __init__(self, order_id: str, expected_version: int):
        super().__init__(
            code=BusinessCode.ORDER_CONCURRENT_UPDATE,
            message="Order was modified concurrently",
            error_type="ConcurrentOrderUpdate",
            details={"order_id": order_id, "expected_version": expected_version},
        )
