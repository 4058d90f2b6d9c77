"""
业务码：BusinessException 与 API 响应信封共用的唯一来源。

分段：0 成功；1xxxx 参数；2xxxx 业务（201xx 订单）；4xxxx 系统。
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    PARAM_VALIDATION_ERROR = 10003

    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006

    ORDER_NOT_FOUND = 20100
    ORDER_INVALID_TRANSITION = 20101
    ORDER_INVALID_AMOUNT = 20102
    ORDER_INVALID_PAYMENT_DATA = 20103
    ORDER_INVALID_REFUND_AMOUNT = 20104
    ORDER_PREMATURE_START = 20105
    ORDER_NUMBER_CONFLICT = 20106
    ORDER_CONCURRENT_UPDATE = 20107

    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
