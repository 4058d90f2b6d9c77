"""
全局异常处理：业务码 -> HTTP 状态，统一错误信封
"""
import traceback
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logging_config import get_logger
from core.response import error_response
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


logger = get_logger(__name__)


HTTP_STATUS_BY_CODE = {
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.ORDER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    # 当前状态不允许该操作：与资源状态冲突
    BusinessCode.ORDER_INVALID_TRANSITION: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_PREMATURE_START: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_NUMBER_CONFLICT: http_status.HTTP_409_CONFLICT,
    BusinessCode.ORDER_CONCURRENT_UPDATE: http_status.HTTP_409_CONFLICT,
    # 请求内容本身不合法
    BusinessCode.ORDER_INVALID_AMOUNT: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.ORDER_INVALID_PAYMENT_DATA: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.ORDER_INVALID_REFUND_AMOUNT: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
}

CODE_BY_HTTP_STATUS = {
    404: BusinessCode.NOT_FOUND,
    405: BusinessCode.BUSINESS_ERROR,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def http_status_for(code: int) -> int:
    """未登记的业务码按 400 处理"""
    return HTTP_STATUS_BY_CODE.get(code, http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _json(status_code: int, response, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(BusinessException)
    async def handle_business_exception(request: Request, exc: BusinessException):
        status_code = http_status_for(exc.code)
        logger.info("business_exception", code=int(exc.code), error_type=exc.error_type, status_code=status_code)
        return _json(status_code, error_response(
            exc.code,
            exc.message,
            exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=_request_id(request),
        ))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        first = errors[0] if errors else {}
        # loc 首段是 body/query/path
        field = ".".join(str(part) for part in first.get("loc", [])[1:]) or None
        return _json(http_status.HTTP_422_UNPROCESSABLE_ENTITY, error_response(
            BusinessCode.PARAM_VALIDATION_ERROR,
            f"Validation failed: {first.get('msg', 'unknown')}",
            "ValidationError",
            details={"errors": errors},
            field=field,
            request_id=_request_id(request),
        ))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = CODE_BY_HTTP_STATUS.get(exc.status_code, BusinessCode.SYSTEM_ERROR)
        return _json(exc.status_code, error_response(
            code,
            str(exc.detail),
            "HTTPError",
            details={"status_code": exc.status_code},
            request_id=_request_id(request),
        ), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.error("unhandled_exception", request_id=request_id, error=str(exc), exc_info=True)
        details = {"exception": str(exc), "traceback": traceback.format_exc()} if app.debug else None
        return _json(http_status.HTTP_500_INTERNAL_SERVER_ERROR, error_response(
            BusinessCode.SYSTEM_ERROR,
            "Internal server error",
            "SystemError",
            details=details,
            request_id=request_id,
        ))
