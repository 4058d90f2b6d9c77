"""
订单API路由 - FastAPI表现层

身份由外部认证服务确认，此处只接收请求体中的用户ID。
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_order_service
from application.dtos.common import PaginationParams
from application.dtos.orders import (
    CancelOrderDTO,
    CreateOrderDTO,
    DeclineOrderDTO,
    OrderResponseDTO,
    PaymentReportDTO,
    RefundOrderDTO,
    RefundQuoteDTO,
)
from application.services.order_service import OrderApplicationService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.order.entity import OrderStatus


router = APIRouter(
    prefix="/orders",
    tags=["订单管理"]
)


@router.post("", summary="创建订单", response_model=ApiResponse[OrderResponseDTO])
async def create_order(
    data: CreateOrderDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    旅客下单，订单进入待地陪确认状态

    - **rate_per_hour**: 下单时的服务单价（快照）
    - **duration_hours** / **participants_count**: 正整数
    - **cancellation_policy**: 退款政策名称，缺省使用配置的默认政策
    """
    order = await service.create_order(data)
    return success_response(data=order, message="Order created")


@router.get("", summary="订单列表", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def list_orders(
    params: PaginationParams = Depends(),
    traveler_id: Optional[str] = Query(None, description="按旅客筛选"),
    provider_id: Optional[str] = Query(None, description="按地陪筛选"),
    status: Optional[OrderStatus] = Query(None, description="按状态筛选"),
    service: OrderApplicationService = Depends(get_order_service),
):
    orders, total = await service.list_orders(
        traveler_id=traveler_id,
        provider_id=provider_id,
        status=status,
        skip=params.skip,
        limit=params.limit,
    )
    return paginated_response(items=orders, total=total, page=params.page, size=params.size)


@router.get("/by-number/{order_number}", summary="按订单号查询", response_model=ApiResponse[OrderResponseDTO])
async def get_order_by_number(
    order_number: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.get_order_by_number(order_number))


@router.get("/{order_id}", summary="订单详情", response_model=ApiResponse[OrderResponseDTO])
async def get_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.get_order(order_id))


@router.post("/{order_id}/confirm", summary="地陪接受", response_model=ApiResponse[OrderResponseDTO])
async def confirm_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.confirm(order_id), message="Order confirmed")


@router.post("/{order_id}/decline", summary="地陪拒绝", response_model=ApiResponse[OrderResponseDTO])
async def decline_order(
    order_id: str,
    data: Optional[DeclineOrderDTO] = None,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.decline(order_id, data), message="Order declined")


@router.post("/{order_id}/payment", summary="付款回报", response_model=ApiResponse[OrderResponseDTO])
async def report_payment(
    order_id: str,
    data: PaymentReportDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    支付方回调入口

    同一交易号重复投递时直接返回当前订单，不会重复记录付款。
    """
    return success_response(data=await service.record_payment(order_id, data), message="Payment recorded")


@router.post("/{order_id}/start", summary="开始服务", response_model=ApiResponse[OrderResponseDTO])
async def start_service(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.start_service(order_id), message="Service started")


@router.post("/{order_id}/complete", summary="完成服务", response_model=ApiResponse[OrderResponseDTO])
async def complete_service(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.complete_service(order_id), message="Service completed")


@router.post("/{order_id}/cancel", summary="取消订单", response_model=ApiResponse[OrderResponseDTO])
async def cancel_order(
    order_id: str,
    data: CancelOrderDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.cancel(order_id, data), message="Order cancelled")


@router.post("/{order_id}/refund", summary="执行退款", response_model=ApiResponse[OrderResponseDTO])
async def refund_order(
    order_id: str,
    data: Optional[RefundOrderDTO] = None,
    service: OrderApplicationService = Depends(get_order_service),
):
    """未指定金额时按取消时刻的退款政策计算"""
    amount = data.amount if data else None
    return success_response(data=await service.process_refund(order_id, amount), message="Refund processed")


@router.post("/{order_id}/dispute", summary="提出争议", response_model=ApiResponse[OrderResponseDTO])
async def dispute_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return success_response(data=await service.dispute(order_id), message="Order disputed")


@router.get("/{order_id}/refund-preview", summary="退款试算", response_model=ApiResponse[RefundQuoteDTO])
async def preview_refund(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    """
    退款试算

    未取消的订单按当前时刻试算，仅供参考：实际退款以取消时刻所在档位为准，
    跨过档位边界后再取消，金额会与此前看到的不同。已取消的订单返回取消时刻的结果，即实际退款金额。
    """
    return success_response(data=await service.preview_refund(order_id))


@router.delete("/{order_id}", summary="删除订单", response_model=ApiResponse[None])
async def delete_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    await service.delete_order(order_id)
    return success_response(message="Order deleted")
