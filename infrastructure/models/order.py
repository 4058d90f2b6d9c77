"""
订单表 orders 的 ORM 映射
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, Time, Text, JSON, Index
)
from datetime import datetime, timezone

from domain.order.order_number import MAX_ORDER_NUMBER_LENGTH

from .base import Base


class OrderModel(Base):
    """订单行；金额、退款政策快照与乐观锁版本号都落在同一行，业务规则见 domain.order.entity.Order"""
    __tablename__ = "orders"

    # 主键
    id = Column(String(36), primary_key=True, comment="订单ID (UUID)")
    order_number = Column(String(MAX_ORDER_NUMBER_LENGTH), unique=True, nullable=False, comment="订单号 GD-YYYYMMDD-NNN")
    version = Column(Integer, nullable=False, default=0, comment="乐观锁版本号")

    # 关联方
    traveler_id = Column(String(64), nullable=False, comment="旅客ID")
    provider_id = Column(String(64), nullable=False, comment="地陪ID")
    service_id = Column(String(64), nullable=False, comment="服务ID")

    # 服务详情（快照）
    service_date = Column(Date, nullable=False, comment="服务日期")
    service_time = Column(Time, nullable=False, comment="服务开始时间")
    service_timezone = Column(String(64), nullable=False, default="Asia/Taipei", comment="服务时区")
    duration_hours = Column(Integer, nullable=False, comment="服务时长（小时）")
    participants_count = Column(Integer, nullable=False, default=1, comment="参与人数")
    meeting_point = Column(JSON, nullable=False, comment="会面地点")
    special_requirements = Column(Text, nullable=True, comment="特殊需求")
    rate_per_hour = Column(Numeric(precision=10, scale=2), nullable=False, comment="每小时单价快照")

    # 金额
    service_amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="服务费用")
    platform_fee = Column(Numeric(precision=10, scale=2), nullable=False, comment="平台服务费")
    provider_commission = Column(Numeric(precision=10, scale=2), nullable=False, comment="平台抽成")
    total_amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="旅客总付款")
    provider_earning = Column(Numeric(precision=10, scale=2), nullable=False, comment="地陪实收")
    currency = Column(String(3), nullable=False, default="TWD", comment="货币代码 ISO-4217")

    # 状态
    status = Column(String(32), nullable=False, default="pending_confirmation", comment="订单状态")
    refund_policy = Column(JSON, nullable=False, comment="下单时快照的退款政策")

    # 地陪回应
    provider_response = Column(String(16), nullable=False, default="pending", comment="地陪回应")
    provider_decline_reason = Column(Text, nullable=True, comment="拒绝原因")
    provider_responded_at = Column(DateTime(timezone=True), nullable=True, comment="地陪回应时间")

    # 付款资讯
    payment_method = Column(String(50), nullable=True, comment="付款方式")
    payment_provider = Column(String(50), nullable=True, comment="支付提供商")
    payment_transaction_id = Column(String(200), nullable=True, comment="支付交易ID")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="付款时间")

    # 服务执行
    service_started_at = Column(DateTime(timezone=True), nullable=True, comment="服务开始时间")
    service_completed_at = Column(DateTime(timezone=True), nullable=True, comment="服务完成时间")

    # 取消与退款
    cancelled_at = Column(DateTime(timezone=True), nullable=True, comment="取消时间")
    cancelled_by_user_id = Column(String(64), nullable=True, comment="取消者ID")
    cancellation_reason = Column(Text, nullable=True, comment="取消原因")
    refund_amount = Column(Numeric(precision=10, scale=2), nullable=True, comment="退款金额")
    refund_processed_at = Column(DateTime(timezone=True), nullable=True, comment="退款处理时间")

    # 系统字段
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True, comment="删除时间（软删除）")

    # 索引
    __table_args__ = (
        Index("ix_orders_traveler_id", "traveler_id"),
        Index("ix_orders_provider_id", "provider_id"),
        Index("ix_orders_service_id", "service_id"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_service_date", "service_date"),
        Index("ix_orders_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id='{self.id}', order_number='{self.order_number}', "
            f"status='{self.status}', total_amount={self.total_amount})>"
        )
