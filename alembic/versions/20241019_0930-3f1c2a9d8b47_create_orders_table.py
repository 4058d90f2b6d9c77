"""create_orders_table

Revision ID: 3f1c2a9d8b47
Revises:
Create Date: 2024-10-19 09:30:12.418305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d8b47'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.Numeric(precision=10, scale=2)


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False, comment='订单ID (UUID)'),
        sa.Column('order_number', sa.String(length=21), nullable=False, comment='订单号 GD-YYYYMMDD-NNN'),
        sa.Column('version', sa.Integer(), nullable=False, comment='乐观锁版本号'),
        sa.Column('traveler_id', sa.String(length=64), nullable=False, comment='旅客ID'),
        sa.Column('provider_id', sa.String(length=64), nullable=False, comment='地陪ID'),
        sa.Column('service_id', sa.String(length=64), nullable=False, comment='服务ID'),
        sa.Column('service_date', sa.Date(), nullable=False, comment='服务日期'),
        sa.Column('service_time', sa.Time(), nullable=False, comment='服务开始时间'),
        sa.Column('service_timezone', sa.String(length=64), nullable=False, comment='服务时区'),
        sa.Column('duration_hours', sa.Integer(), nullable=False, comment='服务时长（小时）'),
        sa.Column('participants_count', sa.Integer(), nullable=False, comment='参与人数'),
        sa.Column('meeting_point', sa.JSON(), nullable=False, comment='会面地点'),
        sa.Column('special_requirements', sa.Text(), nullable=True, comment='特殊需求'),
        sa.Column('rate_per_hour', MONEY, nullable=False, comment='每小时单价快照'),
        sa.Column('service_amount', MONEY, nullable=False, comment='服务费用'),
        sa.Column('platform_fee', MONEY, nullable=False, comment='平台服务费'),
        sa.Column('provider_commission', MONEY, nullable=False, comment='平台抽成'),
        sa.Column('total_amount', MONEY, nullable=False, comment='旅客总付款'),
        sa.Column('provider_earning', MONEY, nullable=False, comment='地陪实收'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('status', sa.String(length=32), nullable=False, comment='订单状态'),
        sa.Column('refund_policy', sa.JSON(), nullable=False, comment='下单时快照的退款政策'),
        sa.Column('provider_response', sa.String(length=16), nullable=False, comment='地陪回应'),
        sa.Column('provider_decline_reason', sa.Text(), nullable=True, comment='拒绝原因'),
        sa.Column('provider_responded_at', sa.DateTime(timezone=True), nullable=True, comment='地陪回应时间'),
        sa.Column('payment_method', sa.String(length=50), nullable=True, comment='付款方式'),
        sa.Column('payment_provider', sa.String(length=50), nullable=True, comment='支付提供商'),
        sa.Column('payment_transaction_id', sa.String(length=200), nullable=True, comment='支付交易ID'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='付款时间'),
        sa.Column('service_started_at', sa.DateTime(timezone=True), nullable=True, comment='服务开始时间'),
        sa.Column('service_completed_at', sa.DateTime(timezone=True), nullable=True, comment='服务完成时间'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True, comment='取消时间'),
        sa.Column('cancelled_by_user_id', sa.String(length=64), nullable=True, comment='取消者ID'),
        sa.Column('cancellation_reason', sa.Text(), nullable=True, comment='取消原因'),
        sa.Column('refund_amount', MONEY, nullable=True, comment='退款金额'),
        sa.Column('refund_processed_at', sa.DateTime(timezone=True), nullable=True, comment='退款处理时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True, comment='删除时间（软删除）'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )

    # Create indexes
    op.create_index('ix_orders_traveler_id', 'orders', ['traveler_id'], unique=False)
    op.create_index('ix_orders_provider_id', 'orders', ['provider_id'], unique=False)
    op.create_index('ix_orders_service_id', 'orders', ['service_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_service_date', 'orders', ['service_date'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)


def downgrade() -> None:
    # Drop indexes
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_service_date', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_service_id', table_name='orders')
    op.drop_index('ix_orders_provider_id', table_name='orders')
    op.drop_index('ix_orders_traveler_id', table_name='orders')

    # Drop table
    op.drop_table('orders')
