"""Initial storefront schema

Revision ID: initial_storefront_schema
Revises:
Create Date: 2026-10-01 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_storefront_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = (
    "'processing','in-transit','delivered','cancelled',"
    "'refund-requested','refund-approved','refund-denied','refunded'"
)


def upgrade() -> None:
    """创建用户、商品、订单、退款、通知和 outbox 表"""

    op.create_table('users',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False, comment='姓名'),
        sa.Column('email', sa.Text(), nullable=False, comment='邮箱'),
        sa.Column('role', sa.Text(), nullable=False, comment='角色'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.CheckConstraint("role IN ('customer','product_manager','sales_manager')", name='ck_users_role'),
    )

    op.create_table('categories',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False, comment='分类名'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table('products',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False, comment='商品名'),
        sa.Column('category_id', sa.BigInteger(), nullable=True, comment='分类ID'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0', comment='当前售价'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0', comment='库存'),
        sa.Column('price_approved', sa.Boolean(), nullable=False, server_default=sa.true(), comment='售价是否已审批'),
        sa.Column('visible', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否上架'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
    )
    op.create_index('ix_products_category', 'products', ['category_id'])

    op.create_table('orders',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False, comment='下单用户'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, comment='订单总额'),
        sa.Column('status', sa.Text(), nullable=False, server_default='processing', comment='订单状态'),
        sa.Column('delivery_address', sa.Text(), nullable=True, comment='收货地址'),
        sa.Column('admin_note', sa.Text(), nullable=True, comment='管理员备注'),
        sa.Column('refund_reason', sa.Text(), nullable=True, comment='退款原因'),
        sa.Column('cancellation_reason', sa.Text(), nullable=True, comment='取消原因'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='下单时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True, comment='送达时间'),
        sa.Column('stock_restored_at', sa.DateTime(timezone=True), nullable=True, comment='库存回补时间'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(f'status IN ({ORDER_STATUSES})', name='ck_orders_status'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_user', 'orders', ['user_id'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table('order_items',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('order_id', sa.BigInteger(), nullable=False, comment='关联订单ID'),
        sa.Column('product_id', sa.BigInteger(), nullable=True, comment='商品ID'),
        sa.Column('product_name', sa.Text(), nullable=True, comment='下单时商品名'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, comment='单价快照'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
    )
    op.create_index('ix_order_items_order', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product', 'order_items', ['product_id'])

    op.create_table('payment_info',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('order_id', sa.BigInteger(), nullable=False, comment='关联订单ID'),
        sa.Column('card_holder', sa.Text(), nullable=False, comment='持卡人'),
        sa.Column('card_last4', sa.Text(), nullable=False, comment='卡号后四位'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )

    op.create_table('refund_requests',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('order_id', sa.BigInteger(), nullable=False, comment='关联订单ID'),
        sa.Column('user_id', sa.BigInteger(), nullable=False, comment='申请人'),
        sa.Column('reason', sa.Text(), nullable=False, comment='退款原因'),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending', comment='申请状态'),
        sa.Column('admin_note', sa.Text(), nullable=True, comment='审批备注'),
        sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='申请时间'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True, comment='批准时间'),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True, comment='审批时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('pending','approved','rejected')", name='ck_refund_requests_status'),
    )
    op.create_index('ix_refund_requests_order', 'refund_requests', ['order_id'])
    op.create_index('ix_refund_requests_status', 'refund_requests', ['status'])

    op.create_table('notifications',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False, comment='接收人'),
        sa.Column('type', sa.Text(), nullable=False, comment='通知类型'),
        sa.Column('message', sa.Text(), nullable=False, comment='通知内容'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='附加数据'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否已读'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'])

    op.create_table('outbox_events',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('idempotency_key', sa.Text(), nullable=False, comment='幂等键'),
        sa.Column('topic', sa.Text(), nullable=False, comment='事件主题'),
        sa.Column('payload', sa.JSON(), nullable=False, comment='事件内容'),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending', comment='投递状态'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0', comment='已尝试次数'),
        sa.Column('last_error', sa.Text(), nullable=True, comment='最近一次错误'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True, comment='投递成功时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_outbox_events_idempotency_key'),
        sa.CheckConstraint("status IN ('pending','delivered','failed')", name='ck_outbox_events_status'),
    )
    op.create_index('ix_outbox_events_status_created', 'outbox_events', ['status', 'created_at'])


def downgrade() -> None:
    """按依赖倒序删除"""
    op.drop_index('ix_outbox_events_status_created', table_name='outbox_events')
    op.drop_table('outbox_events')
    op.drop_index('ix_notifications_user_read', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_refund_requests_status', table_name='refund_requests')
    op.drop_index('ix_refund_requests_order', table_name='refund_requests')
    op.drop_table('refund_requests')
    op.drop_table('payment_info')
    op.drop_index('ix_order_items_product', table_name='order_items')
    op.drop_index('ix_order_items_order', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_user', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_products_category', table_name='products')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('users')
