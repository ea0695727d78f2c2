"""
Alembic migration: Create catalog, customer, coupon and order tables.

Creates the products table read at checkout, users with their saved
addresses, coupons with their redemption counters, and orders with their
item snapshots and status history. Money columns are NUMERIC(12, 2) and
the order totals identity is enforced by a check constraint.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the storefront schema."""
    op.create_table(
        'products',
        _id_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(32), nullable=False, server_default='USD'),
        sa.Column('thumbnail', sa.String(500), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )
    op.create_index('ix_products_is_active', 'products', ['is_active'])

    op.create_table(
        'users',
        _id_column(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('role', sa.String(32), nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.CheckConstraint('length(email) >= 3', name='ck_users_email_min_length'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'user_addresses',
        _id_column(),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('kind', sa.String(32), nullable=False, server_default='home'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=False),
        sa.Column('address', sa.String(500), nullable=False),
        sa.Column('city', sa.String(120), nullable=False),
        sa.Column('state', sa.String(120), nullable=False),
        sa.Column('postal_code', sa.String(20), nullable=False),
        sa.Column('country', sa.String(120), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamp_columns(),
    )
    op.create_index('ix_user_addresses_user_id', 'user_addresses', ['user_id'])

    op.create_table(
        'coupons',
        _id_column(),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('discount_kind', sa.String(32), nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_subtotal', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamp_columns(),
        sa.CheckConstraint('value >= 0', name='ck_coupons_value_non_negative'),
        sa.CheckConstraint(
            "discount_kind <> 'percent' OR value <= 100",
            name='ck_coupons_percent_max_100',
        ),
        sa.CheckConstraint(
            'min_subtotal IS NULL OR min_subtotal >= 0',
            name='ck_coupons_min_subtotal_non_negative',
        ),
        sa.CheckConstraint(
            'max_discount IS NULL OR max_discount >= 0',
            name='ck_coupons_max_discount_non_negative',
        ),
        sa.CheckConstraint(
            'usage_limit IS NULL OR usage_limit >= 0',
            name='ck_coupons_usage_limit_non_negative',
        ),
        sa.CheckConstraint('used_count >= 0', name='ck_coupons_used_count_non_negative'),
        sa.CheckConstraint(
            'usage_limit IS NULL OR used_count <= usage_limit',
            name='ck_coupons_used_count_within_limit',
        ),
        sa.CheckConstraint('valid_until >= valid_from', name='ck_coupons_valid_range'),
        sa.CheckConstraint('code = upper(code)', name='ck_coupons_code_upper'),
    )
    op.create_index(
        'ix_coupons_active_valid', 'coupons', ['is_active', 'valid_from', 'valid_until']
    )
    op.create_index(
        'uq_coupons_code_upper', 'coupons', [sa.text('upper(code)')], unique=True
    )

    op.create_table(
        'orders',
        _id_column(),
        sa.Column('order_number', sa.String(20), nullable=False, unique=True),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('users.id', ondelete='RESTRICT'),
            nullable=True,
        ),
        sa.Column('is_guest', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('guest_name', sa.String(255), nullable=True),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('guest_phone', sa.String(32), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('shipping_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('grand_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(32), nullable=False, server_default='USD'),
        sa.Column('address', postgresql.JSONB(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('payment_provider', sa.String(32), nullable=False),
        sa.Column('payment_status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('payment_transaction_id', sa.String(255), nullable=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True),
        sa.Column(
            'coupon_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('coupons.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('coupon_code', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamp_columns(),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('discount_total >= 0', name='ck_orders_discount_non_negative'),
        sa.CheckConstraint('shipping_fee >= 0', name='ck_orders_shipping_non_negative'),
        sa.CheckConstraint('grand_total >= 0', name='ck_orders_grand_total_non_negative'),
        sa.CheckConstraint(
            'grand_total = subtotal - discount_total + shipping_fee',
            name='ck_orders_grand_total_formula',
        ),
        sa.CheckConstraint(
            '(is_guest AND user_id IS NULL AND guest_email IS NOT NULL) OR '
            '(NOT is_guest AND user_id IS NOT NULL)',
            name='ck_orders_customer_exclusive',
        ),
        comment='Customer orders',
    )
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])
    op.create_index('ix_orders_guest_email', 'orders', ['guest_email'])
    op.create_index('ix_orders_guest_phone', 'orders', ['guest_phone'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_items',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('thumbnail', sa.String(500), nullable=True),
        sa.Column('variant', sa.String(100), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_order_items_unit_price_non_negative'),
        sa.CheckConstraint(
            'line_total = unit_price * quantity', name='ck_order_items_line_total'
        ),
        comment='Immutable price snapshots of ordered products',
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_status_history',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('at', sa.DateTime(timezone=True), nullable=False),
        comment='Status transitions of orders, oldest first',
    )
    op.create_index(
        'ix_order_status_history_order_seq',
        'order_status_history',
        ['order_id', 'sequence'],
        unique=True,
    )


def downgrade() -> None:
    """Drop the storefront schema."""
    op.drop_index('ix_order_status_history_order_seq', table_name='order_status_history')
    op.drop_table('order_status_history')

    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_guest_phone', table_name='orders')
    op.drop_index('ix_orders_guest_email', table_name='orders')
    op.drop_index('ix_orders_user_created', table_name='orders')
    op.drop_table('orders')

    op.drop_index('uq_coupons_code_upper', table_name='coupons')
    op.drop_index('ix_coupons_active_valid', table_name='coupons')
    op.drop_table('coupons')

    op.drop_index('ix_user_addresses_user_id', table_name='user_addresses')
    op.drop_table('user_addresses')

    op.drop_index('ix_users_role_active', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    op.drop_index('ix_products_is_active', table_name='products')
    op.drop_table('products')
