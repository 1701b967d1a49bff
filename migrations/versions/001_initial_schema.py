"""
Alembic migration: Initial food ordering schema.

Creates users, menu items, vouchers, payment methods, orders and order
items with their enum types, indexes and integrity constraints.

Revision ID: 001
Revises:
Create Date: 2025-01-06 09:12:41.530214
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
    return sa.Column(
        'id',
        postgresql.UUID(as_uuid=True),
        nullable=False,
        server_default=sa.text('gen_random_uuid()'),
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Create the food ordering schema.

    Order and payment statuses are PostgreSQL enums; stock, ratings and
    amounts are guarded by check constraints.
    """
    op.execute("CREATE TYPE user_role AS ENUM ('user', 'admin')")
    op.execute("CREATE TYPE payment_method_type AS ENUM ('cod', 'zalopay')")
    op.execute("""
        CREATE TYPE order_status AS ENUM (
            'pending',
            'processing',
            'success',
            'cancelled'
        )
    """)
    op.execute("""
        CREATE TYPE payment_status AS ENUM (
            'pending',
            'success',
            'failed'
        )
    """)

    # Users
    op.create_table(
        'users',
        _id_column(),
        sa.Column('email', sa.String(length=255), nullable=False, comment='Login email'),
        sa.Column('full_name', sa.String(length=255), nullable=False, comment='Display name'),
        sa.Column(
            'role',
            postgresql.ENUM('user', 'admin', name='user_role', create_type=False),
            nullable=False,
            server_default=sa.text("'user'"),
            comment='Authorization role',
        ),
        sa.Column(
            'is_active',
            sa.Boolean(),
            nullable=False,
            server_default=sa.text('true'),
            comment='Whether the account can sign in',
        ),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Menu items
    op.create_table(
        'menu_items',
        _id_column(),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Dish name'),
        sa.Column(
            'price',
            sa.Numeric(precision=12, scale=2),
            nullable=True,
            comment='Base price; null when only size variants are sold',
        ),
        sa.Column(
            'variants',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment='Size variants as [{"size": ..., "price": ...}]',
        ),
        sa.Column(
            'stock',
            sa.Integer(),
            nullable=True,
            comment='Units on hand; null when stock is not tracked',
        ),
        sa.Column(
            'star',
            sa.Numeric(precision=2, scale=1),
            nullable=False,
            server_default=sa.text('0'),
            comment='Average rating rounded to one decimal',
        ),
        sa.Column('rating_sum', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('rating_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_menu_items'),
        sa.CheckConstraint('stock IS NULL OR stock >= 0', name='ck_menu_items_stock_non_negative'),
        sa.CheckConstraint('price IS NULL OR price >= 0', name='ck_menu_items_price_non_negative'),
    )

    # Vouchers
    op.create_table(
        'vouchers',
        _id_column(),
        sa.Column('code', sa.String(length=50), nullable=False, comment='Voucher code'),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Display name'),
        sa.Column(
            'discount_percent',
            sa.Numeric(precision=5, scale=2),
            nullable=False,
            comment='Percentage off the subtotal',
        ),
        sa.Column(
            'max_discount',
            sa.Numeric(precision=12, scale=2),
            nullable=True,
            comment='Cap on the discount amount',
        ),
        sa.Column(
            'min_price',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default=sa.text('0'),
            comment='Minimum subtotal required',
        ),
        sa.Column('start', sa.DateTime(timezone=True), nullable=False, comment='Valid from'),
        sa.Column('end', sa.DateTime(timezone=True), nullable=False, comment='Valid until'),
        sa.Column('limit', sa.Integer(), nullable=False, comment='Maximum number of uses'),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_vouchers'),
        sa.CheckConstraint(
            'discount_percent >= 0 AND discount_percent <= 100',
            name='ck_vouchers_discount_percent_range',
        ),
        sa.CheckConstraint('"limit" >= 0', name='ck_vouchers_limit_non_negative'),
    )
    op.create_index('ix_vouchers_code', 'vouchers', ['code'], unique=True)
    op.create_index('ix_vouchers_window', 'vouchers', ['start', 'end'])

    # Payment methods
    op.create_table(
        'payment_methods',
        _id_column(),
        sa.Column('name', sa.String(length=100), nullable=False, comment='Display name'),
        sa.Column(
            'type',
            postgresql.ENUM('cod', 'zalopay', name='payment_method_type', create_type=False),
            nullable=False,
            server_default=sa.text("'cod'"),
            comment='Settlement flow',
        ),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column(
            'status',
            sa.String(length=20),
            nullable=False,
            server_default=sa.text("'active'"),
            comment='active or inactive',
        ),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_payment_methods'),
    )

    # Orders
    op.create_table(
        'orders',
        _id_column(),
        sa.Column('order_id', sa.String(length=32), nullable=False, comment='External order id'),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            'status',
            postgresql.ENUM(
                'pending',
                'processing',
                'success',
                'cancelled',
                name='order_status',
                create_type=False,
            ),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column(
            'payment_status',
            postgresql.ENUM(
                'pending',
                'success',
                'failed',
                name='payment_status',
                create_type=False,
            ),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column('shipping_cost', sa.Numeric(precision=12, scale=2), nullable=False, server_default=sa.text('0')),
        sa.Column('discount', sa.Numeric(precision=12, scale=2), nullable=False, server_default=sa.text('0')),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('voucher_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('payment_method_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            'app_trans_id',
            sa.String(length=64),
            nullable=True,
            comment='Payment gateway correlation id',
        ),
        sa.Column('receiver_name', sa.String(length=255), nullable=False),
        sa.Column('receiver_phone', sa.String(length=32), nullable=False),
        sa.Column('shipping_address', sa.String(length=1000), nullable=False),
        sa.Column(
            'version',
            sa.Integer(),
            nullable=False,
            server_default=sa.text('1'),
            comment='Optimistic concurrency token',
        ),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'],
            name='fk_orders_user_id', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['voucher_id'], ['vouchers.id'],
            name='fk_orders_voucher_id', ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['payment_method_id'], ['payment_methods.id'],
            name='fk_orders_payment_method_id', ondelete='RESTRICT',
        ),
        sa.UniqueConstraint('app_trans_id', name='uq_orders_app_trans_id'),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
        sa.CheckConstraint('discount >= 0', name='ck_orders_discount_non_negative'),
        sa.CheckConstraint('shipping_cost >= 0', name='ck_orders_shipping_cost_non_negative'),
    )
    op.create_index('ix_orders_order_id', 'orders', ['order_id'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_voucher_id', 'orders', ['voucher_id'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])
    op.create_index('ix_orders_voucher_status', 'orders', ['voucher_id', 'status'])

    # Order items
    op.create_table(
        'order_items',
        _id_column(),
        sa.Column('order_pk', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('menu_item_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column(
            'price',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            comment='Unit price at the time of ordering',
        ),
        sa.Column('size', sa.String(length=50), nullable=True),
        sa.Column('rating', sa.SmallInteger(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.ForeignKeyConstraint(
            ['order_pk'], ['orders.id'],
            name='fk_order_items_order_pk', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['menu_item_id'], ['menu_items.id'],
            name='fk_order_items_menu_item_id', ondelete='RESTRICT',
        ),
        sa.CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint(
            'rating IS NULL OR (rating >= 1 AND rating <= 5)',
            name='ck_order_items_rating_range',
        ),
    )
    op.create_index('ix_order_items_order_pk', 'order_items', ['order_pk'])
    op.create_index('ix_order_items_menu_item_id', 'order_items', ['menu_item_id'])
    op.create_index('ix_order_items_menu_reviewed', 'order_items', ['menu_item_id', 'reviewed_at'])


def downgrade() -> None:
    """Drop the food ordering schema."""
    op.drop_index('ix_order_items_menu_reviewed', table_name='order_items')
    op.drop_index('ix_order_items_menu_item_id', table_name='order_items')
    op.drop_index('ix_order_items_order_pk', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_voucher_status', table_name='orders')
    op.drop_index('ix_orders_user_created', table_name='orders')
    op.drop_index('ix_orders_voucher_id', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_index('ix_orders_order_id', table_name='orders')
    op.drop_table('orders')

    op.drop_table('payment_methods')

    op.drop_index('ix_vouchers_window', table_name='vouchers')
    op.drop_index('ix_vouchers_code', table_name='vouchers')
    op.drop_table('vouchers')

    op.drop_table('menu_items')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    op.execute('DROP TYPE IF EXISTS payment_status')
    op.execute('DROP TYPE IF EXISTS order_status')
    op.execute('DROP TYPE IF EXISTS payment_method_type')
    op.execute('DROP TYPE IF EXISTS user_role')
