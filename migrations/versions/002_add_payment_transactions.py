"""
Alembic migration: Keep every gateway transaction opened for an order.

A customer may open a second payment page for the same order; callbacks for
the earlier page must still resolve to the order, so each transaction id is
stored in its own row. Existing correlation ids are copied over.

Revision ID: 002
Revises: 001
Create Date: 2025-02-11 14:03:27.118402
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create payment_transactions and backfill it from orders."""
    op.create_table(
        'payment_transactions',
        sa.Column(
            'id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text('gen_random_uuid()'),
        ),
        sa.Column('order_pk', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            'app_trans_id',
            sa.String(length=64),
            nullable=False,
            comment='Payment gateway correlation id',
        ),
        sa.Column('amount', sa.Integer(), nullable=False, comment='Amount sent to the gateway'),
        sa.Column('order_url', sa.String(length=1000), nullable=True),
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
        ),
        sa.PrimaryKeyConstraint('id', name='pk_payment_transactions'),
        sa.ForeignKeyConstraint(
            ['order_pk'], ['orders.id'],
            name='fk_payment_transactions_order_pk', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('app_trans_id', name='uq_payment_transactions_app_trans_id'),
    )
    op.create_index('ix_payment_transactions_order_pk', 'payment_transactions', ['order_pk'])

    op.execute(
        """
        INSERT INTO payment_transactions (order_pk, app_trans_id, amount)
        SELECT id, app_trans_id, ROUND(total)::integer
        FROM orders
        WHERE app_trans_id IS NOT NULL
        """
    )


def downgrade() -> None:
    """Drop payment_transactions."""
    op.drop_index('ix_payment_transactions_order_pk', table_name='payment_transactions')
    op.drop_table('payment_transactions')
