"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial marketplace schema."""

    # ========================================================================
    # Create resellers table
    # ========================================================================
    op.create_table(
        'resellers',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('store_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('pix_key', sa.String(255), nullable=True),
        sa.Column('wallet_balance_minor', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_sales_minor', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('wallet_balance_minor >= 0', name='ck_reseller_wallet_non_negative'),
        sa.CheckConstraint('total_sales_minor >= 0', name='ck_reseller_sales_non_negative'),
        sa.UniqueConstraint('email', name='uq_resellers_email'),
    )

    # ========================================================================
    # Create vendor_sessions table
    # ========================================================================
    op.create_table(
        'vendor_sessions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('reseller_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),

        # Constraints
        sa.UniqueConstraint('token_hash', name='uq_vendor_sessions_token_hash'),
        sa.ForeignKeyConstraint(['reseller_id'], ['resellers.id'], name='fk_vendor_sessions_reseller', ondelete='CASCADE'),
    )

    op.create_index('idx_vendor_sessions_reseller_id', 'vendor_sessions', ['reseller_id'])
    op.create_index('idx_vendor_sessions_expires_at', 'vendor_sessions', ['expires_at'])

    # ========================================================================
    # Create products table
    # ========================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('reseller_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_minor', sa.BigInteger(), nullable=False),
        sa.Column('stock', sa.Text(), nullable=False, server_default=''),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('price_minor > 0', name='ck_product_price_positive'),
        sa.ForeignKeyConstraint(['reseller_id'], ['resellers.id'], name='fk_products_reseller', ondelete='CASCADE'),
    )

    op.create_index('idx_products_reseller_id', 'products', ['reseller_id'])

    # ========================================================================
    # Create orders table
    # ========================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('reseller_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('total_amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('whatsapp', sa.String(32), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('payment_method', sa.String(20), nullable=False, server_default='pix'),
        sa.Column('billing_id', sa.String(255), nullable=True),
        sa.Column('pix_code', sa.Text(), nullable=True),
        sa.Column('pix_qr_code_url', sa.Text(), nullable=True),
        sa.Column('checkout_url', sa.Text(), nullable=True),
        sa.Column('delivered_content', sa.Text(), nullable=True),
        sa.Column('whatsapp_delivery_link', sa.Text(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('total_amount_minor >= 0', name='ck_order_total_non_negative'),
        sa.CheckConstraint("status IN ('pending', 'paid')", name='ck_order_status'),
        sa.ForeignKeyConstraint(['reseller_id'], ['resellers.id'], name='fk_orders_reseller', ondelete='SET NULL'),
    )

    # Expiry sweep scans pending orders by age
    op.create_index('idx_orders_status_created_at', 'orders', ['status', 'created_at'])
    op.create_index('idx_orders_reseller_id', 'orders', ['reseller_id'])
    op.create_index(
        'idx_orders_billing_id', 'orders', ['billing_id'],
        unique=True, postgresql_where=sa.text('billing_id IS NOT NULL'),
    )

    # ========================================================================
    # Create order_items table
    # ========================================================================
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('price_minor', sa.BigInteger(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('delivered_content', sa.Text(), nullable=True),

        # Constraints
        sa.CheckConstraint('quantity > 0', name='ck_order_item_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_order_items_product', ondelete='RESTRICT'),
    )

    op.create_index('idx_order_items_order_id', 'order_items', ['order_id'])

    # ========================================================================
    # Create withdrawal_requests table
    # ========================================================================
    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('reseller_id', sa.Integer(), nullable=False),
        sa.Column('amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('fee_minor', sa.BigInteger(), nullable=False),
        sa.Column('net_amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('pix_key', sa.String(255), nullable=False),
        sa.Column('pix_key_type', sa.String(20), nullable=False),
        sa.Column('pix_holder_name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount_minor > 0', name='ck_withdrawal_amount_positive'),
        sa.CheckConstraint('net_amount_minor = amount_minor - fee_minor', name='ck_withdrawal_net_consistency'),
        sa.CheckConstraint('net_amount_minor > 0', name='ck_withdrawal_net_positive'),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name='ck_withdrawal_status'),
        sa.ForeignKeyConstraint(['reseller_id'], ['resellers.id'], name='fk_withdrawals_reseller', ondelete='CASCADE'),
    )

    op.create_index('idx_withdrawals_reseller_id', 'withdrawal_requests', ['reseller_id'])
    op.create_index('idx_withdrawals_status', 'withdrawal_requests', ['status'])

    # ========================================================================
    # Create wallet_ledger_entries table
    # ========================================================================
    op.create_table(
        'wallet_ledger_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('reseller_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(20), nullable=False),
        sa.Column('amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('balance_before_minor', sa.BigInteger(), nullable=False),
        sa.Column('balance_after_minor', sa.BigInteger(), nullable=False),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('withdrawal_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount_minor <> 0', name='ck_ledger_amount_non_zero'),
        sa.CheckConstraint(
            'balance_after_minor = balance_before_minor + amount_minor',
            name='ck_ledger_balance_consistency',
        ),
        sa.CheckConstraint('balance_after_minor >= 0', name='ck_ledger_balance_non_negative'),
        sa.CheckConstraint(
            "entry_type IN ('order_credit', 'withdrawal_debit', 'withdrawal_reversal')",
            name='ck_ledger_entry_type',
        ),
        sa.UniqueConstraint('reseller_id', 'idempotency_key', name='uq_ledger_idempotency'),
        sa.ForeignKeyConstraint(['reseller_id'], ['resellers.id'], name='fk_ledger_reseller', ondelete='CASCADE'),
    )

    op.create_index('idx_ledger_reseller_created_at', 'wallet_ledger_entries', ['reseller_id', 'created_at'])

    # ========================================================================
    # Create reseller_webhooks table
    # ========================================================================
    op.create_table(
        'reseller_webhooks',
        sa.Column('id', sa.Integer(), sa.Identity(), primary_key=True),
        sa.Column('reseller_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('secret', sa.String(128), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.ForeignKeyConstraint(['reseller_id'], ['resellers.id'], name='fk_reseller_webhooks_reseller', ondelete='CASCADE'),
    )

    op.create_index('idx_reseller_webhooks_reseller_id', 'reseller_webhooks', ['reseller_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('reseller_webhooks')
    op.drop_table('wallet_ledger_entries')
    op.drop_table('withdrawal_requests')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('vendor_sessions')
    op.drop_table('resellers')
