"""Create marketplace core tables

Manufacturers, catalog read model, authorization edges, tier commission
policies, orders and manufacturer sub-orders.

Revision ID: marketplace_core_001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'marketplace_core_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # ==================== Manufacturers ====================
    op.create_table(
        'manufacturers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(30), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('full_name', sa.String(300), nullable=True),
        sa.Column('short_name', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('default_discount_rate', sa.Numeric(5, 2), nullable=False, server_default='100'),
        sa.Column('default_commission_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('contact_name', sa.String(100), nullable=True),
        sa.Column('contact_phone', sa.String(30), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('ACTIVE', 'INACTIVE')", name='ck_manufacturers_status'),
    )
    op.create_index('ix_manufacturers_code', 'manufacturers', ['code'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('manufacturer_id', sa.Uuid(), nullable=True),
        sa.Column('category_id', sa.String(64), nullable=True),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['manufacturer_id'], ['manufacturers.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_products_manufacturer_id', 'products', ['manufacturer_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_manufacturer_category', 'products', ['manufacturer_id', 'category_id'])

    # ==================== Authorization Edges ====================
    op.create_table(
        'authorizations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('from_manufacturer_id', sa.Uuid(), nullable=False),
        sa.Column('to_manufacturer_id', sa.Uuid(), nullable=True),
        sa.Column('to_designer_id', sa.Uuid(), nullable=True),
        sa.Column('authorization_type', sa.String(20), nullable=False),
        sa.Column('scope', sa.String(20), nullable=False, server_default='ALL'),
        sa.Column('categories', sa.JSON(), nullable=False),
        sa.Column('products', sa.JSON(), nullable=False),
        sa.Column('min_discount_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('tier_rule_set_ids', sa.JSON(), nullable=False),
        sa.Column('product_discounts', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('is_enabled', sa.Boolean(), nullable=True),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('parent_authorization_id', sa.Uuid(), nullable=True),
        sa.Column('tier_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['from_manufacturer_id'], ['manufacturers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['to_manufacturer_id'], ['manufacturers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['parent_authorization_id'], ['authorizations.id'], ondelete='SET NULL'),
        sa.CheckConstraint(
            "(to_manufacturer_id IS NULL) <> (to_designer_id IS NULL)",
            name='ck_authorizations_single_grantee',
        ),
        sa.CheckConstraint(
            "scope IN ('ALL', 'CATEGORY', 'PRODUCTS', 'MIXED')",
            name='ck_authorizations_scope',
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'SUSPENDED', 'REVOKED', 'EXPIRED')",
            name='ck_authorizations_status',
        ),
    )
    op.create_index('ix_authorizations_from_status', 'authorizations', ['from_manufacturer_id', 'status'])
    op.create_index('ix_authorizations_to_manufacturer_status', 'authorizations', ['to_manufacturer_id', 'status'])
    op.create_index('ix_authorizations_to_designer_status', 'authorizations', ['to_designer_id', 'status'])
    op.create_index('ix_authorizations_status_valid_until', 'authorizations', ['status', 'valid_until'])

    # ==================== Tier Commission Policies ====================
    op.create_table(
        'tier_policies',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('manufacturer_id', sa.Uuid(), nullable=False),
        sa.Column('role_modules', sa.JSON(), nullable=False),
        sa.Column('min_sale_discount_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['manufacturer_id'], ['manufacturers.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('manufacturer_id', name='uq_tier_policies_manufacturer'),
    )

    op.create_table(
        'tier_commission_rule_sets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('policy_id', sa.Uuid(), nullable=False),
        sa.Column('manufacturer_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('rules', sa.JSON(), nullable=False),
        sa.Column('partner_rules', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['policy_id'], ['tier_policies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['manufacturer_id'], ['manufacturers.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('policy_id', 'name', name='uq_tier_rule_sets_policy_name'),
    )
    op.create_index(
        'ix_tier_commission_rule_sets_manufacturer_id',
        'tier_commission_rule_sets',
        ['manufacturer_id'],
    )

    # ==================== Orders ====================
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(30), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_phone', sa.String(30), nullable=True),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('placed_by', sa.Uuid(), nullable=True),
        sa.Column('placed_by_role', sa.String(30), nullable=True),
        sa.Column('owner_manufacturer_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='PENDING_PAYMENT'),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('dispatch_status', sa.String(20), nullable=True, server_default='PENDING'),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_manufacturer_id'], ['manufacturers.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=True),
        sa.Column('product_name', sa.String(300), nullable=False),
        sa.Column('sku_id', sa.String(64), nullable=True),
        sa.Column('sku_name', sa.String(200), nullable=True),
        sa.Column('specs', sa.JSON(), nullable=True),
        sa.Column('image', sa.String(500), nullable=True),
        sa.Column('manufacturer_id', sa.Uuid(), nullable=True),
        sa.Column('manufacturer_name', sa.String(200), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('list_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('commission_breakdown', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['manufacturer_id'], ['manufacturers.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_manufacturer', 'order_items', ['manufacturer_id'])

    # ==================== Manufacturer Sub-Orders ====================
    op.create_table(
        'manufacturer_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(30), nullable=False),
        sa.Column('manufacturer_key', sa.String(64), nullable=False),
        sa.Column('manufacturer_id', sa.Uuid(), nullable=True),
        sa.Column('manufacturer_name', sa.String(200), nullable=True),
        sa.Column('needs_assignment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_phone', sa.String(30), nullable=True),
        sa.Column('customer_address', sa.String(500), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('tracking_no', sa.String(100), nullable=True),
        sa.Column('tracking_company', sa.String(100), nullable=True),
        sa.Column('manufacturer_remark', sa.Text(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['manufacturer_id'], ['manufacturers.id'], ondelete='SET NULL'),
        # One sub-order per (order, manufacturer); a racing second dispatch fails here
        sa.UniqueConstraint('order_id', 'manufacturer_key', name='uq_manufacturer_orders_order_manufacturer'),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'PROCESSING', 'SHIPPED', 'COMPLETED', 'CANCELLED')",
            name='ck_manufacturer_orders_status',
        ),
    )
    op.create_index('ix_manufacturer_orders_order_id', 'manufacturer_orders', ['order_id'])
    op.create_index('ix_manufacturer_orders_manufacturer_id', 'manufacturer_orders', ['manufacturer_id'])
    op.create_index('ix_manufacturer_orders_status', 'manufacturer_orders', ['status'])
    op.create_index(
        'ix_manufacturer_orders_manufacturer_status',
        'manufacturer_orders',
        ['manufacturer_id', 'status'],
    )

    op.create_table(
        'manufacturer_order_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('manufacturer_order_id', sa.Uuid(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(30), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=True),
        sa.Column('operator', sa.String(50), nullable=False),
        sa.Column('operator_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['manufacturer_order_id'], ['manufacturer_orders.id'], ondelete='CASCADE'
        ),
    )
    op.create_index(
        'ix_manufacturer_order_logs_manufacturer_order_id',
        'manufacturer_order_logs',
        ['manufacturer_order_id'],
    )


def downgrade() -> None:
    op.drop_table('manufacturer_order_logs')
    op.drop_table('manufacturer_orders')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('tier_commission_rule_sets')
    op.drop_table('tier_policies')
    op.drop_table('authorizations')
    op.drop_table('products')
    op.drop_table('manufacturers')
