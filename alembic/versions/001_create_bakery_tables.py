"""Create catalog, scheduling and order tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create catalog, scheduling, discount, settings and order tables."""
    # Products table
    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('lead_time_hours', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_per_order', sa.Integer(), nullable=True),
    )

    # Product variants table
    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36),
                  sa.ForeignKey('products.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price_adjustment', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('track_inventory', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('inventory_count', sa.Integer(), nullable=True),
    )

    # Time slots table
    op.create_table(
        'time_slots',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('window_start', sa.String(5), nullable=False),
        sa.Column('window_end', sa.String(5), nullable=False),
        sa.Column('max_orders', sa.Integer(), nullable=False),
        sa.Column('current_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='true'),
        sa.UniqueConstraint('date', 'window_start', name='uq_time_slots_date_window'),
        sa.CheckConstraint('current_orders >= 0', name='ck_time_slots_current_orders'),
    )

    # Delivery zones table
    op.create_table(
        'delivery_zones',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('zip_codes', postgresql.ARRAY(sa.String(10)), nullable=False, server_default='{}'),
        sa.Column('min_order', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('free_delivery_threshold', sa.Numeric(10, 2), nullable=True),
        sa.Column('estimated_time', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    )

    # Discount codes table
    op.create_table(
        'discount_codes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('value', sa.Numeric(10, 2), nullable=False),
        sa.Column('min_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('current_uses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
    )

    # Customer profiles table
    op.create_table(
        'customer_profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
    )

    # Business settings table
    op.create_table(
        'business_settings',
        sa.Column('key', sa.String(100), primary_key=True),
        sa.Column('value', postgresql.JSONB(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    # Order number sequence
    op.execute(sa.schema.CreateSequence(sa.Sequence('order_number_seq', start=1)))

    # Orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_number', sa.String(32), nullable=False, unique=True, index=True),
        sa.Column('user_id', sa.String(36), nullable=True, index=True),
        sa.Column('guest_email', sa.String(255), nullable=True, index=True),
        sa.Column('guest_phone', sa.String(50), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='received', index=True),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('fulfillment_type', sa.String(20), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=True),
        sa.Column('delivery_window', sa.String(50), nullable=True),
        sa.Column('time_slot_id', sa.String(36), sa.ForeignKey('time_slots.id'), nullable=True),
        sa.Column('delivery_zone_id', sa.String(36), sa.ForeignKey('delivery_zones.id'), nullable=True),
        sa.Column('delivery_address', postgresql.JSONB(), nullable=True),
        sa.Column('pickup_location', sa.String(255), nullable=True),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('discount_code_id', sa.String(36), sa.ForeignKey('discount_codes.id'), nullable=True),
        sa.Column('tip_amount', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('stripe_checkout_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True, index=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('inventory_deducted', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            '(user_id IS NULL) <> (guest_email IS NULL)',
            name='ck_orders_single_owner',
        ),
    )

    # Order items table
    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('product_variant_id', sa.String(36), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('variant_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('special_instructions', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    # Order status history table
    op.create_table(
        'order_status_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('changed_by', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )


def downgrade() -> None:
    """Drop all tables created in upgrade."""
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.execute(sa.schema.DropSequence(sa.Sequence('order_number_seq')))
    op.drop_table('business_settings')
    op.drop_table('customer_profiles')
    op.drop_table('discount_codes')
    op.drop_table('delivery_zones')
    op.drop_table('time_slots')
    op.drop_table('product_variants')
    op.drop_table('products')
