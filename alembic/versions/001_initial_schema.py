"""Initial schema - mappings, transactions, jobs, order acknowledgements, logs, rates

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'product_mappings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('naver_product_id', sa.String(), nullable=True),
        sa.Column('naver_channel_product_id', sa.String(), nullable=True),
        sa.Column('shopify_product_id', sa.String(), nullable=True),
        sa.Column('shopify_variant_id', sa.String(), nullable=True),
        sa.Column('shopify_inventory_item_id', sa.String(), nullable=True),
        sa.Column('shopify_location_id', sa.String(), nullable=True),
        sa.Column('product_name', sa.String(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('pricing', sa.JSON(), nullable=False),
        sa.Column('inventory', sa.JSON(), nullable=False),
        sa.Column('sync_state', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_product_mappings_sku', 'product_mappings', ['sku'], unique=True)
    op.create_index('ix_product_mappings_status', 'product_mappings', ['status'])
    op.create_index('ix_product_mappings_naver_product_id', 'product_mappings', ['naver_product_id'])
    op.create_index('ix_product_mappings_naver_channel_product_id', 'product_mappings', ['naver_channel_product_id'])
    op.create_index('ix_product_mappings_shopify_product_id', 'product_mappings', ['shopify_product_id'])
    op.create_index('ix_product_mappings_shopify_variant_id', 'product_mappings', ['shopify_variant_id'])

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('platform', sa.String(length=16), nullable=False),
        sa.Column('adjust_type', sa.String(length=16), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=True),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('actor', sa.String(length=16), nullable=False),
        sa.Column('outcome', sa.String(length=16), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('order_id', sa.String(), nullable=True),
        sa.Column('order_line_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_inventory_transactions_sku', 'inventory_transactions', ['sku'])
    op.create_index('ix_inventory_transactions_outcome', 'inventory_transactions', ['outcome'])
    op.create_index('ix_inventory_transactions_sku_created', 'inventory_transactions', ['sku', 'created_at'])
    op.create_index('ix_inventory_transactions_order', 'inventory_transactions', ['order_id', 'order_line_id'])

    op.create_table(
        'sync_jobs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('job_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('target_sku', sa.String(length=100), nullable=True),
        sa.Column('triggered_by', sa.String(length=32), nullable=False, server_default='manual'),
        sa.Column('processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('success', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('errors', sa.JSON(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_sync_jobs_job_type', 'sync_jobs', ['job_type'])
    op.create_index('ix_sync_jobs_status', 'sync_jobs', ['status'])
    op.create_index('ix_sync_jobs_target_sku', 'sync_jobs', ['target_sku'])

    op.create_table(
        'order_acknowledgements',
        sa.Column('order_id', sa.String(), primary_key=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('applied_line_ids', sa.JSON(), nullable=False),
        sa.Column('skipped_line_ids', sa.JSON(), nullable=False),
        sa.Column('line_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_order_acknowledgements_status', 'order_acknowledgements', ['status'])

    op.create_table(
        'system_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('level', sa.String(length=16), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_system_logs_level', 'system_logs', ['level'])
    op.create_index('ix_system_logs_category', 'system_logs', ['category'])
    op.create_index('ix_system_logs_level_created', 'system_logs', ['level', 'created_at'])

    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('base_currency', sa.String(length=3), nullable=False),
        sa.Column('target_currency', sa.String(length=3), nullable=False),
        sa.Column('rate', sa.Numeric(18, 8), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False, server_default='api'),
        sa.Column('fetched_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_exchange_rates_fetched_at', 'exchange_rates', ['fetched_at'])


def downgrade() -> None:
    op.drop_table('exchange_rates')
    op.drop_table('system_logs')
    op.drop_table('order_acknowledgements')
    op.drop_table('sync_jobs')
    op.drop_table('inventory_transactions')
    op.drop_table('product_mappings')
