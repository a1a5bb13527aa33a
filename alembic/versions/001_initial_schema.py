"""Initial schema - catalog, integrations, orders and the sync job queue

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONB = postgresql.JSONB(astext_type=sa.Text())


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('api_token', sa.String(80), nullable=True, unique=True),
        sa.Column('max_products', sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_users_api_token', 'users', ['api_token'])

    op.create_table(
        'user_notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('level', sa.String(16), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index('ix_user_notifications_user_id', 'user_notifications', ['user_id'])

    # Taxonomy
    op.create_table(
        'system_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('system_categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
    )
    op.create_index('ix_system_categories_title', 'system_categories', ['title'])

    op.create_table(
        'dictionaries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('dictionaries.id', ondelete='CASCADE'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('settings', JSONB, nullable=True),
        sa.Column('system_category_id', sa.Integer(), sa.ForeignKey('system_categories.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('dictionaries_marketplace_type_external', 'dictionaries', ['marketplace', 'type', 'external_id'])
    op.create_index('ix_dictionaries_parent_id', 'dictionaries', ['parent_id'])

    op.create_table(
        'marketplace_attribute_values',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('dictionary', sa.String(255), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('value', sa.String(500), nullable=False),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
    )
    op.create_index('marketplace_attribute_values_lookup', 'marketplace_attribute_values', ['marketplace', 'dictionary', 'value'])

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('system_category_id', sa.Integer(), sa.ForeignKey('system_categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_categories_user_id', 'categories', ['user_id'])
    op.create_index('ix_categories_parent_id', 'categories', ['parent_id'])
    op.create_index('ix_categories_external_id', 'categories', ['external_id'])

    op.create_table(
        'marketplace_product_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('dictionary_id', sa.Integer(), sa.ForeignKey('dictionaries.id', ondelete='CASCADE'), nullable=False),
        _created_at(),
        sa.UniqueConstraint('category_id', 'marketplace', name='marketplace_category_unique'),
    )
    op.create_index('ix_marketplace_product_categories_user_id', 'marketplace_product_categories', ['user_id'])

    # Price lists and integrations
    op.create_table(
        'price_lists',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        _created_at(),
    )
    op.create_index('ix_price_lists_user_id', 'price_lists', ['user_id'])

    op.create_table(
        'integrations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('price_list_id', sa.Integer(), sa.ForeignKey('price_lists.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tax_id', sa.Integer(), nullable=True),
        sa.Column('settings', JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('status', sa.String(16), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('user_id', 'type', name='integrations_user_type_unique'),
    )
    op.create_index('ix_integrations_user_id', 'integrations', ['user_id'])
    op.create_index('ix_integrations_type', 'integrations', ['type'])
    op.create_index('ix_integrations_status', 'integrations', ['status'])

    op.create_table(
        'integration_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('integration_id', sa.Integer(), sa.ForeignKey('integrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('level', sa.String(16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
    )
    op.create_index('ix_integration_logs_integration_id', 'integration_logs', ['integration_id'])
    op.create_index('ix_integration_logs_user_id', 'integration_logs', ['user_id'])

    op.create_table(
        'export_infos',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('integration_id', sa.Integer(), sa.ForeignKey('integrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('task_id', sa.String(64), nullable=True),
        sa.Column('has_error', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('log', JSONB, nullable=True),
        sa.Column('result', JSONB, nullable=True),
        sa.Column('details', JSONB, nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_export_infos_integration_id', 'export_infos', ['integration_id'])
    op.create_index('ix_export_infos_user_id', 'export_infos', ['user_id'])

    # Catalog
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('sku', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('primary_image', sa.String(500), nullable=True),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('country', sa.String(64), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('length', sa.Float(), nullable=True),
        sa.Column('width', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('attributes', JSONB, nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('user_id', 'sku', name='products_unique_sku'),
    )
    op.create_index('ix_products_user_id', 'products', ['user_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_external_id', 'products', ['external_id'])
    op.create_index('ix_products_status', 'products', ['status'])

    op.create_table(
        'product_variations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uuid', sa.String(36), nullable=False, unique=True),
        sa.Column('vendor_code', sa.String(255), nullable=False),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('is_main', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_product_variations_product_id', 'product_variations', ['product_id'])
    op.create_index('ix_product_variations_vendor_code', 'product_variations', ['vendor_code'])

    op.create_table(
        'product_variation_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variation_id', sa.Integer(), sa.ForeignKey('product_variations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uuid', sa.String(36), nullable=False, unique=True),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
    )
    op.create_index('ix_product_variation_items_variation_id', 'product_variation_items', ['variation_id'])
    op.create_index('ix_product_variation_items_barcode', 'product_variation_items', ['barcode'])

    op.create_table(
        'product_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('variation_id', sa.Integer(), sa.ForeignKey('product_variations.id', ondelete='CASCADE'), nullable=True),
        sa.Column('path', sa.String(500), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
    )
    op.create_index('ix_product_images_product_id', 'product_images', ['product_id'])

    op.create_table(
        'price_list_products',
        sa.Column('price_list_id', sa.Integer(), sa.ForeignKey('price_lists.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'warehouses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('external_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('user_id', 'marketplace', 'external_id', name='warehouses_unique_external'),
    )
    op.create_index('ix_warehouses_user_id', 'warehouses', ['user_id'])

    op.create_table(
        'prices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('price_list_id', sa.Integer(), sa.ForeignKey('price_lists.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_type', sa.String(32), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('price_type', sa.String(32), nullable=False),
        sa.Column('base', sa.Float(), nullable=True),
        sa.Column('purchase', sa.Float(), nullable=True),
        sa.Column('presale', sa.Float(), nullable=True),
        _updated_at(),
        sa.UniqueConstraint('price_list_id', 'item_type', 'item_id', 'price_type', name='prices_unique_target'),
    )
    op.create_index('ix_prices_price_list_id', 'prices', ['price_list_id'])

    op.create_table(
        'stocks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('price_list_id', sa.Integer(), sa.ForeignKey('price_lists.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_type', sa.String(32), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        _updated_at(),
        sa.UniqueConstraint('price_list_id', 'item_type', 'item_id', 'warehouse_id', name='stocks_unique_target'),
    )
    op.create_index('ix_stocks_price_list_id', 'stocks', ['price_list_id'])

    op.create_table(
        'marketplace_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('item_type', sa.String(32), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('item_type', 'item_id', 'marketplace', 'user_id', name='marketplace_products_unique'),
    )
    op.create_index('ix_marketplace_products_user_id', 'marketplace_products', ['user_id'])
    op.create_index('ix_marketplace_products_item_id', 'marketplace_products', ['item_id'])

    # Orders and supplies
    op.create_table(
        'supplies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('order_type', sa.String(16), nullable=False),
        sa.Column('external_id', sa.String(64), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('data', JSONB, nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_supplies_user_id', 'supplies', ['user_id'])
    op.create_index('ix_supplies_external_id', 'supplies', ['external_id'])
    op.create_index('ix_supplies_status', 'supplies', ['status'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('external_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('marketplace_status', sa.String(32), nullable=True),
        sa.Column('order_type', sa.String(16), nullable=False),
        sa.Column('total', sa.Float(), nullable=False, server_default='0'),
        sa.Column('order_created', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivery', JSONB, nullable=True),
        sa.Column('additional_data', JSONB, nullable=True),
        sa.Column('supply_id', sa.Integer(), sa.ForeignKey('supplies.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('user_id', 'marketplace', 'external_id', name='orders_unique_external'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_marketplace', 'orders', ['marketplace'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_supply_id', 'orders', ['supply_id'])

    op.create_table(
        'order_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('variation_id', sa.Integer(), sa.ForeignKey('product_variations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('sku', sa.String(255), nullable=True),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('name', sa.String(500), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
    )
    op.create_index('ix_order_products_order_id', 'order_products', ['order_id'])

    op.create_table(
        'order_histories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('marketplace_status', sa.String(32), nullable=True),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
    )
    op.create_index('ix_order_histories_order_id', 'order_histories', ['order_id'])

    # Imports, job queue, uploads
    op.create_table(
        'import_tasks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('integration_id', sa.Integer(), sa.ForeignKey('integrations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('result', JSONB, nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_import_tasks_user_id', 'import_tasks', ['user_id'])
    op.create_index('ix_import_tasks_status', 'import_tasks', ['status'])

    op.create_table(
        'import_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('task_id', sa.Integer(), sa.ForeignKey('import_tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uid', sa.String(255), nullable=False),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('group_key', sa.String(255), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('data', JSONB, nullable=True),
        _created_at(),
    )
    op.create_index('ix_import_products_task_id', 'import_products', ['task_id'])
    op.create_index('ix_import_products_group_key', 'import_products', ['group_key'])

    op.create_table(
        'sync_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_type', sa.String(64), nullable=False),
        sa.Column('marketplace', sa.String(32), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('payload', JSONB, nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_sync_jobs_job_type', 'sync_jobs', ['job_type'])
    op.create_index('ix_sync_jobs_user_id', 'sync_jobs', ['user_id'])
    op.create_index('ix_sync_jobs_status_available_at', 'sync_jobs', ['status', 'available_at'])

    op.create_table(
        'upload_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('uuid', sa.String(36), nullable=False, unique=True),
        sa.Column('temp_path', sa.String(500), nullable=False),
        sa.Column('filename', sa.String(255), nullable=True),
        _created_at(),
    )
    op.create_index('ix_upload_sessions_user_id', 'upload_sessions', ['user_id'])


def downgrade() -> None:
    for table in (
        'upload_sessions', 'sync_jobs', 'import_products', 'import_tasks',
        'order_histories', 'order_products', 'orders', 'supplies',
        'marketplace_products', 'stocks', 'prices', 'warehouses', 'price_list_products',
        'product_images', 'product_variation_items', 'product_variations', 'products',
        'export_infos', 'integration_logs', 'integrations', 'price_lists',
        'marketplace_product_categories', 'categories', 'marketplace_attribute_values',
        'dictionaries', 'system_categories', 'user_notifications', 'users',
    ):
        op.drop_table(table)
