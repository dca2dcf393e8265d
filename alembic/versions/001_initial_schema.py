"""Initial schema - products and alert_logs

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
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('threshold', sa.Integer(), server_default='0', nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('threshold >= 0', name='ck_products_threshold_non_negative'),
    )
    op.create_index(op.f('ix_products_name'), 'products', ['name'], unique=False)
    op.create_index(op.f('ix_products_sku'), 'products', ['sku'], unique=True)
    op.create_index(op.f('ix_products_stock'), 'products', ['stock'], unique=False)
    op.create_index(op.f('ix_products_threshold'), 'products', ['threshold'], unique=False)
    op.create_index('products_low_stock_idx', 'products', ['stock', 'threshold'], unique=False)

    op.create_table(
        'alert_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=True),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('threshold', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(length=32), nullable=False),
        sa.Column('dedupe_key', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('channel', 'dedupe_key', name='uq_alert_logs_channel_dedupe_key'),
    )
    op.create_index(op.f('ix_alert_logs_product_id'), 'alert_logs', ['product_id'], unique=False)
    op.create_index(op.f('ix_alert_logs_dedupe_key'), 'alert_logs', ['dedupe_key'], unique=False)
    op.create_index(op.f('ix_alert_logs_created_at'), 'alert_logs', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_alert_logs_created_at'), table_name='alert_logs')
    op.drop_index(op.f('ix_alert_logs_dedupe_key'), table_name='alert_logs')
    op.drop_index(op.f('ix_alert_logs_product_id'), table_name='alert_logs')
    op.drop_table('alert_logs')

    op.drop_index('products_low_stock_idx', table_name='products')
    op.drop_index(op.f('ix_products_threshold'), table_name='products')
    op.drop_index(op.f('ix_products_stock'), table_name='products')
    op.drop_index(op.f('ix_products_sku'), table_name='products')
    op.drop_index(op.f('ix_products_name'), table_name='products')
    op.drop_table('products')
