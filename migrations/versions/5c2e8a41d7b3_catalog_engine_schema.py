"""catalog engine schema: products, variant matrix, tier rules

Revision ID: 5c2e8a41d7b3
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e8a41d7b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_table(
        'subcategories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('categories.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_subcategories_category_id', 'subcategories', ['category_id'])

    op.create_table(
        'subcategory_quantity_prices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subcategory_id', sa.Integer(),
                  sa.ForeignKey('subcategories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_type', sa.String(length=20), nullable=False,
                  server_default='PERCENTAGE'),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('subcategory_id', 'quantity', name='uq_subcategory_quantity'),
        sa.CheckConstraint('quantity >= 1', name='ck_quantity_positive'),
    )
    op.create_index('ix_subcategory_quantity_prices_subcategory_id',
                    'subcategory_quantity_prices', ['subcategory_id'])
    op.create_index('ix_subcategory_quantity_prices_is_active',
                    'subcategory_quantity_prices', ['is_active'])

    if op.get_bind().dialect.name == 'postgresql':
        op.execute("CREATE SEQUENCE IF NOT EXISTS product_code_seq START WITH 1001")
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('normal_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('offer_price', sa.Numeric(12, 2)),
        sa.Column('wholesale_price', sa.Numeric(12, 2)),
        sa.Column('category_id', sa.Integer(),
                  sa.ForeignKey('categories.id', ondelete='SET NULL')),
        sa.Column('subcategory_id', sa.Integer(),
                  sa.ForeignKey('subcategories.id', ondelete='SET NULL')),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_products_code', 'products', ['code'], unique=True)
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_subcategory_id', 'products', ['subcategory_id'])
    op.create_index('ix_products_status', 'products', ['status'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('color', sa.String(length=100), nullable=False),
        sa.Column('size', sa.String(length=50), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sku', sa.String(length=255), unique=True),
        sa.Column('variant_codes', sa.JSON()),
        sa.Column('price', sa.Numeric(12, 2)),
        sa.Column('wholesale_price', sa.Numeric(12, 2)),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('product_id', 'color', 'size', name='uq_variant_color_size'),
        sa.CheckConstraint('stock >= 0', name='ck_variant_stock'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'variant_codes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=100), nullable=False, unique=True),
        sa.Column('product_id', sa.Integer(),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('color', sa.String(length=100), nullable=False),
    )
    op.create_index('ix_variant_codes_product_id', 'variant_codes', ['product_id'])

    op.create_table(
        'product_variant_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variant_id', sa.Integer(),
                  sa.ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_url', sa.String(length=1024), nullable=False),
        sa.Column('image_public_id', sa.String(length=512)),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('color', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_product_variant_images_variant_id',
                    'product_variant_images', ['variant_id'])
    op.create_index('ix_product_variant_images_color', 'product_variant_images', ['color'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(),
                  sa.ForeignKey('products.id', ondelete='SET NULL')),
        sa.Column('product_variant_id', sa.Integer(),
                  sa.ForeignKey('product_variants.id', ondelete='SET NULL')),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_order_items_order_number', 'order_items', ['order_number'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])
    op.create_index('ix_order_items_product_variant_id', 'order_items', ['product_variant_id'])


def downgrade():
    op.drop_table('order_items')
    op.drop_table('product_variant_images')
    op.drop_table('variant_codes')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('subcategory_quantity_prices')
    op.drop_table('subcategories')
    op.drop_table('categories')
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP SEQUENCE IF EXISTS product_code_seq")
