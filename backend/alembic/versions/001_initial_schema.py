"""Initial schema: products, affiliate credentials, affiliate links, ad copies.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_ONLY = sa.text("status = 'active'")


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    if "products" in insp.get_table_names():
        return

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("category", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_range", sa.String(100), nullable=True),
        sa.Column("target_audience", sa.String(255), nullable=True),
        sa.Column("trending_score", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("amazon_asin", sa.String(32), nullable=True),
        sa.Column("tiktok_product_id", sa.String(128), nullable=True),
        sa.Column("instagram_product_id", sa.String(128), nullable=True),
        sa.Column("youtube_video_id", sa.String(64), nullable=True),
        sa.Column("pinterest_pin_id", sa.String(128), nullable=True),
        sa.Column("product_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_category", "products", ["category"], unique=False)

    op.create_table(
        "affiliate_credentials",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("affiliate_id", sa.String(255), nullable=True),
        sa.Column("shop_id", sa.String(255), nullable=True),
        sa.Column("account_name", sa.String(255), nullable=True),
        sa.Column("api_key", sa.Text(), nullable=True),
        sa.Column("api_secret", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("verified", sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform"),
    )

    op.create_table(
        "affiliate_links",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(512), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("program_name", sa.String(255), nullable=False),
        sa.Column("commission_rate", sa.Float(), nullable=True),
        sa.Column("cookie_duration", sa.Integer(), nullable=True),
        sa.Column("tracking_url", sa.Text(), nullable=False),
        sa.Column("destination_url", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("superseded_by_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["superseded_by_id"], ["affiliate_links.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_links_product_id", "affiliate_links", ["product_id"], unique=False)
    op.create_index("ix_affiliate_links_status", "affiliate_links", ["status"], unique=False)
    op.create_index(
        "uq_affiliate_links_active_pair", "affiliate_links", ["product_id", "platform"],
        unique=True, postgresql_where=ACTIVE_ONLY, sqlite_where=ACTIVE_ONLY,
    )

    op.create_table(
        "ad_copies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("variation_name", sa.String(512), nullable=True),
        sa.Column("ad_type", sa.String(32), nullable=False),
        sa.Column("headline", sa.Text(), nullable=False),
        sa.Column("body_text", sa.Text(), nullable=True),
        sa.Column("cta", sa.String(255), nullable=True),
        sa.Column("platform_specific_data", sa.JSON(), nullable=True),
        sa.Column("performance_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ad_copies_product_id", "ad_copies", ["product_id"], unique=False)
    op.create_index("ix_ad_copies_created_at", "ad_copies", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_ad_copies_created_at", table_name="ad_copies")
    op.drop_index("ix_ad_copies_product_id", table_name="ad_copies")
    op.drop_table("ad_copies")
    op.drop_index("uq_affiliate_links_active_pair", table_name="affiliate_links")
    op.drop_index("ix_affiliate_links_status", table_name="affiliate_links")
    op.drop_index("ix_affiliate_links_product_id", table_name="affiliate_links")
    op.drop_table("affiliate_links")
    op.drop_table("affiliate_credentials")
    op.drop_index("ix_products_category", table_name="products")
    op.drop_table("products")
