"""override store: overrides, tags, collections, costs, offers, option aliases"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_override_store"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "product_overrides",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("subtitle", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("price_enabled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("title_separator", sa.String(length=16), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("product_id", name="uq_product_overrides_product"),
    )

    op.create_table(
        "product_tags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("group_name", sa.String(length=64), nullable=True),
        sa.UniqueConstraint("slug", name="uq_product_tags_slug"),
    )

    op.create_table(
        "product_tag_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column(
            "tag_id",
            sa.Integer(),
            sa.ForeignKey("product_tags.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.UniqueConstraint("product_id", "tag_id", name="uq_product_tag_assignments_pair"),
    )
    op.create_index(
        "ix_product_tag_assignments_product_id", "product_tag_assignments", ["product_id"]
    )

    op.create_table(
        "collections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_collections_slug"),
    )

    op.create_table(
        "collection_products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "collection_id",
            sa.Integer(),
            sa.ForeignKey("collections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("collection_id", "product_id", name="uq_collection_products_pair"),
    )
    op.create_index("ix_collection_products_product_id", "collection_products", ["product_id"])

    op.create_table(
        "product_costs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column("product_cost", sa.Float(), nullable=False),
        sa.Column("shipping_cost", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("supplier_ref", sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("product_id", name="uq_product_costs_product"),
    )

    op.create_table(
        "product_offers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column("promo_text", sa.Text(), nullable=True),
        sa.Column("promo_subtext", sa.Text(), nullable=True),
        sa.Column("promo_active", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("offer_text", sa.Text(), nullable=True),
        sa.Column("offer_active", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("offer_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discount_percent", sa.Float(), nullable=True),
        sa.Column("original_price", sa.Float(), nullable=True),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=True),
        sa.Column("low_stock_active", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.UniqueConstraint("product_id", name="uq_product_offers_product"),
    )

    op.create_table(
        "product_option_aliases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.String(length=128), nullable=False),
        sa.Column("original_name", sa.String(length=128), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("product_id", "original_name", name="uq_product_option_aliases_name"),
    )


def downgrade() -> None:
    op.drop_table("product_option_aliases")
    op.drop_table("product_offers")
    op.drop_table("product_costs")
    op.drop_index("ix_collection_products_product_id", table_name="collection_products")
    op.drop_table("collection_products")
    op.drop_table("collections")
    op.drop_index("ix_product_tag_assignments_product_id", table_name="product_tag_assignments")
    op.drop_table("product_tag_assignments")
    op.drop_table("product_tags")
    op.drop_table("product_overrides")
