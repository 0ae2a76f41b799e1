"""catalog: categories, news, ads, galleries

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e5f"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)

    if not insp.has_table("categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name_ar", sa.String(length=160), nullable=False),
            sa.Column("name_en", sa.String(length=160), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_categories_name_en", "categories", ["name_en"], unique=False)

    if not insp.has_table("news"):
        op.create_table(
            "news",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=False),
            sa.Column("title_ar", sa.String(length=100), nullable=False),
            sa.Column("title_en", sa.String(length=100), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="none"),
            sa.Column("content_ar", sa.Text(), nullable=True),
            sa.Column("content_en", sa.Text(), nullable=True),
            sa.Column("yt_code", sa.String(length=64), nullable=True),
            sa.Column("images", sa.JSON(), nullable=False),
            sa.Column("pricing_variant", sa.String(length=16), nullable=False, server_default="simple"),
            sa.Column("price", sa.Float(), nullable=True),
            sa.Column("price_medium", sa.Float(), nullable=True),
            sa.Column("price_large", sa.Float(), nullable=True),
            sa.Column("price_family", sa.Float(), nullable=True),
            sa.Column("offers", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        )
        op.create_index("ix_news_user_id", "news", ["user_id"], unique=False)
        op.create_index("ix_news_category_id", "news", ["category_id"], unique=False)
        op.create_index("ix_news_status", "news", ["status"], unique=False)
        op.create_index("ix_news_created_at", "news", ["created_at"], unique=False)
        op.create_index(
            "idx_news_category_status_created", "news", ["category_id", "status", "created_at"], unique=False
        )

    if not insp.has_table("ads"):
        op.create_table(
            "ads",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("title_ar", sa.String(length=160), nullable=False),
            sa.Column("title_en", sa.String(length=160), nullable=False),
            sa.Column("link", sa.String(length=1000), nullable=True),
            sa.Column("image_url", sa.String(length=1000), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_ads_created_at", "ads", ["created_at"], unique=False)

    if not insp.has_table("galleries"):
        op.create_table(
            "galleries",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("title_ar", sa.String(length=160), nullable=False),
            sa.Column("title_en", sa.String(length=160), nullable=True),
            sa.Column("image_urls", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_galleries_created_at", "galleries", ["created_at"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    for table in ("galleries", "ads", "news", "categories"):
        if insp.has_table(table):
            op.drop_table(table)
