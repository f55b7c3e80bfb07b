"""initial search tables

Revision ID: 0001_initial_search_tables
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial_search_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "search_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("query_text", sa.String(500), nullable=False),
        sa.Column("filters", sa.JSON(), nullable=False),
        sa.Column("sort_field", sa.String(50), nullable=True),
        sa.Column("sort_direction", sa.String(4), nullable=True),
        sa.Column("page", sa.Integer(), nullable=False),
        sa.Column("page_size", sa.Integer(), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("result_ids", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_search_history_id"), "search_history", ["id"])
    op.create_index(op.f("ix_search_history_owner_id"), "search_history", ["owner_id"])
    op.create_index("ix_search_history_owner_requested", "search_history", ["owner_id", "requested_at"])
    op.create_index("ix_search_history_requested_at", "search_history", ["requested_at"])

    op.create_table(
        "search_queries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("text", sa.String(500), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_search_queries_id"), "search_queries", ["id"])
    op.create_index("ix_search_queries_occurred_at", "search_queries", ["occurred_at"])

    op.create_table(
        "clicks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("product_id", sa.String(255), nullable=False),
        sa.Column("product_name", sa.String(500), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_clicks_id"), "clicks", ["id"])
    op.create_index("ix_clicks_product_occurred", "clicks", ["product_id", "occurred_at"])
    op.create_index("ix_clicks_occurred_at", "clicks", ["occurred_at"])
    op.create_index("ix_clicks_owner_occurred", "clicks", ["owner_id", "occurred_at"])


def downgrade() -> None:
    op.drop_table("clicks")
    op.drop_table("search_queries")
    op.drop_table("search_history")
