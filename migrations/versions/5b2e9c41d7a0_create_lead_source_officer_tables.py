"""Create leads, sources and sales_officers tables.

Documents live in a JSON payload column; the scalar columns duplicate the
fields used for filtering, sorting and in-place counter updates.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "5b2e9c41d7a0"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _utc_now_default() -> sa.TextClause:
    if op.get_bind().dialect.name == "postgresql":
        return sa.text("timezone('utc', now())")
    return sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    now = _utc_now_default()
    op.create_table(
        "leads",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("company_name", sa.String(length=512), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("urgency", sa.String(length=32), nullable=False),
        sa.Column("score_total", sa.Float(), nullable=False),
        sa.Column("assigned_to", sa.String(length=64), nullable=True),
        sa.Column("territory", sa.String(length=128), nullable=True),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("discovered_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
        sa.PrimaryKeyConstraint("id", name="pk_leads"),
        sa.UniqueConstraint("company_name", name="uq_leads_company_name"),
    )
    op.create_index("ix_leads_status_assigned", "leads", ["status", "assigned_to"])
    op.create_index("ix_leads_score_total", "leads", ["score_total"])
    op.create_index("ix_leads_discovered_at", "leads", ["discovered_at"])
    op.create_index("ix_leads_urgency", "leads", ["urgency"])
    op.create_index("ix_leads_territory", "leads", ["territory"])

    op.create_table(
        "sources",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("crawl_frequency", sa.String(length=16), nullable=False),
        sa.Column("crawl_status", sa.String(length=16), nullable=False),
        sa.Column("total_crawls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_crawls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_crawls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("leads_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_crawled", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
        sa.PrimaryKeyConstraint("id", name="pk_sources"),
        sa.UniqueConstraint("domain", name="uq_sources_domain"),
    )
    op.create_index("ix_sources_category_status", "sources", ["category", "crawl_status"])
    op.create_index("ix_sources_frequency_status", "sources", ["crawl_frequency", "crawl_status"])

    op.create_table(
        "sales_officers",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("territory", sa.String(length=128), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=now),
        sa.PrimaryKeyConstraint("id", name="pk_sales_officers"),
    )
    op.create_index("ix_sales_officers_territory", "sales_officers", ["territory", "is_active"])
    logger.info("leads.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_index("ix_sales_officers_territory", table_name="sales_officers")
    op.drop_table("sales_officers")
    op.drop_index("ix_sources_frequency_status", table_name="sources")
    op.drop_index("ix_sources_category_status", table_name="sources")
    op.drop_table("sources")
    for index in (
        "ix_leads_territory",
        "ix_leads_urgency",
        "ix_leads_discovered_at",
        "ix_leads_score_total",
        "ix_leads_status_assigned",
    ):
        op.drop_index(index, table_name="leads")
    op.drop_table("leads")
