"""Add leads.company_key holding the casefolded company name.

Casefolded identity lookups compare against this column so SQL stores match
names the same way as the in-memory store (``str.casefold``).
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa

revision = "8c1f4a6e2b93"
down_revision = "5b2e9c41d7a0"
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)


def upgrade() -> None:
    op.add_column("leads", sa.Column("company_key", sa.String(length=512), nullable=True))

    bind = op.get_bind()
    leads = sa.table(
        "leads",
        sa.column("id", sa.String),
        sa.column("company_name", sa.String),
        sa.column("company_key", sa.String),
    )
    rows = bind.execute(sa.select(leads.c.id, leads.c.company_name)).all()
    for lead_id, company_name in rows:
        bind.execute(
            leads.update().where(leads.c.id == lead_id).values(company_key=company_name.casefold())
        )
    logger.info("migrations.company_key.backfilled", extra={"rows": len(rows)})

    with op.batch_alter_table("leads") as batch:
        batch.alter_column("company_key", existing_type=sa.String(length=512), nullable=False)
    op.create_index("ix_leads_company_key", "leads", ["company_key"])


def downgrade() -> None:
    op.drop_index("ix_leads_company_key", table_name="leads")
    with op.batch_alter_table("leads") as batch:
        batch.drop_column("company_key")
