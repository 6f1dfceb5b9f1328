"""SQLModel mappings for stored leads, sources and sales officers."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression
from sqlmodel import Field, SQLModel

from app.models.lead import Lead
from app.models.officer import SalesOfficer
from app.models.source import Source


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class UtcNow(expression.FunctionElement):
    """Dialect-aware server default that pins timestamps to UTC."""

    type = DateTime(timezone=True)
    inherit_cache = True


@compiles(UtcNow)
def _utc_now_default(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "CURRENT_TIMESTAMP"


@compiles(UtcNow, "postgresql")
def _utc_now_default_postgres(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "timezone('utc', now())"


class LeadRecord(SQLModel, table=True):
    """Lead document plus the scalar columns used for filtering and sorting."""

    __tablename__ = "leads"
    __table_args__ = (
        sa.UniqueConstraint("company_name", name="uq_leads_company_name"),
        sa.Index("ix_leads_company_key", "company_key"),
        sa.Index("ix_leads_status_assigned", "status", "assigned_to"),
        sa.Index("ix_leads_score_total", "score_total"),
        sa.Index("ix_leads_discovered_at", "discovered_at"),
        sa.Index("ix_leads_urgency", "urgency"),
        sa.Index("ix_leads_territory", "territory"),
    )

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    company_name: str = Field(sa_column=Column(String(length=512), nullable=False))
    # casefold() of company_name; SQL lower() does not fold the same characters.
    company_key: str = Field(sa_column=Column(String(length=512), nullable=False))
    status: str = Field(sa_column=Column(String(length=32), nullable=False))
    urgency: str = Field(sa_column=Column(String(length=32), nullable=False))
    score_total: float = Field(sa_column=Column(Float, nullable=False, default=0))
    assigned_to: str | None = Field(
        default=None, sa_column=Column(String(length=64), nullable=True)
    )
    territory: str | None = Field(
        default=None, sa_column=Column(String(length=128), nullable=True)
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    discovered_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=UtcNow(),
            onupdate=UtcNow(),
        ),
    )

    @classmethod
    def from_lead(cls, lead: Lead) -> LeadRecord:
        record = cls(
            id=lead.id, company_name=lead.company_name, company_key=lead.company_name.casefold()
        )
        record.apply(lead)
        return record

    def apply(self, lead: Lead) -> None:
        """Replace the stored document with ``lead`` (whole-document update)."""
        self.company_name = lead.company_name
        self.company_key = lead.company_name.casefold()
        self.status = lead.status.value
        self.urgency = lead.urgency.value
        self.score_total = float(lead.lead_score.total)
        self.assigned_to = lead.assigned_to
        self.territory = lead.territory
        self.payload = lead.model_dump(mode="json")
        self.discovered_at = lead.metadata.discovered_at
        self.updated_at = lead.metadata.last_updated

    def to_lead(self) -> Lead:
        return Lead.model_validate(self.payload)


class SourceRecord(SQLModel, table=True):
    """Source configuration; statistics live in columns so they can be incremented in place."""

    __tablename__ = "sources"
    __table_args__ = (
        sa.UniqueConstraint("domain", name="uq_sources_domain"),
        sa.Index("ix_sources_category_status", "category", "crawl_status"),
        sa.Index("ix_sources_frequency_status", "crawl_frequency", "crawl_status"),
    )

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    domain: str = Field(sa_column=Column(String(length=255), nullable=False))
    category: str = Field(sa_column=Column(String(length=32), nullable=False))
    crawl_frequency: str = Field(sa_column=Column(String(length=16), nullable=False))
    crawl_status: str = Field(sa_column=Column(String(length=16), nullable=False))
    total_crawls: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    successful_crawls: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    failed_crawls: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    leads_generated: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    last_crawled: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    added_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )

    @classmethod
    def from_source(cls, source: Source) -> SourceRecord:
        record = cls(
            id=source.id,
            domain=source.domain,
            total_crawls=source.statistics.total_crawls,
            successful_crawls=source.statistics.successful_crawls,
            failed_crawls=source.statistics.failed_crawls,
            leads_generated=source.statistics.leads_generated,
            last_crawled=source.last_crawled,
        )
        record.apply(source)
        return record

    def apply(self, source: Source) -> None:
        """Copy configuration fields; statistics are only changed via increments."""
        self.domain = source.domain
        self.category = source.category.value
        self.crawl_frequency = source.crawl_frequency.value
        self.crawl_status = source.crawl_status.value
        self.payload = source.model_dump(
            mode="json", exclude={"statistics", "last_crawled"}
        )
        self.added_at = source.metadata.added_at

    def to_source(self) -> Source:
        payload = dict(self.payload)
        payload["statistics"] = {
            "total_crawls": self.total_crawls,
            "successful_crawls": self.successful_crawls,
            "failed_crawls": self.failed_crawls,
            "leads_generated": self.leads_generated,
        }
        last_crawled = self.last_crawled
        # SQLite drops tzinfo on read.
        if last_crawled is not None and last_crawled.tzinfo is None:
            last_crawled = last_crawled.replace(tzinfo=timezone.utc)
        payload["last_crawled"] = last_crawled
        return Source.model_validate(payload)


class OfficerRecord(SQLModel, table=True):
    __tablename__ = "sales_officers"
    __table_args__ = (sa.Index("ix_sales_officers_territory", "territory", "is_active"),)

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    territory: str | None = Field(
        default=None, sa_column=Column(String(length=128), nullable=True)
    )
    role: str = Field(sa_column=Column(String(length=32), nullable=False))
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, server_default=sa.true())
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )

    @classmethod
    def from_officer(cls, officer: SalesOfficer) -> OfficerRecord:
        return cls(
            id=officer.id,
            territory=officer.territory,
            role=officer.role.value,
            is_active=officer.is_active,
            payload=officer.model_dump(mode="json"),
        )

    def to_officer(self) -> SalesOfficer:
        return SalesOfficer.model_validate(self.payload)
