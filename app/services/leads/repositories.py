"""Persistence backends for leads and sales officers."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.database import resolve_backend_tag
from app.models.lead import Lead, LeadStatus, Urgency
from app.models.officer import OfficerRole, SalesOfficer
from app.models.records import LeadRecord, OfficerRecord
from app.observability.metrics import metrics
from app.services.leads.errors import (
    LeadConflictError,
    LeadNotFoundError,
    LeadPersistenceError,
)

logger = logging.getLogger(__name__)

DEFAULT_SORT = "-discovered_at"

_MEMORY_SORT_KEYS = {
    "discovered_at": lambda lead: lead.metadata.discovered_at,
    "updated_at": lambda lead: lead.metadata.last_updated,
    "score": lambda lead: lead.lead_score.total,
    "company_name": lambda lead: lead.company_name,
}

_SQL_SORT_COLUMNS = {
    "discovered_at": LeadRecord.discovered_at,
    "updated_at": LeadRecord.updated_at,
    "score": LeadRecord.score_total,
    "company_name": LeadRecord.company_name,
}


@dataclass(frozen=True)
class LeadQuery:
    """Equality filters for lead listings; None means unfiltered."""

    status: LeadStatus | None = None
    urgency: Urgency | None = None
    assigned_to: str | None = None
    territory: str | None = None

    def matches(self, lead: Lead) -> bool:
        if self.status is not None and lead.status is not self.status:
            return False
        if self.urgency is not None and lead.urgency is not self.urgency:
            return False
        if self.assigned_to is not None and lead.assigned_to != self.assigned_to:
            return False
        if self.territory is not None and lead.territory != self.territory:
            return False
        return True


def parse_sort(sort: str | None) -> tuple[str, bool]:
    """Return (field, descending) for a ``-field`` style sort expression."""
    raw = (sort or DEFAULT_SORT).strip()
    descending = raw.startswith("-")
    field = raw.lstrip("-+")
    if field not in _MEMORY_SORT_KEYS:
        raise ValueError(f"Unsupported sort field: {field}")
    return field, descending


class LeadRepository(Protocol):
    """Persistence contract for the lead document store."""

    def get(self, lead_id: str) -> Lead | None:
        ...

    def find_by_company(self, company_name: str, *, casefold: bool = False) -> Lead | None:
        ...

    def find_many(
        self,
        query: LeadQuery,
        *,
        sort: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Lead], int]:
        ...

    def create(self, lead: Lead) -> Lead:
        ...

    def save(self, lead: Lead) -> Lead:
        ...

    def delete(self, lead_id: str) -> bool:
        ...


class InMemoryLeadRepository(LeadRepository):
    """Thread-safe repository used for API/local development."""

    def __init__(self) -> None:
        self._leads: dict[str, Lead] = {}
        self._lock = Lock()

    def get(self, lead_id: str) -> Lead | None:
        with self._lock:
            lead = self._leads.get(lead_id)
            return lead.model_copy(deep=True) if lead else None

    def find_by_company(self, company_name: str, *, casefold: bool = False) -> Lead | None:
        wanted = company_name.casefold() if casefold else company_name
        with self._lock:
            for lead in self._leads.values():
                name = lead.company_name.casefold() if casefold else lead.company_name
                if name == wanted:
                    return lead.model_copy(deep=True)
        return None

    def find_many(
        self,
        query: LeadQuery,
        *,
        sort: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Lead], int]:
        field, descending = parse_sort(sort)
        with self._lock:
            matches = [lead for lead in self._leads.values() if query.matches(lead)]
        ordered = sorted(matches, key=_MEMORY_SORT_KEYS[field], reverse=descending)
        offset = max(page - 1, 0) * limit
        window = ordered[offset : offset + limit]
        return [lead.model_copy(deep=True) for lead in window], len(matches)

    def create(self, lead: Lead) -> Lead:
        with self._lock:
            if any(existing.company_name == lead.company_name for existing in self._leads.values()):
                raise LeadConflictError(lead.company_name)
            self._leads[lead.id] = lead.model_copy(deep=True)
        metrics.increment("leads.persistence.created", tags={"repository": "memory"})
        logger.info(
            "leads.persistence.created",
            extra={"lead_id": lead.id, "company": lead.company_name, "backend": "memory"},
        )
        return lead

    def save(self, lead: Lead) -> Lead:
        with self._lock:
            if lead.id not in self._leads:
                raise LeadNotFoundError(lead.id)
            self._leads[lead.id] = lead.model_copy(deep=True)
        metrics.increment("leads.persistence.saved", tags={"repository": "memory"})
        return lead

    def delete(self, lead_id: str) -> bool:
        with self._lock:
            return self._leads.pop(lead_id, None) is not None


class SqlLeadRepository(LeadRepository):
    """SQLModel-backed repository that persists leads to Postgres/SQLite."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._metrics_tags = {"repository": resolve_backend_tag(engine)}

    def get(self, lead_id: str) -> Lead | None:
        with self._guard("get", lead_id=lead_id), self._session() as session:
            record = session.get(LeadRecord, lead_id)
            return record.to_lead() if record else None

    def find_by_company(self, company_name: str, *, casefold: bool = False) -> Lead | None:
        with self._guard("find_by_company", company=company_name), self._session() as session:
            if casefold:
                statement = select(LeadRecord).where(LeadRecord.company_key == company_name.casefold())
            else:
                statement = select(LeadRecord).where(LeadRecord.company_name == company_name)
            record = session.exec(statement).first()
            return record.to_lead() if record else None

    def find_many(
        self,
        query: LeadQuery,
        *,
        sort: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Lead], int]:
        field, descending = parse_sort(sort)
        column = _SQL_SORT_COLUMNS[field]
        conditions = []
        if query.status is not None:
            conditions.append(LeadRecord.status == query.status.value)
        if query.urgency is not None:
            conditions.append(LeadRecord.urgency == query.urgency.value)
        if query.assigned_to is not None:
            conditions.append(LeadRecord.assigned_to == query.assigned_to)
        if query.territory is not None:
            conditions.append(LeadRecord.territory == query.territory)
        with self._guard("find_many"), self._session() as session:
            statement = select(LeadRecord).where(*conditions)
            statement = statement.order_by(column.desc() if descending else column.asc())
            statement = statement.offset(max(page - 1, 0) * limit).limit(limit)
            records = session.exec(statement).all()
            count_statement = select(func.count()).select_from(LeadRecord).where(*conditions)
            total = session.exec(count_statement).one()
            return [record.to_lead() for record in records], int(total)

    def create(self, lead: Lead) -> Lead:
        record = LeadRecord.from_lead(lead)
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
        except IntegrityError as exc:
            logger.warning(
                "leads.persistence.conflict",
                extra={"company": lead.company_name, **self._metrics_tags},
            )
            raise LeadConflictError(lead.company_name) from exc
        except SQLAlchemyError as exc:
            logger.exception("leads.persistence.error", extra={"company": lead.company_name})
            raise LeadPersistenceError("Failed to create lead.", code="500_INTERNAL") from exc
        metrics.increment("leads.persistence.created", tags=self._metrics_tags)
        logger.info(
            "leads.persistence.created",
            extra={"lead_id": lead.id, "company": lead.company_name, **self._metrics_tags},
        )
        return lead

    def save(self, lead: Lead) -> Lead:
        try:
            with self._session() as session:
                record = session.get(LeadRecord, lead.id)
                if record is None:
                    raise LeadNotFoundError(lead.id)
                record.apply(lead)
                session.add(record)
                session.commit()
        except IntegrityError as exc:
            raise LeadConflictError(lead.company_name) from exc
        except SQLAlchemyError as exc:
            logger.exception("leads.persistence.error", extra={"lead_id": lead.id})
            raise LeadPersistenceError("Failed to save lead.", code="500_INTERNAL") from exc
        metrics.increment("leads.persistence.saved", tags=self._metrics_tags)
        return lead

    def delete(self, lead_id: str) -> bool:
        with self._guard("delete", lead_id=lead_id), self._session() as session:
            record = session.get(LeadRecord, lead_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session

    @contextmanager
    def _guard(self, operation: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception(
                "leads.persistence.error",
                extra={"operation": operation, **context, **self._metrics_tags},
            )
            raise LeadPersistenceError(
                f"Lead repository {operation} failed.", code="500_INTERNAL"
            ) from exc


class OfficerRepository(Protocol):
    """Lookup contract for sales officers (owners of leads)."""

    def get(self, officer_id: str) -> SalesOfficer | None:
        ...

    def find_active_for_territory(self, territory: str | None) -> SalesOfficer | None:
        ...

    def create(self, officer: SalesOfficer) -> SalesOfficer:
        ...


class InMemoryOfficerRepository(OfficerRepository):
    def __init__(self, officers: list[SalesOfficer] | None = None) -> None:
        self._officers: dict[str, SalesOfficer] = {}
        self._lock = Lock()
        for officer in officers or []:
            self.create(officer)

    def get(self, officer_id: str) -> SalesOfficer | None:
        with self._lock:
            return self._officers.get(officer_id)

    def find_active_for_territory(self, territory: str | None) -> SalesOfficer | None:
        if not territory:
            return None
        with self._lock:
            for officer in self._officers.values():
                if (
                    officer.is_active
                    and officer.role is OfficerRole.SALES_OFFICER
                    and officer.territory == territory
                ):
                    return officer
        return None

    def create(self, officer: SalesOfficer) -> SalesOfficer:
        with self._lock:
            self._officers[officer.id] = officer
        return officer


class SqlOfficerRepository(OfficerRepository):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, officer_id: str) -> SalesOfficer | None:
        with Session(self._engine) as session:
            record = session.get(OfficerRecord, officer_id)
            return record.to_officer() if record else None

    def find_active_for_territory(self, territory: str | None) -> SalesOfficer | None:
        if not territory:
            return None
        with Session(self._engine) as session:
            statement = (
                select(OfficerRecord)
                .where(
                    OfficerRecord.territory == territory,
                    OfficerRecord.role == OfficerRole.SALES_OFFICER.value,
                    OfficerRecord.is_active.is_(True),
                )
                .order_by(OfficerRecord.created_at.asc())
            )
            record = session.exec(statement).first()
            return record.to_officer() if record else None

    def create(self, officer: SalesOfficer) -> SalesOfficer:
        with Session(self._engine) as session:
            session.add(OfficerRecord.from_officer(officer))
            session.commit()
        return officer


def build_lead_repository(engine: Engine | None = None) -> LeadRepository:
    """Instantiate a LeadRepository for the configured engine (memory when None)."""
    if engine is None:
        logger.info("leads.repository.initialized", extra={"backend": "memory"})
        return InMemoryLeadRepository()
    logger.info("leads.repository.initialized", extra={"backend": resolve_backend_tag(engine)})
    return SqlLeadRepository(engine)


def build_officer_repository(engine: Engine | None = None) -> OfficerRepository:
    if engine is None:
        return InMemoryOfficerRepository()
    return SqlOfficerRepository(engine)
