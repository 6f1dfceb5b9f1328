"""Persistence backends for crawl sources."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.database import resolve_backend_tag
from app.models.records import SourceRecord
from app.models.source import (
    STATISTIC_FIELDS,
    CrawlFrequency,
    CrawlStatus,
    Source,
    SourceCategory,
)
from app.services.leads.errors import (
    SourceConflictError,
    SourceNotFoundError,
    SourceServiceError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceQuery:
    crawl_frequency: CrawlFrequency | None = None
    crawl_status: CrawlStatus | None = None
    category: SourceCategory | None = None

    def matches(self, source: Source) -> bool:
        if self.crawl_frequency is not None and source.crawl_frequency is not self.crawl_frequency:
            return False
        if self.crawl_status is not None and source.crawl_status is not self.crawl_status:
            return False
        if self.category is not None and source.category is not self.category:
            return False
        return True


def _validate_fields(fields: tuple[str, ...]) -> None:
    unknown = set(fields) - STATISTIC_FIELDS
    if unknown:
        raise ValueError(f"Unknown statistic fields: {sorted(unknown)}")


class SourceRepository(Protocol):
    """Persistence contract for crawl sources.

    ``increment`` and ``mark_crawled`` update counters in place so concurrent
    crawls never lose an update.
    """

    def get(self, source_id: str) -> Source | None:
        ...

    def find_by_domain(self, domain: str) -> Source | None:
        ...

    def find_many(self, query: SourceQuery | None = None, *, newest_first: bool = False) -> list[Source]:
        ...

    def create(self, source: Source) -> Source:
        ...

    def update(self, source: Source) -> Source:
        ...

    def delete(self, source_id: str) -> bool:
        ...

    def increment(self, source_id: str, *fields: str) -> None:
        ...

    def mark_crawled(self, source_id: str, *, success: bool, at: datetime) -> None:
        ...


class InMemorySourceRepository(SourceRepository):
    """Thread-safe repository that keeps sources in insertion order."""

    def __init__(self, sources: list[Source] | None = None) -> None:
        self._sources: dict[str, Source] = {}
        self._lock = Lock()
        for source in sources or []:
            self.create(source)

    def get(self, source_id: str) -> Source | None:
        with self._lock:
            source = self._sources.get(source_id)
            return source.model_copy(deep=True) if source else None

    def find_by_domain(self, domain: str) -> Source | None:
        normalized = Source(domain=domain, category=SourceCategory.NEWS).domain
        with self._lock:
            for source in self._sources.values():
                if source.domain == normalized:
                    return source.model_copy(deep=True)
        return None

    def find_many(self, query: SourceQuery | None = None, *, newest_first: bool = False) -> list[Source]:
        query = query or SourceQuery()
        with self._lock:
            matches = [source.model_copy(deep=True) for source in self._sources.values() if query.matches(source)]
        if newest_first:
            matches.sort(key=lambda source: source.metadata.added_at, reverse=True)
        return matches

    def create(self, source: Source) -> Source:
        with self._lock:
            if any(existing.domain == source.domain for existing in self._sources.values()):
                raise SourceConflictError(source.domain)
            self._sources[source.id] = source.model_copy(deep=True)
        logger.info(
            "sources.persistence.created",
            extra={"source_id": source.id, "domain": source.domain, "backend": "memory"},
        )
        return source

    def update(self, source: Source) -> Source:
        with self._lock:
            current = self._sources.get(source.id)
            if current is None:
                raise SourceNotFoundError(source.id)
            if any(
                existing.domain == source.domain and existing.id != source.id
                for existing in self._sources.values()
            ):
                raise SourceConflictError(source.domain)
            # Statistics are owned by increment()/mark_crawled().
            stored = source.model_copy(
                deep=True,
                update={
                    "statistics": current.statistics.model_copy(),
                    "last_crawled": current.last_crawled,
                },
            )
            self._sources[source.id] = stored
            return stored.model_copy(deep=True)

    def delete(self, source_id: str) -> bool:
        with self._lock:
            return self._sources.pop(source_id, None) is not None

    def increment(self, source_id: str, *fields: str) -> None:
        _validate_fields(fields)
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                raise SourceNotFoundError(source_id)
            for field in fields:
                setattr(source.statistics, field, getattr(source.statistics, field) + 1)

    def mark_crawled(self, source_id: str, *, success: bool, at: datetime) -> None:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                raise SourceNotFoundError(source_id)
            stats = source.statistics
            stats.total_crawls += 1
            if success:
                stats.successful_crawls += 1
                source.last_crawled = at
            else:
                stats.failed_crawls += 1


class SqlSourceRepository(SourceRepository):
    """SQLModel-backed source store; counters use ``col = col + 1`` updates."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._backend = resolve_backend_tag(engine)

    def get(self, source_id: str) -> Source | None:
        with self._guard("get"), self._session() as session:
            record = session.get(SourceRecord, source_id)
            return record.to_source() if record else None

    def find_by_domain(self, domain: str) -> Source | None:
        normalized = Source(domain=domain, category=SourceCategory.NEWS).domain
        with self._guard("find_by_domain"), self._session() as session:
            record = session.exec(select(SourceRecord).where(SourceRecord.domain == normalized)).first()
            return record.to_source() if record else None

    def find_many(self, query: SourceQuery | None = None, *, newest_first: bool = False) -> list[Source]:
        query = query or SourceQuery()
        statement = select(SourceRecord)
        if query.crawl_frequency is not None:
            statement = statement.where(SourceRecord.crawl_frequency == query.crawl_frequency.value)
        if query.crawl_status is not None:
            statement = statement.where(SourceRecord.crawl_status == query.crawl_status.value)
        if query.category is not None:
            statement = statement.where(SourceRecord.category == query.category.value)
        if newest_first:
            statement = statement.order_by(SourceRecord.added_at.desc())
        else:
            statement = statement.order_by(SourceRecord.added_at.asc(), SourceRecord.id.asc())
        with self._guard("find_many"), self._session() as session:
            return [record.to_source() for record in session.exec(statement).all()]

    def create(self, source: Source) -> Source:
        try:
            with self._session() as session:
                session.add(SourceRecord.from_source(source))
                session.commit()
        except IntegrityError as exc:
            raise SourceConflictError(source.domain) from exc
        except SQLAlchemyError as exc:
            logger.exception("sources.persistence.error", extra={"domain": source.domain})
            raise SourceServiceError("Failed to create source.", code="500_INTERNAL") from exc
        logger.info(
            "sources.persistence.created",
            extra={"source_id": source.id, "domain": source.domain, "backend": self._backend},
        )
        return source

    def update(self, source: Source) -> Source:
        try:
            with self._session() as session:
                record = session.get(SourceRecord, source.id)
                if record is None:
                    raise SourceNotFoundError(source.id)
                record.apply(source)
                session.add(record)
                session.commit()
                session.refresh(record)
                return record.to_source()
        except IntegrityError as exc:
            raise SourceConflictError(source.domain) from exc
        except SQLAlchemyError as exc:
            logger.exception("sources.persistence.error", extra={"source_id": source.id})
            raise SourceServiceError("Failed to update source.", code="500_INTERNAL") from exc

    def delete(self, source_id: str) -> bool:
        with self._guard("delete"), self._session() as session:
            record = session.get(SourceRecord, source_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    def increment(self, source_id: str, *fields: str) -> None:
        _validate_fields(fields)
        if not fields:
            return
        values = {field: getattr(SourceRecord, field) + 1 for field in fields}
        self._execute_update(source_id, values, operation="increment")

    def mark_crawled(self, source_id: str, *, success: bool, at: datetime) -> None:
        values = {"total_crawls": SourceRecord.total_crawls + 1}
        if success:
            values["successful_crawls"] = SourceRecord.successful_crawls + 1
            values["last_crawled"] = at
        else:
            values["failed_crawls"] = SourceRecord.failed_crawls + 1
        self._execute_update(source_id, values, operation="mark_crawled")

    def _execute_update(self, source_id: str, values: dict, *, operation: str) -> None:
        statement = update(SourceRecord).where(SourceRecord.id == source_id).values(**values)
        with self._guard(operation), self._session() as session:
            result = session.exec(statement)
            session.commit()
            if result.rowcount == 0:
                raise SourceNotFoundError(source_id)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception(
                "sources.persistence.error",
                extra={"operation": operation, "backend": self._backend},
            )
            raise SourceServiceError(
                f"Source repository {operation} failed.", code="500_INTERNAL"
            ) from exc


def build_source_repository(engine: Engine | None = None) -> SourceRepository:
    """Instantiate a SourceRepository for the configured engine (memory when None)."""
    if engine is None:
        logger.info("sources.repository.initialized", extra={"backend": "memory"})
        return InMemorySourceRepository()
    logger.info("sources.repository.initialized", extra={"backend": resolve_backend_tag(engine)})
    return SqlSourceRepository(engine)
