"""Source management endpoints plus an on-demand crawl."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.common import get_actor, map_error_code, require_admin
from app.models.source import Source, SourceCreate, SourceUpdate
from app.services.dependencies import Repositories, get_crawl_pipeline, get_repositories
from app.services.leads.errors import SourceNotFoundError, SourceServiceError
from app.services.leads.service import Actor
from pipelines.crawl import CrawlError
from pipelines.crawl.pipeline import CrawlPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


def _raise_http(exc: SourceServiceError | CrawlError, **context: Any) -> None:
    logger.warning("sources.api_error", extra={"code": exc.code, **context})
    raise HTTPException(status_code=map_error_code(exc.code), detail=str(exc)) from exc


def _load(repositories: Repositories, source_id: str) -> Source:
    source = repositories.sources.get(source_id)
    if source is None:
        _raise_http(SourceNotFoundError(source_id), source_id=source_id)
    return source


@router.get("", response_model=list[Source])
def list_sources(repositories: Repositories = Depends(get_repositories)) -> list[Source]:
    return repositories.sources.find_many(newest_first=True)


@router.post("", response_model=Source, status_code=status.HTTP_201_CREATED)
def create_source(
    payload: SourceCreate,
    actor: Actor = Depends(get_actor),
    repositories: Repositories = Depends(get_repositories),
) -> Source:
    require_admin(actor)
    source = payload.to_source(added_by=actor.user_id)
    try:
        return repositories.sources.create(source)
    except SourceServiceError as exc:
        _raise_http(exc, domain=source.domain)


@router.get("/{source_id}", response_model=Source)
def get_source(
    source_id: str, repositories: Repositories = Depends(get_repositories)
) -> Source:
    return _load(repositories, source_id)


@router.put("/{source_id}", response_model=Source)
def update_source(
    source_id: str,
    changes: SourceUpdate,
    actor: Actor = Depends(get_actor),
    repositories: Repositories = Depends(get_repositories),
) -> Source:
    require_admin(actor)
    source = _load(repositories, source_id)
    try:
        return repositories.sources.update(changes.apply_to(source))
    except SourceServiceError as exc:
        _raise_http(exc, source_id=source_id)


@router.delete("/{source_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_source(
    source_id: str,
    actor: Actor = Depends(get_actor),
    repositories: Repositories = Depends(get_repositories),
) -> Response:
    require_admin(actor)
    if not repositories.sources.delete(source_id):
        _raise_http(SourceNotFoundError(source_id), source_id=source_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{source_id}/crawl")
def crawl_source(
    source_id: str,
    actor: Actor = Depends(get_actor),
    repositories: Repositories = Depends(get_repositories),
    pipeline: CrawlPipeline = Depends(get_crawl_pipeline),
) -> dict[str, Any]:
    """Crawl one source immediately and reconcile what it yields."""
    require_admin(actor)
    source = _load(repositories, source_id)
    try:
        result = pipeline.process_source(source)
    except CrawlError as exc:
        _raise_http(exc, source_id=source_id)
    logger.info(
        "sources.crawl.manual",
        extra={"source_id": source_id, "articles": result.articles, "actor": actor.user_id},
    )
    return {
        "source_id": result.source_id,
        "domain": result.domain,
        "articles": result.articles,
        "leads_created": result.leads_created,
        "leads_updated": result.leads_updated,
        "candidates_failed": result.candidates_failed,
    }
