"""Lead endpoints: listing, manual intake and lifecycle updates."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.api.common import get_actor, map_error_code
from app.models.lead import (
    ContactAttemptCreate,
    FeedbackSubmission,
    Lead,
    LeadCreate,
    LeadStatus,
    LeadUpdate,
    Signal,
    Urgency,
)
from app.services.dependencies import get_lead_service
from app.services.leads.errors import LeadServiceError
from app.services.leads.repositories import DEFAULT_SORT, LeadQuery
from app.services.leads.service import Actor, LeadService

router = APIRouter()
logger = logging.getLogger(__name__)


def _raise_http(exc: LeadServiceError, **context: Any) -> None:
    logger.warning("leads.api_error", extra={"code": exc.code, **context})
    raise HTTPException(status_code=map_error_code(exc.code), detail=str(exc)) from exc


@router.get("")
def list_leads(
    status_filter: LeadStatus | None = Query(None, alias="status"),
    urgency: Urgency | None = Query(None),
    assigned_to: str | None = Query(None),
    territory: str | None = Query(None),
    sort: str = Query(DEFAULT_SORT, description="Field name, prefixed with '-' for descending."),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> dict[str, Any]:
    query = LeadQuery(
        status=status_filter, urgency=urgency, assigned_to=assigned_to, territory=territory
    )
    try:
        result = service.list_leads(actor, query, sort=sort, page=page, limit=limit)
    except LeadServiceError as exc:
        _raise_http(exc)
    return {
        "leads": [lead.model_dump(mode="json") for lead in result.items],
        "total": result.total,
        "page": result.page,
        "limit": result.limit,
        "total_pages": result.total_pages,
    }


@router.get("/{lead_id}", response_model=Lead)
def get_lead(
    lead_id: str,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Lead:
    try:
        return service.get_lead(actor, lead_id)
    except LeadServiceError as exc:
        _raise_http(exc, lead_id=lead_id)


@router.post("", response_model=Lead, status_code=status.HTTP_201_CREATED)
def create_lead(
    payload: LeadCreate,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Lead:
    try:
        return service.create_lead(actor, payload).lead
    except LeadServiceError as exc:
        _raise_http(exc, company=payload.company_name)


@router.put("/{lead_id}", response_model=Lead)
def update_lead(
    lead_id: str,
    changes: LeadUpdate,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Lead:
    try:
        return service.update_lead(actor, lead_id, changes).lead
    except LeadServiceError as exc:
        _raise_http(exc, lead_id=lead_id)


@router.post("/{lead_id}/feedback", response_model=Lead)
def submit_feedback(
    lead_id: str,
    submission: FeedbackSubmission,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Lead:
    try:
        return service.submit_feedback(actor, lead_id, submission)
    except LeadServiceError as exc:
        _raise_http(exc, lead_id=lead_id)


@router.post("/{lead_id}/contact", response_model=Lead)
def record_contact(
    lead_id: str,
    attempt: ContactAttemptCreate,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Lead:
    try:
        return service.record_contact(actor, lead_id, attempt)
    except LeadServiceError as exc:
        _raise_http(exc, lead_id=lead_id)


@router.post("/{lead_id}/signals", response_model=Lead)
def add_signal(
    lead_id: str,
    signal: Signal,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Lead:
    try:
        return service.add_signal(actor, lead_id, signal)
    except LeadServiceError as exc:
        _raise_http(exc, lead_id=lead_id)


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lead(
    lead_id: str,
    actor: Actor = Depends(get_actor),
    service: LeadService = Depends(get_lead_service),
) -> Response:
    try:
        service.delete_lead(actor, lead_id)
    except LeadServiceError as exc:
        _raise_http(exc, lead_id=lead_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
