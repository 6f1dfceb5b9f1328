"""Lead lifecycle operations used by the HTTP API."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from app.models.catalog import DEFAULT_CATALOG, ProductCatalog
from app.models.lead import (
    ContactAttempt,
    ContactAttemptCreate,
    Feedback,
    FeedbackSubmission,
    Lead,
    LeadCreate,
    LeadStatus,
    LeadUpdate,
    NextAction,
    Signal,
    SourceType,
)
from app.models.officer import OfficerRole, SalesOfficer
from app.observability.metrics import metrics
from app.services.inference.engine import assess_signals
from app.services.leads.errors import (
    LeadConflictError,
    LeadForbiddenError,
    LeadNotFoundError,
    LeadValidationError,
)
from app.services.leads.reconciliation import LeadReconciler, merge_signal, rescore
from app.services.leads.repositories import LeadQuery, LeadRepository, OfficerRepository, parse_sort
from app.services.notifications.channels import DeliveryResult
from app.services.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger("leads.service")

TENDER_ACTION = "Review tender requirements and prepare proposal"
OUTREACH_ACTION = "Initial contact call to introduce product portfolio"
TENDER_ACTION_DUE = timedelta(days=1)
OUTREACH_ACTION_DUE = timedelta(days=3)
CONNECTED_OUTCOME = "connected"
MAX_PAGE_SIZE = 100

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Actor:
    """Caller identity as asserted by the upstream gateway.

    A missing role means an internal/system caller with full access.
    """

    user_id: str | None = None
    role: OfficerRole | None = None

    @property
    def is_system(self) -> bool:
        return self.role is None

    @property
    def is_admin(self) -> bool:
        return self.is_system or self.role is OfficerRole.ADMIN

    @property
    def is_sales_officer(self) -> bool:
        return self.role is OfficerRole.SALES_OFFICER

    def can_access(self, lead: Lead) -> bool:
        if not self.is_sales_officer:
            return True
        return lead.assigned_to is not None and lead.assigned_to == self.user_id


SYSTEM_ACTOR = Actor()


@dataclass
class LeadPage:
    items: list[Lead]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class LeadWriteResult:
    lead: Lead
    notifications: dict[str, DeliveryResult] = field(default_factory=dict)


def suggest_next_action(signals: list[Signal], *, now: datetime) -> NextAction:
    if any(signal.source_type is SourceType.TENDER for signal in signals):
        return NextAction(action=TENDER_ACTION, due_date=now + TENDER_ACTION_DUE)
    return NextAction(action=OUTREACH_ACTION, due_date=now + OUTREACH_ACTION_DUE)


class LeadService:
    def __init__(
        self,
        leads: LeadRepository,
        officers: OfficerRepository,
        reconciler: LeadReconciler,
        dispatcher: NotificationDispatcher,
        *,
        catalog: ProductCatalog = DEFAULT_CATALOG,
        clock: Clock | None = None,
    ) -> None:
        self._leads = leads
        self._officers = officers
        self._reconciler = reconciler
        self._dispatcher = dispatcher
        self._catalog = catalog
        self._clock = clock or _utcnow

    # Queries -----------------------------------------------------------------

    def list_leads(
        self,
        actor: Actor,
        query: LeadQuery,
        *,
        sort: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> LeadPage:
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise LeadValidationError(f"page must be >= 1 and limit within 1..{MAX_PAGE_SIZE}")
        try:
            parse_sort(sort)
        except ValueError as exc:
            raise LeadValidationError(str(exc)) from exc
        if actor.is_sales_officer:
            query = LeadQuery(
                status=query.status,
                urgency=query.urgency,
                assigned_to=actor.user_id,
                territory=query.territory,
            )
        items, total = self._leads.find_many(query, sort=sort, page=page, limit=limit)
        return LeadPage(items=items, total=total, page=page, limit=limit)

    def get_lead(self, actor: Actor, lead_id: str) -> Lead:
        lead = self._leads.get(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)
        if not actor.can_access(lead):
            raise LeadForbiddenError("Not authorized to view this lead")
        return lead

    # Commands ----------------------------------------------------------------

    def create_lead(self, actor: Actor, payload: LeadCreate) -> LeadWriteResult:
        """Manual intake: assess, assign an owner by territory and notify them."""
        now = self._clock()
        company_name = payload.company_name.strip()
        if not company_name:
            raise LeadValidationError("company_name must not be blank")

        with self._reconciler.locks.hold(self._reconciler.identity_key(company_name)):
            if self._reconciler.find_existing(company_name) is not None:
                raise LeadConflictError(company_name)
            assessment = assess_signals(
                payload.signals, payload.company_details, now=now, catalog=self._catalog
            )
            owner = self._officers.find_active_for_territory(payload.territory)
            lead = Lead(
                company_name=company_name,
                company_details=payload.company_details,
                facilities=payload.facilities,
                signals=payload.signals,
                product_recommendations=assessment.recommendations,
                lead_score=assessment.score,
                urgency=assessment.urgency,
                status=LeadStatus.NEW,
                assigned_to=owner.id if owner else None,
                territory=payload.territory,
                dsro=payload.dsro,
                depot=payload.depot,
                next_action=suggest_next_action(payload.signals, now=now),
            )
            lead.metadata.discovered_at = now
            lead.metadata.last_updated = now
            self._leads.create(lead)

        logger.info(
            "leads.intake.created",
            extra={
                "lead_id": lead.id,
                "company": company_name,
                "assigned_to": lead.assigned_to,
                "actor": actor.user_id,
            },
        )
        metrics.increment("leads.intake.created", tags={"assigned": bool(owner)})
        notifications = self._notify(owner, lead) if owner else {}
        return LeadWriteResult(lead=lead, notifications=notifications)

    def update_lead(self, actor: Actor, lead_id: str, changes: LeadUpdate) -> LeadWriteResult:
        lead = self.get_lead(actor, lead_id)
        provided = changes.model_fields_set
        now = self._clock()

        new_owner: SalesOfficer | None = None
        if "assigned_to" in provided and changes.assigned_to != lead.assigned_to:
            if actor.is_sales_officer:
                raise LeadForbiddenError("Sales officers cannot reassign leads")
            if changes.assigned_to is not None:
                new_owner = self._officers.get(changes.assigned_to)
                if new_owner is None:
                    raise LeadValidationError(f"Unknown sales officer: {changes.assigned_to}")
            lead.assigned_to = changes.assigned_to

        if "status" in provided and changes.status is not None:
            lead.status = changes.status
        if "next_action" in provided:
            lead.next_action = changes.next_action
        if changes.contact_attempts:
            lead.contact_attempts.extend(changes.contact_attempts)
        if "facilities" in provided and changes.facilities is not None:
            lead.facilities = changes.facilities
        for name in ("territory", "dsro", "depot"):
            if name in provided:
                setattr(lead, name, getattr(changes, name))

        if "company_details" in provided and changes.company_details is not None:
            details_changed = changes.company_details != lead.company_details
            lead.company_details = changes.company_details
            if details_changed:
                rescore(lead, now=now, catalog=self._catalog)

        lead.touch(now)
        self._leads.save(lead)
        logger.info(
            "leads.updated",
            extra={"lead_id": lead.id, "fields": sorted(provided), "actor": actor.user_id},
        )
        notifications = self._notify(new_owner, lead) if new_owner else {}
        return LeadWriteResult(lead=lead, notifications=notifications)

    def submit_feedback(self, actor: Actor, lead_id: str, submission: FeedbackSubmission) -> Lead:
        lead = self.get_lead(actor, lead_id)
        now = self._clock()
        lead.feedback = Feedback(
            accepted=submission.accepted,
            converted=submission.converted,
            rejection_reason=submission.rejection_reason,
            notes=submission.notes,
            feedback_date=now,
        )
        if submission.converted:
            lead.status = LeadStatus.WON
        elif submission.accepted is False:
            lead.status = LeadStatus.REJECTED
        lead.touch(now)
        self._leads.save(lead)
        logger.info(
            "leads.feedback.recorded",
            extra={"lead_id": lead.id, "status": lead.status.value, "actor": actor.user_id},
        )
        metrics.increment("leads.feedback.recorded", tags={"status": lead.status.value})
        return lead

    def record_contact(self, actor: Actor, lead_id: str, attempt: ContactAttemptCreate) -> Lead:
        lead = self.get_lead(actor, lead_id)
        now = self._clock()
        lead.contact_attempts.append(
            ContactAttempt(date=now, method=attempt.method, outcome=attempt.outcome, notes=attempt.notes)
        )
        connected = (attempt.outcome or "").strip().lower() == CONNECTED_OUTCOME
        if connected and not lead.status.is_terminal:
            lead.status = LeadStatus.CONTACTED
        lead.touch(now)
        self._leads.save(lead)
        logger.info(
            "leads.contact.recorded",
            extra={"lead_id": lead.id, "outcome": attempt.outcome, "status": lead.status.value},
        )
        return lead

    def add_signal(self, actor: Actor, lead_id: str, signal: Signal) -> Lead:
        """Append a signal and re-assess over the lead's full history."""
        lead = self.get_lead(actor, lead_id)
        with self._reconciler.locks.hold(self._reconciler.identity_key(lead.company_name)):
            lead = self._leads.get(lead_id) or lead
            merge_signal(lead, signal, now=self._clock(), catalog=self._catalog)
            self._leads.save(lead)
        logger.info(
            "leads.signal.appended",
            extra={"lead_id": lead.id, "signals": len(lead.signals), "source": signal.source},
        )
        return lead

    def delete_lead(self, actor: Actor, lead_id: str) -> None:
        if not actor.is_admin:
            raise LeadForbiddenError("Admin access required")
        if not self._leads.delete(lead_id):
            raise LeadNotFoundError(lead_id)
        logger.info("leads.deleted", extra={"lead_id": lead_id, "actor": actor.user_id})

    def _notify(self, officer: SalesOfficer, lead: Lead) -> dict[str, DeliveryResult]:
        results = self._dispatcher.dispatch(officer, lead)
        self._leads.save(lead)
        return results
