"""Domain models for discovered leads and the signals that back them."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, confloat, field_validator, model_validator

# Tolerated clock skew between the producer of a signal and this service.
SIGNAL_FUTURE_SKEW = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SourceType(str, Enum):
    """Kind of evidence a signal was extracted from."""

    NEWS = "news"
    TENDER = "tender"
    COMPANY_WEBSITE = "company_website"
    FILING = "filing"
    DIRECTORY = "directory"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LeadStatus.WON, LeadStatus.LOST, LeadStatus.REJECTED})


class Signal(BaseModel):
    """One observed mention of a prospect. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    source: str
    source_url: str
    source_type: SourceType
    extracted_text: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    keywords: list[str] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def _timestamp_not_in_future(cls, value: datetime) -> datetime:
        value = _as_utc(value)
        if value > _utcnow() + SIGNAL_FUTURE_SKEW:
            raise ValueError(f"Signal timestamp {value.isoformat()} is in the future.")
        return value


class ProductRecommendation(BaseModel):
    """Inferred product need with accumulated justification."""

    product: str
    product_name: str
    category: str
    confidence: confloat(ge=0, le=1)  # type: ignore[valid-type]
    reason_codes: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)


_SUB_SCORES = ("intent_strength", "freshness", "company_size", "proximity")


class LeadScore(BaseModel):
    """Weighted assessment; ``total`` always equals the sum of the four sub-scores.

    Frozen so a sub-score cannot change without rebuilding the total.
    """

    model_config = ConfigDict(frozen=True)

    total: float = 0
    intent_strength: float = 0
    freshness: float = 0
    company_size: float = 0
    proximity: float = 0

    @model_validator(mode="before")
    @classmethod
    def _sum_total(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["total"] = sum(float(data.get(name) or 0) for name in _SUB_SCORES)
        return data


class Coordinates(BaseModel):
    lat: float
    lng: float


class CompanyDetails(BaseModel):
    cin: str | None = None
    gst: str | None = None
    website: str | None = None
    industry: str | None = None
    sector: str | None = None
    turnover: str | None = None
    address: str | None = None
    coordinates: Coordinates | None = None

    @field_validator("turnover", mode="before")
    @classmethod
    def _stringify_turnover(cls, value: Any) -> Any:
        # Numeric turnovers arrive from JSON clients; stored as text like "1500 Cr".
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class Facility(BaseModel):
    location: str | None = None
    type: str | None = None
    capacity: str | None = None
    coordinates: Coordinates | None = None


class NextAction(BaseModel):
    action: str
    due_date: datetime | None = None
    notes: str | None = None


class Feedback(BaseModel):
    accepted: bool | None = None
    converted: bool | None = None
    rejection_reason: str | None = None
    feedback_date: datetime = Field(default_factory=_utcnow)
    notes: str | None = None


class ContactAttempt(BaseModel):
    date: datetime = Field(default_factory=_utcnow)
    method: str | None = None
    outcome: str | None = None
    notes: str | None = None


class LeadMetadata(BaseModel):
    discovered_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)
    notification_sent: bool = False
    notification_sent_at: datetime | None = None


class Lead(BaseModel):
    """Central aggregate tracked through the sales pipeline."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    company_name: str = Field(min_length=1)
    company_details: CompanyDetails = Field(default_factory=CompanyDetails)
    facilities: list[Facility] = Field(default_factory=list)
    product_recommendations: list[ProductRecommendation] = Field(default_factory=list)
    signals: list[Signal] = Field(default_factory=list)
    lead_score: LeadScore = Field(default_factory=LeadScore)
    urgency: Urgency = Urgency.MEDIUM
    status: LeadStatus = LeadStatus.NEW
    assigned_to: str | None = None
    territory: str | None = None
    dsro: str | None = None
    depot: str | None = None
    next_action: NextAction | None = None
    feedback: Feedback | None = None
    contact_attempts: list[ContactAttempt] = Field(default_factory=list)
    metadata: LeadMetadata = Field(default_factory=LeadMetadata)

    def touch(self, now: datetime | None = None) -> Lead:
        self.metadata.last_updated = now or _utcnow()
        return self


class LeadCreate(BaseModel):
    """Manual intake payload."""

    company_name: str = Field(min_length=1)
    company_details: CompanyDetails = Field(default_factory=CompanyDetails)
    facilities: list[Facility] = Field(default_factory=list)
    signals: list[Signal] = Field(default_factory=list)
    territory: str | None = None
    dsro: str | None = None
    depot: str | None = None


class LeadUpdate(BaseModel):
    """Partial update; only fields present in the request are applied."""

    status: LeadStatus | None = None
    next_action: NextAction | None = None
    contact_attempts: list[ContactAttempt] | None = Field(
        default=None, description="Attempts appended to the existing history."
    )
    company_details: CompanyDetails | None = None
    facilities: list[Facility] | None = None
    assigned_to: str | None = None
    territory: str | None = None
    dsro: str | None = None
    depot: str | None = None


class FeedbackSubmission(BaseModel):
    accepted: bool | None = None
    converted: bool | None = None
    rejection_reason: str | None = None
    notes: str | None = None


class ContactAttemptCreate(BaseModel):
    method: str | None = None
    outcome: str | None = None
    notes: str | None = None
