"""Deterministic rule-based inference: product needs, lead score and urgency.

Every function here is pure. Evaluation time is passed in explicitly so that
re-scoring an unchanged signal set yields identical output.
"""
# ruff: noqa: UP017

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from app.models.catalog import DEFAULT_CATALOG, ProductCatalog
from app.models.lead import (
    CompanyDetails,
    LeadScore,
    ProductRecommendation,
    Signal,
    SourceType,
    Urgency,
)

MAX_RECOMMENDATIONS = 3
DIRECT_BASE_CONFIDENCE = 0.6
DIRECT_STEP = 0.1
DIRECT_CAP = 0.9
INDUSTRY_CONFIDENCE = 0.5
EQUIPMENT_CONFIDENCE = 0.65
EQUIPMENT_BOOST = 0.15
EQUIPMENT_CAP = 0.95

PROXIMITY_PLACEHOLDER = 15
RECENT_SIGNAL_DAYS = 7
SECONDS_PER_DAY = 86400

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass
class _Accumulator:
    product: str
    product_name: str
    category: str
    confidence: float
    reason_codes: list[str]
    keywords: list[str]

    def freeze(self) -> ProductRecommendation:
        return ProductRecommendation(
            product=self.product,
            product_name=self.product_name,
            category=self.category,
            confidence=self.confidence,
            reason_codes=list(self.reason_codes),
            keywords=list(self.keywords),
        )


@dataclass(frozen=True)
class LeadAssessment:
    """Full inference output for one signal set."""

    recommendations: list[ProductRecommendation]
    score: LeadScore
    urgency: Urgency


def infer_products(
    text: str,
    industry: str | None = None,
    *,
    catalog: ProductCatalog = DEFAULT_CATALOG,
) -> list[ProductRecommendation]:
    """Return up to three product recommendations for ``text``.

    Passes run in a fixed order (direct keywords, industry, equipment) because
    the equipment pass boosts entries created by the earlier passes.
    """
    normalized = (text or "").lower()
    found: dict[str, _Accumulator] = {}

    for product in catalog:
        matches = [keyword for keyword in product.keywords if keyword.lower() in normalized]
        if not matches:
            continue
        found[product.code] = _Accumulator(
            product=product.code,
            product_name=product.name,
            category=product.category,
            confidence=min(DIRECT_CAP, DIRECT_BASE_CONFIDENCE + DIRECT_STEP * len(matches)),
            reason_codes=[f"Direct mention: {', '.join(matches)}"],
            keywords=matches,
        )

    for code in catalog.products_for_industry(industry):
        if code in found:
            continue
        product = catalog.find_product(code)
        if product is None:
            continue
        found[code] = _Accumulator(
            product=code,
            product_name=product.name,
            category=product.category,
            confidence=INDUSTRY_CONFIDENCE,
            reason_codes=[f"Industry match: {industry}"],
            keywords=[],
        )

    for phrase, codes in catalog.equipment_products.items():
        if phrase.lower() not in normalized:
            continue
        for code in codes:
            existing = found.get(code)
            if existing is not None:
                existing.confidence = min(EQUIPMENT_CAP, existing.confidence + EQUIPMENT_BOOST)
                existing.reason_codes.append(f"Equipment match: {phrase}")
                continue
            product = catalog.find_product(code)
            if product is None:
                continue
            found[code] = _Accumulator(
                product=code,
                product_name=product.name,
                category=product.category,
                confidence=EQUIPMENT_CONFIDENCE,
                reason_codes=[f"Equipment match: {phrase}"],
                keywords=[phrase],
            )

    # sorted() is stable: ties keep insertion (catalog pass) order.
    ranked = sorted(found.values(), key=lambda entry: entry.confidence, reverse=True)
    return [entry.freeze() for entry in ranked[:MAX_RECOMMENDATIONS]]


def parse_turnover(raw: str | float | int | None) -> float | None:
    """Parse the leading numeric portion of a turnover value ("1500 Cr" -> 1500.0)."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    match = _LEADING_NUMBER.match(str(raw))
    if not match:
        return None
    return float(match.group(0))


def calculate_lead_score(
    company_details: CompanyDetails | Mapping[str, object] | None,
    signals: Sequence[Signal],
    *,
    now: datetime,
) -> LeadScore:
    """Compute the four sub-scores and their total from scratch."""
    has_tender = any(signal.source_type is SourceType.TENDER for signal in signals)
    if has_tender:
        intent_strength = 30
    elif len(signals) > 1:
        intent_strength = 20
    else:
        intent_strength = 10

    freshness = 0.0
    if signals:
        latest = max(signals, key=lambda signal: signal.timestamp)
        days_since = max(0.0, _age_days(latest.timestamp, now))
        freshness = max(0.0, 25 - days_since * 2)

    turnover = parse_turnover(_turnover_of(company_details))
    if turnover is None:
        company_size = 10
    elif turnover > 1000:
        company_size = 25
    elif turnover > 100:
        company_size = 20
    else:
        company_size = 15

    return LeadScore(
        intent_strength=intent_strength,
        freshness=freshness,
        company_size=company_size,
        proximity=PROXIMITY_PLACEHOLDER,
    )


def determine_urgency(score: LeadScore, signals: Sequence[Signal], *, now: datetime) -> Urgency:
    """Map a score and signal set onto an urgency tier."""
    has_tender = any(signal.source_type is SourceType.TENDER for signal in signals)
    has_recent = any(_age_days(signal.timestamp, now) < RECENT_SIGNAL_DAYS for signal in signals)
    if has_tender and has_recent:
        return Urgency.CRITICAL
    if score.total > 70:
        return Urgency.HIGH
    if score.total > 50:
        return Urgency.MEDIUM
    return Urgency.LOW


def assess_signals(
    signals: Sequence[Signal],
    company_details: CompanyDetails | None,
    *,
    now: datetime,
    catalog: ProductCatalog = DEFAULT_CATALOG,
    include_industry: bool = True,
) -> LeadAssessment:
    """Run all three inference steps over the full signal history."""
    text = " ".join(signal.extracted_text for signal in signals)
    industry = company_details.industry if (company_details and include_industry) else None
    recommendations = infer_products(text, industry, catalog=catalog)
    score = calculate_lead_score(company_details, signals, now=now)
    urgency = determine_urgency(score, signals, now=now)
    return LeadAssessment(recommendations=recommendations, score=score, urgency=urgency)


def _age_days(timestamp: datetime, now: datetime) -> float:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - timestamp).total_seconds() / SECONDS_PER_DAY


def _turnover_of(company_details: CompanyDetails | Mapping[str, object] | None) -> object:
    if company_details is None:
        return None
    if isinstance(company_details, Mapping):
        return company_details.get("turnover")
    return company_details.turnover
