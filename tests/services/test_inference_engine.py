from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.models.lead import CompanyDetails, LeadScore, SourceType, Urgency
from app.services.inference.engine import (
    MAX_RECOMMENDATIONS,
    assess_signals,
    calculate_lead_score,
    determine_urgency,
    infer_products,
    parse_turnover,
)
from tests.utils import FIXED_NOW, make_signal


def test_direct_mentions_are_boosted_by_equipment_matches():
    recommendations = infer_products("Plant needs furnace oil for boiler")

    assert [rec.product for rec in recommendations] == ["FO", "LDO", "LSHS"]
    fo, ldo, lshs = recommendations
    assert fo.confidence == pytest.approx(0.95)
    assert fo.reason_codes == [
        "Direct mention: furnace oil, fo",
        "Equipment match: boiler",
        "Equipment match: furnace",
    ]
    assert fo.keywords == ["furnace oil", "fo"]
    assert ldo.confidence == pytest.approx(0.8)
    assert lshs.confidence == pytest.approx(0.65)
    assert lshs.keywords == ["boiler"]


def test_industry_pass_uses_table_order_for_ties():
    recommendations = infer_products("", "Power")

    assert [rec.product for rec in recommendations] == ["FO", "LSHS", "HSD"]
    assert all(rec.confidence == pytest.approx(0.5) for rec in recommendations)
    assert recommendations[0].reason_codes == ["Industry match: Power"]
    assert recommendations[0].keywords == []


def test_industry_does_not_override_direct_mention():
    recommendations = infer_products("bulk diesel order", "mining")

    hsd = next(rec for rec in recommendations if rec.product == "HSD")
    assert hsd.confidence == pytest.approx(0.7)
    assert hsd.reason_codes == ["Direct mention: diesel"]


def test_direct_confidence_is_capped():
    recommendations = infer_products("diesel hsd high speed diesel")

    assert recommendations[0].product == "HSD"
    assert recommendations[0].confidence == pytest.approx(0.9)


def test_equipment_boost_is_capped():
    recommendations = infer_products("new diesel generator installed")

    assert [rec.product for rec in recommendations] == ["HSD", "FO"]
    assert recommendations[0].confidence == pytest.approx(0.95)
    assert recommendations[1].confidence == pytest.approx(0.65)
    assert recommendations[1].reason_codes == ["Equipment match: generator"]


def test_generator_for_captive_power_prefers_diesel():
    recommendations = infer_products("diesel generator for captive power")

    assert len(recommendations) <= MAX_RECOMMENDATIONS
    assert recommendations[0].product == "HSD"
    assert recommendations[0].confidence >= 0.6
    confidences = [rec.confidence for rec in recommendations]
    assert confidences == sorted(confidences, reverse=True)
    assert [(rec.product, rec.confidence) for rec in recommendations] == [
        ("HSD", pytest.approx(0.95)),
        ("FO", pytest.approx(0.95)),
        ("LSHS", pytest.approx(0.65)),
    ]


def test_no_evidence_yields_no_recommendations():
    assert infer_products("") == []
    assert infer_products("quarterly results announced", None) == []
    assert infer_products("", "unknown-industry") == []


def test_recommendations_are_bounded_and_ordered():
    text = "furnace oil boiler bitumen hexane sulphur propylene kerosene solvent"
    recommendations = infer_products(text, "chemicals")

    assert len(recommendations) == MAX_RECOMMENDATIONS
    confidences = [rec.confidence for rec in recommendations]
    assert confidences == sorted(confidences, reverse=True)
    assert all(0 <= value <= 1 for value in confidences)


def test_inference_is_deterministic():
    text = "Captive power plant tender for LSHS and furnace oil"
    assert infer_products(text, "power") == infer_products(text, "power")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1500 Cr", 1500.0),
        ("  12.5 crore", 12.5),
        ("1e3 lakh", 1000.0),
        (42, 42.0),
        ("approx 200", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_turnover(raw, expected):
    assert parse_turnover(raw) == expected


def test_tender_with_large_turnover_scores_high_and_is_critical():
    signals = [make_signal("tender for furnace oil", source_type=SourceType.TENDER)]
    score = calculate_lead_score(CompanyDetails(turnover="1500 Cr"), signals, now=FIXED_NOW)

    assert (score.intent_strength, score.freshness, score.company_size, score.proximity) == (
        30,
        25,
        25,
        15,
    )
    assert score.total == 95
    assert determine_urgency(score, signals, now=FIXED_NOW) is Urgency.CRITICAL


def test_stale_tender_is_not_critical():
    signals = [make_signal("tender", source_type=SourceType.TENDER, days_ago=10)]
    score = calculate_lead_score({"turnover": "2000"}, signals, now=FIXED_NOW)

    assert score.freshness == pytest.approx(5)
    assert score.total == pytest.approx(75)
    assert determine_urgency(score, signals, now=FIXED_NOW) is Urgency.HIGH


def test_multiple_signals_and_mid_turnover():
    signals = [make_signal("a", days_ago=3), make_signal("b", days_ago=5)]
    score = calculate_lead_score(CompanyDetails(turnover="500"), signals, now=FIXED_NOW)

    assert score.intent_strength == 20
    assert score.freshness == pytest.approx(19)
    assert score.company_size == 20
    assert determine_urgency(score, signals, now=FIXED_NOW) is Urgency.HIGH


def test_single_fresh_signal_without_turnover_is_medium():
    signals = [make_signal("diesel")]
    score = calculate_lead_score(None, signals, now=FIXED_NOW)

    assert score.total == 60
    assert determine_urgency(score, signals, now=FIXED_NOW) is Urgency.MEDIUM


def test_empty_signal_set_scores_low():
    score = calculate_lead_score(CompanyDetails(turnover="50"), [], now=FIXED_NOW)

    assert score.freshness == 0
    assert score.company_size == 15
    assert score.total == 40
    assert determine_urgency(score, [], now=FIXED_NOW) is Urgency.LOW


def test_freshness_never_goes_negative():
    score = calculate_lead_score(None, [make_signal("x", days_ago=40)], now=FIXED_NOW)
    assert score.freshness == 0


def test_score_total_always_equals_sum_of_parts():
    score = LeadScore(intent_strength=1, freshness=2, company_size=3, proximity=4, total=99)
    assert score.total == 10


def test_score_cannot_drift_from_its_parts():
    score = LeadScore(intent_strength=10, freshness=25, company_size=15, proximity=15)

    with pytest.raises(ValidationError):
        score.freshness = 0
    assert score.total == 65
    assert LeadScore.model_validate({**score.model_dump(), "freshness": 5}).total == 45


def test_assess_signals_combines_all_signal_text():
    signals = [make_signal("seeking bitumen"), make_signal("and a diesel supplier", days_ago=1)]
    assessment = assess_signals(signals, CompanyDetails(industry="textile"), now=FIXED_NOW)

    codes = [rec.product for rec in assessment.recommendations]
    assert codes == ["HSD", "Bitumen", "JBO"]
    assert assessment.score.intent_strength == 20
    assert assessment.urgency is Urgency.MEDIUM


def test_assess_signals_can_ignore_industry():
    signals = [make_signal("quarterly results")]
    with_industry = assess_signals(signals, CompanyDetails(industry="jute"), now=FIXED_NOW)
    without = assess_signals(
        signals, CompanyDetails(industry="jute"), now=FIXED_NOW, include_industry=False
    )

    assert [rec.product for rec in with_industry.recommendations] == ["JBO"]
    assert without.recommendations == []
