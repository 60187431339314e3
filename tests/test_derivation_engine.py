from typing import get_args

import pytest

import schemas
from engines.derivation import DerivationInvariantError, ProfileDerivationEngine, derive
from engines.validation import validate


@pytest.fixture
def engine():
    return ProfileDerivationEngine()


def _derive(document):
    return derive(validate(document))


def test_sample_profile_scores(quiz_document):
    derived = _derive(quiz_document)

    assert derived.risk_tolerance.model_dump() == {
        "privacy": 3.5,
        "financial": 3.5,
        "legal": 3.4,
        "overall": 3.5,
    }
    assert derived.alert_thresholds.model_dump() == {
        "privacy": 4.6,
        "liability": 4.5,
        "termination": 4.6,
        "payment": 4.6,
        "overall": 4.6,
    }
    assert derived.computation_version == "1.0"


def test_band_boundary_prefers_the_protective_style(quiz_document):
    # overall lands exactly on the low-band limit of 3.5
    derived = _derive(quiz_document)

    assert derived.risk_tolerance.overall == 3.5
    assert derived.explanation_style == "comprehensive_cautious"


def test_cautious_answers_yield_low_overall_and_protective_style(make_document):
    document = make_document(
        riskPreferences__privacy__overallImportance="extremely_important",
        riskPreferences__financial__paymentApproach="very_cautious",
        riskPreferences__legal__arbitrationComfort="strongly_prefer_courts",
    )

    derived = _derive(document)

    assert derived.risk_tolerance.overall <= 3.0
    assert derived.explanation_style in {"comprehensive_cautious", "simple_protective"}


@pytest.mark.parametrize("comfort", get_args(schemas.ComfortLevel))
@pytest.mark.parametrize("preferred", get_args(schemas.PreferredExplanationStyle))
def test_cautious_answers_stay_protective_for_any_sophistication(make_document, comfort, preferred):
    document = make_document(
        riskPreferences__privacy__overallImportance="extremely_important",
        riskPreferences__financial__paymentApproach="very_cautious",
        riskPreferences__legal__arbitrationComfort="strongly_prefer_courts",
        riskPreferences__privacy__dataProcessingComfort={
            "domesticProcessing": "comfortable",
            "internationalTransfers": "comfortable",
            "thirdPartySharing": "comfortable",
            "aiProcessing": "comfortable",
            "longTermStorage": "comfortable",
        },
        riskPreferences__legal__liabilityTolerance="minimal_concern",
        riskPreferences__legal__previousIssues="no_issues",
        riskPreferences__financial__feeImpact="minimal",
        riskPreferences__financial__financialSituation="high_income",
        digitalBehavior__techSophistication__comfortLevel=comfort,
        digitalBehavior__techSophistication__preferredExplanationStyle=preferred,
    )

    derived = _derive(document)

    assert derived.risk_tolerance.overall <= 3.0
    assert derived.explanation_style in {"comprehensive_cautious", "simple_protective"}


def test_relaxed_expert_gets_technical_style(make_document):
    document = make_document(
        riskPreferences__privacy__overallImportance="not_very_important",
        riskPreferences__financial__paymentApproach="relaxed",
        riskPreferences__legal__arbitrationComfort="acceptable",
        riskPreferences__legal__liabilityTolerance="minimal_concern",
        riskPreferences__legal__legalKnowledge={
            "contractLaw": "expert",
            "privacyLaw": "expert",
            "consumerRights": "expert",
        },
        riskPreferences__financial__financialSituation="high_income",
        digitalBehavior__techSophistication__comfortLevel="expert",
        digitalBehavior__techSophistication__preferredExplanationStyle="technical_detailed",
    )

    derived = _derive(document)

    assert derived.risk_tolerance.overall > 6.5
    assert derived.explanation_style == "technical_efficient"


def test_beginner_with_low_tolerance_gets_simple_style(make_document):
    document = make_document(
        riskPreferences__privacy__overallImportance="extremely_important",
        digitalBehavior__techSophistication__comfortLevel="beginner",
    )

    assert _derive(document).explanation_style == "simple_protective"


def test_stated_preference_can_only_make_style_more_protective(make_document):
    relaxed = dict(
        riskPreferences__privacy__overallImportance="not_very_important",
        riskPreferences__financial__paymentApproach="relaxed",
        riskPreferences__legal__arbitrationComfort="acceptable",
        digitalBehavior__techSophistication__comfortLevel="expert",
    )
    careful = _derive(make_document(
        digitalBehavior__techSophistication__preferredExplanationStyle="comprehensive_analysis", **relaxed
    ))
    brief = _derive(make_document(
        digitalBehavior__techSophistication__preferredExplanationStyle="bullet_summaries", **relaxed
    ))

    assert careful.explanation_style == "comprehensive_cautious"
    assert brief.explanation_style == "technical_efficient"


def test_vulnerable_users_get_protective_adjustments(quiz_document, make_document):
    baseline = _derive(quiz_document)
    vulnerable = _derive(make_document(contextualFactors__specialCircumstances=["elderly_or_vulnerable"]))

    assert vulnerable.risk_tolerance.overall < baseline.risk_tolerance.overall
    for name in ("privacy", "liability", "termination", "payment", "overall"):
        assert getattr(vulnerable.alert_thresholds, name) <= getattr(baseline.alert_thresholds, name)
    assert vulnerable.explanation_style == "simple_protective"
    assert "enhanced-protection" in vulnerable.profile_tags
    assert "special_elderly_or_vulnerable" in vulnerable.profile_tags


def test_dependents_lower_overall_tolerance(quiz_document, make_document):
    baseline = _derive(quiz_document)
    family = _derive(make_document(contextualFactors__dependentStatus="children_dependents"))

    assert family.risk_tolerance.overall < baseline.risk_tolerance.overall
    assert family.risk_tolerance.privacy == baseline.risk_tolerance.privacy


def test_lower_tolerance_gives_stricter_thresholds(make_document):
    strict = _derive(make_document(riskPreferences__privacy__overallImportance="extremely_important"))
    lax = _derive(make_document(riskPreferences__privacy__overallImportance="not_very_important"))

    assert strict.risk_tolerance.privacy < lax.risk_tolerance.privacy
    assert strict.alert_thresholds.privacy < lax.alert_thresholds.privacy


def test_interruption_timing_and_frequency_shift_thresholds(make_document):
    eager = _derive(make_document(contextualFactors__alertPreferences__interruptionTiming="any_concerning"))
    reluctant = _derive(make_document(contextualFactors__alertPreferences__interruptionTiming="only_severe"))
    assert eager.alert_thresholds.overall < reluctant.alert_thresholds.overall

    few = _derive(make_document(contextualFactors__alertPreferences__alertFrequencyLimit=1))
    many = _derive(make_document(contextualFactors__alertPreferences__alertFrequencyLimit=50))
    assert few.alert_thresholds.payment < many.alert_thresholds.payment


@pytest.mark.parametrize(
    "limit,shift",
    [(1, -0.9), (5, -0.5), (10, 0.0), (20, 1.0), (50, 1.0)],
)
def test_frequency_shift_follows_the_daily_limit(make_document, engine, limit, shift):
    quiz = validate(make_document(
        contextualFactors__alertPreferences__interruptionTiming="moderate_and_high",
        contextualFactors__alertPreferences__alertFrequencyLimit=limit,
    ))

    assert engine.threshold_shift(quiz) == pytest.approx(0.5 + shift)


def test_duplicate_sensitive_types_count_once(make_document):
    single = _derive(make_document(
        riskPreferences__privacy__sensitiveDataTypes=[{"dataType": "health_data", "priorityLevel": 1}]
    ))
    repeated = _derive(make_document(
        riskPreferences__privacy__sensitiveDataTypes=[
            {"dataType": "health_data", "priorityLevel": 1},
            {"dataType": "health_data", "priorityLevel": 2},
        ]
    ))

    assert single == repeated


_SWEEP = [
    ("demographics.ageRange", schemas.AgeRange),
    ("demographics.occupation", schemas.Occupation),
    ("digitalBehavior.techSophistication.comfortLevel", schemas.ComfortLevel),
    ("digitalBehavior.techSophistication.preferredExplanationStyle", schemas.PreferredExplanationStyle),
    ("riskPreferences.privacy.overallImportance", schemas.OverallImportance),
    ("riskPreferences.financial.paymentApproach", schemas.PaymentApproach),
    ("riskPreferences.financial.feeImpact", schemas.FeeImpact),
    ("riskPreferences.financial.financialSituation", schemas.FinancialSituation),
    ("riskPreferences.legal.arbitrationComfort", schemas.ArbitrationComfort),
    ("riskPreferences.legal.liabilityTolerance", schemas.LiabilityTolerance),
    ("riskPreferences.legal.previousIssues", schemas.PreviousIssues),
    ("contextualFactors.dependentStatus", schemas.DependentStatus),
    ("contextualFactors.alertPreferences.interruptionTiming", schemas.InterruptionTiming),
]


@pytest.mark.parametrize(
    "path,value",
    [(path, value) for path, enumeration in _SWEEP for value in get_args(enumeration)],
)
def test_scores_stay_in_range_and_derivation_is_deterministic(quiz_document, set_answer, path, value):
    document = set_answer(quiz_document, path, value)
    quiz = validate(document)

    first = derive(quiz)
    second = derive(quiz)

    assert first.model_dump_json() == second.model_dump_json()
    for score in (*first.risk_tolerance.model_dump().values(), *first.alert_thresholds.model_dump().values()):
        assert 0.0 <= score <= 10.0


def test_all_special_circumstances_respect_modifier_floor(make_document, engine):
    document = make_document(
        contextualFactors__dependentStatus="children_dependents",
        contextualFactors__specialCircumstances=list(get_args(schemas.SpecialCircumstance)),
    )
    quiz = validate(document)

    assert engine.context_modifier(quiz) == pytest.approx(0.5)
    derived = engine.derive(quiz)
    assert 0.0 <= derived.risk_tolerance.overall <= 10.0


def test_sample_profile_tags(quiz_document):
    tags = _derive(quiz_document).profile_tags

    assert tags == tuple(sorted(tags))
    assert set(tags) == {
        "age_26_40",
        "occupation_technology",
        "jurisdiction_US",
        "tech_advanced",
        "reading_read_important",
        "privacy_very_important",
        "payment_cautious",
        "arbitration_prefer_courts",
        "dependents_just_myself",
        "financial_stable_employment",
        "alerts_moderate_and_high",
        "usage_work_productivity",
        "usage_social_media",
        "adaptive-learning",
        "priority_security_safety",
    }


def test_predicate_tags(make_document):
    document = make_document(
        demographics__jurisdiction__multipleJurisdictions=["GB"],
        riskPreferences__financial__feeImpact="significant",
        riskPreferences__legal__previousIssues="serious_problems",
        contextualFactors__specialCircumstances=["non_native_speaker", "non_native_speaker"],
        contextualFactors__alertPreferences__educationalContent="yes_teach_rights",
        contextualFactors__alertPreferences__learningMode=False,
    )

    tags = _derive(document).profile_tags

    assert {
        "multi-jurisdiction",
        "jurisdiction_GB",
        "payment-sensitive",
        "prior-harm",
        "plain-language",
        "rights-education",
    } <= set(tags)
    assert "adaptive-learning" not in tags
    assert tags.count("special_non_native_speaker") == 1


def test_tied_top_priorities_all_become_tags(make_document):
    priorities = [
        {"factor": factor, "priority": 1 if factor in {"cost_value", "ease_of_use"} else 4}
        for factor in get_args(schemas.DecisionFactor)
    ]

    tags = _derive(make_document(contextualFactors__decisionMakingPriorities=priorities)).profile_tags

    assert [tag for tag in tags if tag.startswith("priority_")] == ["priority_cost_value", "priority_ease_of_use"]


def test_non_deterministic_tags_raise_invariant_error(quiz_document, monkeypatch, engine):
    quiz = validate(quiz_document)
    calls = iter(range(100))

    def flaky_tags(_quiz):
        return (f"tag-{next(calls)}",)

    monkeypatch.setattr(engine, "generate_profile_tags", flaky_tags)

    with pytest.raises(DerivationInvariantError):
        engine.derive(quiz, self_check=True)

    # without the repeat pass the flaky tags go unnoticed
    assert engine.derive(quiz, self_check=False).profile_tags


def test_out_of_range_score_raises_invariant_error():
    with pytest.raises(DerivationInvariantError) as exc_info:
        ProfileDerivationEngine._check_scores("riskTolerance", {"privacy": 10.5})

    assert "riskTolerance.privacy" in str(exc_info.value)
    assert exc_info.value.to_dict()["error"] == "derivation_invariant"
