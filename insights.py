"""Human-readable insights over a compiled personalization profile."""

from __future__ import annotations

from typing import Any, Dict, List

from engines.validation import PersonalizationError
from schemas import AlertThresholds, RiskTolerance, UserPersonalizationProfile

STYLE_DESCRIPTIONS = {
    "simple_protective": "Simple language with protective guidance",
    "balanced_educational": "Balanced approach with educational content",
    "technical_efficient": "Technical details for efficient review",
    "comprehensive_cautious": "Comprehensive analysis with cautious approach",
}

HIGH_FREQUENCY_LIMIT = 20
LOW_PRIVACY_TOLERANCE = 3.0


class ProfileNotComputedError(PersonalizationError):
    """Raised when insights are requested before the profile has been derived."""

    kind = "profile_not_computed"


def _tolerance_level(score: float) -> str:
    if score <= 3:
        return "Low"
    if score <= 7:
        return "Moderate"
    return "High"


def _overall_level(score: float) -> str:
    if score <= 3:
        return "Conservative"
    if score <= 7:
        return "Balanced"
    return "Risk-Tolerant"


def _alert_level(threshold: float) -> str:
    # a low threshold fires early, so the user is highly sensitive
    if threshold <= 3:
        return "High Sensitivity"
    if threshold <= 6:
        return "Moderate Sensitivity"
    return "Low Sensitivity"


def risk_profile_summary(tolerance: RiskTolerance) -> Dict[str, Dict[str, Any]]:
    return {
        "privacy": {"level": _tolerance_level(tolerance.privacy), "score": tolerance.privacy},
        "financial": {"level": _tolerance_level(tolerance.financial), "score": tolerance.financial},
        "legal": {"level": _tolerance_level(tolerance.legal), "score": tolerance.legal},
        "overall": {"level": _overall_level(tolerance.overall), "score": tolerance.overall},
    }


def alert_configuration(thresholds: AlertThresholds) -> Dict[str, str]:
    return {
        name: _alert_level(value)
        for name, value in thresholds.model_dump().items()
    }


def explanation_summary(style: str) -> Dict[str, str]:
    return {"style": style, "description": STYLE_DESCRIPTIONS.get(style, "Balanced approach")}


def recommendations(profile: UserPersonalizationProfile) -> List[Dict[str, str]]:
    """Suggest settings the user may want to revisit."""

    computed = profile.computed_profile
    if computed is None:
        raise ProfileNotComputedError(f"Profile for {profile.user_id} has no computed profile yet")
    items: List[Dict[str, str]] = []
    privacy = profile.risk_preferences.privacy
    if (
        computed.risk_tolerance.privacy < LOW_PRIVACY_TOLERANCE
        and privacy.overall_importance != "extremely_important"
    ):
        items.append(
            {
                "type": "threshold_adjustment",
                "message": "Consider adjusting privacy settings for more relevant alerts",
            }
        )
    if profile.contextual_factors.alert_preferences.alert_frequency_limit > HIGH_FREQUENCY_LIMIT:
        items.append(
            {
                "type": "alert_frequency",
                "message": "High alert frequency limit may cause important warnings to be missed",
            }
        )
    return items


def strengths(profile: UserPersonalizationProfile) -> List[str]:
    found: List[str] = []
    if profile.digital_behavior.tech_sophistication.reading_frequency != "never":
        found.append("Actively reviews terms and conditions")
    if profile.risk_preferences.privacy.overall_importance in {"extremely_important", "very_important"}:
        found.append("Strong privacy awareness")
    return found


def improvement_suggestions(profile: UserPersonalizationProfile) -> List[Dict[str, str]]:
    suggestions: List[Dict[str, str]] = []
    if profile.digital_behavior.tech_sophistication.reading_frequency == "never":
        suggestions.append(
            {
                "area": "engagement",
                "suggestion": "Consider reviewing key sections of important terms and conditions",
            }
        )
    if profile.risk_preferences.legal.legal_knowledge.contract_law == "none":
        suggestions.append(
            {
                "area": "education",
                "suggestion": "Learn about basic contract law and consumer rights",
            }
        )
    return suggestions


def summarize(profile: UserPersonalizationProfile) -> Dict[str, Any]:
    """Build the dashboard insight payload for a compiled profile."""

    computed = profile.computed_profile
    if computed is None:
        raise ProfileNotComputedError(f"Profile for {profile.user_id} has no computed profile yet")
    return {
        "riskProfileSummary": risk_profile_summary(computed.risk_tolerance),
        "alertConfiguration": alert_configuration(computed.alert_thresholds),
        "explanationStyle": explanation_summary(computed.explanation_style),
        "recommendations": recommendations(profile),
        "profileStrengths": strengths(profile),
        "improvementSuggestions": improvement_suggestions(profile),
    }
