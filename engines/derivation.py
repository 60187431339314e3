"""Derivation of risk tolerance, alert thresholds, explanation style and profile tags."""

from __future__ import annotations

import logging
import math
from statistics import fmean
from typing import Dict, List, Optional, Tuple

from engines.validation import PersonalizationError
from env_validation import self_check_enabled
from schemas import AlertThresholds, DerivedProfile, QuizResponse, RiskTolerance
from weight_table import WEIGHT_TABLE, WeightTable

logger = logging.getLogger(__name__)

SCORE_MIN = 0.0
SCORE_MAX = 10.0


class DerivationInvariantError(PersonalizationError):
    """Raised when derived output breaks its own guarantees; points at the weight table, not the input."""

    kind = "derivation_invariant"


def _clamp(value: float, low: float = SCORE_MIN, high: float = SCORE_MAX) -> float:
    return max(low, min(high, value))


def _score(value: float) -> float:
    return round(_clamp(value), 1)


class ProfileDerivationEngine:
    """Turns a validated quiz into a ``DerivedProfile``.

    Holds nothing but the read-only weight table, so one instance can serve
    any number of concurrent callers.
    """

    def __init__(self, weights: Optional[WeightTable] = None) -> None:
        self.weights = weights if weights is not None else WEIGHT_TABLE.table

    # ------------------------------------------------------------------
    # risk tolerance
    # ------------------------------------------------------------------
    def age_multiplier(self, quiz: QuizResponse) -> float:
        return self.weights["ageRange"][quiz.demographics.age_range]

    def privacy_tolerance(self, quiz: QuizResponse) -> float:
        rules = self.weights["privacy"]
        weights = rules["weights"]
        privacy = quiz.risk_preferences.privacy

        importance = rules["overallImportance"][privacy.overall_importance]

        comfort_scale = rules["dataProcessingComfort"]
        comfort = privacy.data_processing_comfort
        processing = fmean(
            comfort_scale[answer]
            for answer in (
                comfort.domestic_processing,
                comfort.international_transfers,
                comfort.third_party_sharing,
                comfort.ai_processing,
                comfort.long_term_storage,
            )
        )

        # Repeated data types count once; the highest concern wins.
        breadth_rules = rules["sensitiveDataBreadth"]
        high_concern = {
            entry.data_type
            for entry in privacy.sensitive_data_types
            if entry.priority_level <= breadth_rules["highConcernMaxPriority"]
        }
        breadth = max(0.0, breadth_rules["base"] - breadth_rules["penaltyPerType"] * len(high_concern))

        raw = (
            weights["overallImportance"] * importance
            + weights["dataProcessingComfort"] * processing
            + weights["sensitiveDataBreadth"] * breadth
        )
        logger.debug(
            "privacy components importance=%s processing=%.3f breadth=%.3f raw=%.3f",
            importance, processing, breadth, raw,
        )
        return _score(raw * self.age_multiplier(quiz))

    def financial_tolerance(self, quiz: QuizResponse) -> float:
        rules = self.weights["financial"]
        weights = rules["weights"]
        financial = quiz.risk_preferences.financial
        subscription = financial.subscription_tolerance

        stance = fmean(
            (
                rules["renewalStance"][subscription.auto_renewal],
                rules["renewalStance"][subscription.free_trial_to_subscription],
                rules["priceChangeStance"][subscription.price_changes],
            )
        )
        raw = (
            weights["paymentApproach"] * rules["paymentApproach"][financial.payment_approach]
            + weights["feeImpact"] * rules["feeImpact"][financial.fee_impact]
            + weights["subscriptionTolerance"] * stance
        )
        situation = rules["financialSituation"][financial.financial_situation]
        logger.debug("financial components stance=%.3f raw=%.3f situation=%s", stance, raw, situation)
        return _score(raw * self.age_multiplier(quiz) * situation)

    def legal_tolerance(self, quiz: QuizResponse) -> float:
        rules = self.weights["legal"]
        weights = rules["weights"]
        legal = quiz.risk_preferences.legal
        knowledge = legal.legal_knowledge

        raw = (
            weights["arbitrationComfort"] * rules["arbitrationComfort"][legal.arbitration_comfort]
            + weights["liabilityTolerance"] * rules["liabilityTolerance"][legal.liability_tolerance]
            + weights["previousIssues"] * rules["previousIssues"][legal.previous_issues]
        )
        knowledge_multiplier = fmean(
            rules["legalKnowledge"][level]
            for level in (knowledge.contract_law, knowledge.privacy_law, knowledge.consumer_rights)
        )
        occupation = rules["occupation"][quiz.demographics.occupation]
        logger.debug(
            "legal components raw=%.3f knowledge=%.3f occupation=%s", raw, knowledge_multiplier, occupation
        )
        return _score(raw * self.age_multiplier(quiz) * knowledge_multiplier * occupation)

    def context_modifier(self, quiz: QuizResponse) -> float:
        """Protective modifier from dependents and special circumstances, in [minimum, 1]."""

        rules = self.weights["context"]
        factors = quiz.contextual_factors
        modifier = rules["dependentStatus"][factors.dependent_status]
        for circumstance in sorted(set(factors.special_circumstances or ())):
            modifier *= rules["specialCircumstances"][circumstance]
        return max(rules["minimumModifier"], modifier)

    def compute_risk_tolerance(self, quiz: QuizResponse) -> Dict[str, float]:
        privacy = self.privacy_tolerance(quiz)
        financial = self.financial_tolerance(quiz)
        legal = self.legal_tolerance(quiz)
        weights = self.weights["overall"]["weights"]
        combined = (
            weights["privacy"] * privacy
            + weights["financial"] * financial
            + weights["legal"] * legal
        )
        overall = _score(combined * self.context_modifier(quiz))
        return {"privacy": privacy, "financial": financial, "legal": legal, "overall": overall}

    # ------------------------------------------------------------------
    # alert thresholds
    # ------------------------------------------------------------------
    def threshold_shift(self, quiz: QuizResponse) -> float:
        """Timing shift plus frequency shift; a higher daily alert limit raises every threshold."""

        rules = self.weights["alerts"]
        preferences = quiz.contextual_factors.alert_preferences
        frequency = rules["frequency"]
        frequency_shift = _clamp(
            (preferences.alert_frequency_limit - frequency["pivot"]) * frequency["step"],
            frequency["minShift"],
            frequency["maxShift"],
        )
        return rules["interruptionTiming"][preferences.interruption_timing] + frequency_shift

    def compute_alert_thresholds(self, quiz: QuizResponse, tolerance: Dict[str, float]) -> Dict[str, float]:
        """Map tolerance onto alert thresholds; lower tolerance gives a lower, stricter threshold."""

        rules = self.weights["alerts"]
        shift = self.threshold_shift(quiz)
        context = self.context_modifier(quiz)

        def threshold(effective_tolerance: float) -> float:
            return _score(rules["floor"] + rules["span"] * effective_tolerance / SCORE_MAX + shift)

        return {
            "privacy": threshold(tolerance["privacy"] * context),
            "liability": threshold(tolerance["legal"] * context),
            "termination": threshold(fmean((tolerance["legal"], tolerance["financial"])) * context),
            "payment": threshold(tolerance["financial"] * context),
            # overall tolerance already carries the context modifier
            "overall": threshold(tolerance["overall"]),
        }

    # ------------------------------------------------------------------
    # explanation style
    # ------------------------------------------------------------------
    def tolerance_band(self, overall: float) -> str:
        rules = self.weights["explanation"]
        if overall <= rules["lowBandMax"]:
            return "low"
        if overall <= rules["moderateBandMax"]:
            return "moderate"
        return "high"

    def compute_explanation_style(self, quiz: QuizResponse, overall: float) -> str:
        rules = self.weights["explanation"]
        order: Tuple[str, ...] = rules["protectiveness"]
        sophistication = quiz.digital_behavior.tech_sophistication

        style = rules["matrix"][sophistication.comfort_level][self.tolerance_band(overall)]

        circumstances = set(quiz.contextual_factors.special_circumstances or ())
        if circumstances & set(rules["simpleLanguageCircumstances"]):
            return order[0]

        preferred = rules["preferredStyle"][sophistication.preferred_explanation_style]
        if order.index(preferred) < order.index(style):
            style = preferred
        return style

    # ------------------------------------------------------------------
    # tags
    # ------------------------------------------------------------------
    @staticmethod
    def generate_profile_tags(quiz: QuizResponse) -> Tuple[str, ...]:
        demographics = quiz.demographics
        jurisdiction = demographics.jurisdiction
        sophistication = quiz.digital_behavior.tech_sophistication
        usage = quiz.digital_behavior.usage_patterns
        privacy = quiz.risk_preferences.privacy
        financial = quiz.risk_preferences.financial
        legal = quiz.risk_preferences.legal
        factors = quiz.contextual_factors
        alerts = factors.alert_preferences
        circumstances = set(factors.special_circumstances or ())
        extra_jurisdictions = jurisdiction.multiple_jurisdictions or ()

        tags: List[str] = [
            f"age_{demographics.age_range}",
            f"occupation_{demographics.occupation}",
            f"jurisdiction_{jurisdiction.primary_country}",
            f"tech_{sophistication.comfort_level}",
            f"reading_{sophistication.reading_frequency}",
            f"privacy_{privacy.overall_importance}",
            f"payment_{financial.payment_approach}",
            f"arbitration_{legal.arbitration_comfort}",
            f"dependents_{factors.dependent_status}",
            f"financial_{financial.financial_situation}",
            f"alerts_{alerts.interruption_timing}",
        ]
        tags.extend(f"jurisdiction_{code}" for code in extra_jurisdictions)
        tags.extend(f"usage_{activity}" for activity in usage.primary_activities)
        tags.extend(f"special_{circumstance}" for circumstance in circumstances)

        if "elderly_or_vulnerable" in circumstances or demographics.age_range == "under_18":
            tags.append("enhanced-protection")
        if circumstances & {"non_native_speaker", "accessibility_needs"}:
            tags.append("plain-language")
        if (
            jurisdiction.frequent_travel
            or jurisdiction.is_expatriate
            or extra_jurisdictions
            or "frequent_international" in circumstances
        ):
            tags.append("multi-jurisdiction")
        if financial.fee_impact == "significant" or financial.financial_situation in {"student_limited", "retired_fixed"}:
            tags.append("payment-sensitive")
        if legal.previous_issues in {"moderate_problems", "serious_problems"}:
            tags.append("prior-harm")
        if alerts.educational_content == "yes_teach_rights":
            tags.append("rights-education")
        if alerts.learning_mode:
            tags.append("adaptive-learning")

        top = min(entry.priority for entry in factors.decision_making_priorities)
        tags.extend(
            f"priority_{entry.factor}" for entry in factors.decision_making_priorities if entry.priority == top
        )
        return tuple(sorted(set(tags)))

    # ------------------------------------------------------------------
    def derive(self, quiz: QuizResponse, *, self_check: Optional[bool] = None) -> DerivedProfile:
        """Compute the full derived profile for ``quiz``."""

        tolerance = self.compute_risk_tolerance(quiz)
        thresholds = self.compute_alert_thresholds(quiz, tolerance)
        style = self.compute_explanation_style(quiz, tolerance["overall"])
        tags = self.generate_profile_tags(quiz)

        self._check_scores("riskTolerance", tolerance)
        self._check_scores("alertThresholds", thresholds)
        if self_check if self_check is not None else self_check_enabled():
            repeat = self.generate_profile_tags(quiz)
            if repeat != tags:
                raise DerivationInvariantError(
                    f"profileTags differ across identical derivations: {tags!r} != {repeat!r}"
                )

        logger.debug("Derived tolerance=%s thresholds=%s style=%s", tolerance, thresholds, style)
        return DerivedProfile(
            risk_tolerance=RiskTolerance(**tolerance),
            alert_thresholds=AlertThresholds(**thresholds),
            explanation_style=style,
            profile_tags=tags,
            computation_version=self.weights.version,
        )

    @staticmethod
    def _check_scores(group: str, scores: Dict[str, float]) -> None:
        for name, value in scores.items():
            if not math.isfinite(value) or not SCORE_MIN <= value <= SCORE_MAX:
                raise DerivationInvariantError(
                    f"{group}.{name} = {value!r} falls outside [{SCORE_MIN:g}, {SCORE_MAX:g}]"
                )


def derive(quiz: QuizResponse, weights: Optional[WeightTable] = None) -> DerivedProfile:
    """Derive a profile using ``weights`` or the process-wide weight table."""

    return ProfileDerivationEngine(weights).derive(quiz)
