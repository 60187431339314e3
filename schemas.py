"""Pydantic schemas for personalization quiz documents and derived profiles."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Type

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "CURRENT_VERSION",
    "SUPPORTED_VERSIONS",
    "SECTION_NAMES",
    "ExplanationStyle",
    "Demographics",
    "DigitalBehavior",
    "RiskPreferences",
    "ContextualFactors",
    "QuizResponse",
    "DerivedProfile",
    "UserPersonalizationProfile",
    "QuizUpdateRequest",
    "SECTION_ATTRIBUTES",
    "section_model",
]

CURRENT_VERSION = "1.0"
SUPPORTED_VERSIONS: Tuple[str, ...] = (CURRENT_VERSION,)

SectionName = Literal["demographics", "digitalBehavior", "riskPreferences", "contextualFactors"]
SECTION_NAMES: Tuple[str, ...] = ("demographics", "digitalBehavior", "riskPreferences", "contextualFactors")

CountryCode = Annotated[str, StringConstraints(pattern=r"^[A-Z]{2}$")]
Score = Annotated[float, Field(ge=0.0, le=10.0)]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _whole_number(value: Any) -> Any:
    # JSON does not distinguish 3 from 3.0
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _reject_null(value: Any) -> Any:
    if value is None:
        raise ValueError("optional fields must be omitted, not null")
    return value


WholeNumber = Annotated[StrictInt, BeforeValidator(_whole_number)]

AgeRange = Literal["under_18", "18_25", "26_40", "41_55", "over_55", "prefer_not_to_say"]
Occupation = Literal[
    "legal_compliance",
    "healthcare",
    "financial_services",
    "technology",
    "education",
    "creative_freelancer",
    "student",
    "retired",
    "business_owner",
    "government",
    "nonprofit",
    "other",
    "prefer_not_to_say",
]
ReadingFrequency = Literal["never", "skim_occasionally", "read_important", "read_thoroughly"]
ComfortLevel = Literal["beginner", "intermediate", "advanced", "expert"]
PreferredExplanationStyle = Literal[
    "simple_language",
    "balanced_technical",
    "technical_detailed",
    "bullet_summaries",
    "comprehensive_analysis",
]
PrimaryActivity = Literal[
    "social_media",
    "work_productivity",
    "shopping_financial",
    "research_learning",
    "creative_content",
    "gaming",
    "dating_relationships",
    "healthcare_medical",
    "travel_booking",
    "education_courses",
]
SignupFrequency = Literal["multiple_weekly", "weekly", "monthly", "rarely"]
DeviceUsage = Literal["mobile_primary", "desktop_primary", "tablet_primary", "mixed_usage"]
OverallImportance = Literal["extremely_important", "very_important", "moderately_important", "not_very_important"]
SensitiveDataType = Literal[
    "financial_information",
    "personal_communications",
    "location_data",
    "browsing_habits",
    "photos_media",
    "professional_information",
    "health_data",
    "social_connections",
    "biometric_data",
    "purchase_history",
]
ProcessingComfort = Literal["comfortable", "cautious", "uncomfortable"]
PaymentApproach = Literal["very_cautious", "cautious", "moderate", "relaxed"]
FeeImpact = Literal["significant", "moderate", "minimal"]
FinancialSituation = Literal[
    "student_limited",
    "stable_employment",
    "high_income",
    "business_owner",
    "retired_fixed",
    "prefer_not_to_say",
]
RenewalStance = Literal["avoid", "cautious", "acceptable"]
PriceChangeStance = Literal["strict_notice", "reasonable_notice", "flexible"]
ArbitrationComfort = Literal["strongly_prefer_courts", "prefer_courts", "neutral", "acceptable"]
LiabilityTolerance = Literal["want_full_protection", "reasonable_limitations", "business_standard", "minimal_concern"]
KnowledgeLevel = Literal["expert", "intermediate", "basic", "none"]
PreviousIssues = Literal["no_issues", "minor_problems", "moderate_problems", "serious_problems"]
DependentStatus = Literal[
    "just_myself",
    "spouse_partner",
    "children_dependents",
    "employees_team",
    "clients_customers",
]
SpecialCircumstance = Literal[
    "small_business_owner",
    "content_creator",
    "handles_sensitive_data",
    "frequent_international",
    "regulated_industry",
    "accessibility_needs",
    "non_native_speaker",
    "elderly_or_vulnerable",
]
DecisionFactor = Literal[
    "privacy_protection",
    "cost_value",
    "features_functionality",
    "reputation_reviews",
    "ease_of_use",
    "customer_support",
    "terms_fairness",
    "security_safety",
    "compliance_legal",
]
InterruptionTiming = Literal["only_severe", "moderate_and_high", "any_concerning", "only_when_committing"]
EducationalContent = Literal["yes_teach_rights", "occasionally_important", "just_analysis"]
ExplanationStyle = Literal[
    "simple_protective",
    "balanced_educational",
    "technical_efficient",
    "comprehensive_cautious",
]


class _Document(BaseModel):
    """Immutable, camelCase-on-the-wire base for every quiz document.

    Field names are accepted only when models are built in code; wire input is
    validated by alias alone (see ``engines.validation``).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_alias=True,
        validate_by_name=True,
        extra="forbid",
        frozen=True,
    )


# ---------------------------------------------------------------------------
# demographics
# ---------------------------------------------------------------------------


class Jurisdiction(_Document):
    primary_country: CountryCode = Field(description="ISO 3166-1 alpha-2 country code.")
    primary_state: Optional[str] = Field(
        default=None,
        description="State/province code for countries with regional laws.",
    )
    frequent_travel: bool = Field(strict=True)
    is_expatriate: bool = Field(strict=True)
    multiple_jurisdictions: Optional[Tuple[CountryCode, ...]] = Field(
        default=None,
        description="Additional jurisdictions the user may be subject to.",
    )

    @field_validator("primary_state", "multiple_jurisdictions", mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        return _reject_null(value)


class Demographics(_Document):
    age_range: AgeRange
    jurisdiction: Jurisdiction
    occupation: Occupation


# ---------------------------------------------------------------------------
# digitalBehavior
# ---------------------------------------------------------------------------


class TechSophistication(_Document):
    reading_frequency: ReadingFrequency
    comfort_level: ComfortLevel
    preferred_explanation_style: PreferredExplanationStyle


class UsagePatterns(_Document):
    primary_activities: Tuple[PrimaryActivity, ...] = Field(min_length=1, max_length=5)
    signup_frequency: SignupFrequency
    device_usage: DeviceUsage

    @field_validator("primary_activities")
    @classmethod
    def _distinct_activities(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if len(set(value)) != len(value):
            raise ValueError("primaryActivities must not repeat an activity")
        return value


class DigitalBehavior(_Document):
    tech_sophistication: TechSophistication
    usage_patterns: UsagePatterns


# ---------------------------------------------------------------------------
# riskPreferences
# ---------------------------------------------------------------------------


class SensitiveDataEntry(_Document):
    data_type: SensitiveDataType
    priority_level: WholeNumber = Field(ge=1, le=10, description="1 = highest concern, 10 = lowest.")


class DataProcessingComfort(_Document):
    domestic_processing: ProcessingComfort
    international_transfers: ProcessingComfort
    third_party_sharing: ProcessingComfort
    ai_processing: ProcessingComfort
    long_term_storage: ProcessingComfort


class PrivacyPreferences(_Document):
    overall_importance: OverallImportance
    # Duplicate data types and tied priority levels are accepted as submitted.
    sensitive_data_types: Tuple[SensitiveDataEntry, ...] = Field(min_length=1, max_length=20)
    data_processing_comfort: DataProcessingComfort


class SubscriptionTolerance(_Document):
    auto_renewal: RenewalStance
    free_trial_to_subscription: RenewalStance
    price_changes: PriceChangeStance


class FinancialPreferences(_Document):
    payment_approach: PaymentApproach
    fee_impact: FeeImpact
    financial_situation: FinancialSituation
    subscription_tolerance: SubscriptionTolerance


class LegalKnowledge(_Document):
    contract_law: KnowledgeLevel
    privacy_law: KnowledgeLevel
    consumer_rights: KnowledgeLevel


class LegalPreferences(_Document):
    arbitration_comfort: ArbitrationComfort
    liability_tolerance: LiabilityTolerance
    legal_knowledge: LegalKnowledge
    previous_issues: PreviousIssues


class RiskPreferences(_Document):
    privacy: PrivacyPreferences
    financial: FinancialPreferences
    legal: LegalPreferences


# ---------------------------------------------------------------------------
# contextualFactors
# ---------------------------------------------------------------------------


class DecisionPriority(_Document):
    factor: DecisionFactor
    priority: WholeNumber = Field(ge=1, le=9, description="1 = highest priority, 9 = lowest.")


class AlertPreferences(_Document):
    interruption_timing: InterruptionTiming
    educational_content: EducationalContent
    alert_frequency_limit: WholeNumber = Field(
        ge=1,
        le=50,
        description="Maximum alerts per day before suppression.",
    )
    learning_mode: bool = Field(strict=True)


class ContextualFactors(_Document):
    dependent_status: DependentStatus
    special_circumstances: Optional[Tuple[SpecialCircumstance, ...]] = None
    decision_making_priorities: Tuple[DecisionPriority, ...] = Field(min_length=9, max_length=9)
    alert_preferences: AlertPreferences

    @field_validator("special_circumstances", mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        return _reject_null(value)

    @field_validator("decision_making_priorities")
    @classmethod
    def _one_entry_per_factor(cls, value: Tuple[DecisionPriority, ...]) -> Tuple[DecisionPriority, ...]:
        factors = [entry.factor for entry in value]
        repeated = sorted({factor for factor in factors if factors.count(factor) > 1})
        if repeated:
            raise ValueError(f"each decision factor must appear exactly once; repeated: {', '.join(repeated)}")
        return value


# ---------------------------------------------------------------------------
# derived output
# ---------------------------------------------------------------------------


class RiskTolerance(_Document):
    privacy: Score
    financial: Score
    legal: Score
    overall: Score


class AlertThresholds(_Document):
    privacy: Score
    liability: Score
    termination: Score
    payment: Score
    overall: Score


class DerivedProfile(_Document):
    risk_tolerance: RiskTolerance
    alert_thresholds: AlertThresholds
    explanation_style: ExplanationStyle
    profile_tags: Tuple[str, ...] = Field(description="Sorted, de-duplicated prompt customisation tags.")
    computation_version: str = Field(
        default=CURRENT_VERSION,
        description="Version of the weight table that produced this profile.",
    )

    @field_validator("profile_tags")
    @classmethod
    def _collapse_tags(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(sorted(set(value)))


# ---------------------------------------------------------------------------
# top-level documents
# ---------------------------------------------------------------------------


class QuizResponse(_Document):
    """The four quiz sections, versioned for forward migration."""

    version: Literal["1.0"] = CURRENT_VERSION
    demographics: Demographics
    digital_behavior: DigitalBehavior
    risk_preferences: RiskPreferences
    contextual_factors: ContextualFactors


def _check_user_id(value: str) -> str:
    try:
        uuid.UUID(value)
        return value
    except ValueError:
        pass
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError("userId must be a UUID or an email address") from exc
    return value


class UserPersonalizationProfile(QuizResponse):
    user_id: str
    completed_at: datetime
    computed_profile: Optional[DerivedProfile] = None

    @field_validator("user_id")
    @classmethod
    def _user_id_format(cls, value: str) -> str:
        return _check_user_id(value)

    @field_validator("completed_at", mode="before")
    @classmethod
    def _iso_timestamp(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not _ISO_DATE.match(value):
            raise ValueError("completedAt must be an ISO 8601 date-time string")
        return value

    @field_validator("computed_profile", mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        return _reject_null(value)

    def to_document(self) -> Dict[str, object]:
        """Return the JSON-ready wire document."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class QuizUpdateRequest(_Document):
    user_id: str
    section: SectionName
    data: Dict[str, object]
    recompute_profile: bool = Field(default=True, strict=True)

    @field_validator("user_id")
    @classmethod
    def _user_id_format(cls, value: str) -> str:
        return _check_user_id(value)


_SECTION_MODELS: Dict[str, Type[_Document]] = {
    "demographics": Demographics,
    "digitalBehavior": DigitalBehavior,
    "riskPreferences": RiskPreferences,
    "contextualFactors": ContextualFactors,
}

SECTION_ATTRIBUTES: Dict[str, str] = {
    "demographics": "demographics",
    "digitalBehavior": "digital_behavior",
    "riskPreferences": "risk_preferences",
    "contextualFactors": "contextual_factors",
}


def section_model(section: str) -> Type[_Document]:
    """Return the schema for ``section``; ``KeyError`` when it is not a quiz section."""

    return _SECTION_MODELS[section]
