import copy
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


_PRIORITIES = [
    ("security_safety", 1),
    ("privacy_protection", 2),
    ("terms_fairness", 3),
    ("cost_value", 4),
    ("compliance_legal", 5),
    ("ease_of_use", 6),
    ("reputation_reviews", 7),
    ("customer_support", 8),
    ("features_functionality", 9),
]

_SAMPLE_PROFILE = {
    "userId": "123e4567-e89b-12d3-a456-426614174000",
    "version": "1.0",
    "completedAt": "2025-03-01T12:00:00Z",
    "demographics": {
        "ageRange": "26_40",
        "jurisdiction": {
            "primaryCountry": "US",
            "primaryState": "CA",
            "frequentTravel": False,
            "isExpatriate": False,
        },
        "occupation": "technology",
    },
    "digitalBehavior": {
        "techSophistication": {
            "readingFrequency": "read_important",
            "comfortLevel": "advanced",
            "preferredExplanationStyle": "balanced_technical",
        },
        "usagePatterns": {
            "primaryActivities": ["work_productivity", "social_media"],
            "signupFrequency": "monthly",
            "deviceUsage": "mixed_usage",
        },
    },
    "riskPreferences": {
        "privacy": {
            "overallImportance": "very_important",
            "sensitiveDataTypes": [
                {"dataType": "financial_information", "priorityLevel": 1},
                {"dataType": "health_data", "priorityLevel": 2},
                {"dataType": "location_data", "priorityLevel": 5},
            ],
            "dataProcessingComfort": {
                "domesticProcessing": "comfortable",
                "internationalTransfers": "cautious",
                "thirdPartySharing": "uncomfortable",
                "aiProcessing": "comfortable",
                "longTermStorage": "cautious",
            },
        },
        "financial": {
            "paymentApproach": "cautious",
            "feeImpact": "moderate",
            "financialSituation": "stable_employment",
            "subscriptionTolerance": {
                "autoRenewal": "cautious",
                "freeTrialToSubscription": "avoid",
                "priceChanges": "reasonable_notice",
            },
        },
        "legal": {
            "arbitrationComfort": "prefer_courts",
            "liabilityTolerance": "reasonable_limitations",
            "legalKnowledge": {
                "contractLaw": "basic",
                "privacyLaw": "intermediate",
                "consumerRights": "basic",
            },
            "previousIssues": "minor_problems",
        },
    },
    "contextualFactors": {
        "dependentStatus": "just_myself",
        "specialCircumstances": [],
        "decisionMakingPriorities": [{"factor": f, "priority": p} for f, p in _PRIORITIES],
        "alertPreferences": {
            "interruptionTiming": "moderate_and_high",
            "educationalContent": "occasionally_important",
            "alertFrequencyLimit": 10,
            "learningMode": True,
        },
    },
}


def _set_answer(document: dict, path: str, value) -> dict:
    """Set a dotted path (e.g. ``riskPreferences.privacy.overallImportance``) in place."""

    node = document
    keys = path.split(".")
    for key in keys[:-1]:
        node = node[key]
    node[keys[-1]] = value
    return document


@pytest.fixture
def quiz_document():
    """A fresh, valid full profile document in wire (camelCase) form."""

    return copy.deepcopy(_SAMPLE_PROFILE)


@pytest.fixture
def set_answer():
    return _set_answer


@pytest.fixture
def make_document():
    """Build a valid document with dotted-path overrides applied."""

    def _make(**overrides):
        document = copy.deepcopy(_SAMPLE_PROFILE)
        for path, value in overrides.items():
            _set_answer(document, path.replace("__", "."), value)
        return document

    return _make
