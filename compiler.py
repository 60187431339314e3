"""Personalization profile compiler: the call contract used by the enclosing service.

Every operation is a pure function of its arguments. Failures surface as
``PersonalizationError`` subclasses carrying structured detail (``to_dict``);
nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from engines.assembler import ProfileAssembler
from engines.derivation import DerivationInvariantError, ProfileDerivationEngine
from engines.reconciler import PartialUpdateReconciler
from engines.validation import (
    FieldViolation,
    PersonalizationError,
    UnknownSectionError,
    ValidationFailure,
    VersionMismatchError,
    validate,
    validate_profile,
    validate_update_request,
)
from insights import ProfileNotComputedError, summarize as _summarize
from schemas import DerivedProfile, QuizResponse, UserPersonalizationProfile
from weight_table import WeightTable

__all__ = [
    "DerivationInvariantError",
    "FieldViolation",
    "PersonalizationError",
    "ProfileNotComputedError",
    "UnknownSectionError",
    "ValidationFailure",
    "VersionMismatchError",
    "compile_profile",
    "derive",
    "reconcile",
    "summarize",
    "validate",
    "validate_update_request",
]

logger = logging.getLogger(__name__)


def derive(quiz: Any, weights: Optional[WeightTable] = None) -> DerivedProfile:
    """Derive a profile from a validated quiz; raw documents are validated first."""

    if not isinstance(quiz, QuizResponse):
        quiz = validate_profile(quiz)
    return ProfileDerivationEngine(weights).derive(quiz)


def compile_profile(document: Any, weights: Optional[WeightTable] = None) -> UserPersonalizationProfile:
    """Full submission: validate, derive, and assemble the stored profile."""

    profile = validate_profile(document)
    derived = ProfileDerivationEngine(weights).derive(profile)
    compiled = ProfileAssembler().assemble(profile, derived)
    logger.info(
        "Compiled profile for user %s (style=%s, overall=%.1f, tags=%d)",
        compiled.user_id,
        derived.explanation_style,
        derived.risk_tolerance.overall,
        len(derived.profile_tags),
    )
    return compiled


def reconcile(
    user_id: str,
    section: str,
    section_data: Any,
    recompute_profile: bool = True,
    prior_profile: Any = None,
    weights: Optional[WeightTable] = None,
) -> UserPersonalizationProfile:
    """Replace one section of ``prior_profile``; see ``PartialUpdateReconciler``."""

    reconciler = PartialUpdateReconciler(ProfileDerivationEngine(weights))
    return reconciler.reconcile(user_id, section, section_data, recompute_profile, prior_profile)


def summarize(profile: Any) -> Dict[str, Any]:
    if not isinstance(profile, UserPersonalizationProfile):
        profile = validate_profile(profile)
    return _summarize(profile)
