"""Partial-update reconciliation of a single quiz section into a stored profile."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from engines.assembler import ProfileAssembler
from engines.derivation import ProfileDerivationEngine
from engines.validation import (
    FieldViolation,
    UnknownSectionError,
    ValidationFailure,
    validate,
    validate_profile,
    validate_update_request,
)
from schemas import SECTION_NAMES, UserPersonalizationProfile

logger = logging.getLogger(__name__)


class PartialUpdateReconciler:
    """Replace one section of a stored profile, recomputing the derived profile on request.

    All checks run before anything is replaced, so a rejected update leaves the
    stored profile as it was. Callers must serialise updates for the same user.
    """

    def __init__(
        self,
        engine: Optional[ProfileDerivationEngine] = None,
        assembler: Optional[ProfileAssembler] = None,
    ) -> None:
        self.engine = engine or ProfileDerivationEngine()
        self.assembler = assembler or ProfileAssembler()

    def reconcile(
        self,
        user_id: str,
        section: str,
        section_data: Any,
        recompute_profile: bool = True,
        prior_profile: Any = None,
    ) -> UserPersonalizationProfile:
        if section not in SECTION_NAMES:
            logger.warning("Rejected update for user %s: unknown section %r", user_id, section)
            raise UnknownSectionError(section)
        if prior_profile is None:
            raise ValidationFailure(
                [FieldViolation(location="priorProfile", message="A stored profile is required", kind="missing")]
            )

        prior = prior_profile if isinstance(prior_profile, UserPersonalizationProfile) else validate_profile(prior_profile)
        if prior.user_id != user_id:
            raise ValidationFailure(
                [
                    FieldViolation(
                        location="userId",
                        message="userId does not match the stored profile",
                        kind="user_mismatch",
                    )
                ]
            )

        replacement = validate(section_data, section)
        updated = self.assembler.replace_section(prior, section, replacement)

        derived = self.engine.derive(updated) if recompute_profile else prior.computed_profile
        result = self.assembler.assemble(updated, derived)
        logger.info(
            "Reconciled section %s for user %s (recomputed=%s)", section, user_id, bool(recompute_profile)
        )
        return result

    def apply(self, request: Mapping[str, Any], prior_profile: Any) -> UserPersonalizationProfile:
        """Apply a ``{userId, section, data, recomputeProfile}`` update request."""

        update = validate_update_request(request)
        return self.reconcile(
            update.user_id,
            update.section,
            update.data,
            recompute_profile=update.recompute_profile,
            prior_profile=prior_profile,
        )
