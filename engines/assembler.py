"""Assembly of validated quiz sections and derived output into the stored profile."""

from __future__ import annotations

from typing import Optional

from schemas import CURRENT_VERSION, SECTION_ATTRIBUTES, DerivedProfile, UserPersonalizationProfile


class ProfileAssembler:
    """Composes the persisted ``UserPersonalizationProfile`` shape.

    ``completedAt`` always comes from the original submission.
    """

    def __init__(self, version: str = CURRENT_VERSION) -> None:
        self.version = version

    def assemble(
        self,
        profile: UserPersonalizationProfile,
        derived: Optional[DerivedProfile],
    ) -> UserPersonalizationProfile:
        return profile.model_copy(update={"version": self.version, "computed_profile": derived})

    def replace_section(
        self,
        prior: UserPersonalizationProfile,
        section: str,
        replacement: object,
    ) -> UserPersonalizationProfile:
        """Swap one quiz section wholesale; every other key is carried over untouched."""

        return prior.model_copy(update={SECTION_ATTRIBUTES[section]: replacement})
