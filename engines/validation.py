"""Validation utilities for personalization quiz documents and related error types."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from schemas import (
    SECTION_NAMES,
    SUPPORTED_VERSIONS,
    QuizUpdateRequest,
    UserPersonalizationProfile,
    section_model,
)

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


class PersonalizationError(Exception):
    """Base class for errors reported by the profile compiler."""

    kind = "personalization_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": str(self)}


@dataclass(frozen=True)
class FieldViolation:
    """A single schema violation, located by its dotted wire path."""

    location: str
    message: str
    kind: str

    def to_dict(self) -> Dict[str, str]:
        return {"location": self.location, "message": self.message, "kind": self.kind}


class ValidationFailure(PersonalizationError):
    """Raised when a document violates the schema; carries every violation found."""

    kind = "validation_failed"

    def __init__(self, violations: Iterable[FieldViolation]) -> None:
        self.violations: Tuple[FieldViolation, ...] = tuple(violations)
        summary = "; ".join(f"{v.location}: {v.message}" for v in self.violations)
        super().__init__(f"Validation failed: {summary}")

    @property
    def locations(self) -> Tuple[str, ...]:
        return tuple(v.location for v in self.violations)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["violations"] = [v.to_dict() for v in self.violations]
        return payload


class UnknownSectionError(PersonalizationError):
    """Raised when a section name is outside the four quiz sections."""

    kind = "unknown_section"

    def __init__(self, section: Any) -> None:
        self.section = section
        super().__init__(
            f"Unknown section {section!r}; expected one of: {', '.join(SECTION_NAMES)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["section"] = self.section
        return payload


class VersionMismatchError(PersonalizationError):
    """Raised when a document declares a schema version this compiler does not support."""

    kind = "version_mismatch"

    def __init__(self, version: Any, supported: Sequence[str] = SUPPORTED_VERSIONS) -> None:
        self.version = version
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported profile version {version!r}; supported: {', '.join(self.supported)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["version"] = self.version
        payload["supported"] = list(self.supported)
        return payload


def _format_location(loc: Sequence[Any], prefix: Sequence[str] = ()) -> str:
    parts = ""
    for item in (*prefix, *loc):
        if isinstance(item, int):
            parts += f"[{item}]"
        elif parts:
            parts += f".{item}"
        else:
            parts = str(item)
    return parts or "document"


def violations_from(exc: PydanticValidationError, prefix: Sequence[str] = ()) -> Tuple[FieldViolation, ...]:
    """Convert a pydantic error into located violations, one per failing field."""

    violations = []
    for error in exc.errors(include_url=False):
        message = str(error.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        violations.append(
            FieldViolation(
                location=_format_location(error.get("loc", ()), prefix),
                message=message,
                kind=str(error.get("type", "value_error")),
            )
        )
    return tuple(violations)


def check_version(document: Mapping[str, Any]) -> None:
    """Reject documents that declare a version other than the supported ones.

    A missing version is allowed; the schema stamps the current one.
    """

    if "version" in document and document["version"] not in SUPPORTED_VERSIONS:
        logger.warning("Rejected document with unsupported version %r", document["version"])
        raise VersionMismatchError(document["version"])


def _as_mapping(document: Any, where: str) -> Mapping[str, Any]:
    if isinstance(document, BaseModel):
        return document.model_dump(mode="json", by_alias=True, exclude_none=True)
    if not isinstance(document, Mapping):
        raise ValidationFailure(
            [FieldViolation(location=where, message="Input should be an object", kind="dict_type")]
        )
    return document


def _validate_model(model: Type[_M], document: Mapping[str, Any], prefix: Sequence[str] = ()) -> _M:
    try:
        # snake_case attribute names are not part of the wire format
        return model.model_validate(dict(document), by_alias=True, by_name=False)
    except PydanticValidationError as exc:
        failure = ValidationFailure(violations_from(exc, prefix))
        logger.warning(
            "%s rejected with %d violation(s)", model.__name__, len(failure.violations)
        )
        raise failure from None


def validate(document: Any, section: Optional[str] = None) -> BaseModel:
    """Validate a full profile document or, when ``section`` is given, one quiz section.

    Returns the validated, immutable model. Raises ``ValidationFailure`` listing every
    violation, ``UnknownSectionError`` for a bad section name, or ``VersionMismatchError``.
    """

    if section is None:
        return validate_profile(document)

    if section not in SECTION_NAMES:
        logger.warning("Rejected validation for unknown section %r", section)
        raise UnknownSectionError(section)
    mapping = _as_mapping(document, section)
    return _validate_model(section_model(section), mapping, prefix=(section,))


def validate_profile(document: Any) -> UserPersonalizationProfile:
    mapping = _as_mapping(document, "document")
    check_version(mapping)
    return _validate_model(UserPersonalizationProfile, mapping)


def validate_update_request(payload: Any) -> QuizUpdateRequest:
    """Validate the ``{userId, section, data, recomputeProfile}`` partial-update envelope."""

    mapping = _as_mapping(payload, "request")
    section = mapping.get("section")
    if isinstance(section, str) and section not in SECTION_NAMES:
        logger.warning("Rejected update request for unknown section %r", section)
        raise UnknownSectionError(section)
    return _validate_model(QuizUpdateRequest, mapping)
