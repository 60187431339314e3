"""Derivation weight table loader."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Tuple, get_args

import schemas
from env_validation import weights_path

logger = logging.getLogger(__name__)

BANDS: Tuple[str, ...] = ("low", "moderate", "high")

# (section path, key) -> the enumeration the table must cover exactly.
_SCORE_TABLES = {
    ("privacy", "overallImportance"): schemas.OverallImportance,
    ("privacy", "dataProcessingComfort"): schemas.ProcessingComfort,
    ("financial", "paymentApproach"): schemas.PaymentApproach,
    ("financial", "feeImpact"): schemas.FeeImpact,
    ("financial", "renewalStance"): schemas.RenewalStance,
    ("financial", "priceChangeStance"): schemas.PriceChangeStance,
    ("legal", "arbitrationComfort"): schemas.ArbitrationComfort,
    ("legal", "liabilityTolerance"): schemas.LiabilityTolerance,
    ("legal", "previousIssues"): schemas.PreviousIssues,
}

_MULTIPLIER_TABLES = {
    ("financial", "financialSituation"): schemas.FinancialSituation,
    ("legal", "legalKnowledge"): schemas.KnowledgeLevel,
    ("legal", "occupation"): schemas.Occupation,
    ("ageRange",): schemas.AgeRange,
    ("context", "dependentStatus"): schemas.DependentStatus,
    ("context", "specialCircumstances"): schemas.SpecialCircumstance,
}

_AXIS_WEIGHTS = {
    "privacy": ("overallImportance", "dataProcessingComfort", "sensitiveDataBreadth"),
    "financial": ("paymentApproach", "feeImpact", "subscriptionTolerance"),
    "legal": ("arbitrationComfort", "liabilityTolerance", "previousIssues"),
    "overall": ("privacy", "financial", "legal"),
}


class WeightTableConfigError(ValueError):
    """Raised when the weight table file contains invalid data."""


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


def _lookup(raw: Mapping[str, Any], path: Iterable[str]) -> Any:
    node: Any = raw
    trail = []
    for key in path:
        trail.append(key)
        if not isinstance(node, Mapping) or key not in node:
            raise WeightTableConfigError(f"Weight table is missing '{'.'.join(trail)}'")
        node = node[key]
    return node


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise WeightTableConfigError(f"{where} must be numeric")
    return float(value)


def _check_exhaustive(table: Any, enumeration: Any, where: str) -> None:
    if not isinstance(table, Mapping):
        raise WeightTableConfigError(f"{where} must be a JSON object")
    expected = set(get_args(enumeration))
    missing = sorted(expected - set(table))
    unknown = sorted(set(table) - expected)
    if missing:
        raise WeightTableConfigError(f"{where} has no entry for: {', '.join(missing)}")
    if unknown:
        raise WeightTableConfigError(f"{where} names unknown values: {', '.join(unknown)}")


@dataclass(frozen=True)
class WeightTable:
    """Immutable, validated derivation rules."""

    version: str
    rules: Mapping[str, Any]

    def __getitem__(self, key: str) -> Any:
        return self.rules[key]


def validate_rules(raw: Any) -> WeightTable:
    """Check ``raw`` for completeness and bounds and return a frozen table."""

    if not isinstance(raw, dict):
        raise WeightTableConfigError("Weight table must be a JSON object")
    version = raw.get("version")
    if not isinstance(version, str) or not version.strip():
        raise WeightTableConfigError("Weight table is missing a non-empty 'version'")

    for path, enumeration in _SCORE_TABLES.items():
        where = ".".join(path)
        table = _lookup(raw, path)
        _check_exhaustive(table, enumeration, where)
        for key, value in table.items():
            if not 0.0 <= _number(value, f"{where}.{key}") <= 10.0:
                raise WeightTableConfigError(f"{where}.{key} must be within [0, 10]")

    for path, enumeration in _MULTIPLIER_TABLES.items():
        where = ".".join(path)
        table = _lookup(raw, path)
        _check_exhaustive(table, enumeration, where)
        for key, value in table.items():
            if not 0.0 < _number(value, f"{where}.{key}") <= 1.0:
                raise WeightTableConfigError(f"{where}.{key} must be within (0, 1]")

    for axis, components in _AXIS_WEIGHTS.items():
        weights = _lookup(raw, (axis, "weights"))
        if set(weights) != set(components):
            raise WeightTableConfigError(
                f"{axis}.weights must name exactly: {', '.join(components)}"
            )
        total = sum(_number(weights[name], f"{axis}.weights.{name}") for name in components)
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise WeightTableConfigError(f"{axis}.weights must sum to 1.0 (got {total:g})")

    breadth = _lookup(raw, ("privacy", "sensitiveDataBreadth"))
    for key in ("base", "penaltyPerType", "highConcernMaxPriority"):
        _number(_lookup(breadth, (key,)), f"privacy.sensitiveDataBreadth.{key}")
    if not 0.0 <= float(breadth["base"]) <= 10.0:
        raise WeightTableConfigError("privacy.sensitiveDataBreadth.base must be within [0, 10]")

    minimum = _number(_lookup(raw, ("context", "minimumModifier")), "context.minimumModifier")
    if not 0.0 < minimum <= 1.0:
        raise WeightTableConfigError("context.minimumModifier must be within (0, 1]")

    alerts = _lookup(raw, ("alerts",))
    for key in ("floor", "span"):
        _number(_lookup(alerts, (key,)), f"alerts.{key}")
    _check_exhaustive(_lookup(alerts, ("interruptionTiming",)), schemas.InterruptionTiming, "alerts.interruptionTiming")
    for key, value in alerts["interruptionTiming"].items():
        _number(value, f"alerts.interruptionTiming.{key}")
    for key in ("pivot", "step", "minShift", "maxShift"):
        _number(_lookup(alerts, ("frequency", key)), f"alerts.frequency.{key}")
    if alerts["frequency"]["minShift"] > alerts["frequency"]["maxShift"]:
        raise WeightTableConfigError("alerts.frequency.minShift must not exceed maxShift")

    _validate_explanation(_lookup(raw, ("explanation",)))

    return WeightTable(version=version.strip(), rules=_freeze(raw))


def _validate_explanation(explanation: Mapping[str, Any]) -> None:
    styles = set(get_args(schemas.ExplanationStyle))
    low = _number(_lookup(explanation, ("lowBandMax",)), "explanation.lowBandMax")
    moderate = _number(_lookup(explanation, ("moderateBandMax",)), "explanation.moderateBandMax")
    if not 0.0 <= low <= moderate <= 10.0:
        raise WeightTableConfigError("explanation band limits must satisfy 0 <= lowBandMax <= moderateBandMax <= 10")

    matrix = _lookup(explanation, ("matrix",))
    _check_exhaustive(matrix, schemas.ComfortLevel, "explanation.matrix")
    for comfort, row in matrix.items():
        if not isinstance(row, Mapping) or set(row) != set(BANDS):
            raise WeightTableConfigError(f"explanation.matrix.{comfort} must name exactly: {', '.join(BANDS)}")
        for band, style in row.items():
            if style not in styles:
                raise WeightTableConfigError(f"explanation.matrix.{comfort}.{band} is not a known style: {style}")

    preferred = _lookup(explanation, ("preferredStyle",))
    _check_exhaustive(preferred, schemas.PreferredExplanationStyle, "explanation.preferredStyle")
    for key, style in preferred.items():
        if style not in styles:
            raise WeightTableConfigError(f"explanation.preferredStyle.{key} is not a known style: {style}")

    order = _lookup(explanation, ("protectiveness",))
    if not isinstance(order, list) or sorted(order) != sorted(styles):
        raise WeightTableConfigError("explanation.protectiveness must list every style exactly once")

    circumstances = _lookup(explanation, ("simpleLanguageCircumstances",))
    known = set(get_args(schemas.SpecialCircumstance))
    if not isinstance(circumstances, list) or not set(circumstances) <= known:
        raise WeightTableConfigError("explanation.simpleLanguageCircumstances must list known special circumstances")


class WeightTableRegistry:
    """Load the derivation weight table from ``derivation_weights.json``."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else weights_path()
        self._table: WeightTable | None = None
        self.reload()

    def reload(self) -> None:
        """Reload the table from disk and validate it."""

        if not self.path.exists():
            raise FileNotFoundError(f"Weight table file not found: {self.path}")

        with self.path.open("r", encoding="utf-8") as fh:
            try:
                raw = json.load(fh)
            except json.JSONDecodeError as exc:
                raise WeightTableConfigError(f"Weight table is not valid JSON: {exc}") from exc

        self._table = validate_rules(raw)
        logger.info("Loaded derivation weight table version %s from %s", self._table.version, self.path)

    @property
    def table(self) -> WeightTable:
        if self._table is None:
            raise WeightTableConfigError(f"Weight table was not loaded from {self.path}")
        return self._table

    @property
    def version(self) -> str:
        return self.table.version


WEIGHT_TABLE = WeightTableRegistry()
"""Process-wide registry used by the derivation engine."""
