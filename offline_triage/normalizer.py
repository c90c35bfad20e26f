"""
Input Normalization
===================
Turns caller-supplied symptoms and vital signs into canonical, validated
values before any rule runs. Malformed input is dropped and logged, never
raised, so a bad entry cannot block a health query.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ValidationError

from offline_triage.emergency import EMERGENCY_SYMPTOMS
from offline_triage.knowledge_base import KnowledgeBase, canonical_code
from offline_triage.models import (
    MAX_SEVERITY,
    MIN_SEVERITY,
    BloodPressure,
    SymptomObservation,
    VitalSigns,
)

logger = logging.getLogger(__name__)

# Field names used by the mobile client
_VITAL_KEY_ALIASES = {
    "temperature": "temperature_c",
    "temperatureC": "temperature_c",
    "bloodPressure": "blood_pressure",
    "heartRate": "heart_rate_bpm",
    "heartRateBpm": "heart_rate_bpm",
    "respiratoryRate": "respiratory_rate",
    "oxygenSaturation": "oxygen_saturation_pct",
    "oxygenSaturationPct": "oxygen_saturation_pct",
}


def _clamp_severity(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric severity.")
        return None
    if not math.isfinite(value):
        return None
    return max(float(MIN_SEVERITY), min(float(MAX_SEVERITY), value))


def _coerce_symptom(item: Any, knowledge_base: KnowledgeBase) -> Optional[SymptomObservation]:
    if isinstance(item, SymptomObservation):
        data: dict = item.model_dump()
    elif isinstance(item, Mapping):
        data = dict(item)
    elif isinstance(item, str):
        data = {"code": item}
    else:
        logger.warning("Dropping symptom of unsupported type %s.", type(item).__name__)
        return None

    raw_code = data.get("code")
    if not isinstance(raw_code, str) or not canonical_code(raw_code):
        logger.warning("Dropping symptom without a usable code.")
        return None

    code = canonical_code(raw_code)
    entry = knowledge_base.lookup_symptom(code)
    if entry is not None and entry.code != code and code in EMERGENCY_SYMPTOMS:
        # Red-flag codes are never remapped through another entry's alias.
        logger.warning("Catalog alias would remap red-flag code %s; keeping it.", code)
        entry = None
    if entry is not None:
        code = entry.code

    name = data.get("name") or (entry.name if entry else code.replace("_", " ").title())
    duration = data.get("duration")
    frequency = data.get("frequency")

    try:
        return SymptomObservation(
            code=code,
            name=str(name),
            severity=_clamp_severity(data.get("severity")),
            duration=str(duration) if duration is not None else None,
            frequency=str(frequency) if frequency is not None else None,
        )
    except ValidationError as exc:
        logger.warning("Dropping invalid symptom %s: %s", code, exc)
        return None


def normalize_symptoms(
    symptoms: Optional[Iterable[Any]],
    knowledge_base: KnowledgeBase,
) -> tuple[SymptomObservation, ...]:
    """Canonicalize a list of reported symptoms.

    Codes are mapped through the catalog's aliases, severities clamped into
    1-10 and duplicate codes collapsed onto the most severe report.

    Args:
        symptoms: SymptomObservation instances, mappings or bare codes.
        knowledge_base: Catalog used for aliases and display names.

    Returns:
        Tuple of observations in first-reported order.
    """
    if symptoms is None:
        return ()
    if isinstance(symptoms, (str, bytes, Mapping)):
        logger.warning("Symptoms must be a list, got %s.", type(symptoms).__name__)
        return ()

    try:
        items = list(symptoms)
    except TypeError:
        logger.warning("Symptoms must be a list, got %s.", type(symptoms).__name__)
        return ()

    by_code: dict[str, SymptomObservation] = {}
    for item in items:
        observation = _coerce_symptom(item, knowledge_base)
        if observation is None:
            continue
        existing = by_code.get(observation.code)
        if existing is None or observation.weight > existing.weight:
            by_code[observation.code] = observation

    if len(by_code) != len(items):
        logger.info("Normalized %d reported symptom(s) into %d.", len(items), len(by_code))
    return tuple(by_code.values())


def _valid_fields(model: type[BaseModel], data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate each field on its own, dropping only the ones that fail."""
    valid: dict[str, Any] = {}
    for key, value in data.items():
        if key not in model.model_fields or value is None:
            continue
        try:
            valid[key] = getattr(model.model_validate({key: value}), key)
        except ValidationError:
            logger.warning("Ignoring invalid vital sign field %s.", key)
    return valid


def _blood_pressure(raw: Any) -> Optional[BloodPressure]:
    if isinstance(raw, BloodPressure):
        return raw
    if not isinstance(raw, Mapping):
        logger.warning("Ignoring blood pressure of unsupported type %s.", type(raw).__name__)
        return None
    reading = BloodPressure(**_valid_fields(BloodPressure, raw))
    return reading if reading.has_measurements() else None


def normalize_vitals(vitals: Any) -> Optional[VitalSigns]:
    """Validate vital signs field by field.

    An invalid field is dropped on its own so the remaining readings still
    reach the emergency gate.

    Returns:
        VitalSigns, or None when nothing usable was measured.
    """
    if vitals is None:
        return None

    if isinstance(vitals, VitalSigns):
        parsed = vitals
    elif isinstance(vitals, Mapping):
        data = {_VITAL_KEY_ALIASES.get(key, key): value for key, value in vitals.items()}
        raw_pressure = data.pop("blood_pressure", None)
        fields = _valid_fields(VitalSigns, data)
        if raw_pressure is not None:
            fields["blood_pressure"] = _blood_pressure(raw_pressure)
        parsed = VitalSigns(**fields)
    else:
        logger.warning("Ignoring vital signs of unsupported type %s.", type(vitals).__name__)
        return None

    return parsed if parsed.has_measurements() else None


_GENDER_ALIASES = {
    "f": "female",
    "female": "female",
    "woman": "female",
    "m": "male",
    "male": "male",
    "man": "male",
}


def normalize_age(age: Any) -> Optional[float]:
    """Return age in years, or None when missing or implausible."""
    if age is None or isinstance(age, bool):
        return None
    try:
        value = float(age)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric age %r.", age)
        return None
    if not math.isfinite(value) or value < 0:
        logger.warning("Ignoring out-of-range age %r.", age)
        return None
    return value


def normalize_gender(gender: Any) -> Optional[str]:
    """Map free-form gender input to "female", "male" or a lower-case label."""
    if not isinstance(gender, str) or not gender.strip():
        return None
    label = gender.strip().lower()
    return _GENDER_ALIASES.get(label, label)
