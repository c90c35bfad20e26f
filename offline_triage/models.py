"""
Triage Data Models
==================
Input and output contracts of the offline triage engine. Every model is
frozen and JSON-serializable so results can be handed to the UI or the
sync layer as-is.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_SEVERITY = 5
MIN_SEVERITY = 1
MAX_SEVERITY = 10


class UrgencyLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class TriagePath(str, Enum):
    """Which branch of the engine produced a result."""

    EMERGENCY_GATE = "EMERGENCY_GATE"
    RULE_ENGINE = "RULE_ENGINE"
    ADVISORY = "ADVISORY"
    FALLBACK = "FALLBACK"


class InteractionSeverity(str, Enum):
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"


class SymptomObservation(BaseModel):
    """A single patient-reported symptom.

    Attributes:
        code: Canonical snake_case identifier, e.g. "sore_throat".
        name: Human-readable label.
        severity: 1-10 scale. None means not reported.
        duration: Free-form duration ("hours", "3 days").
        frequency: constant, intermittent or occasional.
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=1)
    name: str = ""
    severity: Optional[float] = Field(default=None, ge=MIN_SEVERITY, le=MAX_SEVERITY)
    duration: Optional[str] = None
    frequency: Optional[str] = None

    @property
    def weight(self) -> float:
        """Severity on a 0-1 scale, mid-scale when unreported."""
        severity = self.severity if self.severity is not None else DEFAULT_SEVERITY
        return severity / 10


class BloodPressure(BaseModel):
    """Either reading may be missing when only one was taken."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    systolic: Optional[float] = None
    diastolic: Optional[float] = None

    def has_measurements(self) -> bool:
        return self.systolic is not None or self.diastolic is not None


class VitalSigns(BaseModel):
    """Measured vital signs. A missing field was not measured."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    temperature_c: Optional[float] = None
    blood_pressure: Optional[BloodPressure] = None
    heart_rate_bpm: Optional[float] = None
    respiratory_rate: Optional[float] = None
    oxygen_saturation_pct: Optional[float] = None

    def has_measurements(self) -> bool:
        if self.blood_pressure is not None and self.blood_pressure.has_measurements():
            return True
        return any(
            value is not None
            for value in (
                self.temperature_c,
                self.heart_rate_bpm,
                self.respiratory_rate,
                self.oxygen_saturation_pct,
            )
        )

    @property
    def systolic(self) -> Optional[float]:
        return self.blood_pressure.systolic if self.blood_pressure else None

    @property
    def diastolic(self) -> Optional[float]:
        return self.blood_pressure.diastolic if self.blood_pressure else None


class ConditionCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    condition: str
    confidence: float = Field(ge=0.0, le=1.0)
    icd_code: Optional[str] = None
    description: str = ""


class AnalysisResult(BaseModel):
    """Outcome of one triage analysis.

    Built fresh for every call and never mutated afterwards. Persisting it
    as a health record is the sync layer's job.
    """

    model_config = ConfigDict(frozen=True)

    urgency_level: UrgencyLevel
    urgency_score: float = Field(ge=1.0, le=10.0)
    candidates: list[ConditionCandidate] = Field(default_factory=list, max_length=3)
    recommended_actions: list[str] = Field(default_factory=list)
    requires_clinician: bool
    emergency_actions: Optional[list[str]] = None
    home_care_advice: list[str] = Field(default_factory=list)
    follow_up_advice: str = ""
    confidence_overall: float = Field(ge=0.0, le=1.0)
    red_flags: list[str] = Field(default_factory=list)
    triage_path: TriagePath = TriagePath.RULE_ENGINE

    @model_validator(mode="after")
    def _check_invariants(self) -> "AnalysisResult":
        if self.urgency_level is UrgencyLevel.EMERGENCY:
            if not self.requires_clinician or not self.emergency_actions:
                raise ValueError(
                    "EMERGENCY results must require a clinician and carry emergency actions"
                )
        confidences = [c.confidence for c in self.candidates]
        if confidences != sorted(confidences, reverse=True):
            raise ValueError("candidates must be sorted by descending confidence")
        return self


class DrugInteractionFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: InteractionSeverity
    description: str
    mechanism: str
    management: str
    drugs: list[str] = Field(default_factory=list)


class EngineStatus(BaseModel):
    """Health-check snapshot of the engine."""

    model_config = ConfigDict(frozen=True)

    initialized: bool
    knowledge_base_size: int
    has_ml_model: bool
    backend: str
    knowledge_source: Optional[str] = None
