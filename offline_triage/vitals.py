"""
Critical Vital Signs Assessment
===============================
Flags vital signs that on their own warrant emergency care. Checks run in a
fixed order and the first hit wins, so the reported reason is stable for a
given input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from offline_triage.models import VitalSigns

TEMPERATURE_HIGH_C = 40.0
TEMPERATURE_LOW_C = 35.0
SYSTOLIC_HIGH = 180.0
SYSTOLIC_LOW = 90.0
DIASTOLIC_HIGH = 120.0
HEART_RATE_HIGH = 120.0
HEART_RATE_LOW = 50.0
OXYGEN_SATURATION_LOW = 90.0


@dataclass(frozen=True)
class VitalAssessment:
    is_critical: bool
    reason: Optional[str] = None


NOT_CRITICAL = VitalAssessment(is_critical=False)


class VitalSignsCriticalAssessor:
    """Classifies vital signs as clinically critical or not."""

    def assess(self, vitals: Optional[VitalSigns]) -> VitalAssessment:
        """Check vitals against the critical limits.

        Missing vitals are not evidence of a crisis and yield a
        non-critical assessment.

        Args:
            vitals: Measured vital signs, or None.

        Returns:
            VitalAssessment with the first matching reason.
        """
        if vitals is None:
            return NOT_CRITICAL

        temperature = vitals.temperature_c
        if temperature is not None and (
            temperature > TEMPERATURE_HIGH_C or temperature < TEMPERATURE_LOW_C
        ):
            return VitalAssessment(True, "Critical body temperature")

        systolic = vitals.systolic
        diastolic = vitals.diastolic
        if systolic is not None and (systolic > SYSTOLIC_HIGH or systolic < SYSTOLIC_LOW):
            return VitalAssessment(True, "Critical blood pressure")
        if diastolic is not None and diastolic > DIASTOLIC_HIGH:
            return VitalAssessment(True, "Critical blood pressure")

        heart_rate = vitals.heart_rate_bpm
        if heart_rate is not None and (heart_rate > HEART_RATE_HIGH or heart_rate < HEART_RATE_LOW):
            return VitalAssessment(True, "Critical heart rate")

        saturation = vitals.oxygen_saturation_pct
        if saturation is not None and saturation < OXYGEN_SATURATION_LOW:
            return VitalAssessment(True, "Critical oxygen saturation")

        return NOT_CRITICAL
