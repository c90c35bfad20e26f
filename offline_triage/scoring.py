"""
Urgency and Confidence Scoring
==============================
Deterministic scoring stages: a numeric urgency score from symptom
severities and vital signs, its discrete urgency level, and an overall
confidence that measures how complete the input was.
"""

from __future__ import annotations

from typing import Optional, Sequence

from offline_triage.models import SymptomObservation, UrgencyLevel, VitalSigns

MIN_URGENCY_SCORE = 1.0
MAX_URGENCY_SCORE = 10.0

# Vital sign contributions, additive
FEVER_SCORE_THRESHOLD_C = 39.0
FEVER_SCORE_BONUS = 1.0
SYSTOLIC_SCORE_THRESHOLD = 160.0
SYSTOLIC_SCORE_BONUS = 1.5
TACHYCARDIA_SCORE_THRESHOLD = 100.0
TACHYCARDIA_SCORE_BONUS = 0.5

EMERGENCY_SCORE = 9.0
HIGH_SCORE = 7.0
MEDIUM_SCORE = 4.0

BASE_CONFIDENCE = 0.5
CONFIDENCE_PER_SYMPTOM = 0.1
MAX_SYMPTOM_CONFIDENCE = 0.3
VITALS_CONFIDENCE = 0.2


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


class UrgencyScorer:
    """Sums symptom severities and vital sign bonuses into a 1-10 score."""

    def vital_contribution(self, vitals: Optional[VitalSigns]) -> float:
        if vitals is None:
            return 0.0
        bonus = 0.0
        if vitals.temperature_c is not None and vitals.temperature_c > FEVER_SCORE_THRESHOLD_C:
            bonus += FEVER_SCORE_BONUS
        if vitals.systolic is not None and vitals.systolic > SYSTOLIC_SCORE_THRESHOLD:
            bonus += SYSTOLIC_SCORE_BONUS
        if vitals.heart_rate_bpm is not None and vitals.heart_rate_bpm > TACHYCARDIA_SCORE_THRESHOLD:
            bonus += TACHYCARDIA_SCORE_BONUS
        return bonus

    def score(
        self,
        symptoms: Sequence[SymptomObservation],
        vitals: Optional[VitalSigns] = None,
    ) -> float:
        """Compute the urgency score.

        Rounded to two decimals before clamping so that sums such as
        0.3 * 30 land exactly on the level boundaries.

        Args:
            symptoms: Normalized observations.
            vitals: Measured vital signs, or None.

        Returns:
            Score in [1, 10].
        """
        raw = sum(symptom.weight for symptom in symptoms) + self.vital_contribution(vitals)
        return clamp(round(raw, 2), MIN_URGENCY_SCORE, MAX_URGENCY_SCORE)


class UrgencyLevelMapper:
    def map(self, score: float) -> UrgencyLevel:
        if score >= EMERGENCY_SCORE:
            return UrgencyLevel.EMERGENCY
        if score >= HIGH_SCORE:
            return UrgencyLevel.HIGH
        if score >= MEDIUM_SCORE:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW


class ConfidenceEstimator:
    """Overall confidence from input completeness, not match quality."""

    def estimate(self, symptom_count: int, vitals_provided: bool) -> float:
        confidence = BASE_CONFIDENCE
        confidence += min(symptom_count * CONFIDENCE_PER_SYMPTOM, MAX_SYMPTOM_CONFIDENCE)
        if vitals_provided:
            confidence += VITALS_CONFIDENCE
        return round(clamp(confidence, 0.0, 1.0), 2)
