"""
Emergency Detector
==================
Priority gate that runs before any weighted analysis. A red-flag symptom,
a reported severity of 8 or more, or critical vital signs end the analysis
immediately with an EMERGENCY result, so a red flag can never be averaged
away by milder symptoms reported alongside it.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from offline_triage.config import DEFAULT_EMERGENCY_NUMBER
from offline_triage.models import (
    AnalysisResult,
    ConditionCandidate,
    SymptomObservation,
    TriagePath,
    UrgencyLevel,
    VitalSigns,
)
from offline_triage.scoring import MAX_URGENCY_SCORE
from offline_triage.vitals import VitalAssessment, VitalSignsCriticalAssessor

logger = logging.getLogger(__name__)

EMERGENCY_SYMPTOMS = frozenset({
    "chest_pain",
    "difficulty_breathing",
    "severe_bleeding",
    "unconsciousness",
    "severe_headache",
    "stroke_symptoms",
    "severe_abdominal_pain",
})

EMERGENCY_SEVERITY = 8

SYMPTOM_TRIGGER_CONFIDENCE = 0.95
VITAL_TRIGGER_CONFIDENCE = 0.90

GENERIC_EMERGENCY_CONDITION = "Medical Emergency"
CRITICAL_VITALS_CONDITION = "Critical Vital Signs"

EMERGENCY_CONDITIONS = {
    "chest_pain": "Suspected Cardiac Emergency",
    "difficulty_breathing": "Respiratory Emergency",
    "severe_bleeding": "Hemorrhage Emergency",
    "unconsciousness": "Neurological Emergency",
    "severe_headache": "Possible Stroke/Hypertensive Crisis",
    "stroke_symptoms": "Suspected Stroke",
    "severe_abdominal_pain": "Acute Abdominal Emergency",
}

# "{number}" is replaced with the configured emergency number.
EMERGENCY_ACTIONS = {
    "chest_pain": (
        "Call emergency services ({number})",
        "Give aspirin if not allergic (300mg chewed)",
        "Keep patient calm and seated",
        "Loosen tight clothing",
        "Monitor breathing and pulse",
    ),
    "difficulty_breathing": (
        "Call emergency services immediately ({number})",
        "Help patient sit upright",
        "Loosen tight clothing",
        "Clear airway if obstructed",
        "Stay with patient",
    ),
    "severe_bleeding": (
        "Apply direct pressure to wound",
        "Elevate injured area if possible",
        "Call emergency services ({number})",
        "Do not remove embedded objects",
        "Monitor for shock",
    ),
    "stroke_symptoms": (
        "Call emergency services immediately ({number})",
        "Note the time symptoms started",
        "Keep patient lying on their side with head raised",
        "Do not give food, drink or medication",
        "Stay with patient until help arrives",
    ),
}

GENERIC_EMERGENCY_ACTIONS = (
    "Call emergency services ({number})",
    "Keep patient calm",
    "Monitor vital signs",
    "Do not give food or water",
    "Stay with patient until help arrives",
)

CRITICAL_VITALS_ACTIONS = (
    "Monitor vital signs",
    "Keep patient comfortable",
    "Call emergency services ({number})",
)

EMERGENCY_HOME_CARE = ("Do not attempt home treatment", "Stay calm", "Keep patient comfortable")


def _fill(actions: Sequence[str], number: str) -> list[str]:
    return [action.format(number=number) for action in actions]


class EmergencyDetector:
    """Hard emergency gate.

    Attributes:
        emergency_number: Number quoted in emergency actions.
        vitals_assessor: Classifier for critical vital signs.
    """

    def __init__(
        self,
        emergency_number: str = DEFAULT_EMERGENCY_NUMBER,
        vitals_assessor: Optional[VitalSignsCriticalAssessor] = None,
    ) -> None:
        self.emergency_number = emergency_number
        self.vitals_assessor = vitals_assessor or VitalSignsCriticalAssessor()

    @staticmethod
    def is_red_flag(symptom: SymptomObservation) -> bool:
        if symptom.code in EMERGENCY_SYMPTOMS:
            return True
        return symptom.severity is not None and symptom.severity >= EMERGENCY_SEVERITY

    def generic_actions(self) -> list[str]:
        return _fill(GENERIC_EMERGENCY_ACTIONS, self.emergency_number)

    def detect(
        self,
        symptoms: Sequence[SymptomObservation],
        vitals: Optional[VitalSigns] = None,
    ) -> Optional[AnalysisResult]:
        """Run the gate.

        Symptoms are checked first, in reported order; the first red flag
        keys the condition and action lookups.

        Args:
            symptoms: Normalized observations.
            vitals: Measured vital signs, or None.

        Returns:
            A terminal EMERGENCY result, or None when nothing triggered.
        """
        for symptom in symptoms:
            if self.is_red_flag(symptom):
                logger.warning(
                    "Emergency gate triggered by symptom %s (severity=%s).",
                    symptom.code,
                    symptom.severity,
                )
                return self._symptom_emergency(symptom)

        assessment = self.vitals_assessor.assess(vitals)
        if assessment.is_critical:
            logger.warning("Emergency gate triggered by vitals: %s.", assessment.reason)
            return self._vitals_emergency(assessment)

        return None

    def _symptom_emergency(self, symptom: SymptomObservation) -> AnalysisResult:
        if symptom.code in EMERGENCY_SYMPTOMS:
            red_flag = f"emergency_symptom:{symptom.code}"
        else:
            red_flag = f"severity>={EMERGENCY_SEVERITY}:{symptom.code}"

        actions = EMERGENCY_ACTIONS.get(symptom.code, GENERIC_EMERGENCY_ACTIONS)
        return AnalysisResult(
            urgency_level=UrgencyLevel.EMERGENCY,
            urgency_score=MAX_URGENCY_SCORE,
            candidates=[
                ConditionCandidate(
                    condition=EMERGENCY_CONDITIONS.get(symptom.code, GENERIC_EMERGENCY_CONDITION),
                    confidence=SYMPTOM_TRIGGER_CONFIDENCE,
                    description="Emergency medical condition requiring immediate attention",
                )
            ],
            recommended_actions=[f"Call emergency services immediately ({self.emergency_number})"],
            requires_clinician=True,
            emergency_actions=_fill(actions, self.emergency_number),
            home_care_advice=list(EMERGENCY_HOME_CARE),
            follow_up_advice="Immediate emergency medical care required",
            confidence_overall=SYMPTOM_TRIGGER_CONFIDENCE,
            red_flags=[red_flag],
            triage_path=TriagePath.EMERGENCY_GATE,
        )

    def _vitals_emergency(self, assessment: VitalAssessment) -> AnalysisResult:
        reason = assessment.reason or "Critical vital signs detected"
        return AnalysisResult(
            urgency_level=UrgencyLevel.EMERGENCY,
            urgency_score=MAX_URGENCY_SCORE,
            candidates=[
                ConditionCandidate(
                    condition=CRITICAL_VITALS_CONDITION,
                    confidence=VITAL_TRIGGER_CONFIDENCE,
                    description=reason,
                )
            ],
            recommended_actions=["Seek immediate medical attention"],
            requires_clinician=True,
            emergency_actions=_fill(CRITICAL_VITALS_ACTIONS, self.emergency_number),
            home_care_advice=["Do not delay medical care"],
            follow_up_advice="Emergency medical evaluation required",
            confidence_overall=VITAL_TRIGGER_CONFIDENCE,
            red_flags=[f"critical_vitals:{reason}"],
            triage_path=TriagePath.EMERGENCY_GATE,
        )
