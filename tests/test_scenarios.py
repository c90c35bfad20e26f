"""
Test Scenarios
==============
End-to-end scenarios for the offline triage engine: emergency gate,
condition matching, urgency bands, degraded knowledge sources and the safe
fallback.

Run with: python -m pytest tests/ -v
Or:       python tests/test_scenarios.py
"""

from __future__ import annotations

import asyncio
import sys
import unittest
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from offline_triage.config import Settings
from offline_triage.models import (
    BloodPressure,
    SymptomObservation,
    TriagePath,
    UrgencyLevel,
    VitalSigns,
)
from offline_triage.triage_engine import SOFT_EMERGENCY_FLAG, TriageEngine

# Non-emergency symptom codes from the baseline catalog
MILD_CODES = [
    "fever", "headache", "nausea", "fatigue", "cough", "sore_throat",
    "runny_nose", "abdominal_pain", "dizziness", "vomiting", "diarrhea",
    "muscle_ache", "joint_pain", "rash", "swelling", "palpitations",
    "chills", "night_sweats", "loss_of_appetite", "weight_loss",
]


def _symptoms(*severities: float) -> list[SymptomObservation]:
    return [
        SymptomObservation(code=code, severity=severity)
        for code, severity in zip(MILD_CODES, severities)
    ]


class FailingProvider:
    async def fetch(self):
        raise RuntimeError("medical_knowledge table missing")


class CountingSlowProvider:
    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return {}


def _assert_invariants(test: unittest.TestCase, result) -> None:
    test.assertGreaterEqual(result.urgency_score, 1.0)
    test.assertLessEqual(result.urgency_score, 10.0)
    test.assertGreaterEqual(result.confidence_overall, 0.0)
    test.assertLessEqual(result.confidence_overall, 1.0)
    test.assertLessEqual(len(result.candidates), 3)
    confidences = [c.confidence for c in result.candidates]
    test.assertEqual(confidences, sorted(confidences, reverse=True))
    for c in result.candidates:
        test.assertGreaterEqual(c.confidence, 0.0)
        test.assertLessEqual(c.confidence, 1.0)
    if result.urgency_level is UrgencyLevel.EMERGENCY:
        test.assertTrue(result.requires_clinician)
        test.assertTrue(result.emergency_actions)


class TestEmergencyScenarios(unittest.IsolatedAsyncioTestCase):
    """Red flags must always end in EMERGENCY."""

    async def asyncSetUp(self):
        self.engine = await TriageEngine.create(settings=Settings())

    async def test_chest_pain_with_mild_symptoms(self):
        """Scenario 1: Chest pain is not diluted by milder co-reported symptoms."""
        result = await self.engine.analyze([
            {"code": "cough", "severity": 2},
            {"code": "chest_pain", "severity": 3},
            {"code": "runny_nose", "severity": 1},
        ])
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.urgency_score, 10.0)
        self.assertEqual(result.triage_path, TriagePath.EMERGENCY_GATE)
        self.assertEqual(result.candidates[0].condition, "Suspected Cardiac Emergency")
        self.assertEqual(result.confidence_overall, 0.95)
        self.assertIn("Call emergency services (108)", result.emergency_actions)

    async def test_high_severity_unmapped_symptom(self):
        """Severity 8 on an ordinary symptom still triggers the gate."""
        result = await self.engine.analyze([{"code": "joint_pain", "severity": 8}])
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.candidates[0].condition, "Medical Emergency")
        self.assertIn("Stay with patient until help arrives", result.emergency_actions)

    async def test_alias_reaches_emergency_set(self):
        """'Breathlessness' normalizes to difficulty_breathing."""
        result = await self.engine.analyze([{"code": "Breathlessness", "severity": 4}])
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.candidates[0].condition, "Respiratory Emergency")

    async def test_low_oxygen_without_symptoms(self):
        """Scenario 2: SpO2 85% alone is an emergency."""
        result = await self.engine.analyze([], vitals=VitalSigns(oxygen_saturation_pct=85))
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.candidates[0].condition, "Critical Vital Signs")
        self.assertEqual(result.candidates[0].description, "Critical oxygen saturation")
        self.assertEqual(result.confidence_overall, 0.9)

    async def test_critical_blood_pressure_from_mapping(self):
        """Vitals sent by the mobile client in camelCase are understood."""
        result = await self.engine.analyze(
            [{"code": "headache", "severity": 3}],
            vitals={"bloodPressure": {"systolic": 190, "diastolic": 100}},
        )
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.candidates[0].description, "Critical blood pressure")

    async def test_partial_blood_pressure_reaches_gate(self):
        """A systolic-only reading is still checked by the gate."""
        result = await self.engine.analyze(
            [], vitals={"bloodPressure": {"systolic": 200}, "oxygenSaturation": 80}
        )
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.triage_path, TriagePath.EMERGENCY_GATE)
        self.assertEqual(result.candidates[0].description, "Critical blood pressure")

    async def test_bad_vital_field_keeps_critical_reading(self):
        """An unreadable temperature does not hide a critical heart rate."""
        result = await self.engine.analyze([], vitals={"heartRate": 150, "temperature": "n/a"})
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.candidates[0].description, "Critical heart rate")


class TestRoutineScenarios(unittest.IsolatedAsyncioTestCase):
    """Weighted analysis for non-emergency presentations."""

    async def asyncSetUp(self):
        self.engine = await TriageEngine.create(settings=Settings())

    async def test_common_cold(self):
        """Scenario 3: Cough, sore throat and headache look like a cold."""
        result = await self.engine.analyze([
            SymptomObservation(code="cough", severity=4),
            SymptomObservation(code="sore_throat", severity=3),
            SymptomObservation(code="headache", severity=2),
        ])
        _assert_invariants(self, result)
        self.assertIn(result.urgency_level, (UrgencyLevel.LOW, UrgencyLevel.MEDIUM))
        colds = [c for c in result.candidates if "Common Cold" in c.condition]
        self.assertTrue(colds, f"Expected a cold candidate, got {result.candidates}")
        self.assertGreater(colds[0].confidence, 0.3)
        self.assertFalse(result.requires_clinician)
        self.assertEqual(result.triage_path, TriagePath.RULE_ENGINE)

    async def test_gastroenteritis(self):
        result = await self.engine.analyze(_symptoms_for(
            nausea=7, vomiting=7, diarrhea=7, abdominal_pain=6,
        ))
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.LOW)
        self.assertEqual(result.candidates[0].condition, "Gastroenteritis")
        self.assertAlmostEqual(result.candidates[0].confidence, 0.675)

    async def test_elderly_hypertensive_adjustments(self):
        """Age and systolic pressure boost hypertension, clamped at 1.0."""
        symptoms = _symptoms_for(headache=6, dizziness=6, fatigue=6, palpitations=6)
        plain = await self.engine.analyze(symptoms)
        adjusted = await self.engine.analyze(
            symptoms,
            age=70,
            vitals=VitalSigns(blood_pressure=BloodPressure(systolic=150, diastolic=95)),
        )
        self.assertEqual(plain.candidates[0].condition, "Hypertension")
        self.assertAlmostEqual(plain.candidates[0].confidence, 0.6)
        self.assertEqual(adjusted.candidates[0].condition, "Hypertension")
        self.assertEqual(adjusted.candidates[0].confidence, 1.0)

    async def test_gender_adjustment_for_uti(self):
        symptoms = _symptoms_for(burning_urination=5, frequent_urination=5, lower_abdominal_pain=5)
        female = await self.engine.analyze(symptoms, gender="Female")
        male = await self.engine.analyze(symptoms, gender="male")
        self.assertEqual(female.candidates[0].condition, "Urinary Tract Infection")
        self.assertAlmostEqual(female.candidates[0].confidence, 0.6)
        self.assertAlmostEqual(male.candidates[0].confidence, 0.5)

    async def test_empty_symptoms_advisory(self):
        """No symptoms and no critical vitals yields a LOW advisory."""
        result = await self.engine.analyze([])
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_level, UrgencyLevel.LOW)
        self.assertEqual(result.triage_path, TriagePath.ADVISORY)
        self.assertEqual(result.candidates, [])
        self.assertFalse(result.requires_clinician)
        self.assertEqual(result.confidence_overall, 0.5)

    async def test_malformed_symptoms_never_block(self):
        result = await self.engine.analyze([None, 42, {"name": "no code"}, {"code": "  "}])
        self.assertEqual(result.triage_path, TriagePath.ADVISORY)
        result = await self.engine.analyze("cough")
        self.assertEqual(result.triage_path, TriagePath.ADVISORY)

    async def test_identical_inputs_identical_results(self):
        """Same input, byte-identical JSON output."""
        symptoms = _symptoms(6, 5, 4, 3)
        vitals = VitalSigns(temperature_c=38.6, heart_rate_bpm=104)
        first = await self.engine.analyze(symptoms, age=30, gender="female", vitals=vitals)
        second = await self.engine.analyze(symptoms, age=30, gender="female", vitals=vitals)
        self.assertEqual(first.model_dump_json(), second.model_dump_json())


class TestUrgencyBoundaries(unittest.IsolatedAsyncioTestCase):
    """Both EMERGENCY paths are kept; these pin the score-based one."""

    async def asyncSetUp(self):
        self.engine = await TriageEngine.create(settings=Settings())

    async def test_score_nine_is_soft_emergency(self):
        """Fifteen moderate symptoms sum to 9.0 with no red flag."""
        result = await self.engine.analyze(_symptoms(*[6] * 15))
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_score, 9.0)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.triage_path, TriagePath.RULE_ENGINE)
        self.assertEqual(result.red_flags, [SOFT_EMERGENCY_FLAG])
        self.assertTrue(result.emergency_actions)

    async def test_score_just_below_nine_is_high(self):
        result = await self.engine.analyze(_symptoms(*([6] * 14 + [5])))
        _assert_invariants(self, result)
        self.assertEqual(result.urgency_score, 8.9)
        self.assertEqual(result.urgency_level, UrgencyLevel.HIGH)
        self.assertIsNone(result.emergency_actions)
        self.assertTrue(result.requires_clinician)
        self.assertEqual(result.red_flags, [])

    async def test_high_and_medium_boundary(self):
        high = await self.engine.analyze(_symptoms(*[7] * 10))
        medium = await self.engine.analyze(_symptoms(*([7] * 9 + [6])))
        self.assertEqual(high.urgency_score, 7.0)
        self.assertEqual(high.urgency_level, UrgencyLevel.HIGH)
        self.assertEqual(medium.urgency_score, 6.9)
        self.assertEqual(medium.urgency_level, UrgencyLevel.MEDIUM)

    async def test_vitals_push_score_over_nine(self):
        """Non-critical vitals can add enough to reach the soft path."""
        vitals = VitalSigns(
            temperature_c=39.5,
            blood_pressure=BloodPressure(systolic=170, diastolic=95),
            heart_rate_bpm=110,
        )
        result = await self.engine.analyze(_symptoms(*[6] * 10), vitals=vitals)
        self.assertEqual(result.urgency_score, 9.0)
        self.assertEqual(result.urgency_level, UrgencyLevel.EMERGENCY)
        self.assertEqual(result.confidence_overall, 1.0)


class TestDegradedOperation(unittest.IsolatedAsyncioTestCase):
    """Failures inside the engine never reach the caller."""

    async def test_knowledge_load_failure_uses_baseline(self):
        engine = TriageEngine(settings=Settings(), provider=FailingProvider())
        result = await engine.analyze([
            {"code": "cough", "severity": 4},
            {"code": "sore_throat", "severity": 3},
            {"code": "headache", "severity": 2},
        ])
        self.assertIsNotNone(result)
        self.assertTrue(any("Common Cold" in c.condition for c in result.candidates))
        status = engine.get_status()
        self.assertTrue(status.initialized)
        self.assertEqual(status.knowledge_source, "baseline")
        self.assertGreater(status.knowledge_base_size, 0)

    async def test_internal_error_returns_fallback(self):
        engine = await TriageEngine.create(settings=Settings())
        with mock.patch.object(engine.matcher, "match", side_effect=ZeroDivisionError("boom")):
            result = await engine.analyze([{"code": "cough", "severity": 4}])
        self.assertEqual(result.urgency_level, UrgencyLevel.MEDIUM)
        self.assertEqual(result.urgency_score, 5.0)
        self.assertTrue(result.requires_clinician)
        self.assertEqual(result.triage_path, TriagePath.FALLBACK)

    async def test_concurrent_first_calls_share_one_load(self):
        provider = CountingSlowProvider()
        engine = TriageEngine(settings=Settings(), provider=provider)
        results = await asyncio.gather(*[
            engine.analyze([{"code": "headache", "severity": 3}]) for _ in range(5)
        ])
        self.assertEqual(provider.calls, 1)
        self.assertEqual(len({r.model_dump_json() for r in results}), 1)

    async def test_status_before_and_after_load(self):
        engine = TriageEngine(settings=Settings())
        before = engine.get_status()
        self.assertFalse(before.initialized)
        self.assertEqual(before.knowledge_base_size, 0)
        self.assertFalse(before.has_ml_model)
        await engine.ensure_ready()
        after = engine.get_status()
        self.assertTrue(after.initialized)
        self.assertEqual(after.backend, "rules")


class TestInterruptedKnowledgeLoad(unittest.TestCase):
    """A load cancelled with its event loop is retried on the next call."""

    def test_analyze_after_cancelled_load(self):
        provider = CountingSlowProvider(delay=0.3)
        engine = TriageEngine(settings=Settings(), provider=provider)
        symptoms = [{"code": "cough", "severity": 4}, {"code": "sore_throat", "severity": 3}]

        async def impatient():
            return await asyncio.wait_for(engine.analyze(symptoms), timeout=0.05)

        with self.assertRaises(asyncio.TimeoutError):
            asyncio.run(impatient())
        self.assertFalse(engine.get_status().initialized)

        result = asyncio.run(engine.analyze(symptoms))
        self.assertEqual(result.triage_path, TriagePath.RULE_ENGINE)
        self.assertEqual(provider.calls, 2)
        self.assertTrue(engine.get_status().initialized)


class TestDrugInteractionsThroughEngine(unittest.TestCase):
    def test_warfarin_aspirin(self):
        engine = TriageEngine(settings=Settings())
        findings = engine.check_drug_interactions(["Warfarin", "Aspirin"])
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0].severity.value, "MAJOR")
        self.assertEqual(engine.check_drug_interactions(["Paracetamol"]), [])


def _symptoms_for(**severities: float) -> list[SymptomObservation]:
    return [SymptomObservation(code=code, severity=s) for code, s in severities.items()]


# ---------------------------------------------------------------------------
# Run tests
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    unittest.main(verbosity=2)
