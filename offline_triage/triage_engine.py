"""
Triage Engine Module
====================
Offline triage orchestrator. Converts patient-reported symptoms and
optional vital signs into an urgency level, ranked candidate conditions
and actionable advice, without any network access.

Pipeline:
  1. Knowledge base ready (loaded once, baseline on failure)
  2. Normalize symptoms and vitals
  3. Emergency gate (terminal when triggered)
  4. Pattern match, then adjust for age, gender and vitals
  5. Urgency score and level, recommendations, overall confidence

No exception escapes analyze(): an internal failure yields a conservative
fallback result instead, because this may be the only guidance available
offline.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from offline_triage.adjusters import PatientContext, run_adjusters
from offline_triage.config import Settings
from offline_triage.drug_interactions import DrugInteractionChecker
from offline_triage.emergency import EmergencyDetector
from offline_triage.inference import InferenceBackend, select_backend
from offline_triage.knowledge_base import (
    JsonKnowledgeBaseProvider,
    KnowledgeBase,
    KnowledgeBaseLoader,
    KnowledgeBaseProvider,
    baseline_knowledge_base,
)
from offline_triage.models import (
    AnalysisResult,
    ConditionCandidate,
    DrugInteractionFinding,
    EngineStatus,
    TriagePath,
    UrgencyLevel,
)
from offline_triage.normalizer import (
    normalize_age,
    normalize_gender,
    normalize_symptoms,
    normalize_vitals,
)
from offline_triage.pattern_matcher import ConditionPatternMatcher
from offline_triage.recommendations import HOME_CARE_ADVICE, RecommendationGenerator
from offline_triage.scoring import (
    MIN_URGENCY_SCORE,
    ConfidenceEstimator,
    UrgencyLevelMapper,
    UrgencyScorer,
)

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 3
CLINICIAN_SCORE = 6.0
SOFT_EMERGENCY_FLAG = "urgency_score>=9"


def fallback_result() -> AnalysisResult:
    """Conservative result used when analysis fails internally."""
    return AnalysisResult(
        urgency_level=UrgencyLevel.MEDIUM,
        urgency_score=5.0,
        candidates=[
            ConditionCandidate(
                condition="General medical consultation needed",
                confidence=0.6,
                description="Unable to perform detailed analysis. Please consult healthcare provider.",
            )
        ],
        recommended_actions=["Consult with healthcare provider", "Monitor symptoms"],
        requires_clinician=True,
        home_care_advice=["Rest", "Stay hydrated", "Monitor symptoms"],
        follow_up_advice="Medical consultation recommended",
        confidence_overall=0.6,
        triage_path=TriagePath.FALLBACK,
    )


class TriageEngine:
    """Offline medical triage engine.

    Build it directly and let the first analyze() load the knowledge base,
    or use ``await TriageEngine.create()`` to get an engine that is already
    loaded.

    Attributes:
        settings: Engine configuration.
        loader: Load-once knowledge base loader.
        backend: Inference backend chosen at construction.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[KnowledgeBaseProvider] = None,
        backend: Optional[InferenceBackend] = None,
    ) -> None:
        """Initialize the Triage Engine.

        Args:
            settings: Optional settings; read from the environment if omitted.
            provider: Optional knowledge source. Defaults to the JSON file
                named by settings.knowledge_path, if any.
            backend: Optional inference backend. Defaults to the one named
                by settings.inference_backend.
        """
        self.settings = settings or Settings.from_env()
        if provider is None and self.settings.knowledge_path:
            provider = JsonKnowledgeBaseProvider(self.settings.knowledge_path)

        self.loader = KnowledgeBaseLoader(provider, timeout=self.settings.kb_load_timeout)
        self.backend = backend or select_backend(self.settings)

        self.emergency_detector = EmergencyDetector(self.settings.emergency_number)
        self.matcher = ConditionPatternMatcher()
        self.scorer = UrgencyScorer()
        self.level_mapper = UrgencyLevelMapper()
        self.recommender = RecommendationGenerator()
        self.confidence_estimator = ConfidenceEstimator()
        self.interaction_checker = DrugInteractionChecker()

        logger.info("Triage engine created (backend=%s).", self.backend.name)

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        provider: Optional[KnowledgeBaseProvider] = None,
        backend: Optional[InferenceBackend] = None,
    ) -> "TriageEngine":
        """Build an engine and wait for its knowledge base."""
        engine = cls(settings=settings, provider=provider, backend=backend)
        await engine.ensure_ready()
        return engine

    async def ensure_ready(self) -> KnowledgeBase:
        return await self.loader.load()

    # ------------------------------------------------------------------
    # Symptom analysis
    # ------------------------------------------------------------------

    async def analyze(
        self,
        symptoms: Optional[Iterable[Any]],
        age: Optional[float] = None,
        gender: Optional[str] = None,
        vitals: Any = None,
    ) -> AnalysisResult:
        """Triage a set of reported symptoms.

        Args:
            symptoms: SymptomObservation instances, mappings or bare codes.
            age: Patient age in years.
            gender: Patient gender ("female", "male", ...).
            vitals: VitalSigns or an equivalent mapping.

        Returns:
            A fresh AnalysisResult. Never raises.
        """
        try:
            knowledge_base = await self.ensure_ready()
        except Exception as exc:
            logger.error("Knowledge base unavailable, using baseline: %s", exc)
            knowledge_base = baseline_knowledge_base()

        try:
            return self._analyze(knowledge_base, symptoms, age, gender, vitals)
        except Exception:
            logger.exception("Symptom analysis failed, returning safe fallback.")
            return fallback_result()

    def _analyze(
        self,
        knowledge_base: KnowledgeBase,
        symptoms: Optional[Iterable[Any]],
        age: Any,
        gender: Any,
        vitals: Any,
    ) -> AnalysisResult:
        observations = normalize_symptoms(symptoms, knowledge_base)
        measured_vitals = normalize_vitals(vitals)

        # The gate runs before anything is averaged.
        emergency = self.emergency_detector.detect(observations, measured_vitals)
        if emergency is not None:
            return emergency

        if not observations:
            logger.info("No usable symptoms reported, returning advisory result.")
            return self._advisory_result(measured_vitals is not None)

        context = PatientContext(
            age=normalize_age(age),
            gender=normalize_gender(gender),
            vitals=measured_vitals,
        )
        matched = self.matcher.match(observations, knowledge_base)
        top = run_adjusters(matched, context)[:MAX_CANDIDATES]

        urgency_score = self.scorer.score(observations, measured_vitals)
        urgency_level = self.level_mapper.map(urgency_score)
        recommendation = self.recommender.generate(urgency_score)
        confidence = self.confidence_estimator.estimate(
            len(observations), measured_vitals is not None
        )

        requires_clinician = urgency_score >= CLINICIAN_SCORE
        emergency_actions = None
        red_flags: list[str] = []
        if urgency_level is UrgencyLevel.EMERGENCY:
            # Score-based emergency without a red-flag symptom.
            logger.warning(
                "Urgency score %.2f reached EMERGENCY without a gate trigger.", urgency_score
            )
            requires_clinician = True
            emergency_actions = self.emergency_detector.generic_actions()
            red_flags.append(SOFT_EMERGENCY_FLAG)

        logger.info(
            "Analysis complete: level=%s score=%.2f candidates=%d symptoms=%d.",
            urgency_level.value,
            urgency_score,
            len(top),
            len(observations),
        )
        return AnalysisResult(
            urgency_level=urgency_level,
            urgency_score=urgency_score,
            candidates=[scored.to_candidate() for scored in top],
            recommended_actions=list(recommendation.actions),
            requires_clinician=requires_clinician,
            emergency_actions=emergency_actions,
            home_care_advice=list(recommendation.home_care),
            follow_up_advice=recommendation.follow_up,
            confidence_overall=confidence,
            red_flags=red_flags,
            triage_path=TriagePath.RULE_ENGINE,
        )

    def _advisory_result(self, vitals_provided: bool) -> AnalysisResult:
        return AnalysisResult(
            urgency_level=UrgencyLevel.LOW,
            urgency_score=MIN_URGENCY_SCORE,
            candidates=[],
            recommended_actions=[
                "Describe your symptoms for a more specific assessment",
                "Consult a healthcare provider if you feel unwell",
            ],
            requires_clinician=False,
            home_care_advice=list(HOME_CARE_ADVICE),
            follow_up_advice="Consult doctor if symptoms appear or worsen",
            confidence_overall=self.confidence_estimator.estimate(0, vitals_provided),
            triage_path=TriagePath.ADVISORY,
        )

    # ------------------------------------------------------------------
    # Ancillary interfaces
    # ------------------------------------------------------------------

    def check_drug_interactions(self, medicines: Iterable[Any]) -> list[DrugInteractionFinding]:
        return self.interaction_checker.check(medicines)

    def get_status(self) -> EngineStatus:
        return EngineStatus(
            initialized=self.loader.is_ready,
            knowledge_base_size=self.loader.size,
            has_ml_model=self.backend.has_model,
            backend=self.backend.name,
            knowledge_source=self.loader.source,
        )
