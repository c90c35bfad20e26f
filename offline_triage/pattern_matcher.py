"""
Condition Pattern Matcher
=========================
Scores reported symptoms against every condition pattern in the knowledge
base. The score divides by the full required-symptom set, not by the
matched subset, so a partial match is penalised:

    match = sum(severity / 10 for matched symptoms) / len(required symptoms)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from offline_triage.knowledge_base import ConditionPattern, KnowledgeBase
from offline_triage.models import ConditionCandidate, SymptomObservation

logger = logging.getLogger(__name__)

MATCH_PRECISION = 4


@dataclass(frozen=True)
class ScoredCondition:
    """A condition pattern with its current confidence."""

    pattern: ConditionPattern
    confidence: float

    @property
    def categories(self) -> frozenset[str]:
        return self.pattern.categories

    def to_candidate(self) -> ConditionCandidate:
        return ConditionCandidate(
            condition=self.pattern.name,
            confidence=self.confidence,
            icd_code=self.pattern.icd_code,
            description=self.pattern.description,
        )


def sort_by_confidence(scored: Sequence[ScoredCondition]) -> tuple[ScoredCondition, ...]:
    # sorted() is stable: ties keep catalog order
    return tuple(sorted(scored, key=lambda s: s.confidence, reverse=True))


class ConditionPatternMatcher:
    """Matches symptom sets to known condition patterns."""

    def match_score(
        self,
        symptoms_by_code: Mapping[str, SymptomObservation],
        pattern: ConditionPattern,
    ) -> float:
        if not pattern.symptoms:
            return 0.0
        matched = sum(
            symptoms_by_code[code].weight
            for code in pattern.symptoms
            if code in symptoms_by_code
        )
        return round(matched / len(pattern.symptoms), MATCH_PRECISION)

    def match(
        self,
        symptoms: Sequence[SymptomObservation],
        knowledge_base: KnowledgeBase,
    ) -> tuple[ScoredCondition, ...]:
        """Score every pattern and keep those above their own threshold.

        Args:
            symptoms: Normalized observations.
            knowledge_base: Source of condition patterns.

        Returns:
            Matching conditions, highest confidence first.
        """
        symptoms_by_code = {symptom.code: symptom for symptom in symptoms}
        scored = []
        for pattern in knowledge_base.conditions:
            score = self.match_score(symptoms_by_code, pattern)
            if score > pattern.threshold:
                scored.append(ScoredCondition(pattern=pattern, confidence=min(score, 1.0)))

        logger.debug(
            "Pattern match: %d of %d condition(s) above threshold.",
            len(scored),
            len(knowledge_base.conditions),
        )
        return sort_by_confidence(scored)
