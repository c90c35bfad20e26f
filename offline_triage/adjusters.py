"""
Confidence Adjusters
====================
Pure pipeline stages that rescale candidate confidence from patient
context. Each stage returns new records and never mutates its input. The
stages run in a fixed order (age, gender, vitals), and every single
multiplication is clamped to 1.0 so an early boost cannot overflow and
mask a later one.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from offline_triage.knowledge_base import (
    CATEGORY_CARDIOVASCULAR,
    CATEGORY_HYPERTENSION,
    CATEGORY_INFECTION,
    CATEGORY_LOWER_RESPIRATORY,
    CATEGORY_URINARY,
    CATEGORY_VIRAL_RESPIRATORY,
)
from offline_triage.models import VitalSigns
from offline_triage.pattern_matcher import MATCH_PRECISION, ScoredCondition, sort_by_confidence

MAX_CONFIDENCE = 1.0


@dataclass(frozen=True)
class PatientContext:
    age: Optional[float] = None
    gender: Optional[str] = None
    vitals: Optional[VitalSigns] = None


@dataclass(frozen=True)
class AdjustmentRule:
    """Multiply conditions in `category` by `factor` when `applies` holds."""

    name: str
    category: str
    factor: float
    applies: Callable[[PatientContext], bool]


def apply_factor(scored: ScoredCondition, factor: float) -> ScoredCondition:
    confidence = min(scored.confidence * factor, MAX_CONFIDENCE)
    return replace(scored, confidence=round(confidence, MATCH_PRECISION))


def apply_rules(
    scored: Sequence[ScoredCondition],
    rules: Sequence[AdjustmentRule],
    context: PatientContext,
) -> tuple[ScoredCondition, ...]:
    adjusted = tuple(scored)
    for rule in rules:
        if not rule.applies(context):
            continue
        adjusted = tuple(
            apply_factor(s, rule.factor) if rule.category in s.categories else s
            for s in adjusted
        )
    return adjusted


def _vital(context: PatientContext, field: str) -> Optional[float]:
    if context.vitals is None:
        return None
    return getattr(context.vitals, field)


AGE_RULES: tuple[AdjustmentRule, ...] = (
    AdjustmentRule(
        "elderly_cardiovascular",
        CATEGORY_CARDIOVASCULAR,
        1.2,
        lambda c: c.age is not None and c.age > 65,
    ),
    AdjustmentRule(
        "child_viral_respiratory",
        CATEGORY_VIRAL_RESPIRATORY,
        1.1,
        lambda c: c.age is not None and c.age < 18,
    ),
)

GENDER_RULES: tuple[AdjustmentRule, ...] = (
    AdjustmentRule(
        "female_urinary",
        CATEGORY_URINARY,
        1.2,
        lambda c: c.gender == "female",
    ),
    AdjustmentRule(
        "male_over_45_cardiovascular",
        CATEGORY_CARDIOVASCULAR,
        1.1,
        lambda c: c.gender == "male" and c.age is not None and c.age >= 45,
    ),
)

VITAL_RULES: tuple[AdjustmentRule, ...] = (
    AdjustmentRule(
        "fever_infection",
        CATEGORY_INFECTION,
        1.3,
        lambda c: (_vital(c, "temperature_c") or 0) > 38,
    ),
    AdjustmentRule(
        "raised_systolic_hypertension",
        CATEGORY_HYPERTENSION,
        1.4,
        lambda c: (_vital(c, "systolic") or 0) > 140,
    ),
    AdjustmentRule(
        "tachypnea_lower_respiratory",
        CATEGORY_LOWER_RESPIRATORY,
        1.2,
        lambda c: (_vital(c, "respiratory_rate") or 0) > 20,
    ),
)


def adjust_for_age(
    scored: Sequence[ScoredCondition], context: PatientContext
) -> tuple[ScoredCondition, ...]:
    return apply_rules(scored, AGE_RULES, context)


def adjust_for_gender(
    scored: Sequence[ScoredCondition], context: PatientContext
) -> tuple[ScoredCondition, ...]:
    return apply_rules(scored, GENDER_RULES, context)


def adjust_for_vitals(
    scored: Sequence[ScoredCondition], context: PatientContext
) -> tuple[ScoredCondition, ...]:
    return apply_rules(scored, VITAL_RULES, context)


ADJUSTMENT_PIPELINE = (adjust_for_age, adjust_for_gender, adjust_for_vitals)


def run_adjusters(
    scored: Sequence[ScoredCondition], context: PatientContext
) -> tuple[ScoredCondition, ...]:
    """Run every adjuster in order and re-sort the result."""
    adjusted = tuple(scored)
    for stage in ADJUSTMENT_PIPELINE:
        adjusted = stage(adjusted, context)
    return sort_by_confidence(adjusted)
