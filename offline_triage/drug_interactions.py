"""
Drug Interaction Checker
========================
Looks up known interactions between medicines a patient is taking. Runs
independently of triage analysis.

A rule fires when every drug in it appears, case-insensitively, as a
substring of some medicine in the input ("Aspirin 81mg" matches "aspirin").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from offline_triage.models import DrugInteractionFinding, InteractionSeverity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionRule:
    drugs: tuple[str, ...]
    severity: InteractionSeverity
    description: str
    mechanism: str
    management: str

    def to_finding(self) -> DrugInteractionFinding:
        return DrugInteractionFinding(
            severity=self.severity,
            description=self.description,
            mechanism=self.mechanism,
            management=self.management,
            drugs=list(self.drugs),
        )


# Drug names must be lowercase
INTERACTION_RULES: tuple[InteractionRule, ...] = (
    InteractionRule(
        ("warfarin", "aspirin"),
        InteractionSeverity.MAJOR,
        "Increased bleeding risk",
        "Additive anticoagulant effects",
        "Monitor INR closely, consider dose adjustment",
    ),
    InteractionRule(
        ("warfarin", "ibuprofen"),
        InteractionSeverity.MAJOR,
        "Increased bleeding risk",
        "NSAID antiplatelet effect and gastric irritation on top of anticoagulation",
        "Avoid combination; prefer paracetamol for pain relief",
    ),
    InteractionRule(
        ("sildenafil", "nitroglycerin"),
        InteractionSeverity.MAJOR,
        "Risk of severe hypotension",
        "Both drugs increase nitric oxide mediated vasodilation",
        "Contraindicated; do not take within 24 hours of each other",
    ),
    InteractionRule(
        ("fluoxetine", "phenelzine"),
        InteractionSeverity.MAJOR,
        "Risk of serotonin syndrome",
        "SSRI combined with MAO inhibitor raises serotonin levels",
        "Contraindicated; allow a washout period between the two",
    ),
    InteractionRule(
        ("metformin", "alcohol"),
        InteractionSeverity.MODERATE,
        "Increased risk of lactic acidosis",
        "Alcohol interferes with lactate metabolism",
        "Limit alcohol consumption, monitor lactate levels",
    ),
    InteractionRule(
        ("lisinopril", "potassium"),
        InteractionSeverity.MODERATE,
        "Risk of hyperkalemia",
        "ACE inhibitors reduce potassium excretion",
        "Monitor serum potassium; avoid routine supplements",
    ),
    InteractionRule(
        ("simvastatin", "amiodarone"),
        InteractionSeverity.MODERATE,
        "Increased risk of myopathy",
        "Amiodarone inhibits simvastatin metabolism (CYP3A4)",
        "Limit simvastatin to 20mg daily; report muscle pain",
    ),
    InteractionRule(
        ("clopidogrel", "omeprazole"),
        InteractionSeverity.MODERATE,
        "Reduced efficacy of clopidogrel",
        "Omeprazole inhibits CYP2C19 activation of clopidogrel",
        "Prefer pantoprazole if acid suppression is needed",
    ),
    InteractionRule(
        ("digoxin", "verapamil"),
        InteractionSeverity.MODERATE,
        "Increased digoxin levels",
        "Verapamil reduces renal clearance of digoxin",
        "Reduce digoxin dose and monitor levels and heart rate",
    ),
    InteractionRule(
        ("cetirizine", "alcohol"),
        InteractionSeverity.MINOR,
        "Increased drowsiness",
        "Additive central nervous system depression",
        "Avoid alcohol or driving after taking the medicine",
    ),
)


class DrugInteractionChecker:
    """Checks a medicine list against a fixed interaction table.

    Attributes:
        rules: Interaction rules, checked in order.
    """

    def __init__(self, rules: Iterable[InteractionRule] = INTERACTION_RULES) -> None:
        self.rules = tuple(rules)

    @staticmethod
    def _is_match(rule_drug: str, medicine: str) -> bool:
        """Check if rule_drug is in medicine (e.g. 'aspirin' in 'aspirin 81mg')."""
        return rule_drug in medicine

    def check(self, medicines: Iterable[Any]) -> list[DrugInteractionFinding]:
        """Return every rule whose drugs all appear in `medicines`.

        Args:
            medicines: Medicine names as entered by the user.

        Returns:
            Findings in rule order; empty when nothing interacts.
        """
        if isinstance(medicines, str):
            # A single free-text entry such as "warfarin, aspirin"
            medicines = [medicines]
        normalized = [m.strip().lower() for m in medicines if isinstance(m, str) and m.strip()]
        if not normalized:
            return []

        findings = [
            rule.to_finding()
            for rule in self.rules
            if all(
                any(self._is_match(drug, medicine) for medicine in normalized)
                for drug in rule.drugs
            )
        ]
        if findings:
            logger.info(
                "Found %d interaction(s) among %d medicine(s).",
                len(findings),
                len(normalized),
            )
        return findings

    def summarize(self, medicines: Iterable[Any]) -> dict:
        """Summary of interactions for the API response."""
        findings = self.check(medicines)
        if not findings:
            return {"found": False, "count": 0, "interactions": []}
        return {
            "found": True,
            "count": len(findings),
            "interactions": [finding.model_dump(mode="json") for finding in findings],
        }
