"""
Knowledge Base Module
=====================
Symptom catalog, condition patterns and care protocols used by the triage
engine. An external knowledge source is loaded once per engine; when it is
missing, slow, broken or incomplete, the embedded baseline catalog fills
the gaps so the engine is never without data.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from offline_triage.config import DEFAULT_KB_LOAD_TIMEOUT

logger = logging.getLogger(__name__)

SECTION_SYMPTOMS = "symptoms"
SECTION_CONDITIONS = "conditions"
SECTION_PROTOCOLS = "protocols"

SOURCE_BASELINE = "baseline"
SOURCE_EXTERNAL = "external"
SOURCE_MIXED = "external+baseline"

# Inclusion thresholds are tuned per condition, not derived from each other.
THRESHOLD_BROAD = 0.3
THRESHOLD_STRICT = 0.4
DEFAULT_INCLUSION_THRESHOLD = THRESHOLD_BROAD

# Condition categories used by the adjusters
CATEGORY_CARDIOVASCULAR = "cardiovascular"
CATEGORY_HYPERTENSION = "hypertension"
CATEGORY_INFECTION = "infection"
CATEGORY_VIRAL_RESPIRATORY = "viral_respiratory"
CATEGORY_LOWER_RESPIRATORY = "lower_respiratory"
CATEGORY_GASTROINTESTINAL = "gastrointestinal"
CATEGORY_URINARY = "urinary"
CATEGORY_NEUROLOGICAL = "neurological"
CATEGORY_METABOLIC = "metabolic"


class KnowledgeBaseError(Exception):
    """Raised when a knowledge source yields unusable data."""


def canonical_code(raw: str) -> str:
    """Lower-case a symptom code and join its words with underscores."""
    return "_".join(raw.strip().lower().replace("-", " ").split())


@dataclass(frozen=True)
class SymptomEntry:
    code: str
    name: str
    severity_level: int = 5
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConditionPattern:
    """A named condition and the symptom codes that characterise it.

    Attributes:
        code: Stable identifier.
        name: Display name returned to the patient.
        symptoms: Required symptom codes. Unmatched ones still count
            toward the denominator of the match score.
        threshold: The match score must be strictly above this value.
        icd_code: ICD-10 code, when known.
        description: One-line explanation.
        categories: Tags the adjusters key on.
    """

    code: str
    name: str
    symptoms: tuple[str, ...]
    threshold: float = DEFAULT_INCLUSION_THRESHOLD
    icd_code: Optional[str] = None
    description: str = ""
    categories: frozenset[str] = frozenset()


@dataclass(frozen=True)
class CareProtocol:
    code: str
    title: str
    steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class KnowledgeBase:
    """Read-only catalog shared by every analysis of one engine."""

    symptoms: tuple[SymptomEntry, ...]
    conditions: tuple[ConditionPattern, ...]
    protocols: tuple[CareProtocol, ...] = ()
    source: str = SOURCE_BASELINE

    @property
    def size(self) -> int:
        return len(self.symptoms) + len(self.conditions) + len(self.protocols)

    @cached_property
    def _code_index(self) -> dict[str, SymptomEntry]:
        index: dict[str, SymptomEntry] = {}
        for entry in self.symptoms:
            index[entry.code] = entry
            for alias in entry.aliases:
                index.setdefault(canonical_code(alias), entry)
        return index

    def lookup_symptom(self, code: str) -> Optional[SymptomEntry]:
        """Find a catalog entry by canonical code or alias."""
        return self._code_index.get(canonical_code(code))


# ---------------------------------------------------------------------------
# Embedded baseline catalog
# ---------------------------------------------------------------------------

_BASELINE_SYMPTOMS: tuple[SymptomEntry, ...] = (
    SymptomEntry("fever", "Fever", 5, ("high_temperature", "pyrexia")),
    SymptomEntry("headache", "Headache", 3),
    SymptomEntry("chest_pain", "Chest Pain", 9),
    SymptomEntry("difficulty_breathing", "Difficulty Breathing", 9, ("breathlessness", "trouble_breathing")),
    SymptomEntry("nausea", "Nausea", 3),
    SymptomEntry("fatigue", "Fatigue", 2, ("tiredness", "weakness")),
    SymptomEntry("cough", "Cough", 3),
    SymptomEntry("sore_throat", "Sore Throat", 3, ("throat_pain",)),
    SymptomEntry("runny_nose", "Runny Nose", 2, ("rhinorrhea",)),
    SymptomEntry("abdominal_pain", "Abdominal Pain", 4, ("stomach_pain", "stomach_ache")),
    SymptomEntry("lower_abdominal_pain", "Lower Abdominal Pain", 4),
    SymptomEntry("dizziness", "Dizziness", 4, ("lightheadedness",)),
    SymptomEntry("vomiting", "Vomiting", 4),
    SymptomEntry("diarrhea", "Diarrhea", 4, ("diarrhoea", "loose_stools")),
    SymptomEntry("muscle_ache", "Muscle Ache", 3, ("myalgia", "body_ache")),
    SymptomEntry("joint_pain", "Joint Pain", 3),
    SymptomEntry("rash", "Rash", 3),
    SymptomEntry("swelling", "Swelling", 3),
    SymptomEntry("palpitations", "Palpitations", 5),
    SymptomEntry("shortness_of_breath", "Shortness of Breath", 6),
    SymptomEntry("confusion", "Confusion", 7),
    SymptomEntry("loss_of_appetite", "Loss of Appetite", 2),
    SymptomEntry("weight_loss", "Weight Loss", 3),
    SymptomEntry("night_sweats", "Night Sweats", 3),
    SymptomEntry("chills", "Chills", 3),
    SymptomEntry("light_sensitivity", "Light Sensitivity", 3, ("photophobia",)),
    SymptomEntry("chest_congestion", "Chest Congestion", 3),
    SymptomEntry("burning_urination", "Burning Urination", 4, ("dysuria",)),
    SymptomEntry("frequent_urination", "Frequent Urination", 3),
    SymptomEntry("dry_mouth", "Dry Mouth", 2),
    SymptomEntry("dark_urine", "Dark Urine", 3),
    SymptomEntry("severe_bleeding", "Severe Bleeding", 10, ("heavy_bleeding", "hemorrhage")),
    SymptomEntry("unconsciousness", "Unconsciousness", 10, ("unconscious", "unresponsive")),
    SymptomEntry("severe_headache", "Severe Headache", 8, ("thunderclap_headache",)),
    SymptomEntry("stroke_symptoms", "Stroke Symptoms", 10, ("facial_droop", "slurred_speech")),
    SymptomEntry("severe_abdominal_pain", "Severe Abdominal Pain", 8),
)

_BASELINE_CONDITIONS: tuple[ConditionPattern, ...] = (
    ConditionPattern(
        code="common_cold",
        name="Common Cold",
        symptoms=("cough", "sore_throat", "runny_nose", "headache", "fatigue"),
        threshold=THRESHOLD_BROAD,
        icd_code="J00",
        description="Viral upper respiratory tract infection",
        categories=frozenset({CATEGORY_INFECTION, CATEGORY_VIRAL_RESPIRATORY}),
    ),
    ConditionPattern(
        code="upper_respiratory_infection",
        name="Upper Respiratory Infection (Common Cold)",
        symptoms=("sore_throat", "cough"),
        threshold=THRESHOLD_BROAD,
        icd_code="J06.9",
        description="Viral infection of the throat and upper airways",
        categories=frozenset({CATEGORY_INFECTION, CATEGORY_VIRAL_RESPIRATORY}),
    ),
    ConditionPattern(
        code="influenza",
        name="Influenza",
        symptoms=("fever", "muscle_ache", "fatigue", "headache", "cough"),
        threshold=THRESHOLD_STRICT,
        icd_code="J11.1",
        description="Viral infection with systemic symptoms",
        categories=frozenset({CATEGORY_INFECTION, CATEGORY_VIRAL_RESPIRATORY}),
    ),
    ConditionPattern(
        code="gastroenteritis",
        name="Gastroenteritis",
        symptoms=("nausea", "vomiting", "diarrhea", "abdominal_pain"),
        threshold=THRESHOLD_STRICT,
        icd_code="A09",
        description="Inflammation of stomach and intestines",
        categories=frozenset({CATEGORY_INFECTION, CATEGORY_GASTROINTESTINAL}),
    ),
    ConditionPattern(
        code="hypertension",
        name="Hypertension",
        symptoms=("headache", "dizziness", "fatigue", "palpitations"),
        threshold=THRESHOLD_BROAD,
        icd_code="I10",
        description="High blood pressure",
        categories=frozenset({CATEGORY_CARDIOVASCULAR, CATEGORY_HYPERTENSION}),
    ),
    ConditionPattern(
        code="migraine",
        name="Migraine",
        symptoms=("headache", "nausea", "light_sensitivity"),
        threshold=THRESHOLD_STRICT,
        icd_code="G43.909",
        description="Recurrent moderate to severe headache, often one-sided",
        categories=frozenset({CATEGORY_NEUROLOGICAL}),
    ),
    ConditionPattern(
        code="acute_bronchitis",
        name="Acute Bronchitis",
        symptoms=("cough", "chest_congestion", "fatigue", "shortness_of_breath"),
        threshold=THRESHOLD_STRICT,
        icd_code="J20.9",
        description="Inflammation of the airways in the lungs",
        categories=frozenset({CATEGORY_INFECTION, CATEGORY_LOWER_RESPIRATORY}),
    ),
    ConditionPattern(
        code="urinary_tract_infection",
        name="Urinary Tract Infection",
        symptoms=("burning_urination", "frequent_urination", "lower_abdominal_pain"),
        threshold=THRESHOLD_STRICT,
        icd_code="N39.0",
        description="Bacterial infection of the bladder or urethra",
        categories=frozenset({CATEGORY_INFECTION, CATEGORY_URINARY}),
    ),
    ConditionPattern(
        code="dehydration",
        name="Dehydration",
        symptoms=("dry_mouth", "dizziness", "fatigue", "dark_urine"),
        threshold=THRESHOLD_BROAD,
        icd_code="E86.0",
        description="Loss of body fluids faster than they are replaced",
        categories=frozenset({CATEGORY_METABOLIC}),
    ),
)


def baseline_knowledge_base() -> KnowledgeBase:
    """Return the embedded catalog bundled with the engine."""
    return KnowledgeBase(
        symptoms=_BASELINE_SYMPTOMS,
        conditions=_BASELINE_CONDITIONS,
        protocols=(),
        source=SOURCE_BASELINE,
    )


# ---------------------------------------------------------------------------
# Parsing raw knowledge records
# ---------------------------------------------------------------------------

def _parse_symptom(raw: Mapping[str, Any]) -> SymptomEntry:
    code = canonical_code(str(raw["code"]))
    if not code:
        raise KnowledgeBaseError("symptom without code")
    return SymptomEntry(
        code=code,
        name=str(raw.get("name") or code.replace("_", " ").title()),
        severity_level=int(raw.get("severity_level", 5)),
        aliases=tuple(str(a) for a in raw.get("aliases", ())),
    )


def _parse_condition(raw: Mapping[str, Any]) -> ConditionPattern:
    symptoms = tuple(canonical_code(str(s)) for s in raw["symptoms"])
    if not symptoms:
        raise KnowledgeBaseError(f"condition {raw.get('code')!r} has no symptoms")
    return ConditionPattern(
        code=canonical_code(str(raw["code"])),
        name=str(raw.get("name") or raw["code"]),
        symptoms=symptoms,
        threshold=float(raw.get("threshold", DEFAULT_INCLUSION_THRESHOLD)),
        icd_code=raw.get("icd_code"),
        description=str(raw.get("description", "")),
        categories=frozenset(str(c) for c in raw.get("categories", ())),
    )


def _parse_protocol(raw: Mapping[str, Any]) -> CareProtocol:
    return CareProtocol(
        code=canonical_code(str(raw["code"])),
        title=str(raw.get("title", "")),
        steps=tuple(str(s) for s in raw.get("steps", ())),
    )


def _parse_section(name: str, records: Any, parser) -> tuple:
    if not isinstance(records, (list, tuple)):
        return ()
    parsed = []
    for record in records:
        try:
            parsed.append(parser(record))
        except (KeyError, TypeError, ValueError, KnowledgeBaseError) as exc:
            logger.warning("Skipping malformed %s entry: %s", name, exc)
    return tuple(parsed)


def build_knowledge_base(raw: Mapping[str, Any]) -> KnowledgeBase:
    """Turn raw knowledge records into a KnowledgeBase.

    Each section that is missing, empty or entirely malformed is taken
    from the baseline catalog instead.

    Args:
        raw: Mapping with "symptoms", "conditions" and "protocols" lists.

    Returns:
        A complete KnowledgeBase.

    Raises:
        KnowledgeBaseError: If raw is not a mapping.
    """
    if not isinstance(raw, Mapping):
        raise KnowledgeBaseError(f"expected a mapping, got {type(raw).__name__}")

    baseline = baseline_knowledge_base()
    symptoms = _parse_section(SECTION_SYMPTOMS, raw.get(SECTION_SYMPTOMS), _parse_symptom)
    conditions = _parse_section(SECTION_CONDITIONS, raw.get(SECTION_CONDITIONS), _parse_condition)
    protocols = _parse_section(SECTION_PROTOCOLS, raw.get(SECTION_PROTOCOLS), _parse_protocol)

    substituted = []
    if not symptoms:
        symptoms = baseline.symptoms
        substituted.append(SECTION_SYMPTOMS)
    if not conditions:
        conditions = baseline.conditions
        substituted.append(SECTION_CONDITIONS)
    # Protocols are optional; the baseline ships none.

    if substituted:
        logger.warning("Knowledge source incomplete, baseline used for: %s", ", ".join(substituted))
        if len(substituted) == 2:
            source = SOURCE_BASELINE
        else:
            source = SOURCE_MIXED
    else:
        source = SOURCE_EXTERNAL

    return KnowledgeBase(
        symptoms=symptoms,
        conditions=conditions,
        protocols=protocols,
        source=source,
    )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class KnowledgeBaseProvider(Protocol):
    """A read-only knowledge store."""

    async def fetch(self) -> Mapping[str, Any]:
        ...


class JsonKnowledgeBaseProvider:
    """Reads the knowledge catalog from a local JSON file.

    Attributes:
        path: Location of the JSON file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def fetch(self) -> Mapping[str, Any]:
        text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        return json.loads(text)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

class KnowledgeBaseLoader:
    """Loads the knowledge base exactly once.

    The first caller performs the load. Callers arriving while it is in
    flight await the same future. Once loaded, the KnowledgeBase is
    returned as-is on every call.

    Attributes:
        provider: External knowledge source, or None for baseline only.
        timeout: Seconds to wait for the provider.
    """

    def __init__(
        self,
        provider: Optional[KnowledgeBaseProvider] = None,
        timeout: float = DEFAULT_KB_LOAD_TIMEOUT,
    ) -> None:
        self.provider = provider
        self.timeout = timeout
        self._knowledge_base: Optional[KnowledgeBase] = None
        self._inflight: Optional[asyncio.Future] = None
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._knowledge_base is not None

    @property
    def size(self) -> int:
        return self._knowledge_base.size if self._knowledge_base else 0

    @property
    def source(self) -> Optional[str]:
        return self._knowledge_base.source if self._knowledge_base else None

    @property
    def knowledge_base(self) -> Optional[KnowledgeBase]:
        return self._knowledge_base

    async def load(self) -> KnowledgeBase:
        """Return the knowledge base, loading it on first use.

        Never raises: every failure path ends in the baseline catalog.
        """
        if self._knowledge_base is not None:
            return self._knowledge_base

        async with self._lock:
            if self._knowledge_base is not None:
                return self._knowledge_base
            if self._inflight is not None and self._inflight.done():
                # Finished without a knowledge base: the load was cancelled.
                logger.warning("Previous knowledge base load was cancelled, retrying.")
                self._inflight = None
            if self._inflight is None:
                logger.info("Loading medical knowledge base...")
                self._inflight = asyncio.ensure_future(self._load())
            inflight = self._inflight

        # Shielded so one cancelled caller does not cancel the shared load.
        return await asyncio.shield(inflight)

    async def _load(self) -> KnowledgeBase:
        knowledge_base = await self._fetch_or_baseline()
        self._knowledge_base = knowledge_base
        logger.info(
            "Knowledge base ready: %d entries (source=%s).",
            knowledge_base.size,
            knowledge_base.source,
        )
        return knowledge_base

    async def _fetch_or_baseline(self) -> KnowledgeBase:
        if self.provider is None:
            logger.info("No knowledge source configured. Using baseline catalog.")
            return baseline_knowledge_base()

        try:
            raw = await asyncio.wait_for(self.provider.fetch(), timeout=self.timeout)
            return build_knowledge_base(raw)
        except asyncio.TimeoutError:
            logger.warning(
                "Knowledge source timed out after %.1fs. Using baseline catalog.",
                self.timeout,
            )
        except Exception as exc:
            logger.warning("Failed to load knowledge source, using baseline: %s", exc)
        return baseline_knowledge_base()
