"""
Recommendation Generator
========================
Maps an urgency score onto static action, follow-up and home-care advice.
"""

from __future__ import annotations

from dataclasses import dataclass

# Always appended, whatever the band
HOME_CARE_ADVICE: tuple[str, ...] = (
    "Rest and adequate sleep",
    "Stay hydrated",
    "Maintain good nutrition",
    "Monitor temperature and symptoms",
)

# (minimum score, actions, follow-up), highest band first
RECOMMENDATION_BANDS: tuple[tuple[float, tuple[str, ...], str], ...] = (
    (
        8.0,
        ("Seek immediate medical attention", "Do not delay treatment"),
        "Emergency medical care required",
    ),
    (
        6.0,
        ("Consult doctor within 24 hours", "Monitor symptoms closely"),
        "Medical consultation recommended within 24 hours",
    ),
    (
        4.0,
        ("Consider doctor consultation if symptoms persist", "Monitor for worsening symptoms"),
        "If symptoms persist for 2-3 days, consult doctor",
    ),
    (
        float("-inf"),
        ("Monitor symptoms", "Rest and supportive care"),
        "Consult doctor if symptoms worsen or persist beyond a week",
    ),
)


@dataclass(frozen=True)
class Recommendation:
    actions: tuple[str, ...]
    home_care: tuple[str, ...]
    follow_up: str


class RecommendationGenerator:
    """Selects advice for an urgency score."""

    def generate(self, urgency_score: float) -> Recommendation:
        for minimum, actions, follow_up in RECOMMENDATION_BANDS:
            if urgency_score >= minimum:
                return Recommendation(actions, HOME_CARE_ADVICE, follow_up)
        # Unreachable: the last band has no lower bound.
        raise ValueError(f"no recommendation band for score {urgency_score!r}")
