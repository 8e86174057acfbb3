"""
Deterministic fallback assessment.

Used whenever the qualitative analysis service returns nothing usable:
the final score equals the base score and the verdict is picked by bucket.
"""

from marketwatch.domain.anomaly.entities import QualitativeAssessment
from marketwatch.domain.anomaly.risk_scoring import clamp_score

FALLBACK_SCENARIO = "Uncertain"
FALLBACK_COMMENT = "Monitor closely"

# (lower bound, verdict), checked from the top down.
_VERDICT_BUCKETS: tuple[tuple[int, str], ...] = (
    (85, "Critical risk detected. Likely manipulation or trap."),
    (70, "High risk detected. Proceed with extreme caution."),
    (40, "Moderate risk. Watch for confirmation before acting."),
    (0, "Low risk. Movement looks relatively healthy."),
)


def verdict_for(score: int) -> str:
    """Return the canned verdict for a score bucket."""
    for lower, verdict in _VERDICT_BUCKETS:
        if score >= lower:
            return verdict
    return _VERDICT_BUCKETS[-1][1]


def fallback_assessment(base_score: int) -> QualitativeAssessment:
    """Build the assessment used when Layer 3 yields nothing usable."""
    score = clamp_score(base_score)
    return QualitativeAssessment(
        final_risk_score=score,
        verdict=verdict_for(score),
        likely_scenario=FALLBACK_SCENARIO,
        short_comment=FALLBACK_COMMENT,
    )
