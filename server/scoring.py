"""Visit confidence scoring and selection.

A cluster's confidence is a weighted multi-signal score:

    1. Pair-wise spatial confidence of consecutive pings (55%)
    2. GPS accuracy quality (25%)
    3. Ping count (20%)
    4. Motion distribution, applied as a multiplier that also picks visit_type

Selection then demotes clusters that are too brief to be a dwell and caps how
many medium/low visits are put in front of the user.
"""

import logging
from collections import Counter
from dataclasses import replace
from typing import Sequence

from processing import MAX_NON_HIGH_VISITS, MIN_DWELL_S, distance_m
from records import STATIONARY_MOTIONS, MotionSample, RawPing, Visit

logger = logging.getLogger(__name__)

SPATIAL_WEIGHT = 0.55
ACCURACY_WEIGHT = 0.25
PING_COUNT_WEIGHT = 0.20

SINGLE_PING_SPATIAL_SCORE = 0.33
NO_ACCURACY_FACTOR = 0.7

HIGH_THRESHOLD = 0.80
MEDIUM_THRESHOLD = 0.55

_PAIR_WEIGHTS = {"high": 3, "medium": 2, "low": 1}


def pair_confidence(dist: float, prev: MotionSample, curr: MotionSample) -> str:
    """Classify one consecutive-ping pair as high/medium/low."""
    favourable = prev.motion == curr.motion or (
        curr.motion in STATIONARY_MOTIONS and curr.confidence in ("medium", "high")
    )
    if favourable:
        if dist <= 25:
            return "high"
        if dist <= 50:
            return "medium"
        return "low"
    if dist <= 50:
        return "medium"
    return "low"


def spatial_score(pings: Sequence[RawPing]) -> float:
    if len(pings) < 2:
        return SINGLE_PING_SPATIAL_SCORE
    pairs = [
        pair_confidence(distance_m(prev.position, curr.position), prev.motion, curr.motion)
        for prev, curr in zip(pings, pings[1:])
    ]
    return sum(_PAIR_WEIGHTS[p] for p in pairs) / (3 * len(pairs))


def accuracy_factor(pings: Sequence[RawPing]) -> float:
    accuracies = [p.horizontal_accuracy_m for p in pings if p.horizontal_accuracy_m is not None]
    if not accuracies:
        return NO_ACCURACY_FACTOR
    mean = sum(accuracies) / len(accuracies)
    if mean <= 10:
        return 1.0
    if mean <= 30:
        return 0.9
    if mean <= 65:
        return 0.75
    return 0.5


def ping_count_factor(count: int) -> float:
    if count == 1:
        return 0.3
    if count <= 3:
        return 0.65
    if count <= 6:
        return 0.85
    return 1.0


def motion_modifier(pings: Sequence[RawPing]) -> tuple[float, str]:
    """Return (multiplier, visit_type) from the cluster's motion distribution."""
    counts = Counter(p.motion.motion for p in pings)
    total = len(pings)
    stationary = sum(counts[m] for m in STATIONARY_MOTIONS) / total
    if stationary >= 0.7:
        return 1.15, "confirmed_visit"
    if counts["automotive"] / total >= 0.5:
        return 0.6, "traffic_stop"
    return 1.0, "visit"


def cluster_score(pings: Sequence[RawPing]) -> tuple[float, str]:
    """Composite score in [0, 1] and the visit type for one cluster."""
    base = (
        spatial_score(pings) * SPATIAL_WEIGHT
        + accuracy_factor(pings) * ACCURACY_WEIGHT
        + ping_count_factor(len(pings)) * PING_COUNT_WEIGHT
    )
    multiplier, visit_type = motion_modifier(pings)
    return min(1.0, base * multiplier), visit_type


def score_cluster(pings: Sequence[RawPing]) -> tuple[str, str]:
    """Return (confidence, visit_type) for a cluster of pings."""
    score, visit_type = cluster_score(pings)
    if score >= HIGH_THRESHOLD:
        return "high", visit_type
    if score >= MEDIUM_THRESHOLD:
        return "medium", visit_type
    return "low", visit_type


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def apply_dwell_rule(visits: Sequence[Visit], thresholds: dict | None = None) -> list[Visit]:
    """Demote visits shorter than min_dwell_s to low-confidence brief stops."""
    min_dwell = (thresholds or {}).get("min_dwell_s", MIN_DWELL_S)
    return [
        replace(v, confidence="low", visit_type="brief_stop") if v.duration_s < min_dwell else v
        for v in visits
    ]


def select_visits(visits: Sequence[Visit], thresholds: dict | None = None) -> list[Visit]:
    """Apply the dwell rule, then keep every high visit and at most N medium/low ones.

    When medium and low together overflow the quota, one slot is reserved for
    each non-empty tier so both confidence levels stay represented; medium
    fills first and any excess is trimmed from low.
    """
    quota = int((thresholds or {}).get("max_non_high_visits", MAX_NON_HIGH_VISITS))
    visits = sorted(apply_dwell_rule(visits, thresholds), key=lambda v: v.started_at)

    high = [v for v in visits if v.confidence == "high"]
    medium = [v for v in visits if v.confidence == "medium"]
    low = [v for v in visits if v.confidence == "low"]

    if len(medium) + len(low) <= quota:
        non_high = medium + low
    else:
        reserved_low = 1 if low else 0
        reserved_medium = 1 if medium else 0
        medium_slots = min(len(medium), quota - reserved_low)
        low_slots = quota - medium_slots
        picked_medium = medium[:max(medium_slots, reserved_medium)]
        picked_low = low[:max(low_slots, reserved_low)]
        excess = len(picked_medium) + len(picked_low) - quota
        if excess > 0:
            picked_low = picked_low[:len(picked_low) - excess]
        non_high = picked_medium + picked_low

    if len(non_high) < len(medium) + len(low):
        logger.debug(
            "Selection dropped %d of %d medium/low visits",
            len(medium) + len(low) - len(non_high), len(medium) + len(low),
        )

    return sorted(high + non_high, key=lambda v: v.started_at)
