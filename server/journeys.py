"""Journey segmentation between anchor visits.

The gap between two consecutive anchor visits (confidence high or medium) is
split into one journey per run of the same active transport mode. Journeys are
built from the unsmoothed pings, since smoothing is tuned for dwell positions
and would blur real movement.
"""

import logging
from collections import Counter
from types import MappingProxyType
from typing import Sequence

from processing import distance_m
from records import (
    ACTIVE_MODES,
    ANCHOR_CONFIDENCES,
    CONFIDENCE_SCORES,
    Journey,
    RawPing,
    Visit,
    duration_seconds,
)

logger = logging.getLogger(__name__)

# Expected seconds between pings per mode (the client's adaptive reporting cadence)
EXPECTED_INTERVAL_S = MappingProxyType({
    "walking": 120,
    "running": 120,
    "cycling": 420,
    "automotive": 600,
})
DEFAULT_INTERVAL_S = 300

# Plausible average speed per mode, km/h
SPEED_RANGES_KMH = MappingProxyType({
    "walking": (0.0, 15.0),
    "running": (0.0, 25.0),
    "cycling": (0.0, 60.0),
    "automotive": (3.0, 200.0),
})

DOMINANCE_WEIGHT = 0.40
DENSITY_WEIGHT = 0.35
ANCHOR_WEIGHT = 0.25
IMPLAUSIBLE_SPEED_MULTIPLIER = 0.5

HIGH_THRESHOLD = 0.75
MEDIUM_THRESHOLD = 0.50


def journey_confidence(
    pings: Sequence[RawPing],
    primary_transport: str,
    proportions: dict[str, float],
    duration_s: int,
    from_visit: Visit,
    to_visit: Visit,
) -> str:
    """Score a journey segment as high/medium/low.

    Mode dominance (40%), ping density relative to the mode's expected
    cadence (35%) and the bounding visits' confidence (25%) are summed; an
    implausible average speed for the mode halves the result.
    """
    dominance = proportions.get(primary_transport, 0.0)
    if dominance >= 0.8:
        dominance_score = 1.0
    elif dominance >= 0.6:
        dominance_score = 0.75
    else:
        dominance_score = 0.5

    interval = EXPECTED_INTERVAL_S.get(primary_transport, DEFAULT_INTERVAL_S)
    expected = duration_s / interval if duration_s > 0 else 1
    density_score = min(1.0, len(pings) / max(1, expected))

    anchor_score = (
        CONFIDENCE_SCORES[from_visit.confidence] + CONFIDENCE_SCORES[to_visit.confidence]
    ) / 2

    score = (
        dominance_score * DOMINANCE_WEIGHT
        + density_score * DENSITY_WEIGHT
        + anchor_score * ANCHOR_WEIGHT
    )

    speed_range = SPEED_RANGES_KMH.get(primary_transport)
    if speed_range and duration_s > 0 and len(pings) >= 2:
        displacement = distance_m(pings[0].position, pings[-1].position)
        speed_kmh = (displacement / 1000) / (duration_s / 3600)
        low, high = speed_range
        if not low <= speed_kmh <= high:
            score *= IMPLAUSIBLE_SPEED_MULTIPLIER

    score = min(1.0, score)
    if score >= HIGH_THRESHOLD:
        return "high"
    if score >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def split_by_mode(pings: Sequence[RawPing]) -> list[list[RawPing]]:
    """Split gap pings into runs of one active transport mode.

    Still/unknown pings join whichever segment is open and are dropped
    before the first active ping.
    """
    segments = []
    current: list[RawPing] = []
    current_mode = None

    for ping in pings:
        motion = ping.motion.motion
        if motion in ACTIVE_MODES:
            if motion == current_mode:
                current.append(ping)
            else:
                if current:
                    segments.append(current)
                current = [ping]
                current_mode = motion
        elif current:
            current.append(ping)

    if current:
        segments.append(current)
    return segments


def build_journey(segment: Sequence[RawPing], from_visit: Visit, to_visit: Visit) -> Journey:
    counts = Counter(p.motion.motion for p in segment)
    total = len(segment)
    proportions = {m: round(c / total, 2) for m, c in counts.items()}

    primary = "unknown"
    best = 0
    for m, c in counts.items():
        if m in ACTIVE_MODES and c > best:
            primary, best = m, c

    first, last = segment[0], segment[-1]
    duration = duration_seconds(first.timestamp, last.timestamp)
    return Journey(
        id=first.id,
        member_ping_ids=tuple(p.id for p in segment),
        from_visit_id=from_visit.id,
        to_visit_id=to_visit.id,
        primary_transport=primary,
        transport_proportions=proportions,
        started_at=first.timestamp,
        ended_at=last.timestamp,
        duration_s=duration,
        ping_count=total,
        confidence=journey_confidence(segment, primary, proportions, duration, from_visit, to_visit),
    )


def segment_journeys(pings: Sequence[RawPing], visits: Sequence[Visit]) -> list[Journey]:
    """Build journeys for every gap between consecutive anchor visits."""
    anchors = sorted(
        (v for v in visits if v.confidence in ANCHOR_CONFIDENCES),
        key=lambda v: v.started_at,
    )

    journeys = []
    for from_visit, to_visit in zip(anchors, anchors[1:]):
        if to_visit.started_at <= from_visit.ended_at:
            continue
        gap = [
            p for p in pings
            if from_visit.ended_at < p.timestamp < to_visit.started_at
        ]
        for segment in split_by_mode(gap):
            journeys.append(build_journey(segment, from_visit, to_visit))

    return journeys
