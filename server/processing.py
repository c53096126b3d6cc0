"""Ping processing engine: accuracy filtering, smoothing, distance, visit clustering.

Processing pipeline (runs once per device-day when a diary is requested):
1. Drop pings whose GPS accuracy is worse than the ceiling
2. Smooth Cartesian offsets with a 3-point moving median
3. Greedily cluster consecutive pings within ~75m of a running centroid
4. Summarise each cluster as a visit candidate (scored in scoring.py)
"""

import logging
import math
import statistics
from collections import Counter
from dataclasses import replace
from typing import Hashable, Sequence, TypeVar

from sqlalchemy.orm import Session

from models import Config
from records import (
    CartesianPosition,
    PolarPosition,
    Position,
    RawPing,
    Visit,
    duration_seconds,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Hashable)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Ping filter
MAX_HORIZONTAL_ACCURACY_M = 100.0  # discard pings with accuracy worse than this
SMOOTHING_WINDOW = 3

# Clustering
CLUSTER_RADIUS_M = 75.0            # max distance from centroid to stay in a cluster

# Selection
MIN_DWELL_S = 300                  # 5 minutes
MAX_NON_HIGH_VISITS = 10

# Synthetic injection
SYNTHETIC_MIN_SLOT_S = 600
SYNTHETIC_DAY_START_HOUR = 7
SYNTHETIC_DAY_END_HOUR = 22
SYNTHETIC_INJECTION_ENABLED = 1


def get_thresholds(db: Session) -> dict:
    """Read algorithm thresholds from the Config table, falling back to module defaults."""
    defaults = {
        "max_horizontal_accuracy_m": MAX_HORIZONTAL_ACCURACY_M,
        "cluster_radius_m": CLUSTER_RADIUS_M,
        "min_dwell_s": MIN_DWELL_S,
        "max_non_high_visits": MAX_NON_HIGH_VISITS,
        "synthetic_min_slot_s": SYNTHETIC_MIN_SLOT_S,
        "synthetic_day_start_hour": SYNTHETIC_DAY_START_HOUR,
        "synthetic_day_end_hour": SYNTHETIC_DAY_END_HOUR,
        "synthetic_injection_enabled": SYNTHETIC_INJECTION_ENABLED,
    }
    rows = db.query(Config).filter(Config.key.in_(defaults.keys())).all()
    for row in rows:
        defaults[row.key] = float(row.value)
    return defaults


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def distance_m(a: Position, b: Position) -> float:
    """Distance in metres between two offsets from the same home origin.

    Euclidean on Cartesian offsets when both sides have them, otherwise the
    law of cosines on the polar forms (legacy pings).
    """
    if isinstance(a, CartesianPosition) and isinstance(b, CartesianPosition):
        return math.hypot(a.x_m - b.x_m, a.y_m - b.y_m)
    dtheta = math.radians(b.bearing_deg - a.bearing_deg)
    d2 = (
        a.distance_m ** 2 + b.distance_m ** 2
        - 2 * a.distance_m * b.distance_m * math.cos(dtheta)
    )
    return math.sqrt(max(0.0, d2))  # fp can leave a tiny negative


def centroid(positions: Sequence[Position]) -> Position:
    """Average position. Cartesian when every input is Cartesian, else via polar round-trip."""
    n = len(positions)
    if all(isinstance(p, CartesianPosition) for p in positions):
        return CartesianPosition(
            x_m=sum(p.x_m for p in positions) / n,
            y_m=sum(p.y_m for p in positions) / n,
        )

    sx = sy = 0.0
    for p in positions:
        b = math.radians(p.bearing_deg)
        sx += p.distance_m * math.sin(b)
        sy += p.distance_m * math.cos(b)
    cx, cy = sx / n, sy / n
    return PolarPosition(
        distance_m=math.hypot(cx, cy),
        bearing_deg=(math.degrees(math.atan2(cx, cy)) + 360.0) % 360.0,
    )


def mode(values: Sequence[T]) -> T:
    """Most common value; ties go to whichever appears first."""
    counts = Counter(values)
    return max(values, key=counts.__getitem__)


# ---------------------------------------------------------------------------
# Step 1: Accuracy filter
# ---------------------------------------------------------------------------

def filter_by_accuracy(pings: Sequence[RawPing], thresholds: dict | None = None) -> list[RawPing]:
    """Drop pings whose horizontal accuracy is worse than the ceiling.

    Pings with no accuracy reading are kept.
    """
    max_acc = (thresholds or {}).get("max_horizontal_accuracy_m", MAX_HORIZONTAL_ACCURACY_M)
    return [
        p for p in pings
        if p.horizontal_accuracy_m is None or p.horizontal_accuracy_m <= max_acc
    ]


# ---------------------------------------------------------------------------
# Step 2: Smoothing
# ---------------------------------------------------------------------------

def smooth_pings(pings: Sequence[RawPing]) -> list[RawPing]:
    """Moving-median filter over the Cartesian offsets of a ping sequence.

    Suppresses single-sample GPS jitter that would otherwise split one dwell
    into several clusters. Polar-only pings pass through untouched and do not
    contribute to their neighbours' medians. Returns new objects.
    """
    if len(pings) < SMOOTHING_WINDOW:
        return list(pings)

    half = SMOOTHING_WINDOW // 2
    smoothed = []
    for i, ping in enumerate(pings):
        if not isinstance(ping.position, CartesianPosition):
            smoothed.append(ping)
            continue

        start = max(0, i - half)
        end = min(len(pings), start + SMOOTHING_WINDOW)
        window = [
            p.position for p in pings[start:end]
            if isinstance(p.position, CartesianPosition)
        ]
        if len(window) < 2:
            smoothed.append(ping)
            continue

        smoothed.append(replace(ping, position=CartesianPosition(
            x_m=statistics.median(p.x_m for p in window),
            y_m=statistics.median(p.y_m for p in window),
        )))
    return smoothed


# ---------------------------------------------------------------------------
# Step 3: Clustering
# ---------------------------------------------------------------------------

def cluster_pings(pings: Sequence[RawPing], thresholds: dict | None = None) -> list[list[RawPing]]:
    """Split a chronological ping sequence into spatial clusters.

    Algorithm:
    - Walk through pings in order, keeping a running cluster and its centroid.
    - If the next ping is within cluster_radius_m of the centroid, add it and
      recompute the centroid. Members are never evicted when it moves.
    - Otherwise close the cluster and seed a new one with this ping.
    """
    if not pings:
        return []

    radius = (thresholds or {}).get("cluster_radius_m", CLUSTER_RADIUS_M)

    clusters = []
    current = [pings[0]]
    center = pings[0].position

    for ping in pings[1:]:
        if distance_m(center, ping.position) <= radius:
            current.append(ping)
            center = centroid([p.position for p in current])
        else:
            clusters.append(current)
            current = [ping]
            center = ping.position

    clusters.append(current)
    return clusters


def summarise_cluster(members: Sequence[RawPing], confidence: str, visit_type: str) -> Visit:
    """Build the visit record for one cluster of pings."""
    first, last = members[0], members[-1]
    other_types = dict.fromkeys(t for p in members for t in p.other_place_types)
    return Visit(
        id=first.id,
        member_ping_ids=tuple(p.id for p in members),
        started_at=first.timestamp,
        ended_at=last.timestamp,
        duration_s=duration_seconds(first.timestamp, last.timestamp),
        primary_place_type=mode([p.primary_place_type for p in members]),
        other_place_types=tuple(other_types),
        dominant_motion=mode([p.motion for p in members]),
        confidence=confidence,
        visit_type=visit_type,
        ping_count=len(members),
    )


def detect_visits(pings: Sequence[RawPing], thresholds: dict | None = None) -> list[Visit]:
    """Cluster smoothed pings and score every cluster as a visit candidate."""
    from scoring import score_cluster

    visits = []
    for members in cluster_pings(pings, thresholds):
        confidence, visit_type = score_cluster(members)
        visits.append(summarise_cluster(members, confidence, visit_type))
    return visits
