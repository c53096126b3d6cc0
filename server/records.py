"""In-memory records passed between the diary pipeline stages.

Positions come in two variants: ``CartesianPosition`` (flat-earth offsets from
home, authoritative whenever present) and ``PolarPosition`` (distance/bearing
only, written by older clients). Code that needs geometry branches on the
variant rather than on missing fields.
"""

from __future__ import annotations

import datetime
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Union

# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

MOTIONS = frozenset({"still", "walking", "running", "cycling", "automotive", "unknown"})
MOTION_CONFIDENCES = frozenset({"low", "medium", "high", "unknown"})

# Motions that move the device between places; "still"/"unknown" are absorbed.
ACTIVE_MODES = frozenset({"walking", "running", "cycling", "automotive"})
STATIONARY_MOTIONS = frozenset({"still", "walking"})

CONFIDENCE_LEVELS = ("high", "medium", "low")
ANCHOR_CONFIDENCES = frozenset({"high", "medium"})
CONFIDENCE_SCORES = MappingProxyType({"high": 1.0, "medium": 0.66, "low": 0.33})

VISIT_TYPES = frozenset({"confirmed_visit", "visit", "brief_stop", "traffic_stop"})

SYNTHETIC_ID_PREFIX = "syn_"


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CartesianPosition:
    """Offset from home in metres: x east-west, y north-south."""

    x_m: float
    y_m: float

    @property
    def distance_m(self) -> float:
        return math.hypot(self.x_m, self.y_m)

    @property
    def bearing_deg(self) -> float:
        return (math.degrees(math.atan2(self.x_m, self.y_m)) + 360.0) % 360.0


@dataclass(frozen=True, slots=True)
class PolarPosition:
    """Distance (metres) and bearing (degrees from north) from home."""

    distance_m: float
    bearing_deg: float


Position = Union[CartesianPosition, PolarPosition]


def position_from_fields(
    distance_m: float | None,
    bearing_deg: float | None,
    x_m: float | None = None,
    y_m: float | None = None,
) -> Position:
    """Build the right position variant from a stored row's nullable columns."""
    if x_m is not None and y_m is not None:
        return CartesianPosition(x_m=x_m, y_m=y_m)
    return PolarPosition(distance_m=distance_m or 0.0, bearing_deg=bearing_deg or 0.0)


# ---------------------------------------------------------------------------
# Pings, visits and journeys
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MotionSample:
    motion: str = "unknown"
    confidence: str = "unknown"

    @classmethod
    def parse(cls, motion: str | None, confidence: str | None) -> "MotionSample":
        m = (motion or "unknown").lower()
        c = (confidence or "unknown").lower()
        return cls(
            motion=m if m in MOTIONS else "unknown",
            confidence=c if c in MOTION_CONFIDENCES else "unknown",
        )

    def as_dict(self) -> dict:
        return {"motion": self.motion, "confidence": self.confidence}


@dataclass(frozen=True, slots=True)
class RawPing:
    id: str
    timestamp: datetime.datetime
    primary_place_type: str
    position: Position
    motion: MotionSample = MotionSample()
    other_place_types: tuple[str, ...] = ()
    horizontal_accuracy_m: float | None = None


@dataclass(frozen=True, slots=True)
class Visit:
    id: str
    started_at: datetime.datetime
    ended_at: datetime.datetime
    duration_s: int
    primary_place_type: str
    dominant_motion: MotionSample
    confidence: str
    visit_type: str
    ping_count: int
    member_ping_ids: tuple[str, ...] = ()
    other_place_types: tuple[str, ...] = ()

    @property
    def is_synthetic(self) -> bool:
        return self.id.startswith(SYNTHETIC_ID_PREFIX)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "member_ping_ids": list(self.member_ping_ids),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_s": self.duration_s,
            "primary_place_type": self.primary_place_type,
            "other_place_types": list(self.other_place_types),
            "dominant_motion": self.dominant_motion.as_dict(),
            "confidence": self.confidence,
            "visit_type": self.visit_type,
            "ping_count": self.ping_count,
        }


@dataclass(frozen=True, slots=True)
class Journey:
    id: str
    from_visit_id: str
    to_visit_id: str
    primary_transport: str
    started_at: datetime.datetime
    ended_at: datetime.datetime
    duration_s: int
    ping_count: int
    confidence: str
    transport_proportions: dict[str, float] = field(default_factory=dict)
    member_ping_ids: tuple[str, ...] = ()

    @property
    def is_synthetic(self) -> bool:
        return self.id.startswith(SYNTHETIC_ID_PREFIX)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "member_ping_ids": list(self.member_ping_ids),
            "from_visit_id": self.from_visit_id,
            "to_visit_id": self.to_visit_id,
            "primary_transport": self.primary_transport,
            "transport_proportions": dict(self.transport_proportions),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_s": self.duration_s,
            "ping_count": self.ping_count,
            "confidence": self.confidence,
        }


def duration_seconds(start: datetime.datetime, end: datetime.datetime) -> int:
    """Whole seconds from start to end, never negative."""
    return max(0, round((end - start).total_seconds()))
