"""Red-herring visits and journeys for measuring reviewer accuracy.

Decoys are placed in idle time slots of a real diary so they look plausible
next to the genuine entries. They never reference real pings, and their ids
carry the ``syn_`` prefix so storage can flag them. All randomness comes from
the ``random.Random`` passed in, so seeded runs are reproducible.
"""

import datetime
import logging
import random
import uuid
from typing import NamedTuple, Sequence

from place_types import PLACE_TYPE_CATALOG
from processing import (
    SYNTHETIC_DAY_END_HOUR,
    SYNTHETIC_DAY_START_HOUR,
    SYNTHETIC_MIN_SLOT_S,
)
from records import SYNTHETIC_ID_PREFIX, Journey, MotionSample, Visit, duration_seconds

logger = logging.getLogger(__name__)

MAX_SYNTHETIC_VISITS = 3
MIN_VISIT_S = 5 * 60
MAX_VISIT_S = 60 * 60
MAX_SLOT_FRACTION = 0.7      # leave room in the slot for travel either side
REUSE_PLACE_TYPE_P = 0.5

# Weighted to mirror the spread seen in real diaries
VISIT_CONFIDENCE_WEIGHTS = (("high", 0.50), ("medium", 0.35), ("low", 0.15))
TRANSPORT_WEIGHTS = (("walking", 0.40), ("automotive", 0.40), ("cycling", 0.15), ("running", 0.05))

SYNTHETIC_JOURNEY_CONFIDENCE = "medium"
SYNTHETIC_PING_INTERVAL_S = 180


class TimeSlot(NamedTuple):
    start: datetime.datetime
    end: datetime.datetime

    @property
    def seconds(self) -> float:
        return (self.end - self.start).total_seconds()


def synthetic_id(rng: random.Random) -> str:
    return SYNTHETIC_ID_PREFIX + str(uuid.UUID(int=rng.getrandbits(128), version=4))


def weighted_choice(rng: random.Random, weighted: Sequence[tuple[str, float]]) -> str:
    values, weights = zip(*weighted)
    return rng.choices(values, weights=weights, k=1)[0]


def idle_slots(
    visits: Sequence[Visit], date: datetime.date, thresholds: dict | None = None,
) -> list[TimeSlot]:
    """Gaps of at least synthetic_min_slot_s around and between visits, inside the day window."""
    t = thresholds or {}
    min_slot = t.get("synthetic_min_slot_s", SYNTHETIC_MIN_SLOT_S)
    day_start = datetime.datetime.combine(date, datetime.time()) + datetime.timedelta(
        hours=t.get("synthetic_day_start_hour", SYNTHETIC_DAY_START_HOUR))
    day_end = datetime.datetime.combine(date, datetime.time()) + datetime.timedelta(
        hours=t.get("synthetic_day_end_hour", SYNTHETIC_DAY_END_HOUR))

    ordered = sorted(visits, key=lambda v: v.started_at)
    candidates = [TimeSlot(day_start, ordered[0].started_at)]
    candidates += [TimeSlot(a.ended_at, b.started_at) for a, b in zip(ordered, ordered[1:])]
    candidates.append(TimeSlot(ordered[-1].ended_at, day_end))
    return [s for s in candidates if s.seconds >= min_slot]


def generate_synthetic_visits(
    real_visits: Sequence[Visit],
    date: datetime.date,
    rng: random.Random,
    thresholds: dict | None = None,
) -> list[Visit]:
    """Fabricate 1-3 decoy visits in idle slots of the day (none without real visits)."""
    if not real_visits:
        return []
    slots = idle_slots(real_visits, date, thresholds)
    if not slots:
        return []

    real_types = [v.primary_place_type for v in sorted(real_visits, key=lambda v: v.started_at)
                  if v.primary_place_type]
    count = min(rng.randint(1, MAX_SYNTHETIC_VISITS), len(slots))

    synthetics = []
    for slot in rng.sample(slots, count):
        max_s = min(MAX_VISIT_S, slot.seconds * MAX_SLOT_FRACTION)
        min_s = min(MIN_VISIT_S, max_s)
        length_s = rng.uniform(min_s, max_s)
        margin_s = (slot.seconds - length_s) / 2
        started_at = slot.start + datetime.timedelta(seconds=margin_s * rng.uniform(0.3, 0.7))
        ended_at = started_at + datetime.timedelta(seconds=length_s)

        if real_types and rng.random() < REUSE_PLACE_TYPE_P:
            place_type = rng.choice(real_types)
        else:
            place_type = rng.choice(PLACE_TYPE_CATALOG)

        duration = round(length_s)
        synthetics.append(Visit(
            id=synthetic_id(rng),
            started_at=started_at,
            ended_at=ended_at,
            duration_s=duration,
            primary_place_type=place_type,
            dominant_motion=MotionSample("still", "medium"),
            confidence=weighted_choice(rng, VISIT_CONFIDENCE_WEIGHTS),
            visit_type="visit",
            ping_count=max(2, duration // 300),
        ))
    return synthetics


def _synthetic_journey(rng: random.Random, origin: Visit, destination: Visit) -> Journey | None:
    gap_s = duration_seconds(origin.ended_at, destination.started_at)
    if gap_s <= 0:
        return None
    transport = weighted_choice(rng, TRANSPORT_WEIGHTS)
    return Journey(
        id=synthetic_id(rng),
        from_visit_id=origin.id,
        to_visit_id=destination.id,
        primary_transport=transport,
        transport_proportions={transport: 0.85, "unknown": 0.15},
        started_at=origin.ended_at,
        ended_at=destination.started_at,
        duration_s=gap_s,
        ping_count=max(1, gap_s // SYNTHETIC_PING_INTERVAL_S),
        confidence=SYNTHETIC_JOURNEY_CONFIDENCE,
    )


def generate_synthetic_journeys(
    all_visits: Sequence[Visit], rng: random.Random,
) -> list[Journey]:
    """Connect each synthetic visit to its chronological neighbours.

    When two synthetic visits are adjacent, the gap between them is covered
    once; the first journey generated for a (from, to) pair wins.
    """
    ordered = sorted(all_visits, key=lambda v: v.started_at)
    journeys = []
    for i, visit in enumerate(ordered):
        if not visit.is_synthetic:
            continue
        if i > 0:
            journeys.append(_synthetic_journey(rng, ordered[i - 1], visit))
        if i < len(ordered) - 1:
            journeys.append(_synthetic_journey(rng, visit, ordered[i + 1]))

    seen = set()
    deduped = []
    for j in journeys:
        if j is None or (j.from_visit_id, j.to_visit_id) in seen:
            continue
        seen.add((j.from_visit_id, j.to_visit_id))
        deduped.append(j)
    return deduped


def inject_synthetic(
    real_visits: Sequence[Visit],
    date: datetime.date,
    rng: random.Random,
    thresholds: dict | None = None,
) -> tuple[list[Visit], list[Journey]]:
    """Return (synthetic visits, synthetic journeys) for one diary."""
    visits = generate_synthetic_visits(real_visits, date, rng, thresholds)
    if not visits:
        return [], []
    journeys = generate_synthetic_journeys(list(real_visits) + visits, rng)
    return visits, journeys
