"""Diary assembly for one device-day.

Two phases, kept apart so a storage outage never costs the user their diary:

1. ``build_diary`` is pure: filter, smooth, cluster, score, select, segment
   journeys and inject decoys.
2. ``persist_diary`` writes the result under the (device, date) diary row.
   Failures are logged and rolled back, never raised.

A diary whose ``submitted_at`` is set is frozen; ``frozen_payload`` returns the
stored rows instead of recomputing.
"""

import datetime
import logging
import random
from typing import NamedTuple, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from journeys import segment_journeys
from models import Diary, DiaryJourney, DiaryJourneyEntry, DiaryVisit, DiaryVisitEntry, Ping
from processing import (
    SYNTHETIC_INJECTION_ENABLED,
    detect_visits,
    filter_by_accuracy,
    smooth_pings,
)
from records import Journey, MotionSample, RawPing, Visit, position_from_fields
from scoring import select_visits
from synthetic import inject_synthetic

logger = logging.getLogger(__name__)


class DiaryResult(NamedTuple):
    visits: list[Visit]
    journeys: list[Journey]


# ---------------------------------------------------------------------------
# Ping store
# ---------------------------------------------------------------------------

def ping_from_row(row: Ping) -> RawPing:
    return RawPing(
        id=row.id,
        timestamp=row.timestamp,
        primary_place_type=row.primary_place_type or "Unknown",
        other_place_types=tuple(row.other_place_types or ()),
        motion=MotionSample.parse(row.motion, row.motion_confidence),
        position=position_from_fields(row.distance_m, row.bearing_deg, row.x_m, row.y_m),
        horizontal_accuracy_m=row.horizontal_accuracy_m,
    )


def load_day_pings(db: Session, device_id: str, day: datetime.date) -> list[RawPing]:
    """All pings for a device within the UTC calendar day, oldest first."""
    start = datetime.datetime.combine(day, datetime.time())
    end = start + datetime.timedelta(days=1)
    rows = (
        db.query(Ping)
        .filter(Ping.device_id == device_id, Ping.timestamp >= start, Ping.timestamp < end)
        .order_by(Ping.timestamp.asc(), Ping.id.asc())
        .all()
    )
    return [ping_from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Compute
# ---------------------------------------------------------------------------

def build_diary(
    pings: Sequence[RawPing],
    day: datetime.date,
    rng: random.Random,
    thresholds: dict | None = None,
) -> DiaryResult:
    """Reconstruct the visits and journeys of one day from its pings."""
    clean = filter_by_accuracy(pings, thresholds)
    candidates = detect_visits(smooth_pings(clean), thresholds)
    selected = select_visits(candidates, thresholds)
    # Journeys follow real movement, so they use the unsmoothed pings
    journeys = segment_journeys(clean, selected)

    synthetic_visits, synthetic_journeys = [], []
    if (thresholds or {}).get("synthetic_injection_enabled", SYNTHETIC_INJECTION_ENABLED):
        synthetic_visits, synthetic_journeys = inject_synthetic(selected, day, rng, thresholds)

    logger.info(
        "Clustered %d pings (%d after accuracy filter) into %d visits: "
        "returning %d real + %d synthetic visits, %d real + %d synthetic journeys",
        len(pings), len(clean), len(candidates), len(selected), len(synthetic_visits),
        len(journeys), len(synthetic_journeys),
    )
    return DiaryResult(
        visits=sorted(selected + synthetic_visits, key=lambda v: v.started_at),
        journeys=sorted(journeys + synthetic_journeys, key=lambda j: j.started_at),
    )


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def find_diary(db: Session, device_id: str, day: datetime.date) -> Diary | None:
    return (
        db.query(Diary)
        .filter(Diary.device_id == device_id, Diary.diary_date == day)
        .first()
    )


def _get_or_create_diary(db: Session, device_id: str, day: datetime.date) -> Diary:
    diary = find_diary(db, device_id, day)
    if diary is None:
        diary = Diary(device_id=device_id, diary_date=day)
        db.add(diary)
        db.flush()
    return diary


def _fill_visit_row(row: DiaryVisit, visit: Visit) -> DiaryVisit:
    """Copy the computed fields of ``visit`` onto ``row``; answer columns are left alone."""
    row.visit_id = visit.id
    row.primary_place_type = visit.primary_place_type
    row.other_place_types = list(visit.other_place_types)
    row.dominant_motion = visit.dominant_motion.as_dict()
    row.confidence = visit.confidence
    row.visit_type = visit.visit_type
    row.ping_count = visit.ping_count
    row.duration_s = visit.duration_s
    row.started_at = visit.started_at
    row.ended_at = visit.ended_at
    row.is_synthetic = visit.is_synthetic
    # Synthetic visits have no pings to link
    row.entries = [
        DiaryVisitEntry(entry_id=entry_id, position_in_cluster=i)
        for i, entry_id in enumerate(visit.member_ping_ids)
    ]
    return row


def _fill_journey_row(row: DiaryJourney, journey: Journey) -> DiaryJourney:
    """Copy the computed fields of ``journey`` onto ``row``; answer columns are left alone."""
    row.journey_id = journey.id
    row.from_visit_id = journey.from_visit_id
    row.to_visit_id = journey.to_visit_id
    row.primary_transport = journey.primary_transport
    row.transport_proportions = dict(journey.transport_proportions)
    row.ping_count = journey.ping_count
    row.duration_s = journey.duration_s
    row.confidence = journey.confidence
    row.started_at = journey.started_at
    row.ended_at = journey.ended_at
    row.is_synthetic = journey.is_synthetic
    row.entries = [
        DiaryJourneyEntry(entry_id=entry_id, position_in_journey=i)
        for i, entry_id in enumerate(journey.member_ping_ids)
    ]
    return row


def _write_diary(db: Session, device_id: str, day: datetime.date, result: DiaryResult) -> Diary:
    """Upsert the diary and make its visit/journey rows match ``result``.

    Rows stored under a visit_id/journey_id that is still in the diary are
    refreshed from ``result`` but keep their answer columns; rows from an
    earlier run that are no longer part of the diary are removed.
    """
    diary = _get_or_create_diary(db, device_id, day)
    if diary.submitted_at is not None:
        logger.warning("Diary %d was submitted meanwhile, leaving it untouched", diary.id)
        db.rollback()
        return diary

    stored_visits = {row.visit_id: row for row in diary.visits}
    wanted_visits = {v.id for v in result.visits}
    for visit_id, row in stored_visits.items():
        if visit_id not in wanted_visits:
            diary.visits.remove(row)
    new_visits = 0
    for visit in result.visits:
        row = stored_visits.get(visit.id)
        if row is None:
            diary.visits.append(_fill_visit_row(DiaryVisit(), visit))
            new_visits += 1
        else:
            _fill_visit_row(row, visit)

    stored_journeys = {row.journey_id: row for row in diary.journeys}
    wanted_journeys = {j.id for j in result.journeys}
    for journey_id, row in stored_journeys.items():
        if journey_id not in wanted_journeys:
            diary.journeys.remove(row)
    new_journeys = 0
    for journey in result.journeys:
        row = stored_journeys.get(journey.id)
        if row is None:
            diary.journeys.append(_fill_journey_row(DiaryJourney(), journey))
            new_journeys += 1
        else:
            _fill_journey_row(row, journey)

    db.commit()
    logger.info(
        "Diary %d (device=%s date=%s): %d visit rows (%d new), %d journey rows (%d new)",
        diary.id, device_id, day, len(result.visits), new_visits,
        len(result.journeys), new_journeys,
    )
    return diary


def persist_diary(
    db: Session, device_id: str, day: datetime.date, result: DiaryResult,
) -> Diary | None:
    """Best-effort write of a computed diary. Returns None if storage failed.

    A unique-constraint violation means a concurrent request for the same
    device-day wrote first; the write is re-applied once on top of its rows.
    """
    for attempt in range(2):
        try:
            return _write_diary(db, device_id, day, result)
        except IntegrityError:
            db.rollback()
            if attempt:
                logger.error("Diary write for device=%s date=%s kept conflicting", device_id, day)
                return None
            logger.warning("Concurrent diary write for device=%s date=%s, merging", device_id, day)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to persist diary for device=%s date=%s: %s", device_id, day, e)
            return None
    return None


# ---------------------------------------------------------------------------
# Frozen diaries
# ---------------------------------------------------------------------------

def visit_from_row(row: DiaryVisit) -> Visit:
    motion = row.dominant_motion or {}
    return Visit(
        id=row.visit_id,
        member_ping_ids=tuple(e.entry_id for e in row.entries),
        started_at=row.started_at,
        ended_at=row.ended_at,
        duration_s=row.duration_s,
        primary_place_type=row.primary_place_type,
        other_place_types=tuple(row.other_place_types or ()),
        dominant_motion=MotionSample.parse(motion.get("motion"), motion.get("confidence")),
        confidence=row.confidence,
        visit_type=row.visit_type,
        ping_count=row.ping_count,
    )


def journey_from_row(row: DiaryJourney) -> Journey:
    return Journey(
        id=row.journey_id,
        member_ping_ids=tuple(e.entry_id for e in row.entries),
        from_visit_id=row.from_visit_id,
        to_visit_id=row.to_visit_id,
        primary_transport=row.primary_transport,
        transport_proportions=dict(row.transport_proportions or {}),
        started_at=row.started_at,
        ended_at=row.ended_at,
        duration_s=row.duration_s,
        ping_count=row.ping_count,
        confidence=row.confidence,
    )


def frozen_payload(diary: Diary) -> dict:
    """The stored contents of a submitted diary, in response shape."""
    visits = sorted(diary.visits, key=lambda r: r.started_at)
    journeys = sorted(diary.journeys, key=lambda r: r.started_at)
    return {
        "already_submitted": True,
        "submitted_at": diary.submitted_at.isoformat(),
        "visits": [visit_from_row(r).as_dict() for r in visits],
        "journeys": [journey_from_row(r).as_dict() for r in journeys],
    }
