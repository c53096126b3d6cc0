"""REST API endpoint for the mobile app: build (or return) a device's diary for a day."""

import datetime
import logging
import os
import random
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from diary import build_diary, find_diary, frozen_payload, load_day_pings, persist_diary
from processing import get_thresholds

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class DiaryRequest(BaseModel):
    deviceId: Optional[str] = None
    date: Optional[str] = None


class MotionResponse(BaseModel):
    motion: str
    confidence: str


class VisitResponse(BaseModel):
    id: str
    member_ping_ids: list[str]
    started_at: str
    ended_at: str
    duration_s: int
    primary_place_type: str
    other_place_types: list[str]
    dominant_motion: MotionResponse
    confidence: str
    visit_type: str
    ping_count: int


class JourneyResponse(BaseModel):
    id: str
    member_ping_ids: list[str]
    from_visit_id: str
    to_visit_id: str
    primary_transport: str
    transport_proportions: dict[str, float]
    started_at: str
    ended_at: str
    duration_s: int
    ping_count: int
    confidence: str


class DiaryResponse(BaseModel):
    already_submitted: Optional[bool] = None
    submitted_at: Optional[str] = None
    visits: list[VisitResponse]
    journeys: list[JourneyResponse]


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_rng() -> random.Random:
    """Random source for decoy entries; SYNTHETIC_SEED makes runs reproducible."""
    seed = os.environ.get("SYNTHETIC_SEED")
    return random.Random(int(seed)) if seed else random.Random()


# ---------------------------------------------------------------------------
# Diary endpoint
# ---------------------------------------------------------------------------

@router.post("/diary", response_model=DiaryResponse, response_model_exclude_none=True)
def make_diary(
    req: DiaryRequest,
    db: Session = Depends(get_db),
    rng: random.Random = Depends(get_rng),
):
    if not req.deviceId or not req.date:
        raise HTTPException(status_code=400, detail="Missing deviceId or date")
    try:
        day = datetime.date.fromisoformat(req.date)
    except ValueError:
        raise HTTPException(status_code=400, detail="date must be formatted YYYY-MM-DD")

    logger.info("Fetching diary for device=%s date=%s", req.deviceId, day)

    try:
        existing = find_diary(db, req.deviceId, day)
        if existing is not None and existing.submitted_at is not None:
            payload = frozen_payload(existing)
            logger.info(
                "Diary already submitted at %s, returning %d visits and %d journeys",
                payload["submitted_at"], len(payload["visits"]), len(payload["journeys"]),
            )
            return payload
        thresholds = get_thresholds(db)
        pings = load_day_pings(db, req.deviceId, day)
    except SQLAlchemyError as e:
        logger.error("Ping store query failed for device=%s date=%s: %s", req.deviceId, day, e)
        raise HTTPException(status_code=500, detail=str(e))

    result = build_diary(pings, day, rng, thresholds)
    stored = persist_diary(db, req.deviceId, day, result)
    if stored is not None and stored.submitted_at is not None:
        logger.info("Diary submitted while it was being rebuilt, returning the stored contents")
        return frozen_payload(stored)

    return DiaryResponse(
        visits=[v.as_dict() for v in result.visits],
        journeys=[j.as_dict() for j in result.journeys],
    )
