#!/usr/bin/env python3
"""Seed the database with the ping fixture trace for development and manual API testing.

Usage:
    python seed_test_data.py

This stores the 32-ping weekday-morning trace for a demo device, then builds
and persists its diary so it can be fetched with POST /api/diary.
"""

import random

from database import init_db, SessionLocal
from models import Ping
from diary import build_diary, load_day_pings, persist_diary
from processing import get_thresholds
from tests.ping_fixtures import DAY_TRACE, DIARY_DATE

DEMO_DEVICE_ID = "demo-iphone-001"


def seed():
    init_db()
    db = SessionLocal()

    existing = db.query(Ping).filter(Ping.device_id == DEMO_DEVICE_ID).first()
    if existing:
        print("Demo device already has pings. Skipping seed.")
        db.close()
        return

    # Insert ping trace
    for pt in DAY_TRACE:
        db.add(Ping(**dict(pt, id=f"demo-{pt['id']}", device_id=DEMO_DEVICE_ID)))
    db.commit()
    print(f"Inserted {len(DAY_TRACE)} pings for {DEMO_DEVICE_ID}")

    pings = load_day_pings(db, DEMO_DEVICE_ID, DIARY_DATE)
    result = build_diary(pings, DIARY_DATE, random.Random(), get_thresholds(db))
    diary = persist_diary(db, DEMO_DEVICE_ID, DIARY_DATE, result)
    print(f"Built {len(result.visits)} visits and {len(result.journeys)} journeys")

    for v in result.visits:
        tag = " (synthetic)" if v.is_synthetic else ""
        print(f"  - {v.primary_place_type}: {v.duration_s // 60}m "
              f"({v.started_at.strftime('%H:%M')}-{v.ended_at.strftime('%H:%M')}) "
              f"{v.confidence}/{v.visit_type}{tag}")

    db.close()
    if diary is None:
        print("\nDiary could not be stored, see the log for details")
        return
    print(f'\nDone! POST /api/diary with {{"deviceId": "{DEMO_DEVICE_ID}", "date": "{DIARY_DATE}"}}')


if __name__ == "__main__":
    seed()
