"""Tests for the diary REST endpoint using the ASGI test client."""

import datetime
import random
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db as original_get_db
from models import Config, Diary, DiaryJourney, DiaryVisit, Ping  # noqa: F401
from tests.ping_fixtures import BAD_ACCURACY_POINT, DAY_TRACE, DEVICE_ID


# ---------------------------------------------------------------------------
# Test setup: override get_db using the original function reference as key
# ---------------------------------------------------------------------------

@pytest.fixture
def app_and_db():
    """Create a test FastAPI app with an in-memory database holding one device-day."""
    # Use StaticPool so all threads/connections share the same in-memory DB
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSession = sessionmaker(bind=engine)

    def test_get_db():
        session = TestSession()
        try:
            yield session
        finally:
            session.close()

    from api import get_rng, router

    app = FastAPI()
    app.dependency_overrides[original_get_db] = test_get_db
    app.dependency_overrides[get_rng] = lambda: random.Random(1234)
    app.include_router(router)

    session = TestSession()
    for pt in DAY_TRACE + [BAD_ACCURACY_POINT]:
        session.add(Ping(**pt))
    session.commit()
    session.close()

    client = TestClient(app)
    return client, TestSession


@pytest.fixture
def client(app_and_db):
    return app_and_db[0]


@pytest.fixture
def db(app_and_db):
    TestSession = app_and_db[1]
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


def _request(client, device_id=DEVICE_ID, date="2024-01-15"):
    return client.post("/api/diary", json={"deviceId": device_id, "date": date})


# ---------------------------------------------------------------------------
# Validation tests
# ---------------------------------------------------------------------------

class TestValidation:
    @pytest.mark.parametrize("body", [
        {},
        {"deviceId": DEVICE_ID},
        {"date": "2024-01-15"},
        {"deviceId": "", "date": "2024-01-15"},
        {"deviceId": DEVICE_ID, "date": ""},
    ])
    def test_missing_fields(self, client, body):
        resp = client.post("/api/diary", json=body)
        assert resp.status_code == 400

    @pytest.mark.parametrize("date", ["15/01/2024", "2024-13-01", "yesterday"])
    def test_bad_date(self, client, date):
        resp = _request(client, date=date)
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Diary endpoint tests
# ---------------------------------------------------------------------------

class TestDiaryEndpoint:
    def test_empty_day(self, client):
        resp = _request(client, date="2024-02-01")
        assert resp.status_code == 200
        assert resp.json() == {"visits": [], "journeys": []}

    def test_unknown_device(self, client):
        resp = _request(client, device_id="no-such-device")
        assert resp.status_code == 200
        assert resp.json() == {"visits": [], "journeys": []}

    def test_full_day(self, client):
        resp = _request(client)
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"visits", "journeys"}

        visit_ids = {v["id"] for v in data["visits"]}
        assert {"p01", "p11", "p23"} <= visit_ids
        assert all("is_synthetic" not in v for v in data["visits"])
        assert all("is_synthetic" not in j for j in data["journeys"])
        for j in data["journeys"]:
            assert j["from_visit_id"] in visit_ids
            assert j["to_visit_id"] in visit_ids

        real = [v for v in data["visits"] if v["member_ping_ids"]]
        assert len(real) == 13
        assert [v["started_at"] for v in data["visits"]] == sorted(v["started_at"] for v in data["visits"])

        cafe = next(v for v in data["visits"] if v["id"] == "p11")
        assert cafe["confidence"] == "high"
        assert cafe["visit_type"] == "confirmed_visit"
        assert cafe["dominant_motion"] == {"motion": "still", "confidence": "medium"}

    def test_decoys_disabled_by_config(self, client, db):
        db.add(Config(key="synthetic_injection_enabled", value="0"))
        db.commit()

        data = _request(client).json()
        assert len(data["visits"]) == 13
        assert [j["id"] for j in data["journeys"]] == ["p07", "p16"]
        walk = data["journeys"][0]
        assert walk["primary_transport"] == "walking"
        assert walk["transport_proportions"] == {"walking": 1.0}
        assert walk["member_ping_ids"] == ["p07", "p08", "p09", "p10"]

    def test_diary_persisted(self, client, db):
        data = _request(client).json()

        diary = db.query(Diary).filter(Diary.device_id == DEVICE_ID).one()
        assert diary.submitted_at is None
        assert {row.visit_id for row in diary.visits} == {v["id"] for v in data["visits"]}
        assert {row.journey_id for row in diary.journeys} == {j["id"] for j in data["journeys"]}
        for row in diary.visits:
            assert row.is_synthetic == row.visit_id.startswith("syn_")

    def test_repeat_request_does_not_duplicate(self, client, db):
        _request(client)
        _request(client)
        assert db.query(Diary).count() == 1
        assert db.query(DiaryVisit).filter(DiaryVisit.is_synthetic.is_(False)).count() == 13
        assert db.query(DiaryJourney).filter(DiaryJourney.is_synthetic.is_(False)).count() == 2

    def test_submitted_diary_is_frozen(self, client, db):
        first = _request(client).json()
        diary = db.query(Diary).one()
        diary.submitted_at = datetime.datetime(2024, 1, 16, 8, 0)
        db.commit()

        # New pings after submission must not change the answer
        db.add(Ping(**dict(DAY_TRACE[-1], id="late", timestamp=datetime.datetime(2024, 1, 15, 18, 0))))
        db.commit()

        resp = _request(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["already_submitted"] is True
        assert data["submitted_at"] == "2024-01-16T08:00:00"
        assert data["visits"] == first["visits"]
        assert data["journeys"] == first["journeys"]

    def test_submission_during_rebuild_returns_stored_diary(self, client, db):
        first = _request(client).json()
        diary = db.query(Diary).one()
        diary.submitted_at = datetime.datetime(2024, 1, 16, 8, 0)
        db.commit()

        # The submission lands after the endpoint's own lookup found no frozen diary
        with patch("api.find_diary", return_value=None):
            resp = _request(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["already_submitted"] is True
        assert data["submitted_at"] == "2024-01-16T08:00:00"
        assert data["visits"] == first["visits"]
        assert data["journeys"] == first["journeys"]

    def test_persist_failure_still_returns_diary(self, client, db):
        error = OperationalError("INSERT", {}, Exception("database is locked"))
        with patch("diary._write_diary", side_effect=error):
            resp = _request(client)
        assert resp.status_code == 200
        assert len(resp.json()["visits"]) >= 13
        assert db.query(DiaryVisit).count() == 0

    def test_ping_store_failure(self, client):
        error = OperationalError("SELECT", {}, Exception("no such table: pings"))
        with patch("api.load_day_pings", side_effect=error):
            resp = _request(client)
        assert resp.status_code == 500
