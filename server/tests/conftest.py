"""Shared pytest fixtures: in-memory DB, populated device-day."""

import sys
import os

# Add server root to path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Config, Ping, Diary, DiaryVisit, DiaryJourney  # noqa: F401


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db(engine):
    """Provide a DB session, closed after each test."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def populated_day(db):
    """Store the full ping trace fixture for the test device and return the device id."""
    from tests.ping_fixtures import BAD_ACCURACY_POINT, DAY_TRACE, DEVICE_ID

    for pt in DAY_TRACE + [BAD_ACCURACY_POINT]:
        db.add(Ping(**pt))
    db.commit()
    return DEVICE_ID
