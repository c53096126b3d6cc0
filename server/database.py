"""Database setup and session management using SQLAlchemy + SQLite."""

import logging
import os

logger = logging.getLogger(__name__)

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///diary.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables and seed the default thresholds."""
    from models import Config, Ping, Diary, DiaryVisit, DiaryVisitEntry, DiaryJourney, DiaryJourneyEntry  # noqa: F401

    logger.info("Initializing database at %s", DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    _seed_config()


# Default algorithm thresholds (must match processing.py module-level constants)
DEFAULT_THRESHOLDS = {
    "max_horizontal_accuracy_m": "100.0",
    "cluster_radius_m": "75.0",
    "min_dwell_s": "300",
    "max_non_high_visits": "10",
    "synthetic_min_slot_s": "600",
    "synthetic_day_start_hour": "7",
    "synthetic_day_end_hour": "22",
    "synthetic_injection_enabled": "1",
}


def _seed_config():
    """Insert default algorithm thresholds if not present."""
    from models import Config

    db = SessionLocal()
    try:
        for key, value in DEFAULT_THRESHOLDS.items():
            if not db.query(Config).filter(Config.key == key).first():
                db.add(Config(key=key, value=value))
        db.commit()
    finally:
        db.close()
