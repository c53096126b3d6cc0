"""SQLAlchemy models for pings, diaries, and their visit/journey rows."""

import datetime
from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


class Config(Base):
    """Key/value store for algorithm thresholds and settings."""

    __tablename__ = "config"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)


class Ping(Base):
    """A place-resolved location sample, written by the ingestion service."""

    __tablename__ = "pings"

    id = Column(String, primary_key=True)
    device_id = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    primary_place_type = Column(String, nullable=False, default="Unknown")
    other_place_types = Column(JSON, nullable=False, default=list)
    motion = Column(String, nullable=True)
    motion_confidence = Column(String, nullable=True)
    distance_m = Column(Float, nullable=True)
    bearing_deg = Column(Float, nullable=True)
    x_m = Column(Float, nullable=True)
    y_m = Column(Float, nullable=True)
    horizontal_accuracy_m = Column(Float, nullable=True)
    received_at = Column(DateTime, default=datetime.datetime.utcnow)


class Diary(Base):
    """One device-day of reconstructed visits and journeys."""

    __tablename__ = "diaries"
    __table_args__ = (UniqueConstraint("device_id", "diary_date", name="uq_diary_device_date"),)

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String, nullable=False, index=True)
    diary_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    submitted_at = Column(DateTime, nullable=True)

    visits = relationship("DiaryVisit", back_populates="diary", cascade="all, delete-orphan")
    journeys = relationship("DiaryJourney", back_populates="diary", cascade="all, delete-orphan")


class DiaryVisit(Base):
    """A visit shown to the user for review; answer columns are filled on submission."""

    __tablename__ = "diary_visits"
    __table_args__ = (UniqueConstraint("diary_id", "visit_id", name="uq_diary_visit"),)

    id = Column(Integer, primary_key=True, index=True)
    diary_id = Column(Integer, ForeignKey("diaries.id"), nullable=False)
    visit_id = Column(String, nullable=False)
    primary_place_type = Column(String, nullable=False)
    other_place_types = Column(JSON, nullable=False, default=list)
    dominant_motion = Column(JSON, nullable=False)
    confidence = Column(String, nullable=False)
    visit_type = Column(String, nullable=False)
    ping_count = Column(Integer, nullable=False)
    duration_s = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=False)
    is_synthetic = Column(Boolean, default=False, nullable=False)

    activity_label = Column(String, nullable=True)
    confirmed_place = Column(Boolean, nullable=True)
    confirmed_activity = Column(Boolean, nullable=True)
    user_context = Column(Text, nullable=True)

    diary = relationship("Diary", back_populates="visits")
    entries = relationship(
        "DiaryVisitEntry", back_populates="visit", cascade="all, delete-orphan",
        order_by="DiaryVisitEntry.position_in_cluster",
    )


class DiaryVisitEntry(Base):
    __tablename__ = "diary_visit_entries"

    id = Column(Integer, primary_key=True, index=True)
    diary_visit_id = Column(Integer, ForeignKey("diary_visits.id"), nullable=False)
    entry_id = Column(String, nullable=False)
    position_in_cluster = Column(Integer, nullable=False)

    visit = relationship("DiaryVisit", back_populates="entries")


class DiaryJourney(Base):
    __tablename__ = "diary_journeys"
    __table_args__ = (UniqueConstraint("diary_id", "journey_id", name="uq_diary_journey"),)

    id = Column(Integer, primary_key=True, index=True)
    diary_id = Column(Integer, ForeignKey("diaries.id"), nullable=False)
    journey_id = Column(String, nullable=False)
    from_visit_id = Column(String, nullable=False)
    to_visit_id = Column(String, nullable=False)
    primary_transport = Column(String, nullable=False)
    transport_proportions = Column(JSON, nullable=False, default=dict)
    ping_count = Column(Integer, nullable=False)
    duration_s = Column(Integer, nullable=False)
    confidence = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=False)
    is_synthetic = Column(Boolean, default=False, nullable=False)

    confirmed_transport = Column(String, nullable=True)
    travel_reason = Column(Text, nullable=True)

    diary = relationship("Diary", back_populates="journeys")
    entries = relationship(
        "DiaryJourneyEntry", back_populates="journey", cascade="all, delete-orphan",
        order_by="DiaryJourneyEntry.position_in_journey",
    )


class DiaryJourneyEntry(Base):
    __tablename__ = "diary_journey_entries"

    id = Column(Integer, primary_key=True, index=True)
    diary_journey_id = Column(Integer, ForeignKey("diary_journeys.id"), nullable=False)
    entry_id = Column(String, nullable=False)
    position_in_journey = Column(Integer, nullable=False)

    journey = relationship("DiaryJourney", back_populates="entries")
