"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from oppdedupe.database.opportunity_repo import SqlRecordStore
from oppdedupe.database.schema import Base
from oppdedupe.dedupe.models import CandidateRecord

BASE_TIME = datetime(2024, 11, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def session():
    """Create a temporary in-memory database session for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(session):
    return SqlRecordStore(session)


@pytest.fixture
def make_candidate():
    """Factory for candidates with sensible defaults; override any field by keyword."""

    def _make(**overrides) -> CandidateRecord:
        fields = {
            "title": "Visual Arts Grant 2024",
            "description": "A comprehensive grant for visual artists working in contemporary mediums",
            "url": "https://example1.org/grant",
            "organization": "National Arts Council",
            "deadline": "2024-12-31",
            "source_type": "websearch",
            "discovered_at": BASE_TIME,
        }
        fields.update(overrides)
        return CandidateRecord(**fields)

    return _make
