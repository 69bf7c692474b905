"""Tests for record normalization."""

from datetime import date, datetime, timezone

import pytest

from oppdedupe.dedupe.models import StoredOpportunity
from oppdedupe.parsing.normalizer import ABSENT, normalize, normalize_deadline, normalize_text


def test_normalize_text_strips_punctuation_and_case():
    assert normalize_text('  "ART  Grant" 2024!!! ') == "art grant 2024"


def test_normalize_text_keeps_word_boundaries():
    """Hyphens and slashes split words instead of joining them."""
    assert normalize_text("Grant-Program/Residency") == "grant program residency"


def test_normalize_text_joins_apostrophes():
    assert normalize_text("Artist's Residency") == "artists residency"


def test_normalize_text_empty():
    assert normalize_text(None) == ""
    assert normalize_text("   ") == ""


@pytest.mark.parametrize(
    "value",
    [
        "2024-12-31",
        "2024-12-31T00:00:00Z",
        "2024-12-31T23:59:59+05:00",
        date(2024, 12, 31),
        datetime(2024, 12, 31, 18, 30, tzinfo=timezone.utc),
    ],
)
def test_normalize_deadline_drops_time_of_day(value):
    assert normalize_deadline(value) == date(2024, 12, 31)


def test_normalize_deadline_absent():
    assert normalize_deadline(None) is ABSENT
    assert normalize_deadline("  ") is ABSENT


def test_normalize_deadline_rejects_garbage():
    with pytest.raises(ValueError):
        normalize_deadline("next friday")


def test_missing_optional_fields_are_absent_not_empty(make_candidate):
    fields = normalize(make_candidate(organization=None, deadline=None, description=""))

    assert fields.organization is ABSENT
    assert fields.deadline is ABSENT
    assert fields.description is ABSENT
    assert fields.organization != ""


def test_punctuation_only_organization_is_absent(make_candidate):
    fields = normalize(make_candidate(organization="---"))
    assert fields.organization is ABSENT


def test_absent_is_falsy_singleton():
    assert not ABSENT
    assert repr(ABSENT) == "ABSENT"


def test_normalize_stored_record_with_missing_fields():
    record = StoredOpportunity(
        id="OPP-1",
        title="  Artist Residency  ",
        url=" https://example.org/r ",
        discovered_at=datetime(2024, 11, 1, tzinfo=timezone.utc),
    )

    fields = normalize(record)

    assert fields.title == "artist residency"
    assert fields.url == "https://example.org/r"
    assert fields.description is ABSENT
