"""Tests for content fingerprints."""

import pytest

from oppdedupe.dedupe.fingerprint import fingerprint, fingerprint_record
from oppdedupe.parsing.normalizer import normalize


def test_fingerprint_is_sha256_hex(make_candidate):
    digest = fingerprint_record(make_candidate())
    assert len(digest) == 64
    assert all(c in "0123456789abcdef" for c in digest)


def test_fingerprint_is_deterministic(make_candidate):
    candidate = make_candidate()
    assert fingerprint(normalize(candidate)) == fingerprint(normalize(candidate))


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": "VISUAL ARTS GRANT 2024!!!"},
        {"title": "  visual   arts grant, 2024 "},
        {"organization": "national arts council."},
        {"deadline": "2024-12-31T17:45:00Z"},
        {"description": "Completely different description text"},
        {"url": "https://mirror.example.net/post/42"},
        {"source_type": "newsletter"},
    ],
)
def test_fingerprint_stable_under_cosmetic_changes(make_candidate, overrides):
    """Casing, punctuation, time-of-day, description and URL never change the hash."""
    assert fingerprint_record(make_candidate(**overrides)) == fingerprint_record(make_candidate())


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": "Visual Arts Grant 2025"},
        {"organization": "Regional Arts Council"},
        {"deadline": "2025-01-01"},
        {"organization": None},
        {"deadline": None},
    ],
)
def test_fingerprint_sensitive_to_identity_fields(make_candidate, overrides):
    assert fingerprint_record(make_candidate(**overrides)) != fingerprint_record(make_candidate())


def test_fingerprint_field_boundaries_matter(make_candidate):
    """Moving text between title and organization changes the hash."""
    a = make_candidate(title="Arts Grant", organization="Council North")
    b = make_candidate(title="Arts Grant Council", organization="North")
    assert fingerprint_record(a) != fingerprint_record(b)
