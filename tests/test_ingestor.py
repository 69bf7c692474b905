"""Tests for applying dedup decisions during discovery ingestion."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from oppdedupe.dedupe.models import DecisionAction, OpportunityStatus
from oppdedupe.ingestion.ingestor import DiscoveryIngestor

from conftest import BASE_TIME


def _similar(make_candidate):
    return make_candidate(
        title="Visual Arts Grant Program 2024",
        description="A comprehensive grant program for visual artists in contemporary art",
        url="https://example2.org",
        source_type="newsletter",
        discovered_at=BASE_TIME + timedelta(days=1),
    )


def test_new_opportunity_is_created(session, make_candidate):
    ingestor = DiscoveryIngestor(session)

    decision = ingestor.ingest(make_candidate())

    assert decision.action == DecisionAction.NEW_OPPORTUNITY
    assert ingestor.store.count_all() == 1
    stored = ingestor.store.find_by_url_or_fingerprint("https://example1.org/grant", decision.hash)
    assert stored.source_hash == decision.hash
    assert len(ingestor.store.list_source_links(stored.id)) == 1


def test_exact_duplicate_adds_source(session, make_candidate):
    ingestor = DiscoveryIngestor(session)
    first = ingestor.ingest(make_candidate())
    existing = ingestor.store.find_by_url_or_fingerprint("https://example1.org/grant", first.hash)

    decision = ingestor.ingest(
        make_candidate(url="https://mirror.example.net/1", source_type="social", source_url="https://social.example/p/9")
    )

    assert decision.action == DecisionAction.SOURCE_ADDED
    assert decision.existing_id == existing.id
    assert ingestor.store.count_all() == 1
    assert len(ingestor.store.list_source_links(existing.id)) == 2


def test_fuzzy_duplicate_is_archived_and_linked(session, make_candidate):
    ingestor = DiscoveryIngestor(session)
    ingestor.ingest(make_candidate())

    decision = ingestor.ingest(_similar(make_candidate))

    assert decision.action == DecisionAction.DUPLICATE_LINKED
    assert ingestor.store.count_all() == 2
    links = ingestor.store.list_duplicate_links(decision.existing_id)
    assert len(links) == 1
    assert links[0].merge_strategy == "keep_master"
    assert links[0].similarity_score == pytest.approx(decision.similarity_score)
    occurrence = ingestor.store.get(links[0].duplicate_id)
    assert occurrence.status == OpportunityStatus.ARCHIVED.value


def test_ingest_many_counts(session, make_candidate):
    ingestor = DiscoveryIngestor(session)
    batch = [
        make_candidate(),
        make_candidate(url="https://mirror.example.net/1"),
        _similar(make_candidate),
        make_candidate(title="???", url="https://bad.example.org"),
        make_candidate(
            title="Music Composition Fellowship",
            organization="Music Foundation B",
            description="Fellowship supporting composers writing new chamber music",
            url="https://music.example.org",
        ),
    ]

    counts = ingestor.ingest_many(batch)

    assert counts == {
        "new_opportunity": 2,
        "source_added": 1,
        "duplicate_linked": 1,
        "invalid": 1,
    }


def test_url_conflict_is_rechecked(session, make_candidate, monkeypatch):
    """A concurrent insert of the same URL between check and create becomes a source link."""
    ingestor = DiscoveryIngestor(session)
    winner = ingestor.store.create(
        make_candidate(title="Printmaking Residency", organization="Studio North", description="Residency"),
        "winner-hash",
    )
    session.commit()

    real_lookup = ingestor.store.find_by_url_or_fingerprint
    calls = []

    def lookup_missing_first_time(url, fingerprint):
        calls.append(url)
        return None if len(calls) == 1 else real_lookup(url, fingerprint)

    monkeypatch.setattr(ingestor.store, "find_by_url_or_fingerprint", lookup_missing_first_time)

    decision = ingestor.ingest(make_candidate())

    assert len(calls) == 2
    assert decision.action == DecisionAction.SOURCE_ADDED
    assert decision.existing_id == winner.id
    assert ingestor.store.count_all() == 1


def test_persistent_conflict_raises(session, make_candidate, monkeypatch):
    ingestor = DiscoveryIngestor(session)
    ingestor.store.create(
        make_candidate(title="Printmaking Residency", organization="Studio North", description="Residency"),
        "winner-hash",
    )
    session.commit()
    monkeypatch.setattr(ingestor.store, "find_by_url_or_fingerprint", lambda url, fingerprint: None)

    with pytest.raises(IntegrityError):
        ingestor.ingest(make_candidate())


def test_repeat_of_linked_duplicate_adds_source_to_master(session, make_candidate):
    ingestor = DiscoveryIngestor(session)
    master = ingestor.ingest(make_candidate())
    linked = ingestor.ingest(_similar(make_candidate))

    decision = ingestor.ingest(
        make_candidate(
            title="Visual Arts Grant Program 2024",
            url="https://example2.org",
            source_type="social",
            source_url="https://social.example/p/3",
            discovered_at=BASE_TIME + timedelta(days=2),
        )
    )

    assert decision.action == DecisionAction.SOURCE_ADDED
    assert decision.existing_id == linked.existing_id
    canonical = ingestor.store.get(decision.existing_id)
    assert canonical.status != OpportunityStatus.ARCHIVED.value
    assert canonical.source_hash == master.hash
    assert ingestor.store.count_all() == 2


def test_later_near_duplicate_links_to_master_not_occurrence(session, make_candidate):
    ingestor = DiscoveryIngestor(session)
    master = ingestor.ingest(make_candidate())
    ingestor.ingest(_similar(make_candidate))

    decision = ingestor.ingest(
        make_candidate(
            title="Visual Arts Grant Program 2024 Open Call",
            description="A comprehensive grant program for visual artists in contemporary art",
            url="https://example3.org",
            discovered_at=BASE_TIME + timedelta(days=2),
        )
    )

    assert decision.action == DecisionAction.DUPLICATE_LINKED
    stored_master = ingestor.store.find_by_url_or_fingerprint("https://example1.org/grant", master.hash)
    assert decision.existing_id == stored_master.id
