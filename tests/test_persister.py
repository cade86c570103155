"""Tests for the pairing -> analytics -> channel write sequence"""

from unittest.mock import patch

import pytest

from studymatch.data.schema import Pairing, PairingCandidate, PairingKind, PairingStatus
from studymatch.errors import DuplicatePairingError, StoreWriteError
from studymatch.matching import CompatibilityScorer
from studymatch.pipeline.persister import MatchPersister


@pytest.fixture
def stores(db):
    return db.stores()


@pytest.fixture
def persister(stores):
    return MatchPersister(stores.pairings, stores.analytics, stores.channels)


@pytest.fixture
def candidate(make_member):
    a, b = make_member("a"), make_member("b")
    return PairingCandidate(member_a=a, member_b=b, score=CompatibilityScorer().score(a, b))


class TestPersistSuccess:

    def test_writes_all_artifacts(self, persister, candidate, db):
        result = persister.persist(candidate)

        assert not result.degraded
        assert result.artifact_errors == []

        pairing = db.pairings[result.pairing.id]
        assert (pairing.member_a, pairing.member_b) == ("a", "b")
        assert pairing.kind == PairingKind.AUTO
        assert pairing.status == PairingStatus.ACTIVE
        assert pairing.opening_message_sent is False

        assert len(db.analytics) == 1
        assert db.analytics[0].pairing_id == pairing.id
        assert db.analytics[0].score == 90
        assert db.analytics[0].breakdown["topicOverlap"] == 30

        assert result.channel is not None
        assert db.channels[result.channel.id].pairing_id == pairing.id


class TestDuplicatePrevention:

    def test_recheck_rejects_existing_pair(self, persister, candidate, stores, db):
        stores.pairings.add(Pairing(member_a="b", member_b="a"))

        with pytest.raises(DuplicatePairingError):
            persister.persist(candidate)

        assert len(db.pairings) == 1
        assert db.analytics == []
        assert db.channels == {}

    def test_dissolved_pair_can_be_paired_again(self, persister, candidate, stores, db):
        stores.pairings.add(Pairing(member_a="a", member_b="b", status=PairingStatus.DISSOLVED))

        result = persister.persist(candidate)

        assert result.pairing.status == PairingStatus.ACTIVE
        assert len(db.pairings) == 2

    def test_unique_index_race(self, persister, candidate, stores, db):
        """Another writer wins between the re-check and the insert"""
        stores.pairings.add(Pairing(member_a="a", member_b="b"))

        with patch.object(stores.pairings, "exists", return_value=False):
            with pytest.raises(DuplicatePairingError):
                persister.persist(candidate)

        assert len(db.pairings) == 1
        assert db.channels == {}


class TestDegradedWrites:

    def test_pairing_write_failure_raises(self, persister, candidate, db):
        db.fail("matches")

        with pytest.raises(StoreWriteError) as exc_info:
            persister.persist(candidate)

        assert exc_info.value.table == "matches"
        assert db.analytics == []
        assert db.channels == {}

    def test_analytics_failure_keeps_pairing(self, persister, candidate, db):
        db.fail("match_analytics")

        result = persister.persist(candidate)

        assert result.pairing.id in db.pairings
        assert result.analytics_written is False
        assert result.channel is not None
        assert result.degraded
        assert result.artifact_errors == [
            f"Failed to record analytics for match {result.pairing.id}: injected failure"
        ]

    def test_channel_failure_keeps_pairing(self, persister, candidate, db):
        db.fail("conversations")

        result = persister.persist(candidate)

        assert result.pairing.id in db.pairings
        assert result.analytics_written is True
        assert result.channel is None
        assert result.degraded
        assert result.artifact_errors == [
            f"Failed to create conversation for match {result.pairing.id}: injected failure"
        ]
