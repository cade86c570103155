"""Tests for eligibility filtering and greedy pair assignment"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from studymatch.errors import StoreUnavailableError
from studymatch.matching import EligibilityGate, MatchAssigner
from studymatch.storage.memory_store import InMemoryDatabase


def _ids(pairings) -> list[tuple[str, str]]:
    return [(p.member_a.id, p.member_b.id) for p in pairings]


class TestMatchAssigner:
    """Greedy assignment over the eligible pool"""

    @pytest.fixture
    def assigner(self):
        return MatchAssigner()

    def test_pairs_compatible_members(self, assigner, make_member):
        pool = [make_member("a"), make_member("b")]

        pairings = assigner.assign(pool)

        assert _ids(pairings) == [("a", "b")]
        assert pairings[0].score.total == 90

    def test_below_threshold_not_paired(self, assigner, make_member):
        a = make_member("a", topics=["History"], interaction_style="quiet", goal="ace_exams", seniority="freshman")
        b = make_member("b", topics=["Chemistry"], interaction_style="group_discussion", goal="just_pass", seniority="senior")
        # 20 + 0 + 10 + 5 + 2 + 1

        assert assigner.assign([a, b]) == []

    def test_score_equal_to_threshold_is_paired(self, assigner, make_member):
        a = make_member("a", topics=["History"], interaction_style="quiet", goal="ace_exams", seniority="freshman")
        b = make_member("b", topics=["Chemistry"], interaction_style="group_discussion", goal="just_pass", seniority="senior")

        pairings = assigner.assign([a, b], min_score=38)

        assert _ids(pairings) == [("a", "b")]
        assert pairings[0].score.total == 38

    def test_members_used_at_most_once(self, assigner, make_member):
        pool = [make_member(member_id) for member_id in "abcde"]

        pairings = assigner.assign(pool)

        seen = [member_id for pair in _ids(pairings) for member_id in pair]
        assert len(seen) == len(set(seen))
        assert len(pairings) == 2

    def test_ties_go_to_first_candidate_in_pool(self, assigner, make_member):
        pool = [make_member("a"), make_member("b"), make_member("c")]

        assert _ids(assigner.assign(pool)) == [("a", "b")]

    def test_best_candidate_wins(self, assigner, make_member):
        pool = [
            make_member("a"),
            make_member("b", goal="understand_concepts"),
            make_member("c"),
        ]

        assert _ids(assigner.assign(pool)) == [("a", "c")]

    def test_earlier_commitments_not_revisited(self, assigner, make_member):
        """b would be c's best partner but a claimed it first"""
        pool = [
            make_member("a", goal="understand_concepts", seniority="senior"),
            make_member("b"),
            make_member("c", topics=["Calculus"]),
        ]

        pairings = assigner.assign(pool)

        assert _ids(pairings) == [("a", "b")]

    def test_different_affiliations_never_paired(self, assigner, make_member):
        pool = [make_member("a"), make_member("b", affiliation="City College")]

        assert assigner.assign(pool) == []

    def test_affiliation_compared_case_insensitively(self, assigner, make_member):
        pool = [make_member("a", affiliation="state university"), make_member("b", affiliation="STATE UNIVERSITY ")]

        assert _ids(assigner.assign(pool)) == [("a", "b")]

    def test_missing_affiliation_never_paired(self, assigner, make_member):
        pool = [make_member("a", affiliation=None), make_member("b", affiliation=None)]

        assert assigner.assign(pool) == []

    def test_empty_and_single_pool(self, assigner, make_member):
        assert assigner.assign([]) == []
        assert assigner.assign([make_member("a")]) == []


class TestExistingPairingCheck:
    """Pairs that already exist are skipped"""

    def test_existing_pair_skipped(self, make_member):
        check = Mock(side_effect=lambda a, b: {a, b} == {"a", "b"})
        assigner = MatchAssigner(has_existing_pairing=check)
        pool = [make_member("a"), make_member("b"), make_member("c")]

        assert _ids(assigner.assign(pool)) == [("a", "c")]

    def test_check_only_for_same_affiliation(self, make_member):
        check = Mock(return_value=False)
        assigner = MatchAssigner(has_existing_pairing=check)
        pool = [make_member("a"), make_member("x", affiliation="City College"), make_member("b")]

        assigner.assign(pool)

        checked = {frozenset(call.args) for call in check.call_args_list}
        assert frozenset({"a", "b"}) in checked
        assert all("x" not in pair for pair in checked)

    def test_check_failure_excludes_candidate(self, make_member):
        def check(a, b):
            if {a, b} == {"a", "b"}:
                raise StoreUnavailableError("timeout")
            return False

        assigner = MatchAssigner(has_existing_pairing=check)
        pool = [make_member("a"), make_member("b"), make_member("c")]

        assert _ids(assigner.assign(pool)) == [("a", "c")]


class TestEngagementRanking:
    """Optional ranking by engagement-adjusted totals"""

    @pytest.fixture
    def pool(self, make_member):
        return [
            make_member("m"),
            # Base 90, adjusted 92 (over-matched, low engagement)
            make_member("c1", total_matches=5, successful_matches=0, avg_messages_per_match=1),
            # Base 87, adjusted 102 (fresh)
            make_member("c2", goal="understand_concepts", seniority="senior"),
        ]

    def test_base_total_ranking(self, pool):
        assert _ids(MatchAssigner().assign(pool)) == [("m", "c1")]

    def test_adjusted_ranking(self, pool):
        pairings = MatchAssigner(engagement_ranking=True).assign(pool)

        assert _ids(pairings) == [("m", "c2")]
        assert pairings[0].score.total == 87
        assert pairings[0].score.adjusted_total == 102

    def test_adjustment_does_not_lift_below_threshold(self, make_member):
        a = make_member("a", topics=["History"], interaction_style="quiet", goal="ace_exams", seniority="freshman")
        b = make_member("b", topics=["Chemistry"], interaction_style="group_discussion", goal="just_pass", seniority="senior")

        assert MatchAssigner(engagement_ranking=True).assign([a, b]) == []


class TestEligibilityGate:
    """Intake and cooldown filtering"""

    def test_filters_intake_and_cooldown(self, make_member, now):
        db = InMemoryDatabase([
            make_member("fresh"),
            make_member("incomplete", intake_complete=False),
            make_member("cooling", last_cycle_at=now - timedelta(hours=1)),
            make_member("expired", last_cycle_at=now - timedelta(hours=25)),
        ])
        gate = EligibilityGate(db.stores().members, cooldown=timedelta(hours=24))

        eligible = gate.eligible_members(now)

        assert sorted(m.id for m in eligible) == ["expired", "fresh"]

    def test_cooldown_boundary_is_exclusive(self, make_member, now):
        db = InMemoryDatabase([make_member("edge", last_cycle_at=now - timedelta(hours=24))])
        gate = EligibilityGate(db.stores().members, cooldown=timedelta(hours=24))

        assert gate.eligible_members(now) == []

    def test_refilters_lax_store(self, make_member, now):
        store = Mock()
        store.list_eligible.return_value = [make_member("ok"), make_member("nope", intake_complete=False)]
        gate = EligibilityGate(store)

        assert [m.id for m in gate.eligible_members(now)] == ["ok"]

    def test_unreachable_store_propagates(self, db, now):
        db.members_unreachable = True
        gate = EligibilityGate(db.stores().members)

        with pytest.raises(StoreUnavailableError):
            gate.eligible_members(now)
