"""Match Assigner - greedy one-pass pairing of the eligible pool"""

from typing import Callable, Optional

from loguru import logger

from studymatch.data.schema import CompatibilityScore, Member, PairingCandidate
from studymatch.errors import StoreUnavailableError
from studymatch.matching.compatibility_scorer import CompatibilityScorer
from studymatch.matching.engagement import adjust_score

ExistingPairingCheck = Callable[[str, str], bool]


def _affiliation_key(member: Member) -> Optional[str]:
    key = (member.affiliation or "").strip().lower()
    return key or None


class MatchAssigner:
    """
    Produce disjoint pairs from the pool, each at or above a minimum score

    The algorithm is a deterministic single pass: each unused member, in pool
    order, takes its best-scoring unused candidate from the same affiliation.
    Earlier commitments are never revisited, so the result is not a
    maximum-weight matching. Ties go to the candidate seen first in the pool.
    """

    def __init__(
        self,
        scorer: Optional[CompatibilityScorer] = None,
        has_existing_pairing: Optional[ExistingPairingCheck] = None,
        min_score: int = 40,
        engagement_ranking: bool = False,
    ):
        """
        Initialize match assigner

        Args:
            scorer: CompatibilityScorer (default instance if None)
            has_existing_pairing: Predicate (member_id, member_id) -> bool,
                queried lazily per candidate pair
            min_score: Minimum base total for a pair to be emitted
            engagement_ranking: Rank qualifying candidates by the
                engagement-adjusted total instead of the base total
        """
        self.scorer = scorer if scorer is not None else CompatibilityScorer()
        self.has_existing_pairing = has_existing_pairing or (lambda a, b: False)
        self.min_score = min_score
        self.engagement_ranking = engagement_ranking

    def assign(self, pool: list[Member], min_score: Optional[int] = None) -> list[PairingCandidate]:
        """
        Pair up the pool

        Args:
            pool: Eligible members, in the order they should be considered
            min_score: Override the configured minimum score

        Returns:
            Pairing candidates; no member id appears in more than one
        """
        threshold = self.min_score if min_score is None else min_score
        used: set[str] = set()
        pairings: list[PairingCandidate] = []

        for member in pool:
            if member.id in used:
                continue

            best = self._best_candidate(member, pool, used, threshold)
            if best is None:
                continue

            candidate, score = best
            pairings.append(PairingCandidate(member_a=member, member_b=candidate, score=score))
            used.add(member.id)
            used.add(candidate.id)

            logger.info(f"Matching {member.id} with {candidate.id} (score: {score.total})")

        logger.info(f"Assigned {len(pairings)} pairs from a pool of {len(pool)}")
        return pairings

    def _best_candidate(
        self,
        member: Member,
        pool: list[Member],
        used: set[str],
        threshold: int,
    ) -> Optional[tuple[Member, CompatibilityScore]]:
        """Highest-ranked qualifying candidate for ``member``, or None"""
        affiliation = _affiliation_key(member)
        if affiliation is None:
            logger.debug(f"Member {member.id} has no affiliation, skipping")
            return None

        candidates = [
            c for c in pool
            if c.id != member.id
            and c.id not in used
            and _affiliation_key(c) == affiliation
            and not self._already_paired(member, c)
        ]
        if not candidates:
            logger.debug(f"No candidates for member {member.id}")
            return None

        scored: list[tuple[Member, CompatibilityScore]] = []
        for candidate in candidates:
            score = self.scorer.score(member, candidate)
            if score.total < threshold:
                continue
            if self.engagement_ranking:
                score = adjust_score(score, member, candidate)
            scored.append((candidate, score))

        if not scored:
            logger.debug(f"No candidate for member {member.id} reaches {threshold}")
            return None

        # Stable sort: equal totals keep pool order
        scored.sort(key=lambda item: item[1].ranking_total, reverse=True)
        return scored[0]

    def _already_paired(self, member: Member, candidate: Member) -> bool:
        try:
            return self.has_existing_pairing(member.id, candidate.id)
        except StoreUnavailableError as e:
            # Unverifiable pairs are left out; the next cycle can pick them up
            logger.warning(f"Existing-pairing check failed for {member.id}/{candidate.id}: {e}")
            return True
