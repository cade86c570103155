"""Cycle Orchestrator - drives one auto-match cycle end to end

    FETCHING -> ASSIGNING -> PERSISTING (per pair) -> NOTIFYING -> DONE
    FETCHING -> FATAL_ERROR  (member store unreachable)

Only an unreachable member store during FETCHING is fatal. Every per-pair
and per-artifact failure is logged, recorded on the summary where it
affects a pair, and the cycle continues.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from loguru import logger

from studymatch.agents.icebreaker import IcebreakerGenerator, OpeningTextStrategy, select_opening_strategy
from studymatch.config import Settings, settings as default_settings
from studymatch.data.schema import CycleSummary, Member, PairingCandidate
from studymatch.errors import CycleAbortedError, DuplicatePairingError, StoreUnavailableError, StoreWriteError
from studymatch.matching.compatibility_scorer import CompatibilityScorer
from studymatch.matching.eligibility import EligibilityGate
from studymatch.matching.match_assigner import MatchAssigner
from studymatch.notifications import ExpoPushNotifier, Notifier
from studymatch.pipeline.persister import MatchPersister, PersistResult
from studymatch.storage.base import Stores


class CycleState(str, Enum):
    """Cycle states"""
    IDLE = "IDLE"
    FETCHING = "FETCHING"
    ASSIGNING = "ASSIGNING"
    PERSISTING = "PERSISTING"
    NOTIFYING = "NOTIFYING"
    DONE = "DONE"
    FATAL_ERROR = "FATAL_ERROR"


MATCH_NOTIFICATION_TITLE = "New Study Match! 🎓"


def cycle_window_key(now: datetime, minutes: int) -> str:
    """Lock key for the ``minutes``-long window containing ``now``"""
    window = minutes * 60
    start = int(now.timestamp()) // window * window
    return f"auto-match:{datetime.fromtimestamp(start, tz=timezone.utc).isoformat()}"


class CycleOrchestrator:
    """Run the eligibility -> assignment -> persistence -> notification pipeline"""

    def __init__(
        self,
        stores: Stores,
        scorer: Optional[CompatibilityScorer] = None,
        strategy: Optional[OpeningTextStrategy] = None,
        notifier: Optional[Notifier] = None,
        cooldown: timedelta = timedelta(hours=24),
        min_score: int = 40,
        engagement_ranking: bool = False,
        lock_minutes: int = 0,
    ):
        self.stores = stores
        self.gate = EligibilityGate(stores.members, cooldown)
        self.assigner = MatchAssigner(
            scorer=scorer,
            has_existing_pairing=stores.pairings.exists,
            min_score=min_score,
            engagement_ranking=engagement_ranking,
        )
        self.persister = MatchPersister(stores.pairings, stores.analytics, stores.channels)
        self.icebreaker = IcebreakerGenerator(stores.pairings, stores.messages, strategy)
        self.notifier = notifier
        self.lock_minutes = lock_minutes
        self.state = CycleState.IDLE

    @classmethod
    def from_settings(cls, stores: Stores, settings: Optional[Settings] = None) -> "CycleOrchestrator":
        """Build an orchestrator with strategy and notifier chosen from settings"""
        settings = settings or default_settings
        return cls(
            stores=stores,
            strategy=select_opening_strategy(settings),
            notifier=ExpoPushNotifier(
                stores.members,
                push_url=settings.expo_push_url,
                timeout=settings.notification_timeout_seconds,
            ),
            cooldown=settings.cooldown,
            min_score=settings.min_match_score,
            engagement_ranking=settings.engagement_ranking,
            lock_minutes=settings.cycle_lock_minutes,
        )

    def run(self, now: Optional[datetime] = None) -> CycleSummary:
        """
        Run one cycle

        Args:
            now: Cycle timestamp (defaults to current UTC time)

        Returns:
            CycleSummary with the number of pairings created and per-pair errors

        Raises:
            CycleAbortedError: The member store was unreachable
        """
        now = now or datetime.now(timezone.utc)
        summary = CycleSummary()

        logger.info("Starting auto-match cycle...")

        if not self._claim_window(now):
            summary.message = "Cycle already ran for this window"
            summary.state = self._transition(CycleState.DONE)
            return summary

        self._transition(CycleState.FETCHING)
        try:
            eligible = self.gate.eligible_members(now)
        except StoreUnavailableError as e:
            self._transition(CycleState.FATAL_ERROR)
            logger.error(f"Auto-match cycle aborted: {e}")
            raise CycleAbortedError(str(e), cause=e) from e

        if len(eligible) < 2:
            summary.message = "Not enough eligible users"
            summary.state = self._transition(CycleState.DONE)
            return summary

        self._transition(CycleState.ASSIGNING)
        candidates = self.assigner.assign(eligible)

        self._transition(CycleState.PERSISTING)
        created: list[tuple[PairingCandidate, PersistResult]] = []
        for candidate in candidates:
            result = self._process_pair(candidate, now, summary)
            if result is not None:
                created.append((candidate, result))

        self._transition(CycleState.NOTIFYING)
        for candidate, result in created:
            self._notify_pair(candidate, result)

        summary.matches_created = len(created)
        summary.state = self._transition(CycleState.DONE)

        logger.info(f"Auto-match cycle complete. Created {summary.matches_created} matches.")
        return summary

    def _process_pair(self, candidate: PairingCandidate, now: datetime, summary: CycleSummary) -> Optional[PersistResult]:
        """Persist one pair, send its opener and start both cooldowns"""
        a, b = candidate.member_a, candidate.member_b

        try:
            result = self.persister.persist(candidate)
        except DuplicatePairingError as e:
            logger.warning(f"Skipping pair: {e}")
            summary.errors.append(f"Skipped {a.id}/{b.id}: pairing already exists")
            return None
        except (StoreWriteError, StoreUnavailableError) as e:
            logger.warning(f"Failed to create match between {a.id} and {b.id}: {e}")
            summary.errors.append(f"Failed to create match between {a.id} and {b.id}: {e}")
            return None

        summary.errors.extend(result.artifact_errors)

        if result.channel is not None:
            self.icebreaker.generate(result.pairing, a, b, result.channel)
        else:
            logger.warning(f"Match {result.pairing.id} has no conversation, opener skipped")

        for member in (a, b):
            self._start_cooldown(member, now, summary)

        return result

    def _start_cooldown(self, member: Member, now: datetime, summary: CycleSummary) -> None:
        try:
            self.stores.members.update_last_cycle_at(member.id, now)
        except StoreWriteError as e:
            logger.warning(f"Could not update last cycle time for {member.id}: {e}")
            summary.errors.append(f"Failed to update cooldown for {member.id}: {e.detail}")

    def _notify_pair(self, candidate: PairingCandidate, result: PersistResult) -> None:
        if self.notifier is None:
            return
        data = {"type": "new_match", "matchId": result.pairing.id}
        for member, other in ((candidate.member_a, candidate.member_b), (candidate.member_b, candidate.member_a)):
            try:
                self.notifier.notify(member.id, MATCH_NOTIFICATION_TITLE, f"You matched with {other.display_name}", data)
            except Exception as e:
                logger.warning(f"Notification to {member.id} failed: {e}")

    def _claim_window(self, now: datetime) -> bool:
        if self.lock_minutes <= 0 or self.stores.locks is None:
            return True
        key = cycle_window_key(now, self.lock_minutes)
        try:
            return self.stores.locks.acquire(key)
        except StoreWriteError as e:
            # Advisory only: an unavailable lock table does not block the cycle
            logger.warning(f"Could not claim cycle window {key}: {e}")
            return True

    def _transition(self, state: CycleState) -> str:
        logger.debug(f"Cycle state {self.state.value} -> {state.value}")
        self.state = state
        return state.value
