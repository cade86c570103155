"""Match Persister - write a chosen pairing and its derived artifacts

The writes form a small saga without a transaction:

    matches (load-bearing) -> match_analytics (best-effort) -> conversations (best-effort)

Only the pairing write can fail the operation. Analytics and channel
failures leave the pairing in place and are reported on the result, which
makes the degraded state (pairing without channel) explicit to callers.
"""

from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from studymatch.data.schema import Channel, Pairing, PairingCandidate, PairingKind, PairingStatus
from studymatch.errors import DuplicatePairingError, StoreWriteError
from studymatch.storage.base import AnalyticsStore, ChannelStore, PairingStore


@dataclass
class PersistResult:
    """Outcome of persisting one pairing candidate"""
    pairing: Pairing
    channel: Optional[Channel] = None
    analytics_written: bool = False
    artifact_errors: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """Pairing exists but an artifact write failed"""
        return not self.analytics_written or self.channel is None


class MatchPersister:
    """Persist pairing candidates emitted by the assigner"""

    def __init__(self, pairings: PairingStore, analytics: AnalyticsStore, channels: ChannelStore):
        self.pairings = pairings
        self.analytics = analytics
        self.channels = channels

    def persist(self, candidate: PairingCandidate) -> PersistResult:
        """
        Write pairing -> analytics -> channel

        Args:
            candidate: Pair chosen by the assigner

        Returns:
            PersistResult with the stored pairing and whichever artifacts were written

        Raises:
            DuplicatePairingError: An active pairing for the pair already exists
                (re-check, or the store's unique index)
            StoreWriteError: The pairing row itself could not be written
        """
        a, b = candidate.member_a.id, candidate.member_b.id

        # Another cycle may have paired these two since assignment
        if self.pairings.exists(a, b):
            raise DuplicatePairingError(a, b)

        pairing = self.pairings.create(Pairing(
            member_a=a,
            member_b=b,
            kind=PairingKind.AUTO,
            status=PairingStatus.ACTIVE,
        ))
        result = PersistResult(pairing=pairing)

        try:
            self.analytics.create(pairing.id, candidate.score.total, candidate.score.breakdown)
            result.analytics_written = True
        except StoreWriteError as e:
            logger.warning(f"Pairing {pairing.id}: analytics not written: {e}")
            result.artifact_errors.append(f"Failed to record analytics for match {pairing.id}: {e.detail}")

        try:
            result.channel = self.channels.create(pairing.id)
            logger.info(f"Created conversation {result.channel.id} for match {pairing.id}")
        except StoreWriteError as e:
            logger.warning(f"Pairing {pairing.id}: conversation not created: {e}")
            result.artifact_errors.append(f"Failed to create conversation for match {pairing.id}: {e.detail}")

        return result
