"""Abstract store interfaces consumed by the auto-match cycle

Implementations translate backend failures into the exceptions in
``studymatch.errors``: reads on the member store raise
``StoreUnavailableError``; writes raise ``StoreWriteError`` (or
``DuplicatePairingError`` when the pairing unique index rejects a row).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from studymatch.data.schema import Channel, Member, OpeningMessage, Pairing, ScoreBreakdown


class MemberStore(ABC):

    @abstractmethod
    def list_eligible(self, cooldown: timedelta, now: datetime) -> list[Member]:
        """Members with completed intake whose last cycle is older than ``now - cooldown``"""

    @abstractmethod
    def get(self, member_id: str) -> Optional[Member]:
        ...

    @abstractmethod
    def update_last_cycle_at(self, member_id: str, timestamp: datetime) -> None:
        ...


class PairingStore(ABC):

    @abstractmethod
    def exists(self, member_a: str, member_b: str) -> bool:
        """True if a non-dissolved pairing exists for the unordered pair"""

    @abstractmethod
    def create(self, pairing: Pairing) -> Pairing:
        ...

    @abstractmethod
    def mark_opening_sent(self, pairing_id: str) -> None:
        ...


class AnalyticsStore(ABC):

    @abstractmethod
    def create(self, pairing_id: str, score: int, breakdown: ScoreBreakdown) -> None:
        ...


class ChannelStore(ABC):

    @abstractmethod
    def create(self, pairing_id: str) -> Channel:
        ...


class MessageStore(ABC):

    @abstractmethod
    def create(
        self,
        channel_id: str,
        author_id: str,
        content: str,
        is_generated: bool,
        source_suggestion_id: Optional[str] = None,
    ) -> OpeningMessage:
        ...

    @abstractmethod
    def create_suggestion(self, sender_id: str, recipient_id: str, message: str, strategy: str) -> Optional[str]:
        """Store a suggested opener and return its id"""


class CycleLockStore(ABC):

    @abstractmethod
    def acquire(self, key: str) -> bool:
        """Claim a cycle-window key; False if it was already claimed"""


@dataclass
class Stores:
    """The set of stores one cycle runs against"""
    members: MemberStore
    pairings: PairingStore
    analytics: AnalyticsStore
    channels: ChannelStore
    messages: MessageStore
    locks: Optional[CycleLockStore] = None
