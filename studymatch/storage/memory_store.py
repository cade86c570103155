"""
In-memory stores for tests and dry runs

All stores share one ``InMemoryDatabase`` so cross-table behaviour (the
pairing unique index, ``ai_message_sent`` updates, cooldown timestamps)
matches the Supabase backend. Individual tables can be made to fail to
exercise degraded states.
"""

import json
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from studymatch.data.schema import (
    Channel,
    Member,
    OpeningMessage,
    Pairing,
    PairingAnalytics,
    PairingStatus,
    ScoreBreakdown,
)
from studymatch.errors import DuplicatePairingError, StoreUnavailableError, StoreWriteError
from studymatch.storage.base import (
    AnalyticsStore,
    ChannelStore,
    CycleLockStore,
    MemberStore,
    MessageStore,
    PairingStore,
    Stores,
)


def _aware(timestamp: datetime) -> datetime:
    return timestamp if timestamp.tzinfo else timestamp.replace(tzinfo=timezone.utc)


class InMemoryDatabase:
    """Tables held in dicts/lists, guarded by one lock"""

    def __init__(self, members: Optional[list[Member]] = None):
        self._lock = threading.Lock()
        self.members: dict[str, Member] = {m.id: m for m in members or []}
        self.pairings: dict[str, Pairing] = {}
        self.analytics: list[PairingAnalytics] = []
        self.channels: dict[str, Channel] = {}
        self.messages: list[OpeningMessage] = []
        self.suggestions: list[dict] = []
        self.lock_keys: set[str] = set()

        # Failure injection
        self.members_unreachable = False
        self.failing_tables: set[str] = set()

    def fail(self, table: str) -> None:
        """Make every write to ``table`` raise StoreWriteError"""
        self.failing_tables.add(table)

    def check_write(self, table: str) -> None:
        if table in self.failing_tables:
            raise StoreWriteError(table, "injected failure")

    def active_pairing_for(self, member_a: str, member_b: str) -> Optional[Pairing]:
        key = frozenset((member_a, member_b))
        for pairing in self.pairings.values():
            if pairing.pair_key == key and pairing.status != PairingStatus.DISSOLVED:
                return pairing
        return None

    def stores(self, with_lock: bool = False) -> Stores:
        return Stores(
            members=InMemoryMemberStore(self),
            pairings=InMemoryPairingStore(self),
            analytics=InMemoryAnalyticsStore(self),
            channels=InMemoryChannelStore(self),
            messages=InMemoryMessageStore(self),
            locks=InMemoryCycleLockStore(self) if with_lock else None,
        )

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryDatabase":
        """Load members from a JSON list of ``users`` rows"""
        with open(path, "r", encoding="utf-8") as f:
            rows = json.load(f)
        members = [Member.model_validate(row) for row in rows]
        logger.info(f"Loaded {len(members)} members from {path}")
        return cls(members)


class InMemoryMemberStore(MemberStore):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def list_eligible(self, cooldown: timedelta, now: datetime) -> list[Member]:
        if self.db.members_unreachable:
            raise StoreUnavailableError("Error fetching users: member store unreachable")
        cutoff = _aware(now) - cooldown
        return [
            m.model_copy() for m in self.db.members.values()
            if m.intake_complete and (m.last_cycle_at is None or _aware(m.last_cycle_at) < cutoff)
        ]

    def get(self, member_id: str) -> Optional[Member]:
        if self.db.members_unreachable:
            raise StoreUnavailableError(f"Error fetching user {member_id}")
        member = self.db.members.get(member_id)
        return member.model_copy() if member else None

    def update_last_cycle_at(self, member_id: str, timestamp: datetime) -> None:
        self.db.check_write("users")
        with self.db._lock:
            member = self.db.members.get(member_id)
            if member is None:
                raise StoreWriteError("users", f"unknown member {member_id}")
            self.db.members[member_id] = member.model_copy(update={"last_cycle_at": _aware(timestamp)})


class InMemoryPairingStore(PairingStore):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def exists(self, member_a: str, member_b: str) -> bool:
        return self.db.active_pairing_for(member_a, member_b) is not None

    def create(self, pairing: Pairing) -> Pairing:
        self.db.check_write("matches")
        with self.db._lock:
            # Unique index on the unordered pair of non-dissolved pairings
            if self.db.active_pairing_for(pairing.member_a, pairing.member_b) is not None:
                raise DuplicatePairingError(pairing.member_a, pairing.member_b)
            stored = pairing.model_copy(update={
                "id": pairing.id or str(uuid.uuid4()),
                "created_at": pairing.created_at or datetime.now(timezone.utc),
            })
            self.db.pairings[stored.id] = stored
        return stored.model_copy()

    def mark_opening_sent(self, pairing_id: str) -> None:
        self.db.check_write("matches")
        with self.db._lock:
            pairing = self.db.pairings.get(pairing_id)
            if pairing is None:
                raise StoreWriteError("matches", f"unknown pairing {pairing_id}")
            self.db.pairings[pairing_id] = pairing.model_copy(update={"opening_message_sent": True})

    def add(self, pairing: Pairing) -> Pairing:
        """Seed an existing pairing (bypasses failure injection)"""
        stored = pairing.model_copy(update={"id": pairing.id or str(uuid.uuid4())})
        self.db.pairings[stored.id] = stored
        return stored


class InMemoryAnalyticsStore(AnalyticsStore):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, pairing_id: str, score: int, breakdown: ScoreBreakdown) -> None:
        self.db.check_write("match_analytics")
        self.db.analytics.append(
            PairingAnalytics(pairing_id=pairing_id, score=score, breakdown=breakdown.model_dump(by_alias=True))
        )


class InMemoryChannelStore(ChannelStore):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(self, pairing_id: str) -> Channel:
        self.db.check_write("conversations")
        channel = Channel(id=str(uuid.uuid4()), pairing_id=pairing_id)
        self.db.channels[channel.id] = channel
        return channel


class InMemoryMessageStore(MessageStore):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def create(
        self,
        channel_id: str,
        author_id: str,
        content: str,
        is_generated: bool,
        source_suggestion_id: Optional[str] = None,
    ) -> OpeningMessage:
        self.db.check_write("messages")
        message = OpeningMessage(
            id=str(uuid.uuid4()),
            channel_id=channel_id,
            author_id=author_id,
            content=content,
            is_generated=is_generated,
            source_suggestion_id=source_suggestion_id,
        )
        self.db.messages.append(message)
        return message

    def create_suggestion(self, sender_id: str, recipient_id: str, message: str, strategy: str) -> Optional[str]:
        self.db.check_write("suggested_messages")
        suggestion_id = str(uuid.uuid4())
        self.db.suggestions.append({
            "id": suggestion_id,
            "sender_id": sender_id,
            "recipient_id": recipient_id,
            "message": message,
            "strategy": strategy,
        })
        return suggestion_id


class InMemoryCycleLockStore(CycleLockStore):

    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def acquire(self, key: str) -> bool:
        with self.db._lock:
            if key in self.db.lock_keys:
                return False
            self.db.lock_keys.add(key)
            return True
