"""Store interfaces and backends (Supabase, in-memory)"""

from studymatch.storage.base import (
    AnalyticsStore,
    ChannelStore,
    CycleLockStore,
    MemberStore,
    MessageStore,
    PairingStore,
    Stores,
)

__all__ = [
    "AnalyticsStore",
    "ChannelStore",
    "CycleLockStore",
    "MemberStore",
    "MessageStore",
    "PairingStore",
    "Stores",
]
