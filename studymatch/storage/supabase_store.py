"""
Supabase-backed stores for the auto-match cycle

Tables: users, matches, match_analytics, conversations, messages,
suggested_messages, auto_match_runs (see sql/schema.sql).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from loguru import logger
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client, create_client

from studymatch.config import settings
from studymatch.data.schema import Channel, Member, OpeningMessage, Pairing, ScoreBreakdown
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

UNIQUE_VIOLATION = "23505"

_admin_client: Optional[Client] = None


def get_admin_client() -> Client:
    """Get or create the singleton Supabase client (service role key)"""
    global _admin_client
    if _admin_client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise ValueError("Missing Supabase configuration. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.")
        _admin_client = create_client(settings.supabase_url, settings.supabase_service_role_key)
    return _admin_client


def _iso(timestamp: datetime) -> str:
    """UTC ISO-8601 with a 'Z' suffix (safe inside PostgREST filter strings)"""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _member_from_row(row: dict[str, Any]) -> Optional[Member]:
    """Validate one users row; rows that do not fit the model are skipped"""
    try:
        return Member.model_validate(row)
    except ValidationError as e:
        logger.warning(f"Skipping user {row.get('id')}: malformed profile ({e.error_count()} invalid fields)")
        return None


def _is_unique_violation(error: APIError) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION


def _insert_one(client: Client, table: str, row: dict[str, Any]) -> dict[str, Any]:
    """Insert a row and return it, raising StoreWriteError on failure"""
    try:
        response = client.table(table).insert(row).execute()
    except APIError as e:
        raise StoreWriteError(table, e.message or str(e)) from e
    except Exception as e:
        raise StoreWriteError(table, str(e)) from e
    if not response.data:
        raise StoreWriteError(table, "insert returned no row")
    return response.data[0]


class SupabaseMemberStore(MemberStore):

    def __init__(self, client: Client):
        self.client = client

    def list_eligible(self, cooldown: timedelta, now: datetime) -> list[Member]:
        cutoff = _iso(now - cooldown)
        try:
            response = (
                self.client.table("users")
                .select("*")
                .eq("onboarding_completed", True)
                .or_(f"last_auto_match_cycle.is.null,last_auto_match_cycle.lt.{cutoff}")
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Error fetching users: {e}") from e
        members = (_member_from_row(row) for row in response.data or [])
        return [m for m in members if m is not None]

    def get(self, member_id: str) -> Optional[Member]:
        try:
            response = self.client.table("users").select("*").eq("id", member_id).limit(1).execute()
        except Exception as e:
            raise StoreUnavailableError(f"Error fetching user {member_id}: {e}") from e
        if not response.data:
            return None
        return _member_from_row(response.data[0])

    def update_last_cycle_at(self, member_id: str, timestamp: datetime) -> None:
        try:
            self.client.table("users").update({"last_auto_match_cycle": _iso(timestamp)}).eq("id", member_id).execute()
        except Exception as e:
            raise StoreWriteError("users", str(e)) from e


class SupabasePairingStore(PairingStore):

    def __init__(self, client: Client):
        self.client = client

    def exists(self, member_a: str, member_b: str) -> bool:
        try:
            response = (
                self.client.table("matches")
                .select("id")
                .or_(
                    f"and(user1_id.eq.{member_a},user2_id.eq.{member_b}),"
                    f"and(user1_id.eq.{member_b},user2_id.eq.{member_a})"
                )
                .neq("status", "dissolved")
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Error checking pairing {member_a}/{member_b}: {e}") from e
        return bool(response.data)

    def create(self, pairing: Pairing) -> Pairing:
        row = pairing.model_dump(by_alias=True, mode="json", exclude={"id", "created_at"})
        try:
            response = self.client.table("matches").insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                raise DuplicatePairingError(pairing.member_a, pairing.member_b) from e
            raise StoreWriteError("matches", e.message or str(e)) from e
        except Exception as e:
            raise StoreWriteError("matches", str(e)) from e
        if not response.data:
            raise StoreWriteError("matches", "insert returned no row")
        return Pairing.model_validate(response.data[0])

    def mark_opening_sent(self, pairing_id: str) -> None:
        try:
            self.client.table("matches").update({"ai_message_sent": True}).eq("id", pairing_id).execute()
        except Exception as e:
            raise StoreWriteError("matches", str(e)) from e


class SupabaseAnalyticsStore(AnalyticsStore):

    def __init__(self, client: Client):
        self.client = client

    def create(self, pairing_id: str, score: int, breakdown: ScoreBreakdown) -> None:
        _insert_one(self.client, "match_analytics", {
            "match_id": pairing_id,
            "compatibility_score": score,
            "score_breakdown": breakdown.model_dump(by_alias=True),
        })


class SupabaseChannelStore(ChannelStore):

    def __init__(self, client: Client):
        self.client = client

    def create(self, pairing_id: str) -> Channel:
        return Channel.model_validate(_insert_one(self.client, "conversations", {"match_id": pairing_id}))


class SupabaseMessageStore(MessageStore):

    def __init__(self, client: Client):
        self.client = client

    def create(
        self,
        channel_id: str,
        author_id: str,
        content: str,
        is_generated: bool,
        source_suggestion_id: Optional[str] = None,
    ) -> OpeningMessage:
        row = _insert_one(self.client, "messages", {
            "conversation_id": channel_id,
            "sender_id": author_id,
            "content": content,
            "message_type": "text",
            "status": "sent",
            "is_ai_generated": is_generated,
            "suggested_message_id": source_suggestion_id,
        })
        return OpeningMessage.model_validate(row)

    def create_suggestion(self, sender_id: str, recipient_id: str, message: str, strategy: str) -> Optional[str]:
        row = _insert_one(self.client, "suggested_messages", {
            "sender_id": sender_id,
            "recipient_id": recipient_id,
            "message": message,
            "strategy": strategy,
        })
        return row.get("id")


class SupabaseCycleLockStore(CycleLockStore):

    def __init__(self, client: Client):
        self.client = client

    def acquire(self, key: str) -> bool:
        try:
            self.client.table("auto_match_runs").insert({"window_key": key}).execute()
        except APIError as e:
            if _is_unique_violation(e):
                logger.info(f"Cycle window {key} already claimed")
                return False
            raise StoreWriteError("auto_match_runs", e.message or str(e)) from e
        except Exception as e:
            raise StoreWriteError("auto_match_runs", str(e)) from e
        return True


def build_supabase_stores(client: Optional[Client] = None, with_lock: bool = False) -> Stores:
    """Wire every store to one Supabase client"""
    client = client or get_admin_client()
    return Stores(
        members=SupabaseMemberStore(client),
        pairings=SupabasePairingStore(client),
        analytics=SupabaseAnalyticsStore(client),
        channels=SupabaseChannelStore(client),
        messages=SupabaseMessageStore(client),
        locks=SupabaseCycleLockStore(client) if with_lock else None,
    )
