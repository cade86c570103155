"""Eligibility Gate - select the members allowed into this cycle"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger

from studymatch.data.schema import Member
from studymatch.storage.base import MemberStore


class EligibilityGate:
    """
    Members with completed intake whose cooldown has elapsed

    Read-only. A ``StoreUnavailableError`` from the member store is not
    caught here: it is the one error that aborts a cycle.
    """

    def __init__(self, member_store: MemberStore, cooldown: timedelta = timedelta(hours=24)):
        self.member_store = member_store
        self.cooldown = cooldown

    def eligible_members(self, now: Optional[datetime] = None) -> list[Member]:
        now = now or datetime.now(timezone.utc)
        members = self.member_store.list_eligible(self.cooldown, now)

        # The store filters already; re-apply so a lax backend cannot leak members in
        eligible = [m for m in members if m.intake_complete]
        if len(eligible) != len(members):
            logger.warning(f"Member store returned {len(members) - len(eligible)} members without completed intake")

        logger.info(f"Found {len(eligible)} eligible members (cooldown {self.cooldown})")
        return eligible
