"""Push notification fan-out via the Expo push service"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from loguru import logger

from studymatch.config import settings as default_settings
from studymatch.storage.base import MemberStore


class Notifier(ABC):
    """Fire-and-forget notification delivery"""

    @abstractmethod
    def notify(self, member_id: str, title: str, body: str, data: Optional[dict[str, Any]] = None) -> bool:
        """Deliver a notification; return False on failure instead of raising"""


class ExpoPushNotifier(Notifier):
    """
    Sends notifications to a member's registered Expo push token

    Members without a token are skipped. Failures are logged, never raised,
    and not retried.
    """

    def __init__(
        self,
        member_store: MemberStore,
        push_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.member_store = member_store
        self.push_url = push_url or default_settings.expo_push_url
        self.client = client or httpx.Client(timeout=timeout or default_settings.notification_timeout_seconds)

    def notify(self, member_id: str, title: str, body: str, data: Optional[dict[str, Any]] = None) -> bool:
        try:
            member = self.member_store.get(member_id)
            if member is None or not member.push_token:
                logger.debug(f"No push token for member {member_id}, skipping notification")
                return False

            response = self.client.post(
                self.push_url,
                json={
                    "to": member.push_token,
                    "sound": "default",
                    "title": title,
                    "body": body,
                    "data": data or {},
                },
                headers={
                    "Accept": "application/json",
                    "Accept-encoding": "gzip, deflate",
                    "Content-Type": "application/json",
                },
            )
            response.raise_for_status()
            logger.info(f"Sent notification to member {member_id}")
            return True

        except Exception as e:
            logger.warning(f"Error sending push notification to {member_id}: {e}")
            return False

    def close(self) -> None:
        self.client.close()
