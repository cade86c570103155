"""Tests for Expo push notifications"""

import json

import httpx

from studymatch.notifications import ExpoPushNotifier
from studymatch.storage.memory_store import InMemoryDatabase


PUSH_URL = "https://push.test/send"


def _notifier(db, handler) -> ExpoPushNotifier:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ExpoPushNotifier(db.stores().members, push_url=PUSH_URL, client=client)


class TestExpoPushNotifier:

    def test_posts_to_push_token(self, make_member):
        db = InMemoryDatabase([make_member("a", push_token="ExponentPushToken[abc]")])
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"status": "ok"}})

        sent = _notifier(db, handler).notify("a", "New Study Match!", "You matched with Bo", {"matchId": "p1"})

        assert sent is True
        assert len(requests) == 1
        assert str(requests[0].url) == PUSH_URL
        assert json.loads(requests[0].content) == {
            "to": "ExponentPushToken[abc]",
            "sound": "default",
            "title": "New Study Match!",
            "body": "You matched with Bo",
            "data": {"matchId": "p1"},
        }

    def test_member_without_token_skipped(self, make_member):
        db = InMemoryDatabase([make_member("a")])
        calls = []

        sent = _notifier(db, lambda request: calls.append(request) or httpx.Response(200)).notify("a", "t", "b")

        assert sent is False
        assert calls == []

    def test_unknown_member_skipped(self, db):
        sent = _notifier(db, lambda request: httpx.Response(200)).notify("ghost", "t", "b")

        assert sent is False

    def test_http_error_swallowed(self, make_member):
        db = InMemoryDatabase([make_member("a", push_token="tok")])

        sent = _notifier(db, lambda request: httpx.Response(500)).notify("a", "t", "b")

        assert sent is False

    def test_transport_error_swallowed(self, make_member):
        db = InMemoryDatabase([make_member("a", push_token="tok")])

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        assert _notifier(db, handler).notify("a", "t", "b") is False

    def test_member_store_failure_swallowed(self, make_member):
        db = InMemoryDatabase([make_member("a", push_token="tok")])
        db.members_unreachable = True

        assert _notifier(db, lambda request: httpx.Response(200)).notify("a", "t", "b") is False
