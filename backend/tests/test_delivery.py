"""NotificationDelivery: claim-first idempotency and per-user results."""

import pytest

from fakes import FakeClock, FakeDatabase, FakePushClient, subscription_row
from live_sync.composer import NotificationComposer
from live_sync.delivery import NotificationDelivery
from live_sync.dispatcher import PushDispatcher
from live_sync.subscriptions import SubscriptionHealthChecker
from utils.errors import TransientProviderError


def _delivery(db, push):
    checker = SubscriptionHealthChecker(db, push, clock=FakeClock())
    return NotificationDelivery(db, checker, PushDispatcher(push, checker), environment="dev", concurrency=2)


def _notifications(*users):
    composer = NotificationComposer()
    return [composer.compose_gameweek_complete(3, user, 5, 10) for user in users]


@pytest.mark.asyncio
async def test_delivers_once_per_event_and_user():
    db = FakeDatabase()
    db.subscriptions = [subscription_row("u1", "p1"), subscription_row("u2", "p2")]
    push = FakePushClient()
    delivery = _delivery(db, push)

    first = await delivery.deliver(_notifications("u1", "u2"))
    second = await delivery.deliver(_notifications("u1", "u2"))

    assert first == {"accepted": 2}
    assert second == {"suppressed_duplicate": 2}
    assert len(push.sent) == 2
    assert db.results() == ["accepted", "accepted"]
    log = next(iter(db.send_log.values()))
    assert log["environment"] == "dev"
    assert log["notification_key"] == "gameweek-complete"
    assert log["onesignal_notification_id"] == "notif-1"


@pytest.mark.asyncio
async def test_user_without_deliverable_device_is_suppressed():
    db = FakeDatabase()
    db.subscriptions = [
        subscription_row("u1", "p1", subscribed=False),
        subscription_row("u1", "p2", invalid=True),
    ]
    push = FakePushClient()
    push.players["p1"] = {"notification_types": -2}
    result = await _delivery(db, push).deliver(_notifications("u1", "u2"))
    assert result == {"suppressed_unsubscribed": 2}
    assert push.sent == []
    assert db.results() == ["suppressed_unsubscribed", "suppressed_unsubscribed"]


@pytest.mark.asyncio
async def test_all_devices_of_a_user_targeted():
    db = FakeDatabase()
    db.subscriptions = [subscription_row("u1", "p1"), subscription_row("u1", "p2")]
    push = FakePushClient()
    await _delivery(db, push).deliver(_notifications("u1"))
    assert sorted(push.sent[0]["player_ids"]) == ["p1", "p2"]


@pytest.mark.asyncio
async def test_provider_rejection_recorded_as_failed():
    db = FakeDatabase()
    db.subscriptions = [subscription_row("u1", "p1")]
    push = FakePushClient()
    push.response = {"errors": ["HTTP 400"]}
    result = await _delivery(db, push).deliver(_notifications("u1"))
    assert result == {"failed": 1}
    assert db.results() == ["failed"]


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_the_batch():
    db = FakeDatabase()
    db.subscriptions = [subscription_row("u1", "p1"), subscription_row("u2", "p2")]
    original_claim = db.claim_send_log

    def claim(environment, key, event_id, user_id):
        if user_id == "u1":
            raise RuntimeError("db down")
        return original_claim(environment, key, event_id, user_id)

    db.claim_send_log = claim
    result = await _delivery(db, FakePushClient()).deliver(_notifications("u1", "u2"))
    assert result == {"retry": 1, "accepted": 1}
    assert db.results() == ["accepted"]


@pytest.mark.asyncio
async def test_provider_outage_releases_claim_for_next_cycle():
    db = FakeDatabase()
    db.subscriptions = [subscription_row("u1", "p1"), subscription_row("u2", "p2")]
    push = FakePushClient()
    push.response = TransientProviderError("Push provider error 503", status_code=503)
    delivery = _delivery(db, push)

    first = await delivery.deliver(_notifications("u1", "u2"))
    assert first == {"retry": 2}
    assert db.send_log == {}

    push.response = {"id": "notif-2", "recipients": 1}
    second = await delivery.deliver(_notifications("u1", "u2"))
    assert second == {"accepted": 2}
    assert db.results() == ["accepted", "accepted"]


@pytest.mark.asyncio
async def test_unexpected_error_after_claim_releases_it():
    db = FakeDatabase()
    db.subscriptions = [subscription_row("u1", "p1")]
    push = FakePushClient()
    push.response = RuntimeError("socket closed")
    result = await _delivery(db, push).deliver(_notifications("u1"))
    assert result == {"retry": 1}
    assert db.send_log == {}


@pytest.mark.asyncio
async def test_subscription_load_failure_is_retried():
    db = FakeDatabase()

    def broken(user_ids):
        raise RuntimeError("db down")

    db.get_push_subscriptions = broken
    push = FakePushClient()
    result = await _delivery(db, push).deliver(_notifications("u1", "u2"))
    assert result == {"retry": 2}
    assert push.sent == []
