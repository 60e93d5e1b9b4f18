"""PushDispatcher: provider response interpretation and batching."""

import pytest

from fakes import FakeClock, FakeDatabase, FakePushClient
from live_sync.dispatcher import PushDispatcher
from live_sync.subscriptions import SubscriptionHealthChecker
from utils.errors import TransientProviderError


@pytest.mark.asyncio
async def test_id_without_errors_is_accepted_despite_zero_recipients():
    push = FakePushClient()
    push.response = {"id": "n-1", "recipients": 0}
    outcome = await PushDispatcher(push).send(["p1"], "t", "b", {"type": "x"})
    assert outcome.accepted
    assert outcome.notification_id == "n-1"
    assert outcome.provider_recipient_count == 0
    assert push.sent[0]["data"] == {"type": "x"}


@pytest.mark.asyncio
async def test_errors_mean_not_accepted():
    push = FakePushClient()
    push.response = {"id": "n-1", "recipients": 1, "errors": {"invalid_player_ids": ["p2"]}}
    outcome = await PushDispatcher(push).send(["p1", "p2"], "t", "b")
    assert not outcome.accepted
    assert outcome.rejected_tokens == ["p2"]
    assert outcome.errors == ["invalid_player_ids: ['p2']"]


@pytest.mark.asyncio
async def test_missing_id_is_not_accepted():
    push = FakePushClient()
    push.response = {"recipients": 3}
    outcome = await PushDispatcher(push).send(["p1"], "t", "b")
    assert not outcome.accepted
    assert outcome.provider_recipient_count == 3


@pytest.mark.asyncio
async def test_not_subscribed_rejection_marks_tokens():
    db = FakeDatabase()
    push = FakePushClient()
    push.response = {"id": "", "errors": ["All included players are not subscribed"]}
    checker = SubscriptionHealthChecker(db, push, clock=FakeClock())
    outcome = await PushDispatcher(push, checker).send(["p1", "p2"], "t", "b")
    assert not outcome.accepted
    assert sorted(t for t, _ in db.subscription_updates) == ["p1", "p2"]
    assert all(fields["subscribed"] is False for _, fields in db.subscription_updates)


@pytest.mark.asyncio
async def test_transient_error_is_captured_not_raised():
    push = FakePushClient()
    push.response = TransientProviderError("Push provider error 502", status_code=502)
    outcome = await PushDispatcher(push).send(["p1"], "t", "b")
    assert not outcome.accepted
    assert outcome.errors == ["Push provider error 502"]
    assert outcome.retryable


@pytest.mark.asyncio
async def test_batches_at_recipient_limit_and_dedups_tokens():
    push = FakePushClient()
    outcome = await PushDispatcher(push, batch_size=2).send(["a", "b", "a", "c", "", "d", "e"], "t", "b")
    assert [call["player_ids"] for call in push.sent] == [["a", "b"], ["c", "d"], ["e"]]
    assert outcome.accepted
    assert outcome.provider_recipient_count == 3


@pytest.mark.asyncio
async def test_no_tokens():
    push = FakePushClient()
    outcome = await PushDispatcher(push).send([], "t", "b")
    assert not outcome.accepted
    assert push.sent == []


@pytest.mark.asyncio
async def test_partial_outage_is_not_retryable():
    class FlakyPush(FakePushClient):
        async def create_notification(self, player_ids, title, body, data=None):
            if len(self.sent) == 1:
                self.sent.append({"player_ids": list(player_ids)})
                raise TransientProviderError("Push provider error 503", status_code=503)
            return await super().create_notification(player_ids, title, body, data)

    outcome = await PushDispatcher(FlakyPush(), batch_size=1).send(["a", "b"], "t", "b")
    assert not outcome.accepted
    assert outcome.transient
    assert outcome.notification_ids == ["notif-1"]
    assert not outcome.retryable


@pytest.mark.asyncio
async def test_rejection_is_not_retryable():
    push = FakePushClient()
    push.response = {"errors": ["HTTP 400"]}
    outcome = await PushDispatcher(push).send(["p1"], "t", "b")
    assert not outcome.accepted
    assert not outcome.retryable
