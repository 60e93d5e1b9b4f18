"""OneSignalClient against httpx.MockTransport."""

import json

import httpx
import pytest

from fakes import make_config
from push.onesignal import OneSignalClient
from utils.errors import NonRetryableProviderError, TransientProviderError


def _client(handler):
    return OneSignalClient(make_config(), transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_create_notification_payload():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "n-1", "recipients": 2})

    async with _client(handler) as client:
        result = await client.create_notification(["p1", "p2"], "Title", "Body", {"type": "kickoff"})

    assert result == {"id": "n-1", "recipients": 2}
    assert seen["url"] == "https://onesignal.test/api/v1/notifications"
    assert seen["auth"] == "Basic rest-key"
    assert seen["body"] == {
        "app_id": "app-id",
        "headings": {"en": "Title"},
        "contents": {"en": "Body"},
        "include_player_ids": ["p1", "p2"],
        "data": {"type": "kickoff"},
    }


@pytest.mark.asyncio
async def test_rejection_returned_as_errors():
    async with _client(lambda r: httpx.Response(400, json={"errors": ["All included players are not subscribed"]})) as client:
        result = await client.create_notification(["p1"], "t", "b")
    assert result["errors"] == ["All included players are not subscribed"]


@pytest.mark.asyncio
async def test_rejection_without_body_gets_status_error():
    async with _client(lambda r: httpx.Response(400, text="bad")) as client:
        result = await client.create_notification(["p1"], "t", "b")
    assert result == {"errors": ["HTTP 400"]}


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [429, 500, 502])
async def test_transient_statuses_raise(status_code):
    async with _client(lambda r: httpx.Response(status_code)) as client:
        with pytest.raises(TransientProviderError):
            await client.create_notification(["p1"], "t", "b")


@pytest.mark.asyncio
async def test_get_player():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"identifier": "tok", "notification_types": 1})

    async with _client(handler) as client:
        player = await client.get_player("p1")
    assert player["notification_types"] == 1
    assert seen["url"] == "https://onesignal.test/api/v1/players/p1?app_id=app-id"


@pytest.mark.asyncio
async def test_get_player_not_found():
    async with _client(lambda r: httpx.Response(404, json={"errors": ["No user with this id found"]})) as client:
        with pytest.raises(NonRetryableProviderError) as exc:
            await client.get_player("missing")
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_get_player_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(TransientProviderError):
            await client.get_player("p1")
