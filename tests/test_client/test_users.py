"""Tests for UserService endpoint calls."""

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import RecordingSleep, ScriptedTransport, json_response
from cachedfetch.client.cached_client import CachedClient
from cachedfetch.client.transport import TransportResponse
from cachedfetch.client.users import UserService
from cachedfetch.clock import ManualClock
from cachedfetch.exceptions import RemoteError
from cachedfetch.models import ClientConfig, RequestConfig


def _service(
    transport: ScriptedTransport,
    clock: ManualClock,
    sleeps: RecordingSleep,
) -> tuple[UserService, CachedClient]:
    config = ClientConfig(
        base_url="https://api.example.com",
        request=RequestConfig(max_attempts=1),
    )
    client = CachedClient(config, transport=transport, clock=clock, sleep=sleeps)
    return UserService(client, api_key="test-key"), client


_EXPECTED_HEADERS = {
    "content-type": "application/json",
    "authorization": "Bearer test-key",
}


class TestUserService:
    def test_gets_user_by_id(self, clock: ManualClock, sleeps: RecordingSleep) -> None:
        mock_user = {"id": "123", "name": "John Doe"}
        transport = ScriptedTransport([json_response(mock_user)])
        users, _ = _service(transport, clock, sleeps)

        result = asyncio.run(users.get_user("123"))

        assert result == mock_user
        call = transport.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://api.example.com/users/123"
        assert call["headers"] == _EXPECTED_HEADERS

    def test_get_user_is_cached(self, clock: ManualClock, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({"id": "1"})])
        users, _ = _service(transport, clock, sleeps)

        async def scenario():
            await users.get_user("1")
            return await users.get_user("1")

        assert asyncio.run(scenario()) == {"id": "1"}
        assert len(transport.calls) == 1

    def test_creates_new_user(self, clock: ManualClock, sleeps: RecordingSleep) -> None:
        user_data = {"name": "Jane Doe", "email": "jane@example.com"}
        created = {"id": "456", **user_data}
        transport = ScriptedTransport([json_response(created, status_code=201)])
        users, _ = _service(transport, clock, sleeps)

        result = asyncio.run(users.create_user(user_data))

        assert result == created
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://api.example.com/users"
        assert call["headers"] == _EXPECTED_HEADERS
        assert json.loads(call["body"]) == user_data

    def test_update_invalidates_cached_user(
        self, clock: ManualClock, sleeps: RecordingSleep
    ) -> None:
        transport = ScriptedTransport(
            [
                json_response({"id": "123", "name": "Old"}),
                json_response({"id": "123", "name": "Updated Name"}),
                json_response({"id": "123", "name": "Updated Name"}),
            ]
        )
        users, client = _service(transport, clock, sleeps)

        async def scenario():
            await users.get_user("123")
            updated = await users.update_user("123", {"name": "Updated Name"})
            fresh = await users.get_user("123")
            return updated, fresh

        updated, fresh = asyncio.run(scenario())
        assert updated == {"id": "123", "name": "Updated Name"}
        assert fresh == {"id": "123", "name": "Updated Name"}
        assert [c["method"] for c in transport.calls] == ["GET", "PUT", "GET"]

    def test_deletes_user(self, clock: ManualClock, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([TransportResponse(204, b"")])
        users, client = _service(transport, clock, sleeps)
        client.cache.set(UserService.cache_key("123"), "stale")

        assert asyncio.run(users.delete_user("123")) is True
        assert transport.calls[0]["method"] == "DELETE"
        assert transport.calls[0]["url"] == "https://api.example.com/users/123"
        assert UserService.cache_key("123") not in client.cache

    def test_failures_raise(self, clock: ManualClock, sleeps: RecordingSleep) -> None:
        transport = ScriptedTransport([json_response({"error": "Not Found"}, status_code=404)])
        users, _ = _service(transport, clock, sleeps)

        with pytest.raises(RemoteError, match="HTTP 404: Not Found"):
            asyncio.run(users.get_user("missing"))
