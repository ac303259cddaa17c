"""User resource calls built on top of :class:`CachedClient`.

Each method builds a :class:`~cachedfetch.models.RequestSpec` for one
endpoint and hands it to the shared client.  Reads go through the cache;
writes bypass it and drop any cached copy of the user they touch.  Every
request carries a bearer token.
"""

from __future__ import annotations

from typing import Any, Optional

from cachedfetch.client.cached_client import CachedClient
from cachedfetch.models import RequestSpec


class UserService:
    """CRUD calls against ``/users``.

    Args:
        client: The cached client used for every call.
        api_key: Bearer token sent in the ``Authorization`` header.
        ttl: Lifetime of cached user lookups.  Defaults to the client's
            cache TTL.

    Example::

        async with CachedClient(config) as client:
            users = UserService(client, api_key="secret")
            user = await users.get_user("123")
    """

    def __init__(self, client: CachedClient, api_key: str, ttl: Optional[float] = None) -> None:
        self._client = client
        self._api_key = api_key
        self._ttl = ttl

    @staticmethod
    def cache_key(user_id: str) -> str:
        return f"users:{user_id}"

    async def get_user(self, user_id: str) -> Any:
        """Fetch a user by id, answering from the cache when possible.

        Raises:
            FetchError: The request failed after all attempts.
        """
        spec = self._spec(f"/users/{user_id}")
        result = await self._client.fetch(self.cache_key(user_id), spec, ttl=self._ttl)
        return result.unwrap()

    async def create_user(self, user_data: dict[str, Any]) -> Any:
        """Create a user and return the created record."""
        spec = self._spec("/users", method="POST", body=user_data)
        result = await self._client.executor.execute(spec)
        return result.unwrap()

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> Any:
        """Update a user and return the updated record."""
        spec = self._spec(f"/users/{user_id}", method="PUT", body=updates)
        result = await self._client.executor.execute(spec)
        self._client.invalidate(self.cache_key(user_id))
        return result.unwrap()

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user.  Returns ``True`` once the remote confirmed."""
        spec = self._spec(f"/users/{user_id}", method="DELETE")
        result = await self._client.executor.execute(spec)
        self._client.invalidate(self.cache_key(user_id))
        result.unwrap()
        return True

    def _spec(self, path: str, method: str = "GET", body: Any = None) -> RequestSpec:
        return self._client.build_spec(
            path,
            method=method,
            headers={"Authorization": f"Bearer {self._api_key}"},
            body=body,
        )
