"""Canonical Pydantic models shared across all cachedfetch modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`CacheConfig`, and :class:`ClientConfig`.

**Request models** -- built by callers and consumed by the executor:
    :class:`RequestSpec`.

All models use Pydantic v2.  :class:`RequestSpec` is frozen so that a spec
handed to :meth:`~cachedfetch.client.executor.RequestExecutor.execute` can
be retried any number of times without being altered in between.
"""

from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# --- Configuration ---


class RequestConfig(BaseModel):
    """Default request settings applied to every call made by a client."""

    timeout: float = Field(default=30.0, description="Per-attempt timeout in seconds")
    max_attempts: int = Field(default=3, description="Total attempts per logical request")
    base_delay: float = Field(
        default=1.0,
        description="Backoff base in seconds; attempt i waits 2**i * base_delay",
    )
    retry_client_errors: bool = Field(
        default=True,
        description="Retry 4xx responses like any other failure. When false, "
        "only 408 and 429 are retried among client errors",
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class CacheConfig(BaseModel):
    """In-memory response cache settings."""

    ttl_seconds: float = Field(default=300.0, description="Default cache TTL in seconds")
    max_entries: Optional[int] = Field(
        default=None,
        description="Evict least-recently-used entries beyond this size (unbounded if unset)",
    )


class ClientConfig(BaseModel):
    """Top-level configuration persisted at ``~/.config/cachedfetch/config.json``.

    Loaded by :func:`~cachedfetch.config.load_config` and layered with
    environment variables and CLI flags by
    :func:`~cachedfetch.config.resolve_config`.
    """

    base_url: Optional[str] = Field(
        default=None, description="Base address prepended to request paths"
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- Requests ---


class RequestSpec(BaseModel):
    """Immutable description of one logical remote call.

    Header names are case-insensitive: they are stored lower-cased, and a
    ``content-type: application/json`` header is added when the caller does
    not provide one.  ``body`` may be ``bytes`` or ``str`` (sent as-is) or
    any JSON-serialisable value (encoded on the way out).  ``headers`` and
    ``params`` are read-only mappings, so a spec reused across retries and
    cache lookups cannot change underneath them.

    Example::

        spec = RequestSpec(
            base_url="https://api.example.com",
            path="/users/42",
            headers={"Authorization": "Bearer tok"},
        )
        assert spec.url == "https://api.example.com/users/42"
        assert spec.header("AUTHORIZATION") == "Bearer tok"
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    path: str = ""
    method: str = "GET"
    headers: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    params: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    body: Any = None
    timeout: Optional[float] = None
    max_attempts: Optional[int] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("headers")
    @classmethod
    def _normalise_headers(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        headers = {"content-type": "application/json"}
        for name, header_value in value.items():
            headers[name.lower()] = header_value
        return MappingProxyType(headers)

    @field_validator("params")
    @classmethod
    def _freeze_params(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("headers", "params")
    def _plain_dict(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    @property
    def url(self) -> str:
        """The target address: ``base_url`` followed by ``path``."""
        return f"{self.base_url}{self.path}"

    def header(self, name: str) -> Optional[str]:
        """Return the value of header *name* (any casing), or ``None``."""
        return self.headers.get(name.lower())

    def encoded_body(self) -> Optional[bytes]:
        """Return the body as bytes ready for the transport."""
        if self.body is None:
            return None
        if isinstance(self.body, bytes):
            return self.body
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body).encode("utf-8")
