"""Outcome of one logical request.

:class:`ExecutionResult` is what the executor and the cached client hand
back: either a decoded payload or a classified
:class:`~cachedfetch.exceptions.FetchError`, never both.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from cachedfetch.exceptions import FetchError


@dataclass(frozen=True)
class ExecutionResult:
    """Success payload or classified failure.

    Attributes:
        value: Decoded response body (``dict``, ``list``, ``str`` or
            ``None``) on success.
        error: The failure of the last attempt, or ``None`` on success.
        attempts: Number of transport attempts made.  ``0`` when the
            request was rejected before sending.
        status_code: Status of the successful response.
    """

    value: Any = None
    error: Optional[FetchError] = None
    attempts: int = 0
    status_code: Optional[int] = None

    @classmethod
    def success(cls, value: Any, attempts: int, status_code: int) -> ExecutionResult:
        return cls(value=value, attempts=attempts, status_code=status_code)

    @classmethod
    def failure(cls, error: FetchError, attempts: int) -> ExecutionResult:
        return cls(error=error, attempts=attempts)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the payload, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
