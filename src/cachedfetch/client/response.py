"""Body decoding and error-message extraction for transport responses.

Both helpers work on the raw bytes returned by a
:class:`~cachedfetch.client.transport.Transport`, so they apply equally to
the httpx-backed transport and to scripted transports in tests.
"""

from __future__ import annotations

import json
from typing import Any

import httpx


def decode_body(content: bytes) -> Any:
    """Decode a response body.

    Attempts to parse the body as JSON first.  If that fails (e.g. the
    response is HTML or plain text), returns the decoded text.  Returns
    ``None`` for an empty body.

    Args:
        content: Raw response bytes.

    Returns:
        A JSON-decoded object, a ``str``, or ``None``.
    """
    if not content:
        return None

    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        pass

    return content.decode("utf-8", errors="replace")


def error_message(status: int, content: bytes) -> str:
    """Build the message for a non-success response.

    Uses the ``message``, ``error`` or ``detail`` field of a JSON object
    body when present, the start of a text body otherwise, and falls back
    to the standard reason phrase.

    Returns:
        ``"HTTP <status>: <detail>"``, or ``"HTTP <status>"`` when nothing
        useful is available.
    """
    detail = decode_body(content)
    if isinstance(detail, dict):
        msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
    elif isinstance(detail, str):
        msg = detail[:200]
    elif detail is None:
        msg = ""
    else:
        msg = str(detail)

    if not msg:
        msg = httpx.codes.get_reason_phrase(status)

    prefix = f"HTTP {status}"
    return f"{prefix}: {msg}" if msg else prefix
