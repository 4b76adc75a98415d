"""Opaque pagination cursors.

Cursors are URL-safe base64 encoded JSON objects. Callers must treat them as
opaque; only this module knows their shape.

Example:
    >>> token = encode_cursor({"post_id": "p1", "created_at": "2024-01-15T10:30:00.000000Z"})
    >>> decode_cursor(token)
    {'post_id': 'p1', 'created_at': '2024-01-15T10:30:00.000000Z'}
    >>> decode_cursor("not a cursor") is None
    True
"""

import base64
import binascii
import json
from typing import Any

from socialfeed.types import FeedCursorData
from socialfeed.utils import format_iso, parse_datetime


def encode_cursor(data: dict[str, Any]) -> str:
    """Encode a resume position as an opaque token."""
    raw = json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(token: str | None, required: tuple[str, ...] = ()) -> dict[str, Any] | None:
    """Decode a token produced by ``encode_cursor``.

    Args:
        token: Cursor token, may be None or empty
        required: Keys that must be present with string values

    Returns:
        Decoded mapping, or None if the token is missing or malformed
    """
    if not token:
        return None
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    if any(not isinstance(data.get(key), str) for key in required):
        return None
    return data


def encode_feed_cursor(post_id: str, created_at: str) -> str:
    return encode_cursor({"post_id": post_id, "created_at": created_at})


def decode_feed_cursor(token: str | None) -> FeedCursorData | None:
    """Decode a feed cursor; invalid tokens yield None (restart from the top).

    ``created_at`` must parse as a timestamp and comes back in the canonical
    sort-key form.
    """
    data = decode_cursor(token, required=("post_id", "created_at"))
    if data is None:
        return None
    try:
        created_at = format_iso(parse_datetime(data["created_at"]))
    except (ValueError, OverflowError):
        return None
    return FeedCursorData(post_id=data["post_id"], created_at=created_at)


__all__ = ["decode_cursor", "decode_feed_cursor", "encode_cursor", "encode_feed_cursor"]
