"""Utility functions for SocialFeed.

This module provides common helpers for datetime handling, identifier
generation, sort-key construction and concurrent fan-out.
"""

import asyncio
import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import TypeVar

from dateutil import parser as dateutil_parser  # type: ignore[import-untyped]

T = TypeVar("T")


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse ISO8601 timestamp string into timezone-aware UTC datetime.

    Args:
        value: ISO8601 timestamp string, datetime object, or None

    Returns:
        Parsed timezone-aware datetime in UTC, or None if input is None

    Raises:
        ValueError: If timestamp format is invalid

    Example:
        >>> dt = parse_datetime("2024-01-15T10:30:00Z")
        >>> dt.tzinfo
        datetime.timezone.utc
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    dt = dateutil_parser.isoparse(value)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)


def utc_now() -> datetime:
    """Get current UTC timestamp as timezone-aware datetime."""
    return datetime.now(UTC)


def format_iso(dt: datetime | None) -> str | None:
    """Format datetime as fixed-width ISO8601 string with 'Z' suffix.

    Microseconds are always emitted so that formatted timestamps sort
    lexicographically in time order.

    Example:
        >>> dt = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
        >>> format_iso(dt)
        '2024-01-15T10:30:00.000000Z'
    """
    if dt is None:
        return None
    return dt.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Get current UTC timestamp as ISO8601 string with 'Z' suffix."""
    return format_iso(utc_now())  # type: ignore[return-value]


def new_id() -> str:
    """Generate a random identifier for friendships and posts."""
    return str(uuid.uuid4())


def build_key(*parts: str) -> str:
    """Join key segments with the ``#`` separator.

    Example:
        >>> build_key("USER", "alice")
        'USER#alice'
        >>> build_key("POST", "2024-01-15T10:30:00.000000Z", "p1")
        'POST#2024-01-15T10:30:00.000000Z#p1'
    """
    return "#".join(parts)


async def gather_cancelling(*aws: Awaitable[T]) -> list[T]:
    """Run awaitables concurrently, cancelling the rest on the first failure.

    Unlike a bare ``asyncio.gather`` the remaining tasks are not left running
    when one of them raises; cancellation of the caller propagates to every
    task as well.

    Args:
        *aws: Coroutines or futures to run

    Returns:
        Results in the order the awaitables were given
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        raise
