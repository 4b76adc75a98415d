"""Pytest configuration and shared fixtures for SocialFeed tests."""

import os
import sys
from collections.abc import AsyncGenerator, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
import pytest_asyncio
from loguru import logger

from socialfeed.cache import FriendCache
from socialfeed.config import Settings
from socialfeed.service import SocialService
from socialfeed.store import SQLiteStore

# =============================================================================
# Test Configuration
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure loguru for tests to avoid I/O errors."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
    )
    yield
    logger.remove()


@pytest.fixture(scope="function", autouse=True)
def reset_loguru():
    """Reset loguru handlers before each test."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="ERROR",
        format="{time} {level} {message}",
        catch=True,
    )
    yield
    logger.remove()


@pytest.fixture(scope="session")
def test_settings(tmp_path_factory: pytest.TempPathFactory) -> Settings:
    """Create test settings with temporary data directory."""
    test_data_dir = tmp_path_factory.mktemp("test_data")
    return Settings(environment="testing", data_dir=test_data_dir)  # type: ignore[arg-type]


# =============================================================================
# Clocks
# =============================================================================


class FakeClock:
    """UTC clock that moves forward by ``step`` on every reading."""

    def __init__(
        self,
        start: datetime = datetime(2024, 1, 15, 10, 0, tzinfo=UTC),
        step: timedelta = timedelta(seconds=1),
    ):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


class ManualTimer:
    """Monotonic timer advanced by hand."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_timer() -> ManualTimer:
    return ManualTimer()


# =============================================================================
# Store and Service
# =============================================================================


@pytest.fixture
def store() -> Generator[SQLiteStore, None, None]:
    """In-memory store with tables and indexes created."""
    s = SQLiteStore(database_path=Path(":memory:"), timeout=5.0, max_attempts=3)
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def friend_cache(cache_timer: ManualTimer) -> FriendCache:
    return FriendCache(ttl_seconds=300, max_size=100, clock=cache_timer)


@pytest.fixture
def service(store: SQLiteStore, friend_cache: FriendCache, clock: FakeClock) -> SocialService:
    return SocialService(store, cache=friend_cache, clock=clock)


@pytest_asyncio.fixture
async def seeded_service(service: SocialService) -> AsyncGenerator[SocialService, None]:
    """Service with alice, bob, carol and dave registered."""
    for user_id in ("alice", "bob", "carol", "dave"):
        await service.register_user(user_id, user_id, display_name=user_id.capitalize())
    yield service


async def make_friends(service: SocialService, user_a: str, user_b: str) -> str:
    """Send and accept a request, returning the friendship id."""
    friendship = await service.send_friend_request(user_a, user_b)
    await service.accept_friend_request(user_b, friendship.friendship_id)
    return friendship.friendship_id


@pytest.fixture
def befriend():
    return make_friends
