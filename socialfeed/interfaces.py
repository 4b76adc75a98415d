"""Protocol interfaces for dependency injection.

Using ``@runtime_checkable`` Protocols lets the service root accept any store,
profile lookup or cache that has the right shape, without inheritance.

Example:
    >>> from socialfeed.interfaces import IFriendCache
    >>> class NoCache:
    ...     def get(self, user_id): return None
    ...     def set(self, user_id, friend_ids): pass
    ...     def invalidate(self, user_id): pass
    ...     def invalidate_pair(self, user_a, user_b): pass
    >>> isinstance(NoCache(), IFriendCache)
    True
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from socialfeed.models import PrivacySettings, UserProfile
from socialfeed.types import Item


@runtime_checkable
class IStore(Protocol):
    """Keyed item store with ordered secondary-index queries.

    Single-item operations are atomic. Index queries return items in index
    sort order. Implementations own their retry policy and must raise
    ``DependencyError`` for unavailability and timeouts.
    """

    async def get(self, pk: str, sk: str) -> Item | None:
        """Fetch one item by primary key, or None if absent."""
        ...

    async def put(self, item: Item, *, if_not_exists: bool = False) -> None:
        """Write a whole item.

        Raises:
            ConditionFailedError: If ``if_not_exists`` and the key is taken
        """
        ...

    async def update(self, pk: str, sk: str, patch: BaseModel | Mapping[str, Any]) -> Item:
        """Apply a sparse patch and return the updated item.

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        ...

    async def delete(self, pk: str, sk: str, *, if_match: Mapping[str, Any] | None = None) -> None:
        """Delete one item; deleting a missing item is a no-op.

        Raises:
            ConditionFailedError: If the item exists but differs from ``if_match``
        """
        ...

    async def query(self, query: Any) -> Any:
        """Run an ordered key-condition query (see ``socialfeed.store.Query``)."""
        ...

    async def scan(
        self,
        entity_type: str | None = None,
        limit: int = 100,
        exclusive_start_key: Mapping[str, str] | None = None,
    ) -> Any:
        """Iterate every item in primary-key order, one page at a time."""
        ...


@runtime_checkable
class IProfileLookup(Protocol):
    """Resolves user ids to display profiles."""

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the profile, None if the user does not exist.

        Raises:
            DependencyError: If the lookup could not be performed
        """
        ...

    async def display_profile(self, user_id: str) -> UserProfile:
        """Return the profile or a placeholder; never raises."""
        ...

    async def get_privacy_settings(self, user_id: str) -> PrivacySettings:
        """Return privacy settings, most restrictive on failure."""
        ...


@runtime_checkable
class IFriendCache(Protocol):
    """Per-user cache of accepted friend ids."""

    def get(self, user_id: str) -> list[str] | None:
        ...

    def generation(self, user_id: str) -> int:
        ...

    def set(self, user_id: str, friend_ids: list[str], generation: int | None = None) -> bool:
        ...


    def invalidate(self, user_id: str) -> None:
        ...

    def invalidate_pair(self, user_a: str, user_b: str) -> None:
        ...
