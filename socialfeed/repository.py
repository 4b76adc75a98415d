"""Repositories for type-safe item store operations.

This module provides a generic ``ItemRepository[T]`` that maps Pydantic
records to store items, plus the two concrete repositories the services use:

- ``FriendshipRepository``: edge records, kept as mirror pairs
- ``PostRepository``: posts with their owner-time and visibility projections

Example:
    >>> from socialfeed.repository import FriendshipRepository
    >>>
    >>> friendships = FriendshipRepository(store)
    >>> edge = await friendships.find_established("alice", "bob")
    >>> if edge:
    ...     print(edge.status)
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel

from socialfeed.errors import ConditionFailedError, ItemNotFoundError, NotFoundError
from socialfeed.interfaces import IStore
from socialfeed.logging import logger
from socialfeed.models import (
    EdgePatch,
    EntityType,
    FriendshipEdge,
    FriendshipStatus,
    Post,
    PostPatch,
    Visibility,
)
from socialfeed.reverse_index import reverse_keys
from socialfeed.store import Index, Query, QueryResult
from socialfeed.types import Item
from socialfeed.utils import build_key, format_iso, gather_cancelling

# =============================================================================
# Type Variables
# =============================================================================

T = TypeVar("T", bound=BaseModel)


# =============================================================================
# Key Helpers
# =============================================================================


def user_pk(user_id: str) -> str:
    return build_key("USER", user_id)


def edge_sk(peer_id: str) -> str:
    return build_key("FRIEND", peer_id)


def post_sk(post_id: str) -> str:
    return build_key("POST", post_id)


def post_sort_key(created_at: str, post_id: str) -> str:
    """Time-ordered sort key shared by both post projections."""
    return build_key("POST", created_at, post_id)


def visibility_pk(visibility: Visibility) -> str:
    return build_key("VISIBILITY", visibility.value)


# =============================================================================
# Generic Repository
# =============================================================================


class ItemRepository(ABC, Generic[T]):
    """Generic repository mapping one record type onto store items.

    Subclasses define how a record is keyed and which projection attributes
    it carries; reads validate items back into ``model``.

    Type Parameter:
        T: Pydantic record type (FriendshipEdge, Post)

    Args:
        store: Item store
        model: Record class
    """

    entity_type: EntityType

    def __init__(self, store: IStore, model: type[T]):
        self.store = store
        self.model = model

    @abstractmethod
    def key_of(self, record: T) -> tuple[str, str]:
        """Primary key of a record."""

    def projections(self, record: T) -> dict[str, str]:
        """Secondary index attributes of a record."""
        return {}

    def to_item(self, record: T) -> Item:
        pk, sk = self.key_of(record)
        item: Item = record.model_dump(mode="json")
        item.update(pk=pk, sk=sk, entity_type=self.entity_type.value, **self.projections(record))
        return item

    def from_item(self, item: Item | None) -> T | None:
        if item is None:
            return None
        return self.model.model_validate(item)

    async def get(self, pk: str, sk: str) -> T | None:
        return self.from_item(await self.store.get(pk, sk))

    async def save(self, record: T, *, if_not_exists: bool = False) -> T:
        """Write a whole record.

        Raises:
            ConditionFailedError: If ``if_not_exists`` and the key is taken
        """
        await self.store.put(self.to_item(record), if_not_exists=if_not_exists)
        return record

    async def patch(self, pk: str, sk: str, patch: BaseModel) -> T:
        """Apply a sparse patch and return the updated record.

        Raises:
            ItemNotFoundError: If the record does not exist
        """
        item = await self.store.update(pk, sk, patch)
        return self.model.model_validate(item)

    async def remove(self, pk: str, sk: str, *, if_match: dict[str, str] | None = None) -> None:
        await self.store.delete(pk, sk, if_match=if_match)

    async def page(self, query: Query) -> tuple[list[T], QueryResult]:
        result = await self.store.query(query)
        return [self.model.model_validate(item) for item in result.items], result


# =============================================================================
# Friendship Repository
# =============================================================================


class FriendshipRepository(ItemRepository[FriendshipEdge]):
    """CRUD over edge records, always handled as mirror pairs.

    A relationship between A and B exists only when both ``(A, B)`` and
    ``(B, A)`` are present and mirror each other. Readers here treat a solo
    record as absent.
    """

    entity_type = EntityType.FRIENDSHIP

    def __init__(self, store: IStore):
        super().__init__(store, FriendshipEdge)

    def key_of(self, record: FriendshipEdge) -> tuple[str, str]:
        return user_pk(record.owner_id), edge_sk(record.peer_id)

    def projections(self, record: FriendshipEdge) -> dict[str, str]:
        requested_at = format_iso(record.requested_at)
        return {
            "by_owner_pk": user_pk(record.owner_id),
            "by_owner_sk": build_key("FRIEND", requested_at, record.friendship_id),
            **reverse_keys(record.owner_id, record.peer_id, requested_at),
        }

    async def get_edge(self, owner_id: str, peer_id: str) -> FriendshipEdge | None:
        """Raw edge record, whether or not its mirror exists."""
        return await self.get(user_pk(owner_id), edge_sk(peer_id))

    async def get_pair(
        self, user_a: str, user_b: str
    ) -> tuple[FriendshipEdge | None, FriendshipEdge | None]:
        """Both raw records of a pair, ``(a -> b, b -> a)``."""
        forward, backward = await gather_cancelling(
            self.get_edge(user_a, user_b),
            self.get_edge(user_b, user_a),
        )
        return forward, backward

    async def find_established(self, user_a: str, user_b: str) -> FriendshipEdge | None:
        """The ``a -> b`` edge if the pair is complete, otherwise None."""
        forward, backward = await self.get_pair(user_a, user_b)
        if forward is None or backward is None or not forward.is_mirror_of(backward):
            return None
        return forward

    async def find_by_id(self, owner_id: str, friendship_id: str) -> FriendshipEdge | None:
        """Locate the owner's edge of a friendship by its shared id."""
        edges, _ = await self.page(
            Query(
                partition_key=user_pk(owner_id),
                sort_key_prefix="FRIEND#",
                filter={"friendship_id": friendship_id},
                limit=1,
            )
        )
        if not edges:
            return None
        edge = edges[0]
        mirror = await self.get_edge(edge.peer_id, edge.owner_id)
        if mirror is None or not edge.is_mirror_of(mirror):
            return None
        return edge

    async def create_pair(self, edge: FriendshipEdge, mirror: FriendshipEdge) -> None:
        """Write both records of a new relationship.

        Both writes are conditional. The record owned by the smaller user id
        is always written first, so two writers racing for the same pair in
        either direction contend on one key and the loser writes nothing. If
        the second write fails the first is rolled back, unless another
        writer has replaced it in the meantime.

        Raises:
            ConditionFailedError: If either record already exists
        """
        first, second = sorted((edge, mirror), key=lambda e: e.owner_id)
        await self.save(first, if_not_exists=True)
        try:
            await self.save(second, if_not_exists=True)
        except ConditionFailedError:
            logger.warning(
                f"Second write lost a race for {first.friendship_id}, rolling back {first.owner_id}"
            )
            await self.delete_edge(first.owner_id, first.peer_id, friendship_id=first.friendship_id)
            raise

    async def update_pair(self, edge: FriendshipEdge, patch: EdgePatch) -> FriendshipEdge:
        """Apply the same patch to both records, owner's record first.

        Returns:
            The updated owner record

        Raises:
            NotFoundError: If either record vanished concurrently
        """
        try:
            updated = await self.patch(user_pk(edge.owner_id), edge_sk(edge.peer_id), patch)
            await self.patch(user_pk(edge.peer_id), edge_sk(edge.owner_id), patch)
        except ItemNotFoundError as exc:
            raise NotFoundError("friendship_not_found", "Friendship not found") from exc
        return updated

    async def delete_pair(self, user_a: str, user_b: str) -> None:
        await self.remove(user_pk(user_a), edge_sk(user_b))
        await self.remove(user_pk(user_b), edge_sk(user_a))

    async def delete_edge(self, owner_id: str, peer_id: str, friendship_id: str | None = None) -> None:
        """Delete one record, only if it still carries ``friendship_id`` when given."""
        condition = {"friendship_id": friendship_id} if friendship_id else None
        try:
            await self.remove(user_pk(owner_id), edge_sk(peer_id), if_match=condition)
        except ConditionFailedError:
            logger.warning(f"Edge {owner_id} -> {peer_id} was replaced, left in place")

    async def list_owned(
        self,
        owner_id: str,
        status_filter: FriendshipStatus | None = None,
        limit: int = 20,
        start_after: str | None = None,
    ) -> QueryResult:
        """Owner's edges, newest request first, ties broken by friendship id."""
        return await self.store.query(
            Query(
                partition_key=user_pk(owner_id),
                index=Index.BY_OWNER,
                sort_key_prefix="FRIEND#",
                start_after=start_after,
                filter={"status": status_filter.value} if status_filter else {},
                limit=limit,
                scan_forward=False,
            )
        )

    async def keep_established(self, edges: list[FriendshipEdge]) -> list[FriendshipEdge]:
        """Drop edges whose mirror is missing, checking mirrors concurrently."""
        mirrors = await gather_cancelling(*(self.get_edge(e.peer_id, e.owner_id) for e in edges))
        return [
            edge
            for edge, mirror in zip(edges, mirrors, strict=True)
            if mirror is not None and edge.is_mirror_of(mirror)
        ]

    async def accepted_friend_ids(self, user_id: str, page_size: int = 100) -> list[str]:
        """Ids of all established accepted friends, most recent friendship first."""
        friend_ids: list[str] = []
        start_after = None
        while True:
            result = await self.list_owned(
                user_id,
                status_filter=FriendshipStatus.ACCEPTED,
                limit=page_size,
                start_after=start_after,
            )
            edges = [FriendshipEdge.model_validate(item) for item in result.items]
            friend_ids.extend(edge.peer_id for edge in await self.keep_established(edges))
            if result.last_key is None:
                return friend_ids
            start_after = result.last_key["by_owner_sk"]


# =============================================================================
# Post Repository
# =============================================================================


class PostRepository(ItemRepository[Post]):
    """Posts stored per author with two time-ordered projections."""

    entity_type = EntityType.POST

    def __init__(self, store: IStore):
        super().__init__(store, Post)

    def key_of(self, record: Post) -> tuple[str, str]:
        return user_pk(record.author_id), post_sk(record.post_id)

    def projections(self, record: Post) -> dict[str, str]:
        sort_key = post_sort_key(format_iso(record.created_at), record.post_id)  # type: ignore[arg-type]
        return {
            "by_owner_pk": user_pk(record.author_id),
            "by_owner_sk": sort_key,
            "visibility_pk": visibility_pk(record.visibility),
            "visibility_sk": sort_key,
        }

    async def get_post(self, author_id: str, post_id: str) -> Post | None:
        return await self.get(user_pk(author_id), post_sk(post_id))

    async def update_post(self, author_id: str, post_id: str, patch: PostPatch) -> Post:
        """Patch a post; a visibility change also moves its visibility projection.

        Raises:
            ItemNotFoundError: If the post does not exist
        """
        if patch.visibility is not None and "visibility_pk" not in patch.model_fields_set:
            patch = PostPatch(
                **patch.model_dump(exclude_unset=True),
                visibility_pk=visibility_pk(patch.visibility),
            )
        return await self.patch(user_pk(author_id), post_sk(post_id), patch)

    async def delete_post(self, author_id: str, post_id: str) -> None:
        await self.remove(user_pk(author_id), post_sk(post_id))

    async def by_author(self, author_id: str, limit: int, before: str | None = None) -> tuple[list[Post], QueryResult]:
        """Author's posts, newest first, strictly older than sort key ``before``."""
        return await self.page(
            Query(
                partition_key=user_pk(author_id),
                index=Index.BY_OWNER,
                sort_key_prefix="POST#",
                start_after=before,
                limit=limit,
                scan_forward=False,
            )
        )

    async def by_visibility(
        self, visibility: Visibility, limit: int, before: str | None = None
    ) -> tuple[list[Post], QueryResult]:
        """Posts of one visibility class across all authors, newest first."""
        return await self.page(
            Query(
                partition_key=visibility_pk(visibility),
                index=Index.VISIBILITY,
                sort_key_prefix="POST#",
                start_after=before,
                limit=limit,
                scan_forward=False,
            )
        )


__all__ = [
    "FriendshipRepository",
    "ItemRepository",
    "PostRepository",
    "edge_sk",
    "post_sk",
    "post_sort_key",
    "user_pk",
    "visibility_pk",
]
