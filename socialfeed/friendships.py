"""Friendship management.

Implements every relationship operation on top of the edge repository:
requests, responses, removal, blocking and the friend listings. Each
mutation writes both mirror records and invalidates the friend cache of both
parties before returning.
"""

import asyncio
import weakref
from collections.abc import Callable
from datetime import datetime

from socialfeed.config import settings
from socialfeed.cursor import decode_cursor, encode_cursor
from socialfeed.errors import ConditionFailedError, ConflictError, InvalidRequestError, NotFoundError
from socialfeed.interfaces import IFriendCache, IProfileLookup
from socialfeed.logging import logger
from socialfeed.models import (
    EdgePatch,
    FriendPage,
    FriendProfile,
    Friendship,
    FriendshipEdge,
    FriendshipRole,
    FriendshipStatus,
)
from socialfeed.repository import FriendshipRepository
from socialfeed.reverse_index import ReverseIndexMaintainer
from socialfeed.state_machine import (
    FriendshipAction,
    check_block,
    check_remove,
    check_respond,
    check_send,
    check_unblock,
)
from socialfeed.utils import gather_cancelling, new_id, utc_now


def validate_limit(limit: int, maximum: int | None = None) -> int:
    """Reject page sizes outside ``1..maximum``.

    Raises:
        InvalidRequestError: ``invalid_limit``
    """
    maximum = maximum or settings.feed_max_limit
    if limit < 1 or limit > maximum:
        raise InvalidRequestError("invalid_limit", f"Limit must be between 1 and {maximum}")
    return limit


class FriendshipManager:
    """Relationship operations for one store.

    Args:
        friendships: Edge repository
        reverse_index: Peer-keyed projection of edges
        profiles: Profile lookup for existence checks and listings
        cache: Friend list cache shared with the feed
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        friendships: FriendshipRepository,
        reverse_index: ReverseIndexMaintainer,
        profiles: IProfileLookup,
        cache: IFriendCache,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.friendships = friendships
        self.reverse_index = reverse_index
        self.profiles = profiles
        self.cache = cache
        self._clock = clock
        self._pair_locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _pair_lock(self, user_a: str, user_b: str) -> asyncio.Lock:
        """Lock serializing pair creation and repair for one pair of users."""
        key = (user_a, user_b) if user_a < user_b else (user_b, user_a)
        lock = self._pair_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._pair_locks[key] = lock
        return lock

    async def _require_user(self, user_id: str) -> None:
        if await self.profiles.get_profile(user_id) is None:
            raise NotFoundError("user_not_found", "User not found")

    async def _established_and_leftovers(
        self, user_a: str, user_b: str
    ) -> tuple[FriendshipEdge | None, list[FriendshipEdge]]:
        """The established ``a -> b`` edge, or the solo records found instead."""
        forward, backward = await self.friendships.get_pair(user_a, user_b)
        if forward is not None and backward is not None and forward.is_mirror_of(backward):
            return forward, []
        return None, [edge for edge in (forward, backward) if edge is not None]

    async def _repair(self, leftovers: list[FriendshipEdge]) -> None:
        for edge in leftovers:
            logger.warning(f"Removing solo edge {edge.owner_id} -> {edge.peer_id} ({edge.friendship_id})")
            await self.friendships.delete_edge(edge.owner_id, edge.peer_id, friendship_id=edge.friendship_id)

    def _new_pair(
        self,
        requester_id: str,
        addressee_id: str,
        status: FriendshipStatus,
        message: str | None = None,
        blocked_by: str | None = None,
    ) -> tuple[FriendshipEdge, FriendshipEdge]:
        now = self._clock()
        edge = FriendshipEdge(
            owner_id=requester_id,
            peer_id=addressee_id,
            role=FriendshipRole.REQUESTER,
            status=status,
            friendship_id=new_id(),
            requested_at=now,
            created_at=now,
            updated_at=now,
            message=message,
            blocked_by=blocked_by,
        )
        mirror = edge.model_copy(
            update={
                "owner_id": addressee_id,
                "peer_id": requester_id,
                "role": FriendshipRole.ADDRESSEE,
            }
        )
        return edge, mirror

    async def _to_profiles(
        self, edges: list[FriendshipEdge], other_of: Callable[[FriendshipEdge], str]
    ) -> list[FriendProfile]:
        profiles = await gather_cancelling(*(self.profiles.display_profile(other_of(e)) for e in edges))
        return [
            FriendProfile(
                user_id=profile.user_id,
                username=profile.username,
                display_name=profile.display_name,
                avatar_ref=profile.avatar_ref,
                friendship_id=edge.friendship_id,
                friendship_status=edge.status,
                role=edge.role,
                requested_at=edge.requested_at,
                responded_at=edge.responded_at,
            )
            for edge, profile in zip(edges, profiles, strict=True)
        ]

    # =========================================================================
    # Requests
    # =========================================================================

    async def send_request(self, requester_id: str, addressee_id: str, message: str | None = None) -> Friendship:
        """Create a pending relationship from ``requester_id`` to ``addressee_id``.

        A previously rejected pair is replaced by a fresh request.

        Raises:
            InvalidRequestError: Self-request
            NotFoundError: Unknown addressee
            ConflictError: Already friends, or a request is pending
            AuthorizationError: The pair is blocked
        """
        check_send(requester_id, addressee_id, None)
        await self._require_user(addressee_id)

        async with self._pair_lock(requester_id, addressee_id):
            existing, leftovers = await self._established_and_leftovers(requester_id, addressee_id)
            check_send(requester_id, addressee_id, existing)

            if existing is not None:
                # Rejected pair, replaced by the new request
                await self.friendships.delete_pair(requester_id, addressee_id)
            await self._repair(leftovers)

            edge, mirror = self._new_pair(requester_id, addressee_id, FriendshipStatus.PENDING, message=message)
            try:
                await self.friendships.create_pair(edge, mirror)
            except ConditionFailedError as exc:
                raise ConflictError("request_pending", "Friend request already pending") from exc

        logger.info(f"Friend request sent: {requester_id} -> {addressee_id} ({edge.friendship_id})")
        return Friendship.from_edge(edge)

    async def _respond(self, user_id: str, friendship_id: str, action: FriendshipAction) -> Friendship:
        edge = check_respond(await self.friendships.find_by_id(user_id, friendship_id), action)
        status = FriendshipStatus.ACCEPTED if action is FriendshipAction.ACCEPT else FriendshipStatus.REJECTED
        now = self._clock()
        updated = await self.friendships.update_pair(
            edge,
            EdgePatch(status=status, responded_at=now, updated_at=now),
        )
        return Friendship.from_edge(updated)

    async def accept_request(self, user_id: str, friendship_id: str) -> Friendship:
        """Accept a pending request addressed to ``user_id``.

        Both mirrors get the same ``responded_at``.

        Raises:
            NotFoundError: ``friendship_not_found``
            AuthorizationError: ``not_addressee``
            ConflictError: ``already_accepted``
            InvalidRequestError: ``invalid_status``
        """
        friendship = await self._respond(user_id, friendship_id, FriendshipAction.ACCEPT)
        self.cache.invalidate_pair(friendship.requester_id, friendship.addressee_id)
        logger.info(f"Friend request accepted: {friendship_id} by {user_id}")
        return friendship

    async def reject_request(self, user_id: str, friendship_id: str) -> Friendship:
        friendship = await self._respond(user_id, friendship_id, FriendshipAction.REJECT)
        logger.info(f"Friend request rejected: {friendship_id} by {user_id}")
        return friendship

    async def remove_friendship(self, user_id: str, friendship_id: str) -> None:
        """Delete both records of a relationship.

        Raises:
            NotFoundError: ``friendship_not_found``
            AuthorizationError: ``blocked``
        """
        edge = check_remove(await self.friendships.find_by_id(user_id, friendship_id))
        await self.friendships.delete_pair(edge.owner_id, edge.peer_id)
        self.cache.invalidate_pair(edge.owner_id, edge.peer_id)
        logger.info(f"Friendship removed: {friendship_id} by {user_id}")

    # =========================================================================
    # Blocking
    # =========================================================================

    async def block_user(self, blocker_id: str, target_id: str) -> Friendship:
        """Block ``target_id``, creating the pair if none exists.

        Raises:
            InvalidRequestError: Self-block
            NotFoundError: Unknown target
            ConflictError: ``already_blocked``
        """
        check_block(blocker_id, target_id, None)
        await self._require_user(target_id)

        async with self._pair_lock(blocker_id, target_id):
            existing, leftovers = await self._established_and_leftovers(blocker_id, target_id)
            check_block(blocker_id, target_id, existing)

            if existing is not None:
                now = self._clock()
                updated = await self.friendships.update_pair(
                    existing,
                    EdgePatch(status=FriendshipStatus.BLOCKED, blocked_by=blocker_id, updated_at=now),
                )
            else:
                await self._repair(leftovers)
                updated, mirror = self._new_pair(
                    blocker_id, target_id, FriendshipStatus.BLOCKED, blocked_by=blocker_id
                )
                try:
                    await self.friendships.create_pair(updated, mirror)
                except ConditionFailedError as exc:
                    raise ConflictError(
                        "concurrent_modification",
                        "The relationship changed while blocking, retry",
                    ) from exc

        self.cache.invalidate_pair(blocker_id, target_id)
        logger.info(f"User {target_id} blocked by {blocker_id}")
        return Friendship.from_edge(updated)

    async def unblock_user(self, blocker_id: str, target_id: str) -> None:
        """Lift a block placed by ``blocker_id``; the pair is deleted.

        Raises:
            NotFoundError: No block exists
            AuthorizationError: ``not_blocker``
        """
        async with self._pair_lock(blocker_id, target_id):
            existing, _ = await self._established_and_leftovers(blocker_id, target_id)
            check_unblock(blocker_id, existing)
            await self.friendships.delete_pair(blocker_id, target_id)
        self.cache.invalidate_pair(blocker_id, target_id)
        logger.info(f"User {target_id} unblocked by {blocker_id}")

    # =========================================================================
    # Listings
    # =========================================================================

    async def list_friends(
        self,
        user_id: str,
        status_filter: FriendshipStatus | None = None,
        limit: int = 20,
        cursor: str | None = None,
    ) -> FriendPage:
        """Relationships owned by ``user_id``, newest request first.

        Raises:
            InvalidRequestError: ``invalid_limit`` or ``invalid_cursor``
        """
        validate_limit(limit)
        start_after = None
        if cursor:
            data = decode_cursor(cursor, required=("sk",))
            if data is None:
                raise InvalidRequestError("invalid_cursor", "Malformed pagination cursor")
            start_after = data["sk"]

        result = await self.friendships.list_owned(user_id, status_filter, limit, start_after)
        edges = [FriendshipEdge.model_validate(item) for item in result.items]
        edges = await self.friendships.keep_established(edges)
        friends = await self._to_profiles(edges, lambda edge: edge.peer_id)

        next_cursor = None
        if result.last_key is not None:
            next_cursor = encode_cursor({"sk": result.last_key["by_owner_sk"]})
        return FriendPage(friends=friends, next_cursor=next_cursor)

    async def list_incoming(
        self, user_id: str, status_filter: FriendshipStatus | None = None
    ) -> list[FriendProfile]:
        """Records owned by other users that point at ``user_id``."""
        edges = await self.reverse_index.incoming(user_id, status_filter)
        edges = await self.friendships.keep_established(edges)
        return await self._to_profiles(edges, lambda edge: edge.owner_id)

    async def get_friend_ids(self, user_id: str) -> tuple[list[str], bool]:
        """Accepted friend ids through the cache.

        Returns:
            The ids and whether they came from the cache
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached, True
        generation = self.cache.generation(user_id)
        friend_ids = await self.friendships.accepted_friend_ids(user_id)
        self.cache.set(user_id, friend_ids, generation)
        return friend_ids, False


__all__ = ["FriendshipManager", "validate_limit"]
