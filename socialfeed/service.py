"""Service root.

``SocialService`` builds and owns every collaborator (store, friend cache,
repositories, privacy evaluator, managers, feed aggregator) and exposes the
operations both as typed methods and through ``handle``, a dispatcher that
validates a raw payload and returns a response envelope.

Example:
    >>> service = SocialService.create()
    >>> response = await service.handle(
    ...     "send_friend_request", "alice", {"addressee_id": "bob", "message": "hi"}
    ... )
    >>> response.status_code
    201
    >>> service.close()
"""

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from socialfeed.cache import FriendCache
from socialfeed.errors import InvalidRequestError
from socialfeed.feed import FeedAggregator
from socialfeed.friendships import FriendshipManager
from socialfeed.interfaces import IFriendCache, IProfileLookup, IStore
from socialfeed.logging import logger, request_context
from socialfeed.models import (
    CreatePostPayload,
    FeedItem,
    FeedPage,
    FeedPayload,
    FriendPage,
    FriendProfile,
    Friendship,
    FriendshipIdPayload,
    FriendshipStatus,
    ListFriendsPayload,
    ListIncomingPayload,
    Post,
    PostPage,
    PostRefPayload,
    PrivacySettings,
    SendFriendRequestPayload,
    TargetUserPayload,
    UpdatePostPayload,
    UserPostsPayload,
    UserProfile,
    Visibility,
)
from socialfeed.posts import PostService
from socialfeed.privacy import PrivacyEvaluator
from socialfeed.profiles import ProfileDirectory
from socialfeed.repository import FriendshipRepository, PostRepository
from socialfeed.responses import APIResponse, handle_error, success_response
from socialfeed.reverse_index import ReverseIndexMaintainer
from socialfeed.store import SQLiteStore
from socialfeed.utils import new_id, utc_now

Handler = Callable[[str, Any], Awaitable[tuple[int, Any]]]


class SocialService:
    """Entry point for every friendship, post and feed operation.

    Args:
        store: Item store (must already be initialized)
        cache: Friend list cache, a fresh ``FriendCache`` by default
        profiles: Profile lookup, store-backed by default
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        store: IStore,
        cache: IFriendCache | None = None,
        profiles: IProfileLookup | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.cache = cache if cache is not None else FriendCache()
        self.directory = ProfileDirectory(store)
        self.profiles = profiles if profiles is not None else self.directory

        self.friendship_repository = FriendshipRepository(store)
        self.post_repository = PostRepository(store)
        self.reverse_index = ReverseIndexMaintainer(store)
        self.privacy = PrivacyEvaluator(self.friendship_repository, self.profiles)

        self.friendships = FriendshipManager(
            self.friendship_repository,
            self.reverse_index,
            self.profiles,
            self.cache,
            clock=clock,
        )
        self.posts = PostService(self.post_repository, self.privacy, self.profiles, clock=clock)
        self.feed = FeedAggregator(self.post_repository, self.friendships, self.privacy, self.profiles)

        self._handlers: dict[str, tuple[type[BaseModel], Handler]] = {
            "send_friend_request": (SendFriendRequestPayload, self._send_friend_request),
            "accept_friend_request": (FriendshipIdPayload, self._accept_friend_request),
            "reject_friend_request": (FriendshipIdPayload, self._reject_friend_request),
            "remove_friendship": (FriendshipIdPayload, self._remove_friendship),
            "list_friends": (ListFriendsPayload, self._list_friends),
            "list_incoming_requests": (ListIncomingPayload, self._list_incoming_requests),
            "block_user": (TargetUserPayload, self._block_user),
            "unblock_user": (TargetUserPayload, self._unblock_user),
            "is_friend": (TargetUserPayload, self._is_friend),
            "get_feed": (FeedPayload, self._get_feed),
            "get_user_posts": (UserPostsPayload, self._get_user_posts),
            "create_post": (CreatePostPayload, self._create_post),
            "get_post": (PostRefPayload, self._get_post),
            "update_post": (UpdatePostPayload, self._update_post),
            "delete_post": (PostRefPayload, self._delete_post),
        }

    @classmethod
    def create(cls, database_path: Path | None = None, **kwargs: Any) -> "SocialService":
        """Open a SQLite store and build a service on it."""
        store = SQLiteStore(database_path=database_path)
        store.initialize()
        return cls(store, **kwargs)

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

    @property
    def operations(self) -> list[str]:
        return sorted(self._handlers)

    async def register_user(
        self,
        user_id: str,
        username: str,
        display_name: str | None = None,
        avatar_ref: str | None = None,
        profile_visibility: Visibility = Visibility.PUBLIC,
    ) -> UserProfile:
        """Write a user's profile and privacy settings."""
        profile = UserProfile(
            user_id=user_id,
            username=username,
            display_name=display_name,
            avatar_ref=avatar_ref,
        )
        await self.directory.put_profile(profile)
        await self.directory.put_privacy_settings(
            user_id, PrivacySettings(profile_visibility=profile_visibility)
        )
        return profile

    # =========================================================================
    # Friendships
    # =========================================================================

    async def send_friend_request(
        self, caller_id: str, addressee_id: str, message: str | None = None
    ) -> Friendship:
        return await self.friendships.send_request(caller_id, addressee_id, message)

    async def accept_friend_request(self, caller_id: str, friendship_id: str) -> Friendship:
        return await self.friendships.accept_request(caller_id, friendship_id)

    async def reject_friend_request(self, caller_id: str, friendship_id: str) -> Friendship:
        return await self.friendships.reject_request(caller_id, friendship_id)

    async def remove_friendship(self, caller_id: str, friendship_id: str) -> None:
        await self.friendships.remove_friendship(caller_id, friendship_id)

    async def list_friends(
        self,
        caller_id: str,
        status_filter: FriendshipStatus | None = None,
        limit: int = 20,
        cursor: str | None = None,
    ) -> FriendPage:
        return await self.friendships.list_friends(caller_id, status_filter, limit, cursor)

    async def list_incoming_requests(
        self, caller_id: str, status_filter: FriendshipStatus | None = None
    ) -> list[FriendProfile]:
        return await self.friendships.list_incoming(caller_id, status_filter)

    async def block_user(self, caller_id: str, target_user_id: str) -> Friendship:
        return await self.friendships.block_user(caller_id, target_user_id)

    async def unblock_user(self, caller_id: str, target_user_id: str) -> None:
        await self.friendships.unblock_user(caller_id, target_user_id)

    async def is_friend(self, user_a: str, user_b: str) -> bool:
        return await self.privacy.is_friend(user_a, user_b)

    # =========================================================================
    # Posts and Feed
    # =========================================================================

    async def get_feed(
        self, caller_id: str, limit: int | None = None, cursor: str | None = None
    ) -> FeedPage:
        return await self.feed.get_feed(caller_id, limit, cursor)

    async def get_user_posts(
        self,
        caller_id: str,
        target_user_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> PostPage:
        return await self.posts.get_user_posts(caller_id, target_user_id, limit, cursor)

    async def create_post(
        self, caller_id: str, content: str | None, visibility: Visibility = Visibility.PUBLIC
    ) -> Post:
        return await self.posts.create_post(caller_id, content, visibility)

    async def get_post(self, caller_id: str, author_id: str, post_id: str) -> FeedItem:
        return await self.posts.get_post(caller_id, author_id, post_id)

    async def update_post(
        self,
        caller_id: str,
        author_id: str,
        post_id: str,
        content: str | None = None,
        visibility: Visibility | None = None,
    ) -> Post:
        return await self.posts.update_post(caller_id, author_id, post_id, content, visibility)

    async def delete_post(self, caller_id: str, author_id: str, post_id: str) -> None:
        await self.posts.delete_post(caller_id, author_id, post_id)

    # =========================================================================
    # Dispatcher
    # =========================================================================

    async def handle(
        self, operation: str, caller_id: str, payload: Mapping[str, Any] | None = None
    ) -> APIResponse:
        """Validate ``payload`` and run ``operation`` on behalf of ``caller_id``.

        Never raises: every failure is turned into an error envelope. The
        request id, caller and operation are bound to the logging context for
        the duration of the call.
        """
        with request_context(new_id(), user_id=caller_id, operation=operation):
            try:
                if not caller_id:
                    raise InvalidRequestError("invalid_request", "Caller id is required")
                entry = self._handlers.get(operation)
                if entry is None:
                    raise InvalidRequestError(
                        "unknown_operation",
                        f"Unknown operation: {operation}",
                        {"operations": self.operations},
                    )
                model, handler = entry
                status_code, data = await handler(caller_id, model.model_validate(payload or {}))
                logger.debug(f"{operation} completed with {status_code}")
                return success_response(data, status_code)
            except Exception as exc:
                return handle_error(exc)

    async def _send_friend_request(self, caller_id: str, p: SendFriendRequestPayload) -> tuple[int, Any]:
        return 201, await self.send_friend_request(caller_id, p.addressee_id, p.message)

    async def _accept_friend_request(self, caller_id: str, p: FriendshipIdPayload) -> tuple[int, Any]:
        return 200, await self.accept_friend_request(caller_id, p.friendship_id)

    async def _reject_friend_request(self, caller_id: str, p: FriendshipIdPayload) -> tuple[int, Any]:
        return 200, await self.reject_friend_request(caller_id, p.friendship_id)

    async def _remove_friendship(self, caller_id: str, p: FriendshipIdPayload) -> tuple[int, Any]:
        await self.remove_friendship(caller_id, p.friendship_id)
        return 200, {"message": "Friendship removed", "friendship_id": p.friendship_id}

    async def _list_friends(self, caller_id: str, p: ListFriendsPayload) -> tuple[int, Any]:
        return 200, await self.list_friends(caller_id, p.status_filter, p.limit, p.cursor)

    async def _list_incoming_requests(self, caller_id: str, p: ListIncomingPayload) -> tuple[int, Any]:
        friends = await self.list_incoming_requests(caller_id, p.status_filter)
        return 200, {"friends": friends}

    async def _block_user(self, caller_id: str, p: TargetUserPayload) -> tuple[int, Any]:
        return 200, await self.block_user(caller_id, p.target_user_id)

    async def _unblock_user(self, caller_id: str, p: TargetUserPayload) -> tuple[int, Any]:
        await self.unblock_user(caller_id, p.target_user_id)
        return 200, {"message": "User unblocked", "target_user_id": p.target_user_id}

    async def _is_friend(self, caller_id: str, p: TargetUserPayload) -> tuple[int, Any]:
        return 200, {"is_friend": await self.is_friend(caller_id, p.target_user_id)}

    async def _get_feed(self, caller_id: str, p: FeedPayload) -> tuple[int, Any]:
        return 200, await self.get_feed(caller_id, p.limit, p.cursor)

    async def _get_user_posts(self, caller_id: str, p: UserPostsPayload) -> tuple[int, Any]:
        return 200, await self.get_user_posts(caller_id, p.target_user_id, p.limit, p.cursor)

    async def _create_post(self, caller_id: str, p: CreatePostPayload) -> tuple[int, Any]:
        return 201, await self.create_post(caller_id, p.content, p.visibility)

    async def _get_post(self, caller_id: str, p: PostRefPayload) -> tuple[int, Any]:
        return 200, await self.get_post(caller_id, p.author_id, p.post_id)

    async def _update_post(self, caller_id: str, p: UpdatePostPayload) -> tuple[int, Any]:
        return 200, await self.update_post(caller_id, p.author_id, p.post_id, p.content, p.visibility)

    async def _delete_post(self, caller_id: str, p: PostRefPayload) -> tuple[int, Any]:
        await self.delete_post(caller_id, p.author_id, p.post_id)
        return 200, {"message": "Post deleted", "post_id": p.post_id}


__all__ = ["SocialService"]
