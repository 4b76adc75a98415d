"""SocialFeed - friendship graph and privacy-aware activity feed.

This package keeps bidirectional friendship records in sync, runs a
role-aware friendship state machine, gates every post through a fail-closed
privacy evaluator and assembles a merged, cursor-paginated activity feed.

Example:
    >>> from socialfeed import SocialService
    >>> import asyncio
    >>>
    >>> async def main():
    ...     service = SocialService.create()
    ...     await service.register_user("alice", "alice")
    ...     await service.register_user("bob", "bob")
    ...     friendship = await service.send_friend_request("alice", "bob", "hi")
    ...     await service.accept_friend_request("bob", friendship.friendship_id)
    ...     page = await service.get_feed("alice")
    ...     service.close()
    >>>
    >>> asyncio.run(main())
"""

from socialfeed.cache import FriendCache
from socialfeed.config import settings
from socialfeed.errors import (
    AppError,
    AuthorizationError,
    ConflictError,
    DependencyError,
    InvalidRequestError,
    NotFoundError,
)
from socialfeed.models import (
    FeedItem,
    FeedPage,
    FriendPage,
    FriendProfile,
    Friendship,
    FriendshipEdge,
    FriendshipRole,
    FriendshipStatus,
    Post,
    PostPage,
    PrivacySettings,
    UserProfile,
    Visibility,
)
from socialfeed.responses import APIResponse
from socialfeed.service import SocialService
from socialfeed.store import Index, Query, QueryResult, SQLiteStore

__version__ = "0.1.0"

__all__ = [
    # Main components
    "SocialService",
    "SQLiteStore",
    "FriendCache",
    # Configuration
    "settings",
    # Store queries
    "Index",
    "Query",
    "QueryResult",
    # Pydantic models
    "Friendship",
    "FriendshipEdge",
    "FriendshipRole",
    "FriendshipStatus",
    "FriendProfile",
    "FriendPage",
    "Post",
    "PostPage",
    "FeedItem",
    "FeedPage",
    "UserProfile",
    "PrivacySettings",
    "Visibility",
    # Responses and errors
    "APIResponse",
    "AppError",
    "AuthorizationError",
    "ConflictError",
    "DependencyError",
    "InvalidRequestError",
    "NotFoundError",
]
