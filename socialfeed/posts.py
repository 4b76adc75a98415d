"""Post operations.

Create, read, update and delete posts, and page through one user's posts
with privacy filtering. Reads go through the privacy evaluator; writes are
restricted to the author.
"""

from collections.abc import Callable
from datetime import datetime

from socialfeed.config import settings
from socialfeed.cursor import decode_feed_cursor, encode_feed_cursor
from socialfeed.errors import AuthorizationError, InvalidRequestError, NotFoundError
from socialfeed.friendships import validate_limit
from socialfeed.interfaces import IProfileLookup
from socialfeed.logging import logger
from socialfeed.models import FeedItem, Post, PostPage, PostPatch, UserProfile, Visibility
from socialfeed.privacy import PrivacyEvaluator
from socialfeed.repository import PostRepository, post_sort_key
from socialfeed.utils import format_iso, new_id, utc_now

MAX_CONTENT_LENGTH = 5000


def validate_content(content: str | None) -> str:
    """Check post content is present and within the length limit.

    Raises:
        InvalidRequestError: ``missing_content`` or ``content_too_long``
    """
    if content is None or not content.strip():
        raise InvalidRequestError("missing_content", "Post content is required")
    if len(content) > MAX_CONTENT_LENGTH:
        raise InvalidRequestError(
            "content_too_long",
            f"Post content must be at most {MAX_CONTENT_LENGTH} characters",
        )
    return content


class PostService:
    """Post CRUD and per-user listings.

    Args:
        posts: Post repository
        privacy: Evaluator gating reads
        profiles: Author profile lookup
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        posts: PostRepository,
        privacy: PrivacyEvaluator,
        profiles: IProfileLookup,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.posts = posts
        self.privacy = privacy
        self.profiles = profiles
        self._clock = clock

    async def _require_post(self, author_id: str, post_id: str) -> Post:
        post = await self.posts.get_post(author_id, post_id)
        if post is None:
            raise NotFoundError("post_not_found", "Post not found")
        return post

    async def _author_profile(
        self, viewer_id: str, author_id: str, is_friend: bool | None = None
    ) -> UserProfile:
        profile = await self.profiles.display_profile(author_id)
        return await self.privacy.filter_profile(viewer_id, profile, is_friend)

    async def create_post(
        self, author_id: str, content: str | None, visibility: Visibility = Visibility.PUBLIC
    ) -> Post:
        content = validate_content(content)
        now = self._clock()
        post = Post(
            post_id=new_id(),
            author_id=author_id,
            content=content,
            visibility=visibility,
            created_at=now,
            updated_at=now,
        )
        await self.posts.save(post, if_not_exists=True)
        logger.info(f"Post {post.post_id} created by {author_id} ({visibility})")
        return post

    async def get_post(self, viewer_id: str, author_id: str, post_id: str) -> FeedItem:
        """Fetch a post the viewer is allowed to see.

        Raises:
            NotFoundError: ``post_not_found``
            AuthorizationError: ``access_denied``
        """
        post = await self._require_post(author_id, post_id)
        await self.privacy.check_access(viewer_id, post.author_id, post.visibility)
        return FeedItem(post=post, author=await self._author_profile(viewer_id, post.author_id))

    async def update_post(
        self,
        user_id: str,
        author_id: str,
        post_id: str,
        content: str | None = None,
        visibility: Visibility | None = None,
    ) -> Post:
        """Change a post's content or visibility.

        Raises:
            NotFoundError: ``post_not_found``
            AuthorizationError: ``forbidden`` unless the caller is the author
            InvalidRequestError: Empty patch or invalid content
        """
        post = await self._require_post(author_id, post_id)
        if post.author_id != user_id:
            raise AuthorizationError("forbidden", "You can only update your own posts")
        if content is None and visibility is None:
            raise InvalidRequestError("invalid_request", "Nothing to update")

        changes: dict = {"updated_at": self._clock()}
        if content is not None:
            changes["content"] = validate_content(content)
        if visibility is not None:
            changes["visibility"] = visibility
        patch = PostPatch(**changes)

        updated = await self.posts.update_post(author_id, post_id, patch)
        logger.info(f"Post {post_id} updated by {user_id}")
        return updated

    async def delete_post(self, user_id: str, author_id: str, post_id: str) -> None:
        post = await self._require_post(author_id, post_id)
        if post.author_id != user_id:
            raise AuthorizationError("forbidden", "You can only delete your own posts")
        await self.posts.delete_post(author_id, post_id)
        logger.info(f"Post {post_id} deleted by {user_id}")

    async def get_user_posts(
        self,
        viewer_id: str,
        target_user_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> PostPage:
        """One user's posts the viewer may see, newest first.

        An unreadable cursor restarts from the newest post.

        Raises:
            InvalidRequestError: ``invalid_limit``
        """
        limit = validate_limit(settings.feed_default_limit if limit is None else limit)
        position = decode_feed_cursor(cursor)
        before = post_sort_key(position["created_at"], position["post_id"]) if position else None

        context = await self.privacy.context(viewer_id, target_user_id)
        visible: list[Post] = []

        # Read until one item past the page is known visible
        while len(visible) <= limit:
            batch, result = await self.posts.by_author(target_user_id, limit * 2, before)
            for post in batch:
                if await self.privacy.can_view(
                    viewer_id, post.author_id, post.visibility, context.is_friend
                ):
                    visible.append(post)
            if result.last_key is None or not batch:
                break
            before = result.last_key["by_owner_sk"]

        has_more = len(visible) > limit
        page = visible[:limit]
        next_cursor = None
        if has_more:
            last = page[-1]
            next_cursor = encode_feed_cursor(last.post_id, format_iso(last.created_at))  # type: ignore[arg-type]

        author = await self._author_profile(viewer_id, target_user_id, context.is_friend)
        return PostPage(
            items=[FeedItem(post=post, author=author) for post in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )


__all__ = ["MAX_CONTENT_LENGTH", "PostService", "validate_content"]
