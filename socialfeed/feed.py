"""Feed aggregation.

Builds a viewer's activity feed by fanning out to several post partitions in
parallel, then merging, deduplicating, sorting, privacy-filtering and
paginating the result.

Sources:
    - The public stream (visibility projection), over-fetched
    - The viewer's own posts
    - The partitions of the viewer's first ``feed_friend_fanout`` friends

Every source resumes strictly below the cursor's sort key. A source that is
cut off before the page fills leaves a frontier below which its items are
unknown; only items at or above the highest such frontier are emitted, and
further rounds are fetched until the page is full or the sources run dry.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from socialfeed.config import settings
from socialfeed.cursor import decode_feed_cursor, encode_feed_cursor
from socialfeed.friendships import FriendshipManager, validate_limit
from socialfeed.interfaces import IProfileLookup
from socialfeed.logging import logger
from socialfeed.models import FeedItem, FeedMetadata, FeedPage, Post, UserProfile, Visibility
from socialfeed.privacy import PrivacyEvaluator
from socialfeed.repository import PostRepository, post_sort_key
from socialfeed.store import QueryResult
from socialfeed.utils import format_iso, gather_cancelling

Fetch = Callable[[int, str | None], Awaitable[tuple[list[Post], QueryResult]]]


def sort_key_of(post: Post) -> str:
    return post_sort_key(format_iso(post.created_at), post.post_id)  # type: ignore[arg-type]


@dataclass
class _Source:
    """One partition being read newest-first."""

    name: str
    fetch: Fetch
    page_size: int
    key_column: str
    before: str | None
    exhausted: bool = False


class FeedAggregator:
    """Merged, privacy-filtered activity feed.

    Args:
        posts: Post repository
        friendships: Manager used to resolve friend ids through the cache
        privacy: Evaluator applied to every candidate
        profiles: Author profile lookup
    """

    def __init__(
        self,
        posts: PostRepository,
        friendships: FriendshipManager,
        privacy: PrivacyEvaluator,
        profiles: IProfileLookup,
    ):
        self.posts = posts
        self.friendships = friendships
        self.privacy = privacy
        self.profiles = profiles

    def _sources(
        self, viewer_id: str, friend_ids: list[str], limit: int, before: str | None
    ) -> list[_Source]:
        public_size = limit * settings.feed_overfetch_factor

        def public(size: int, start: str | None):
            return self.posts.by_visibility(Visibility.PUBLIC, size, start)

        def partition(user_id: str) -> Fetch:
            def fetch(size: int, start: str | None):
                return self.posts.by_author(user_id, size, start)

            return fetch

        sources = [
            _Source("public", public, max(public_size, limit + 1), "visibility_sk", before),
            _Source(f"user:{viewer_id}", partition(viewer_id), limit + 1, "by_owner_sk", before),
        ]
        sources.extend(
            _Source(f"user:{friend_id}", partition(friend_id), limit + 1, "by_owner_sk", before)
            for friend_id in friend_ids[: settings.feed_friend_fanout]
            if friend_id != viewer_id
        )
        return sources

    async def _friendship_verdicts(
        self, viewer_id: str, posts: list[Post], verdicts: dict[str, bool]
    ) -> None:
        """Resolve ``is_friend`` once per author whose friends-only posts need it."""
        pending = sorted(
            {
                post.author_id
                for post in posts
                if post.visibility is Visibility.FRIENDS
                and post.author_id != viewer_id
                and post.author_id not in verdicts
            }
        )
        if not pending:
            return
        results = await gather_cancelling(*(self.privacy.is_friend(viewer_id, a) for a in pending))
        verdicts.update(zip(pending, results, strict=True))

    async def _authors(
        self, viewer_id: str, posts: list[Post], verdicts: dict[str, bool]
    ) -> dict[str, UserProfile]:
        author_ids = sorted({post.author_id for post in posts})

        async def resolve(author_id: str) -> UserProfile:
            profile = await self.profiles.display_profile(author_id)
            return await self.privacy.filter_profile(viewer_id, profile, verdicts.get(author_id))

        profiles = await gather_cancelling(*(resolve(a) for a in author_ids))
        return dict(zip(author_ids, profiles, strict=True))

    async def get_feed(
        self, viewer_id: str, limit: int | None = None, cursor: str | None = None
    ) -> FeedPage:
        """One page of ``viewer_id``'s feed, newest first.

        An unreadable cursor restarts from the newest post.

        Raises:
            InvalidRequestError: ``invalid_limit``
            DependencyError: A source query failed
        """
        started = time.perf_counter()
        limit = validate_limit(settings.feed_default_limit if limit is None else limit)

        position = decode_feed_cursor(cursor)
        if cursor and position is None:
            logger.debug(f"Ignoring unreadable feed cursor for {viewer_id}")
        before = post_sort_key(position["created_at"], position["post_id"]) if position else None

        friend_ids, friends_cached = await self.friendships.get_friend_ids(viewer_id)
        sources = self._sources(viewer_id, friend_ids, limit, before)

        candidates: dict[str, tuple[str, Post]] = {}
        verdicts: dict[str, bool] = {}
        metadata = FeedMetadata(friends_cached=friends_cached)
        visible: list[Post] = []
        examined: Post | None = None

        for _ in range(settings.feed_max_rounds):
            active = [source for source in sources if not source.exhausted]
            if not active:
                break

            results = await gather_cancelling(*(s.fetch(s.page_size, s.before) for s in active))
            metadata.query_count += len(active)

            for source, (batch, result) in zip(active, results, strict=True):
                metadata.scanned += result.scanned
                for post in batch:
                    candidates.setdefault(post.post_id, (sort_key_of(post), post))
                if result.last_key is None or not batch:
                    source.exhausted = True
                else:
                    source.before = result.last_key[source.key_column]

            frontiers = [s.before for s in sources if not s.exhausted and s.before is not None]
            horizon = max(frontiers) if frontiers else None

            ordered = sorted(candidates.values(), key=lambda c: c[0], reverse=True)
            safe = [post for key, post in ordered if horizon is None or key >= horizon]
            await self._friendship_verdicts(viewer_id, safe, verdicts)

            visible = [
                post
                for post in safe
                if await self.privacy.can_view(
                    viewer_id, post.author_id, post.visibility, verdicts.get(post.author_id)
                )
            ]
            examined = safe[-1] if safe else examined
            if len(visible) > limit:
                break

        exhausted = all(source.exhausted for source in sources)
        page = visible[:limit]
        has_more = len(visible) > limit or not exhausted

        next_cursor = None
        if len(visible) > limit:
            last = page[-1]
            next_cursor = encode_feed_cursor(last.post_id, format_iso(last.created_at))  # type: ignore[arg-type]
        elif has_more and examined is not None:
            # Rounds ran out: resume below everything already examined
            next_cursor = encode_feed_cursor(examined.post_id, format_iso(examined.created_at))  # type: ignore[arg-type]
        else:
            has_more = False

        authors = await self._authors(viewer_id, page, verdicts)
        metadata.execution_time_ms = round((time.perf_counter() - started) * 1000, 3)

        logger.debug(
            f"Feed for {viewer_id}: {len(page)} items, {metadata.query_count} queries, "
            f"{metadata.scanned} scanned, cached={friends_cached}"
        )
        return FeedPage(
            items=[FeedItem(post=post, author=authors[post.author_id]) for post in page],
            next_cursor=next_cursor,
            has_more=has_more,
            metadata=metadata,
        )


__all__ = ["FeedAggregator", "sort_key_of"]
