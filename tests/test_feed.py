"""Tests for feed aggregation, privacy filtering and pagination."""

import pytest

from socialfeed.config import settings
from socialfeed.cursor import encode_feed_cursor
from socialfeed.errors import InvalidRequestError
from socialfeed.models import Visibility
from socialfeed.utils import format_iso


async def _walk(service, viewer_id, limit, max_pages=50):
    """Follow next_cursor until the feed reports no more items."""
    seen = []
    cursor = None
    for _ in range(max_pages):
        page = await service.get_feed(viewer_id, limit=limit, cursor=cursor)
        seen.extend(item.post.post_id for item in page.items)
        if not page.has_more:
            assert page.next_cursor is None
            return seen
        cursor = page.next_cursor
    raise AssertionError("feed did not terminate")


@pytest.fixture
def social_graph():
    """alice is friends with bob and dave; carol is a stranger."""

    async def build(service, befriend):
        await befriend(service, "alice", "bob")
        await befriend(service, "dave", "alice")

        authors = ["alice", "bob", "carol", "dave"]
        visibilities = [Visibility.PUBLIC, Visibility.FRIENDS, Visibility.PRIVATE]
        posts = []
        for n in range(24):
            author = authors[n % len(authors)]
            visibility = visibilities[(n // len(authors)) % len(visibilities)]
            posts.append(await service.create_post(author, f"{author} #{n}", visibility))
        return posts

    return build


def _visible_to_alice(post) -> bool:
    if post.author_id == "alice" or post.visibility is Visibility.PUBLIC:
        return True
    return post.visibility is Visibility.FRIENDS and post.author_id in {"bob", "dave"}


def _expected_for_alice(posts) -> list[str]:
    newest_first = sorted(posts, key=lambda p: p.created_at, reverse=True)
    return [p.post_id for p in newest_first if _visible_to_alice(p)]


class TestFeedContents:
    """Tests for what a single feed page contains."""

    @pytest.mark.asyncio
    async def test_own_posts_without_friends(self, seeded_service):
        """Test a user with no friends sees each own post exactly once."""
        public = await seeded_service.create_post("alice", "public", Visibility.PUBLIC)
        private = await seeded_service.create_post("alice", "private", Visibility.PRIVATE)

        page = await seeded_service.get_feed("alice")

        assert [item.post.post_id for item in page.items] == [private.post_id, public.post_id]
        assert page.has_more is False
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_hides_private_and_strangers_friends_posts(self, seeded_service, befriend, social_graph):
        posts = await social_graph(seeded_service, befriend)

        page = await seeded_service.get_feed("alice", limit=100)

        expected = _expected_for_alice(posts)
        assert [item.post.post_id for item in page.items] == expected
        for item in page.items:
            if item.post.author_id != "alice":
                assert item.post.visibility is not Visibility.PRIVATE
            if item.post.author_id == "carol":
                assert item.post.visibility is Visibility.PUBLIC

    @pytest.mark.asyncio
    async def test_post_made_friends_only_stops_showing(self, seeded_service):
        """Test a visibility change is respected immediately."""
        post = await seeded_service.create_post("carol", "now you see it", Visibility.PUBLIC)
        assert [i.post.post_id for i in (await seeded_service.get_feed("alice")).items] == [post.post_id]

        await seeded_service.update_post("carol", "carol", post.post_id, visibility=Visibility.FRIENDS)

        assert (await seeded_service.get_feed("alice")).items == []

    @pytest.mark.asyncio
    async def test_removed_friend_drops_out(self, seeded_service, befriend):
        friendship_id = await befriend(seeded_service, "alice", "bob")
        await seeded_service.create_post("bob", "friends only", Visibility.FRIENDS)
        assert len((await seeded_service.get_feed("alice")).items) == 1

        await seeded_service.remove_friendship("bob", friendship_id)

        assert (await seeded_service.get_feed("alice")).items == []

    @pytest.mark.asyncio
    async def test_author_profiles_attached(self, seeded_service, befriend):
        await befriend(seeded_service, "alice", "bob")
        await seeded_service.create_post("bob", "hello", Visibility.FRIENDS)

        page = await seeded_service.get_feed("alice")

        assert page.items[0].author.user_id == "bob"
        assert page.items[0].author.display_name == "Bob"


class TestFeedPagination:
    """Tests for cursor pagination over the merged feed."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 3, 5])
    async def test_every_visible_post_exactly_once(self, seeded_service, befriend, social_graph, limit):
        posts = await social_graph(seeded_service, befriend)

        seen = await _walk(seeded_service, "alice", limit)

        expected = _expected_for_alice(posts)
        assert seen == expected

    @pytest.mark.asyncio
    async def test_few_rounds_still_complete(self, seeded_service, befriend, social_graph, monkeypatch):
        """Test a page cut short by the round budget resumes without gaps."""
        monkeypatch.setattr(settings, "feed_max_rounds", 1)
        posts = await social_graph(seeded_service, befriend)

        seen = await _walk(seeded_service, "alice", 2)

        expected = _expected_for_alice(posts)
        assert seen == expected

    @pytest.mark.asyncio
    async def test_invalid_cursor_restarts(self, seeded_service):
        await seeded_service.create_post("alice", "first")
        await seeded_service.create_post("alice", "second")

        fresh = await seeded_service.get_feed("alice")
        restarted = await seeded_service.get_feed("alice", cursor="not-a-cursor")

        assert [i.post.post_id for i in restarted.items] == [i.post.post_id for i in fresh.items]

    @pytest.mark.asyncio
    async def test_cursor_with_bad_timestamp_restarts(self, seeded_service):
        post = await seeded_service.create_post("alice", "hello")

        page = await seeded_service.get_feed("alice", cursor=encode_feed_cursor(post.post_id, "0"))

        assert [i.post.post_id for i in page.items] == [post.post_id]

    @pytest.mark.asyncio
    async def test_cursor_resumes_below_position(self, seeded_service):
        older = await seeded_service.create_post("alice", "older")
        newer = await seeded_service.create_post("alice", "newer")
        cursor = encode_feed_cursor(newer.post_id, format_iso(newer.created_at))

        page = await seeded_service.get_feed("alice", cursor=cursor)

        assert [i.post.post_id for i in page.items] == [older.post_id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 101])
    async def test_invalid_limit(self, seeded_service, limit):
        with pytest.raises(InvalidRequestError) as exc_info:
            await seeded_service.get_feed("alice", limit=limit)
        assert exc_info.value.code == "invalid_limit"


class TestFeedFanout:
    """Tests for friend fan-out and the friend cache."""

    @pytest.mark.asyncio
    async def test_metadata_reports_cache_use(self, seeded_service, befriend):
        await befriend(seeded_service, "alice", "bob")

        first = await seeded_service.get_feed("alice")
        second = await seeded_service.get_feed("alice")

        assert first.metadata.friends_cached is False
        assert second.metadata.friends_cached is True
        # public stream, own posts, bob
        assert first.metadata.query_count == 3
        assert first.metadata.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_fanout_cap_prefers_recent_friendships(self, seeded_service, befriend, monkeypatch):
        monkeypatch.setattr(settings, "feed_friend_fanout", 1)
        await befriend(seeded_service, "alice", "bob")
        await befriend(seeded_service, "alice", "dave")
        await seeded_service.create_post("bob", "from bob", Visibility.FRIENDS)
        await seeded_service.create_post("dave", "from dave", Visibility.FRIENDS)

        page = await seeded_service.get_feed("alice")

        assert [item.post.content for item in page.items] == ["from dave"]
        assert page.metadata.query_count == 3
