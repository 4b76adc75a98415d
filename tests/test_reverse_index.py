"""Tests for the peer-keyed reverse projection."""

import pytest

from socialfeed.models import FriendshipStatus
from socialfeed.repository import edge_sk, user_pk
from socialfeed.reverse_index import ReverseIndexMaintainer, expected_reverse_keys, reverse_keys


class TestReverseKeys:
    def test_layout(self):
        keys = reverse_keys("alice", "bob", "2024-01-15T10:00:00.000000Z")

        assert keys == {
            "reverse_pk": "FRIEND#bob",
            "reverse_sk": "USER#alice#2024-01-15T10:00:00.000000Z",
        }

    @pytest.mark.asyncio
    async def test_written_with_every_edge(self, seeded_service, store):
        """Test stored edges carry the keys rebuild would compute."""
        await seeded_service.send_friend_request("alice", "bob")

        item = await store.get(user_pk("alice"), edge_sk("bob"))

        for name, value in expected_reverse_keys(item).items():
            assert item[name] == value


class TestIncoming:
    """Tests for incoming lookups."""

    @pytest.mark.asyncio
    async def test_finds_records_pointing_at_user(self, seeded_service):
        await seeded_service.send_friend_request("bob", "alice")
        await seeded_service.send_friend_request("carol", "alice")
        await seeded_service.send_friend_request("carol", "dave")

        edges = await seeded_service.reverse_index.incoming("alice")

        assert sorted(edge.owner_id for edge in edges) == ["bob", "carol"]
        assert all(edge.peer_id == "alice" for edge in edges)

    @pytest.mark.asyncio
    async def test_status_filter_and_paging(self, seeded_service, befriend):
        """Test filtering works across several small pages."""
        await befriend(seeded_service, "bob", "alice")
        await seeded_service.send_friend_request("carol", "alice")
        await seeded_service.send_friend_request("dave", "alice")

        pending = await seeded_service.reverse_index.incoming(
            "alice", FriendshipStatus.PENDING, page_size=1
        )

        assert sorted(edge.owner_id for edge in pending) == ["carol", "dave"]


class TestRebuild:
    """Tests for projection repair."""

    @pytest.mark.asyncio
    async def test_consistent_index_needs_no_repair(self, seeded_service, befriend):
        await befriend(seeded_service, "alice", "bob")

        assert await seeded_service.reverse_index.rebuild() == 0

    @pytest.mark.asyncio
    async def test_repairs_stale_projection(self, seeded_service, store):
        """Test a corrupted projection is rewritten and found again."""
        await seeded_service.send_friend_request("bob", "alice")
        await seeded_service.send_friend_request("carol", "alice")
        await store.update(user_pk("bob"), edge_sk("alice"), {"reverse_pk": "FRIEND#nobody"})
        await store.update(user_pk("carol"), edge_sk("alice"), {"reverse_pk": None, "reverse_sk": None})

        before = await seeded_service.reverse_index.incoming("alice")
        repaired = await ReverseIndexMaintainer(store).rebuild(batch_size=1)
        after = await seeded_service.reverse_index.incoming("alice")

        assert before == []
        assert repaired == 2
        assert sorted(edge.owner_id for edge in after) == ["bob", "carol"]
