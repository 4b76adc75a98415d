"""Tests for privacy evaluation and profile filtering."""

from unittest.mock import AsyncMock, patch

import pytest

from socialfeed.errors import AuthorizationError, DependencyError
from socialfeed.models import UserProfile, Visibility
from socialfeed.profiles import PRIVACY_SK
from socialfeed.repository import user_pk


class TestIsFriend:
    """Tests for the friendship check behind privacy decisions."""

    @pytest.mark.asyncio
    async def test_symmetric_after_accept(self, seeded_service, befriend):
        await befriend(seeded_service, "alice", "bob")

        assert await seeded_service.privacy.is_friend("alice", "bob")
        assert await seeded_service.privacy.is_friend("bob", "alice")

    @pytest.mark.asyncio
    async def test_pending_is_not_friendship(self, seeded_service):
        await seeded_service.send_friend_request("alice", "bob")

        assert not await seeded_service.privacy.is_friend("alice", "bob")
        assert not await seeded_service.privacy.is_friend("bob", "alice")

    @pytest.mark.asyncio
    async def test_self_is_not_a_friend(self, seeded_service):
        assert not await seeded_service.privacy.is_friend("alice", "alice")

    @pytest.mark.asyncio
    async def test_store_failure_fails_closed(self, seeded_service, befriend):
        """Test a failing relationship lookup is treated as no friendship."""
        await befriend(seeded_service, "alice", "bob")

        with patch.object(
            seeded_service.friendship_repository,
            "get_pair",
            new=AsyncMock(side_effect=DependencyError("Store get failed")),
        ):
            assert not await seeded_service.privacy.is_friend("alice", "bob")


class TestCanView:
    """Tests for the visibility rules."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "visibility,is_friend,expected",
        [
            (Visibility.PUBLIC, False, True),
            (Visibility.FRIENDS, False, False),
            (Visibility.FRIENDS, True, True),
            (Visibility.PRIVATE, False, False),
            (Visibility.PRIVATE, True, False),
        ],
    )
    async def test_rules(self, service, visibility, is_friend, expected):
        assert await service.privacy.can_view("carol", "alice", visibility, is_friend) is expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("visibility", list(Visibility))
    async def test_owner_sees_everything(self, service, visibility):
        assert await service.privacy.can_view("alice", "alice", visibility)

    @pytest.mark.asyncio
    async def test_looks_up_friendship_when_unknown(self, seeded_service, befriend):
        await befriend(seeded_service, "alice", "carol")

        assert await seeded_service.privacy.can_view("carol", "alice", Visibility.FRIENDS)
        assert not await seeded_service.privacy.can_view("bob", "alice", Visibility.FRIENDS)

    @pytest.mark.asyncio
    async def test_check_access_denies(self, service):
        with pytest.raises(AuthorizationError) as exc_info:
            await service.privacy.check_access("carol", "alice", Visibility.PRIVATE)

        assert exc_info.value.code == "access_denied"
        assert exc_info.value.status_code == 403


class TestFriendsOnlyPost:
    """Access to a friends-only post before and after becoming friends."""

    @pytest.mark.asyncio
    async def test_access_granted_once_friends(self, seeded_service, befriend):
        post = await seeded_service.create_post("alice", "for friends", Visibility.FRIENDS)

        with pytest.raises(AuthorizationError) as exc_info:
            await seeded_service.get_post("carol", "alice", post.post_id)
        assert exc_info.value.code == "access_denied"

        await befriend(seeded_service, "carol", "alice")
        item = await seeded_service.get_post("carol", "alice", post.post_id)

        assert item.post.content == "for friends"
        assert item.author.display_name == "Alice"

    @pytest.mark.asyncio
    async def test_envelopes(self, seeded_service, befriend):
        post = await seeded_service.create_post("alice", "for friends", Visibility.FRIENDS)
        payload = {"author_id": "alice", "post_id": post.post_id}

        denied = await seeded_service.handle("get_post", "carol", payload)
        await befriend(seeded_service, "carol", "alice")
        allowed = await seeded_service.handle("get_post", "carol", payload)

        assert denied.status_code == 403
        assert denied.body["error"] == "access_denied"
        assert allowed.status_code == 200
        assert allowed.body["data"]["post"]["content"] == "for friends"


class TestProfileFiltering:
    """Tests for trimming profiles by privacy settings."""

    @pytest.mark.asyncio
    async def test_friends_only_profile(self, service, befriend):
        await service.register_user("alice", "alice", "Alice A", profile_visibility=Visibility.FRIENDS)
        await service.register_user("bob", "bob", "Bob B")
        await service.register_user("carol", "carol", "Carol C")
        await befriend(service, "alice", "bob")
        profile = await service.directory.display_profile("alice")

        as_friend = await service.privacy.filter_profile("bob", profile)
        as_stranger = await service.privacy.filter_profile("carol", profile)
        as_self = await service.privacy.filter_profile("alice", profile)

        assert as_friend.display_name == "Alice A"
        assert as_stranger == UserProfile(user_id="alice", username="alice")
        assert as_self.display_name == "Alice A"

    @pytest.mark.asyncio
    async def test_malformed_settings_are_most_restrictive(self, seeded_service, store):
        await store.put({"pk": user_pk("alice"), "sk": PRIVACY_SK, "profile_visibility": "everyone"})
        profile = await seeded_service.directory.display_profile("alice")

        filtered = await seeded_service.privacy.filter_profile("bob", profile, is_friend=True)

        assert filtered.display_name is None

    @pytest.mark.asyncio
    async def test_missing_settings_default_to_public(self, service, store):
        await store.put({"pk": user_pk("erin"), "sk": "PROFILE", "user_id": "erin", "username": "erin"})

        settings = await service.directory.get_privacy_settings("erin")

        assert settings.profile_visibility is Visibility.PUBLIC

    @pytest.mark.asyncio
    async def test_unknown_author_gets_placeholder(self, service):
        profile = await service.directory.display_profile("ghost")

        assert profile.username == "Unknown User"
