"""Privacy evaluation.

Decides whether a viewer may see a resource owned by another user, given the
resource's visibility and the relationship between the two. Every decision
fails closed: if the relationship cannot be read the viewer is treated as a
stranger.

Rules:
    - The owner always sees their own resources
    - ``public`` is visible to everyone
    - ``friends`` is visible to accepted friends only
    - ``private`` is visible to nobody else
"""

from dataclasses import dataclass

from socialfeed.errors import AppError, AuthorizationError
from socialfeed.interfaces import IProfileLookup
from socialfeed.logging import logger
from socialfeed.models import FriendshipStatus, UserProfile, Visibility
from socialfeed.repository import FriendshipRepository


@dataclass(frozen=True)
class PrivacyContext:
    """Relationship of a viewer to a resource owner."""

    is_self: bool
    is_friend: bool


class PrivacyEvaluator:
    """Fail-closed visibility decisions.

    Args:
        friendships: Repository used to read the relationship
        profiles: Lookup used for per-user privacy settings
    """

    def __init__(self, friendships: FriendshipRepository, profiles: IProfileLookup):
        self.friendships = friendships
        self.profiles = profiles

    async def is_friend(self, user_a: str, user_b: str) -> bool:
        """True if either record between the two users reports ``accepted``.

        Both directions are read, so the answer is symmetric. Store failures
        return False.
        """
        if user_a == user_b:
            return False
        try:
            forward, backward = await self.friendships.get_pair(user_a, user_b)
        except AppError as exc:
            logger.warning(f"Friendship check failed for {user_a} and {user_b}: {exc}")
            return False
        return any(
            edge is not None and edge.status is FriendshipStatus.ACCEPTED
            for edge in (forward, backward)
        )

    async def context(self, viewer_id: str, owner_id: str) -> PrivacyContext:
        if viewer_id == owner_id:
            return PrivacyContext(is_self=True, is_friend=False)
        return PrivacyContext(is_self=False, is_friend=await self.is_friend(viewer_id, owner_id))

    async def can_view(
        self,
        viewer_id: str,
        owner_id: str,
        visibility: Visibility,
        is_friend: bool | None = None,
    ) -> bool:
        """Whether ``viewer_id`` may see a resource of ``owner_id``.

        Args:
            viewer_id: User asking
            owner_id: Owner of the resource
            visibility: Resource visibility
            is_friend: Known relationship, looked up when None
        """
        if viewer_id == owner_id:
            return True
        if visibility is Visibility.PUBLIC:
            return True
        if visibility is Visibility.FRIENDS:
            if is_friend is None:
                is_friend = await self.is_friend(viewer_id, owner_id)
            return is_friend
        return False

    async def check_access(self, viewer_id: str, owner_id: str, visibility: Visibility) -> None:
        """Raise unless ``viewer_id`` may see the resource.

        Raises:
            AuthorizationError: ``access_denied``
        """
        if not await self.can_view(viewer_id, owner_id, visibility):
            raise AuthorizationError(
                "access_denied",
                "You do not have permission to view this content",
            )

    async def filter_profile(
        self,
        viewer_id: str,
        profile: UserProfile,
        is_friend: bool | None = None,
    ) -> UserProfile:
        """Trim a profile the viewer may not see in full to its public handle."""
        privacy = await self.profiles.get_privacy_settings(profile.user_id)
        if await self.can_view(viewer_id, profile.user_id, privacy.profile_visibility, is_friend):
            return profile
        return UserProfile(user_id=profile.user_id, username=profile.username)


__all__ = ["PrivacyContext", "PrivacyEvaluator"]
