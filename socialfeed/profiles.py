"""Profile directory.

Resolves user ids to display profiles and privacy settings. Display lookups
degrade to a placeholder and privacy lookups to the most restrictive
settings, so a failing directory never breaks a listing or leaks a profile.
"""

from pydantic import ValidationError

from socialfeed.errors import AppError
from socialfeed.interfaces import IStore
from socialfeed.logging import logger
from socialfeed.models import EntityType, PrivacySettings, UserProfile
from socialfeed.repository import user_pk

PROFILE_SK = "PROFILE"
PRIVACY_SK = "PRIVACY"


class ProfileDirectory:
    """Store-backed ``IProfileLookup``.

    Args:
        store: Item store holding profile and privacy items
    """

    def __init__(self, store: IStore):
        self.store = store

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Profile of ``user_id``, None if the user is unknown.

        Raises:
            DependencyError: If the store could not be read
        """
        item = await self.store.get(user_pk(user_id), PROFILE_SK)
        if item is None:
            return None
        return UserProfile.model_validate(item)

    async def display_profile(self, user_id: str) -> UserProfile:
        try:
            profile = await self.get_profile(user_id)
        except (AppError, ValidationError) as exc:
            logger.warning(f"Profile lookup failed for {user_id}: {exc}")
            return UserProfile.placeholder(user_id)
        return profile or UserProfile.placeholder(user_id)

    async def get_privacy_settings(self, user_id: str) -> PrivacySettings:
        try:
            item = await self.store.get(user_pk(user_id), PRIVACY_SK)
        except AppError as exc:
            logger.warning(f"Privacy settings lookup failed for {user_id}: {exc}")
            return PrivacySettings.most_restrictive()
        if item is None:
            return PrivacySettings()
        try:
            return PrivacySettings.model_validate(item)
        except ValidationError:
            logger.warning(f"Malformed privacy settings for {user_id}")
            return PrivacySettings.most_restrictive()

    async def put_profile(self, profile: UserProfile) -> UserProfile:
        item = profile.model_dump(mode="json")
        item.update(pk=user_pk(profile.user_id), sk=PROFILE_SK, entity_type=EntityType.PROFILE.value)
        await self.store.put(item)
        logger.info(f"Saved profile for {profile.user_id}")
        return profile

    async def put_privacy_settings(self, user_id: str, privacy: PrivacySettings) -> PrivacySettings:
        item = privacy.model_dump(mode="json")
        item.update(pk=user_pk(user_id), sk=PRIVACY_SK, entity_type=EntityType.PRIVACY.value)
        await self.store.put(item)
        return privacy


__all__ = ["ProfileDirectory"]
