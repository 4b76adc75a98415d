"""Data models for SocialFeed.

This module defines both Pydantic models (domain records, typed patches and
request payloads) and the SQLModel table backing the item store.

Models are organized into four sections:
1. Enumerations for relationship and visibility state
2. Pydantic domain records and response pages
3. Typed sparse patches and request payloads
4. SQLModel table for store persistence
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_serializer, field_validator
from sqlmodel import Field, SQLModel

from socialfeed.utils import format_iso, parse_datetime

# =============================================================================
# Section 1: Enumerations
# =============================================================================


class FriendshipStatus(StrEnum):
    """Status shared by both edge records of a relationship."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class FriendshipRole(StrEnum):
    """Role of an edge owner within the relationship."""

    REQUESTER = "requester"
    ADDRESSEE = "addressee"

    @property
    def opposite(self) -> "FriendshipRole":
        """Role held by the owner of the mirror record."""
        if self is FriendshipRole.REQUESTER:
            return FriendshipRole.ADDRESSEE
        return FriendshipRole.REQUESTER


class Visibility(StrEnum):
    """Visibility lattice: ``private < friends < public``."""

    PRIVATE = "private"
    FRIENDS = "friends"
    PUBLIC = "public"

    @property
    def rank(self) -> int:
        """Position in the lattice, higher is more visible."""
        return _VISIBILITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Visibility):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Visibility):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Visibility):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Visibility):
            return NotImplemented
        return self.rank >= other.rank


_VISIBILITY_RANK = {
    Visibility.PRIVATE: 0,
    Visibility.FRIENDS: 1,
    Visibility.PUBLIC: 2,
}


class EntityType(StrEnum):
    """Kinds of item kept in the store."""

    FRIENDSHIP = "friendship"
    POST = "post"
    PROFILE = "profile"
    PRIVACY = "privacy"


# =============================================================================
# Section 2: Domain Records
# =============================================================================


class FriendshipEdge(BaseModel):
    """One owner-scoped view of a relationship.

    Two edges, ``(owner=A, peer=B)`` and ``(owner=B, peer=A)``, share
    ``friendship_id`` and ``status`` and hold complementary roles.

    Attributes:
        owner_id: User whose partition holds this record
        peer_id: The other participant
        role: Owner's role (requester or addressee)
        status: Relationship status shared with the mirror
        friendship_id: Identifier shared by both mirrors
        requested_at: When the request was sent
        responded_at: When the addressee accepted or rejected
        created_at: Record creation time
        updated_at: Last modification time
        message: Optional note attached to the request
        blocked_by: User that placed a block, if any
    """

    model_config = ConfigDict(extra="ignore")

    owner_id: str
    peer_id: str
    role: FriendshipRole
    status: FriendshipStatus
    friendship_id: str
    requested_at: datetime
    responded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    message: Optional[str] = None
    blocked_by: Optional[str] = None

    @field_validator("requested_at", "responded_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)

    @field_serializer("requested_at", "responded_at", "created_at", "updated_at", when_used="json")
    def _format_timestamps(self, v: Optional[datetime]) -> Optional[str]:
        return format_iso(v)

    def is_mirror_of(self, other: "FriendshipEdge") -> bool:
        """Check that ``other`` is the complementary record of this edge."""
        return (
            self.owner_id == other.peer_id
            and self.peer_id == other.owner_id
            and self.friendship_id == other.friendship_id
            and self.role is other.role.opposite
        )


class Friendship(BaseModel):
    """Logical relationship assembled from an edge record.

    Attributes:
        friendship_id: Shared identifier
        requester_id: User that sent the request
        addressee_id: User that received it
        status: Current status
        requested_at: When the request was sent
        responded_at: When it was accepted or rejected
        message: Optional note attached to the request
        blocked_by: User that placed a block, if any
    """

    friendship_id: str
    requester_id: str
    addressee_id: str
    status: FriendshipStatus
    requested_at: datetime
    responded_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    message: Optional[str] = None
    blocked_by: Optional[str] = None

    @field_serializer("requested_at", "responded_at", "created_at", "updated_at", when_used="json")
    def _format_timestamps(self, v: Optional[datetime]) -> Optional[str]:
        return format_iso(v)

    @classmethod
    def from_edge(cls, edge: FriendshipEdge) -> "Friendship":
        """Build the logical view from either mirror."""
        if edge.role is FriendshipRole.REQUESTER:
            requester_id, addressee_id = edge.owner_id, edge.peer_id
        else:
            requester_id, addressee_id = edge.peer_id, edge.owner_id
        return cls(
            friendship_id=edge.friendship_id,
            requester_id=requester_id,
            addressee_id=addressee_id,
            status=edge.status,
            requested_at=edge.requested_at,
            responded_at=edge.responded_at,
            created_at=edge.created_at,
            updated_at=edge.updated_at,
            message=edge.message,
            blocked_by=edge.blocked_by,
        )


class Post(BaseModel):
    """A post written by a user.

    Attributes:
        post_id: Unique post identifier
        author_id: Author's user id
        content: Post body
        visibility: Who may read the post
        created_at: Creation timestamp (UTC), the feed sort key
        updated_at: Last modification time
        comment_count: Number of comments
        reaction_count: Number of reactions
    """

    model_config = ConfigDict(extra="ignore")

    post_id: str
    author_id: str
    content: str
    visibility: Visibility
    created_at: datetime
    updated_at: datetime
    comment_count: int = 0
    reaction_count: int = 0

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, v: Optional[str | datetime]) -> Optional[datetime]:
        return parse_datetime(v)

    @field_serializer("created_at", "updated_at", when_used="json")
    def _format_timestamps(self, v: datetime) -> Optional[str]:
        return format_iso(v)


class UserProfile(BaseModel):
    """Display information for a user.

    Attributes:
        user_id: User identifier
        username: Handle
        display_name: Full display name
        avatar_ref: Reference to the avatar image
    """

    model_config = ConfigDict(extra="ignore")

    user_id: str
    username: str
    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None

    @classmethod
    def placeholder(cls, user_id: str) -> "UserProfile":
        """Profile shown when the real one cannot be resolved."""
        return cls(user_id=user_id, username="Unknown User")


class PrivacySettings(BaseModel):
    """Per-user privacy preferences."""

    model_config = ConfigDict(extra="ignore")

    profile_visibility: Visibility = Visibility.PUBLIC

    @classmethod
    def most_restrictive(cls) -> "PrivacySettings":
        return cls(profile_visibility=Visibility.PRIVATE)


class FriendProfile(BaseModel):
    """A relationship as listed for one of its participants."""

    user_id: str
    username: str
    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None
    friendship_id: str
    friendship_status: FriendshipStatus
    role: FriendshipRole
    requested_at: datetime
    responded_at: Optional[datetime] = None

    @field_serializer("requested_at", "responded_at", when_used="json")
    def _format_timestamps(self, v: Optional[datetime]) -> Optional[str]:
        return format_iso(v)


class FriendPage(BaseModel):
    """One page of a friend listing."""

    friends: list[FriendProfile]
    next_cursor: Optional[str] = None


class FeedItem(BaseModel):
    """A post together with its author's display profile."""

    post: Post
    author: UserProfile


class FeedMetadata(BaseModel):
    """Diagnostics for one feed page."""

    query_count: int = 0
    scanned: int = 0
    friends_cached: bool = False
    execution_time_ms: float = 0.0


class FeedPage(BaseModel):
    """One page of the merged activity feed."""

    items: list[FeedItem]
    next_cursor: Optional[str] = None
    has_more: bool = False
    metadata: FeedMetadata = PydanticField(default_factory=FeedMetadata)


class PostPage(BaseModel):
    """One page of a single user's posts."""

    items: list[FeedItem]
    next_cursor: Optional[str] = None
    has_more: bool = False


# =============================================================================
# Section 3: Typed Patches and Request Payloads
# =============================================================================


class EdgePatch(BaseModel):
    """Sparse update for an edge record; only fields that are set apply."""

    status: Optional[FriendshipStatus] = None
    responded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    blocked_by: Optional[str] = None

    @field_serializer("responded_at", "updated_at", when_used="json")
    def _format_timestamps(self, v: Optional[datetime]) -> Optional[str]:
        return format_iso(v)


class PostPatch(BaseModel):
    """Sparse update for a post; only fields that are set apply."""

    content: Optional[str] = None
    visibility: Optional[Visibility] = None
    updated_at: Optional[datetime] = None
    visibility_pk: Optional[str] = None

    @field_serializer("updated_at", when_used="json")
    def _format_timestamps(self, v: Optional[datetime]) -> Optional[str]:
        return format_iso(v)


class SendFriendRequestPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    addressee_id: str = PydanticField(min_length=1)
    message: Optional[str] = PydanticField(default=None, max_length=500)


class FriendshipIdPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    friendship_id: str = PydanticField(min_length=1)


class ListFriendsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status_filter: Optional[FriendshipStatus] = None
    limit: int = 20
    cursor: Optional[str] = None


class ListIncomingPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status_filter: Optional[FriendshipStatus] = None


class FeedPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: Optional[int] = None
    cursor: Optional[str] = None


class UserPostsPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_user_id: str = PydanticField(min_length=1)
    limit: int = 20
    cursor: Optional[str] = None


class CreatePostPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC


class PostRefPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    author_id: str = PydanticField(min_length=1)
    post_id: str = PydanticField(min_length=1)


class UpdatePostPayload(PostRefPayload):
    content: Optional[str] = None
    visibility: Optional[Visibility] = None


class TargetUserPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_user_id: str = PydanticField(min_length=1)


# =============================================================================
# Section 4: SQLModel Table for Store Persistence
# =============================================================================


class ItemRow(SQLModel, table=True):
    """Generic keyed item with three secondary index projections.

    Domain attributes live in the JSON ``data`` column; key and index
    attributes are real columns so they can be range-queried.
    """

    __tablename__ = "items"  # type: ignore[assignment]

    pk: str = Field(primary_key=True)
    sk: str = Field(primary_key=True)
    entity_type: str = Field(index=True)
    by_owner_pk: Optional[str] = None
    by_owner_sk: Optional[str] = None
    reverse_pk: Optional[str] = None
    reverse_sk: Optional[str] = None
    visibility_pk: Optional[str] = None
    visibility_sk: Optional[str] = None
    data: str = "{}"
