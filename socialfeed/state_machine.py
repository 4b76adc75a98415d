"""Friendship state machine.

Legal transitions and role-based authorization for a relationship, kept free
of any storage concern so they can be checked in isolation.

Transitions::

    none     --send-->    pending
    rejected --send-->    pending   (requester may retry; a new pair replaces the old)
    pending  --accept-->  accepted  (addressee only)
    pending  --reject-->  rejected  (addressee only)
    *        --remove-->  none      (pair deleted; refused while blocked)
    *        --block-->   blocked   (any state except blocked)
    blocked  --unblock--> none      (blocker only)
"""

from enum import StrEnum

from socialfeed.errors import AuthorizationError, ConflictError, InvalidRequestError, NotFoundError
from socialfeed.models import FriendshipEdge, FriendshipRole, FriendshipStatus


class FriendshipAction(StrEnum):
    SEND = "send"
    ACCEPT = "accept"
    REJECT = "reject"
    REMOVE = "remove"
    BLOCK = "block"
    UNBLOCK = "unblock"


# (action, current status) -> resulting status; None means the pair is deleted
TRANSITIONS: dict[tuple[FriendshipAction, FriendshipStatus | None], FriendshipStatus | None] = {
    (FriendshipAction.SEND, None): FriendshipStatus.PENDING,
    (FriendshipAction.SEND, FriendshipStatus.REJECTED): FriendshipStatus.PENDING,
    (FriendshipAction.ACCEPT, FriendshipStatus.PENDING): FriendshipStatus.ACCEPTED,
    (FriendshipAction.REJECT, FriendshipStatus.PENDING): FriendshipStatus.REJECTED,
    (FriendshipAction.REMOVE, FriendshipStatus.PENDING): None,
    (FriendshipAction.REMOVE, FriendshipStatus.ACCEPTED): None,
    (FriendshipAction.REMOVE, FriendshipStatus.REJECTED): None,
    (FriendshipAction.BLOCK, None): FriendshipStatus.BLOCKED,
    (FriendshipAction.BLOCK, FriendshipStatus.PENDING): FriendshipStatus.BLOCKED,
    (FriendshipAction.BLOCK, FriendshipStatus.ACCEPTED): FriendshipStatus.BLOCKED,
    (FriendshipAction.BLOCK, FriendshipStatus.REJECTED): FriendshipStatus.BLOCKED,
    (FriendshipAction.UNBLOCK, FriendshipStatus.BLOCKED): None,
}


def can_transition(action: FriendshipAction, current: FriendshipStatus | None) -> bool:
    return (action, current) in TRANSITIONS


def next_status(action: FriendshipAction, current: FriendshipStatus | None) -> FriendshipStatus | None:
    """Resulting status of a legal transition.

    Raises:
        KeyError: If the transition is not legal
    """
    return TRANSITIONS[(action, current)]


def check_send(requester_id: str, addressee_id: str, existing: FriendshipEdge | None) -> None:
    """Validate a new friend request against the current relationship.

    Args:
        requester_id: User sending the request
        addressee_id: User receiving it
        existing: Established edge between the two, if any

    Raises:
        InvalidRequestError: Self-request
        ConflictError: Already friends or a request is pending
        AuthorizationError: The pair is blocked
    """
    if requester_id == addressee_id:
        raise InvalidRequestError("invalid_request", "Cannot send friend request to yourself")

    status = existing.status if existing else None
    if status is FriendshipStatus.ACCEPTED:
        raise ConflictError("already_friends", "You are already friends with this user")
    if status is FriendshipStatus.PENDING:
        raise ConflictError("request_pending", "Friend request already pending")
    if status is FriendshipStatus.BLOCKED:
        raise AuthorizationError("blocked", "Cannot send friend request to this user")


def check_respond(edge: FriendshipEdge | None, action: FriendshipAction) -> FriendshipEdge:
    """Validate an accept or reject by the owner of ``edge``.

    Returns:
        The edge, narrowed to non-None

    Raises:
        NotFoundError: No such friendship for this user
        AuthorizationError: The caller is not the addressee
        ConflictError: Accepting an already accepted request
        InvalidRequestError: The request is no longer pending
    """
    if edge is None:
        raise NotFoundError("friendship_not_found", "Friend request not found")
    if edge.role is not FriendshipRole.ADDRESSEE:
        raise AuthorizationError("not_addressee", f"You cannot {action} this friend request")
    if action is FriendshipAction.ACCEPT and edge.status is FriendshipStatus.ACCEPTED:
        raise ConflictError("already_accepted", "Friend request already accepted")
    if not can_transition(action, edge.status):
        raise InvalidRequestError("invalid_status", f"Can only {action} pending friend requests")
    return edge


def check_remove(edge: FriendshipEdge | None) -> FriendshipEdge:
    if edge is None:
        raise NotFoundError("friendship_not_found", "Friendship not found")
    if edge.status is FriendshipStatus.BLOCKED:
        raise AuthorizationError("blocked", "A blocked relationship can only be lifted by unblocking")
    return edge


def check_block(blocker_id: str, target_id: str, existing: FriendshipEdge | None) -> None:
    if blocker_id == target_id:
        raise InvalidRequestError("invalid_request", "Cannot block yourself")
    if existing is not None and existing.status is FriendshipStatus.BLOCKED:
        raise ConflictError("already_blocked", "This relationship is already blocked")


def check_unblock(blocker_id: str, existing: FriendshipEdge | None) -> FriendshipEdge:
    if existing is None or existing.status is not FriendshipStatus.BLOCKED:
        raise NotFoundError("friendship_not_found", "No block exists for this user")
    if existing.blocked_by != blocker_id:
        raise AuthorizationError("not_blocker", "Only the user who placed the block can lift it")
    return existing


__all__ = [
    "FriendshipAction",
    "TRANSITIONS",
    "can_transition",
    "check_block",
    "check_remove",
    "check_respond",
    "check_send",
    "check_unblock",
    "next_status",
]
