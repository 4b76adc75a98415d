"""Type definitions for raw store items.

Raw items are plain dictionaries; the key layout of every entity is:

    - Edge:     pk=USER#<owner>  sk=FRIEND#<peer>
                by_owner=(USER#<owner>, FRIEND#<requested_at>#<friendship_id>)
                reverse=(FRIEND#<peer>, USER#<owner>#<requested_at>)
    - Post:     pk=USER#<author> sk=POST#<post_id>
                by_owner=(USER#<author>, POST#<created_at>#<post_id>)
                visibility=(VISIBILITY#<class>, POST#<created_at>#<post_id>)
    - Profile:  pk=USER#<id>     sk=PROFILE
    - Privacy:  pk=USER#<id>     sk=PRIVACY
"""

from typing import Any, TypedDict

Item = dict[str, Any]
"""A raw store item: key attributes plus domain fields."""


class FeedCursorData(TypedDict):
    """Decoded feed cursor: the last returned item's id and sort key."""

    post_id: str
    created_at: str
