"""Reverse lookup projection for friendship edges.

Each edge ``(owner=X, peer=Y)`` is projected under ``FRIEND#Y`` so the peer
can find every record pointing at it without a scan. The projection is
derived data: it is written together with the edge and can be rebuilt from
the edges at any time. A stale projection only makes ``incoming`` less
complete; it never grants access.
"""

from collections.abc import Mapping
from typing import Any

from socialfeed.interfaces import IStore
from socialfeed.logging import logger
from socialfeed.models import EntityType, FriendshipEdge, FriendshipStatus
from socialfeed.store import Index, Query
from socialfeed.utils import build_key, format_iso


def reverse_keys(owner_id: str, peer_id: str, requested_at: Any) -> dict[str, str]:
    """Projection keys for the edge owned by ``owner_id`` pointing at ``peer_id``."""
    timestamp = requested_at if isinstance(requested_at, str) else format_iso(requested_at)
    return {
        "reverse_pk": build_key("FRIEND", peer_id),
        "reverse_sk": build_key("USER", owner_id, timestamp),
    }


def expected_reverse_keys(item: Mapping[str, Any]) -> dict[str, str]:
    edge = FriendshipEdge.model_validate(item)
    return reverse_keys(edge.owner_id, edge.peer_id, edge.requested_at)


class ReverseIndexMaintainer:
    """Queries and repairs the peer-keyed projection of edges.

    Args:
        store: Item store holding the edges
    """

    def __init__(self, store: IStore):
        self.store = store

    async def incoming(
        self,
        user_id: str,
        status_filter: FriendshipStatus | None = None,
        page_size: int = 100,
    ) -> list[FriendshipEdge]:
        """Edges owned by other users that point at ``user_id``, in projection order.

        Mirror checks are left to the caller.
        """
        filters = {"status": status_filter.value} if status_filter else {}
        edges: list[FriendshipEdge] = []
        start_key = None

        while True:
            result = await self.store.query(
                Query(
                    partition_key=build_key("FRIEND", user_id),
                    index=Index.REVERSE,
                    filter=filters,
                    limit=page_size,
                    exclusive_start_key=start_key,
                    scan_forward=False,
                )
            )
            edges.extend(FriendshipEdge.model_validate(item) for item in result.items)
            if result.last_key is None:
                return edges
            start_key = result.last_key

    async def rebuild(self, batch_size: int = 100) -> int:
        """Rewrite missing or stale projections from the edge records.

        Returns:
            Number of edges whose projection was repaired
        """
        repaired = 0
        scanned = 0
        start_key = None

        while True:
            page = await self.store.scan(
                entity_type=EntityType.FRIENDSHIP.value,
                limit=batch_size,
                exclusive_start_key=start_key,
            )
            for item in page.items:
                scanned += 1
                expected = expected_reverse_keys(item)
                if all(item.get(name) == value for name, value in expected.items()):
                    continue
                await self.store.update(item["pk"], item["sk"], expected)
                repaired += 1
                logger.debug(f"Repaired reverse projection of {item['pk']} -> {item['sk']}")

            if page.last_key is None:
                break
            start_key = page.last_key

        logger.info(f"✅ Reverse index rebuilt: {repaired} of {scanned} edges repaired")
        return repaired


__all__ = ["ReverseIndexMaintainer", "expected_reverse_keys", "reverse_keys"]
