"""Item store backed by SQLite.

This module provides the store client the rest of the package talks to:
- Atomic per-item get/put/update/delete
- Ordered key-condition queries over the primary key and three projections
- Conditional puts for race resolution
- Full-table scans for index repair
- Retry with exponential backoff for transient database errors
- Per-call timeouts surfaced as retryable ``DependencyError``

Example:
    >>> from socialfeed.store import Index, Query, SQLiteStore
    >>>
    >>> store = SQLiteStore(database_path=Path(":memory:"))
    >>> store.initialize()
    >>> await store.put({"pk": "USER#alice", "sk": "PROFILE", "entity_type": "profile"})
    >>> result = await store.query(
    ...     Query(partition_key="USER#alice", index=Index.BY_OWNER,
    ...           sort_key_prefix="POST#", scan_forward=False, limit=20)
    ... )
    >>> store.close()
"""

import asyncio
import json
import logging
import threading
from collections.abc import Callable, Mapping
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import and_, func, or_, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from socialfeed.config import settings
from socialfeed.errors import ConditionFailedError, DependencyError, ItemNotFoundError
from socialfeed.logging import logger
from socialfeed.models import ItemRow
from socialfeed.types import Item

T = TypeVar("T")

# Upper bound used to turn a prefix into a key range
_PREFIX_END = "\U0010ffff"


# =============================================================================
# Query Model
# =============================================================================


class Index(StrEnum):
    """Key spaces an item can be queried through."""

    PRIMARY = "primary"
    BY_OWNER = "by_owner"
    REVERSE = "reverse"
    VISIBILITY = "visibility"

    @property
    def columns(self) -> tuple[str, str]:
        """Partition and sort key column names."""
        if self is Index.PRIMARY:
            return ("pk", "sk")
        return (f"{self.value}_pk", f"{self.value}_sk")


KEY_COLUMNS: tuple[str, ...] = (
    "pk",
    "sk",
    "entity_type",
    *Index.BY_OWNER.columns,
    *Index.REVERSE.columns,
    *Index.VISIBILITY.columns,
)


class Query(BaseModel):
    """Key-condition query against one index.

    Attributes:
        partition_key: Exact partition key value
        index: Index to query (primary key by default)
        sort_key_prefix: Only items whose sort key starts with this value
        start_after: Exclusive sort-key bound in scan direction
        filter: Equality filters on item attributes; a list means "any of"
        limit: Maximum number of items returned
        exclusive_start_key: ``last_key`` of a previous page
        scan_forward: Ascending sort-key order if True, descending otherwise
    """

    model_config = ConfigDict(frozen=True)

    partition_key: str
    index: Index = Index.PRIMARY
    sort_key_prefix: str | None = None
    start_after: str | None = None
    filter: dict[str, Any] = Field(default_factory=dict)
    limit: int = Field(100, ge=1)
    exclusive_start_key: dict[str, str] | None = None
    scan_forward: bool = True


class QueryResult(BaseModel):
    """Items of one query page.

    ``last_key`` is set only when more matching items remain.
    """

    items: list[dict[str, Any]]
    last_key: dict[str, str] | None = None
    scanned: int = 0


# =============================================================================
# Row Conversion
# =============================================================================


def _to_row(item: Mapping[str, Any]) -> ItemRow:
    if "pk" not in item or "sk" not in item:
        raise ValueError("Item must carry 'pk' and 'sk'")
    columns = {name: item.get(name) for name in KEY_COLUMNS}
    columns["entity_type"] = columns["entity_type"] or "item"
    data = {k: v for k, v in item.items() if k not in KEY_COLUMNS}
    return ItemRow(**columns, data=json.dumps(data, default=str))


def _to_item(row: ItemRow) -> Item:
    item: Item = json.loads(row.data or "{}")
    for name in KEY_COLUMNS:
        value = getattr(row, name)
        if value is not None:
            item[name] = value
    return item


def _key_of(row: ItemRow, index: Index) -> dict[str, str]:
    key = {"pk": row.pk, "sk": row.sk}
    if index is not Index.PRIMARY:
        pk_col, sk_col = index.columns
        key[pk_col] = getattr(row, pk_col)
        key[sk_col] = getattr(row, sk_col)
    return key


def _matches(item: Item, filters: Mapping[str, Any]) -> bool:
    for name, expected in filters.items():
        actual = item.get(name)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _patch_fields(patch: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(patch, BaseModel):
        return patch.model_dump(exclude_unset=True, mode="json")
    return dict(patch)


# =============================================================================
# SQLite Store
# =============================================================================


class SQLiteStore:
    """Item store on SQLite via SQLModel.

    Store calls run in a worker thread under a single lock, so every
    single-item operation is atomic. Each call is bounded by ``timeout``
    seconds; transient ``OperationalError`` failures (for example a locked
    database) are retried up to ``max_attempts`` times.

    Args:
        database_path: SQLite file, or ``:memory:`` (defaults to settings.database_path)
        timeout: Per-call timeout in seconds (defaults to settings.store_timeout_seconds)
        max_attempts: Attempts for transient failures (defaults to settings.store_max_attempts)

    Example:
        >>> store = SQLiteStore()
        >>> store.initialize()
        >>> item = await store.get("USER#alice", "PROFILE")
        >>> store.close()
    """

    def __init__(
        self,
        database_path: Path | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
    ):
        self.database_path = database_path or settings.database_path
        self.timeout = timeout or settings.store_timeout_seconds
        self.max_attempts = max_attempts or settings.store_max_attempts
        self.engine = None
        self._lock = threading.Lock()

    @property
    def is_in_memory(self) -> bool:
        return str(self.database_path) == ":memory:"

    def initialize(self) -> None:
        """Create the engine, the items table and its projection indexes."""
        if self.is_in_memory:
            # One shared connection, otherwise every thread sees its own empty database
            self.engine = create_engine(
                "sqlite://",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(
                f"sqlite:///{self.database_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )

        SQLModel.metadata.create_all(self.engine, tables=[ItemRow.__table__])

        if not self.is_in_memory:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("PRAGMA journal_mode = WAL;")
                conn.exec_driver_sql("PRAGMA synchronous = NORMAL;")
                conn.exec_driver_sql("PRAGMA temp_store = MEMORY;")
                conn.commit()

        self.create_indexes()
        logger.info(f"✅ Store initialized at {self.database_path}")

    def create_indexes(self) -> None:
        """Create the composite indexes behind each projection."""
        if self.engine is None:
            raise RuntimeError("Store not initialized")

        statements = [
            "CREATE INDEX IF NOT EXISTS idx_items_by_owner ON items(by_owner_pk, by_owner_sk)",
            "CREATE INDEX IF NOT EXISTS idx_items_reverse ON items(reverse_pk, reverse_sk)",
            "CREATE INDEX IF NOT EXISTS idx_items_visibility ON items(visibility_pk, visibility_sk)",
        ]
        with self.engine.connect() as conn:
            for statement in statements:
                conn.execute(text(statement))
            conn.commit()

        logger.debug("✅ Store indexes created")

    def close(self) -> None:
        """Dispose of the engine and its connections."""
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking store call with timeout and retry.

        Raises:
            DependencyError: On timeout or once retries are exhausted
        """
        if self.engine is None:
            raise RuntimeError("Store not initialized")

        logging_logger = logging.getLogger(__name__)

        @retry(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=1.0) + wait_random(0, 0.05),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=before_sleep_log(logging_logger, logging.WARNING),
        )
        async def _runner() -> T:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)

        try:
            return await _runner()
        except TimeoutError as exc:
            logger.warning(f"⏱️ Store {operation} timed out after {self.timeout}s")
            raise DependencyError(
                f"Store {operation} timed out",
                details={"operation": operation, "timeout": self.timeout},
            ) from exc
        except SQLAlchemyError as exc:
            logger.error(f"❌ Store {operation} failed: {exc}")
            raise DependencyError(
                f"Store {operation} failed",
                details={"operation": operation},
            ) from exc

    # =========================================================================
    # Single-item operations
    # =========================================================================

    async def get(self, pk: str, sk: str) -> Item | None:
        return await self._run("get", self._get_sync, pk, sk)

    async def put(self, item: Mapping[str, Any], *, if_not_exists: bool = False) -> None:
        row = _to_row(item)
        await self._run("put", self._put_sync, row, if_not_exists)

    async def update(self, pk: str, sk: str, patch: BaseModel | Mapping[str, Any]) -> Item:
        fields = _patch_fields(patch)
        if "pk" in fields or "sk" in fields:
            raise ValueError("Primary key attributes cannot be patched")
        return await self._run("update", self._update_sync, pk, sk, fields)

    async def delete(self, pk: str, sk: str, *, if_match: Mapping[str, Any] | None = None) -> None:
        await self._run("delete", self._delete_sync, pk, sk, if_match)

    def _get_sync(self, pk: str, sk: str) -> Item | None:
        with self._lock, Session(self.engine) as session:
            row = session.get(ItemRow, (pk, sk))
            return _to_item(row) if row is not None else None

    def _put_sync(self, row: ItemRow, if_not_exists: bool) -> None:
        with self._lock, Session(self.engine) as session:
            if if_not_exists and session.get(ItemRow, (row.pk, row.sk)) is not None:
                raise ConditionFailedError(row.pk, row.sk)
            session.merge(row)
            session.commit()

    def _update_sync(self, pk: str, sk: str, fields: dict[str, Any]) -> Item:
        with self._lock, Session(self.engine) as session:
            row = session.get(ItemRow, (pk, sk))
            if row is None:
                raise ItemNotFoundError(pk, sk)

            data = json.loads(row.data or "{}")
            for name, value in fields.items():
                if name in KEY_COLUMNS:
                    setattr(row, name, value)
                else:
                    data[name] = value
            row.data = json.dumps(data, default=str)

            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_item(row)

    def _delete_sync(self, pk: str, sk: str, if_match: Mapping[str, Any] | None) -> None:
        with self._lock, Session(self.engine) as session:
            row = session.get(ItemRow, (pk, sk))
            if row is not None:
                if if_match and not _matches(_to_item(row), if_match):
                    raise ConditionFailedError(pk, sk, "Item does not match the delete condition")
                session.delete(row)
                session.commit()

    # =========================================================================
    # Queries
    # =========================================================================

    async def query(self, query: Query) -> QueryResult:
        """Run a key-condition query.

        Filters are evaluated while reading so a page is only short when the
        partition is exhausted.
        """
        return await self._run("query", self._query_sync, query)

    async def scan(
        self,
        entity_type: str | None = None,
        limit: int = 100,
        exclusive_start_key: Mapping[str, str] | None = None,
    ) -> QueryResult:
        """Read every item in primary-key order."""
        return await self._run("scan", self._scan_sync, entity_type, limit, exclusive_start_key)

    async def entity_counts(self) -> dict[str, int]:
        """Count items per entity type."""
        return await self._run("count", self._counts_sync)

    def _query_sync(self, query: Query) -> QueryResult:
        pk_name, sk_name = query.index.columns
        pk_col = getattr(ItemRow, pk_name)
        sk_col = getattr(ItemRow, sk_name)

        stmt = select(ItemRow).where(pk_col == query.partition_key)
        if query.sort_key_prefix:
            stmt = stmt.where(
                sk_col >= query.sort_key_prefix,
                sk_col < query.sort_key_prefix + _PREFIX_END,
            )

        bound = query.start_after
        if query.exclusive_start_key:
            bound = query.exclusive_start_key.get(sk_name, bound)
        if bound is not None:
            stmt = stmt.where(sk_col > bound if query.scan_forward else sk_col < bound)

        if query.scan_forward:
            stmt = stmt.order_by(sk_col.asc(), ItemRow.pk.asc())
        else:
            stmt = stmt.order_by(sk_col.desc(), ItemRow.pk.desc())

        items: list[Item] = []
        last_row: ItemRow | None = None
        has_more = False
        scanned = 0

        with self._lock, Session(self.engine) as session:
            for row in session.exec(stmt):
                scanned += 1
                item = _to_item(row)
                if not _matches(item, query.filter):
                    continue
                if len(items) >= query.limit:
                    has_more = True
                    break
                items.append(item)
                last_row = row

            last_key = _key_of(last_row, query.index) if has_more and last_row else None

        return QueryResult(items=items, last_key=last_key, scanned=scanned)

    def _scan_sync(
        self,
        entity_type: str | None,
        limit: int,
        exclusive_start_key: Mapping[str, str] | None,
    ) -> QueryResult:
        stmt = select(ItemRow)
        if entity_type:
            stmt = stmt.where(ItemRow.entity_type == entity_type)
        if exclusive_start_key:
            start_pk = exclusive_start_key["pk"]
            start_sk = exclusive_start_key["sk"]
            stmt = stmt.where(
                or_(
                    ItemRow.pk > start_pk,
                    and_(ItemRow.pk == start_pk, ItemRow.sk > start_sk),
                )
            )
        stmt = stmt.order_by(ItemRow.pk.asc(), ItemRow.sk.asc()).limit(limit + 1)

        with self._lock, Session(self.engine) as session:
            rows = list(session.exec(stmt))

        has_more = len(rows) > limit
        rows = rows[:limit]
        last_key = {"pk": rows[-1].pk, "sk": rows[-1].sk} if has_more and rows else None
        return QueryResult(items=[_to_item(r) for r in rows], last_key=last_key, scanned=len(rows))

    def _counts_sync(self) -> dict[str, int]:
        stmt = select(ItemRow.entity_type, func.count()).group_by(ItemRow.entity_type)
        with self._lock, Session(self.engine) as session:
            return {entity: count for entity, count in session.exec(stmt)}


__all__ = ["Index", "KEY_COLUMNS", "Query", "QueryResult", "SQLiteStore"]
