"""Remote store contract used by the commit engine, plus a sqlite implementation."""

from __future__ import annotations

import sqlite3
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any, Iterator

CATEGORIES = "categories"
TAGS = "tags"
TAG_HIERARCHIES = "tag_hierarchies"

COLLECTION_COLUMNS: dict[str, tuple[str, ...]] = {
    CATEGORIES: ("name", "parent_id", "organization_id"),
    TAGS: ("name", "category_id", "organization_id"),
    TAG_HIERARCHIES: ("tag_id", "parent_tag_id"),
}
TENANT_SCOPED: frozenset[str] = frozenset({CATEGORIES, TAGS})


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class StoreError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        collection: str | None = None,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection
        self.operation = operation
        self.status_code = status_code


def require_collection(collection: str) -> tuple[str, ...]:
    columns = COLLECTION_COLUMNS.get(collection)
    if columns is None:
        raise StoreError(f"Unknown collection '{collection}'.", collection=collection)
    return columns


def filter_columns(collection: str, record: dict[str, Any]) -> dict[str, Any]:
    columns = require_collection(collection)
    return {key: record[key] for key in columns if key in record}


class TaxonomyStore(ABC):
    """CRUD over the category, tag and tag-hierarchy collections.

    ``tenant`` scopes inserts and reads; hierarchy edges carry no tenant column
    of their own and are scoped through the tag they belong to.
    """

    @abstractmethod
    def insert(self, collection: str, record: dict[str, Any], tenant: str | None) -> dict[str, Any] | None:
        """Insert one record and return it with its store-assigned ``id``."""

    @abstractmethod
    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        ...

    @abstractmethod
    def delete_where(self, collection: str, match: dict[str, str], *, any_of: bool = False) -> None:
        """Delete rows where every (or, with ``any_of``, at least one) column equals its value."""

    @abstractmethod
    def select_all(self, collection: str, tenant: str, order_by: str = "name") -> list[dict[str, Any]]:
        ...


class SqliteTaxonomyStore(TaxonomyStore):
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._write_lock = Lock()

    @contextmanager
    def _connect(self, *, operation: str, collection: str, readonly: bool = False) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=30,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("PRAGMA journal_mode = WAL;")
        try:
            yield conn
            if not readonly:
                conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(
                f"{operation} on {collection} failed: {exc}",
                collection=collection,
                operation=operation,
            ) from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        with self._write_lock:
            with self._connect(operation="initialize", collection="*") as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS categories (
                      id TEXT PRIMARY KEY,
                      name TEXT NOT NULL,
                      parent_id TEXT REFERENCES categories(id) ON DELETE SET NULL,
                      organization_id TEXT,
                      created_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tags (
                      id TEXT PRIMARY KEY,
                      name TEXT NOT NULL,
                      category_id TEXT REFERENCES categories(id) ON DELETE CASCADE,
                      organization_id TEXT,
                      created_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS tag_hierarchies (
                      id TEXT PRIMARY KEY,
                      tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                      parent_tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                      created_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_categories_org ON categories(organization_id);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_tags_org ON tags(organization_id);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_tag_hierarchies_tag ON tag_hierarchies(tag_id);")

    def insert(self, collection: str, record: dict[str, Any], tenant: str | None) -> dict[str, Any] | None:
        values = filter_columns(collection, record)
        if collection in TENANT_SCOPED and tenant and not values.get("organization_id"):
            values["organization_id"] = tenant
        values["id"] = str(uuid.uuid4())
        values["created_at"] = utc_now_iso()
        columns = list(values)
        placeholders = ", ".join("?" for _ in columns)
        with self._write_lock:
            with self._connect(operation="insert", collection=collection) as conn:
                conn.execute(
                    f"INSERT INTO {collection}({', '.join(columns)}) VALUES({placeholders});",
                    tuple(values[column] for column in columns),
                )
                row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?;", (values["id"],)).fetchone()
        return dict(row) if row is not None else None

    def update(self, collection: str, record_id: str, changes: dict[str, Any]) -> None:
        values = filter_columns(collection, changes)
        values.pop("organization_id", None)
        if not values:
            return
        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._write_lock:
            with self._connect(operation="update", collection=collection) as conn:
                conn.execute(
                    f"UPDATE {collection} SET {assignments} WHERE id = ?;",
                    (*values.values(), record_id),
                )

    def delete(self, collection: str, record_id: str) -> None:
        require_collection(collection)
        with self._write_lock:
            with self._connect(operation="delete", collection=collection) as conn:
                conn.execute(f"DELETE FROM {collection} WHERE id = ?;", (record_id,))

    def delete_where(self, collection: str, match: dict[str, str], *, any_of: bool = False) -> None:
        columns = require_collection(collection)
        unknown = sorted(set(match) - set(columns) - {"id"})
        if unknown:
            raise StoreError(f"Unknown column(s) for {collection}: {', '.join(unknown)}", collection=collection)
        if not match:
            raise StoreError(f"Refusing to delete every row of {collection}.", collection=collection)
        joiner = " OR " if any_of else " AND "
        clause = joiner.join(f"{column} = ?" for column in match)
        with self._write_lock:
            with self._connect(operation="delete_where", collection=collection) as conn:
                conn.execute(f"DELETE FROM {collection} WHERE {clause};", tuple(match.values()))

    def select_all(self, collection: str, tenant: str, order_by: str = "name") -> list[dict[str, Any]]:
        columns = require_collection(collection)
        if order_by not in columns and order_by not in {"id", "created_at"}:
            raise StoreError(f"Cannot order {collection} by '{order_by}'.", collection=collection)
        if collection == TAG_HIERARCHIES:
            sql = (
                "SELECT h.* FROM tag_hierarchies h JOIN tags t ON t.id = h.tag_id "
                f"WHERE t.organization_id = ? ORDER BY h.{order_by} ASC, h.id ASC;"
            )
        else:
            sql = f"SELECT * FROM {collection} WHERE organization_id = ? ORDER BY {order_by} ASC, id ASC;"
        with self._connect(operation="select", collection=collection, readonly=True) as conn:
            rows = conn.execute(sql, (tenant,)).fetchall()
        return [dict(row) for row in rows]
