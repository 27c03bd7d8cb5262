"""SQLite-backed entity store.

Queries run on a worker thread (``asyncio.to_thread``) with a short-lived
connection each, so the store can be shared freely by the dispatcher and the
reconciler.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from contextlib import closing
import logging
from pathlib import Path
import re
import sqlite3
from typing import Any

from lightning_search.adapters.entity_store import AbstractEntityStore, search_index_name
from lightning_search.domain.errors import StoreError
from lightning_search.domain.search import EntityId, IndexDescriptor


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_LIKE_ESCAPE = "\\"
_FOLD_FUNCTION = "ls_fold"


def quote_identifier(name: str) -> str:
    """Quote a table or column name, rejecting anything that is not a plain identifier."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally."""
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", f"{_LIKE_ESCAPE}%")
        .replace("_", f"{_LIKE_ESCAPE}_")
    )


def _casefold(value: Any) -> Any:
    # SQLite's LOWER() only folds ASCII.
    return value.casefold() if isinstance(value, str) else value


def _filter_clauses(filters: Mapping[str, Any] | None) -> tuple[list[str], list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in (filters or {}).items():
        clauses.append(f"{quote_identifier(column)} = ?")
        params.append(value)
    return clauses, params


def build_id_query(
    descriptor: IndexDescriptor,
    ids: Sequence[EntityId],
    filters: Mapping[str, Any] | None = None,
) -> tuple[str, list[Any]]:
    """Build ``SELECT * ... WHERE (filters) AND pk IN (?, ...)``."""
    clauses, params = _filter_clauses(filters)
    placeholders = ", ".join("?" for _ in ids)
    clauses.append(f"{quote_identifier(descriptor.primary_key)} IN ({placeholders})")
    params.extend(ids)
    sql = f"SELECT * FROM {quote_identifier(descriptor.table_id)} WHERE {' AND '.join(clauses)}"
    return sql, params


def build_substring_query(
    descriptor: IndexDescriptor,
    query_text: str,
    filters: Mapping[str, Any] | None = None,
) -> tuple[str, list[Any]]:
    """Build ``SELECT * ... WHERE (filters) AND (f1 LIKE ? OR f2 LIKE ? ...)``.

    With no searchable fields the OR group is ``0`` and nothing matches.
    """
    table = quote_identifier(descriptor.table_id)
    clauses, params = _filter_clauses(filters)

    pattern = f"%{escape_like(query_text.casefold())}%"
    predicates: list[str] = []
    for field_name in descriptor.searchable_fields:
        predicates.append(f"{_FOLD_FUNCTION}({quote_identifier(field_name)}) LIKE ? ESCAPE '{_LIKE_ESCAPE}'")
        params.append(pattern)
    clauses.append(f"({' OR '.join(predicates)})" if predicates else "(0)")

    sql = f"SELECT * FROM {table} WHERE {' AND '.join(clauses)}"
    return sql, params


class SqliteEntityStore(AbstractEntityStore):
    """Entity store over a SQLite database file."""

    def __init__(self, db_path: Path | str, *, busy_timeout_ms: int = 30000) -> None:
        self.db_path = Path(db_path)
        self._busy_timeout_ms = busy_timeout_ms

    async def fetch_by_ids(
        self,
        descriptor: IndexDescriptor,
        ids: Sequence[EntityId],
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        if not ids:
            return []
        try:
            sql, params = build_id_query(descriptor, ids, filters)
        except ValueError as exc:
            raise StoreError(descriptor.table_id, str(exc)) from exc
        return await asyncio.to_thread(self._select, descriptor.table_id, sql, params)

    async def search_substring(
        self,
        descriptor: IndexDescriptor,
        query_text: str,
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        try:
            sql, params = build_substring_query(descriptor, query_text, filters)
        except ValueError as exc:
            raise StoreError(descriptor.table_id, str(exc)) from exc
        return await asyncio.to_thread(self._select, descriptor.table_id, sql, params)

    async def rebuild_search_index(self, descriptor: IndexDescriptor) -> str:
        return await asyncio.to_thread(self._rebuild_index, descriptor)

    def _connect(self, *, read_only: bool) -> sqlite3.Connection:
        if read_only:
            # mode=ro fails on a missing file instead of creating an empty database.
            conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
        else:
            conn = sqlite3.connect(self.db_path)
        conn.create_function(_FOLD_FUNCTION, 1, _casefold, deterministic=True)
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {self._busy_timeout_ms}")
        if read_only:
            conn.execute("PRAGMA query_only = 1")
        return conn

    def _select(self, table: str, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        logger.debug("Store query on %s: %s", table, sql)
        try:
            with closing(self._connect(read_only=True)) as conn:
                return [dict(row) for row in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(table, str(exc)) from exc

    def _rebuild_index(self, descriptor: IndexDescriptor) -> str:
        if not descriptor.searchable_fields:
            raise StoreError(descriptor.table_id, "no searchable fields to index")

        index_name = search_index_name(descriptor)
        try:
            index = quote_identifier(index_name)
            table = quote_identifier(descriptor.table_id)
            key = quote_identifier(descriptor.primary_key)
            columns = [quote_identifier(field_name) for field_name in descriptor.searchable_fields]
        except ValueError as exc:
            raise StoreError(descriptor.table_id, str(exc)) from exc

        column_list = ", ".join(columns)
        try:
            with closing(self._connect(read_only=False)) as conn, conn:
                conn.execute(f"DROP TABLE IF EXISTS {index}")
                conn.execute(f"CREATE VIRTUAL TABLE {index} USING fts5({key} UNINDEXED, {column_list})")
                conn.execute(f"INSERT INTO {index} ({key}, {column_list}) SELECT {key}, {column_list} FROM {table}")
        except sqlite3.Error as exc:
            raise StoreError(descriptor.table_id, str(exc)) from exc

        logger.info("Rebuilt %s over %s", index_name, ", ".join(descriptor.searchable_fields))
        return index_name
