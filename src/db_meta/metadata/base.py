"""
Engine provider contract.

A provider issues the catalog queries for one engine. Every pipeline stage
after ``get_tables``/``get_views`` returns a patch mapping (table name to
fields to merge) instead of mutating its input; the resolver folds the
patches into fresh TableInfo/ViewInfo values.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional, Sequence

from db_meta.connection import ConnectionPool
from db_meta.errors import DbException
from db_meta.metadata.decoder import decode_int, render_text
from db_meta.models import (
    ColumnsPatch,
    IndexInfo,
    IndexPatch,
    PrimaryKeyPatch,
    TableInfo,
    ViewInfo,
)

logger = logging.getLogger(__name__)


class MetadataProvider(abc.ABC):
    """
    Abstract base class for engine-specific catalog readers.

    Subclasses implement the six pipeline stages. ``count`` and ``query``
    are ad-hoc pass-through operations; their SQL is executed verbatim.
    """

    def __init__(self, pool: ConnectionPool, schema: str):
        """
        Args:
            pool: Connection pool for the target database
            schema: Schema (MySQL: database) the catalog queries are scoped to
        """
        self.pool = pool
        self.schema = schema

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_tables(self) -> List[TableInfo]:
        """Base tables of the schema, with schema/name/comment only."""

    @abc.abstractmethod
    def set_primary_key(self, tables: Sequence[TableInfo]) -> Dict[str, PrimaryKeyPatch]:
        """Primary key name and column per table name."""

    @abc.abstractmethod
    def set_index_key(self, tables: Sequence[TableInfo]) -> Dict[str, IndexPatch]:
        """Non-primary index entries per table name, in key ordinal order."""

    @abc.abstractmethod
    def set_columns(self, tables: Sequence[TableInfo]) -> Dict[str, ColumnsPatch]:
        """
        Columns per table name.

        ``tables`` must already carry their pk_column so auto-increment and
        primary-key flags can be derived.
        """

    @abc.abstractmethod
    def get_views(self) -> List[ViewInfo]:
        """Views of the schema, with schema/name only."""

    @abc.abstractmethod
    def set_view_columns(self, views: Sequence[ViewInfo]) -> Dict[str, ColumnsPatch]:
        """Columns per view name."""

    # ------------------------------------------------------------------
    # Ad-hoc queries
    # ------------------------------------------------------------------

    def count(self, sql: str) -> int:
        """Run a scalar query and return its first column as an integer."""
        rows = self._fetch_all(sql)
        if not rows:
            raise DbException("count query returned no rows")
        value = decode_int(rows[0], 0)
        if value is None:
            raise DbException("count query returned NULL")
        return value

    def query(self, sql: str) -> List[List[str]]:
        """Run a query and return every cell rendered as text."""
        rows = self._fetch_all(sql)
        return [[render_text(cell) for cell in row] for row in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Sequence[Any]]:
        """
        Execute a statement on a pooled connection and fetch every row.

        Raises:
            DbException: On pool, connection or query failure
        """
        try:
            with self.pool.connection() as conn:
                cursor = conn.cursor()
                try:
                    if params is None:
                        cursor.execute(sql)
                    else:
                        cursor.execute(sql, params)
                    if cursor.description is None:
                        return []
                    return list(cursor.fetchall())
                finally:
                    cursor.close()
        except DbException:
            raise
        except Exception as e:
            logger.error(f"Catalog query failed: {e}")
            raise DbException(f"query failed: {e}") from e

    @staticmethod
    def _group_indexes(entries: Sequence[tuple]) -> Dict[str, IndexPatch]:
        """
        Regroup flattened (table, IndexInfo) rows into per-table patches.

        Rows must arrive ordered by table, index name and key sequence; the
        relative order of entries sharing an index name is kept as is.
        """
        grouped: Dict[str, List[IndexInfo]] = {}
        for table_name, info in entries:
            grouped.setdefault(table_name, []).append(info)
        return {name: IndexPatch(tuple(infos)) for name, infos in grouped.items()}
