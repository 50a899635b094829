"""
Metadata resolver: drives the extraction pipeline for one connection target.

Selects the provider for the target's engine, runs the catalog stages in a
fixed order, and folds their patches into one immutable Metadata value.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Type, TypeVar

from db_meta.connection import ConnectionPool, open_pool
from db_meta.errors import InvalidArgument, MetaError
from db_meta.metadata.base import MetadataProvider
from db_meta.metadata.mysql import MySQLMetadataProvider
from db_meta.metadata.postgres import PostgresMetadataProvider
from db_meta.models import (
    ConnectionTarget,
    EngineKind,
    Metadata,
    TableInfo,
    ViewInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", TableInfo, ViewInfo)

# Engines with a provider; other EngineKind values are rejected up front
PROVIDERS: Dict[EngineKind, Type[MetadataProvider]] = {
    EngineKind.MYSQL: MySQLMetadataProvider,
    EngineKind.POSTGRESQL: PostgresMetadataProvider,
}


def provider_class(engine: EngineKind) -> Type[MetadataProvider]:
    """
    Look up the provider implementation for an engine.

    Raises:
        InvalidArgument: If the engine has no provider
    """
    try:
        return PROVIDERS[engine]
    except KeyError:
        raise InvalidArgument(f"{engine.value} is not supported yet") from None


def _fold(items: Sequence[T], patches: Dict[str, object]) -> List[T]:
    """Merge per-name patches into fresh copies of the items."""
    folded = []
    for item in items:
        patch = patches.get(item.name)
        folded.append(replace(item, **vars(patch)) if patch is not None else item)
    return folded


def _ordered(items: Sequence[T]) -> tuple:
    return tuple(sorted(items, key=lambda i: (i.schema, i.name)))


class MetadataResolver:
    """
    Resolves the metadata document of one database schema.

    Pipeline (fixed order, fail-fast):
    1. get_tables
    2. set_primary_key
    3. set_index_key
    4. set_columns (needs the primary key columns from step 2)
    5. get_views
    6. set_view_columns

    Steps 1-4 and 5-6 are independent; with ``parallel=True`` the two halves
    run on separate worker threads and are merged in the same order.
    """

    def __init__(
        self,
        target: ConnectionTarget,
        pool: Optional[ConnectionPool] = None,
        parallel: bool = False,
        pool_options: Optional[dict] = None,
    ):
        """
        Initialize resolver for a connection target.

        Args:
            target: Where to connect; validated immediately
            pool: Existing pool to use; if None one is opened on first use
                and closed by :meth:`close`
            parallel: Run the table and view halves concurrently
            pool_options: Keyword overrides for :func:`open_pool`

        Raises:
            InvalidArgument: If the target is incomplete or its engine has
                no provider
        """
        target.validate()
        self.target = target
        self.parallel = parallel
        self._provider_cls = provider_class(target.engine)
        self._pool = pool
        self._owns_pool = False
        self._pool_options = pool_options or {}
        self._provider: Optional[MetadataProvider] = None

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = open_pool(self.target, **self._pool_options)
            self._owns_pool = True
        return self._pool

    @property
    def provider(self) -> MetadataProvider:
        """Provider bound to the pool and target schema."""
        if self._provider is None:
            self._provider = self._provider_cls(self.pool, self.target.effective_schema)
        return self._provider

    def close(self) -> None:
        """Close the pool if this resolver opened it."""
        if self._owns_pool and self._pool is not None:
            self._pool.close()
            self._pool = None
            self._owns_pool = False
        self._provider = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def resolve(self) -> Metadata:
        """
        Run the pipeline and return the metadata document.

        Raises:
            DbException: If any catalog stage fails; no partial result is
                returned
        """
        target = self.target
        logger.info(
            f"Extracting metadata from {target.engine.value} "
            f"{target.database} (schema {target.effective_schema})"
        )
        try:
            provider = self.provider
            if self.parallel:
                with ThreadPoolExecutor(max_workers=2) as executor:
                    tables_future = executor.submit(self._resolve_tables, provider)
                    views_future = executor.submit(self._resolve_views, provider)
                    tables = tables_future.result()
                    views = views_future.result()
            else:
                tables = self._resolve_tables(provider)
                views = self._resolve_views(provider)
        except MetaError as e:
            logger.error(f"Metadata extraction failed: {e}")
            raise

        metadata = Metadata(tables=_ordered(tables), views=_ordered(views))
        logger.info(
            f"Extracted {len(metadata.tables)} tables and {len(metadata.views)} views "
            f"from {target.database}"
        )
        return metadata

    def _resolve_tables(self, provider: MetadataProvider) -> List[TableInfo]:
        tables = provider.get_tables()
        logger.debug(f"Stage get_tables: {len(tables)} tables")

        tables = _fold(tables, provider.set_primary_key(tables))
        logger.debug("Stage set_primary_key done")

        tables = _fold(tables, provider.set_index_key(tables))
        logger.debug("Stage set_index_key done")

        tables = _fold(tables, provider.set_columns(tables))
        logger.debug("Stage set_columns done")
        return tables

    def _resolve_views(self, provider: MetadataProvider) -> List[ViewInfo]:
        views = provider.get_views()
        logger.debug(f"Stage get_views: {len(views)} views")

        views = _fold(views, provider.set_view_columns(views))
        logger.debug("Stage set_view_columns done")
        return views

    def count(self, sql: str) -> int:
        """Pass-through scalar query on the target database."""
        return self.provider.count(sql)

    def query(self, sql: str) -> List[List[str]]:
        """Pass-through query on the target database, cells rendered as text."""
        return self.provider.query(sql)


def extract(
    target: ConnectionTarget,
    pool: Optional[ConnectionPool] = None,
    parallel: bool = False,
) -> Metadata:
    """
    Extract the metadata document for a connection target.

    Args:
        target: Connection target (engine, host, credentials, database)
        pool: Optional existing pool; otherwise one is opened and closed
        parallel: Run the table and view halves concurrently

    Returns:
        Metadata with tables and views ordered by (schema, name)

    Raises:
        InvalidArgument: If the target is incomplete or its engine is not
            supported (raised before any connection attempt)
        DbException: If connecting or any catalog query fails
    """
    with MetadataResolver(target, pool=pool, parallel=parallel) as resolver:
        return resolver.resolve()
