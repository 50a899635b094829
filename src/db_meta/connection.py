"""
Connection management for catalog reads.

Pooling is SQLAlchemy's QueuePool: ``open_pool`` builds an engine for the
target (PyMySQL for MySQL, psycopg2 for PostgreSQL) and catalog SQL runs on
raw DB-API connections checked out from the engine's pool.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL, Engine
from sqlalchemy.pool import QueuePool

from db_meta.errors import DbException, InvalidArgument
from db_meta.models import ConnectionTarget, EngineKind

logger = logging.getLogger(__name__)

# Pool defaults per engine
POOL_DEFAULTS: Dict[EngineKind, Dict[str, Any]] = {
    EngineKind.MYSQL: {"max_size": 30, "min_size": 1, "acquire_timeout": 5.0},
    EngineKind.POSTGRESQL: {"max_size": 30, "min_size": 1, "acquire_timeout": 10.0},
}

# SQLAlchemy dialect+driver names
DRIVER_NAMES: Dict[EngineKind, str] = {
    EngineKind.MYSQL: "mysql+pymysql",
    EngineKind.POSTGRESQL: "postgresql+psycopg2",
}

CONNECT_TIMEOUT = 10


class ConnectionPool:
    """
    Checks out DB-API connections from a SQLAlchemy QueuePool.

    The pool never overflows, so at most ``max_size`` connections are in use
    at once; a caller waiting longer than the pool timeout for a free one
    gets a DbException.
    """

    def __init__(
        self,
        pool: QueuePool,
        min_size: int = 0,
        name: str = "pool",
        engine: Optional[Engine] = None,
    ):
        """
        Wrap a pool and open ``min_size`` connections up front.

        Args:
            pool: SQLAlchemy pool to check connections out of
            min_size: Connections opened eagerly
            name: Label used in log and error messages
            engine: Engine owning the pool, disposed on close

        Raises:
            DbException: If an initial connection cannot be opened
        """
        self._pool = pool
        self.engine = engine
        self.min_size = min_size
        self.name = name
        self._closed = False

        held = []
        try:
            for _ in range(min_size):
                held.append(self._checkout())
        finally:
            for fairy in held:
                fairy.close()
        logger.debug(f"Opened {name} with {min_size} connection(s), max {self.max_size}")

    @property
    def max_size(self) -> int:
        return self._pool.size()

    @property
    def acquire_timeout(self) -> float:
        return self._pool.timeout()

    def _checkout(self) -> Any:
        try:
            return self._pool.connect()
        except sa_exc.TimeoutError as e:
            raise DbException(
                f"timed out after {self.acquire_timeout}s waiting for a connection from {self.name}"
            ) from e
        except Exception as e:
            logger.error(f"Failed to open connection for {self.name}: {e}")
            raise DbException(f"connection failed: {e}") from e

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Check out a raw DB-API connection for the duration of the ``with`` block.

        Raises:
            DbException: If the pool is closed, no connection frees up within
                the pool timeout, or a new connection cannot be opened
        """
        if self._closed:
            raise DbException(f"{self.name} is closed")

        fairy = self._checkout()
        try:
            yield fairy.dbapi_connection
        except BaseException:
            # State of a connection that raised mid-statement is unknown
            fairy.invalidate()
            raise
        else:
            fairy.close()

    def close(self) -> None:
        """Dispose pooled connections and refuse further checkouts."""
        self._closed = True
        if self.engine is not None:
            self.engine.dispose()
        else:
            self._pool.dispose()
        logger.debug(f"Closed {self.name}")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def connect_mysql(target: ConnectionTarget) -> Any:
    """Open a PyMySQL connection for the target."""
    import pymysql

    return pymysql.connect(
        host=target.host,
        port=target.port,
        user=target.username,
        password=target.password,
        database=target.database,
        charset="utf8mb4",
        autocommit=True,
        connect_timeout=CONNECT_TIMEOUT,
    )


def connect_postgres(target: ConnectionTarget) -> Any:
    """Open a psycopg2 connection for the target."""
    import psycopg2

    conn = psycopg2.connect(
        host=target.host,
        port=target.port,
        user=target.username,
        password=target.password,
        dbname=target.database,
        connect_timeout=CONNECT_TIMEOUT,
    )
    conn.autocommit = True
    return conn


CONNECTORS: Dict[EngineKind, Callable[[ConnectionTarget], Any]] = {
    EngineKind.MYSQL: connect_mysql,
    EngineKind.POSTGRESQL: connect_postgres,
}


def target_url(target: ConnectionTarget) -> URL:
    """SQLAlchemy URL for the target (password hidden when rendered)."""
    return URL.create(
        DRIVER_NAMES[target.engine],
        username=target.username,
        password=target.password,
        host=target.host,
        port=target.port,
        database=target.database,
    )


def open_pool(
    target: ConnectionTarget,
    max_size: Optional[int] = None,
    min_size: Optional[int] = None,
    acquire_timeout: Optional[float] = None,
) -> ConnectionPool:
    """
    Create a pooled engine for the target's engine.

    Args:
        target: Validated connection target
        max_size: Override for the engine's default maximum size
        min_size: Override for the engine's default minimum size
        acquire_timeout: Override for the engine's default acquire timeout

    Returns:
        An open ConnectionPool

    Raises:
        InvalidArgument: If no driver connector exists for the engine or
            the pool options are out of range
        DbException: If the initial connections cannot be opened
    """
    connector = CONNECTORS.get(target.engine)
    if connector is None:
        raise InvalidArgument(f"no database driver for engine {target.engine.value}")

    options = dict(POOL_DEFAULTS[target.engine])
    if max_size is not None:
        options["max_size"] = max_size
    if min_size is not None:
        options["min_size"] = min_size
    if acquire_timeout is not None:
        options["acquire_timeout"] = acquire_timeout

    if options["max_size"] < 1:
        raise InvalidArgument("pool max_size must be at least 1")
    if not 0 <= options["min_size"] <= options["max_size"]:
        raise InvalidArgument("pool min_size must be between 0 and max_size")
    if options["acquire_timeout"] <= 0:
        raise InvalidArgument("pool acquire_timeout must be positive")

    logger.info(
        f"Connecting to {target.engine.value} database {target.database} "
        f"at {target.host}:{target.port} as {target.username}"
    )
    engine = create_engine(
        target_url(target),
        creator=lambda: connector(target),
        poolclass=QueuePool,
        pool_size=options["max_size"],
        max_overflow=0,
        pool_timeout=options["acquire_timeout"],
    )
    return ConnectionPool(
        engine.pool,
        min_size=options["min_size"],
        name=f"{target.engine.value}://{target.host}:{target.port}/{target.database}",
        engine=engine,
    )
