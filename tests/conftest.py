"""
Shared fixtures: an in-memory stand-in for DB-API connections.

A FakeCatalog maps SQL markers (substrings) to canned rows, so providers
and the resolver can run their real queries without a database.
"""

from decimal import Decimal

import pytest
from sqlalchemy.pool import QueuePool

from db_meta.connection import ConnectionPool
from db_meta.models import ConnectionTarget, EngineKind


def _text(value):
    return value.decode("utf-8") if isinstance(value, bytes) else value


class FakeCatalog:
    """
    Canned responses keyed by a SQL marker substring.

    A response is a list of rows, an Exception instance to raise, or a
    callable taking the bound parameters and returning either.
    """

    def __init__(self, responses):
        self.responses = dict(responses)
        self.executed = []

    def respond(self, sql, params):
        self.executed.append((sql, params))
        for marker, response in self.responses.items():
            if marker in sql:
                result = response(params) if callable(response) else response
                if isinstance(result, Exception):
                    raise result
                return result
        raise RuntimeError(f"unexpected query: {sql.strip()[:60]}")

    def ran(self, marker):
        """Number of executed statements containing the marker."""
        return sum(1 for sql, _ in self.executed if marker in sql)


class FakeCursor:
    def __init__(self, catalog):
        self.catalog = catalog
        self.description = None
        self._rows = []
        self.closed = False

    def execute(self, sql, params=None):
        rows = self.catalog.respond(sql, params)
        self._rows = list(rows) if rows is not None else []
        self.description = [("c",)] if rows is not None else None

    def fetchall(self):
        return self._rows

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, catalog):
        self.catalog = catalog
        self.closed = False

    def cursor(self):
        return FakeCursor(self.catalog)

    def rollback(self):
        pass

    def close(self):
        self.closed = True


def rows_for(rows):
    """Column-query handler returning only rows of the requested names."""
    def handler(params):
        names = set(params[1])
        return [r for r in rows if _text(r[0]) in names]
    return handler


@pytest.fixture
def make_pool():
    """Build a ConnectionPool whose connections answer from a FakeCatalog."""
    def _make(catalog, max_size=30, acquire_timeout=1.0):
        pool = QueuePool(
            lambda: FakeConnection(catalog),
            pool_size=max_size,
            max_overflow=0,
            timeout=acquire_timeout,
        )
        return ConnectionPool(pool, name="fake")
    return _make


# ----------------------------------------------------------------------
# MySQL fixture schema: database "shop"
# ----------------------------------------------------------------------

MYSQL_COLUMNS = [
    # TABLE_NAME, COLUMN_NAME, DATA_TYPE, COLUMN_TYPE, LENGTH, SCALE,
    # IS_NULLABLE, COLUMN_COMMENT, EXTRA, COLUMN_DEFAULT
    ("orders", "id", "bigint", "bigint unsigned", 20, 0, "NO", "", "auto_increment", None),
    ("orders", "user_id", "int", "int(11)", 10, 0, "NO", "owner", "", None),
    ("orders", "order_no", "varchar", "varchar(32)", 32, None, "NO", "", "", None),
    ("orders", "amount", "decimal", "decimal(10,2)", 10, Decimal("2"), "YES", "", "", "0.00"),
    ("users", "id", "int", "int(10) unsigned", 10, 0, "NO", "", "auto_increment", None),
    (b"users", b"email", b"varchar", b"varchar(255)", 255, None, b"NO", b"login email", b"", None),
    ("users", "created_at", "datetime", "datetime", None, None, "NO", "",
     "DEFAULT_GENERATED", "CURRENT_TIMESTAMP"),
    ("active_users", "id", "int", "int(10) unsigned", 10, 0, "NO", "", "", None),
    ("active_users", "email", "varchar", "varchar(255)", 255, None, "NO", "", "", None),
]


def mysql_responses():
    def tables(params):
        if params[1] == "BASE TABLE":
            return [("shop", "users", "Registered users"), ("shop", "orders", "")]
        return [("shop", "active_users", "VIEW")]

    return {
        "information_schema.TABLES": tables,
        "KEY_COLUMN_USAGE": [
            ("orders", "id", 1),
            ("users", "id", 1),
            ("ghost", "id", 1),
        ],
        "information_schema.STATISTICS": [
            # TABLE_NAME, INDEX_NAME, COLUMN_NAME, SEQ_IN_INDEX, NON_UNIQUE
            ("orders", "uk_order_user_no", "user_id", 1, 0),
            ("orders", "uk_order_user_no", "order_no", 2, 0),
            ("users", "idx_email", "email", 1, 1),
            ("ghost", "idx_ghost", "x", 1, 1),
        ],
        "information_schema.COLUMNS": rows_for(MYSQL_COLUMNS),
        "COUNT(": [(3,)],
        "SELECT id, name": [(1, "alice", None, b"\xe2\x82\xac", Decimal("1.50"))],
    }


@pytest.fixture
def mysql_catalog():
    return FakeCatalog(mysql_responses())


@pytest.fixture
def mysql_target():
    return ConnectionTarget(
        engine=EngineKind.MYSQL,
        host="localhost",
        port=3306,
        username="root",
        password="root",
        database="shop",
    )


# ----------------------------------------------------------------------
# PostgreSQL fixture schema: schema "public"
# ----------------------------------------------------------------------

PG_COLUMNS = [
    # table, column, udt_name, length, scale, description, is_nullable, default
    ("users", "id", "int8", 64, 0, "surrogate key", "NO", "nextval('users_id_seq'::regclass)"),
    ("users", "tenant_id", "int4", 32, 0, None, "NO", None),
    ("users", "email", "varchar", 255, None, None, "NO", None),
    ("users", "created_at", "timestamp", -1, None, None, "YES", "now()"),
    ("audit_log", "tenant_id", "int4", 32, 0, None, "NO", None),
    ("audit_log", "entry_id", "int4", 32, 0, None, "NO", "nextval('audit_seq'::regclass)"),
    ("audit_log", "payload", "jsonb", -1, None, None, "YES", None),
    ("user_emails", "id", "int8", 64, 0, None, "YES", None),
    ("user_emails", "email", "varchar", 255, None, None, "YES", None),
]

USERS_INDEX_DEF = (
    "CREATE UNIQUE INDEX users_tenant_email_key ON public.users USING btree (tenant_id, email)"
)


def pg_responses():
    def relations(params):
        if params[1] == "r":
            return [("public", "users", "app users"), ("public", "audit_log", None)]
        return [("public", "user_emails", None)]

    return {
        "pg_indexes": [
            # table, column, key_seq, index_name, indexdef, is_unique
            ("users", "tenant_id", 1, "users_tenant_email_key", USERS_INDEX_DEF, True),
            ("users", "email", 2, "users_tenant_email_key", USERS_INDEX_DEF, True),
            ("audit_log", "payload", 1, "audit_log_payload_idx",
             "CREATE INDEX audit_log_payload_idx ON public.audit_log USING gin (payload)", False),
        ],
        "ci.relname LIKE": [
            # table, column, key_seq, pk_name
            ("audit_log", "tenant_id", 1, "audit_log_pkey"),
            ("audit_log", "entry_id", 2, "audit_log_pkey"),
            ("users", "id", 1, "users_pkey"),
        ],
        "c.relkind = %s": relations,
        "information_schema.columns": rows_for(PG_COLUMNS),
    }


@pytest.fixture
def pg_catalog():
    return FakeCatalog(pg_responses())


@pytest.fixture
def pg_target():
    return ConnectionTarget(
        engine=EngineKind.POSTGRESQL,
        host="localhost",
        port=5432,
        username="postgres",
        password="postgres",
        database="app",
    )
