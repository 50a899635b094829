"""Tests for the PostgreSQL metadata provider."""

import pytest

from db_meta.errors import CatalogDecodeError, DbException
from db_meta.metadata import PostgresMetadataProvider
from db_meta.models import FieldType, TableInfo, ViewInfo

from conftest import USERS_INDEX_DEF, FakeCatalog


@pytest.fixture
def provider(make_pool, pg_catalog):
    return PostgresMetadataProvider(make_pool(pg_catalog), "public")


def _tables():
    return [
        TableInfo(schema="public", name="users", comment="app users", pk_column="id"),
        TableInfo(schema="public", name="audit_log", pk_column="tenant_id"),
    ]


class TestPostgresRelations:
    """Tests for get_tables / get_views."""

    def test_get_tables(self, provider, pg_catalog):
        tables = provider.get_tables()

        assert [t.name for t in tables] == ["users", "audit_log"]
        assert tables[0].comment == "app users"
        assert tables[1].comment is None
        assert pg_catalog.executed[0][1] == ("public", "r")

    def test_get_views(self, provider, pg_catalog):
        views = provider.get_views()

        assert [(v.schema, v.name) for v in views] == [("public", "user_emails")]
        assert pg_catalog.executed[0][1] == ("public", "v")


class TestPostgresKeys:
    """Tests for primary key and index stages."""

    def test_primary_keys(self, provider, pg_catalog):
        patches = provider.set_primary_key(_tables())

        assert patches["users"].pk_name == "users_pkey"
        assert patches["users"].pk_column == "id"
        assert pg_catalog.executed[0][1] == ("public", "%_pkey")

    def test_composite_key_keeps_leading_column(self, provider):
        patches = provider.set_primary_key(_tables())

        assert patches["audit_log"].pk_name == "audit_log_pkey"
        assert patches["audit_log"].pk_column == "tenant_id"

    def test_indexes(self, provider, pg_catalog):
        patches = provider.set_index_key(_tables())

        pair = patches["users"].index_columns
        assert [i.column_name for i in pair] == ["tenant_id", "email"]
        assert all(i.index_name == "users_tenant_email_key" for i in pair)
        assert all(i.is_unique for i in pair)
        assert pair[0].index_def == USERS_INDEX_DEF

        (gin,) = patches["audit_log"].index_columns
        assert gin.is_unique is False
        assert "USING gin" in gin.index_def
        assert pg_catalog.executed[0][1] == ("public", "%_pkey")

    def test_text_unique_flag(self, make_pool):
        catalog = FakeCatalog({
            "pg_indexes": [("users", "email", 1, "users_email_key", None, "t")],
        })
        provider = PostgresMetadataProvider(make_pool(catalog), "public")

        patches = provider.set_index_key([TableInfo(schema="public", name="users")])
        (entry,) = patches["users"].index_columns
        assert entry.is_unique is True
        assert entry.index_def == ""

    def test_short_index_row(self, make_pool):
        catalog = FakeCatalog({
            "pg_indexes": [("users", "email", 1, "users_email_key", None)],
        })
        provider = PostgresMetadataProvider(make_pool(catalog), "public")

        with pytest.raises(CatalogDecodeError):
            provider.set_index_key([TableInfo(schema="public", name="users")])


class TestPostgresColumns:
    """Tests for set_columns / set_view_columns."""

    def test_users_columns(self, provider):
        cols = {c.name: c for c in provider.set_columns(_tables())["users"].columns}

        assert cols["id"].field_type == FieldType.LONG
        assert cols["id"].auto_increment is True
        assert cols["id"].is_pk is True
        assert cols["id"].comment == "surrogate key"
        assert cols["id"].length == 64
        assert cols["tenant_id"].field_type == FieldType.INTEGER
        assert cols["tenant_id"].auto_increment is None
        assert cols["email"].is_nullable is False
        assert cols["email"].scale is None
        assert cols["created_at"].field_type == FieldType.DATE
        assert cols["created_at"].auto_increment is False
        assert cols["created_at"].default == "now()"

    def test_sequence_on_non_key_column(self, provider):
        cols = {c.name: c for c in provider.set_columns(_tables())["audit_log"].columns}

        assert cols["entry_id"].auto_increment is False
        assert cols["entry_id"].is_pk is False
        assert cols["payload"].field_type == FieldType.STRING
        assert cols["payload"].length == -1

    def test_view_columns(self, provider):
        patches = provider.set_view_columns([ViewInfo(schema="public", name="user_emails")])

        cols = patches["user_emails"].columns
        assert [c.name for c in cols] == ["id", "email"]
        assert all(c.auto_increment is None and not c.is_pk for c in cols)

    def test_empty_name_list_skips_query(self, provider, pg_catalog):
        assert provider.set_columns([]) == {}
        assert pg_catalog.executed == []


class TestPostgresFailures:
    """Tests for error propagation."""

    def test_pool_timeout_surfaces_as_db_exception(self, make_pool, pg_catalog):
        pool = make_pool(pg_catalog, max_size=1, acquire_timeout=0.05)
        provider = PostgresMetadataProvider(pool, "public")

        with pool.connection():
            with pytest.raises(DbException, match="timed out"):
                provider.get_tables()

    def test_query_error_wrapped(self, make_pool):
        catalog = FakeCatalog({"c.relkind = %s": ValueError("permission denied for pg_class")})
        provider = PostgresMetadataProvider(make_pool(catalog), "public")

        with pytest.raises(DbException, match="permission denied"):
            provider.get_views()
