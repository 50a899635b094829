"""
PostgreSQL metadata provider.

Reads tables, views, primary keys and indexes from pg_catalog and columns
from information_schema for one schema.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from db_meta.metadata.base import MetadataProvider
from db_meta.metadata.decoder import decode_bool, decode_int, decode_text, require_text
from db_meta.models import (
    Column,
    ColumnsPatch,
    FieldType,
    IndexInfo,
    IndexPatch,
    PrimaryKeyPatch,
    TableInfo,
    ViewInfo,
)

logger = logging.getLogger(__name__)


# Ordered (substrings, type) rules over the lower-cased udt name; first match
# wins, so specific patterns ("bigint", "int8") precede general ones ("int").
PG_TYPE_RULES = (
    (("char", "text"), FieldType.STRING),
    (("bigint", "int8", "bigserial"), FieldType.LONG),
    (("interval", "point"), FieldType.STRING),
    (("int", "serial"), FieldType.INTEGER),
    (("date", "time", "year"), FieldType.DATE),
    (("bit", "bool"), FieldType.BOOLEAN),
    (("decimal", "numeric"), FieldType.BIG_DECIMAL),
    (("clob",), FieldType.CLOB),
    (("blob", "bytea"), FieldType.BYTE_ARRAY),
    (("float8",), FieldType.DOUBLE),
    (("float",), FieldType.FLOAT),
    (("double",), FieldType.DOUBLE),
    (("json", "enum"), FieldType.STRING),
)


def pg_field_type(code: str) -> FieldType:
    """
    Map a PostgreSQL type code to its FieldType. Unknown codes map to String.

    Note: date, time and timestamp variants all collapse to Date.
    """
    db_type = code.strip().lower()
    for patterns, field_type in PG_TYPE_RULES:
        if any(p in db_type for p in patterns):
            return field_type
    return FieldType.STRING


_RELATIONS_QUERY = """
SELECT n.nspname AS table_schem,
       c.relname AS table_name,
       d.description AS remarks
FROM pg_catalog.pg_namespace n
JOIN pg_catalog.pg_class c ON c.relnamespace = n.oid
LEFT JOIN pg_catalog.pg_description d
       ON (c.oid = d.objoid AND d.objsubid = 0 AND d.classoid = 'pg_class'::regclass)
WHERE n.nspname = %s AND c.relkind = %s
ORDER BY c.relname
"""

# Index key arrays are expanded with _pg_expandarray; (keys).n is the key
# ordinal and only rows whose attnum equals (keys).x belong to the key.
_PRIMARY_KEY_QUERY = """
SELECT result.table_name, result.column_name, result.key_seq, result.pk_name
FROM (SELECT ct.relname AS table_name,
             a.attname AS column_name,
             (information_schema._pg_expandarray(i.indkey)).n AS key_seq,
             ci.relname AS pk_name,
             information_schema._pg_expandarray(i.indkey) AS keys,
             a.attnum AS a_attnum
      FROM pg_catalog.pg_class ct
               JOIN pg_catalog.pg_attribute a ON (ct.oid = a.attrelid)
               JOIN pg_catalog.pg_namespace n ON (ct.relnamespace = n.oid)
               JOIN pg_catalog.pg_index i ON (a.attrelid = i.indrelid)
               JOIN pg_catalog.pg_class ci ON (ci.oid = i.indexrelid)
      WHERE n.nspname = %s AND ci.relname LIKE %s) result
WHERE result.a_attnum = (result.keys).x
ORDER BY result.table_name, result.pk_name, result.key_seq
"""

_INDEX_QUERY = """
SELECT result.table_name, result.column_name, result.key_seq, result.index_name,
       result.indexdef, result.is_unique
FROM (SELECT ct.relname AS table_name,
             a.attname AS column_name,
             (information_schema._pg_expandarray(i.indkey)).n AS key_seq,
             ci.relname AS index_name,
             information_schema._pg_expandarray(i.indkey) AS keys,
             a.attnum AS a_attnum,
             p.indexdef,
             i.indisunique AS is_unique
      FROM pg_catalog.pg_class ct
               JOIN pg_catalog.pg_attribute a ON (ct.oid = a.attrelid)
               JOIN pg_catalog.pg_namespace n ON (ct.relnamespace = n.oid)
               JOIN pg_catalog.pg_index i ON (a.attrelid = i.indrelid)
               JOIN pg_catalog.pg_class ci ON (ci.oid = i.indexrelid)
               JOIN pg_catalog.pg_indexes p
                    ON (p.schemaname = n.nspname AND p.indexname = ci.relname)
      WHERE n.nspname = %s AND ci.relname NOT LIKE %s) result
WHERE result.a_attnum = (result.keys).x
ORDER BY result.table_name, result.index_name, result.key_seq
"""

_COLUMNS_QUERY = """
SELECT col.table_name,
       col.column_name,
       col.udt_name,
       coalesce(col.character_maximum_length, col.numeric_precision, -1) AS column_length,
       col.numeric_scale,
       des.description,
       col.is_nullable,
       col.column_default
FROM information_schema.columns col
LEFT JOIN pg_catalog.pg_description des
       ON ((quote_ident(col.table_schema) || '.' || quote_ident(col.table_name))::regclass = des.objoid
           AND col.ordinal_position = des.objsubid)
WHERE col.table_schema = %s AND col.table_name IN %s
ORDER BY col.table_name, col.ordinal_position
"""

_PKEY_PATTERN = "%_pkey"


class PostgresMetadataProvider(MetadataProvider):
    """
    Extracts metadata from the PostgreSQL catalog.

    Uses:
    - pg_class / pg_namespace / pg_description (relations and comments)
    - pg_index / pg_attribute / pg_indexes (primary keys and indexes)
    - information_schema.columns (columns)
    """

    def _get_relations(self, relkind: str) -> List[tuple]:
        rows = self._fetch_all(_RELATIONS_QUERY, (self.schema, relkind))
        return [(require_text(row, 0), require_text(row, 1), decode_text(row, 2)) for row in rows]

    def get_tables(self) -> List[TableInfo]:
        tables = [
            TableInfo(schema=schema, name=name, comment=comment)
            for schema, name, comment in self._get_relations("r")
        ]
        logger.debug(f"Found {len(tables)} tables in {self.schema}")
        return tables

    def set_primary_key(self, tables: Sequence[TableInfo]) -> Dict[str, PrimaryKeyPatch]:
        wanted = {t.name for t in tables}
        rows = self._fetch_all(_PRIMARY_KEY_QUERY, (self.schema, _PKEY_PATTERN))

        patches: Dict[str, PrimaryKeyPatch] = {}
        for row in rows:
            table_name = require_text(row, 0)
            if table_name not in wanted:
                continue
            column_name = require_text(row, 1)
            if table_name in patches:
                # Composite key: only the leading column is kept
                logger.debug(
                    f"Table {table_name} has a composite primary key; "
                    f"ignoring column {column_name}"
                )
                continue
            patches[table_name] = PrimaryKeyPatch(
                pk_name=require_text(row, 3),
                pk_column=column_name,
            )
        return patches

    def set_index_key(self, tables: Sequence[TableInfo]) -> Dict[str, IndexPatch]:
        wanted = {t.name for t in tables}
        rows = self._fetch_all(_INDEX_QUERY, (self.schema, _PKEY_PATTERN))

        entries = []
        for row in rows:
            table_name = require_text(row, 0)
            if table_name not in wanted:
                continue
            entries.append((table_name, IndexInfo(
                column_name=require_text(row, 1),
                index_name=require_text(row, 3),
                index_def=decode_text(row, 4) or "",
                is_unique=decode_bool(row, 5),
            )))
        return self._group_indexes(entries)

    def set_columns(self, tables: Sequence[TableInfo]) -> Dict[str, ColumnsPatch]:
        pk_map = {t.name: t.pk_column for t in tables if t.pk_column}
        return self._get_columns([t.name for t in tables], pk_map, infer_auto_increment=True)

    def get_views(self) -> List[ViewInfo]:
        views = [ViewInfo(schema=schema, name=name) for schema, name, _ in self._get_relations("v")]
        logger.debug(f"Found {len(views)} views in {self.schema}")
        return views

    def set_view_columns(self, views: Sequence[ViewInfo]) -> Dict[str, ColumnsPatch]:
        return self._get_columns([v.name for v in views], {}, infer_auto_increment=False)

    def _get_columns(
        self,
        names: List[str],
        pk_map: Dict[str, str],
        infer_auto_increment: bool,
    ) -> Dict[str, ColumnsPatch]:
        """Fetch columns of the named tables or views in a single query."""
        if not names:
            return {}

        rows = self._fetch_all(_COLUMNS_QUERY, (self.schema, tuple(names)))

        columns: Dict[str, List[Column]] = {}
        for row in rows:
            table_name = require_text(row, 0)
            column_name = require_text(row, 1)
            udt_name = require_text(row, 2)
            default = decode_text(row, 7)
            is_pk = pk_map.get(table_name) == column_name

            # Serial columns show up as a nextval(...) default on the key
            auto_increment = None
            if infer_auto_increment and default is not None:
                auto_increment = is_pk and default.lower().startswith("nextval")

            length = decode_int(row, 3)
            columns.setdefault(table_name, []).append(Column(
                name=column_name,
                field_type=pg_field_type(udt_name),
                type_name=udt_name,
                length=length if length is not None else -1,
                scale=decode_int(row, 4),
                is_nullable=decode_text(row, 6) != "NO",
                comment=decode_text(row, 5),
                auto_increment=auto_increment,
                default=default,
                is_pk=is_pk,
            ))

        return {name: ColumnsPatch(tuple(cols)) for name, cols in columns.items()}
