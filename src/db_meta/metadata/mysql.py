"""
MySQL metadata provider.

Reads tables, views, primary keys, indexes and columns from
information_schema for one database.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from db_meta.metadata.base import MetadataProvider
from db_meta.metadata.decoder import decode_int, decode_text, require_text
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


# MySQL type mapping, keyed by upper-cased type code
MYSQL_TYPE_MAP = {
    "BIT": FieldType.BOOLEAN,
    "TINYINT": FieldType.INTEGER,
    "TINYINT UNSIGNED": FieldType.INTEGER,
    "SMALLINT": FieldType.INTEGER,
    "SMALLINT UNSIGNED": FieldType.INTEGER,
    "MEDIUMINT": FieldType.INTEGER,
    "MEDIUMINT UNSIGNED": FieldType.INTEGER,
    "INT": FieldType.INTEGER,
    "INTEGER": FieldType.INTEGER,
    "INT UNSIGNED": FieldType.LONG,
    "INTEGER UNSIGNED": FieldType.LONG,
    "BIGINT": FieldType.LONG,
    "BIGINT UNSIGNED": FieldType.BIG_INT,
    "FLOAT": FieldType.FLOAT,
    "DOUBLE": FieldType.DOUBLE,
    "DECIMAL": FieldType.BIG_DECIMAL,
    "DATE": FieldType.DATE,
    "DATETIME": FieldType.LOCAL_DATE_TIME,
    "TIMESTAMP": FieldType.TIMESTAMP,
    "TIME": FieldType.TIME,
    "BINARY": FieldType.BYTE_ARRAY,
    "VARBINARY": FieldType.BYTE_ARRAY,
    "BLOB": FieldType.BYTE_ARRAY,
    "TINYBLOB": FieldType.BYTE_ARRAY,
    "MEDIUMBLOB": FieldType.BYTE_ARRAY,
    "LONGBLOB": FieldType.BYTE_ARRAY,
    "GEOMETRY": FieldType.BYTE_ARRAY,
}

# Integer types whose COLUMN_TYPE may carry an "unsigned" attribute
_INTEGER_TYPES = {"TINYINT", "SMALLINT", "MEDIUMINT", "INT", "INTEGER", "BIGINT"}

# Types whose NUMERIC_SCALE is reported
_SCALED_TYPES = {"DECIMAL", "FLOAT", "DOUBLE"}


def mysql_field_type(code: str) -> FieldType:
    """Map a MySQL type code to its FieldType. Unknown codes map to String."""
    return MYSQL_TYPE_MAP.get(code.strip().upper(), FieldType.STRING)


def mysql_type_code(data_type: str, column_type: Optional[str]) -> str:
    """
    Build the type code the mapper expects from DATA_TYPE and COLUMN_TYPE.

    DATA_TYPE drops the unsigned attribute ("int"), COLUMN_TYPE keeps it
    ("int(10) unsigned"); integer types get an " UNSIGNED" suffix when
    COLUMN_TYPE says so.
    """
    code = data_type.strip().upper()
    if code in _INTEGER_TYPES and column_type and "unsigned" in column_type.lower():
        code = f"{code} UNSIGNED"
    return code


_TABLES_QUERY = """
SELECT TABLE_SCHEMA, TABLE_NAME, TABLE_COMMENT
FROM information_schema.TABLES
WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = %s
ORDER BY TABLE_NAME
"""

_PRIMARY_KEY_QUERY = """
SELECT TABLE_NAME, COLUMN_NAME, ORDINAL_POSITION
FROM information_schema.KEY_COLUMN_USAGE
WHERE TABLE_SCHEMA = %s AND CONSTRAINT_NAME = 'PRIMARY'
ORDER BY TABLE_NAME, ORDINAL_POSITION
"""

_INDEX_QUERY = """
SELECT TABLE_NAME, INDEX_NAME, COLUMN_NAME, SEQ_IN_INDEX, NON_UNIQUE
FROM information_schema.STATISTICS
WHERE TABLE_SCHEMA = %s AND INDEX_NAME <> 'PRIMARY'
ORDER BY TABLE_NAME, INDEX_NAME, SEQ_IN_INDEX
"""

_COLUMNS_QUERY = """
SELECT TABLE_NAME, COLUMN_NAME, DATA_TYPE, COLUMN_TYPE,
       COALESCE(CHARACTER_MAXIMUM_LENGTH, NUMERIC_PRECISION) AS COLUMN_LENGTH,
       NUMERIC_SCALE, IS_NULLABLE, COLUMN_COMMENT, EXTRA, COLUMN_DEFAULT
FROM information_schema.COLUMNS
WHERE TABLE_SCHEMA = %s AND TABLE_NAME IN %s
ORDER BY TABLE_NAME, ORDINAL_POSITION
"""


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value if value else None


class MySQLMetadataProvider(MetadataProvider):
    """
    Extracts metadata from the MySQL catalog.

    Uses information_schema views:
    - TABLES (base tables and views)
    - KEY_COLUMN_USAGE (PRIMARY constraint)
    - STATISTICS (secondary indexes)
    - COLUMNS
    """

    def get_tables(self) -> List[TableInfo]:
        rows = self._fetch_all(_TABLES_QUERY, (self.schema, "BASE TABLE"))
        tables = [
            TableInfo(
                schema=require_text(row, 0),
                name=require_text(row, 1),
                comment=_blank_to_none(decode_text(row, 2)),
            )
            for row in rows
        ]
        logger.debug(f"Found {len(tables)} tables in {self.schema}")
        return tables

    def set_primary_key(self, tables: Sequence[TableInfo]) -> Dict[str, PrimaryKeyPatch]:
        wanted = {t.name for t in tables}
        rows = self._fetch_all(_PRIMARY_KEY_QUERY, (self.schema,))

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
            patches[table_name] = PrimaryKeyPatch(pk_name="PRIMARY", pk_column=column_name)
        return patches

    def set_index_key(self, tables: Sequence[TableInfo]) -> Dict[str, IndexPatch]:
        wanted = {t.name for t in tables}
        rows = self._fetch_all(_INDEX_QUERY, (self.schema,))

        entries = []
        for row in rows:
            table_name = require_text(row, 0)
            if table_name not in wanted:
                continue
            index_name = require_text(row, 1)
            column_name = decode_text(row, 2)
            if column_name is None:
                # Functional key parts have no column
                logger.debug(f"Skipping expression key part of index {table_name}.{index_name}")
                continue
            entries.append((table_name, IndexInfo(
                column_name=column_name,
                index_name=index_name,
                index_def="",
                is_unique=decode_int(row, 4) == 0,
            )))
        return self._group_indexes(entries)

    def set_columns(self, tables: Sequence[TableInfo]) -> Dict[str, ColumnsPatch]:
        pk_map = {t.name: t.pk_column for t in tables if t.pk_column}
        return self._get_columns([t.name for t in tables], pk_map)

    def get_views(self) -> List[ViewInfo]:
        rows = self._fetch_all(_TABLES_QUERY, (self.schema, "VIEW"))
        views = [ViewInfo(schema=require_text(row, 0), name=require_text(row, 1)) for row in rows]
        logger.debug(f"Found {len(views)} views in {self.schema}")
        return views

    def set_view_columns(self, views: Sequence[ViewInfo]) -> Dict[str, ColumnsPatch]:
        return self._get_columns([v.name for v in views], {})

    def _get_columns(
        self,
        names: List[str],
        pk_map: Dict[str, str],
    ) -> Dict[str, ColumnsPatch]:
        """Fetch columns of the named tables or views in a single query."""
        if not names:
            return {}

        rows = self._fetch_all(_COLUMNS_QUERY, (self.schema, tuple(names)))

        columns: Dict[str, List[Column]] = {}
        for row in rows:
            table_name = require_text(row, 0)
            column_name = require_text(row, 1)
            data_type = require_text(row, 2)
            code = mysql_type_code(data_type, decode_text(row, 3))

            length = decode_int(row, 4)
            scale = decode_int(row, 5) if data_type.upper() in _SCALED_TYPES else None

            extra = decode_text(row, 8)
            auto_increment = extra.lower() == "auto_increment" if extra is not None else None

            columns.setdefault(table_name, []).append(Column(
                name=column_name,
                field_type=mysql_field_type(code),
                type_name=data_type,
                length=length if length is not None else -1,
                scale=scale,
                is_nullable=decode_text(row, 6) == "YES",
                comment=_blank_to_none(decode_text(row, 7)),
                auto_increment=auto_increment,
                default=decode_text(row, 9),
                is_pk=pk_map.get(table_name) == column_name,
            ))

        return {name: ColumnsPatch(tuple(cols)) for name, cols in columns.items()}
