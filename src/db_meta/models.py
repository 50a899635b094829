"""
Core data models for the db_meta package.

Defines the engine-agnostic metadata document (tables, views, columns,
indexes), the canonical field type taxonomy, and the connection target
consumed by the extraction pipeline.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from db_meta.errors import BadRequest, InvalidArgument


class FieldType(str, Enum):
    """Canonical field types shared by every engine."""
    STRING = "String"
    LONG = "Long"
    INTEGER = "Integer"
    FLOAT = "Float"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"
    BYTE_ARRAY = "ByteArray"
    CHARACTER = "Character"
    OBJECT = "Object"
    DATE = "Date"
    TIME = "Time"
    BLOB = "Blob"
    CLOB = "Clob"
    TIMESTAMP = "Timestamp"
    BIG_INT = "BigInt"
    BIG_DECIMAL = "BigDecimal"
    LOCAL_DATE = "LocalDate"
    LOCAL_TIME = "LocalTime"
    LOCAL_DATE_TIME = "LocalDateTime"


class EngineKind(str, Enum):
    """Database engines a connection target can name."""
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    MARIADB = "mariadb"  # Placeholder, no provider yet
    SQLITE = "sqlite"  # Placeholder, no provider yet

    @classmethod
    def parse(cls, value: Any) -> EngineKind:
        """Parse an engine name (case-insensitive, accepts common aliases)."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        aliases = {"postgres": "postgresql", "pg": "postgresql"}
        name = aliases.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise InvalidArgument(f"unknown database engine: {value!r}") from None


DEFAULT_PORTS = {
    EngineKind.MYSQL: 3306,
    EngineKind.MARIADB: 3306,
    EngineKind.POSTGRESQL: 5432,
}


@dataclass(frozen=True)
class ConnectionTarget:
    """Where and how to reach the database whose catalog is read."""
    engine: EngineKind
    host: str
    port: int
    username: str
    password: str
    database: str
    schema: Optional[str] = None

    def validate(self) -> None:
        """Reject targets with empty credentials, host or database."""
        if not self.username:
            raise InvalidArgument("username must not be empty")
        if not self.password:
            raise InvalidArgument("password must not be empty")
        if not self.host:
            raise InvalidArgument("host must not be empty")
        if not self.database:
            raise InvalidArgument("database must not be empty")

    @property
    def effective_schema(self) -> str:
        """Schema the catalog queries are scoped to."""
        if self.schema:
            return self.schema
        if self.engine == EngineKind.POSTGRESQL:
            return "public"
        return self.database

    def __repr__(self) -> str:
        return (
            f"ConnectionTarget(engine={self.engine.value!r}, host={self.host!r}, "
            f"port={self.port!r}, username={self.username!r}, password='***', "
            f"database={self.database!r}, schema={self.schema!r})"
        )


@dataclass(frozen=True)
class Column:
    """Metadata for a single table or view column."""
    name: str
    field_type: FieldType
    type_name: str
    length: int = -1
    scale: Optional[int] = None
    is_nullable: bool = True
    comment: Optional[str] = None
    auto_increment: Optional[bool] = None
    default: Optional[str] = None
    is_pk: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "field_type": self.field_type.value,
            "type_name": self.type_name,
            "length": self.length,
            "scale": self.scale,
            "is_nullable": self.is_nullable,
            "comment": self.comment,
            "auto_increment": self.auto_increment,
            "default": self.default,
            "is_pk": self.is_pk,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Column:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            field_type=FieldType(data["field_type"]),
            type_name=data.get("type_name", ""),
            length=data.get("length", -1),
            scale=data.get("scale"),
            is_nullable=data.get("is_nullable", True),
            comment=data.get("comment"),
            auto_increment=data.get("auto_increment"),
            default=data.get("default"),
            is_pk=data.get("is_pk", False),
        )


@dataclass(frozen=True)
class IndexInfo:
    """One (index, column) pair; multi-column indexes yield several entries."""
    column_name: str
    index_name: str
    index_def: str = ""
    is_unique: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_name": self.column_name,
            "index_name": self.index_name,
            "index_def": self.index_def,
            "is_unique": self.is_unique,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> IndexInfo:
        return cls(
            column_name=data["column_name"],
            index_name=data["index_name"],
            index_def=data.get("index_def", ""),
            is_unique=data.get("is_unique", False),
        )


def _stamp_pk(columns: Tuple[Column, ...], pk_column: str) -> Tuple[Column, ...]:
    """Return columns whose is_pk flag agrees with the owning pk column."""
    stamped = []
    for col in columns:
        is_pk = bool(pk_column) and col.name == pk_column
        stamped.append(col if col.is_pk == is_pk else replace(col, is_pk=is_pk))
    return tuple(stamped)


@dataclass(frozen=True)
class TableInfo:
    """
    Metadata for a base table.

    Instances produced by ``get_tables`` carry only schema, name and comment;
    primary key, index and column fields are filled in by later pipeline
    stages. Column ``is_pk`` flags are always recomputed from ``pk_column``.
    """
    schema: str
    name: str
    comment: Optional[str] = None
    pk_name: str = ""
    pk_column: str = ""
    index_columns: Tuple[IndexInfo, ...] = field(default_factory=tuple)
    columns: Tuple[Column, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "index_columns", tuple(self.index_columns))
        object.__setattr__(self, "columns", _stamp_pk(tuple(self.columns), self.pk_column))

    @property
    def full_name(self) -> str:
        """Return schema-qualified table name."""
        return f"{self.schema}.{self.name}" if self.schema else self.name

    @property
    def column_names(self) -> list:
        return [c.name for c in self.columns]

    @property
    def index_names(self) -> list:
        """Distinct index names in the order they first appear."""
        names = []
        for idx in self.index_columns:
            if idx.index_name not in names:
                names.append(idx.index_name)
        return names

    def get_column(self, name: str) -> Optional[Column]:
        """Get column by name (case-insensitive)."""
        name_lower = name.lower()
        for col in self.columns:
            if col.name.lower() == name_lower:
                return col
        return None

    def get_index(self, index_name: str) -> Tuple[IndexInfo, ...]:
        """Entries of one index in key ordinal order."""
        return tuple(i for i in self.index_columns if i.index_name == index_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "schema": self.schema,
            "name": self.name,
            "comment": self.comment,
            "pk_name": self.pk_name,
            "pk_column": self.pk_column,
            "index_columns": [i.to_dict() for i in self.index_columns],
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TableInfo:
        """Create from dictionary."""
        return cls(
            schema=data.get("schema", ""),
            name=data["name"],
            comment=data.get("comment"),
            pk_name=data.get("pk_name", ""),
            pk_column=data.get("pk_column", ""),
            index_columns=tuple(IndexInfo.from_dict(i) for i in data.get("index_columns", [])),
            columns=tuple(Column.from_dict(c) for c in data.get("columns", [])),
        )


@dataclass(frozen=True)
class ViewInfo:
    """Metadata for a view. Views have no primary key or index concept."""
    schema: str
    name: str
    columns: Tuple[Column, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "columns", _stamp_pk(tuple(self.columns), ""))

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    @property
    def column_names(self) -> list:
        return [c.name for c in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.schema,
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ViewInfo:
        return cls(
            schema=data.get("schema", ""),
            name=data["name"],
            columns=tuple(Column.from_dict(c) for c in data.get("columns", [])),
        )


# Pipeline stage results, keyed by table/view name and folded by the resolver.

@dataclass(frozen=True)
class PrimaryKeyPatch:
    pk_name: str
    pk_column: str


@dataclass(frozen=True)
class IndexPatch:
    index_columns: Tuple[IndexInfo, ...]


@dataclass(frozen=True)
class ColumnsPatch:
    columns: Tuple[Column, ...]


@dataclass(frozen=True)
class Metadata:
    """
    The extraction result: every base table and view of one schema.

    Tables and views are ordered by (schema, name).
    """
    tables: Tuple[TableInfo, ...] = field(default_factory=tuple)
    views: Tuple[ViewInfo, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "tables", tuple(self.tables))
        object.__setattr__(self, "views", tuple(self.views))

    def get_table(self, name: str) -> Optional[TableInfo]:
        """Get table by name (case-insensitive)."""
        name_lower = name.lower()
        for table in self.tables:
            if table.name.lower() == name_lower:
                return table
        return None

    def get_view(self, name: str) -> Optional[ViewInfo]:
        """Get view by name (case-insensitive)."""
        name_lower = name.lower()
        for view in self.views:
            if view.name.lower() == name_lower:
                return view
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tables": [t.to_dict() for t in self.tables],
            "views": [v.to_dict() for v in self.views],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Metadata:
        """Create from dictionary."""
        return cls(
            tables=tuple(TableInfo.from_dict(t) for t in data.get("tables", [])),
            views=tuple(ViewInfo.from_dict(v) for v in data.get("views", [])),
        )

    def save(self, path: Path) -> None:
        """
        Write the document to disk.

        The format follows the file suffix: ``.yaml``/``.yml`` for YAML,
        anything else for JSON.

        Raises:
            BadRequest: If the file cannot be written
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
                else:
                    json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise BadRequest(f"cannot write metadata to {path}: {e}") from e

    @classmethod
    def load(cls, path: Path) -> Metadata:
        """Read a document written by :meth:`save`."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except OSError as e:
            raise BadRequest(f"cannot read metadata from {path}: {e}") from e
        except (ValueError, yaml.YAMLError) as e:
            raise BadRequest(f"malformed metadata document {path}: {e}") from e

        if not isinstance(data, dict):
            raise BadRequest(f"metadata document {path} must contain a mapping")
        try:
            return cls.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise BadRequest(f"invalid metadata document {path}: {e!r}") from e
