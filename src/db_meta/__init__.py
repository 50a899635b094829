"""
db_meta - Relational catalog metadata extraction

Reads the system catalog of a MySQL or PostgreSQL database and produces one
engine-agnostic metadata document for code generators, schema diffing and
documentation tooling.

Features:
- Tables, views, columns, indexes and primary keys from the catalog
- One canonical field type taxonomy across engines
- Tolerant decoding of catalog values (text or raw bytes)
- Pooled connections with bounded acquire timeouts
"""

__version__ = "0.1.0"

from db_meta.errors import (
    BadRequest,
    CatalogDecodeError,
    DbException,
    InvalidArgument,
    MetaError,
)
from db_meta.models import (
    Column,
    ConnectionTarget,
    EngineKind,
    FieldType,
    IndexInfo,
    Metadata,
    TableInfo,
    ViewInfo,
)
from db_meta.metadata import (
    MetadataResolver,
    extract,
    mysql_field_type,
    pg_field_type,
)

__all__ = [
    # Core models
    "Column",
    "ConnectionTarget",
    "EngineKind",
    "FieldType",
    "IndexInfo",
    "Metadata",
    "TableInfo",
    "ViewInfo",
    # Errors
    "MetaError",
    "InvalidArgument",
    "DbException",
    "CatalogDecodeError",
    "BadRequest",
    # Extraction
    "MetadataResolver",
    "extract",
    "mysql_field_type",
    "pg_field_type",
]
