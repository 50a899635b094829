"""
Catalog metadata extraction for MySQL and PostgreSQL.

Provides the engine providers, the type mappers and the resolver that runs
the extraction pipeline.
"""

from db_meta.metadata.base import MetadataProvider
from db_meta.metadata.mysql import MySQLMetadataProvider, mysql_field_type
from db_meta.metadata.postgres import PostgresMetadataProvider, pg_field_type
from db_meta.metadata.resolver import MetadataResolver, extract, provider_class

__all__ = [
    "MetadataProvider",
    "MySQLMetadataProvider",
    "PostgresMetadataProvider",
    "MetadataResolver",
    "extract",
    "provider_class",
    "mysql_field_type",
    "pg_field_type",
]
