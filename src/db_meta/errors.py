"""
Error types raised by db_meta.

Every failure surfaced to callers is a MetaError subclass; the underlying
driver or I/O exception stays attached as ``__cause__``.
"""


class MetaError(Exception):
    """Base class for all db_meta errors."""


class InvalidArgument(MetaError):
    """Bad or unsupported configuration. Raised before touching the database."""

    def __init__(self, message: str):
        super().__init__(f"invalid argument: {message}")


class DbException(MetaError):
    """Connection, pool acquisition, catalog query or value decode failure."""


class CatalogDecodeError(DbException):
    """A catalog value could not be read as the expected type."""


class BadRequest(MetaError):
    """I/O failure in a collaborator (config file, output document)."""
