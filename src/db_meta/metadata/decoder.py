"""
Tolerant reads of catalog result cells.

Depending on server charset and collation, catalog drivers hand back
information_schema text either as ``str`` or as raw ``bytes``. Every read
here returns a value of the requested type or raises CatalogDecodeError;
nothing is silently replaced with an empty value.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Sequence

from db_meta.errors import CatalogDecodeError

_BINARY_TYPES = (bytes, bytearray, memoryview)

_TRUE_TEXT = {"t", "true", "1", "y", "yes"}
_FALSE_TEXT = {"f", "false", "0", "n", "no"}


def _cell(row: Sequence[Any], index: int) -> Any:
    try:
        return row[index]
    except (IndexError, KeyError, TypeError) as e:
        raise CatalogDecodeError(f"catalog row has no column at position {index}") from e


def _utf8(raw: Any, index: int) -> str:
    try:
        return bytes(raw).decode("utf-8")
    except UnicodeDecodeError as e:
        raise CatalogDecodeError(
            f"column {index} is neither text nor UTF-8 bytes: {bytes(raw)[:32]!r}"
        ) from e


def decode_text(row: Sequence[Any], index: int) -> Optional[str]:
    """
    Read one cell as text.

    Args:
        row: A catalog result row
        index: Zero-based column position

    Returns:
        The text value, or None for SQL NULL

    Raises:
        CatalogDecodeError: If the cell is bytes that are not valid UTF-8,
            or holds a non-text value
    """
    value = _cell(row, index)
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, _BINARY_TYPES):
        return _utf8(value, index)
    raise CatalogDecodeError(
        f"column {index} holds {type(value).__name__}, expected text"
    )


def require_text(row: Sequence[Any], index: int) -> str:
    """Like decode_text, but NULL is an error."""
    value = decode_text(row, index)
    if value is None:
        raise CatalogDecodeError(f"column {index} is NULL, expected text")
    return value


def decode_int(row: Sequence[Any], index: int) -> Optional[int]:
    """Read one cell as an integer (None for NULL)."""
    value = _cell(row, index)
    if value is None:
        return None
    # bool is an int subclass but never a catalog length or count
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        raise CatalogDecodeError(f"column {index} holds non-integral {value}")
    if isinstance(value, _BINARY_TYPES):
        value = _utf8(value, index)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as e:
            raise CatalogDecodeError(f"column {index} is not an integer: {value!r}") from e
    raise CatalogDecodeError(
        f"column {index} holds {type(value).__name__}, expected an integer"
    )


def render_text(value: Any) -> str:
    """Render any result cell as text for ad-hoc queries. NULL becomes ''."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, _BINARY_TYPES):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise CatalogDecodeError("result cell is not valid UTF-8") from e
    return str(value)


def decode_bool(row: Sequence[Any], index: int) -> bool:
    """
    Read one cell as a flag.

    Drivers return catalog booleans as ``bool``, integers, or the text forms
    ``t``/``f``, ``true``/``false``, ``yes``/``no``.
    """
    value = _cell(row, index)
    if isinstance(value, (bool, int)):
        return bool(value)
    if isinstance(value, (str,) + _BINARY_TYPES):
        text = decode_text(row, index).strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
    raise CatalogDecodeError(f"column {index} is not a boolean: {value!r}")
