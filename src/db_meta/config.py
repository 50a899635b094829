"""
Connection configuration loading.

A config file is YAML with a ``connection`` mapping and an optional
``pool`` mapping::

    connection:
      engine: postgresql
      host: localhost
      port: 5432
      username: meta
      password: secret
      database: shop
      schema: public
    pool:
      max_size: 10
      acquire_timeout: 5
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from db_meta.errors import BadRequest, InvalidArgument
from db_meta.models import DEFAULT_PORTS, ConnectionTarget, EngineKind

logger = logging.getLogger(__name__)

_POOL_KEYS = ("max_size", "min_size", "acquire_timeout")


def _load_yaml(path: Path) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise InvalidArgument(f"config file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise BadRequest(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise BadRequest(f"malformed config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidArgument(f"config file {path} must contain a mapping")
    return data


def build_target(
    engine: Any,
    host: Optional[str],
    username: Optional[str],
    password: Optional[str],
    database: Optional[str],
    port: Optional[int] = None,
    schema: Optional[str] = None,
) -> ConnectionTarget:
    """
    Build a ConnectionTarget from loose values, filling in the engine's
    default port. The result is not validated.
    """
    kind = EngineKind.parse(engine)
    if port is None:
        port = DEFAULT_PORTS.get(kind, 0)
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise InvalidArgument(f"port must be an integer, got {port!r}") from None

    # YAML may hand back numbers for numeric-looking passwords or names
    def text(value: Any) -> str:
        return "" if value is None else str(value)

    return ConnectionTarget(
        engine=kind,
        host=text(host),
        port=port,
        username=text(username),
        password=text(password),
        database=text(database),
        schema=text(schema) or None,
    )


def target_from_dict(data: Dict[str, Any]) -> ConnectionTarget:
    """Build a ConnectionTarget from a config mapping."""
    if "engine" not in data:
        raise InvalidArgument("connection config requires an 'engine'")
    return build_target(
        engine=data["engine"],
        host=data.get("host"),
        port=data.get("port"),
        username=data.get("username", data.get("user")),
        password=data.get("password"),
        database=data.get("database"),
        schema=data.get("schema"),
    )


def load_connection_config(path: Path) -> ConnectionTarget:
    """
    Load a connection target from a YAML config file.

    Args:
        path: Config file path

    Returns:
        ConnectionTarget (not yet validated)

    Raises:
        InvalidArgument: If the file is missing or the engine is unknown
        BadRequest: If the file cannot be read or parsed
    """
    data = _load_yaml(path)
    connection = data.get("connection", data)
    if not isinstance(connection, dict):
        raise InvalidArgument(f"'connection' in {path} must be a mapping")

    target = target_from_dict(connection)
    logger.info(f"Loaded connection config for {target.engine.value} database {target.database} from {path}")
    return target


def load_pool_options(path: Path) -> Dict[str, Any]:
    """Load the optional ``pool`` section of a config file."""
    data = _load_yaml(path)
    pool = data.get("pool") or {}
    if not isinstance(pool, dict):
        raise InvalidArgument(f"'pool' in {path} must be a mapping")

    unknown = set(pool) - set(_POOL_KEYS)
    if unknown:
        logger.warning(f"Ignoring unknown pool options in {path}: {sorted(unknown)}")
    return {k: pool[k] for k in _POOL_KEYS if k in pool}
