"""Tests for connection config loading."""

import pytest

from db_meta.config import build_target, load_connection_config, load_pool_options, target_from_dict
from db_meta.errors import BadRequest, InvalidArgument
from db_meta.models import EngineKind


CONFIG = """
connection:
  engine: postgres
  host: db.internal
  username: meta
  password: 1234
  database: app
  schema: sales
pool:
  max_size: 8
  acquire_timeout: 2.5
  retries: 3
"""


class TestBuildTarget:
    """Tests for build_target."""

    def test_default_ports(self):
        assert build_target("mysql", "h", "u", "p", "d").port == 3306
        assert build_target("postgresql", "h", "u", "p", "d").port == 5432

    def test_explicit_port(self):
        assert build_target("mysql", "h", "u", "p", "d", port="3307").port == 3307

    def test_bad_port(self):
        with pytest.raises(InvalidArgument, match="port"):
            build_target("mysql", "h", "u", "p", "d", port="abc")

    def test_missing_values_become_empty(self):
        target = build_target("mysql", None, None, None, None)
        assert target.host == ""
        assert target.schema is None
        with pytest.raises(InvalidArgument, match="username"):
            target.validate()

    def test_unknown_engine(self):
        with pytest.raises(InvalidArgument):
            build_target("db2", "h", "u", "p", "d")


class TestTargetFromDict:
    """Tests for target_from_dict."""

    def test_user_alias(self):
        target = target_from_dict({"engine": "mysql", "user": "root", "host": "h",
                                   "password": "p", "database": "shop"})
        assert target.username == "root"

    def test_engine_required(self):
        with pytest.raises(InvalidArgument, match="engine"):
            target_from_dict({"host": "h"})


class TestConfigFile:
    """Tests for loading YAML config files."""

    def test_load_connection(self, tmp_path):
        path = tmp_path / "conn.yaml"
        path.write_text(CONFIG)

        target = load_connection_config(path)
        assert target.engine == EngineKind.POSTGRESQL
        assert target.port == 5432
        assert target.password == "1234"
        assert target.effective_schema == "sales"

    def test_top_level_mapping(self, tmp_path):
        path = tmp_path / "conn.yaml"
        path.write_text("engine: mysql\nhost: h\nusername: u\npassword: p\ndatabase: shop\n")

        target = load_connection_config(path)
        assert target.engine == EngineKind.MYSQL
        assert target.effective_schema == "shop"

    def test_pool_options(self, tmp_path):
        path = tmp_path / "conn.yaml"
        path.write_text(CONFIG)

        assert load_pool_options(path) == {"max_size": 8, "acquire_timeout": 2.5}

    def test_pool_section_optional(self, tmp_path):
        path = tmp_path / "conn.yaml"
        path.write_text("engine: mysql\n")
        assert load_pool_options(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidArgument, match="not found"):
            load_connection_config(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("connection: [unclosed\n")
        with pytest.raises(BadRequest):
            load_connection_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- mysql\n- postgres\n")
        with pytest.raises(InvalidArgument, match="mapping"):
            load_connection_config(path)
