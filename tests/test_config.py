"""
Config Tests - layered loading, env parsing and built-in defaults.
"""

import json

import pytest

from unidb.config import ConfigLoader, default_database_config
from unidb.connections import ConnectionRegistry
from unidb.faults import ConfigurationError

DB_VARS = ("DB_CONNECTION", "DB_URL", "DB_HOST", "DB_PORT", "DB_DATABASE", "DB_USERNAME", "DB_PASSWORD")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in DB_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Built-in database section."""

    def test_default_connection_is_postgresql(self):
        """Without DB_CONNECTION the default is postgresql."""
        config = default_database_config({})
        assert config["default"] == "postgresql"
        assert config["migrations"] == "migrations"
        assert set(config["connections"]) == {"sqlite", "mysql", "postgresql", "mongodb"}

    def test_db_variables_feed_every_connection(self):
        """DB_* variables are shared by all connections."""
        config = default_database_config({
            "DB_CONNECTION": "mysql",
            "DB_HOST": "db.internal",
            "DB_PORT": "3307",
            "DB_PASSWORD": "s3cret",
        })
        mysql = config["connections"]["mysql"]
        assert config["default"] == "mysql"
        assert mysql["host"] == "db.internal"
        assert mysql["port"] == 3307
        assert mysql["password"] == "s3cret"
        assert config["connections"]["postgresql"]["port"] == 3307

    def test_default_ports(self):
        """Each driver has its own default port."""
        connections = default_database_config({})["connections"]
        assert connections["mysql"]["port"] == 3306
        assert connections["postgresql"]["port"] == 5432
        assert connections["mongodb"]["port"] == 27017


class TestConfigLoader:
    """Merge order and value parsing."""

    def test_yaml_file_overrides_defaults(self, tmp_path):
        """YAML files merge over the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "database:\n"
            "  default: local\n"
            "  connections:\n"
            "    local:\n"
            "      driver: sqlite\n"
            "      database: ':memory:'\n"
        )
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("database.default") == "local"
        assert loader.get("database.connections.local.driver") == "sqlite"
        # Defaults survive the merge
        assert loader.get("database.connections.postgresql.driver") == "postgresql"

    def test_json_file(self, tmp_path):
        """JSON files are loaded as well."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"database": {"default": "sqlite"}}))
        loader = ConfigLoader.load(paths=[str(path)], with_defaults=False)
        assert loader.to_dict() == {"database": {"default": "sqlite"}}

    def test_missing_explicit_file_raises(self, tmp_path):
        """A missing explicit path is a configuration error."""
        with pytest.raises(ConfigurationError):
            ConfigLoader.load(paths=[str(tmp_path / "nope.yaml")])

    def test_missing_glob_is_ignored(self, tmp_path):
        """A glob that matches nothing is fine."""
        loader = ConfigLoader.load(paths=[str(tmp_path / "*.yaml")], with_defaults=False)
        assert loader.to_dict() == {}

    def test_env_vars_nest_on_double_underscore(self, monkeypatch):
        """UNIDB_A__B__C maps to a.b.c and values are parsed."""
        monkeypatch.setenv("UNIDB_DATABASE__CONNECTIONS__SQLITE__OPTIONS__CONNECT_RETRIES", "5")
        monkeypatch.setenv("UNIDB_DATABASE__DEFAULT", "sqlite")
        loader = ConfigLoader.load()
        assert loader.get("database.default") == "sqlite"
        assert loader.get("database.connections.sqlite.options.connect_retries") == 5

    def test_env_file(self, tmp_path):
        """Prefixed .env entries apply and DB_* entries feed the defaults."""
        env_file = tmp_path / ".env"
        env_file.write_text("DB_CONNECTION=sqlite\nDB_DATABASE=app.db\nUNIDB_DATABASE__MIGRATIONS=schema_log\n")
        loader = ConfigLoader.load(env_file=str(env_file))
        assert loader.get("database.default") == "sqlite"
        assert loader.get("database.connections.sqlite.database") == "app.db"
        assert loader.get("database.migrations") == "schema_log"

    def test_overrides_win(self, monkeypatch):
        """Explicit overrides beat environment variables."""
        monkeypatch.setenv("UNIDB_DATABASE__DEFAULT", "mysql")
        loader = ConfigLoader.load(overrides={"database": {"default": "sqlite"}})
        assert loader.get("database.default") == "sqlite"

    def test_parse_value(self):
        """Strings become bools, numbers and JSON where they look like one."""
        loader = ConfigLoader()
        assert loader._parse_value("true") is True
        assert loader._parse_value("no") is False
        assert loader._parse_value("42") == 42
        assert loader._parse_value("0.5") == 0.5
        assert loader._parse_value('{"min": 1}') == {"min": 1}
        assert loader._parse_value("localhost") == "localhost"

    def test_get_default(self):
        """Unknown paths return the default."""
        loader = ConfigLoader.load(with_defaults=False)
        assert loader.get("database.missing", "fallback") == "fallback"

    def test_registry_from_loader(self):
        """A registry reads the database section of a loader."""
        loader = ConfigLoader.load(overrides={"database": {"default": "sqlite"}})
        registry = ConnectionRegistry.from_loader(loader)
        assert registry.default_connection == "sqlite"
        assert "sqlite" in registry
        assert "default" in registry
