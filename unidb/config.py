"""
Config system - Layered database configuration with merge precedence.

Provides:
- default_database_config(): built-in connection defaults driven by DB_* env vars
- ConfigLoader: merges defaults, config files, .env, UNIDB_* env vars and overrides
"""

from typing import Any, Dict, Mapping, Optional
from pathlib import Path
import os
import json

import yaml
from dotenv import dotenv_values

from .faults import ConfigurationError


DEFAULT_ENV_PREFIX = "UNIDB_"


def default_database_config(env: Optional[Mapping[str, Optional[str]]] = None) -> Dict[str, Any]:
    """
    Build the default ``database`` section.

    Every connection reads the shared ``DB_*`` variables so a single
    ``DB_CONNECTION`` switch moves an application between backends.
    """
    env = os.environ if env is None else env

    def _env(name: str, default: Any = "") -> Any:
        value = env.get(name)
        return default if value is None else value

    def _port(default: int) -> int:
        value = env.get("DB_PORT")
        return int(value) if value else default

    return {
        "default": _env("DB_CONNECTION", "postgresql"),
        "connections": {
            "sqlite": {
                "driver": "sqlite",
                "url": _env("DB_URL"),
                "database": _env("DB_DATABASE", "database/sqlite"),
            },
            "mysql": {
                "driver": "mysql",
                "url": _env("DB_URL"),
                "host": _env("DB_HOST", "127.0.0.1"),
                "port": _port(3306),
                "database": _env("DB_DATABASE", "unidb"),
                "username": _env("DB_USERNAME", "root"),
                "password": _env("DB_PASSWORD"),
            },
            "postgresql": {
                "driver": "postgresql",
                "url": _env("DB_URL"),
                "host": _env("DB_HOST", "127.0.0.1"),
                "port": _port(5432),
                "database": _env("DB_DATABASE", "unidb"),
                "username": _env("DB_USERNAME", "postgres"),
                "password": _env("DB_PASSWORD"),
            },
            "mongodb": {
                "driver": "mongodb",
                "url": _env("DB_URL"),
                "host": _env("DB_HOST", "127.0.0.1"),
                "port": _port(27017),
                "database": _env("DB_DATABASE", "unidb"),
                "username": _env("DB_USERNAME", "mongo"),
                "password": _env("DB_PASSWORD"),
            },
        },
        "migrations": "migrations",
    }


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = DEFAULT_ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        with_defaults: bool = True,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Merge order (later overrides earlier):
        1. Built-in ``database`` defaults (DB_* variables, .env included)
        2. Config files (JSON or YAML, glob patterns supported)
        3. ``.env`` file entries carrying the prefix
        4. Environment variables carrying the prefix
        5. Manual overrides

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            with_defaults: Seed the ``database`` section with built-in defaults

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)
        dotenv = loader._read_env_file(env_file) if env_file else {}

        if with_defaults:
            # Real environment wins over the .env file
            env = {**dotenv, **os.environ}
            loader._merge_dict(loader.config_data, {"database": default_database_config(env)})

        for pattern in paths or []:
            loader._load_from_files(pattern)

        for key, value in dotenv.items():
            if key.startswith(loader.env_prefix) and value is not None:
                loader._set_nested(key, value)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matched = sorted(glob(pattern))
        if not matched and not any(ch in pattern for ch in "*?["):
            raise ConfigurationError(f"config file not found: {pattern}")

        for path_str in matched:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"{path}: {exc}") from exc
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"{path}: {exc}") from exc
            if data:
                self._merge_dict(self.config_data, data)

    @staticmethod
    def _read_env_file(path: str) -> Dict[str, Optional[str]]:
        if not Path(path).exists():
            return {}
        return dict(dotenv_values(path))

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert UNIDB_DATABASE__CONNECTIONS__PG__HOST to nested dict."""
        key = key[len(self.env_prefix):]

        # Split by double underscore for nested keys
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_dict(self) -> Dict[str, Any]:
        return self.config_data
