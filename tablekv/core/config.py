"""
tablekv Configuration — loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (TABLEKV_*)
3. Project config (./tablekv.toml)
4. User config (~/.tablekv/config.toml)
5. Defaults (hardcoded)

Environment variable mapping:
    TABLEKV_DB_PATH → database.path
    TABLEKV_TABLE → store.table
    TABLEKV_CREATE_TABLE → store.create_table
    TABLEKV_LOG_LEVEL → logging.level
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from tablekv.core.errors import ConfigError

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DatabaseConfig(BaseModel):
    """Connection settings for the SQLite file backing the store."""

    path: str = "~/.tablekv/store.db"
    timeout: float = 5.0  # seconds, sqlite busy timeout

    def resolved_path(self) -> Path:
        return Path(self.path).expanduser()


class StoreConfig(BaseModel):
    """Store behavior configuration."""

    table: str = "kv"
    create_table: bool = True
    operation_timeout: float | None = None
    key_buffer: int = Field(default=1, ge=1)
    error_buffer: int = Field(default=2, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    file: str | None = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TableKVConfig(BaseModel):
    """Root configuration for tablekv."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> TableKVConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        user_config_path = user_path or Path.home() / ".tablekv" / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        project_config_path = project_path or Path.cwd() / "tablekv.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))

        _deep_merge(merged, _load_from_env())

        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return TableKVConfig(**merged)
        except Exception as e:
            raise ConfigError(f"Invalid configuration: {e}") from e


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def _load_from_env() -> dict[str, Any]:
    """Load configuration from TABLEKV_* environment variables."""
    result: dict[str, Any] = {}

    # (section, key, convert); paths and names stay strings
    env_mapping = {
        "TABLEKV_DB_PATH": ("database", "path", False),
        "TABLEKV_DB_TIMEOUT": ("database", "timeout", True),
        "TABLEKV_TABLE": ("store", "table", False),
        "TABLEKV_CREATE_TABLE": ("store", "create_table", True),
        "TABLEKV_OPERATION_TIMEOUT": ("store", "operation_timeout", True),
        "TABLEKV_LOG_LEVEL": ("logging", "level", False),
        "TABLEKV_LOG_FILE": ("logging", "file", False),
    }

    for env_var, (section, key, convert) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            result.setdefault(section, {})[key] = (
                _convert_value(value) if convert else value
            )

    return result


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute(value: str) -> str:
    for var_name in _ENV_PATTERN.findall(value):
        value = value.replace(f"${{{var_name}}}", os.environ.get(var_name, ""))
    return value


def _substitute_env_vars(data: dict) -> None:
    """Recursively substitute ${ENV_VAR} patterns in string values."""
    for key, value in data.items():
        if isinstance(value, dict):
            _substitute_env_vars(value)
        elif isinstance(value, str):
            data[key] = _substitute(value)
