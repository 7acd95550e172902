"""
Table Sync Configuration System.

This module provides the type-safe job and application configuration using Pydantic.

Two layers of configuration exist:
1. Job configuration (SyncConfig) - what to sync: connections, tables, modes.
   Loaded from a TOML or JSON job file, or built directly by a host application.
2. Application settings (Settings) - how the tool behaves: logging, preview size.
   Loaded from environment variables (prefixed with TABLE_SYNC_), a config file,
   or CLI arguments (highest priority).

Example usage:
    from table_sync.config import SyncConfig, ConnectionConfig

    config = SyncConfig(
        source_config=ConnectionConfig(type="sqlite", path="source.db"),
        target_config=ConnectionConfig(type="sqlite", path="target.db"),
        tables=["users"],
        mode="insert_update",
    )
"""

from __future__ import annotations

import json
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


PREVIEW_DEFAULT_LIMIT = 200
PREVIEW_MAX_LIMIT = 500


class ContentMode(str, Enum):
    """What a job synchronizes."""

    DATA = "data"
    SCHEMA = "schema"
    BOTH = "both"


class SyncMode(str, Enum):
    """How data rows are written to the target."""

    INSERT_UPDATE = "insert_update"
    INSERT_ONLY = "insert_only"
    FULL_OVERWRITE = "full_overwrite"


def resolve_content(raw: str | None) -> tuple[bool, bool, bool]:
    """
    Resolve a raw content string into flags.

    Returns:
        (sync_schema, sync_data, known) - ``known`` is False when the value was
        not recognised and the data-only default was used instead.
    """
    value = (raw or "").strip().lower()
    if value in ("", ContentMode.DATA.value):
        return False, True, True
    if value == ContentMode.SCHEMA.value:
        return True, False, True
    if value == ContentMode.BOTH.value:
        return True, True, True
    return False, True, False


def normalize_sync_mode(raw: str | None) -> SyncMode:
    """Map a raw mode string onto a SyncMode, defaulting to insert_update."""
    value = (raw or "").strip().lower()
    for mode in SyncMode:
        if mode.value == value:
            return mode
    return SyncMode.INSERT_UPDATE


def is_known_sync_mode(raw: str | None) -> bool:
    value = (raw or "").strip().lower()
    return value == "" or value in {m.value for m in SyncMode}


class _CamelModel(BaseModel):
    """Base for wire-level models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ConnectionConfig(_CamelModel):
    """Connection descriptor for one side of a sync job."""

    type: str = Field(
        default="",
        description="Database type (sqlite, d1, mysql, postgres, ...)",
    )
    host: str = Field(default="", description="Server host name")
    port: int = Field(default=0, ge=0, le=65535, description="Server port")
    user: str = Field(default="", description="Login user")
    password: SecretStr = Field(default=SecretStr(""), description="Login password")
    database: str = Field(
        default="",
        description="Database / schema name (D1: database UUID)",
    )
    path: Path | None = Field(
        default=None,
        description="Database file path for file-based engines",
    )
    timeout: int = Field(
        default=30,
        ge=0,
        description="Connect / request timeout in seconds (0 = driver default)",
    )
    account_id: str = Field(default="", description="Cloudflare account ID (D1)")
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Cloudflare API token with D1 permissions",
    )

    @field_validator("password", "api_token", mode="before")
    @classmethod
    def validate_secret(cls, v: Any) -> SecretStr:
        """Handle secrets from various sources."""
        if isinstance(v, SecretStr):
            return v
        if isinstance(v, str):
            return SecretStr(v)
        return SecretStr("")

    @property
    def dialect(self) -> str:
        """Normalized database type."""
        return self.type.strip().lower()

    def summary(self) -> str:
        """Credential-free description used in log lines."""
        timeout = self.timeout if self.timeout > 0 else 30
        database = self.database.strip() or "(default)"
        if self.path is not None:
            return f"type={self.type} path={self.path} timeout={timeout}s"
        return (
            f"type={self.type} address={self.host}:{self.port} "
            f"database={database} user={self.user} timeout={timeout}s"
        )


class TableOptions(_CamelModel):
    """
    Which operations to apply for one table, with optional row selection.

    An empty ``selected_*_pks`` list means "every row of that kind".
    """

    insert: bool = True
    update: bool = True
    delete: bool = False

    selected_insert_pks: list[str] = Field(default_factory=list)
    selected_update_pks: list[str] = Field(default_factory=list)
    selected_delete_pks: list[str] = Field(default_factory=list)

    @property
    def any_enabled(self) -> bool:
        return self.insert or self.update or self.delete


class SyncConfig(_CamelModel):
    """Parameters for one synchronization job."""

    source_config: ConnectionConfig = Field(default_factory=ConnectionConfig)
    target_config: ConnectionConfig = Field(default_factory=ConnectionConfig)
    tables: list[str] = Field(default_factory=list, description="Tables to sync")
    content: str = Field(default="", description="data, schema or both")
    mode: str = Field(
        default="",
        description="insert_update, insert_only or full_overwrite",
    )
    job_id: str = Field(default="", description="Correlation id for emitted events")
    auto_add_columns: bool = Field(
        default=False,
        description="Add columns missing on the target before applying changes",
    )
    table_options: dict[str, TableOptions] = Field(default_factory=dict)

    def options_for(self, table: str) -> TableOptions:
        """Options for a table, falling back to insert+update without delete."""
        return self.table_options.get(table) or TableOptions()

    @classmethod
    def from_file(cls, path: Path | str) -> "SyncConfig":
        """Load a job from a TOML or JSON file."""
        return cls.model_validate(_read_config_file(path))


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class Settings(BaseSettings):
    """
    Application settings for Table Sync.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (TABLE_SYNC_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        export TABLE_SYNC_LOGGING__LEVEL=DEBUG
        settings = Settings()
    """

    model_config = SettingsConfigDict(
        env_prefix="TABLE_SYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    preview_limit: int = Field(
        default=PREVIEW_DEFAULT_LIMIT,
        ge=1,
        le=PREVIEW_MAX_LIMIT,
        description="Sample rows per partition shown by preview",
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Load settings from a TOML or JSON config file."""
        return cls.model_validate(_read_config_file(path))

    def to_file(self, path: Path | str) -> None:
        """Save current settings to a config file."""
        path = Path(path)
        data = self.model_dump(mode="json", exclude_none=True)

        if path.suffix in (".toml", ".tml"):
            # Basic TOML serialization
            lines = []
            for key, value in data.items():
                if isinstance(value, dict):
                    lines.append(f"\n[{key}]")
                    for k, v in value.items():
                        lines.append(f"{k} = {json.dumps(v)}")
                else:
                    lines.append(f"{key} = {json.dumps(value)}")
            path.write_text("\n".join(lines))
        else:
            path.write_text(json.dumps(data, indent=2))


def _read_config_file(path: Path | str) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path.read_text()
    if path.suffix in (".toml", ".tml"):
        return tomllib.loads(content)
    if path.suffix == ".json":
        return json.loads(content)
    raise ValueError(f"Unsupported config format: {path.suffix}")


# Convenience function for loading settings
def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to config file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)
