"""Application settings with Pydantic Settings validation.

Secrets (database password, Slack token) are loaded from the environment or .env.
Non-sensitive configuration is loaded from config/main.yaml and config/*.yaml files.
All configs are merged and validated against JSON schemas when available.
"""

import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Final, Literal, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.lease_constants import (
    DEFAULT_COUNTRY_CODE,
    JOINING_RECEIVED_LEASE_DURATION,
    LINEUP_LEASE_DURATION,
    NOTIFICATION_TTL,
    SELECTED_LEASE_DURATION,
)
from lease_engine.domain.models import PipelineStage

POSTGRES_MIN_CONNECTIONS_DEFAULT: Final[int] = 1
POSTGRES_MAX_CONNECTIONS_DEFAULT: Final[int] = 10
POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT: Final[int] = 10_000
POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT: Final[int] = 10
POSTGRES_APPLICATION_NAME_DEFAULT: Final[str] = "candidate_lease_engine"

SWEEPER_INTERVAL_SECONDS_DEFAULT: Final[float] = 24 * 60 * 60.0
SQLITE_BUSY_TIMEOUT_SECONDS_DEFAULT: Final[float] = 30.0

DEFAULT_CONFIG_DIR: Final[Path] = Path("config")

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load JSON Schema from config/schemas/.

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = config_dir / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    config_dir: Path = DEFAULT_CONFIG_DIR,
) -> None:
    """Validate config section against JSON Schema.

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, config_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path = DEFAULT_CONFIG_DIR) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    Loading order (later overrides earlier):
    1. config/main.yaml
    2. All other config/*.yaml files (sorted alphabetically)

    Each file is validated against config/schemas/<stem>.schema.json if present.

    Returns:
        Merged configuration dictionary
    """
    merged_config: dict[str, Any] = {}
    if not config_dir.is_dir():
        return merged_config

    main_path = config_dir / "main.yaml"
    yaml_files = sorted(f for f in config_dir.glob("*.yaml") if f.name != "main.yaml")
    if main_path.exists():
        yaml_files.insert(0, main_path)

    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file), config_dir)
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.info("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from the environment / .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    Values passed explicitly or set in the environment always win over YAML.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    postgres_password: SecretStr | None = Field(
        default=None, description="PostgreSQL password (only needed for postgres)"
    )
    slack_bot_token: SecretStr | None = Field(
        default=None, description="Slack bot token (only needed for the slack notifier)"
    )

    def __init__(self, **data: Any):
        """Initialize settings and layer YAML defaults underneath."""
        config_dir = Path(data.pop("config_dir", DEFAULT_CONFIG_DIR))
        config = load_all_configs(config_dir)

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))
        _assign("sqlite_busy_timeout_seconds", database_config.get("busy_timeout_seconds"))

        postgres_config = database_config.get("postgres") or {}
        _assign("postgres_host", postgres_config.get("host"))
        _assign("postgres_port", postgres_config.get("port"))
        _assign("postgres_database", postgres_config.get("database"))
        _assign("postgres_user", postgres_config.get("user"))
        _assign("postgres_min_connections", postgres_config.get("min_connections"))
        _assign("postgres_max_connections", postgres_config.get("max_connections"))
        _assign("postgres_ssl_mode", postgres_config.get("ssl_mode"))

        leases_config = config.get("leases") or {}
        _assign("lease_lineup_days", leases_config.get("lineup_days"))
        _assign("lease_joining_received_days", leases_config.get("joining_received_days"))
        _assign("lease_selected_days", leases_config.get("selected_days"))

        sweeper_config = config.get("sweeper") or {}
        _assign("sweeper_interval_seconds", sweeper_config.get("interval_seconds"))

        notifications_config = config.get("notifications") or {}
        _assign("notifier_type", notifications_config.get("type"))
        _assign("notification_ttl_days", notifications_config.get("ttl_days"))
        _assign("notifications_async", notifications_config.get("async"))
        _assign(
            "slack_notification_channel_id",
            notifications_config.get("slack_channel_id"),
        )
        _assign("slack_user_map", notifications_config.get("slack_user_map"))

        contacts_config = config.get("contacts") or {}
        _assign("phone_country_code", contacts_config.get("country_code"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))

    # Database configuration
    database_type: Literal["sqlite", "postgres"] = Field(
        default="sqlite", description="Database type: sqlite or postgres"
    )
    db_path: str = Field(
        default="data/candidates.db", description="SQLite database path"
    )
    sqlite_busy_timeout_seconds: float = Field(
        default=SQLITE_BUSY_TIMEOUT_SECONDS_DEFAULT,
        gt=0,
        description="How long SQLite writers wait for the database lock",
    )
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_database: str = Field(
        default="candidates", description="PostgreSQL database name"
    )
    postgres_user: str = Field(default="postgres", description="PostgreSQL user")
    postgres_min_connections: int = Field(
        default=POSTGRES_MIN_CONNECTIONS_DEFAULT,
        description="Minimum number of connections in PostgreSQL pool",
    )
    postgres_max_connections: int = Field(
        default=POSTGRES_MAX_CONNECTIONS_DEFAULT,
        description="Maximum number of connections in PostgreSQL pool",
    )
    postgres_statement_timeout_ms: int = Field(
        default=POSTGRES_STATEMENT_TIMEOUT_MS_DEFAULT,
        description="PostgreSQL statement timeout in milliseconds",
    )
    postgres_connect_timeout_seconds: int = Field(
        default=POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT,
        description="PostgreSQL connection timeout in seconds",
    )
    postgres_application_name: str = Field(
        default=POSTGRES_APPLICATION_NAME_DEFAULT,
        description="Application name for PostgreSQL connections",
    )
    postgres_ssl_mode: str | None = Field(
        default=None,
        description="Optional SSL mode for PostgreSQL connections (e.g., require)",
    )

    # Lease configuration
    lease_lineup_days: int = Field(
        default=LINEUP_LEASE_DURATION.days, ge=1, description="Lineup lock (days)"
    )
    lease_joining_received_days: int = Field(
        default=JOINING_RECEIVED_LEASE_DURATION.days,
        ge=1,
        description="Joining-details-received lock (days)",
    )
    lease_selected_days: int = Field(
        default=SELECTED_LEASE_DURATION.days, ge=1, description="Selected lock (days)"
    )

    # Sweeper configuration
    sweeper_interval_seconds: float = Field(
        default=SWEEPER_INTERVAL_SECONDS_DEFAULT,
        gt=0,
        description="Interval between expiry sweeps",
    )

    # Notifications
    notifier_type: Literal["repository", "slack"] = Field(
        default="repository",
        description="Where previous-owner notifications are delivered",
    )
    notifications_async: bool = Field(
        default=True, description="Deliver notifications on a background thread"
    )
    notification_ttl_days: int = Field(
        default=NOTIFICATION_TTL.days, ge=1, description="Stored notification TTL"
    )
    slack_notification_channel_id: str | None = Field(
        default=None,
        description="Fallback Slack channel when an employee has no Slack user",
    )
    slack_user_map: dict[str, str] = Field(
        default_factory=dict, description="Employee id -> Slack user id"
    )

    # Contacts
    phone_country_code: str = Field(
        default=DEFAULT_COUNTRY_CODE, description="Country prefix for contact ids"
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON logs")

    @field_validator("phone_country_code")
    @classmethod
    def _validate_country_code(cls, value: str) -> str:
        if not value.startswith("+") or not value[1:].isdigit():
            raise ValueError("phone_country_code must look like '+91'")
        return value

    def stage_durations(self) -> dict[PipelineStage, timedelta | None]:
        """Stage -> lock duration table built from the configured day counts."""
        return {
            PipelineStage.LINEUP: timedelta(days=self.lease_lineup_days),
            PipelineStage.WALK_IN: None,
            PipelineStage.JOINING_RECEIVED: timedelta(
                days=self.lease_joining_received_days
            ),
            PipelineStage.SELECTED: timedelta(days=self.lease_selected_days),
        }

    @property
    def notification_ttl(self) -> timedelta:
        return timedelta(days=self.notification_ttl_days)


# Global settings instance (scripts only; library code receives settings)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the process settings instance for entry-point scripts."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
