"""
Configuration loading for the slot notifier.

Settings come from a JSON file with one section per concern:

    {
      "yclients": {"login": "...", "password": "...", "partner_token": "...",
                   "company_id": "780413", "form_id": "n841217"},
      "telegram": {"token": "..."},
      "notifier": {"timezone": "Europe/Moscow", "service_ids": [15728488],
                   "check_interval_seconds": 60},
      "storage": {"database_url": "sqlite:///data/notifier.db"},
      "metrics": {"port": 9090}
    }

Environment variables (or a .env file) override file values, so the same
image can run with secrets injected by the container runtime.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.json")
DEFAULT_COMPANY_ID = "780413"
DEFAULT_TIMEZONE = "Europe/Moscow"
DEFAULT_CHECK_INTERVAL = 60  # seconds
DEFAULT_DATABASE_URL = "sqlite:///data/notifier.db"

# (section, key) in config.json -> environment variable of the same setting
FILE_KEYS = {
    ("yclients", "login"): "YCLIENTS_LOGIN",
    ("yclients", "password"): "YCLIENTS_PASSWORD",
    ("yclients", "partner_token"): "YCLIENTS_PARTNER_TOKEN",
    ("yclients", "company_id"): "YCLIENTS_COMPANY_ID",
    ("yclients", "form_id"): "YCLIENTS_FORM_ID",
    ("telegram", "token"): "TELEGRAM_TOKEN",
    ("notifier", "timezone"): "TIMEZONE",
    ("notifier", "service_ids"): "YCLIENTS_SERVICE_IDS",
    ("notifier", "check_interval_seconds"): "CHECK_INTERVAL_SECONDS",
    ("storage", "database_url"): "DATABASE_URL",
    ("metrics", "port"): "METRICS_PORT",
}


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


def mask_secret(value: str) -> str:
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-3:]}"


def parse_service_ids(raw: str) -> list[int]:
    """Parse a comma-separated id list, ignoring invalid entries."""
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning(f"Invalid service ID '{part}' ignored")
    return ids


class Config(BaseSettings):
    """
    Notifier settings. Credentials may be empty here; commands that only
    touch storage run with this class, the polling service with ServiceConfig.
    """

    yclients_login: str = Field("", validation_alias="YCLIENTS_LOGIN")
    yclients_password: str = Field("", validation_alias="YCLIENTS_PASSWORD")
    yclients_partner_token: str = Field("", validation_alias="YCLIENTS_PARTNER_TOKEN")
    yclients_company_id: str = Field(DEFAULT_COMPANY_ID, validation_alias="YCLIENTS_COMPANY_ID")
    yclients_form_id: str = Field("", validation_alias="YCLIENTS_FORM_ID")
    telegram_token: str = Field("", validation_alias="TELEGRAM_TOKEN")

    timezone: str = Field(DEFAULT_TIMEZONE, validation_alias="TIMEZONE")
    service_ids: Annotated[list[int], NoDecode] = Field(default_factory=list, validation_alias="YCLIENTS_SERVICE_IDS")
    check_interval_seconds: int = Field(DEFAULT_CHECK_INTERVAL, validation_alias="CHECK_INTERVAL_SECONDS")

    database_url: str = Field(DEFAULT_DATABASE_URL, validation_alias="DATABASE_URL")
    metrics_port: Optional[int] = Field(None, validation_alias="METRICS_PORT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):
        # Environment beats values read from config.json (passed as init kwargs).
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("yclients_company_id", "yclients_form_id", mode="before")
    @classmethod
    def stringify_id(cls, value):
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("yclients_company_id")
    @classmethod
    def validate_company_id(cls, v):
        if not v.strip().isdigit():
            raise ValueError(f"company_id '{v}' must be numeric")
        return v.strip()

    @field_validator("service_ids", mode="before")
    @classmethod
    def parse_service_id_list(cls, value):
        if isinstance(value, str):
            return parse_service_ids(value)
        return value

    @field_validator("check_interval_seconds", mode="before")
    @classmethod
    def default_non_positive_interval(cls, value):
        try:
            seconds = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid check interval {value!r}, using {DEFAULT_CHECK_INTERVAL}s")
            return DEFAULT_CHECK_INTERVAL
        if seconds <= 0:
            return DEFAULT_CHECK_INTERVAL
        return seconds

    @property
    def location_id(self) -> int:
        return int(self.yclients_company_id)

    @property
    def interval(self) -> float:
        return float(self.check_interval_seconds)

    def masked(self) -> dict:
        """Return a log-safe view of the configuration."""
        return {
            "telegram_token": mask_secret(self.telegram_token),
            "yclients_login": mask_secret(self.yclients_login),
            "partner_token": mask_secret(self.yclients_partner_token),
            "company_id": self.yclients_company_id,
            "form_id": self.yclients_form_id,
            "timezone": self.timezone,
            "interval": f"{self.interval:.0f}s",
            "service_ids": self.service_ids,
            "database_url": self.database_url,
            "metrics_port": self.metrics_port,
        }


class ServiceConfig(Config):
    """Settings for the polling service: credentials are required."""

    yclients_login: str = Field(min_length=1, validation_alias="YCLIENTS_LOGIN")
    yclients_password: str = Field(min_length=1, validation_alias="YCLIENTS_PASSWORD")
    yclients_partner_token: str = Field(min_length=1, validation_alias="YCLIENTS_PARTNER_TOKEN")
    yclients_form_id: str = Field(min_length=1, validation_alias="YCLIENTS_FORM_ID")
    telegram_token: str = Field(min_length=1, validation_alias="TELEGRAM_TOKEN")


def file_settings(data: dict) -> dict:
    """Flatten the sections of config.json into settings keyed by variable name."""
    settings = {}
    for (section_name, key), name in FILE_KEYS.items():
        section = data.get(section_name, {})
        if not isinstance(section, dict):
            raise ConfigError(f"Config section '{section_name}' must be an object")
        if key in section and section[key] is not None:
            settings[name] = section[key]
    return settings


def _describe(error: ValidationError) -> str:
    missing, invalid = [], []
    for item in error.errors():
        name = ".".join(str(part) for part in item["loc"])
        if item["type"] in ("missing", "string_too_short"):
            missing.append(name)
        else:
            invalid.append(f"{name}: {item['msg']}")
    parts = []
    if missing:
        parts.append(f"Missing required settings: {', '.join(missing)}")
    if invalid:
        parts.append(f"Invalid settings: {'; '.join(invalid)}")
    return ". ".join(parts)


def load_config(config_path: Optional[str] = None, validate: bool = True) -> Config:
    """
    Load configuration from a JSON file and the environment.

    Args:
        config_path: Path to the JSON config file. A missing file is allowed
            when every required setting comes from the environment.
        validate: Require credentials; commands that only touch storage pass False

    Returns:
        The loaded Config (a ServiceConfig when validate is set)

    Raises:
        ConfigError: If the file is not valid JSON or a setting is missing or invalid
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    data: dict = {}
    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path} is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a JSON object")
    else:
        logger.info(f"Config file {path} not found, using environment only")

    settings_cls = ServiceConfig if validate else Config
    try:
        return settings_cls(**file_settings(data))
    except ValidationError as e:
        raise ConfigError(_describe(e)) from e
