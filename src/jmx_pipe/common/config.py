"""
Configuration management for the JMX pipe.

Settings are described by a pydantic model and can be loaded from a YAML or
JSON file. A ``.env`` file next to the configuration file, and the
``JMX_PIPE_USERNAME`` / ``JMX_PIPE_PASSWORD`` environment variables, may
supply the credentials so they stay out of the file itself.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError
from .logging_setup import LogFormat
from .validation import validate_definitions
from ..models.queries import Query, Subscription

logger = logging.getLogger(__name__)

ENV_PREFIX = "JMX_PIPE_"


def _as_raw(items: Any) -> Any:
    # already-built models are checked in their dumped form
    if isinstance(items, list):
        return [i.model_dump(by_alias=True) if isinstance(i, BaseModel) else i for i in items]
    return items


class LoggerSettings(BaseModel):
    """Logger configuration."""
    name: str = "jmx_pipe"
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default=LogFormat.PRETTY.value, pattern="^(pretty|json)$")


class PipeSettings(BaseModel):
    """Complete configuration of one pipe instance (one remote endpoint)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    interval_millis: int = Field(
        ..., gt=0,
        validation_alias=AliasChoices("interval_millis", "intervalMillis", "interval"),
    )
    event_context: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("event_context", "eventContext"),
    )
    queries: List[Query] = Field(default_factory=list)
    subscriptions: List[Subscription] = Field(default_factory=list)

    connector_class: Optional[str] = None
    connector_options: Dict[str, Any] = Field(default_factory=dict)
    reconnect_delay: float = Field(default=1.0, ge=0)
    emit_context_only_records: bool = False
    logger: LoggerSettings = Field(default_factory=LoggerSettings)

    @model_validator(mode="before")
    @classmethod
    def check_definitions(cls, data: Any) -> Any:
        """Run the query/subscription structure checks on the raw input."""
        if not isinstance(data, dict):
            return data

        error = validate_definitions(_as_raw(data.get("queries")), _as_raw(data.get("subscriptions")))
        if error:
            raise ValueError(error)

        data = dict(data)
        for key in ("queries", "subscriptions", "event_context", "eventContext"):
            if key in data and data[key] is None:
                data.pop(key)
        return data

    @property
    def interval(self) -> float:
        """Polling interval in seconds."""
        return self.interval_millis / 1000.0

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        """Credentials for the connect call; ``None`` without a username."""
        if not self.username:
            return None
        return (self.username, self.password or "")


def _error_messages(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item.get("loc", ()))
        msg = item.get("msg", "Unknown error")
        # pydantic prefixes ValueErrors raised by validators
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{location}: {msg}" if location else msg)
    return messages


def build_settings(data: Dict[str, Any], config_path: Optional[str] = None) -> PipeSettings:
    """Build validated settings from a raw mapping.

    Raises:
        ConfigurationError: If any setting, query or subscription is malformed
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root is not a mapping", config_path=config_path)

    try:
        return PipeSettings.model_validate(data)
    except ValidationError as e:
        messages = _error_messages(e)
        raise ConfigurationError(
            messages[0], config_path=config_path, validation_errors=messages, cause=e
        ) from e


def _read_file(config_path: Path) -> Dict[str, Any]:
    if config_path.suffix in (".yaml", ".yml"):
        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    if config_path.suffix == ".json":
        with open(config_path, "r", encoding="utf-8") as f:
            return json.load(f)
    raise ConfigurationError(
        f"Unsupported config file type: {config_path.suffix}", config_path=str(config_path)
    )


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    overrides = {}
    for key in ("username", "password"):
        value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if value is not None:
            overrides[key] = value
    if overrides:
        logger.debug("Credentials taken from environment", extra={"keys": sorted(overrides)})
    return {**data, **overrides}


def load_settings(config_path: Union[str, Path]) -> PipeSettings:
    """Load settings from a YAML or JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}", config_path=str(config_path)
        )

    env_path = config_path.parent / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)
        logger.info(f"Loaded environment variables from {env_path}")

    try:
        data = _read_file(config_path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Failed to parse configuration {config_path}: {e}", config_path=str(config_path), cause=e
        ) from e

    if isinstance(data, dict):
        data = _apply_env_overrides(data)
    settings = build_settings(data, config_path=str(config_path))

    logger.info(
        "Configuration loaded successfully",
        extra={
            "config_path": str(config_path),
            "queries": len(settings.queries),
            "subscriptions": len(settings.subscriptions),
        },
    )
    return settings
