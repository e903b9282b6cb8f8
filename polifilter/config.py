"""Typed service configuration.

Values come from keyword arguments, a YAML/JSON file, or ``POLIFILTER_*``
environment variables (environment wins over file values).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .models.options import DataQuality

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# environment variable -> config field
ENV_OVERRIDES: Dict[str, str] = {
    "POLIFILTER_DATA_DIR": "data_dir",
    "POLIFILTER_BASE_URL": "base_url",
    "POLIFILTER_LOG_LEVEL": "log_level",
    "POLIFILTER_CACHE_TTL": "cache_ttl_seconds",
}


class ServiceConfig(BaseModel):
    """Configuration shared by the loader and the three services."""

    enable_real_time_updates: bool = True
    enable_caching: bool = True
    cache_ttl_seconds: float = Field(300.0, gt=0)
    # None keeps the option cache unbounded
    max_cache_entries: Optional[int] = Field(None, ge=1)
    max_options: int = Field(1000, ge=1)
    min_data_quality: DataQuality = DataQuality.FAIR
    single_flight: bool = True

    data_dir: str = "data"
    base_url: Optional[str] = None
    relationships_file: Optional[str] = None

    loader_retries: int = Field(3, ge=0)
    loader_retry_delay: float = Field(1.0, ge=0)
    loader_timeout: float = Field(30.0, gt=0)
    loader_cache_ttl: float = Field(300.0, gt=0)

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @classmethod
    def from_file(cls, file_path: Path | str) -> "ServiceConfig":
        """Load a `ServiceConfig` from a JSON or YAML file path."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        text = path.read_text()
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
        return _build(data, source=str(path))


def _build(data: Dict[str, Any], source: str) -> ServiceConfig:
    try:
        return ServiceConfig(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration from {source}: {e}") from e


def load_config(
    path: Path | str | None = None, env: Optional[Dict[str, str]] = None
) -> ServiceConfig:
    """Build the effective configuration from an optional file plus environment.

    Args:
        path: Optional YAML/JSON config file
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated ``ServiceConfig``
    """
    environ = os.environ if env is None else env
    data: Dict[str, Any] = {}
    if path is not None:
        data = ServiceConfig.from_file(path).model_dump()
    for var, field in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            data[field] = value
    return _build(data, source="environment")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)
