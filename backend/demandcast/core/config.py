"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables and provides helper functions to load the YAML files
holding forecasting parameters and anomaly thresholds.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Mapping

import yaml
from pydantic import TypeAdapter
from pydantic_settings import BaseSettings, SettingsConfigDict

SETTINGS_FILE = "settings.yaml"
THRESHOLDS_FILE = "thresholds.yaml"

# A weekly profile needs every weekday at least once.
MIN_SEASONAL_POINTS = 7


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = ""

    # Directory holding settings.yaml / thresholds.yaml
    config_dir: str = "configs"

    # Directory holding seed tables (stores, skus, sales, inventory) and the audit log
    data_dir: str = "data"

    log_level: str = "INFO"


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, or does not hold a mapping, an empty
    dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


def load_config_file(config_root: str, filename: str) -> Mapping[str, Any]:
    """Return the mapping stored in ``<config_root>/<filename>``."""

    return load_yaml(os.path.join(config_root, filename))


def coerce_setting(default: Any, raw: Any) -> Any:
    """Validate ``raw`` as the type of ``default``.

    Uses pydantic's lax conversion, so ``"false"`` becomes ``False`` and
    ``"7"`` becomes ``7``; values that do not convert raise ``ValueError``
    (``pydantic.ValidationError``).
    """

    return TypeAdapter(type(default)).validate_python(raw)
