"""Configuration loader — YAML file + env override."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from agentloop.core.config.schema import Config

CONFIG_ENV_VAR = "AGENTLOOP_CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"


def find_config_file(config_path: str | Path | None = None) -> Path | None:
    """
    Locate the YAML file to read.

    Checked in order: the explicit argument, ``$AGENTLOOP_CONFIG``, then
    ``./config.yaml`` (only if it exists).
    """
    candidate = config_path or os.environ.get(CONFIG_ENV_VAR)
    if candidate:
        return Path(candidate).expanduser()
    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def read_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML mapping; an empty document gives ``{}``."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Build a Config from YAML, with environment variables on top.

    A named file that does not exist is not an error; defaults apply.
    Values priority (pydantic-settings): env vars > .env > YAML > defaults.
    """
    path = find_config_file(config_path)
    if path is None or not path.exists():
        if path is not None:
            logger.debug(f"Config file not found, using defaults: {path}")
        return Config()
    logger.debug(f"Loading config from {path}")
    return Config(**read_yaml(path))
