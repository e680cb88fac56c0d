"""Configuration module."""

from agentloop.core.config.loader import load_config
from agentloop.core.config.schema import Config

__all__ = ["Config", "load_config"]
