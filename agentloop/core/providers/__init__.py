"""Model clients."""

from agentloop.core.providers.base import ModelClient
from agentloop.core.providers.litellm import LiteLLMClient, setup_provider

__all__ = ["ModelClient", "LiteLLMClient", "setup_provider"]
