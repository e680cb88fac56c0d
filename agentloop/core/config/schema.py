"""agentloop configuration schema — YAML + Pydantic + env override."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"

# provider field → (environment variable LiteLLM reads, model-name keywords)
PROVIDER_TABLE: dict[str, tuple[str, tuple[str, ...]]] = {
    "anthropic": ("ANTHROPIC_API_KEY", ("anthropic", "claude")),
    "openai": ("OPENAI_API_KEY", ("openai", "gpt")),
    "openrouter": ("OPENROUTER_API_KEY", ("openrouter",)),
    "deepseek": ("DEEPSEEK_API_KEY", ("deepseek",)),
    "groq": ("GROQ_API_KEY", ("groq",)),
    "gemini": ("GEMINI_API_KEY", ("gemini",)),
}


# ════════════════════════════════════════════════════════════
# SECTIONS
# ════════════════════════════════════════════════════════════


class ProviderCredentials(BaseModel):
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """Credentials per LiteLLM provider (providers.<name>.*)."""

    anthropic: ProviderCredentials = Field(default_factory=ProviderCredentials)
    openai: ProviderCredentials = Field(default_factory=ProviderCredentials)
    openrouter: ProviderCredentials = Field(default_factory=ProviderCredentials)
    deepseek: ProviderCredentials = Field(default_factory=ProviderCredentials)
    groq: ProviderCredentials = Field(default_factory=ProviderCredentials)
    gemini: ProviderCredentials = Field(default_factory=ProviderCredentials)

    def items(self) -> list[tuple[str, ProviderCredentials]]:
        return [(name, getattr(self, name)) for name in PROVIDER_TABLE]

    def for_model(self, model: str) -> tuple[str, ProviderCredentials] | None:
        """Provider named by the model prefix, else the first keyword match."""
        lowered = model.lower()
        prefix = lowered.split("/", 1)[0]
        if prefix in PROVIDER_TABLE:
            return prefix, getattr(self, prefix)
        for name, (_, keywords) in PROVIDER_TABLE.items():
            if any(k in lowered for k in keywords):
                return name, getattr(self, name)
        return None

    def env_vars(self) -> dict[str, str]:
        """Environment variables to export for configured keys."""
        return {
            PROVIDER_TABLE[name][0]: creds.api_key
            for name, creds in self.items()
            if creds.api_key
        }


class AgentSettings(BaseModel):
    """Turn loop (agent.*)."""

    name: str = "agent"
    max_turns: int = Field(default=30, ge=1)
    context_summarization_cutoff: float = Field(default=0.7, gt=0.0, le=1.0)
    system_prompt: str | None = None
    run_sync_in_thread: bool = True


class ModelConfig(BaseModel):
    """Model client (model.*)."""

    model: str = "openai/gpt-4o-mini"
    max_context_tokens: int = 128_000
    temperature: float = 1.0
    max_tokens: int = 8192
    num_retries: int = 3
    timeout: float | None = None
    api_base: str | None = None


class CodeExecConfig(BaseModel):
    """Local code execution environment (code_exec.*)."""

    timeout: int = 300
    allowed_commands: list[str] | None = None
    temp_base_dir: str | None = None


class SessionConfig(BaseModel):
    """Session defaults (session.*)."""

    output_dir: str = "./output"
    log_events: bool = True


# ════════════════════════════════════════════════════════════
# ROOT
# ════════════════════════════════════════════════════════════


class Config(BaseSettings):
    """
    Root configuration.

    Precedence, highest first: environment, ``.env``, YAML passed as init
    kwargs, field defaults. Nested keys use ``__``::

        AGENTLOOP_MODEL__MODEL=anthropic/claude-sonnet-4-5
        AGENTLOOP_AGENT__MAX_TURNS=50
        AGENTLOOP_PROVIDERS__OPENAI__API_KEY=sk-...
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTLOOP_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    agent: AgentSettings = Field(default_factory=AgentSettings)
    model: ModelConfig = Field(default_factory=ModelConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    code_exec: CodeExecConfig = Field(default_factory=CodeExecConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # init kwargs carry the YAML file, so they rank below the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def get_api_key(self, model: str | None = None) -> str | None:
        """Key of the provider matching the model, else any configured key."""
        match = self.providers.for_model(model or self.model.model)
        if match and match[1].api_key:
            return match[1].api_key
        return next((c.api_key for _, c in self.providers.items() if c.api_key), None)

    def get_api_base(self, model: str | None = None) -> str | None:
        """``model.api_base`` if set, else the matching provider's base URL."""
        if self.model.api_base:
            return self.model.api_base
        match = self.providers.for_model(model or self.model.model)
        if match is None:
            return None
        name, creds = match
        if name == "openrouter":
            return creds.api_base or OPENROUTER_API_BASE
        return creds.api_base
