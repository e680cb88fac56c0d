"""Tests for agentloop.core.config."""

import pytest
import yaml
from pydantic import ValidationError

from agentloop.core.config import Config, load_config


def test_defaults():
    cfg = Config()
    assert cfg.agent.name == "agent"
    assert cfg.agent.max_turns == 30
    assert cfg.agent.context_summarization_cutoff == 0.7
    assert cfg.model.max_context_tokens == 128_000
    assert cfg.code_exec.timeout == 300
    assert cfg.session.output_dir == "./output"


def test_from_dict():
    cfg = Config(
        agent={"name": "TestBot", "max_turns": 5},
        model={"model": "anthropic/claude-sonnet-4-5"},
        providers={"anthropic": {"api_key": "sk-test"}},
    )
    assert cfg.agent.name == "TestBot"
    assert cfg.agent.max_turns == 5
    assert cfg.get_api_key() == "sk-test"


def test_validation():
    with pytest.raises(ValidationError):
        Config(agent={"max_turns": 0})
    with pytest.raises(ValidationError):
        Config(agent={"context_summarization_cutoff": 1.5})


def test_get_api_base():
    assert Config(model={"model": "openrouter/x/y"}).get_api_base() == "https://openrouter.ai/api/v1"
    assert Config(model={"model": "openai/gpt-4o", "api_base": "http://local"}).get_api_base() == "http://local"
    assert Config(model={"model": "openai/gpt-4o"}).get_api_base() is None


def test_env_override(monkeypatch):
    monkeypatch.setenv("AGENTLOOP_AGENT__MAX_TURNS", "12")
    monkeypatch.setenv("AGENTLOOP_MODEL__MODEL", "groq/llama")
    cfg = Config()
    assert cfg.agent.max_turns == 12
    assert cfg.model.model == "groq/llama"


def test_load_yaml(tmp_path):
    f = tmp_path / "config.yaml"
    f.write_text(yaml.dump({"agent": {"name": "YamlBot"}, "code_exec": {"timeout": 30}}))
    cfg = load_config(f)
    assert cfg.agent.name == "YamlBot"
    assert cfg.code_exec.timeout == 30


def test_load_from_env_path(tmp_path, monkeypatch):
    f = tmp_path / "custom.yaml"
    f.write_text(yaml.dump({"agent": {"name": "EnvBot"}}))
    monkeypatch.setenv("AGENTLOOP_CONFIG", str(f))
    assert load_config().agent.name == "EnvBot"


def test_load_missing(tmp_path):
    cfg = load_config(tmp_path / "nope.yaml")
    assert cfg.agent.name == "agent"


def test_provider_prefix_beats_keywords():
    cfg = Config(providers={
        "openai": {"api_key": "sk-openai"},
        "openrouter": {"api_key": "sk-or"},
    })
    assert cfg.get_api_key("openrouter/openai/gpt-4o") == "sk-or"
    assert cfg.get_api_key("gpt-4o") == "sk-openai"
    assert cfg.get_api_key("mistral/small") == "sk-openai"
    assert cfg.providers.env_vars() == {
        "OPENAI_API_KEY": "sk-openai",
        "OPENROUTER_API_KEY": "sk-or",
    }


def test_load_rejects_non_mapping(tmp_path):
    f = tmp_path / "config.yaml"
    f.write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_config(f)


def test_env_overrides_yaml(tmp_path, monkeypatch):
    f = tmp_path / "config.yaml"
    f.write_text(yaml.dump({"agent": {"name": "YamlBot", "max_turns": 5}}))
    monkeypatch.setenv("AGENTLOOP_AGENT__MAX_TURNS", "12")
    cfg = load_config(f)
    assert cfg.agent.max_turns == 12
    assert cfg.agent.name == "YamlBot"
