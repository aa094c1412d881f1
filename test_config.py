"""
Configuration System Tests

Tests for the YAML configuration loader and factory functions.
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from conftest import static_tool
from failure_analyst.config import (
    DEFAULT_CONFIG_PATH,
    LLMConfig,
    MockLLMProvider,
    ProfileConfig,
    StoreConfig,
    TelemetryConfig,
    create_llm_provider,
    create_orchestrator,
    create_runner,
    create_session_store,
    create_telemetry_backend,
    create_tool_registry,
    expand_env_vars,
    list_profiles,
    load_config,
    load_config_from_env,
    load_config_from_yaml,
)
from failure_analyst.orchestration.tool_registry import ToolRegistry
from failure_analyst.tools import HttpTelemetryBackend, InMemoryTelemetryBackend


def _write_profiles(path: Path, profiles: dict) -> Path:
    path.write_text(yaml.safe_dump({"profiles": profiles}))
    return path


def test_load_config_from_yaml():
    """The shipped profiles load and carry their overrides."""
    profile = load_config_from_yaml(DEFAULT_CONFIG_PATH, "test")
    assert profile.llm.backend == "mock"
    assert profile.telemetry.backend == "mock"
    assert profile.store.persist_path is None
    assert profile.store.auto_persist is False

    profile = load_config_from_yaml(DEFAULT_CONFIG_PATH, "thorough")
    assert profile.agent.max_agent_cycles == 8
    assert profile.orchestrator.max_hypotheses == 5
    assert profile.telemetry.max_concurrency == 10

    assert {"dev", "anthropic", "thorough", "test"} <= set(list_profiles())


def test_defaults():
    profile = ProfileConfig()

    assert profile.agent.max_agent_cycles == 5
    assert profile.agent.history_truncation_threshold == 5
    assert profile.agent.history_window == 3
    assert profile.orchestrator.max_hypotheses == 3
    assert profile.orchestrator.primary_tool == "metrics_tool"
    assert profile.telemetry.max_concurrency == 5


def test_unknown_profile_raises_key_error():
    with pytest.raises(KeyError):
        load_config("no-such-profile")


def test_profile_from_env_var(monkeypatch):
    monkeypatch.setenv("MODEL_PROFILE", "test")

    assert load_config().llm.backend == "mock"


def test_env_var_expansion(monkeypatch, tmp_path):
    monkeypatch.setenv("FA_TEST_KEY", "secret")
    monkeypatch.delenv("FA_UNSET_KEY", raising=False)
    path = _write_profiles(tmp_path / "profiles.yaml", {
        "p": {
            "llm": {"backend": "openrouter", "api_key": "${FA_TEST_KEY}", "model": "${FA_UNSET_KEY}"},
        },
    })

    profile = load_config_from_yaml(path, "p")

    assert profile.llm.api_key == "secret"
    assert profile.llm.model is None
    assert expand_env_vars("key=${FA_TEST_KEY}") == "key=secret"
    assert expand_env_vars("${FA_UNSET_KEY}") == "${FA_UNSET_KEY}"


def test_invalid_values_are_rejected(tmp_path):
    path = _write_profiles(tmp_path / "profiles.yaml", {"p": {"agent": {"max_agent_cycles": 0}}})

    with pytest.raises(ValidationError):
        load_config_from_yaml(path, "p")


def test_env_fallback_for_missing_or_broken_file(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    monkeypatch.setenv("TELEMETRY_BASE_URL", "http://gateway")

    profile = load_config("dev", tmp_path / "missing.yaml")
    assert profile.llm.backend == "openrouter"
    assert profile.llm.api_key == "or-key"
    assert profile.telemetry.base_url == "http://gateway"

    broken = tmp_path / "broken.yaml"
    broken.write_text("profiles: [unclosed")
    assert load_config("dev", broken).llm.api_key == "or-key"


def test_env_fallback_prefers_anthropic_when_only_its_key_is_set(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "an-key")

    profile = load_config_from_env()

    assert profile.llm.backend == "anthropic"
    assert profile.llm.api_key == "an-key"


def test_create_llm_provider():
    assert isinstance(create_llm_provider(LLMConfig(backend="mock")), MockLLMProvider)

    with pytest.raises(ValueError):
        create_llm_provider(LLMConfig(backend="openrouter", api_key=None))
    with pytest.raises(ValueError):
        create_llm_provider(LLMConfig(backend="anthropic", api_key=None))


def test_create_llm_provider_with_keys():
    from failure_analyst.llm import AnthropicAdapter, OpenRouterAdapter

    openrouter = create_llm_provider(
        LLMConfig(backend="openrouter", api_key="k", model="m", base_url="http://x", timeout=5)
    )
    assert isinstance(openrouter, OpenRouterAdapter)
    assert openrouter.model == "m"
    assert openrouter.timeout == 5

    anthropic = create_llm_provider(LLMConfig(backend="anthropic", api_key="k", model="m"))
    assert isinstance(anthropic, AnthropicAdapter)


def test_create_telemetry_backend():
    mock = create_telemetry_backend(TelemetryConfig(backend="mock"))
    assert isinstance(mock, InMemoryTelemetryBackend)

    http = create_telemetry_backend(
        TelemetryConfig(backend="http", base_url="http://gateway/", api_token="t")
    )
    assert isinstance(http, HttpTelemetryBackend)
    assert http.base_url == "http://gateway"
    assert http.headers["Authorization"] == "Bearer t"


def test_create_tool_registry_registers_defaults():
    backend = create_telemetry_backend(TelemetryConfig(backend="mock"))

    registry = create_tool_registry(backend, TelemetryConfig(backend="mock"))

    assert [d.name for d in registry.describe()] == [
        "metrics_tool",
        "logs_tool",
        "audit_log_tool",
        "trace_tool",
        "kb_tool",
    ]


def test_create_session_store(tmp_path):
    store = create_session_store(StoreConfig(persist_path=str(tmp_path / "s.json"), auto_persist=True))

    assert store.persist_path == tmp_path / "s.json"
    assert store.auto_persist
    assert create_session_store(StoreConfig()).persist_path is None


def test_create_orchestrator_and_runner_use_profile():
    profile = load_config_from_yaml(DEFAULT_CONFIG_PATH, "thorough")
    registry = ToolRegistry()
    registry.register(*static_tool("metrics_tool", "x"))

    orchestrator = create_orchestrator(profile, MockLLMProvider(), registry)
    assert orchestrator.generator.max_hypotheses == 5
    assert orchestrator.agent.config.max_agent_cycles == 8

    runner = create_runner(load_config_from_yaml(DEFAULT_CONFIG_PATH, "test"), MockLLMProvider(), registry)
    assert runner.store.persist_path is None
