"""Configuration system for model backends, agents and telemetry."""

from .loader import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_PROFILE,
    load_config,
    load_config_from_env,
    load_config_from_yaml,
    list_profiles,
    expand_env_vars,
    ProfileConfig,
    LLMConfig,
    AgentConfig,
    OrchestratorConfig,
    TelemetryConfig,
    StoreConfig,
    ConfigFile,
)
from .factory import (
    MockLLMProvider,
    create_llm_provider,
    create_telemetry_backend,
    create_tool_registry,
    create_session_store,
    create_orchestrator,
    create_runner,
)

__all__ = [
    # Loader
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_PROFILE",
    "load_config",
    "load_config_from_env",
    "load_config_from_yaml",
    "list_profiles",
    "expand_env_vars",
    "ProfileConfig",
    "LLMConfig",
    "AgentConfig",
    "OrchestratorConfig",
    "TelemetryConfig",
    "StoreConfig",
    "ConfigFile",
    # Factory
    "MockLLMProvider",
    "create_llm_provider",
    "create_telemetry_backend",
    "create_tool_registry",
    "create_session_store",
    "create_orchestrator",
    "create_runner",
]
