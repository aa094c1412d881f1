"""Configuration loader with Pydantic validation and env var expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "dev"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "profiles.yaml"


class LLMConfig(BaseModel):
    """Configuration for the LLM backend."""

    backend: Literal["openrouter", "anthropic", "mock"] = "openrouter"
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 120.0


class AgentConfig(BaseModel):
    """Configuration for the Reaction Agent."""

    max_agent_cycles: int = Field(default=5, ge=1)  # Forced completion after this many cycles
    history_truncation_threshold: int = 5  # Truncate history from this cycle on
    history_window: int = Field(default=3, ge=1)  # Recent entries kept when truncating
    high_cycle_warning: int = 4  # Nudge toward a final answer from this cycle on


class OrchestratorConfig(BaseModel):
    """Configuration for the Orchestrator and hypothesis generation."""

    max_hypotheses: int = Field(default=3, ge=1)
    primary_tool: str = "metrics_tool"  # First action of every verification
    search_tool: str = "kb_tool"  # Document search used for hypotheses
    search_max_results: int = 3


class TelemetryConfig(BaseModel):
    """Configuration for the telemetry backend behind the tools."""

    backend: Literal["http", "mock"] = "http"
    base_url: str | None = None
    api_token: str | None = None
    timeout: float = 30.0
    max_concurrency: int = Field(default=5, ge=1)  # Metrics fan-out limit
    metric_namespaces: list[str] = []
    window_minutes: int = 60  # Default incident window when none is given


class StoreConfig(BaseModel):
    """Configuration for session persistence."""

    persist_path: str | None = None
    auto_persist: bool = True


class ProfileConfig(BaseModel):
    """Configuration profile containing all component configs."""

    llm: LLMConfig = LLMConfig()
    agent: AgentConfig = AgentConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    telemetry: TelemetryConfig = TelemetryConfig()
    store: StoreConfig = StoreConfig()


class ConfigFile(BaseModel):
    """Root configuration file structure."""

    profiles: dict[str, ProfileConfig]


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} references in string with environment variables.

    Unknown variables are left untouched.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars expanded
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}]+)\}"

    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return re.sub(pattern, replacer, value)


def expand_env_vars_recursive(data):
    """Recursively expand env vars in nested dict/list structures.

    Args:
        data: Dict, list, or primitive value

    Returns:
        Data structure with all env vars expanded
    """
    if isinstance(data, dict):
        return {k: expand_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return expand_env_vars(data)
    else:
        return data


def _drop_unexpanded(data):
    """Replace strings that still hold a ${VAR} reference with None."""
    if isinstance(data, dict):
        return {k: _drop_unexpanded(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_drop_unexpanded(item) for item in data]
    if isinstance(data, str) and re.fullmatch(r"\$\{[^}]+\}", data):
        return None
    return data


def load_config_file(config_path: Path) -> ConfigFile:
    """Read and validate a whole profiles file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config is invalid
    """
    with open(config_path) as f:
        raw_data = yaml.safe_load(f) or {}

    expanded_data = _drop_unexpanded(expand_env_vars_recursive(raw_data))
    return ConfigFile(**expanded_data)


def load_config_from_yaml(config_path: Path, profile_name: str) -> ProfileConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config YAML file
        profile_name: Name of profile to load

    Returns:
        ProfileConfig for the requested profile

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config is invalid
        KeyError: If profile doesn't exist
    """
    config_file = load_config_file(config_path)

    if profile_name not in config_file.profiles:
        available = ", ".join(config_file.profiles.keys())
        raise KeyError(
            f"Profile '{profile_name}' not found. " f"Available profiles: {available}"
        )

    return config_file.profiles[profile_name]


def load_config_from_env() -> ProfileConfig:
    """Load configuration from environment variables (fallback mode).

    Returns:
        ProfileConfig constructed from environment variables
    """
    if os.environ.get("ANTHROPIC_API_KEY") and not os.environ.get("OPENROUTER_API_KEY"):
        llm = LLMConfig(
            backend="anthropic",
            model=os.environ.get("ANTHROPIC_DEFAULT_MODEL"),
            api_key=os.environ.get("ANTHROPIC_API_KEY"),
        )
    else:
        llm = LLMConfig(
            backend="openrouter",
            model=os.environ.get("OPENROUTER_DEFAULT_MODEL"),
            api_key=os.environ.get("OPENROUTER_API_KEY"),
            base_url=os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        )

    telemetry = TelemetryConfig(
        backend="http",
        base_url=os.environ.get("TELEMETRY_BASE_URL"),
        api_token=os.environ.get("TELEMETRY_API_TOKEN"),
    )

    store = StoreConfig(persist_path=os.environ.get("SESSION_STORE_PATH"))

    return ProfileConfig(llm=llm, telemetry=telemetry, store=store)


def load_config(
    profile: str | None = None,
    config_path: Path | None = None,
) -> ProfileConfig:
    """Load configuration from YAML file or environment variables.

    This is the main entry point for loading configuration. It tries to load
    from a YAML config file first, and falls back to environment variables
    if the file is missing or invalid.

    Args:
        profile: Profile name to load. If None, uses MODEL_PROFILE env var
                or "dev" as default.
        config_path: Path to config file. If None, uses the profiles.yaml
                    shipped next to this module.

    Returns:
        ProfileConfig with all component configurations

    Raises:
        KeyError: If requested profile doesn't exist in a valid config file
    """
    if profile is None:
        profile = os.environ.get("MODEL_PROFILE", DEFAULT_PROFILE)

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using environment variables")
        return load_config_from_env()

    try:
        return load_config_from_yaml(config_path, profile)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.warning("Falling back to environment variables...")
        return load_config_from_env()


def list_profiles(config_path: Path | None = None) -> list[str]:
    """Names of the profiles defined in the config file."""
    config_file = load_config_file(config_path or DEFAULT_CONFIG_PATH)
    return list(config_file.profiles.keys())
