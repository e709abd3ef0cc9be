"""Unified configuration for opsmate.

Loads settings from (in order of precedence, highest first):
1. Environment variables (OPSMATE_*)
2. Project-local config (.opsmate.yml in cwd)
3. User config (~/.opsmate/config.yml)
4. Built-in defaults
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class LLMSettings:
    """Inference backend configuration."""

    base_url: str = "http://localhost:11434/v1"
    model: str = "qwen2.5-coder:7b"
    api_key: str = "not-needed"
    timeout: float = 60.0


@dataclass
class SafetySettings:
    """Confirmation policy inputs."""

    is_production: bool = False
    environment: str = "unknown"


@dataclass
class AgentSettings:
    """Bounds for the autonomous diagnostic loop."""

    max_iterations: int = 20
    max_duration: float = 300.0
    command_timeout: float = 60.0


@dataclass
class AuditSettings:
    """Audit sink configuration."""

    enabled: bool = True
    log_file: str = "logs/audit.jsonl"


@dataclass
class OpsmateSettings:
    """Root configuration container."""

    llm: LLMSettings = field(default_factory=LLMSettings)
    safety: SafetySettings = field(default_factory=SafetySettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)


def _as_bool(value: object) -> bool:
    return value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes")


def load_yaml_config(path: Path) -> dict:
    """Load a YAML config file, returning empty dict if not found.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed dict, or empty dict when the file is missing or unreadable.
    """
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def _apply_dict_to_llm(settings: LLMSettings, data: dict) -> None:
    """Apply dict values to LLMSettings."""
    if "base_url" in data:
        settings.base_url = str(data["base_url"])
    if "model" in data:
        settings.model = str(data["model"])
    if "api_key" in data:
        settings.api_key = str(data["api_key"])
    if "timeout" in data:
        settings.timeout = float(data["timeout"])


def _apply_dict_to_safety(settings: SafetySettings, data: dict) -> None:
    """Apply dict values to SafetySettings."""
    if "is_production" in data:
        settings.is_production = _as_bool(data["is_production"])
    if "environment" in data:
        settings.environment = str(data["environment"])


def _apply_dict_to_agent(settings: AgentSettings, data: dict) -> None:
    """Apply dict values to AgentSettings."""
    if "max_iterations" in data:
        settings.max_iterations = int(data["max_iterations"])
    if "max_duration" in data:
        settings.max_duration = float(data["max_duration"])
    if "command_timeout" in data:
        settings.command_timeout = float(data["command_timeout"])


def _apply_dict_to_audit(settings: AuditSettings, data: dict) -> None:
    """Apply dict values to AuditSettings."""
    if "enabled" in data:
        settings.enabled = _as_bool(data["enabled"])
    if "log_file" in data:
        settings.log_file = str(data["log_file"])


def _apply_file(settings: OpsmateSettings, data: dict) -> None:
    if isinstance(data.get("llm"), dict):
        _apply_dict_to_llm(settings.llm, data["llm"])
    if isinstance(data.get("safety"), dict):
        _apply_dict_to_safety(settings.safety, data["safety"])
    if isinstance(data.get("agent"), dict):
        _apply_dict_to_agent(settings.agent, data["agent"])
    if isinstance(data.get("audit"), dict):
        _apply_dict_to_audit(settings.audit, data["audit"])


def _apply_env_overrides(settings: OpsmateSettings) -> None:
    """Apply OPSMATE_* environment variable overrides."""
    base_url = os.environ.get("OPSMATE_LLM_BASE_URL")
    if base_url:
        settings.llm.base_url = base_url

    model = os.environ.get("OPSMATE_LLM_MODEL")
    if model:
        settings.llm.model = model

    api_key = os.environ.get("OPSMATE_LLM_API_KEY")
    if api_key:
        settings.llm.api_key = api_key

    timeout = os.environ.get("OPSMATE_LLM_TIMEOUT")
    if timeout:
        settings.llm.timeout = float(timeout)

    production = os.environ.get("OPSMATE_PRODUCTION")
    if production:
        settings.safety.is_production = _as_bool(production)

    environment = os.environ.get("OPSMATE_ENVIRONMENT")
    if environment:
        settings.safety.environment = environment

    max_iterations = os.environ.get("OPSMATE_AGENT_MAX_ITERATIONS")
    if max_iterations:
        settings.agent.max_iterations = int(max_iterations)

    max_duration = os.environ.get("OPSMATE_AGENT_MAX_DURATION")
    if max_duration:
        settings.agent.max_duration = float(max_duration)

    command_timeout = os.environ.get("OPSMATE_COMMAND_TIMEOUT")
    if command_timeout:
        settings.agent.command_timeout = float(command_timeout)

    audit_file = os.environ.get("OPSMATE_AUDIT_LOG_FILE")
    if audit_file:
        settings.audit.log_file = audit_file


def load_settings(
    user_config_path: Optional[Path] = None,
    project_config_path: Optional[Path] = None,
) -> OpsmateSettings:
    """Load settings from config files and env vars.

    Args:
        user_config_path: Override path for user config (testing).
        project_config_path: Override path for project config (testing).

    Returns:
        Fully resolved OpsmateSettings.
    """
    settings = OpsmateSettings()

    user_path = user_config_path or (Path.home() / ".opsmate" / "config.yml")
    _apply_file(settings, load_yaml_config(user_path))

    project_path = project_config_path or (Path.cwd() / ".opsmate.yml")
    _apply_file(settings, load_yaml_config(project_path))

    _apply_env_overrides(settings)

    return settings


# Module-level cached instance
_settings: Optional[OpsmateSettings] = None


def get_settings() -> OpsmateSettings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset cached settings (for testing)."""
    global _settings
    _settings = None
