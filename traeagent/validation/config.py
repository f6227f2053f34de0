"""
trae-agent Configuration - Configuration loading and validation.

This module provides the Config class for managing agent configuration from
both global (~/.trae/config.yaml) and local (.trae/config.yaml) sources,
with a few environment variables layered on top.
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from traeagent import __version__

OFFICIAL_BASE_URL = "https://api.openai.com/v1"


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ProviderConfig(BaseModel):
    """Configuration for the chat-completion endpoint."""

    kind: str = "openai"  # openai | http
    api_key: Optional[str] = None
    base_url: str = OFFICIAL_BASE_URL
    model: str = "gpt-4o-mini"

    @field_validator("kind")
    @classmethod
    def _check_kind(cls, value: str) -> str:
        if value not in ("openai", "http"):
            raise ValueError(f"unknown provider kind '{value}' (expected 'openai' or 'http')")
        return value

    @property
    def is_official(self) -> bool:
        return self.base_url.rstrip("/") == OFFICIAL_BASE_URL


class AgentConfig(BaseModel):
    """Configuration for the conversation loop."""

    max_tool_iterations: int = Field(default=5, ge=1)
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: float = 120.0
    shell_timeout: float = 60.0
    system_prompt: Optional[str] = None


def _default_server_args() -> List[str]:
    return ["-m", "traeagent.mcp.server"]


class MCPConfig(BaseModel):
    """Configuration for the stdio MCP server child process."""

    enabled: bool = True
    command: str = Field(default_factory=lambda: sys.executable)
    args: List[str] = Field(default_factory=_default_server_args)
    env: Dict[str, str] = Field(default_factory=dict)
    startup_grace: float = Field(default=2.0, ge=0)
    handshake_timeout: Optional[float] = 10.0
    call_timeout: Optional[float] = None
    protocol_version: str = "2024-11-05"
    client_name: str = "trae-agent"
    client_version: str = __version__


class TraeConfig(BaseModel):
    """Complete configuration schema."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)


class Config:
    """
    Configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.trae/config.yaml
    - Local: .trae/config.yaml (project-specific)
    - Environment: OPENAI_API_KEY, OPENAI_BASE_URL, TRAE_MODEL

    Local configuration overrides global configuration; the environment
    overrides both; explicit overrides (CLI flags) override everything.

    Example:
        >>> config = Config.load()
        >>> config.merged.agent.max_tool_iterations
        5
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".trae"
    LOCAL_DIR_NAME = ".trae"

    ENV_MAP = {
        "OPENAI_API_KEY": ("provider", "api_key"),
        "OPENAI_BASE_URL": ("provider", "base_url"),
        "TRAE_MODEL": ("provider", "model"),
    }

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
            env: Environment mapping; only the variables in ENV_MAP are read.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._env = env or {}
        self._overrides: Dict[str, Any] = {}
        self._merged: Optional[TraeConfig] = None

    @classmethod
    def load(cls) -> "Config":
        """
        Load configuration from default locations and the process environment.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(cls._find_local_config())
        return cls(global_config=global_config, local_config=local_config, env=dict(os.environ))

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_DIR_NAME / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def _env_config(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for var, (section, key) in self.ENV_MAP.items():
            value = self._env.get(var)
            if value:
                result.setdefault(section, {})[key] = value
        return result

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        merged = self._deep_merge(self._global_config.copy(), self._local_config)
        merged = self._deep_merge(merged, self._env_config())
        return self._deep_merge(merged, self._overrides)

    @property
    def merged(self) -> TraeConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = TraeConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def with_overrides(self, **dotted: Any) -> "Config":
        """
        Apply explicit overrides such as ``{"agent.max_tool_iterations": 3}``.

        ``None`` values are skipped so unset CLI flags leave the files alone.
        """
        for dotted_key, value in dotted.items():
            if value is None:
                continue
            node = self._overrides
            *parents, leaf = dotted_key.split(".")
            for part in parents:
                node = node.setdefault(part, {})
            node[leaf] = value
        self._merged = None  # Reset cache
        return self

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_api_key(self) -> str:
        """
        API key for the configured endpoint.

        The placeholder key ``EMPTY`` is accepted for self-hosted endpoints
        that ignore authentication, never for the official API.
        """
        provider = self.merged.provider
        api_key = provider.api_key or "EMPTY"
        if api_key == "EMPTY" and provider.is_official:
            raise ConfigError(
                "OPENAI_API_KEY is not set. Export it, or point OPENAI_BASE_URL at a local server."
            )
        return api_key
