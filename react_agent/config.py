"""
Agent Configuration System

Configuration management for ReAct agents, supporting multiple configuration
sources (environment variables, files, programmatic), type-safe validation
and hierarchical merging.

Features:
- Pydantic-based configuration models with validation
- Environment variable support with automatic type conversion
- YAML/JSON configuration file support
- Configuration priority system (env vars > config files > programmatic)
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .llm.config import OpenAIConfig
from .loop.state import DEFAULT_MAX_ITERATIONS, effective_max_iterations

logger = logging.getLogger("react_agent.config")

ENV_PREFIX = "LOOPFLOW_AGENT_"


class ConfigurationError(Exception):
    """Configuration-related errors."""

    pass


class LLMConfig(BaseModel):
    """Large Language Model configuration."""

    api_key: str = Field(
        default_factory=lambda: os.getenv("OPENAI_API_KEY", ""),
        description="OpenAI API key",
    )
    model: str = Field("gpt-4o-mini", description="Model name")
    temperature: float = Field(0.1, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int | None = Field(
        None, ge=1, description="Maximum tokens per response"
    )
    timeout: int = Field(60, ge=1, le=600, description="Request timeout in seconds")
    base_url: str | None = Field(None, description="Base URL for API requests")
    max_retries: int = Field(3, ge=0, le=10, description="SDK level retries")

    def to_openai_config(self) -> OpenAIConfig:
        """Build the dataclass consumed by the OpenAI chat model."""
        return OpenAIConfig(
            api_key=self.api_key,
            model=self.model,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


class ReActConfig(BaseModel):
    """ReAct loop configuration."""

    agent_name: str = Field("react_agent", description="Agent name used in logs and state")
    max_iterations: int = Field(
        DEFAULT_MAX_ITERATIONS,
        description="Maximum model invocations per run, values <= 0 mean the default",
    )
    tools_return_directly: list[str] = Field(
        default_factory=list,
        description="Tools whose result is returned as the final answer",
    )
    execute_tools_sequentially: bool = Field(
        False, description="Run the tool calls of one message one after another"
    )

    @property
    def effective_max_iterations(self) -> int:
        return effective_max_iterations(self.max_iterations)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        "INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )
    handlers: list[str] = Field(
        default_factory=lambda: ["console"], description="Log handlers"
    )
    file_path: Path | None = Field(
        None, description="Log file path (if file handler enabled)"
    )

    @field_validator("handlers")
    @classmethod
    def validate_handlers(cls, v: list[str]) -> list[str]:
        valid_handlers = {"console", "file"}
        for handler in v:
            if handler not in valid_handlers:
                raise ValueError(
                    f"Invalid handler: {handler}. Must be one of {valid_handlers}"
                )
        return v


class AgentConfig(BaseModel):
    """Complete agent configuration model."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    llm: LLMConfig = Field(default_factory=LLMConfig, description="LLM configuration")
    react: ReActConfig = Field(
        default_factory=ReActConfig, description="ReAct loop configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    def dict_for_container(self) -> dict[str, Any]:
        """Convert to dictionary format suitable for dependency injection container."""
        return self.model_dump()

    def validate_complete(self) -> None:
        """Perform additional cross-field validation."""
        if not self.llm.api_key:
            raise ConfigurationError("LLM API key is required")

        if "file" in self.logging.handlers and self.logging.file_path is None:
            raise ConfigurationError("file_path is required for the file log handler")

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "AgentConfig":
        """Create configuration from environment variables."""
        return cls(**EnvConfigSource(prefix).load())


# Configuration source system
class ConfigSource(ABC):
    """Abstract base class for configuration sources."""

    def __init__(self, required: bool = False):
        self.required = required

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Load configuration from this source."""
        pass


class EnvConfigSource(ConfigSource):
    """Environment variable configuration source."""

    def __init__(self, prefix: str = ENV_PREFIX, required: bool = False):
        super().__init__(required)
        self.prefix = prefix

    def load(self) -> dict[str, Any]:
        config: dict[str, Any] = {}
        for key, value in os.environ.items():
            if not key.startswith(self.prefix):
                continue
            # LOOPFLOW_AGENT_REACT_MAX_ITERATIONS -> react.max_iterations
            config_key = key[len(self.prefix) :].lower()
            nested_keys = config_key.split("_", 1)

            if len(nested_keys) == 2:
                section, field_key = nested_keys
                config.setdefault(section, {})[field_key] = _parse_env_value(value)
            else:
                config[nested_keys[0]] = _parse_env_value(value)

        return config


class FileConfigSource(ConfigSource):
    """File-based configuration source supporting YAML and JSON."""

    def __init__(self, file_path: str | Path, required: bool = False):
        super().__init__(required)
        self.file_path = Path(file_path)

    def load(self) -> dict[str, Any]:
        if not self.file_path.exists():
            if self.required:
                raise FileNotFoundError(
                    f"Required configuration file not found: {self.file_path}"
                )
            return {}

        suffix = self.file_path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigurationError(
                f"Unsupported configuration file format: {self.file_path.suffix}"
            )

        try:
            with open(self.file_path, encoding="utf-8") as f:
                if suffix == ".json":
                    return json.load(f) or {}
                return yaml.safe_load(f) or {}
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load configuration file {self.file_path}: {e}"
            ) from e


class DictConfigSource(ConfigSource):
    """Dictionary-based configuration source for programmatic configuration."""

    def __init__(self, config_dict: dict[str, Any], required: bool = False):
        super().__init__(required)
        self.config_dict = config_dict or {}

    def load(self) -> dict[str, Any]:
        return self.config_dict.copy()


class ConfigLoader:
    """Multi-source configuration loader; later sources take precedence."""

    def __init__(self):
        self.config_sources: list[ConfigSource] = []

    def add_env_source(self, prefix: str = ENV_PREFIX) -> "ConfigLoader":
        self.config_sources.append(EnvConfigSource(prefix))
        return self

    def add_file_source(
        self, file_path: str | Path, required: bool = False
    ) -> "ConfigLoader":
        self.config_sources.append(FileConfigSource(file_path, required))
        return self

    def add_dict_source(self, config_dict: dict[str, Any]) -> "ConfigLoader":
        self.config_sources.append(DictConfigSource(config_dict))
        return self

    def load(self) -> AgentConfig:
        """Load and merge configuration from all sources."""
        merged_config: dict[str, Any] = {}

        for source in self.config_sources:
            try:
                source_config = source.load()
            except Exception as e:
                if source.required:
                    raise ConfigurationError(
                        f"Failed to load required configuration source: {e}"
                    ) from e
                logger.warning(
                    f"Failed to load optional configuration source, skipping: {e}"
                )
                continue
            merged_config = _deep_merge_dict(merged_config, source_config)

        try:
            config = AgentConfig(**merged_config)
            config.validate_complete()
            return config
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e


# Utility functions
def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate Python type."""
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        if value.lower() in ("true", "false"):
            return value.lower() == "true"

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            return value


def _deep_merge_dict(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge_dict(result[key], value)
        else:
            result[key] = value

    return result
