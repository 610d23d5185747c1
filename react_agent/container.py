"""
Agent Dependency Injection Container

``ReActContainer`` wires configuration, the OpenAI chat model, the tool list
and the agent facade together with dependency-injector providers.
``ContainerFactory`` builds configured containers from the multi-source
configuration loader.
"""

import logging
from pathlib import Path
from typing import Any

from dependency_injector import containers, providers

from .agent import ReActAgent
from .config import AgentConfig, ConfigLoader, ConfigurationError, _deep_merge_dict
from .llm.config import OpenAIConfig
from .llm.openai_model import OpenAIChatModel

logger = logging.getLogger("react_agent.container")

DEFAULT_CONFIG_FILES = (
    ".loopflow/config.yaml",
    ".loopflow/config.yml",
    ".loopflow/config.json",
    "loopflow.config.yaml",
    "loopflow.config.yml",
    "loopflow.config.json",
)


class ReActContainer(containers.DeclarativeContainer):
    """
    ReAct agent dependency injection container.

    ``tools`` and ``chat_model`` can be overridden to plug in other tools or
    another ``ToolCallingChatModel``; ``agent`` creates a new facade on every
    call.
    """

    # Configuration provider - drives all other service configuration
    config = providers.Configuration()

    # === LLM Services ===

    openai_config = providers.Factory(
        OpenAIConfig,
        api_key=config.llm.api_key,
        model=config.llm.model,
        base_url=config.llm.base_url,
        timeout=config.llm.timeout,
        max_retries=config.llm.max_retries,
        temperature=config.llm.temperature,
        max_tokens=config.llm.max_tokens,
    )

    chat_model = providers.Singleton(OpenAIChatModel, config=openai_config)

    # === Tool System ===

    tools = providers.Object([])

    # === Agent ===

    agent = providers.Factory(
        ReActAgent,
        model=chat_model,
        tools=tools,
        agent_name=config.react.agent_name,
        max_iterations=config.react.max_iterations,
        tools_return_directly=config.react.tools_return_directly,
        execute_tools_sequentially=config.react.execute_tools_sequentially,
    )

    # === Logging ===

    agent_logger = providers.Singleton(logging.getLogger, name="react_agent")


def configure_logging(container: ReActContainer) -> None:
    """Configure the agent and engine loggers from the container configuration."""
    try:
        log_config = container.config()["logging"]
        level = getattr(logging, log_config.get("level", "INFO").upper())
        formatter = logging.Formatter(log_config.get("format"))

        handlers: list[logging.Handler] = []
        requested = log_config.get("handlers", ["console"])
        if "console" in requested:
            handlers.append(logging.StreamHandler())
        if "file" in requested and log_config.get("file_path"):
            handlers.append(logging.FileHandler(log_config["file_path"]))

        for target in (container.agent_logger(), logging.getLogger("loopflow")):
            target.setLevel(level)
            target.handlers.clear()
            for handler in handlers:
                handler.setFormatter(formatter)
                target.addHandler(handler)

    except Exception as e:
        # Fallback to basic logging configuration
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logger.error(f"Failed to configure logging: {e}")


class ContainerFactory:
    """Factory for creating configured ReActContainer instances."""

    @classmethod
    def create_container(
        cls,
        config: AgentConfig | None = None,
        config_file: str | Path | None = None,
        **kwargs: Any,
    ) -> ReActContainer:
        """
        Create a new ReActContainer instance with the specified configuration.

        Args:
            config: Pre-built AgentConfig instance
            config_file: Path to configuration file
            **kwargs: Flat configuration overrides such as ``llm_model="gpt-4o"``

        Raises:
            ConfigurationError: If configuration loading or validation fails
        """
        try:
            if config is None:
                config = cls._load_config(config_file, **kwargs)
            else:
                config.validate_complete()

            container = ReActContainer()
            container.config.from_dict(config.dict_for_container())

            # Configure logging early
            configure_logging(container)

            logger.info("Successfully created ReActContainer")
            return container

        except ConfigurationError:
            logger.error("Failed to create ReActContainer: invalid configuration")
            raise
        except Exception as e:
            logger.error(f"Failed to create ReActContainer: {e}")
            raise ConfigurationError(f"Container creation failed: {e}") from e

    @classmethod
    def create_test_container(cls, **config_overrides: Any) -> ReActContainer:
        """Create a container with test defaults and no network access configured."""
        test_defaults = {
            "llm": {
                "api_key": "sk-test-key-for-testing",
                "model": "gpt-4o-mini",
                "temperature": 0.0,
                "timeout": 10,
            },
            "react": {"agent_name": "test_agent"},
            "logging": {"level": "DEBUG"},
        }

        nested_overrides = cls._convert_flat_config(config_overrides)
        merged_config = _deep_merge_dict(test_defaults, nested_overrides)

        return cls.create_container(config=AgentConfig(**merged_config))

    @classmethod
    def _load_config(
        cls, config_file: str | Path | None = None, **kwargs: Any
    ) -> AgentConfig:
        """Load configuration; env vars > config file > programmatic values."""
        loader = ConfigLoader()

        if kwargs:
            loader.add_dict_source(cls._convert_flat_config(kwargs))

        if config_file:
            loader.add_file_source(config_file, required=True)
        else:
            for file_path in DEFAULT_CONFIG_FILES:
                if Path(file_path).exists():
                    loader.add_file_source(file_path)
                    break

        loader.add_env_source()

        return loader.load()

    @staticmethod
    def _convert_flat_config(flat_config: dict[str, Any]) -> dict[str, Any]:
        """Convert flat configuration keys (llm_model) to nested structure (llm.model)."""
        nested: dict[str, Any] = {}
        for key, value in flat_config.items():
            if "_" in key:
                section, field = key.split("_", 1)
                nested.setdefault(section, {})[field] = value
            else:
                nested[key] = value
        return nested
