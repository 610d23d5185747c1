"""
Tests for Agent Container System

Tests the dependency injection container wiring, factory methods, provider
overrides and logging configuration.
"""

import logging

import pytest
from dependency_injector import providers

from react_agent import ReActAgent
from react_agent.config import AgentConfig, ConfigurationError
from react_agent.container import ContainerFactory, ReActContainer
from react_agent.llm import OpenAIChatModel
from tests.fixtures import FakeChatModel, RecordingTool, text_reply


class TestReActContainer:
    """Test ReActContainer providers."""

    def test_container_configuration(self):
        """Test container configuration setup."""
        config = AgentConfig(
            llm={"api_key": "sk-test-key", "model": "gpt-4o"},
            react={"max_iterations": 8},
        )

        container = ReActContainer()
        container.config.from_dict(config.dict_for_container())

        config_dict = container.config()
        assert config_dict["llm"]["model"] == "gpt-4o"
        assert config_dict["react"]["max_iterations"] == 8

    def test_chat_model_is_singleton(self):
        container = ContainerFactory.create_test_container()

        model = container.chat_model()

        assert isinstance(model, OpenAIChatModel)
        assert model is container.chat_model()
        assert model.config.api_key == "sk-test-key-for-testing"
        assert model.config.temperature == 0.0

    def test_agent_factory(self):
        """Test that every agent() call creates a new configured facade."""
        container = ContainerFactory.create_test_container(
            react_max_iterations=4, react_tools_return_directly=["search"]
        )

        agent = container.agent()

        assert isinstance(agent, ReActAgent)
        assert agent is not container.agent()
        assert agent.name == "test_agent"
        assert agent.max_iterations == 4
        assert agent.tools_return_directly == {"search"}
        assert agent.model is container.chat_model()

    def test_provider_overrides(self):
        """Test replacing the model and tools providers."""
        container = ContainerFactory.create_test_container()
        model = FakeChatModel([text_reply("hi")])
        tool = RecordingTool("search")

        container.chat_model.override(providers.Object(model))
        container.tools.override(providers.Object([tool]))

        agent = container.agent()
        assert agent.model is model
        assert agent.tools == [tool]

    def test_agent_logger(self):
        container = ContainerFactory.create_test_container()

        agent_logger = container.agent_logger()

        assert agent_logger.name == "react_agent"
        assert agent_logger.level == logging.DEBUG
        assert logging.getLogger("loopflow").level == logging.DEBUG


class TestContainerFactory:
    """Test container creation from configuration sources."""

    def test_create_from_config(self):
        config = AgentConfig(llm={"api_key": "sk-test-key"}, react={"agent_name": "cfg"})

        container = ContainerFactory.create_container(config=config)

        assert container.agent().name == "cfg"

    def test_create_from_flat_overrides(self):
        container = ContainerFactory.create_container(
            llm_model="gpt-4o", react_agent_name="flat_agent"
        )

        assert container.config()["llm"]["model"] == "gpt-4o"
        assert container.agent().name == "flat_agent"

    def test_create_from_file(self, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text("react:\n  agent_name: file_agent\n  max_iterations: 6\n")

        container = ContainerFactory.create_container(config_file=path)

        agent = container.agent()
        assert agent.name == "file_agent"
        assert agent.max_iterations == 6

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ContainerFactory.create_container(config_file=tmp_path / "missing.yaml")

    def test_invalid_config_rejected(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY")

        with pytest.raises(ConfigurationError, match="API key"):
            ContainerFactory.create_container(config=AgentConfig())

    def test_convert_flat_config(self):
        nested = ContainerFactory._convert_flat_config(
            {"llm_max_tokens": 100, "react_agent_name": "a", "debug": True}
        )

        assert nested == {
            "llm": {"max_tokens": 100},
            "react": {"agent_name": "a"},
            "debug": True,
        }
