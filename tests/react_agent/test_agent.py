"""
Tests for the ReActAgent facade

Covers request handling, lazy graph construction, configuration-driven
creation and the container-backed ``create_agent`` helper.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from react_agent import (
    AgentConfig,
    FunctionTool,
    Message,
    ReActAgent,
    Role,
    create_agent,
)
from react_agent.exceptions import (
    AgentConfigurationError,
    ExceedMaxIterationsError,
    ToolCatalogGenerationError,
)
from react_agent.llm import OpenAIChatModel
from tests.fixtures import BrokenInfoTool, FakeChatModel, text_reply, tool_call_reply


class TestReActAgent:
    """Test the agent facade."""

    @pytest.mark.asyncio
    async def test_invoke_with_text(self):
        model = FakeChatModel([text_reply("Hello", "!")])
        agent = ReActAgent(model)

        answer = await agent.invoke("hi")

        assert answer == Message.assistant("Hello!")
        assert model.calls == [[Message.user("hi")]]

    @pytest.mark.asyncio
    async def test_stream_chunks(self):
        agent = ReActAgent(FakeChatModel([text_reply("a", "b")]))

        chunks = [chunk async for chunk in agent.stream([Message.user("hi")])]

        assert [c.content for c in chunks] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_plain_functions_become_tools(self):
        def get_time(city: str) -> str:
            """Current time in a city"""
            return f"12:00 in {city}"

        model = FakeChatModel(
            [
                tool_call_reply(("call_1", "get_time", '{"city": "Paris"}')),
                text_reply("It is noon"),
            ]
        )
        agent = ReActAgent(model, tools=[get_time])

        answer = await agent.invoke("time in Paris?")

        assert isinstance(agent.tools[0], FunctionTool)
        assert answer.content == "It is noon"
        tool_message = model.calls[1][-1]
        assert tool_message.role is Role.TOOL
        assert tool_message.content == "12:00 in Paris"

    @pytest.mark.asyncio
    async def test_direct_return(self, weather_tool):
        model = FakeChatModel([tool_call_reply(("call_1", "get_weather", "{}"))])
        agent = ReActAgent(model, [weather_tool], tools_return_directly=["get_weather"])

        answer = await agent.invoke("weather?")

        assert answer.role is Role.TOOL
        assert answer.content == "sunny"

    @pytest.mark.asyncio
    async def test_graph_built_once(self, weather_tool):
        model = FakeChatModel([text_reply("ok")])
        agent = ReActAgent(model, [weather_tool])

        await asyncio.gather(agent.invoke("a"), agent.invoke("b"))
        await agent.invoke("c")

        assert model.with_tools_count == 1
        assert len(model.calls) == 3

    @pytest.mark.asyncio
    async def test_iteration_limit(self, weather_tool):
        model = FakeChatModel([tool_call_reply(("call_1", "get_weather", "{}"))])
        agent = ReActAgent(model, [weather_tool], max_iterations=3)

        with pytest.raises(ExceedMaxIterationsError):
            await agent.invoke("loop")

        assert len(model.calls) == 3

    @pytest.mark.asyncio
    async def test_tool_catalog_failure_on_first_use(self):
        agent = ReActAgent(FakeChatModel([text_reply("ok")]), [BrokenInfoTool()])

        with pytest.raises(ToolCatalogGenerationError):
            await agent.invoke("hi")

    def test_unsupported_tool_type(self):
        with pytest.raises(AgentConfigurationError, match="Unsupported tool type"):
            ReActAgent(FakeChatModel([]), tools=[42])

    @pytest.mark.asyncio
    async def test_aclose_closes_model(self):
        model = FakeChatModel([])
        model.aclose = AsyncMock()
        agent = ReActAgent(model)

        await agent.aclose()

        model.aclose.assert_awaited_once()

    def test_repr(self, weather_tool):
        agent = ReActAgent(FakeChatModel([]), [weather_tool], agent_name="helper")

        assert repr(agent) == "ReActAgent(name='helper', tools=1)"


class TestAgentCreation:
    """Test configuration-driven creation."""

    def test_from_config(self):
        config = AgentConfig(
            react={
                "agent_name": "configured",
                "max_iterations": 0,
                "tools_return_directly": ["search"],
                "execute_tools_sequentially": True,
            }
        )
        model = FakeChatModel([])

        agent = ReActAgent.from_config(config, model=model)

        assert agent.model is model
        assert agent.name == "configured"
        assert agent.max_iterations == 0
        assert agent.tools_return_directly == {"search"}
        assert agent.execute_tools_sequentially is True

    def test_from_config_defaults_to_openai(self):
        config = AgentConfig(llm={"api_key": "sk-x", "model": "gpt-4o"})

        agent = ReActAgent.from_config(config)

        assert isinstance(agent.model, OpenAIChatModel)
        assert agent.model.config.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_create_agent(self, weather_tool):
        model = FakeChatModel(
            [tool_call_reply(("call_1", "get_weather", "{}")), text_reply("sunny")]
        )

        agent = create_agent(
            tools=[weather_tool],
            model=model,
            llm_api_key="sk-test",
            react_agent_name="quick",
            react_max_iterations=3,
        )

        assert agent.name == "quick"
        assert agent.max_iterations == 3
        assert (await agent.invoke("weather?")).content == "sunny"
        assert weather_tool.calls == ["{}"]
