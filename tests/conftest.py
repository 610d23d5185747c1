"""
pytest全局配置文件

提供测试会话级别的fixtures和配置。
"""

import os

import pytest

from react_agent.config import ENV_PREFIX

from .fixtures import RecordingTool


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """移除可能影响配置加载的环境变量"""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-env-key")


@pytest.fixture
def weather_tool() -> RecordingTool:
    return RecordingTool("get_weather", result="sunny")


@pytest.fixture
def search_tool() -> RecordingTool:
    return RecordingTool("search", result="found")
