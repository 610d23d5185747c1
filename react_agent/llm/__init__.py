"""
LLM集成模块

- ToolCallingChatModel: 支持工具调用的流式聊天模型抽象
- OpenAIChatModel: 基于OpenAI Chat Completions的实现
- OpenAIConfig: OpenAI配置
"""

from .base import ToolCallingChatModel
from .config import OpenAIConfig
from .openai_model import OpenAIChatModel

__all__ = [
    "ToolCallingChatModel",
    "OpenAIChatModel",
    "OpenAIConfig",
]
