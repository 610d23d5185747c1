# tests/fixtures/__init__.py
"""
测试fixtures模块 - 提供模型与工具的测试替身
"""

from .fakes import (
    BrokenInfoTool,
    FakeChatModel,
    RecordingTool,
    text_reply,
    tool_call_reply,
)

__all__ = [
    "BrokenInfoTool",
    "FakeChatModel",
    "RecordingTool",
    "text_reply",
    "tool_call_reply",
]
