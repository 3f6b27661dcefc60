"""
Orchestration core: message codec, result sanitizer, stream events and the
tool-calling loop.
"""

from .codec import (
    encode_messages,
    encode_assistant_turn,
    encode_tool_turn,
)
from .events import (
    MessageEvent,
    ToolCallStartEvent,
    ToolCallStepEvent,
    ToolCallCompleteEvent,
    ToolCallErrorEvent,
    FinalMessageEvent,
    ErrorEvent,
    StreamEvent,
)
from .loop import (
    ChatOrchestrator,
    OrchestrationResult,
    MAX_ITERATIONS_MESSAGE,
)
from .sanitizer import bound_tool_result

__all__ = [
    "encode_messages",
    "encode_assistant_turn",
    "encode_tool_turn",
    "MessageEvent",
    "ToolCallStartEvent",
    "ToolCallStepEvent",
    "ToolCallCompleteEvent",
    "ToolCallErrorEvent",
    "FinalMessageEvent",
    "ErrorEvent",
    "StreamEvent",
    "ChatOrchestrator",
    "OrchestrationResult",
    "MAX_ITERATIONS_MESSAGE",
    "bound_tool_result",
]
