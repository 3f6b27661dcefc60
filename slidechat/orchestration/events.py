"""
Typed events emitted by the streaming orchestration loop.

Every stream ends with exactly one ``FinalMessageEvent`` or ``ErrorEvent``.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from ..models import ToolInvocation


@dataclass
class MessageEvent:
    """One content fragment from the model."""

    type: ClassVar[str] = "message"
    content: str

    def to_payload(self) -> dict:
        return {"content": self.content}


@dataclass
class ToolCallStartEvent:
    type: ClassVar[str] = "tool_call_start"
    tool_call: ToolInvocation

    def to_payload(self) -> dict:
        return {
            "toolCall": {
                "id": self.tool_call.id,
                "name": self.tool_call.name,
                "arguments": self.tool_call.arguments,
                "timestamp": self.tool_call.invoked_at.isoformat(),
            }
        }


@dataclass
class ToolCallStepEvent:
    """Intermediate progress from a streaming tool (browser, image)."""

    type: ClassVar[str] = "tool_call_step"
    tool_call_id: str
    step: Any

    def to_payload(self) -> dict:
        return {"toolCallId": self.tool_call_id, "step": self.step}


@dataclass
class ToolCallCompleteEvent:
    type: ClassVar[str] = "tool_call_complete"
    tool_call: ToolInvocation

    def to_payload(self) -> dict:
        return {"toolCall": self.tool_call.to_payload()}


@dataclass
class ToolCallErrorEvent:
    type: ClassVar[str] = "tool_call_error"
    tool_call: ToolInvocation

    def to_payload(self) -> dict:
        return {"toolCall": self.tool_call.to_payload()}


@dataclass
class FinalMessageEvent:
    """Terminal event carrying the accumulated text and audit trail."""

    type: ClassVar[str] = "final_message"
    content: str
    tool_calls: Optional[list[ToolInvocation]] = None
    ceiling_reached: bool = False
    extra: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        payload = {
            "content": self.content,
            "toolCalls": (
                [call.to_payload() for call in self.tool_calls]
                if self.tool_calls
                else None
            ),
            **self.extra,
        }
        if self.ceiling_reached:
            payload["ceilingReached"] = True
        return payload


@dataclass
class ErrorEvent:
    """Terminal event for a failure that ended the orchestration call."""

    type: ClassVar[str] = "error"
    error: str
    code: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {"error": self.error}
        if self.code:
            payload["code"] = self.code
        return payload


StreamEvent = Union[
    MessageEvent,
    ToolCallStartEvent,
    ToolCallStepEvent,
    ToolCallCompleteEvent,
    ToolCallErrorEvent,
    FinalMessageEvent,
    ErrorEvent,
]
