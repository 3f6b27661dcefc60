"""
Conversation and tool-invocation models.

These are the provider-agnostic shapes the orchestration loop consumes and
returns. The message codec turns them into the wire format expected by the
chat-completions API.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentPart(BaseModel):
    """
    A single part of multimodal content.

    Part types other than text and image_url are passed through as sent,
    extra fields included.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="The type of content part")
    text: Optional[str] = Field(default=None, description="Text content (for type='text')")
    image_url: Optional[dict] = Field(
        default=None, description="Image URL object (for type='image_url')"
    )

    @field_validator("text", mode="before")
    @classmethod
    def stringify_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return json.dumps(v, ensure_ascii=False, default=str)

    @field_validator("image_url", mode="before")
    @classmethod
    def wrap_bare_url(cls, v):
        if isinstance(v, str):
            return {"url": v}
        return v

    @classmethod
    def coerce(cls, item: Any) -> "ContentPart":
        """Build a part from whatever a client put in a content list."""
        if isinstance(item, ContentPart):
            return item
        if isinstance(item, str):
            return cls(type="text", text=item)
        if isinstance(item, dict) and isinstance(item.get("type"), str):
            return cls(**item)
        if isinstance(item, (dict, list)):
            return cls(type="text", text=json.dumps(item, ensure_ascii=False, default=str))
        return cls(type="text", text="" if item is None else str(item))


class ToolInvocation(BaseModel):
    """
    One tool call requested by the model within an iteration.

    Starts pending, then moves exactly once to resolved (``result`` set) or
    failed (``error`` set).
    """

    id: str = Field(..., description="Model-issued invocation id")
    name: str = Field(..., description="Tool name")
    arguments: dict = Field(default_factory=dict, description="Parsed arguments")
    result: Any = Field(default=None, description="Tool result once resolved")
    error: Optional[str] = Field(default=None, description="Error message once failed")
    invoked_at: datetime = Field(default_factory=_utcnow)
    steps: list[Any] = Field(
        default_factory=list, description="Intermediate step payloads of streaming tools"
    )

    # result may legitimately be None, so track resolution separately
    _resolved: bool = PrivateAttr(default=False)

    @property
    def status(self) -> str:
        if self.error is not None:
            return "failed"
        if self._resolved:
            return "resolved"
        return "pending"

    def resolve(self, result: Any) -> None:
        if self.status != "pending":
            raise ValueError(f"Invocation {self.id} is already {self.status}")
        self.result = result
        self._resolved = True

    def fail(self, error: str) -> None:
        if self.status != "pending":
            raise ValueError(f"Invocation {self.id} is already {self.status}")
        self.error = error

    def to_payload(self) -> dict:
        """JSON-safe dict used in API responses and stream events."""
        payload = {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "timestamp": self.invoked_at.isoformat(),
        }
        if self.error is not None:
            payload["error"] = self.error
        else:
            payload["result"] = self.result
        if self.steps:
            payload["steps"] = self.steps
        return payload


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: Literal["system", "user", "assistant", "tool"] = Field(
        ..., description="The role of the message author"
    )
    content: Union[str, list[ContentPart]] = Field(
        default="", description="The content of the message (string or list of content parts)"
    )
    tool_call_id: Optional[str] = Field(
        default=None, description="Invocation id answered by a tool turn"
    )
    tool_calls: Optional[list[ToolInvocation]] = Field(
        default=None, description="Audit trail attached to an assistant turn"
    )

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v):
        """Accept strings and part lists; stringify anything else."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v
        if isinstance(v, list):
            return [ContentPart.coerce(item) for item in v]
        if isinstance(v, dict):
            return json.dumps(v, ensure_ascii=False, default=str)
        return str(v)

    def get_text_content(self) -> str:
        """Extract text content regardless of format."""
        if isinstance(self.content, str):
            return self.content
        text_parts = []
        for part in self.content:
            if part.type == "text" and part.text:
                text_parts.append(part.text)
        return "\n".join(text_parts)


@dataclass(frozen=True)
class ToolContext:
    """
    Opaque session identifiers handed through to tool families.

    The orchestration loop never interprets these values.
    """

    disk_id: Optional[str] = None
    acontext_session_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    character_id: Optional[str] = None
