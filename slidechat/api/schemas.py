"""
Pydantic schemas for the slidechat HTTP API.

Request bodies accept both snake_case and camelCase field names so browser
clients can send ``sessionId`` and server clients ``session_id``.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models import ChatMessage

MAX_MESSAGE_LENGTH = 100000


class Attachment(BaseModel):
    """A file uploaded with a chat message."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    filename: str = Field(..., description="Original file name")
    content: str = Field(..., description="Base64-encoded file content")
    mime_type: str = Field(
        default="application/octet-stream", description="MIME type of the file"
    )

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class ChatRequest(BaseModel):
    """Request body for POST /api/chatbot."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "message": "Draft a 5-slide outline about solar energy",
                "characterId": "character1",
                "stream": True,
            }
        },
    )

    message: Optional[str] = Field(default=None, description="The new user message")
    session_id: Optional[str] = Field(
        default=None, description="Existing session id; omit to start a new session"
    )
    messages: list[ChatMessage] = Field(
        default_factory=list, description="Earlier conversation turns"
    )
    system_prompt: Optional[str] = Field(
        default=None, description="Replaces the default persona when set"
    )
    character_id: Optional[str] = Field(
        default=None, description="Character for the session (required for new sessions)"
    )
    enabled_tool_names: Optional[list[str]] = Field(
        default=None,
        description="Restrict the tools offered to the model; an empty list disables tools",
    )
    stream: bool = Field(default=True, description="Stream events as Server-Sent Events")
    attachments: list[Attachment] = Field(default_factory=list)
    disk_id: Optional[str] = Field(default=None, description="Session disk id")
    acontext_session_id: Optional[str] = Field(default=None)
    user_id: Optional[str] = Field(default=None)


class ChatResponse(BaseModel):
    """Response body for a non-streaming chat request."""

    message: str
    session_id: str
    character_id: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None
    disk_id: Optional[str] = None
    ceiling_reached: bool = False


class ToolParameter(BaseModel):
    """One parameter of a tool, flattened from its JSON schema."""

    name: str
    type: str
    description: Optional[str] = None
    required: bool = False


class ToolInfo(BaseModel):
    """A tool offered to the model."""

    name: str
    description: str = ""
    parameters: list[ToolParameter] = Field(default_factory=list)


class ToolsResponse(BaseModel):
    """Response body for GET /api/tools."""

    tools: list[ToolInfo]


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    model: str


class ErrorResponse(BaseModel):
    """Error body returned for failed requests."""

    code: str
    message: str
    details: Optional[str] = None
