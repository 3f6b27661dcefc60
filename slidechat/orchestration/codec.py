"""
Message codec: conversation models to chat-completions wire messages.

A pure, total mapping. Content that is neither a string nor a part list is
stringified rather than rejected, and part-list items are coerced the same
way ChatMessage coerces them.
"""

import json
from typing import Any, Iterable, Optional, Union

from ..models import ChatMessage, ContentPart

HISTORY_ROLES = ("system", "user", "assistant")


def _encode_content(content: Any) -> Union[str, list]:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return [ContentPart.coerce(part).model_dump(exclude_none=True) for part in content]
    if isinstance(content, dict):
        return json.dumps(content, ensure_ascii=False, default=str)
    return str(content)


def encode_message(message: Union[ChatMessage, dict]) -> dict:
    """
    Encode one message; accepts a ChatMessage or a plain dict.

    History tool turns are sent as assistant text. Their announcing
    ``tool_calls`` never reach the wire, so a provider would reject them
    as orphaned.
    """
    if isinstance(message, ChatMessage):
        role = message.role
        content = message.content
    else:
        role = message.get("role", "user")
        content = message.get("content")

    if role not in HISTORY_ROLES:
        role = "assistant"
    return {"role": role, "content": _encode_content(content)}


def encode_messages(messages: Iterable[Union[ChatMessage, dict]]) -> list[dict]:
    """
    Convert a conversation into provider messages.

    The audit-trail ``tool_calls`` on assistant turns are not sent: they
    record what happened in earlier orchestration calls, and the provider
    would reject them without matching tool turns.
    """
    return [encode_message(message) for message in messages]


def encode_assistant_turn(content: Optional[str], tool_calls: list[dict]) -> dict:
    """
    Build the assistant turn that announces this iteration's tool calls.

    ``tool_calls`` are already in wire shape
    (``{"id", "type", "function": {"name", "arguments"}}``).
    """
    turn: dict = {"role": "assistant", "content": content or ""}
    if tool_calls:
        turn["tool_calls"] = tool_calls
    return turn


def encode_tool_turn(tool_call_id: str, content: str) -> dict:
    """Build the tool-result turn answering one invocation id."""
    return {"role": "tool", "tool_call_id": tool_call_id, "content": content}
