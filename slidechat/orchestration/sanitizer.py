"""
Bounds tool results before they are appended to the conversation.

A single oversized tool message makes the next model call fail, so large
results are replaced by a small summary envelope here instead.
"""

import dataclasses
import json
import logging
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 9_500_000
PREVIEW_CHARS = 2000

TRUNCATION_NOTE = (
    "Tool result was too large to include in the conversation. "
    "Base64 blobs or large raw payloads were omitted. "
    "Refer to saved artifacts/disk outputs instead."
)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return list(value)
    if isinstance(value, bytes):
        raise TypeError(f"raw bytes ({len(value)} bytes) are not JSON serializable")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(value: Any) -> str:
    """Serialize a tool result the way it is sent to the model."""
    return json.dumps(value, ensure_ascii=False, allow_nan=False, default=_json_default)


def bound_tool_result(
    tool_name: str,
    tool_call_id: str,
    result: Any,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> str:
    """
    Serialize ``result`` to JSON, never exceeding ``max_bytes``.

    Returns:
        The JSON text itself when it fits; a serialization-failure envelope
        when it cannot be encoded; a truncation envelope (``truncated: true``,
        original size, limit, and a short preview) when it is too large.
    """
    try:
        serialized = to_json(result)
    except (TypeError, ValueError, RecursionError) as e:
        logger.warning(f"Failed to serialize result of tool '{tool_name}': {e}")
        return json.dumps(
            {
                "error": "Failed to stringify tool result",
                "toolName": tool_name,
                "toolCallId": tool_call_id,
                "reason": str(e),
            },
            ensure_ascii=False,
        )

    size = len(serialized.encode("utf-8"))
    if size <= max_bytes:
        return serialized

    logger.warning(
        f"Tool '{tool_name}' ({tool_call_id}) returned {size} bytes, "
        f"over the {max_bytes} byte limit; sending a summary instead"
    )
    return json.dumps(
        {
            "truncated": True,
            "toolName": tool_name,
            "toolCallId": tool_call_id,
            "originalBytes": size,
            "maxBytes": max_bytes,
            "note": TRUNCATION_NOTE,
            "preview": serialized[:PREVIEW_CHARS],
        },
        ensure_ascii=False,
    )
