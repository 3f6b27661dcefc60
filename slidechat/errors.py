"""
Error taxonomy and error-response helpers for slidechat.

Two kinds of failure exist during an orchestration call:

- ``ToolError`` subclasses are local to a single tool invocation. The loop
  records them on the invocation and feeds them back to the model as an
  error-shaped tool result; they never abort the loop.
- ``ProviderCallFailure`` means the model call itself failed. It is fatal
  for the current orchestration call and propagates to the caller.
"""

import re
import traceback
from typing import Any, Optional


class SlideChatError(Exception):
    """Base class for all slidechat errors."""


class ConfigurationError(SlideChatError):
    """Required configuration is missing or invalid."""


class ProviderCallFailure(SlideChatError):
    """The language-model API call failed (network, auth, quota, ...)."""


class EmptyModelResponse(ProviderCallFailure):
    """The model returned neither content nor tool calls."""


class ToolError(SlideChatError):
    """Failure attributed to one tool invocation only."""


class MalformedArguments(ToolError):
    """A tool call's argument payload is not a valid JSON object."""


class UnknownTool(ToolError):
    """No tool family claims the invoked name."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class MissingContext(ToolError):
    """A tool family's required context value was not supplied."""


class ToolExecutionFailure(ToolError):
    """The tool implementation raised while executing."""


class ErrorCodes:
    """Error codes used in API error bodies."""

    CONFIG_MISSING = "CONFIG_MISSING"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_REQUEST = "INVALID_REQUEST"
    LLM_ERROR = "LLM_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    CHAT_ERROR = "CHAT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_OPENAI_KEY_PATTERN = re.compile(r"sk-[a-zA-Z0-9]{32,}")
_LONG_TOKEN_PATTERN = re.compile(r"[a-zA-Z0-9]{33,}")


def mask_sensitive_info(message: str) -> str:
    """Mask API keys and other long opaque tokens inside a message."""
    masked = _OPENAI_KEY_PATTERN.sub("sk-***", message)
    return _LONG_TOKEN_PATTERN.sub(lambda m: m.group(0)[:8] + "***", masked)


def mask_token(
    token: Optional[str],
    visible_prefix: int = 6,
    visible_suffix: int = 4,
) -> str:
    """
    Mask a token, keeping only its first and last few characters.

    Example: ``"sk-1234567890abcdef"`` -> ``"sk-123...cdef"``
    """
    if not token:
        return "***"
    if len(token) <= visible_prefix + visible_suffix:
        return "*" * min(len(token), 8)
    return f"{token[:visible_prefix]}...{token[-visible_suffix:]}"


def _code_for(error: BaseException) -> str:
    if isinstance(error, ConfigurationError):
        return ErrorCodes.CONFIG_MISSING
    if isinstance(error, ProviderCallFailure):
        return ErrorCodes.LLM_ERROR
    if isinstance(error, TimeoutError):
        return ErrorCodes.TIMEOUT
    return ErrorCodes.CHAT_ERROR


def format_error_response(error: Any, include_details: bool = False) -> dict:
    """
    Build an API error body ``{"code", "message", "details"}``.

    Messages are passed through ``mask_sensitive_info`` so keys that leak
    into upstream error strings never reach the client.
    """
    if isinstance(error, BaseException):
        details = None
        if include_details:
            details = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        return {
            "code": _code_for(error),
            "message": mask_sensitive_info(str(error)),
            "details": details,
        }

    if isinstance(error, dict) and "code" in error:
        return error

    return {
        "code": ErrorCodes.UNKNOWN_ERROR,
        "message": "An unexpected error occurred",
        "details": str(error) if include_details else None,
    }
