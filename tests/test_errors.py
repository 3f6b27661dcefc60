"""Tests for error helpers."""

from slidechat.errors import (
    ConfigurationError,
    EmptyModelResponse,
    ErrorCodes,
    MalformedArguments,
    ProviderCallFailure,
    ToolError,
    UnknownTool,
    format_error_response,
    mask_sensitive_info,
    mask_token,
)


class TestMaskToken:
    """Tests for mask_token."""

    def test_long_token(self):
        assert mask_token("sk-1234567890abcdef") == "sk-123...cdef"

    def test_short_token(self):
        assert mask_token("abc") == "***"
        assert mask_token("abcdefghij") == "********"

    def test_empty(self):
        assert mask_token(None) == "***"
        assert mask_token("") == "***"


class TestMaskSensitiveInfo:
    """Tests for mask_sensitive_info."""

    def test_openai_key(self):
        message = "auth failed for sk-" + "A1" * 20
        assert mask_sensitive_info(message) == "auth failed for sk-***"

    def test_long_opaque_token(self):
        token = "x" * 40
        assert mask_sensitive_info(f"token {token} rejected") == "token xxxxxxxx*** rejected"

    def test_plain_text_untouched(self):
        assert mask_sensitive_info("Connection refused") == "Connection refused"


class TestFormatErrorResponse:
    """Tests for format_error_response."""

    def test_codes_by_error_type(self):
        assert format_error_response(ConfigurationError("x"))["code"] == ErrorCodes.CONFIG_MISSING
        assert format_error_response(ProviderCallFailure("x"))["code"] == ErrorCodes.LLM_ERROR
        assert format_error_response(EmptyModelResponse("x"))["code"] == ErrorCodes.LLM_ERROR
        assert format_error_response(TimeoutError("x"))["code"] == ErrorCodes.TIMEOUT
        assert format_error_response(ValueError("x"))["code"] == ErrorCodes.CHAT_ERROR

    def test_message_is_masked(self):
        body = format_error_response(ProviderCallFailure("bad key sk-" + "b" * 40))
        assert body == {"code": ErrorCodes.LLM_ERROR, "message": "bad key sk-***", "details": None}

    def test_details_on_request(self):
        try:
            raise ValueError("boom")
        except ValueError as e:
            body = format_error_response(e, include_details=True)
        assert "ValueError: boom" in body["details"]

    def test_preformatted_dict_passes_through(self):
        error = {"code": "RATE_LIMIT", "message": "slow down"}
        assert format_error_response(error) is error

    def test_unknown_value(self):
        body = format_error_response("weird", include_details=True)
        assert body["code"] == ErrorCodes.UNKNOWN_ERROR
        assert body["details"] == "weird"


class TestErrorHierarchy:
    """Tool-local errors are distinguishable from provider failures."""

    def test_tool_errors(self):
        assert issubclass(MalformedArguments, ToolError)
        assert isinstance(UnknownTool("nope"), ToolError)
        assert str(UnknownTool("nope")) == "Unknown tool: nope"
        assert not issubclass(ProviderCallFailure, ToolError)
