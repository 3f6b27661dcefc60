"""Tests for the tool registry and dispatcher."""

import pytest

from slidechat.errors import MalformedArguments, MissingContext, ToolExecutionFailure, UnknownTool
from slidechat.models import ToolContext
from slidechat.tools import ToolDispatcher, ToolFamily, ToolOutcome, ToolRegistry, parse_arguments
from slidechat.tools.registry import function_schema, names_matcher


def _family(name, *tool_names, result=None, error=None, required_context=None) -> ToolFamily:
    async def execute(tool_name, args, context):
        if error is not None:
            raise error
        return result if result is not None else {"family": name, "tool": tool_name, "args": args}

    return ToolFamily(
        name=name,
        owns=names_matcher(*tool_names),
        execute=execute,
        schemas=[function_schema(t, f"{t} tool", {}, []) for t in tool_names],
        required_context=required_context or {},
    )


class TestParseArguments:
    """Tests for argument payload parsing."""

    def test_empty_payload_means_no_arguments(self):
        assert parse_arguments("todo", "") == {}
        assert parse_arguments("todo", None) == {}
        assert parse_arguments("todo", "   ") == {}

    def test_object_payload(self):
        assert parse_arguments("todo", '{"action": "list"}') == {"action": "list"}

    def test_invalid_json_raises(self):
        with pytest.raises(MalformedArguments, match="Invalid JSON arguments for tool 'todo'"):
            parse_arguments("todo", "{oops")

    def test_non_object_raises(self):
        with pytest.raises(MalformedArguments, match="must be a JSON object"):
            parse_arguments("todo", "[1, 2]")


class TestToolRegistry:
    """Tests for family registration and lookup."""

    def test_first_registered_family_wins(self):
        registry = ToolRegistry()
        registry.register(_family("first", "shared"))
        registry.register(_family("second", "shared", "other"))

        assert registry.family_for("shared").name == "first"
        assert registry.family_for("other").name == "second"
        assert registry.family_for("missing") is None

    def test_duplicate_family_name_rejected(self):
        registry = ToolRegistry()
        registry.register(_family("todo", "todo"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_family("todo", "todo"))

    def test_schema_filtering(self):
        registry = ToolRegistry()
        registry.register(_family("a", "one", "two"))
        registry.register(_family("b", "three"))

        names = lambda schemas: [s["function"]["name"] for s in schemas]
        assert names(registry.tool_schemas()) == ["one", "two", "three"]
        assert names(registry.tool_schemas(["three", "one"])) == ["one", "three"]
        assert registry.tool_schemas([]) == []

    def test_default_registry_priority_order(self, registry):
        """Families are registered todo, disk, image, browser."""
        assert [f.name for f in registry.families()] == ["todo", "disk", "image_generate", "browser_use"]
        assert registry.family_for("write_file_disk").name == "disk"
        assert registry.family_for("browser_use_task").name == "browser_use"


class TestToolDispatcher:
    """Tests for dispatch and error classification."""

    @pytest.mark.asyncio
    async def test_execute_routes_to_owner(self):
        registry = ToolRegistry()
        registry.register(_family("a", "one"))
        result = await ToolDispatcher(registry).execute("one", '{"x": 1}', ToolContext())
        assert result == {"family": "a", "tool": "one", "args": {"x": 1}}

    @pytest.mark.asyncio
    async def test_result_is_returned_verbatim(self):
        registry = ToolRegistry()
        registry.register(_family("a", "one", result="plain text"))
        assert await ToolDispatcher(registry).execute("one", "", ToolContext()) == "plain text"

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        with pytest.raises(UnknownTool, match="Unknown tool: ghost"):
            await ToolDispatcher(ToolRegistry()).execute("ghost", "{}", ToolContext())

    @pytest.mark.asyncio
    async def test_missing_context(self):
        registry = ToolRegistry()
        registry.register(_family("a", "one", required_context={"session_id": "Session ID is required"}))
        dispatcher = ToolDispatcher(registry)

        with pytest.raises(MissingContext, match="Session ID is required"):
            await dispatcher.execute("one", "{}", ToolContext())
        assert await dispatcher.execute("one", "{}", ToolContext(session_id="s"))

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self):
        registry = ToolRegistry()
        registry.register(_family("a", "one", error=KeyError("boom")))
        with pytest.raises(ToolExecutionFailure):
            await ToolDispatcher(registry).execute("one", "{}", ToolContext())

    @pytest.mark.asyncio
    async def test_stream_without_streaming_variant_yields_outcome(self):
        registry = ToolRegistry()
        registry.register(_family("a", "one", result={"ok": True}))
        dispatcher = ToolDispatcher(registry)

        updates = [u async for u in dispatcher.stream("one", {}, ToolContext())]
        assert updates == [ToolOutcome({"ok": True})]
        assert dispatcher.is_streaming("one") is False
