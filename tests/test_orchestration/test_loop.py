"""Tests for the buffered orchestration loop."""

import json

import pytest

from slidechat.errors import ProviderCallFailure
from slidechat.models import ChatMessage, ToolContext
from slidechat.orchestration import MAX_ITERATIONS_MESSAGE, ChatOrchestrator


def _orchestrator(llm, dispatcher, **kwargs) -> ChatOrchestrator:
    return ChatOrchestrator(llm_client=llm, dispatcher=dispatcher, tools=[{"type": "function"}], **kwargs)


def _tool_turns(messages: list[dict]) -> list[dict]:
    return [m for m in messages if m["role"] == "tool"]


class TestPlainAnswers:
    """Model answers without requesting tools."""

    @pytest.mark.asyncio
    async def test_returns_content_after_one_call(self, fakes, dispatcher, tool_context):
        """A turn without tool calls ends the loop."""
        llm = fakes.ScriptedLLM(turns=[fakes.message("Hello there")])
        result = await _orchestrator(llm, dispatcher).run(
            [{"role": "user", "content": "hi"}], tool_context
        )

        assert result.message == "Hello there"
        assert result.tool_calls is None
        assert result.iterations == 1
        assert result.ceiling_reached is False
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_none_content_becomes_empty_string(self, fakes, dispatcher, tool_context):
        """Missing content is reported as an empty message."""
        llm = fakes.ScriptedLLM(turns=[fakes.message(None)])
        result = await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "hi"}], tool_context)
        assert result.message == ""

    @pytest.mark.asyncio
    async def test_tools_are_passed_to_every_call(self, fakes, dispatcher, tool_context):
        """The tool list is offered on each model call."""
        tools = [{"type": "function", "function": {"name": "todo"}}]
        llm = fakes.ScriptedLLM(turns=[fakes.message("ok")])
        orchestrator = ChatOrchestrator(llm_client=llm, dispatcher=dispatcher, tools=tools)
        await orchestrator.run([{"role": "user", "content": "hi"}], tool_context)
        assert llm.calls[0]["tools"] == tools

    @pytest.mark.asyncio
    async def test_caller_messages_are_not_mutated(self, fakes, dispatcher, tool_context):
        """The input conversation is left untouched."""
        messages = [ChatMessage(role="user", content="plan my deck")]
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", '{"action": "create"}')]),
            fakes.message("done"),
        ])
        await _orchestrator(llm, dispatcher).run(messages, tool_context)
        assert len(messages) == 1
        assert messages[0].content == "plan my deck"


class TestToolExecution:
    """Tool calls are executed and fed back to the model."""

    @pytest.mark.asyncio
    async def test_tool_result_is_appended(self, fakes, dispatcher, tool_context):
        """Assistant turn and tool turn are added before the next call."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("Planning", [fakes.tool_call("call_1", "todo", '{"action": "create"}')]),
            fakes.message("Your plan is ready"),
        ])
        result = await _orchestrator(llm, dispatcher).run(
            [{"role": "user", "content": "plan"}], tool_context
        )

        assert result.message == "Your plan is ready"
        assert result.iterations == 2
        assert len(result.tool_calls) == 1
        invocation = result.tool_calls[0]
        assert invocation.status == "resolved"
        assert invocation.arguments == {"action": "create"}
        assert invocation.result["message"] == "Todo list created."

        second = llm.calls[1]["messages"]
        assert [m["role"] for m in second] == ["user", "assistant", "tool"]
        assert second[1]["content"] == "Planning"
        assert second[1]["tool_calls"][0]["id"] == "call_1"
        assert second[1]["tool_calls"][0]["function"]["name"] == "todo"
        assert second[2]["tool_call_id"] == "call_1"
        assert json.loads(second[2]["content"])["action"] == "create"

    @pytest.mark.asyncio
    async def test_multiple_calls_keep_emission_order(self, fakes, dispatcher, tool_context):
        """Each invocation id gets one tool turn, in the order announced."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [
                fakes.tool_call("call_a", "todo", '{"action": "create"}'),
                fakes.tool_call("call_b", "todo", '{"action": "add", "content": "Outline"}'),
                fakes.tool_call("call_c", "todo", '{"action": "list"}'),
            ]),
            fakes.message("done"),
        ])
        result = await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "go"}], tool_context)

        tool_turns = _tool_turns(llm.calls[1]["messages"])
        assert [t["tool_call_id"] for t in tool_turns] == ["call_a", "call_b", "call_c"]
        assert [c.id for c in result.tool_calls] == ["call_a", "call_b", "call_c"]
        assert json.loads(tool_turns[2]["content"])["count"] == 1

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self, fakes, dispatcher, tool_context):
        """An unknown tool fails the invocation but not the loop."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "teleport", "{}")]),
            fakes.message("Sorry, I cannot do that"),
        ])
        result = await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "go"}], tool_context)

        assert result.message == "Sorry, I cannot do that"
        assert result.tool_calls[0].status == "failed"
        assert result.tool_calls[0].error == "Unknown tool: teleport"
        tool_turn = _tool_turns(llm.calls[1]["messages"])[0]
        assert json.loads(tool_turn["content"]) == {"error": "Unknown tool: teleport"}

    @pytest.mark.asyncio
    async def test_malformed_arguments_are_recorded(self, fakes, dispatcher, tool_context):
        """Invalid JSON arguments fail only that invocation."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", "{not json")]),
            fakes.message("retrying later"),
        ])
        result = await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "go"}], tool_context)

        invocation = result.tool_calls[0]
        assert invocation.status == "failed"
        assert "Invalid JSON arguments for tool 'todo'" in invocation.error
        assert invocation.arguments == {}

    @pytest.mark.asyncio
    async def test_failed_call_does_not_affect_sibling(self, fakes, dispatcher, tool_context):
        """A malformed call fails alone; the healthy call in the same turn still runs."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [
                fakes.tool_call("call_a", "todo", "{not json"),
                fakes.tool_call("call_b", "todo", '{"action": "create"}'),
            ]),
            fakes.message("done"),
        ])
        result = await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "go"}], tool_context)

        assert [(c.id, c.status) for c in result.tool_calls] == [("call_a", "failed"), ("call_b", "resolved")]
        second = llm.calls[1]["messages"]
        assert [m["role"] for m in second] == ["user", "assistant", "tool", "tool"]
        assert [t["tool_call_id"] for t in _tool_turns(second)] == ["call_a", "call_b"]
        assert "Invalid JSON arguments" in json.loads(second[2]["content"])["error"]
        assert json.loads(second[3]["content"])["message"] == "Todo list created."

    @pytest.mark.asyncio
    async def test_unsupported_call_type_fails(self, fakes, dispatcher, tool_context):
        """Non-function tool calls are rejected."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", "{}", type="custom")]),
            fakes.message("ok"),
        ])
        result = await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "go"}], tool_context)
        assert result.tool_calls[0].error == "Unsupported tool call type: custom"

    @pytest.mark.asyncio
    async def test_missing_session_fails_todo_call(self, fakes, dispatcher):
        """The todo tool needs a session id in the context."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", '{"action": "list"}')]),
            fakes.message("ok"),
        ])
        result = await _orchestrator(llm, dispatcher).run(
            [{"role": "user", "content": "go"}], ToolContext()
        )
        assert result.tool_calls[0].error == "Session ID is required for todo tool"

    @pytest.mark.asyncio
    async def test_oversized_result_is_summarized(self, fakes, dispatcher, tool_context):
        """Results over the byte limit are replaced by a truncation envelope."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", '{"action": "add", "content": "' + "x" * 500 + '"}')]),
            fakes.message("ok"),
        ])
        result = await _orchestrator(llm, dispatcher, max_result_bytes=200).run(
            [{"role": "user", "content": "go"}], tool_context
        )

        envelope = json.loads(_tool_turns(llm.calls[1]["messages"])[0]["content"])
        assert envelope["truncated"] is True
        assert envelope["toolCallId"] == "call_1"
        assert envelope["maxBytes"] == 200
        # the audit trail keeps the full result
        assert result.tool_calls[0].result["todos"][0]["content"] == "x" * 500


class TestTermination:
    """Iteration ceiling and provider failures."""

    @pytest.mark.asyncio
    async def test_ceiling_returns_advisory(self, fakes, dispatcher, tool_context):
        """Exhausting max_iterations returns the fixed advisory text."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", '{"action": "list"}')]),
            fakes.message("", [fakes.tool_call("call_2", "todo", '{"action": "list"}')]),
        ])
        result = await _orchestrator(llm, dispatcher, max_iterations=2).run(
            [{"role": "user", "content": "loop"}], tool_context
        )

        assert result.message == MAX_ITERATIONS_MESSAGE
        assert result.ceiling_reached is True
        assert result.iterations == 2
        assert [c.id for c in result.tool_calls] == ["call_1", "call_2"]
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, fakes, dispatcher, tool_context):
        """A failed model call rejects the whole run."""
        llm = fakes.ScriptedLLM(turns=[ProviderCallFailure("Failed to get LLM response: boom")])
        with pytest.raises(ProviderCallFailure, match="boom"):
            await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "hi"}], tool_context)

    @pytest.mark.asyncio
    async def test_failure_after_tool_call_propagates(self, fakes, dispatcher, tool_context):
        """Tool progress does not mask a later provider failure."""
        llm = fakes.ScriptedLLM(turns=[
            fakes.message("", [fakes.tool_call("call_1", "todo", '{"action": "create"}')]),
            ProviderCallFailure("quota exceeded"),
        ])
        with pytest.raises(ProviderCallFailure):
            await _orchestrator(llm, dispatcher).run([{"role": "user", "content": "hi"}], tool_context)
