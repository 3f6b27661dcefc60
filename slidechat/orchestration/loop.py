"""
Tool-calling orchestration loop.

Sends the conversation to the model, executes any tool calls it requests,
appends the results and repeats until the model answers without tools or
the iteration ceiling is reached.

Two entry points share the same state machine:

- ``ChatOrchestrator.run`` makes buffered model calls and returns an
  ``OrchestrationResult``.
- ``ChatOrchestrator.stream`` consumes each model call incrementally and
  yields typed events (see ``events.py``) as they happen, ending with exactly
  one ``final_message`` or ``error`` event.

Invariants kept by both:

- every invocation id the model announces gets exactly one tool turn, in
  emission order, before the next model call;
- tool calls within an iteration run one after another, never concurrently;
- invocation-local failures (``ToolError``) are recorded on the invocation
  and sent back to the model; they never abort the loop;
- the caller's message list is never mutated.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Optional, Union

from ..errors import ErrorCodes, MalformedArguments, ProviderCallFailure, ToolError
from ..llm_call import LLMClient
from ..models import ChatMessage, ToolContext, ToolInvocation
from ..tools.dispatcher import ToolDispatcher, parse_arguments
from ..tools.registry import ToolStep
from ..tracing import TracingContext
from .codec import encode_assistant_turn, encode_messages, encode_tool_turn
from .events import (
    ErrorEvent,
    FinalMessageEvent,
    MessageEvent,
    StreamEvent,
    ToolCallCompleteEvent,
    ToolCallErrorEvent,
    ToolCallStartEvent,
    ToolCallStepEvent,
)
from .sanitizer import DEFAULT_MAX_BYTES, bound_tool_result

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10

MAX_ITERATIONS_MESSAGE = (
    "Maximum tool call iterations reached. "
    "Please try again with a more specific request."
)


@dataclass
class OrchestrationResult:
    """Result from a complete orchestration call."""

    message: str
    tool_calls: Optional[list[ToolInvocation]] = None
    iterations: int = 0
    ceiling_reached: bool = False


@dataclass
class PendingCall:
    """A tool call announced by the model, before it is resolved."""

    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


def pending_calls_from_message(message: Any) -> list[PendingCall]:
    """Read the tool calls of a buffered assistant message."""
    calls = []
    for raw in getattr(message, "tool_calls", None) or []:
        function = getattr(raw, "function", None)
        calls.append(
            PendingCall(
                id=getattr(raw, "id", "") or "",
                name=(getattr(function, "name", None) or "unknown") if function else "unknown",
                arguments=(getattr(function, "arguments", None) or "") if function else "",
                type=getattr(raw, "type", None) or "function",
            )
        )
    return calls


@dataclass
class StreamedTurn:
    """Accumulates one streamed model turn from its chunks."""

    content: str = ""
    _calls: dict[int, PendingCall] = field(default_factory=dict)

    def add_content(self, fragment: str) -> None:
        self.content += fragment

    def add_tool_call_delta(self, delta: Any) -> None:
        index = getattr(delta, "index", None) or 0
        function = getattr(delta, "function", None)
        name = getattr(function, "name", None) if function else None
        arguments = getattr(function, "arguments", None) if function else None

        call = self._calls.get(index)
        if call is None:
            self._calls[index] = PendingCall(
                id=getattr(delta, "id", None) or "",
                name=name or "",
                arguments=arguments or "",
                type=getattr(delta, "type", None) or "function",
            )
            return
        if not call.id and getattr(delta, "id", None):
            call.id = delta.id
        if not call.name and name:
            call.name = name
        if arguments:
            call.arguments += arguments

    @property
    def tool_calls(self) -> list[PendingCall]:
        """Complete calls in index order; fragments lacking an id or name are dropped."""
        return [
            self._calls[index]
            for index in sorted(self._calls)
            if self._calls[index].id and self._calls[index].name
        ]


class ChatOrchestrator:
    """
    Runs the tool-calling loop for one chat request.

    A new instance is cheap; nothing is kept between calls except the
    collaborators passed in.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        dispatcher: ToolDispatcher,
        tools: Optional[list[dict]] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_result_bytes: int = DEFAULT_MAX_BYTES,
        tracing_context: Optional[TracingContext] = None,
        execution_id: Optional[str] = None,
    ):
        self.llm_client = llm_client
        self.dispatcher = dispatcher
        self.tools = tools or []
        self.max_iterations = max_iterations
        self.max_result_bytes = max_result_bytes
        self.tracing_context = tracing_context
        self.execution_id = execution_id

    @property
    def _prefix(self) -> str:
        return f"[{self.execution_id}] " if self.execution_id else ""

    def _generation(self, iteration: int, messages: list[dict]):
        if self.tracing_context is None:
            return nullcontext()
        return self.tracing_context.generation(
            name=f"chat_iteration_{iteration}",
            model=self.llm_client.model,
            input=messages,
            model_parameters={
                "temperature": self.llm_client.config.temperature,
                "max_tokens": self.llm_client.config.max_tokens,
            },
        )

    def _tool_span(self, invocation: ToolInvocation):
        if self.tracing_context is None:
            return nullcontext()
        return self.tracing_context.span(
            name=f"tool:{invocation.name}",
            input=invocation.arguments,
            metadata={"tool_call_id": invocation.id},
        )

    async def run(
        self,
        messages: Iterable[Union[ChatMessage, dict]],
        context: Optional[ToolContext] = None,
    ) -> OrchestrationResult:
        """
        Run the loop with buffered model calls.

        Raises:
            ProviderCallFailure: If a model call fails
        """
        context = context or ToolContext()
        conversation = encode_messages(messages)
        trail: list[ToolInvocation] = []

        for iteration in range(1, self.max_iterations + 1):
            logger.debug(f"{self._prefix}Iteration {iteration}: calling model")
            with self._generation(iteration, conversation) as gen:
                try:
                    message, usage = await self.llm_client.complete(conversation, self.tools)
                except ProviderCallFailure:
                    if gen is not None:
                        gen.set_status("error")
                    raise
                if gen is not None:
                    gen.set_output(getattr(message, "content", None) or "")
                    if usage is not None:
                        gen.set_usage(
                            prompt_tokens=getattr(usage, "prompt_tokens", None),
                            completion_tokens=getattr(usage, "completion_tokens", None),
                            total_tokens=getattr(usage, "total_tokens", None),
                        )

            content = getattr(message, "content", None) or ""
            calls = pending_calls_from_message(message)
            if not calls:
                logger.debug(f"{self._prefix}Final response after {iteration} iteration(s)")
                return OrchestrationResult(
                    message=content,
                    tool_calls=trail or None,
                    iterations=iteration,
                )

            logger.info(f"{self._prefix}Iteration {iteration}: {len(calls)} tool call(s)")
            resolved = []
            for call in calls:
                async for _ in self._resolve_call(call, context, trail, resolved, stream_tools=False):
                    pass
            conversation = self._extend(conversation, content, calls, resolved)

        logger.warning(f"{self._prefix}Reached maximum iterations ({self.max_iterations})")
        return OrchestrationResult(
            message=MAX_ITERATIONS_MESSAGE,
            tool_calls=trail or None,
            iterations=self.max_iterations,
            ceiling_reached=True,
        )

    async def stream(
        self,
        messages: Iterable[Union[ChatMessage, dict]],
        context: Optional[ToolContext] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run the loop with streamed model calls, yielding events.

        Provider failures and empty turns end the stream with an ErrorEvent
        instead of raising.
        """
        context = context or ToolContext()
        conversation = encode_messages(messages)
        trail: list[ToolInvocation] = []

        for iteration in range(1, self.max_iterations + 1):
            logger.debug(f"{self._prefix}Iteration {iteration}: streaming model call")
            turn = StreamedTurn()
            with self._generation(iteration, conversation) as gen:
                try:
                    async for chunk in self.llm_client.stream(conversation, self.tools):
                        choices = getattr(chunk, "choices", None)
                        if not choices:
                            continue
                        delta = getattr(choices[0], "delta", None)
                        if delta is None:
                            continue
                        fragment = getattr(delta, "content", None)
                        if fragment:
                            turn.add_content(fragment)
                            yield MessageEvent(content=fragment)
                        for tool_delta in getattr(delta, "tool_calls", None) or []:
                            turn.add_tool_call_delta(tool_delta)
                except ProviderCallFailure as e:
                    logger.error(f"{self._prefix}Model stream failed: {e}")
                    if gen is not None:
                        gen.set_status("error")
                    yield ErrorEvent(error=str(e), code=ErrorCodes.LLM_ERROR)
                    return
                if gen is not None:
                    gen.set_output(turn.content)

            calls = turn.tool_calls
            if not turn.content and not calls:
                logger.error(f"{self._prefix}Model returned an empty turn")
                yield ErrorEvent(error="No response from LLM", code=ErrorCodes.LLM_ERROR)
                return

            if not calls:
                logger.debug(f"{self._prefix}Final response after {iteration} iteration(s)")
                yield FinalMessageEvent(content=turn.content, tool_calls=trail or None)
                return

            logger.info(f"{self._prefix}Iteration {iteration}: {len(calls)} tool call(s)")
            resolved = []
            for call in calls:
                async for event in self._resolve_call(call, context, trail, resolved, stream_tools=True):
                    yield event
            conversation = self._extend(conversation, turn.content, calls, resolved)

        logger.warning(f"{self._prefix}Reached maximum iterations ({self.max_iterations})")
        yield FinalMessageEvent(
            content=MAX_ITERATIONS_MESSAGE,
            tool_calls=trail or None,
            ceiling_reached=True,
        )

    async def _resolve_call(
        self,
        call: PendingCall,
        context: ToolContext,
        trail: list[ToolInvocation],
        resolved: list[ToolInvocation],
        stream_tools: bool,
    ) -> AsyncIterator[StreamEvent]:
        """
        Resolve one tool call, yielding its lifecycle events.

        The finished invocation is appended to both ``trail`` (the audit
        trail for the whole call) and ``resolved`` (this iteration only).
        """
        invocation = ToolInvocation(id=call.id, name=call.name)
        trail.append(invocation)
        resolved.append(invocation)

        if call.type != "function":
            yield ToolCallStartEvent(invocation)
            invocation.fail(f"Unsupported tool call type: {call.type}")
            yield ToolCallErrorEvent(invocation)
            return

        try:
            invocation.arguments = parse_arguments(call.name, call.arguments)
        except MalformedArguments as e:
            logger.warning(f"{self._prefix}{e}")
            yield ToolCallStartEvent(invocation)
            invocation.fail(str(e))
            yield ToolCallErrorEvent(invocation)
            return

        yield ToolCallStartEvent(invocation)
        logger.debug(f"{self._prefix}Executing tool '{call.name}' ({call.id})")

        with self._tool_span(invocation) as span:
            try:
                if stream_tools and self.dispatcher.is_streaming(call.name):
                    result = None
                    async for update in self.dispatcher.stream(
                        call.name, invocation.arguments, context
                    ):
                        if isinstance(update, ToolStep):
                            invocation.steps.append(update.payload)
                            yield ToolCallStepEvent(tool_call_id=call.id, step=update.payload)
                        else:
                            result = update.result
                else:
                    result = await self.dispatcher.dispatch(
                        call.name, invocation.arguments, context
                    )
            except ToolError as e:
                logger.warning(f"{self._prefix}Tool '{call.name}' failed: {e}")
                if span is not None:
                    span.set_status("error")
                    span.set_output({"error": str(e)})
                invocation.fail(str(e))
                yield ToolCallErrorEvent(invocation)
                return

            if span is not None:
                span.set_output({"result": _preview(result)})

        invocation.resolve(result)
        yield ToolCallCompleteEvent(invocation)

    def _extend(
        self,
        conversation: list[dict],
        content: str,
        calls: list[PendingCall],
        resolved: list[ToolInvocation],
    ) -> list[dict]:
        """New conversation: old turns + assistant turn + one tool turn per call."""
        tool_turns = []
        for call, invocation in zip(calls, resolved):
            if invocation.error is not None:
                payload = {"error": invocation.error}
            else:
                payload = invocation.result if invocation.result is not None else {}
            tool_turns.append(
                encode_tool_turn(
                    call.id,
                    bound_tool_result(call.name, call.id, payload, self.max_result_bytes),
                )
            )
        assistant_turn = encode_assistant_turn(content, [call.to_wire() for call in calls])
        return [*conversation, assistant_turn, *tool_turns]


def _preview(value: Any, limit: int = 500) -> str:
    text = str(value)
    return text if len(text) <= limit else text[:limit] + "..."
