"""
Request-scoped tracing context using Langfuse SDK v3.

Observations are started with ``start_span`` / ``start_generation`` rather
than the ``*_as_current_*`` variants, and parents are linked through an
explicit ``trace_context``. Nothing is pushed onto the OTEL context, so a
span opened inside an async generator can be ended after the generator
yields without corrupting another request's context.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from .client import get_tracing_client

logger = logging.getLogger(__name__)


def _langfuse():
    client = get_tracing_client()
    if not client or not client.enabled:
        return None
    return client.langfuse


@dataclass
class TracingContext:
    """
    Tracing state for one chat request.

    Opens a root span per request; model calls become generations and
    tool executions become spans beneath it.
    """

    execution_id: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    _root_span: Any = field(default=None, repr=False)
    _enabled: bool = field(default=False, repr=False)
    _start_time: float = field(default_factory=time.time, repr=False)

    def __post_init__(self):
        self._enabled = _langfuse() is not None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_trace(
        self,
        name: str = "chat_request",
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Start the root span for this request."""
        client = _langfuse() if self._enabled else None
        if client is None:
            return

        try:
            trace_metadata = {"execution_id": self.execution_id, **(metadata or {})}
            self._root_span = client.start_span(
                name=name,
                input=input,
                metadata=trace_metadata,
            )
            self._root_span.update_trace(
                user_id=self.user_id,
                session_id=self.session_id,
            )
            self._start_time = time.time()
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to start trace: {e}")
            self._root_span = None

    def get_trace_context(self) -> Optional[TraceContext]:
        """TraceContext that parents child observations on the root span."""
        if self._root_span is None:
            return None
        trace_id = getattr(self._root_span, "trace_id", None)
        span_id = getattr(self._root_span, "id", None)
        if not trace_id or not span_id:
            return None
        return TraceContext(trace_id=trace_id, parent_span_id=span_id)

    def end_trace(
        self,
        output: Optional[Any] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
    ) -> None:
        """End the root span, recording output, status and duration."""
        if self._root_span is None:
            return

        try:
            duration_ms = (time.time() - self._start_time) * 1000
            self._root_span.update(
                output=output,
                metadata={
                    "status": status,
                    "duration_ms": round(duration_ms, 2),
                    **(metadata or {}),
                },
            )
            self._root_span.end()
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to end trace: {e}")
        finally:
            self._root_span = None

    @contextmanager
    def span(
        self,
        name: str,
        metadata: Optional[dict] = None,
        input: Optional[Any] = None,
    ) -> Generator["SpanContext", None, None]:
        """Create a span beneath the root span."""
        span_ctx = SpanContext(
            name=name,
            enabled=self._enabled,
            metadata=metadata,
            input=input,
            _trace_context=self.get_trace_context(),
        )
        try:
            span_ctx.start()
            yield span_ctx
        finally:
            span_ctx.end()

    @contextmanager
    def generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
        model_parameters: Optional[dict] = None,
    ) -> Generator["GenerationContext", None, None]:
        """Create a generation beneath the root span for one model call."""
        gen_ctx = GenerationContext(
            name=name,
            enabled=self._enabled,
            metadata=metadata,
            input=input,
            model=model,
            model_parameters=model_parameters,
            _trace_context=self.get_trace_context(),
        )
        try:
            gen_ctx.start()
            yield gen_ctx
        finally:
            gen_ctx.end()


@dataclass
class SpanContext:
    """A single tracing span."""

    name: str
    enabled: bool = False
    metadata: Optional[dict] = None
    input: Optional[Any] = None
    _observation: Any = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)
    _output: Optional[Any] = field(default=None, repr=False)
    _status: str = field(default="success", repr=False)
    _trace_context: Optional[TraceContext] = field(default=None, repr=False)

    def _open(self, client) -> Any:
        return client.start_span(
            trace_context=self._trace_context,
            name=self.name,
            input=self.input,
            metadata=self.metadata,
        )

    def _end_kwargs(self) -> dict[str, Any]:
        return {}

    def start(self) -> None:
        client = _langfuse() if self.enabled else None
        if client is None:
            return

        try:
            self._start_time = time.time()
            self._observation = self._open(client)
        except Exception as e:
            logger.warning(f"Failed to start observation '{self.name}': {e}")
            self._observation = None

    def end(self) -> None:
        if self._observation is None:
            return

        try:
            duration_ms = (time.time() - self._start_time) * 1000
            update_kwargs: dict[str, Any] = {
                "metadata": {
                    "status": self._status,
                    "duration_ms": round(duration_ms, 2),
                },
                **self._end_kwargs(),
            }
            if self._output is not None:
                update_kwargs["output"] = self._output
            if self._status == "error":
                update_kwargs["level"] = "ERROR"

            self._observation.update(**update_kwargs)
            self._observation.end()
        except Exception as e:
            logger.warning(f"Failed to end observation '{self.name}': {e}")
        finally:
            self._observation = None

    def set_output(self, output: Any) -> None:
        self._output = output

    def set_status(self, status: str) -> None:
        self._status = status


@dataclass
class GenerationContext(SpanContext):
    """Generation tracking for one model call."""

    model: str = ""
    model_parameters: Optional[dict] = None
    _usage: Optional[dict] = field(default=None, repr=False)

    def _open(self, client) -> Any:
        return client.start_generation(
            trace_context=self._trace_context,
            name=self.name,
            model=self.model,
            input=self.input,
            metadata=self.metadata,
            model_parameters=self.model_parameters,
        )

    def _end_kwargs(self) -> dict[str, Any]:
        if not self._usage:
            return {}
        return {"usage_details": self._usage}

    def set_usage(
        self,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
        total_tokens: Optional[int] = None,
    ) -> None:
        """Set token usage for the generation."""
        self._usage = {}
        if prompt_tokens is not None:
            self._usage["input"] = prompt_tokens
        if completion_tokens is not None:
            self._usage["output"] = completion_tokens
        if total_tokens is not None:
            self._usage["total"] = total_tokens
