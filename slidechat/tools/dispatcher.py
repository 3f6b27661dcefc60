"""
Tool dispatcher.

Routes a tool name and raw argument payload to the owning family. The
dispatcher holds no state of its own; side effects belong to the families.
"""

import json
import logging
from typing import Any, AsyncIterator, Union

from ..errors import (
    MalformedArguments,
    MissingContext,
    ToolError,
    ToolExecutionFailure,
    UnknownTool,
)
from ..models import ToolContext
from .registry import ToolFamily, ToolOutcome, ToolRegistry, ToolStep

logger = logging.getLogger(__name__)


def parse_arguments(tool_name: str, args_json: str) -> dict:
    """
    Parse a tool call's argument payload.

    An empty payload means no arguments.

    Raises:
        MalformedArguments: If the payload is not a JSON object
    """
    if args_json is None or not str(args_json).strip():
        return {}
    try:
        parsed = json.loads(args_json)
    except (TypeError, ValueError) as e:
        raise MalformedArguments(
            f"Invalid JSON arguments for tool '{tool_name}': {e}"
        ) from e
    if not isinstance(parsed, dict):
        raise MalformedArguments(
            f"Arguments for tool '{tool_name}' must be a JSON object, "
            f"got {type(parsed).__name__}"
        )
    return parsed


class ToolDispatcher:
    """Resolves tool names to families and executes them."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def resolve(self, name: str, context: ToolContext) -> ToolFamily:
        """
        Find the owning family and check its context preconditions.

        Raises:
            UnknownTool: If no family owns ``name``
            MissingContext: If a required context value is absent
        """
        family = self.registry.family_for(name)
        if family is None:
            raise UnknownTool(name)
        for attribute, message in family.required_context.items():
            if not getattr(context, attribute, None):
                raise MissingContext(message)
        return family

    def is_streaming(self, name: str) -> bool:
        family = self.registry.family_for(name)
        return family is not None and family.stream is not None

    async def execute(self, name: str, args_json: str, context: ToolContext) -> Any:
        """Parse ``args_json`` and run the tool, returning its result verbatim."""
        return await self.dispatch(name, parse_arguments(name, args_json), context)

    async def dispatch(self, name: str, args: dict, context: ToolContext) -> Any:
        """
        Run a tool with already-parsed arguments.

        Raises:
            ToolError: Any invocation-local failure. Unexpected exceptions
                from the family are wrapped in ToolExecutionFailure.
        """
        family = self.resolve(name, context)
        logger.debug(f"Dispatching '{name}' to family '{family.name}'")
        try:
            return await family.execute(name, args, context)
        except ToolError:
            raise
        except Exception as e:
            logger.error(f"Tool '{name}' execution failed: {e}")
            raise ToolExecutionFailure(str(e) or type(e).__name__) from e

    async def stream(
        self, name: str, args: dict, context: ToolContext
    ) -> AsyncIterator[Union[ToolStep, ToolOutcome]]:
        """
        Run a tool, yielding ToolStep progress and a final ToolOutcome.

        Families without a streaming variant yield just the outcome.
        """
        family = self.resolve(name, context)
        if family.stream is None:
            yield ToolOutcome(await self.dispatch(name, args, context))
            return

        logger.debug(f"Streaming '{name}' from family '{family.name}'")
        try:
            async for update in family.stream(name, args, context):
                yield update
        except ToolError:
            raise
        except Exception as e:
            logger.error(f"Tool '{name}' stream failed: {e}")
            raise ToolExecutionFailure(str(e) or type(e).__name__) from e
