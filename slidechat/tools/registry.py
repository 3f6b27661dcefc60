"""
Tool Registry - ordered tool families.

Each family groups related tools under one name-membership rule. Families
are evaluated in registration order and the first one that owns a name
handles the call.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from ..models import ToolContext

ToolExecutor = Callable[[str, dict, ToolContext], Awaitable[Any]]
ToolStreamer = Callable[[str, dict, ToolContext], AsyncIterator["ToolStep | ToolOutcome"]]


@dataclass
class ToolStep:
    """Intermediate progress yielded by a streaming tool."""

    payload: Any


@dataclass
class ToolOutcome:
    """Final result yielded last by a streaming tool."""

    result: Any


@dataclass
class ToolFamily:
    """A cohesive group of tools sharing one name-matching rule."""

    name: str
    owns: Callable[[str], bool]
    execute: ToolExecutor
    schemas: list[dict] = field(default_factory=list)
    stream: Optional[ToolStreamer] = None
    # ToolContext attribute -> error message when it is missing
    required_context: dict[str, str] = field(default_factory=dict)

    @property
    def tool_names(self) -> list[str]:
        return [schema["function"]["name"] for schema in self.schemas]


def function_schema(name: str, description: str, properties: dict, required: list[str]) -> dict:
    """Build a chat-completions function tool definition."""
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def names_matcher(*names: str) -> Callable[[str], bool]:
    """Membership predicate over a fixed set of tool names."""
    members = frozenset(names)
    return lambda name: name in members


class ToolRegistry:
    """Ordered registry of tool families."""

    def __init__(self) -> None:
        self._families: list[ToolFamily] = []

    def register(self, family: ToolFamily) -> None:
        """Append a family; earlier registrations take priority."""
        if any(existing.name == family.name for existing in self._families):
            raise ValueError(f"Tool family already registered: {family.name}")
        self._families.append(family)

    def family_for(self, tool_name: str) -> Optional[ToolFamily]:
        """Return the first family that owns ``tool_name``."""
        for family in self._families:
            if family.owns(tool_name):
                return family
        return None

    def families(self) -> list[ToolFamily]:
        return list(self._families)

    def tool_schemas(self, enabled_names: Optional[list[str]] = None) -> list[dict]:
        """
        All tool definitions, optionally filtered.

        ``enabled_names=None`` means every tool; an empty list means none.
        """
        schemas = [schema for family in self._families for schema in family.schemas]
        if enabled_names is None:
            return schemas
        enabled = set(enabled_names)
        return [s for s in schemas if s["function"]["name"] in enabled]
