"""
Tool families available to the chat model.

Families are registered in a fixed priority order:
todo, disk, image generation, browser automation.
"""

from ..models import AppConfig
from .browser_use import create_browser_use_family
from .disk import LocalDiskStore, create_disk_family
from .dispatcher import ToolDispatcher, parse_arguments
from .image_generate import create_image_generate_family
from .registry import ToolFamily, ToolOutcome, ToolRegistry, ToolStep
from .todo import TodoStore, create_todo_family, run_todo


def build_registry(
    app_config: AppConfig,
    todo_store: TodoStore,
    disk_store: LocalDiskStore,
    image_client=None,
    browser_transport=None,
) -> ToolRegistry:
    """Create a registry with every family in priority order."""
    registry = ToolRegistry()
    registry.register(create_todo_family(todo_store))
    registry.register(create_disk_family(disk_store))
    registry.register(
        create_image_generate_family(
            app_config.tools.image_generate, disk_store, client=image_client
        )
    )
    registry.register(
        create_browser_use_family(app_config.tools.browser_use, transport=browser_transport)
    )
    return registry


__all__ = [
    "ToolFamily",
    "ToolStep",
    "ToolOutcome",
    "ToolRegistry",
    "ToolDispatcher",
    "TodoStore",
    "LocalDiskStore",
    "build_registry",
    "parse_arguments",
    "run_todo",
]
