"""
Todo Tool

Lets the model create and track a task list for complex, multi-step
requests. Lists are kept per chat session in a ``TodoStore``.
"""

import logging
import random
import string
import threading
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any

from ..models import ToolContext
from .registry import ToolFamily, function_schema, names_matcher

logger = logging.getLogger(__name__)

TOOL_NAME = "todo"
VALID_STATUSES = ("pending", "in_progress", "completed", "failed")
_ID_ALPHABET = string.digits + string.ascii_lowercase

TODO_SCHEMA = function_schema(
    name=TOOL_NAME,
    description=(
        "Create and manage a todo list for complex, multi-step tasks. Use this tool "
        "FIRST when you encounter a complex task (requiring 3+ distinct steps or "
        "involving multiple files/components). This helps break down the work into "
        "manageable steps and track progress. You can add tasks and update their "
        "status as you work through them."
    ),
    properties={
        "action": {
            "type": "string",
            "enum": ["create", "add", "update", "list"],
            "description": (
                "Action to perform: 'create' to initialize a new todo list, 'add' to "
                "add a new task, 'update' to change task status/content, 'list' to "
                "view all todos."
            ),
        },
        "taskId": {
            "type": "string",
            "description": (
                "Task ID (required for 'update' action). Use the ID returned from "
                "'add' or 'list' actions."
            ),
        },
        "content": {
            "type": "string",
            "description": (
                "Task description/content. Required for 'add' action, optional for "
                "'update' action. Should be clear and actionable."
            ),
        },
        "status": {
            "type": "string",
            "enum": list(VALID_STATUSES),
            "description": (
                "Task status. Required for 'update' action. Use 'pending' for new "
                "tasks, 'in_progress' when working on it, 'completed' when done, "
                "'failed' if the task encountered an error."
            ),
        },
    },
    required=["action"],
)


class TodoError(ValueError):
    """An invalid todo action; reported back in the result message."""


def generate_task_id() -> str:
    """``task_<epoch ms>_<7 random base36 chars>``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"task_{int(time.time() * 1000)}_{suffix}"


class TodoStore:
    """
    Session-keyed todo lists.

    Created once per process. Keeps at most ``max_sessions`` lists and
    evicts the least recently used session beyond that.
    """

    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, list[dict]] = OrderedDict()
        self._lock = threading.Lock()

    def todos(self, session_id: str) -> list[dict]:
        """The live list for a session, created empty on first use."""
        with self._lock:
            if session_id in self._sessions:
                self._sessions.move_to_end(session_id)
                return self._sessions[session_id]
            todos: list[dict] = []
            self._sessions[session_id] = todos
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug(f"Evicted todo list for session {evicted}")
            return todos

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def _result(action: str, todos: list[dict], message: str, task_id: str = None) -> dict:
    result = {
        "action": action,
        "todos": [dict(todo) for todo in todos],
        "count": len(todos),
        "message": message,
    }
    if task_id:
        result["taskId"] = task_id
    return result


def _apply(action: Any, args: dict, todos: list[dict], now: str) -> dict:
    if action == "create":
        todos.clear()
        return _result("create", todos, "Todo list created.")

    if action == "add":
        content = args.get("content")
        if not isinstance(content, str) or not content.strip():
            raise TodoError("Content is required for 'add' action")
        status = args.get("status") or "pending"
        if status not in VALID_STATUSES:
            raise TodoError(f"Invalid status: {status}")
        task = {
            "id": generate_task_id(),
            "content": content.strip(),
            "status": status,
            "createdAt": now,
            "updatedAt": now,
        }
        todos.append(task)
        return _result("add", todos, "Task added successfully.", task["id"])

    if action == "update":
        task_id = args.get("taskId")
        if not task_id:
            raise TodoError("Task ID is required for 'update' action")
        task = next((t for t in todos if t["id"] == task_id), None)
        if task is None:
            raise TodoError(f"Task with ID '{task_id}' not found")

        status = args.get("status")
        if status:
            if status not in VALID_STATUSES:
                raise TodoError(f"Invalid status: {status}")
            task["status"] = status

        if "content" in args and args["content"] is not None:
            content = args["content"]
            if not isinstance(content, str) or not content.strip():
                raise TodoError("Content must be a non-empty string")
            task["content"] = content.strip()

        task["updatedAt"] = now
        return _result("update", todos, f"Task '{task['id']}' updated successfully.", task["id"])

    if action == "list":
        message = (
            "No tasks found. Use 'create' action to initialize a todo list."
            if not todos
            else f"Retrieved {len(todos)} task(s)."
        )
        return _result("list", todos, message)

    raise TodoError(f"Unknown action: {action}")


def run_todo(args: dict, session_id: str, store: TodoStore) -> dict:
    """
    Execute one todo action for a session.

    Invalid actions do not raise: the error text is returned in
    ``message`` alongside the unchanged list, so the model can correct
    itself.

    Returns:
        ``{"action", "todos", "count", "message"}`` plus ``taskId`` for
        add/update.
    """
    todos = store.todos(session_id)
    now = datetime.now(timezone.utc).isoformat()
    action = args.get("action")

    try:
        return _apply(action, args, todos, now)
    except TodoError as e:
        logger.info(f"Todo action '{action}' rejected: {e}")
        return _result(str(action), todos, str(e))


def create_todo_family(store: TodoStore) -> ToolFamily:
    """Build the todo tool family bound to ``store``."""

    async def execute(name: str, args: dict, context: ToolContext) -> dict:
        return run_todo(args, context.session_id, store)

    return ToolFamily(
        name="todo",
        owns=names_matcher(TOOL_NAME),
        execute=execute,
        schemas=[TODO_SCHEMA],
        required_context={"session_id": "Session ID is required for todo tool"},
    )
