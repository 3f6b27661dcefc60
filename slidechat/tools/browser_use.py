"""
Browser Use Tool

Runs a task on Browser Use Cloud: creates the task over its REST API, polls
until it finishes, and reports every new agent step as it appears.
"""

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Optional

import httpx

from ..errors import ConfigurationError, ToolExecutionFailure
from ..models import BrowserUseConfig, ToolContext
from .registry import ToolFamily, ToolOutcome, ToolStep, function_schema, names_matcher

logger = logging.getLogger(__name__)

TOOL_NAME = "browser_use_task"
TERMINAL_STATUSES = ("finished", "stopped", "failed")

_DONE_PATTERN = re.compile(r'"done"\s*:\s*(\{[\s\S]*\})')

BROWSER_USE_SCHEMA = function_schema(
    name=TOOL_NAME,
    description=(
        "Spin up a browser in the cloud to search/operate on real websites when "
        "real-time information or multi-step web actions are needed."
    ),
    properties={
        "task": {
            "type": "string",
            "description": (
                "Plain language description of the web task to perform. "
                "Keep it concise and specific."
            ),
        },
        "startUrl": {
            "type": "string",
            "description": (
                "Optional URL to open before starting the task. Use this when the "
                "task is clearly tied to a specific site."
            ),
        },
        "maxSteps": {
            "type": "integer",
            "description": (
                "Optional maximum number of browser actions (steps) the agent may "
                "take. Use to prevent overly long or wandering sessions."
            ),
            "minimum": 1,
        },
        "allowedDomains": {
            "type": "array",
            "items": {"type": "string"},
            "description": (
                "Optional allow-list of domains the browser may visit. Use this to "
                "keep the task focused and safe."
            ),
        },
        "structuredOutput": {
            "type": "string",
            "description": (
                "Optional JSON Schema string that describes the desired structured "
                "output format. Use this for table-like or strongly typed results."
            ),
        },
    },
    required=["task"],
)


def build_task_payload(args: dict) -> dict:
    """Validate tool arguments and build the create-task request body."""
    task = args.get("task")
    if not isinstance(task, str) or not task.strip():
        raise ToolExecutionFailure("Task must be a non-empty string")

    payload: dict[str, Any] = {"task": task.strip()}

    start_url = args.get("startUrl")
    if isinstance(start_url, str) and start_url.strip():
        payload["startUrl"] = start_url.strip()

    max_steps = args.get("maxSteps")
    if isinstance(max_steps, (int, float)) and not isinstance(max_steps, bool) and max_steps > 0:
        payload["maxSteps"] = int(max_steps)

    domains = args.get("allowedDomains")
    if isinstance(domains, list) and domains:
        payload["allowedDomains"] = [d for d in domains if isinstance(d, str) and d.strip()]

    structured = args.get("structuredOutput")
    if isinstance(structured, str) and structured.strip():
        payload["structuredOutput"] = structured.strip()

    return payload


def extract_done_action(step: Any) -> Optional[dict]:
    """
    Return the ``done`` action payload of a step, if it has one.

    Actions arrive as JSON strings; when a string is not valid JSON the
    ``"done": {...}`` fragment is pulled out with a regex.
    """
    if not isinstance(step, dict) or not isinstance(step.get("actions"), list):
        return None

    for action in step["actions"]:
        parsed = action
        if isinstance(action, str):
            try:
                parsed = json.loads(action)
            except ValueError:
                match = _DONE_PATTERN.search(action)
                if not match:
                    continue
                try:
                    parsed = {"done": json.loads(match.group(1))}
                except ValueError:
                    continue
        if isinstance(parsed, dict) and isinstance(parsed.get("done"), dict):
            done = parsed["done"]
            return {
                "text": done.get("text"),
                "success": done.get("success"),
                "files_to_display": done.get("files_to_display"),
            }
    return None


class BrowserUseTool:
    """Creates and follows Browser Use Cloud tasks."""

    def __init__(
        self,
        config: BrowserUseConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        if not self.config.api_key:
            raise ConfigurationError("BROWSER_USE_API_KEY is not configured")
        return httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers={"X-Browser-Use-API-Key": self.config.api_key},
            timeout=httpx.Timeout(30.0),
            transport=self._transport,
        )

    @staticmethod
    async def _request(http: httpx.AsyncClient, method: str, url: str, **kwargs) -> dict:
        try:
            response = await http.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ToolExecutionFailure(
                f"Browser Use API returned {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise ToolExecutionFailure(f"Browser Use API request failed: {e}") from e

    async def stream(self, name: str, args: dict, context: ToolContext) -> AsyncIterator:
        payload = build_task_payload(args)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.timeout

        async with self._http_client() as http:
            created = await self._request(http, "POST", "/tasks", json=payload)
            task_id = created.get("id")
            if not task_id:
                raise ToolExecutionFailure("Browser Use API did not return a task id")
            logger.info(f"Started browser task {task_id}")

            seen = 0
            done = None
            while True:
                task = await self._request(http, "GET", f"/tasks/{task_id}")
                steps = task.get("steps") or []
                for step in steps[seen:]:
                    done = extract_done_action(step) or done
                    yield ToolStep(step)
                seen = len(steps)

                status = task.get("status")
                if status in TERMINAL_STATUSES:
                    break
                if loop.time() >= deadline:
                    raise ToolExecutionFailure(
                        f"Browser task {task_id} did not finish within "
                        f"{int(self.config.timeout)}s (last status: {status})"
                    )
                await asyncio.sleep(self.config.poll_interval)

        logger.info(f"Browser task {task_id} ended with status {status} after {seen} step(s)")
        if done is not None:
            output = done
        else:
            output = task.get("output") if task.get("output") is not None else task
        yield ToolOutcome({"taskId": task_id, "output": output, "raw": task})

    async def execute(self, name: str, args: dict, context: ToolContext) -> dict:
        result = None
        async for update in self.stream(name, args, context):
            if isinstance(update, ToolOutcome):
                result = update.result
        return result


def create_browser_use_family(
    config: BrowserUseConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ToolFamily:
    """Build the browser automation tool family."""
    tool = BrowserUseTool(config, transport=transport)
    return ToolFamily(
        name="browser_use",
        owns=names_matcher(TOOL_NAME),
        execute=tool.execute,
        stream=tool.stream,
        schemas=[BROWSER_USE_SCHEMA],
    )
