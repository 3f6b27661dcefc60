"""
Pytest configuration and fixtures for slidechat tests.
"""

from types import SimpleNamespace

import pytest

from slidechat.config_loader import reset_config_cache
from slidechat.models import AppConfig, DiskConfig, LLMSettings, ToolContext, ToolsConfig
from slidechat.tools import LocalDiskStore, TodoStore, ToolDispatcher, build_registry


class ScriptedLLM:
    """
    Stand-in for LLMClient that replays scripted model turns.

    ``turns`` feeds ``complete`` (message objects or exceptions) and
    ``streams`` feeds ``stream`` (chunk lists, or an exception for the
    whole call). Every call records the messages it was given.
    """

    model = "test-model"
    config = SimpleNamespace(temperature=0.7, max_tokens=1000)

    def __init__(self, turns=None, streams=None):
        self.turns = list(turns or [])
        self.streams = list(streams or [])
        self.calls = []
        self.closed = False

    async def complete(self, messages, tools=None):
        self.calls.append({"messages": messages, "tools": tools})
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn, None

    async def stream(self, messages, tools=None):
        self.calls.append({"messages": messages, "tools": tools})
        chunks = self.streams.pop(0)
        if isinstance(chunks, Exception):
            raise chunks
        for chunk in chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    async def close(self):
        self.closed = True


def make_tool_call(call_id, name, arguments="{}", type="function"):
    return SimpleNamespace(
        id=call_id,
        type=type,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def make_message(content=None, tool_calls=None):
    return SimpleNamespace(content=content, tool_calls=tool_calls)


def make_chunk(content=None, tool_calls=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def make_tool_delta(index, call_id=None, name=None, arguments=None, type=None):
    if type is None and call_id:
        type = "function"
    return SimpleNamespace(
        index=index,
        id=call_id,
        type=type,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


@pytest.fixture
def fakes():
    """Builders for scripted model turns and chunks."""
    return SimpleNamespace(
        ScriptedLLM=ScriptedLLM,
        tool_call=make_tool_call,
        message=make_message,
        chunk=make_chunk,
        tool_delta=make_tool_delta,
    )


@pytest.fixture(autouse=True)
def reset_config():
    """Drop the cached configuration around each test."""
    reset_config_cache()
    yield
    reset_config_cache()


@pytest.fixture
def app_config(tmp_path):
    """Configuration with a model endpoint and a temporary disk root."""
    return AppConfig(
        llm=LLMSettings(endpoint="http://llm.test/v1", api_key="sk-test", model="test-model"),
        tools=ToolsConfig(disk=DiskConfig(root=str(tmp_path / "disks"))),
    )


@pytest.fixture
def todo_store():
    return TodoStore(max_sessions=10)


@pytest.fixture
def disk_store(tmp_path):
    return LocalDiskStore(tmp_path / "disks")


@pytest.fixture
def registry(app_config, todo_store, disk_store):
    return build_registry(app_config, todo_store, disk_store)


@pytest.fixture
def dispatcher(registry):
    return ToolDispatcher(registry)


@pytest.fixture
def tool_context():
    return ToolContext(disk_id="disk-1", session_id="session-1", character_id="character1")
