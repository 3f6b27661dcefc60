"""Tests for the tool catalogue endpoint."""

from fastapi.testclient import TestClient

from slidechat.api.main import create_app
from slidechat.api.routes.tools import describe_tool
from slidechat.tools.todo import TODO_SCHEMA


class TestToolsEndpoint:
    """Tests for GET /api/tools."""

    def test_lists_tools_in_priority_order(self, app_config):
        response = TestClient(create_app(app_config=app_config)).get("/api/tools")

        assert response.status_code == 200
        names = [tool["name"] for tool in response.json()["tools"]]
        assert names[0] == "todo"
        assert names[1:8] == [
            "write_file_disk",
            "read_file_disk",
            "replace_string_disk",
            "list_disk",
            "download_file_disk",
            "grep_disk",
            "glob_disk",
        ]
        assert names[8:] == ["image_generate", "browser_use_task"]

    def test_empty_when_tools_disabled(self, app_config):
        app_config.tools.enabled = False
        response = TestClient(create_app(app_config=app_config)).get("/api/tools")
        assert response.json() == {"tools": []}

    def test_describe_tool_flattens_parameters(self):
        info = describe_tool(TODO_SCHEMA)
        params = {p.name: p for p in info.parameters}

        assert info.name == "todo"
        assert info.description.startswith("Create and manage a todo list")
        assert list(params) == ["action", "taskId", "content", "status"]
        assert params["action"].required is True
        assert params["action"].type == "string"
        assert params["taskId"].required is False

    def test_missing_type_is_unknown(self):
        schema = {"function": {"name": "x", "parameters": {"properties": {"q": {}}}}}
        assert describe_tool(schema).parameters[0].type == "unknown"
