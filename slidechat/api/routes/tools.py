"""Tool catalogue endpoint."""

from fastapi import APIRouter, Request

from ..schemas import ToolInfo, ToolParameter, ToolsResponse

router = APIRouter()


def describe_tool(schema: dict) -> ToolInfo:
    """Flatten a function-tool schema into name, description and parameters."""
    function = schema.get("function") or {}
    parameters = function.get("parameters") or {}
    required = parameters.get("required") or []
    return ToolInfo(
        name=function.get("name", ""),
        description=function.get("description") or "",
        parameters=[
            ToolParameter(
                name=name,
                type=prop.get("type", "unknown"),
                description=prop.get("description"),
                required=name in required,
            )
            for name, prop in (parameters.get("properties") or {}).items()
        ],
    )


@router.get(
    "/api/tools",
    response_model=ToolsResponse,
    summary="List tools",
    description="List the tools the chat model can call. Empty when tools are disabled.",
)
def list_tools(request: Request) -> ToolsResponse:
    if not request.app.state.app_config.tools.enabled:
        return ToolsResponse(tools=[])
    registry = request.app.state.registry
    return ToolsResponse(tools=[describe_tool(schema) for schema in registry.tool_schemas()])
