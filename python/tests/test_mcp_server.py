"""Tests for the MCP server tool dispatch (taskbridge/mcp/server.py)."""

import json
from unittest.mock import MagicMock, patch

import pytest

from taskbridge.exceptions import ConfigurationError
from taskbridge.models.task import TaskStatus
from taskbridge.tools import TOOL_REGISTRY


@pytest.fixture(autouse=True)
def _reset_container():
    from taskbridge import container
    container._container = None
    yield
    container._container = None


# --- Tool listing ---


async def test_list_tools_exposes_every_tool():
    from taskbridge.mcp.server import list_tools

    tools = await list_tools()
    assert len(tools) == 18
    assert {t.name for t in tools} == set(TOOL_REGISTRY)


async def test_input_schema_marks_required_fields():
    from taskbridge.mcp.tools import get_tool_definitions

    by_name = {t["name"]: t for t in get_tool_definitions()}
    schema = by_name["execute_task"]["inputSchema"]
    assert schema["type"] == "object"
    assert set(schema["required"]) == {"agent_id", "task_description"}
    assert "title" not in schema
    assert by_name["health"]["inputSchema"]["properties"] == {}


# --- Dispatch ---


async def test_unknown_tool_returns_error(deps):
    from taskbridge.mcp.server import dispatch_tool

    result = await dispatch_tool("nonexistent", {}, deps)
    assert result == {"error": "Unknown tool: nonexistent"}


async def test_invalid_arguments_return_error(deps):
    from taskbridge.mcp.server import dispatch_tool

    result = await dispatch_tool("task_control", {"task_id": "t", "control": "explode"}, deps)
    assert result["error"].startswith("Invalid arguments for task_control")


async def test_handler_errors_become_payloads(deps):
    from taskbridge.mcp.server import dispatch_tool

    result = await dispatch_tool("get_task_status", {"task_id": "missing"}, deps)
    assert result == {"error": "Task missing not found", "task_id": "missing"}


async def test_queue_full_payload(deps, registry):
    from taskbridge.mcp.server import dispatch_tool

    for i in range(2):
        registry.register(f"busy-{i}", "agent-a")
        registry.update_status(f"busy-{i}", TaskStatus.RUNNING)

    result = await dispatch_tool(
        "execute_task", {"agent_id": "agent-a", "task_description": "more"}, deps
    )
    assert result == {"error": "Task queue full", "code": "QUEUE_FULL", "status": 429}


# --- call_tool ---


async def test_call_tool_serializes_result(deps):
    from taskbridge.mcp.server import call_tool

    with patch("taskbridge.mcp.server.get_container", return_value=MagicMock(tools=deps)):
        result = await call_tool("health", {})

    assert len(result) == 1
    data = json.loads(result[0].text)
    assert data["status"] == "healthy"
    assert data["metrics"]["tracked_tasks"] == 0


class _UnconfiguredContainer:
    @property
    def tools(self):
        raise ConfigurationError("MATRIX_ACCESS_TOKEN is required")


async def test_call_tool_reports_configuration_errors():
    from taskbridge.mcp.server import call_tool

    with patch("taskbridge.mcp.server.get_container", return_value=_UnconfiguredContainer()):
        result = await call_tool("health", {})

    assert json.loads(result[0].text) == {"error": "MATRIX_ACCESS_TOKEN is required"}
