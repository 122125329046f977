"""
MCP tool definitions.

Input schemas are generated from the pydantic parameter models so the
published schema and the validation applied in ``call_tool`` never drift.
"""

from typing import Any, Dict, List

from taskbridge.tools import TOOL_REGISTRY


def _input_schema(spec) -> Dict[str, Any]:
    schema = spec.params.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema


def get_tool_definitions() -> List[Dict[str, Any]]:
    """Return all tool definitions in MCP format."""
    return [
        {"name": spec.name, "description": spec.description, "inputSchema": _input_schema(spec)}
        for spec in TOOL_REGISTRY.values()
    ]
