from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Type

from pydantic import BaseModel

from .schemas import (
    GetMemoryKeys, GetMemoryValue, ListDirectory, ReadFile, RunBashCommand,
    SetMemoryValue, WebSearch, WriteFile,
)
from .file_system import tool_list_directory, tool_read_file, tool_write_file
from .memory import tool_get_memory_keys, tool_get_memory_value, tool_set_memory_value
from .search import tool_web_search

TOOL_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "run_bash_command": RunBashCommand,
    "read_file": ReadFile,
    "list_directory": ListDirectory,
    "write_file": WriteFile,
    "web_search": WebSearch,
    "get_memory_keys": GetMemoryKeys,
    "get_memory_value": GetMemoryValue,
    "set_memory_value": SetMemoryValue,
}

CONFIRMATION_TOOLS = {"run_bash_command", "write_file"}


@dataclass
class ToolSpec:
    name: str
    args_model: Type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[Any]]
    requires_confirmation: bool = False


def _strip_titles(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _strip_titles(v) for k, v in node.items() if k != "title"}
    if isinstance(node, list):
        return [_strip_titles(v) for v in node]
    return node


def tool_definition(name: str, model: Type[BaseModel]) -> Dict[str, Any]:
    schema = _strip_titles(model.model_json_schema(by_alias=True))
    description = schema.pop("description", "")
    parameters = {
        "type": "object",
        "properties": schema.get("properties", {}),
        "required": schema.get("required", []),
    }
    return {"type": "function", "function": {"name": name, "description": description, "parameters": parameters}}


TOOL_DEFINITIONS: List[Dict[str, Any]] = [tool_definition(name, model) for name, model in TOOL_SCHEMAS.items()]


def build_tool_specs(context) -> Dict[str, ToolSpec]:
    cfg = context.config
    handlers = {
        "run_bash_command": lambda a: context.executor.execute(a.command, a.purpose, a.timeout_ms),
        "read_file": lambda a: tool_read_file(a.filepath, max_size=cfg.max_direct_read_size),
        "list_directory": lambda a: tool_list_directory(a.path),
        "write_file": lambda a: tool_write_file(a.filepath, a.content, ui=context.ui, memory=context.memory),
        "web_search": lambda a: tool_web_search(a.query, max_results=cfg.max_search_results),
        "get_memory_keys": lambda a: tool_get_memory_keys(context.memory, a.path),
        "get_memory_value": lambda a: tool_get_memory_value(context.memory, a.path),
        "set_memory_value": lambda a: tool_set_memory_value(context.memory, a.path, a.value),
    }
    return {
        name: ToolSpec(name, TOOL_SCHEMAS[name], handler, name in CONFIRMATION_TOOLS)
        for name, handler in handlers.items()
    }
