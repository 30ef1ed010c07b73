import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..core.errors import AgentError, ToolArgumentError, ToolArgumentParseError
from ..memory.store import ActionStatus, MemoryStore
from ..utils.helpers import truncate_middle, truncate_tail
from ..utils.logging import Icons, pretty_log
from .registry import ToolSpec

logger = logging.getLogger("NivuusAgent")

TARGET_LIMIT = 200


@dataclass
class ToolResult:
    name: str
    content: str
    status: str

    @property
    def ok(self) -> bool:
        return self.status in (ActionStatus.SUCCESS, ActionStatus.SUCCESS_NO_RESULTS)


def serialize_result(value: Any) -> str:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, ensure_ascii=False, default=str)


def parse_arguments(name: str, arguments_json: Any) -> Dict[str, Any]:
    if isinstance(arguments_json, dict):
        return arguments_json
    raw = "" if arguments_json is None else str(arguments_json)
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentParseError(name, raw, str(e)) from e
    if not isinstance(parsed, dict):
        raise ToolArgumentParseError(name, raw, f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def describe_validation_error(name: str, error: ValidationError) -> str:
    missing = [".".join(str(p) for p in e["loc"]) for e in error.errors() if e["type"] in ("missing", "string_too_short")]
    if missing:
        return f"Missing required parameter(s) for {name}: {', '.join(missing)}"
    first = error.errors()[0]
    field = ".".join(str(p) for p in first["loc"]) or "arguments"
    return f"Invalid value for {name}.{field}: {first['msg']}"


class ToolDispatcher:
    """
    Turns one model tool call into one tool message payload.

    Every call records an `Attempted` action followed by exactly one terminal
    entry. Failures of any kind come back as a `ToolResult` whose content is
    bounded; nothing raised by a tool reaches the caller.
    """

    def __init__(self, specs: Dict[str, ToolSpec], memory: MemoryStore, max_feedback_len: int = 40000, max_error_len: int = 300):
        self.specs = specs
        self.memory = memory
        self.max_feedback_len = max_feedback_len
        self.max_error_len = max_error_len
        self.confirmation_pending = False
        self.pending_tool: Optional[str] = None

    async def dispatch(self, name: str, arguments_json: Any) -> ToolResult:
        action_type = f"Tool: {name}"
        raw = arguments_json if isinstance(arguments_json, str) else json.dumps(arguments_json, default=str)
        target = truncate_tail(raw or "{}", TARGET_LIMIT)
        self.memory.record_action(action_type, target, ActionStatus.ATTEMPTED)
        pretty_log("Tool Call", f"{name} {target}", icon=Icons.TOOL_CALL)

        spec = self.specs.get(name)
        if spec is None:
            return self._fail(name, action_type, target, f"Error: Tool '{name}' not found.")

        try:
            args = spec.args_model.model_validate(parse_arguments(name, arguments_json))
        except ToolArgumentParseError as e:
            return self._fail(name, action_type, target, f"Error: {e}. Raw arguments: {truncate_tail(e.raw_arguments, TARGET_LIMIT)}")
        except ValidationError as e:
            error = ToolArgumentError(name, describe_validation_error(name, e))
            return self._fail(name, action_type, target, f"Error: {error}")

        if spec.requires_confirmation:
            self.confirmation_pending = True
            self.pending_tool = name
        try:
            result = await spec.handler(args)
        except AgentError as e:
            return self._fail(name, action_type, target, f"Error executing tool {name}: {truncate_tail(str(e), self.max_error_len)}")
        except Exception as e:
            logger.debug(f"Tool {name} raised", exc_info=True)
            return self._fail(name, action_type, target, f"Error executing tool {name}: {type(e).__name__}", detail=str(e))
        finally:
            self.confirmation_pending = False
            self.pending_tool = None

        status = self._terminal_status(result)
        self.memory.record_action(action_type, target, status)
        content = truncate_middle(serialize_result(result), self.max_feedback_len)
        pretty_log("Tool Result", f"{name}: {status}", icon=Icons.OK if status != ActionStatus.FAILURE else Icons.FAIL)
        return ToolResult(name, content, status)

    @staticmethod
    def _terminal_status(result: Any) -> str:
        status = getattr(result, "status", None)
        if status in (ActionStatus.CANCELLED, ActionStatus.FAILURE):
            return status
        if isinstance(result, list) and not result:
            return ActionStatus.SUCCESS_NO_RESULTS
        return ActionStatus.SUCCESS

    def _fail(self, name: str, action_type: str, target: str, message: str, detail: Optional[str] = None) -> ToolResult:
        self.memory.record_action(action_type, target, ActionStatus.FAILURE, truncate_tail(detail or message, self.max_error_len))
        pretty_log("Tool Failed", message, level="ERROR", icon=Icons.FAIL)
        return ToolResult(name, message, ActionStatus.FAILURE)
