import json
import logging
from typing import Any, Dict, List, Optional

from ..core.errors import MemoryPathError, PathNotFound, PathNotObject, ReservedPathConflict
from ..utils.helpers import get_utc_timestamp, truncate_tail

logger = logging.getLogger("NivuusAgent")

ROOT_SENTINELS = {"", "/", ".", "root"}

RESERVED_SHAPES = {
    ("logs",): (dict, "an object"),
    ("logs", "actions"): (list, "a list"),
    ("system",): (dict, "an object"),
    ("system", "info"): (dict, "an object"),
    ("notes",): (str, "a string"),
}

class ActionStatus:
    ATTEMPTED = "Attempted"
    SUCCESS = "Success"
    FAILURE = "Failure"
    CANCELLED = "Cancelled"
    SUCCESS_NO_RESULTS = "Success (No Results)"

    ALL = (ATTEMPTED, SUCCESS, FAILURE, CANCELLED, SUCCESS_NO_RESULTS)

def empty_memory_document() -> Dict[str, Any]:
    return {"logs": {"actions": []}, "system": {"info": {}}, "notes": ""}

def normalize_path(path: Optional[str]) -> List[str]:
    """'a/b/c', 'a.b.c' and '/a/b/' all become ['a', 'b', 'c']; root sentinels become []."""
    if path is None:
        return []
    path = str(path).strip()
    if path in ROOT_SENTINELS:
        return []
    return [part for part in path.replace("/", ".").split(".") if part]

def _child(node: Any, key: str):
    """Returns (found, value) for one path segment."""
    if isinstance(node, dict):
        if key in node:
            return True, node[key]
        return False, None
    if isinstance(node, list) and key.isdigit():
        index = int(key)
        if index < len(node):
            return True, node[index]
    return False, None


class MemoryStore:
    """
    Path-addressed view over the agent's hierarchical memory document.

    The document is plain JSON-compatible data owned by this store; the
    persistence layer reads it through `document` and never keeps its own copy.
    Reserved branches: `logs.actions` (bounded action log), `system.info`
    (discovered host facts) and `notes` (free text).
    """

    def __init__(self, document: Optional[Dict[str, Any]] = None, max_actions: int = 30):
        self.document = document if document is not None else empty_memory_document()
        self.max_actions = max_actions
        self._ensure_reserved()

    def _ensure_reserved(self):
        logs = self.document.get("logs")
        if not isinstance(logs, dict):
            logs = self.document["logs"] = {}
        if not isinstance(logs.get("actions"), list):
            logs["actions"] = []
        system = self.document.get("system")
        if not isinstance(system, dict):
            system = self.document["system"] = {}
        if not isinstance(system.get("info"), dict):
            system["info"] = {}
        if not isinstance(self.document.get("notes"), str):
            self.document["notes"] = "" if self.document.get("notes") is None else str(self.document["notes"])

    # --- Path API ---

    def _resolve(self, parts: List[str]):
        node: Any = self.document
        for part in parts:
            found, node = _child(node, part)
            if not found:
                return False, None
        return True, node

    def get_keys(self, path: Optional[str] = "") -> List[str]:
        parts = normalize_path(path)
        found, node = self._resolve(parts)
        if not found or node is None:
            return []
        if isinstance(node, dict):
            return list(node.keys())
        if isinstance(node, list):
            return [str(i) for i in range(len(node))]
        raise PathNotObject(".".join(parts))

    def get_value(self, path: str) -> Any:
        parts = normalize_path(path)
        if not parts:
            return self.document
        found, node = self._resolve(parts)
        if not found:
            raise PathNotFound(path)
        return node

    def set_value(self, path: str, value: Any) -> str:
        parts = normalize_path(path)
        if not parts:
            raise MemoryPathError("", "A memory path is required to set a value.")
        self._check_reserved(parts, value)

        node: Any = self.document
        for i, part in enumerate(parts[:-1]):
            found, nxt = _child(node, part)
            if not found or not isinstance(nxt, (dict, list)):
                if found:
                    logger.warning(f"Memory: replacing scalar at {'.'.join(parts[:i + 1])} with an object")
                nxt = {}
                self._assign(node, part, nxt)
            node = nxt
        self._assign(node, parts[-1], value)
        return f"Memory value set at '{'.'.join(parts)}'."

    @staticmethod
    def _check_reserved(parts: List[str], value: Any):
        """Refuses writes that would leave a reserved branch with the wrong type."""
        depth = len(parts)
        for key, (kind, expected) in RESERVED_SHAPES.items():
            if depth > len(key):
                # Writing below a scalar branch would turn it into an object
                if tuple(parts[:len(key)]) == key and kind is str:
                    raise ReservedPathConflict(".".join(key), expected)
                continue
            if key[:depth] != tuple(parts):
                continue
            found, node = True, value
            for part in key[depth:]:
                found, node = _child(node, part)
                if not found:
                    break
            if found and not isinstance(node, kind):
                raise ReservedPathConflict(".".join(key), expected)

    @staticmethod
    def _assign(node: Any, key: str, value: Any):
        if isinstance(node, list) and key.isdigit():
            index = int(key)
            if index < len(node):
                node[index] = value
            elif index == len(node):
                node.append(value)
            else:
                raise PathNotObject(key)
        elif isinstance(node, dict):
            node[key] = value
        else:
            raise PathNotObject(key)

    # --- Action log ---

    @property
    def actions(self) -> List[Dict[str, Any]]:
        return self.document["logs"]["actions"]

    def record_action(self, action_type: str, target: str, status: str, error_msg: Optional[str] = None):
        try:
            entry = {
                "timestamp": get_utc_timestamp(),
                "actionType": action_type,
                "target": str(target),
                "status": status,
            }
            if error_msg:
                entry["errorMsg"] = str(error_msg)
            self._ensure_reserved()
            actions = self.actions
            actions.append(entry)
            while len(actions) > self.max_actions:
                actions.pop(0)
        except Exception as e:
            # Logging an action must never break the caller
            logger.error(f"Failed to record action {action_type}: {e}")

    # --- Summary ---

    def has_content(self) -> bool:
        return bool(self.document["system"]["info"] or self.document["notes"] or self.actions)

    def build_summary(self, recent: int = 5) -> Optional[str]:
        """Plain-text digest injected after the system prompt; never stored in the transcript."""
        if not self.has_content():
            return None
        lines = ["--- Persistent Memory Summary ---"]
        info = self.document["system"]["info"]
        if info:
            lines.append(f"System info: {json.dumps(info, ensure_ascii=False, default=str)}")
        if self.document["notes"]:
            lines.append(f"Notes: {self.document['notes']}")
        if self.actions:
            tail = self.actions[-recent:]
            lines.append(f"Recent actions ({len(tail)} of {len(self.actions)}):")
            for log in tail:
                time_part = str(log.get("timestamp", "")).partition("T")[2].split(".")[0] or "??:??:??"
                detail = str(log.get("target", ""))[:80]
                error_info = ""
                if log.get("status") == ActionStatus.FAILURE and log.get("errorMsg"):
                    error_info = f" (Err: {truncate_tail(str(log['errorMsg']), 50)})"
                lines.append(f"- [{time_part}] {log.get('actionType')} {log.get('status')}: {detail}{error_info}")
        lines.append("--- End of Memory Summary ---")
        return "\n".join(lines)
