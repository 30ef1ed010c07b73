import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .store import empty_memory_document
from ..utils.helpers import get_file_timestamp
from ..utils.logging import Icons, pretty_log

logger = logging.getLogger("NivuusAgent")

LEGACY_KEYS = ("action_log", "system_info")
HISTORY_KEY = "history"
MEMORY_KEY = "memory"


def load_json(path: Path, default: Any) -> Any:
    """Missing, unreadable or corrupt files fall back to a copy of `default`."""
    path = Path(path)
    if not path.exists():
        return copy.deepcopy(default)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        pretty_log("Load Failed", f"{path.name}: {e}. Using defaults.", level="WARNING", icon=Icons.WARN)
        return copy.deepcopy(default)
    if default is not None and not isinstance(data, type(default)):
        pretty_log("Load Failed", f"{path.name}: unexpected {type(data).__name__}. Using defaults.", level="WARNING", icon=Icons.WARN)
        return copy.deepcopy(default)
    return data


def save_json(path: Path, value: Any):
    """Pretty-printed, written to a sibling temp file then swapped in."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(json.dumps(value, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    os.replace(tmp_path, path)


# --- Memory document shape ---

def is_legacy_memory(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and any(k in data for k in LEGACY_KEYS)
        and "logs" not in data
        and "system" not in data
    )


def upgrade_memory_document(data: Any) -> Dict[str, Any]:
    """
    Load-time translation into the canonical hierarchical shape.
    Legacy flat fields only seed the canonical branches when those are absent;
    the mirrors themselves are never kept in memory.
    """
    if not isinstance(data, dict):
        return empty_memory_document()

    doc = {k: v for k, v in data.items() if k not in LEGACY_KEYS}
    logs = doc.get("logs") if isinstance(doc.get("logs"), dict) else {}
    system = doc.get("system") if isinstance(doc.get("system"), dict) else {}

    if not isinstance(logs.get("actions"), list):
        legacy_log = data.get("action_log")
        logs["actions"] = list(legacy_log) if isinstance(legacy_log, list) else []
    if not isinstance(system.get("info"), dict):
        legacy_info = data.get("system_info")
        system["info"] = dict(legacy_info) if isinstance(legacy_info, dict) else {}

    doc["logs"] = logs
    doc["system"] = system
    notes = doc.get("notes")
    doc["notes"] = notes if isinstance(notes, str) else ("" if notes is None else str(notes))
    return doc


def to_persisted_memory(document: Dict[str, Any]) -> Dict[str, Any]:
    """Save-time shape: canonical branches plus read-only legacy mirrors for older readers."""
    out = dict(document)
    out["action_log"] = list(document.get("logs", {}).get("actions", []))
    out["system_info"] = dict(document.get("system", {}).get("info", {}))
    return out


def migrate_memory_file(memory_file: Path) -> Optional[Path]:
    """
    Rewrites a legacy flat memory file into the hierarchical shape.
    Returns the backup path when a migration happened, None otherwise.
    """
    memory_file = Path(memory_file)
    if not memory_file.exists():
        return None
    raw = memory_file.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not is_legacy_memory(data):
        return None

    backup_path = memory_file.with_name(f"{memory_file.name}.backup-{get_file_timestamp()}")
    backup_path.write_text(raw, encoding="utf-8")
    pretty_log("Memory Backup", str(backup_path), icon=Icons.SYSTEM_SAVE)

    migrated = upgrade_memory_document(data)
    save_json(memory_file, to_persisted_memory(migrated))
    pretty_log("Memory Migrated", f"{memory_file.name} -> hierarchical format", icon=Icons.MEM_MIGRATE)
    return backup_path


class JsonStorage:
    """Persistence collaborator: fixed storage keys mapped to JSON files."""

    def __init__(self, history_file: Path, memory_file: Path):
        self.locations = {HISTORY_KEY: Path(history_file), MEMORY_KEY: Path(memory_file)}

    def path_for(self, key: str) -> Path:
        if key not in self.locations:
            raise KeyError(f"Unknown storage key: {key}")
        return self.locations[key]

    def load(self, key: str, default: Any) -> Any:
        return load_json(self.path_for(key), default)

    def save(self, key: str, value: Any):
        save_json(self.path_for(key), value)

    def load_memory(self) -> Dict[str, Any]:
        return upgrade_memory_document(self.load(MEMORY_KEY, empty_memory_document()))

    def save_memory(self, document: Dict[str, Any]):
        self.save(MEMORY_KEY, to_persisted_memory(document))

    def load_history(self, default):
        return self.load(HISTORY_KEY, default)

    def save_history(self, transcript):
        self.save(HISTORY_KEY, transcript)
