import asyncio
import os
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import ToolExecutionError
from ..memory.store import ActionStatus
from ..utils.helpers import truncate_tail
from ..utils.logging import Icons, pretty_log

PREVIEW_LIMIT = 500


@dataclass
class WriteOutcome:
    status: str
    message: str


def _resolve(filepath: str) -> Path:
    return Path(os.path.expanduser(str(filepath)))


async def tool_read_file(filepath: str, max_size: int):
    pretty_log("File Read", filepath, icon=Icons.TOOL_FILE_R)
    path = _resolve(filepath)
    if not path.exists():
        raise ToolExecutionError("read_file", f"File not found: {filepath}")
    if not path.is_file():
        raise ToolExecutionError("read_file", f"Not a regular file: {filepath}")
    size = path.stat().st_size
    if size > max_size:
        raise ToolExecutionError(
            "read_file",
            f"File is too large to read directly ({size} bytes, limit {max_size}). Use run_bash_command with head, tail or grep.",
        )
    return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")


async def tool_list_directory(path: str):
    pretty_log("Directory List", path, icon=Icons.TOOL_FILE_I)
    target = _resolve(path)
    if not target.exists():
        raise ToolExecutionError("list_directory", f"Directory not found: {path}")
    if not target.is_dir():
        raise ToolExecutionError("list_directory", f"Not a directory: {path}")

    def scan():
        with os.scandir(target) as it:
            return sorted(f"{e.name}/" if e.is_dir() else e.name for e in it)

    return await asyncio.to_thread(scan)


async def tool_write_file(filepath: str, content: str, ui, memory) -> WriteOutcome:
    """Previews the write, asks the user, then writes the whole file (parents created on demand)."""
    path = _resolve(filepath)
    action = "overwrite" if path.exists() else "create"
    ui.show_notice(f"Proposed file {action}: {path}\n--- preview ---\n{truncate_tail(content, PREVIEW_LIMIT)}\n---------------")
    if not await ui.confirm(f"Write {len(content)} characters to {path}?"):
        pretty_log("File Write Cancelled", str(path), level="WARNING", icon=Icons.STOP)
        memory.record_action("File Write", str(path), ActionStatus.CANCELLED)
        return WriteOutcome(ActionStatus.CANCELLED, "File write cancelled by user.")

    memory.record_action("File Write", str(path), ActionStatus.ATTEMPTED)
    pretty_log("File Write", str(path), icon=Icons.TOOL_FILE_W)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_text, content, encoding="utf-8")
    except OSError as e:
        memory.record_action("File Write", str(path), ActionStatus.FAILURE, str(e))
        raise ToolExecutionError("write_file", f"Could not write {path}: {e.strerror or e}") from e

    memory.record_action("File Write", str(path), ActionStatus.SUCCESS)
    return WriteOutcome(ActionStatus.SUCCESS, f"Wrote {len(content)} characters to '{path}'.")
