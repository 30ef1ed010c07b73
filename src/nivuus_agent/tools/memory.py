from typing import Any, Optional

from ..memory.store import MemoryStore
from ..utils.logging import Icons, pretty_log


async def tool_get_memory_keys(memory: MemoryStore, path: Optional[str] = ""):
    pretty_log("Memory Keys", path or "root", icon=Icons.MEM_READ)
    return memory.get_keys(path)


async def tool_get_memory_value(memory: MemoryStore, path: str):
    pretty_log("Memory Read", path, icon=Icons.MEM_READ)
    return memory.get_value(path)


async def tool_set_memory_value(memory: MemoryStore, path: str, value: Any):
    pretty_log("Memory Write", path, icon=Icons.MEM_SAVE)
    return memory.set_value(path, value)
