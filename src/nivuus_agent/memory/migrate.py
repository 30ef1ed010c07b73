import argparse
import sys
from pathlib import Path

from ..config import AgentConfig
from ..utils.logging import Icons, pretty_log
from .persistence import migrate_memory_file


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Migrate a flat agent memory file to the hierarchical format")
    parser.add_argument("--memory-file", default=None, help="Defaults to the configured agent_memory.json")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    memory_file = Path(args.memory_file) if args.memory_file else AgentConfig().memory_file
    pretty_log("Memory Migration", str(memory_file), icon=Icons.MEM_MIGRATE)
    try:
        backup = migrate_memory_file(memory_file)
    except OSError as e:
        pretty_log("Migration Failed", str(e), level="ERROR", icon=Icons.FAIL)
        return 1
    if backup is None:
        pretty_log("Nothing To Do", "File missing or already hierarchical", icon=Icons.OK)
    else:
        pretty_log("Migration Done", f"Backup kept at {backup}", icon=Icons.OK)
    return 0


if __name__ == "__main__":
    sys.exit(main())
