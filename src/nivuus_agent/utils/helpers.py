import datetime
import re
from typing import List

NUMBERED_LINE_RE = re.compile(r'^\d+\.')
NUMBERED_PREFIX_RE = re.compile(r'^\d+\.\s*')

def get_utc_timestamp():
    """Returns strict ISO8601 UTC timestamp."""
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")

def get_file_timestamp():
    """Millisecond epoch suffix used for backup copies."""
    return str(int(datetime.datetime.now().timestamp() * 1000))

def truncate_middle(text: str, limit: int, marker: str = "\n...[TRUNCATED]...\n") -> str:
    if len(text) <= limit:
        return text
    half = max(limit // 2, 1)
    return text[:half] + marker + text[-half:]

def truncate_tail(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."

def extract_numbered_choices(text: str) -> List[str]:
    """
    Returns the last contiguous run of "1. foo" style lines in `text`,
    stripped of their numbering. Blank lines are ignored; any other line
    ends the current run.
    """
    if not text:
        return []
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]

    current: List[str] = []
    best: List[str] = []
    for line in lines:
        if NUMBERED_LINE_RE.match(line):
            current.append(NUMBERED_PREFIX_RE.sub("", line, count=1))
        elif current:
            best, current = current, []
    if current:
        best = current
    return best
