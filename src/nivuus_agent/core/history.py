import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..utils.helpers import truncate_tail
from ..utils.logging import Icons, pretty_log

logger = logging.getLogger("NivuusAgent")

Message = Dict[str, Any]
Summarizer = Callable[[str], Awaitable[str]]

SUMMARY_PREFIX = "[SUMMARY OF EARLIER MESSAGES]"
CONDENSED_PREFIX = "[CONDENSED HISTORY]"


def has_tool_calls(msg: Any) -> bool:
    return (
        isinstance(msg, dict)
        and msg.get("role") == "assistant"
        and isinstance(msg.get("tool_calls"), list)
        and len(msg["tool_calls"]) > 0
    )


def is_system_prompt(msg: Any) -> bool:
    return isinstance(msg, dict) and msg.get("role") == "system" and isinstance(msg.get("content"), str) and bool(msg["content"])


def _tool_call_id(tool_call: Any) -> Optional[str]:
    return tool_call.get("id") if isinstance(tool_call, dict) else None


# --- Sanitizer ---

def sanitize_history(messages: List[Message]) -> List[Message]:
    """
    Keeps an assistant tool request only when it is immediately followed by one
    tool message per call, in call order, with matching ids. Incomplete requests
    are dropped together with the partial results that follow them, and any tool
    message not claimed by such a block is dropped as an orphan.
    """
    cleaned: List[Message] = []
    i = 0
    n = len(messages)
    while i < n:
        msg = messages[i]
        if not isinstance(msg, dict):
            i += 1
            continue

        if has_tool_calls(msg):
            ids = [_tool_call_id(tc) for tc in msg["tool_calls"]]
            following = messages[i + 1:i + 1 + len(ids)]
            complete = len(following) == len(ids) and all(
                tid
                and isinstance(result, dict)
                and result.get("role") == "tool"
                and result.get("tool_call_id") == tid
                for result, tid in zip(following, ids)
            )
            if complete:
                cleaned.append(msg)
                cleaned.extend(following)
                i += 1 + len(ids)
                continue
            pretty_log("History Repair", f"Dropped incomplete tool request ({len(ids)} calls)", level="WARNING", icon=Icons.WARN)
            i += 1
            while i < n and isinstance(messages[i], dict) and messages[i].get("role") == "tool":
                i += 1
            continue

        if msg.get("role") == "tool":
            logger.debug(f"Dropped orphan tool message {msg.get('tool_call_id')}")
            i += 1
            continue

        cleaned.append(msg)
        i += 1
    return cleaned


# --- Compactor ---

def format_for_summary(messages: List[Message]) -> str:
    lines = []
    for msg in messages:
        role = str(msg.get("role", "unknown"))
        content = msg.get("content")
        text = content if isinstance(content, str) else "non-text content"
        if role == "tool":
            lines.append(f"Tool [{msg.get('name') or 'unnamed'}]: {truncate_tail(text, 100)}")
        elif has_tool_calls(msg):
            calls = []
            for tc in msg["tool_calls"]:
                fn = tc.get("function", {}) if isinstance(tc, dict) else {}
                calls.append(f"{fn.get('name', '?')}({truncate_tail(str(fn.get('arguments', '')), 50)})")
            lines.append(f"Assistant calls: {', '.join(calls)}")
        else:
            lines.append(f"{role.capitalize()}: {truncate_tail(text, 150)}")
    return "\n".join(lines)


def fallback_summary(messages: List[Message]) -> str:
    counts: Dict[str, int] = {}
    for msg in messages:
        role = str(msg.get("role", "unknown"))
        counts[role] = counts.get(role, 0) + 1
    by_role = ", ".join(f"{count} {role}" for role, count in sorted(counts.items()))
    return f"{CONDENSED_PREFIX} {len(messages)} earlier messages ({by_role})."


async def summarize_messages(messages: List[Message], summarize: Optional[Summarizer] = None) -> str:
    if not messages:
        return f"{CONDENSED_PREFIX} No earlier history."
    if summarize is not None:
        try:
            text = await summarize(format_for_summary(messages))
            if text and text.strip():
                return f"{SUMMARY_PREFIX} {text.strip()}"
        except Exception as e:
            # Compaction must not fail because the summary call did
            pretty_log("Summary Failed", f"{type(e).__name__}: {e}", level="WARNING", icon=Icons.WARN)
    return fallback_summary(messages)


async def compact_history(
    messages: List[Message],
    max_length: int,
    system_prompt: str,
    summarize: Optional[Summarizer] = None,
    window: int = 10,
) -> List[Message]:
    """
    Folds the oldest non-system messages into one synthetic user message until
    the transcript fits in `max_length`. Result: [system, summary, ...newer].
    A window never ends between a tool request and its results.
    """
    if len(messages) <= max_length:
        return messages
    if max_length < 2:
        raise ValueError("max_length must leave room for the system prompt and a summary")

    first = messages[0] if messages else None
    if is_system_prompt(first):
        system_msg, rest = first, list(messages[1:])
    else:
        system_msg = {"role": "system", "content": system_prompt}
        rest = list(messages[1:]) if isinstance(first, dict) and first.get("role") == "system" else list(messages)

    while len(rest) + 1 > max_length and len(rest) >= 2:
        end = min(window, len(rest))
        while end < len(rest) and isinstance(rest[end], dict) and rest[end].get("role") == "tool":
            end += 1
        chunk = rest[:end]
        pretty_log("History Compaction", f"Summarizing {len(chunk)} oldest messages", icon=Icons.BRAIN_SUM)
        summary = await summarize_messages(chunk, summarize)
        rest = [{"role": "user", "content": summary}] + rest[end:]

    return [system_msg] + rest


# --- Startup repair & wire format ---

def repair_transcript(messages: List[Message], system_prompt: str) -> List[Message]:
    """Drops a dangling tool request left by an interrupted run and refreshes the system prompt."""
    transcript = [m for m in messages if isinstance(m, dict)] if isinstance(messages, list) else []
    if transcript and has_tool_calls(transcript[-1]):
        pretty_log("History Repair", "Removed unanswered tool request from last run", level="WARNING", icon=Icons.WARN)
        transcript.pop()

    system_msg = {"role": "system", "content": system_prompt}
    if transcript and transcript[0].get("role") == "system":
        transcript[0] = system_msg
    else:
        transcript.insert(0, system_msg)
    return transcript


def to_wire_messages(messages: List[Message]) -> List[Message]:
    wire = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content")
        if has_tool_calls(msg):
            wire.append({"role": "assistant", "content": content, "tool_calls": msg["tool_calls"]})
        elif role == "tool" and msg.get("tool_call_id"):
            out = {"role": "tool", "content": "null" if content is None else str(content), "tool_call_id": msg["tool_call_id"]}
            if msg.get("name"):
                out["name"] = msg["name"]
            wire.append(out)
        elif role in ("system", "user", "assistant") and content is not None:
            wire.append({"role": role, "content": str(content)})
    return wire
