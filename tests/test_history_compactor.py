import asyncio
import pytest
from unittest.mock import AsyncMock

from nivuus_agent.core.history import (
    CONDENSED_PREFIX, SUMMARY_PREFIX, compact_history, fallback_summary, format_for_summary,
)

def chat(n):
    msgs = []
    for i in range(n):
        role = "user" if i % 2 == 0 else "assistant"
        msgs.append({"role": role, "content": f"message {i}"})
    return msgs

@pytest.mark.asyncio
async def test_short_transcript_untouched(system_message):
    transcript = [system_message] + chat(10)
    assert await compact_history(transcript, 100, "sys") is transcript

@pytest.mark.asyncio
async def test_101_messages_become_92(system_message):
    transcript = [system_message] + chat(100)
    summarize = AsyncMock(return_value="the gist")
    result = await compact_history(transcript, 100, "sys", summarize=summarize)
    assert len(result) == 92
    assert result[0] is system_message
    assert result[1] == {"role": "user", "content": f"{SUMMARY_PREFIX} the gist"}
    assert result[2:] == transcript[11:]
    summarize.assert_awaited_once()

@pytest.mark.asyncio
async def test_summary_failure_falls_back_to_counts(system_message):
    transcript = [system_message] + chat(100)
    summarize = AsyncMock(side_effect=RuntimeError("provider down"))
    result = await compact_history(transcript, 100, "sys", summarize=summarize)
    assert result[1]["content"] == f"{CONDENSED_PREFIX} 10 earlier messages (5 assistant, 5 user)."

@pytest.mark.asyncio
async def test_blank_summary_falls_back(system_message):
    result = await compact_history([system_message] + chat(100), 100, "sys", summarize=AsyncMock(return_value="  "))
    assert result[1]["content"].startswith(CONDENSED_PREFIX)

@pytest.mark.asyncio
async def test_missing_system_prompt_is_recreated():
    result = await compact_history(chat(120), 100, "fresh prompt")
    assert result[0] == {"role": "system", "content": "fresh prompt"}
    assert len(result) <= 100

@pytest.mark.asyncio
async def test_malformed_system_prompt_is_replaced():
    transcript = [{"role": "system", "content": None}] + chat(100)
    result = await compact_history(transcript, 100, "fresh prompt")
    assert result[0] == {"role": "system", "content": "fresh prompt"}
    assert result[2:] == transcript[11:]

@pytest.mark.asyncio
@pytest.mark.parametrize("size,cap", [(150, 100), (300, 100), (40, 12), (25, 2)])
async def test_result_is_bounded(system_message, size, cap):
    result = await compact_history([system_message] + chat(size), cap, "sys")
    assert len(result) <= cap
    assert result[0]["role"] == "system"

@pytest.mark.asyncio
async def test_window_does_not_split_tool_results(system_message):
    transcript = [system_message] + chat(9)
    transcript.append({"role": "assistant", "content": None, "tool_calls": [
        {"id": "a", "type": "function", "function": {"name": "read_file", "arguments": "{}"}},
        {"id": "b", "type": "function", "function": {"name": "read_file", "arguments": "{}"}},
    ]})
    transcript.append({"role": "tool", "tool_call_id": "a", "content": "1"})
    transcript.append({"role": "tool", "tool_call_id": "b", "content": "2"})
    transcript += chat(90)
    result = await compact_history(transcript, 100, "sys")
    assert all(m.get("role") != "tool" for m in result[2:3])
    assert result[2] == transcript[13]

def test_fallback_summary_counts():
    assert fallback_summary(chat(3)) == f"{CONDENSED_PREFIX} 3 earlier messages (1 assistant, 2 user)."

def test_format_for_summary_lines():
    text = format_for_summary([
        {"role": "user", "content": "x" * 200},
        {"role": "tool", "name": "web_search", "content": "results"},
    ])
    lines = text.splitlines()
    assert lines[0] == "User: " + "x" * 150 + "..."
    assert lines[1] == "Tool [web_search]: results"

def test_compact_rejects_tiny_cap(system_message):
    with pytest.raises(ValueError):
        asyncio.run(compact_history([system_message] + chat(5), 1, "sys"))
