import json
import pytest
from unittest.mock import MagicMock

from nivuus_agent.core.agent import AgentContext, ConversationLoop, LoopState
from nivuus_agent.core.errors import ModelAuthError, ModelRateLimitError, ModelTransportError
from nivuus_agent.core.prompts import DEFAULT_INSTRUCTION, MEMORY_REMINDER

def tool_reply(*calls):
    return {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {"id": cid, "type": "function", "function": {"name": name, "arguments": json.dumps(args)}}
            for cid, name, args in calls
        ],
    }

@pytest.fixture
def make_loop(config, storage, memory, mock_llm, mock_ui, system_message):
    def factory(transcript=None):
        context = AgentContext(config, storage, memory, mock_llm, mock_ui)
        return ConversationLoop(context, transcript if transcript is not None else [system_message])
    return factory

@pytest.mark.asyncio
async def test_fresh_transcript_calls_model_first(make_loop, mock_llm, mock_ui):
    loop = make_loop()
    assert loop.initial_state() == LoopState.CALLING_MODEL
    code = await loop.run()
    assert code == 0
    mock_llm.complete.assert_awaited_once()
    mock_ui.show_assistant.assert_called_with("Test Response")
    assert loop.transcript[-1] == {"role": "assistant", "content": "Test Response"}

@pytest.mark.asyncio
async def test_tool_round_goes_back_to_model(make_loop, mock_llm, memory):
    mock_llm.complete.side_effect = [
        tool_reply(("c1", "set_memory_value", {"path": "system/info/os", "value": "linux"}),
                   ("c2", "get_memory_keys", {"path": "system/info"})),
        {"role": "assistant", "content": "Saved."},
    ]
    loop = make_loop()
    await loop.run()
    roles = [m["role"] for m in loop.transcript]
    assert roles == ["system", "assistant", "tool", "tool", "assistant"]
    assert [m["tool_call_id"] for m in loop.transcript[2:4]] == ["c1", "c2"]
    assert json.loads(loop.transcript[3]["content"]) == ["os"]
    assert memory.get_value("system.info.os") == "linux"
    assert any(a["actionType"] == "Tool Call Decision" for a in memory.actions)

@pytest.mark.asyncio
async def test_empty_input_uses_default_instruction(make_loop, mock_llm, mock_ui, system_message):
    mock_ui.prompt_text.side_effect = ["", "quit"]
    loop = make_loop([system_message, {"role": "user", "content": "hi"}, {"role": "assistant", "content": "Hello"}])
    await loop.run()
    assert {"role": "user", "content": DEFAULT_INSTRUCTION} in loop.transcript

@pytest.mark.asyncio
async def test_numbered_reply_becomes_choice_menu(make_loop, mock_ui, system_message):
    reply = "Pick one:\n1. Restart nginx\n2. Show logs"
    mock_ui.prompt_choice.side_effect = ["Show logs"]
    mock_ui.prompt_text.side_effect = ["exit"]
    loop = make_loop([system_message, {"role": "user", "content": "hi"}, {"role": "assistant", "content": reply}])
    await loop.run()
    mock_ui.prompt_choice.assert_awaited_once_with("Choose an option", ["Restart nginx", "Show logs"])
    assert {"role": "user", "content": "Show logs"} in loop.transcript

@pytest.mark.asyncio
async def test_end_of_input_terminates(make_loop, mock_ui, mock_llm, system_message):
    mock_ui.prompt_text.side_effect = EOFError
    loop = make_loop([system_message, {"role": "user", "content": "hi"}, {"role": "assistant", "content": "ok"}])
    assert await loop.run() == 0
    mock_llm.complete.assert_not_called()

@pytest.mark.asyncio
async def test_memory_summary_is_injected_but_not_stored(make_loop, mock_llm, memory):
    memory.set_value("system/info/os", "debian")
    loop = make_loop()
    await loop.run()
    sent = mock_llm.complete.await_args.args[0]
    assert sent[1]["role"] == "user"
    assert sent[1]["content"].startswith(MEMORY_REMINDER)
    assert "debian" in sent[1]["content"]
    assert all(MEMORY_REMINDER not in str(m.get("content")) for m in loop.transcript)

@pytest.mark.asyncio
async def test_no_summary_for_empty_memory(make_loop, system_message):
    loop = make_loop()
    assert loop.build_request_messages() == [system_message]

@pytest.mark.asyncio
async def test_transport_error_rolls_back_and_retries(make_loop, mock_llm, memory, system_message):
    mock_llm.complete.side_effect = [
        tool_reply(("c1", "get_memory_keys", {})),
        ModelTransportError("API error (HTTP 500): upstream", 500),
        {"role": "assistant", "content": "recovered"},
    ]
    loop = make_loop([system_message, {"role": "user", "content": "check"}])
    loop.state = LoopState.CALLING_MODEL
    await loop.call_model()
    await loop.execute_tools()
    await loop.call_model()
    # Work done after the last user message is discarded before the retry
    assert loop.transcript == [system_message, {"role": "user", "content": "check"}]
    assert loop.state == LoopState.CALLING_MODEL
    failure = [a for a in memory.actions if a["actionType"] == "System"][-1]
    assert failure["status"] == "Failure"
    assert failure["target"] == "Model API Error: 500"
    await loop.call_model()
    assert loop.transcript[-1]["content"] == "recovered"

@pytest.mark.asyncio
async def test_auth_error_is_fatal(make_loop, mock_llm):
    mock_llm.complete.side_effect = ModelAuthError("Authentication failed (HTTP 401)", 401)
    loop = make_loop()
    assert await loop.run() == 1
    assert loop.state == LoopState.TERMINATED
    mock_llm.complete.assert_awaited_once()

@pytest.mark.asyncio
async def test_repeated_failures_fall_back_to_user(make_loop, mock_llm, mock_ui, config, system_message):
    mock_llm.complete.side_effect = ModelRateLimitError("Rate limit reached (HTTP 429)", 429)
    loop = make_loop([system_message, {"role": "user", "content": "go"}])
    loop.state = LoopState.CALLING_MODEL
    for _ in range(config.max_consecutive_errors):
        assert loop.state == LoopState.CALLING_MODEL
        await loop.call_model()
    assert loop.state == LoopState.AWAITING_USER
    assert mock_llm.complete.await_count == config.max_consecutive_errors

@pytest.mark.asyncio
async def test_dangling_request_is_resumed(make_loop, mock_llm, system_message):
    transcript = [system_message, {"role": "user", "content": "x"}, tool_reply(("c9", "get_memory_keys", {}))]
    loop = make_loop(transcript)
    assert loop.initial_state() == LoopState.EXECUTING_TOOLS
    await loop.run()
    assert loop.transcript[3]["tool_call_id"] == "c9"

@pytest.mark.asyncio
async def test_state_is_saved_on_exit(make_loop, storage):
    loop = make_loop()
    await loop.run()
    saved = storage.load_history([])
    assert saved[-1]["content"] == "Test Response"
    assert "action_log" in storage.load("memory", {})

def test_emergency_flush_is_synchronous(make_loop, storage, memory):
    loop = make_loop()
    loop.transcript.append({"role": "user", "content": "pending"})
    memory.set_value("notes", "flushed")
    loop.emergency_flush("SIGTERM")
    assert storage.load_history([])[-1]["content"] == "pending"
    assert storage.load_memory()["notes"] == "flushed"

def test_emergency_flush_swallows_write_errors(make_loop):
    loop = make_loop()
    loop.context.storage = MagicMock()
    loop.context.storage.save_history.side_effect = OSError("disk full")
    loop.emergency_flush("SIGHUP")
    loop.context.storage.save_memory.assert_called_once()
