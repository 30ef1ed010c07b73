import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ModelError, ModelRateLimitError, NetworkError, classify_model_error
from .history import compact_history, has_tool_calls, sanitize_history, to_wire_messages
from .prompts import DEFAULT_INSTRUCTION, MEMORY_REMINDER, build_system_prompt
from ..memory.store import ActionStatus
from ..tools.dispatcher import ToolDispatcher
from ..tools.execute import CommandExecutor
from ..tools.registry import TOOL_DEFINITIONS, build_tool_specs
from ..utils.helpers import extract_numbered_choices
from ..utils.logging import Icons, pretty_log

logger = logging.getLogger("NivuusAgent")

QUIT_COMMANDS = {"quit", "exit"}


class LoopState(Enum):
    AWAITING_USER = "AwaitingUser"
    CALLING_MODEL = "CallingModel"
    EXECUTING_TOOLS = "ExecutingTools"
    TERMINATED = "Terminated"


class AgentContext:
    def __init__(self, config, storage, memory, llm_client, ui):
        self.config = config
        self.storage = storage
        self.memory = memory
        self.llm_client = llm_client
        self.ui = ui
        self.executor = CommandExecutor(
            memory, ui,
            default_timeout_ms=config.command_timeout_ms,
            max_output_length=config.max_command_output_length,
        )
        self.tool_specs = build_tool_specs(self)
        self.dispatcher = ToolDispatcher(
            self.tool_specs, memory,
            max_feedback_len=config.max_feedback_len,
            max_error_len=config.max_tool_error_len,
        )


class ConversationLoop:
    """
    Turn-taking between the user, the model and the tools.

    The transcript is only mutated here. Tool results are appended as one block
    after every requested call has run, so a request is never stored next to a
    partial set of results.
    """

    def __init__(self, context: AgentContext, transcript: List[Dict[str, Any]]):
        self.context = context
        self.transcript = transcript
        self.state = LoopState.AWAITING_USER
        self.consecutive_errors = 0
        self.exit_code = 0

    @property
    def config(self):
        return self.context.config

    @property
    def memory(self):
        return self.context.memory

    def initial_state(self) -> LoopState:
        if self.transcript and has_tool_calls(self.transcript[-1]):
            return LoopState.EXECUTING_TOOLS
        if len(self.transcript) <= 1:
            return LoopState.CALLING_MODEL
        return LoopState.AWAITING_USER

    async def run(self) -> int:
        self.state = self.initial_state()
        pretty_log("Agent Ready", f"model={self.config.model} state={self.state.value}", icon=Icons.SYSTEM_READY)
        try:
            while self.state != LoopState.TERMINATED:
                if self.state == LoopState.AWAITING_USER:
                    await self.await_user()
                elif self.state == LoopState.CALLING_MODEL:
                    await self.call_model()
                elif self.state == LoopState.EXECUTING_TOOLS:
                    await self.execute_tools()
        finally:
            self.save()
        pretty_log("Agent Stopped", f"exit code {self.exit_code}", icon=Icons.SYSTEM_SHUT)
        return self.exit_code

    # --- AwaitingUser ---

    async def await_user(self):
        self.save()
        ui = self.context.ui
        last = self.transcript[-1] if self.transcript else None
        choices: List[str] = []
        if isinstance(last, dict) and last.get("role") == "assistant" and isinstance(last.get("content"), str):
            ui.show_assistant(last["content"])
            choices = extract_numbered_choices(last["content"])

        try:
            if len(choices) >= 2:
                text = await ui.prompt_choice("Choose an option", choices)
            else:
                text = await ui.prompt_text("Your instruction")
        except EOFError:
            self.state = LoopState.TERMINATED
            return

        text = (text or "").strip()
        if text.lower() in QUIT_COMMANDS:
            pretty_log("Quit Requested", None, icon=Icons.STOP)
            self.state = LoopState.TERMINATED
            return

        self.transcript.append({"role": "user", "content": text or DEFAULT_INSTRUCTION})
        pretty_log("User Turn", text or DEFAULT_INSTRUCTION, icon=Icons.USER_TURN)
        self.state = LoopState.CALLING_MODEL

    # --- CallingModel ---

    def build_request_messages(self) -> List[Dict[str, Any]]:
        """Stored transcript plus the ephemeral memory summary right after the system prompt."""
        messages = list(self.transcript)
        summary = self.memory.build_summary()
        if summary:
            messages.insert(1, {"role": "user", "content": f"{MEMORY_REMINDER}\n{summary}"})
        return messages

    async def prepare_transcript(self):
        sanitized = sanitize_history(self.transcript)
        self.transcript = await compact_history(
            sanitized,
            self.config.max_history_length,
            build_system_prompt(),
            summarize=self.context.llm_client.summarize,
            window=self.config.compaction_window,
        )

    async def call_model(self):
        await self.prepare_transcript()
        messages = to_wire_messages(self.build_request_messages())
        pretty_log("LLM Request", f"{len(messages)} messages", icon=Icons.LLM_ASK)
        try:
            reply = await self.context.llm_client.complete(messages, TOOL_DEFINITIONS)
        except (ModelError, NetworkError) as e:
            await self.handle_model_error(e)
            return

        self.consecutive_errors = 0
        message = dict(reply)
        message["role"] = "assistant"
        self.transcript.append(message)

        if has_tool_calls(message):
            names = [(tc.get("function") or {}).get("name", "?") for tc in message["tool_calls"] if isinstance(tc, dict)]
            self.memory.record_action("Tool Call Decision", ", ".join(names), ActionStatus.SUCCESS)
            pretty_log("LLM Reply", f"tool calls: {', '.join(names)}", icon=Icons.LLM_REPLY)
            self.state = LoopState.EXECUTING_TOOLS
        else:
            pretty_log("LLM Reply", message.get("content"), icon=Icons.LLM_REPLY)
            self.state = LoopState.AWAITING_USER

    async def handle_model_error(self, error: Exception):
        action_type, target, fatal = classify_model_error(error)
        self.memory.record_action(action_type, target, ActionStatus.FAILURE, str(error))

        if fatal:
            pretty_log("Fatal Model Error", f"{error}. Check the API key (--api-key or OPENAI_API_KEY).", level="ERROR", icon=Icons.FAIL)
            self.exit_code = 1
            self.state = LoopState.TERMINATED
            return

        pretty_log("Model Error", str(error), level="ERROR", icon=Icons.FAIL)
        self.rollback_to_last_user()
        self.consecutive_errors += 1
        if self.consecutive_errors >= self.config.max_consecutive_errors:
            pretty_log("Retry Limit", f"{self.consecutive_errors} consecutive failures, waiting for the user", level="WARNING", icon=Icons.WARN)
            self.consecutive_errors = 0
            self.state = LoopState.AWAITING_USER
            return

        delay = self.config.rate_limit_delay_s if isinstance(error, ModelRateLimitError) else self.config.retry_delay_s
        pretty_log("Retrying", f"attempt {self.consecutive_errors + 1} in {delay:g}s", icon=Icons.RETRY)
        await asyncio.sleep(delay)
        self.state = LoopState.CALLING_MODEL

    def rollback_to_last_user(self):
        """Discards everything after the last user message (or everything but the system prompt)."""
        for i in range(len(self.transcript) - 1, -1, -1):
            if self.transcript[i].get("role") == "user":
                del self.transcript[i + 1:]
                return
        del self.transcript[1:]

    # --- ExecutingTools ---

    async def execute_tools(self):
        request = self.transcript[-1]
        results = []
        for tool_call in request["tool_calls"]:
            function = (tool_call.get("function") or {}) if isinstance(tool_call, dict) else {}
            name = function.get("name", "")
            result = await self.context.dispatcher.dispatch(name, function.get("arguments", "{}"))
            results.append({
                "role": "tool",
                "tool_call_id": tool_call.get("id") if isinstance(tool_call, dict) else None,
                "name": name,
                "content": result.content,
            })
        self.transcript.extend(results)
        self.save()
        self.state = LoopState.CALLING_MODEL

    # --- Persistence ---

    def save(self):
        storage = self.context.storage
        try:
            storage.save_history(self.transcript)
            storage.save_memory(self.memory.document)
            logger.debug("State saved")
        except OSError as e:
            pretty_log("Save Failed", str(e), level="ERROR", icon=Icons.FAIL)

    def emergency_flush(self, reason: Optional[str] = None):
        """Synchronous best-effort write of both documents; safe to call from signal handlers."""
        logger.warning(f"Emergency flush ({reason or 'unknown'})")
        storage = self.context.storage
        for label, write in (
            ("history", lambda: storage.save_history(self.transcript)),
            ("memory", lambda: storage.save_memory(self.memory.document)),
        ):
            try:
                write()
            except Exception as e:
                logger.error(f"Emergency flush of {label} failed: {e}")
