import asyncio
import os
import signal
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..core.errors import ProcessSpawnError, ProcessTimeout, ToolArgumentError
from ..memory.store import ActionStatus, MemoryStore
from ..utils.logging import Icons, pretty_log

logger = logging.getLogger("NivuusAgent")

EXIT_TIMEOUT = -1
EXIT_SIGNAL = -2
STDERR_TAIL_LEN = 500
PIPE_DRAIN_TIMEOUT = 2.0
KILL_GRACE_TIMEOUT = 5.0
CANCELLED_NOTICE = "Execution cancelled by user."


@dataclass
class CommandOutcome:
    status: str
    exit_code: Optional[int]
    output: str
    timed_out: bool = False

    @property
    def cancelled(self) -> bool:
        return self.status == ActionStatus.CANCELLED


class CompletionToken:
    """
    Single-use guard for one running command. The first observer that moves it
    out of ARMED owns termination and resolution; every later call returns False.
    """
    ARMED = "armed"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"

    def __init__(self):
        self.state = self.ARMED
        self.fired_by: Optional[str] = None

    def transition(self, state: str, source: str) -> bool:
        if self.state != self.ARMED:
            return False
        self.state = state
        self.fired_by = source
        return True


def kill_process_group(proc: asyncio.subprocess.Process):
    """SIGKILL the whole group started for `proc`, falling back to the direct child."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
        return
    except (ProcessLookupError, PermissionError, OSError) as e:
        logger.debug(f"killpg({proc.pid}) failed: {e}")
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def _pump(stream: Optional[asyncio.StreamReader], chunks: List[str]):
    if stream is None:
        return
    while True:
        data = await stream.read(4096)
        if not data:
            break
        chunks.append(data.decode("utf-8", errors="replace"))


def build_report(stdout: str, stderr: str, exit_code: int, signal_info: str = "") -> str:
    report = ""
    if stdout.strip():
        report += f"STDOUT:\n{stdout.strip()}\n"
    if stderr.strip():
        report += f"STDERR:\n{stderr.strip()}\n"
    if not report:
        if exit_code == 0:
            report = "Command executed successfully with no output."
        else:
            report = f"Command finished with exit code {exit_code}{signal_info} and no output."
    return report.strip()


def truncate_report(report: str, limit: int) -> str:
    if len(report) <= limit:
        return report
    return report[:limit] + f"\n\n[Output truncated, full length was {len(report)} characters, limit {limit}]"


class CommandExecutor:
    def __init__(self, memory: MemoryStore, ui, default_timeout_ms: int = 120000, max_output_length: int = 10000):
        self.memory = memory
        self.ui = ui
        self.default_timeout_ms = default_timeout_ms
        self.max_output_length = max_output_length

    async def execute(self, command: str, purpose: str, timeout_ms: Optional[int] = None) -> CommandOutcome:
        if not command or not str(command).strip():
            raise ToolArgumentError("run_bash_command", "Missing required argument: command")
        if not purpose or not str(purpose).strip():
            raise ToolArgumentError("run_bash_command", "Missing required argument: purpose")

        effective_ms = timeout_ms if timeout_ms and timeout_ms > 0 else self.default_timeout_ms
        timeout_s = effective_ms / 1000

        self.ui.show_notice(f"Proposed command: {command}\nPurpose: {purpose}\nTimeout: {timeout_s:g}s")
        if not await self.ui.confirm("Execute this command?"):
            pretty_log("Command Cancelled", command, level="WARNING", icon=Icons.STOP)
            self.memory.record_action("Command", command, ActionStatus.CANCELLED)
            return CommandOutcome(ActionStatus.CANCELLED, None, CANCELLED_NOTICE)

        self.memory.record_action("Command", command, ActionStatus.ATTEMPTED)
        pretty_log("Command Start", command, icon=Icons.TOOL_SHELL)
        return await self._run(command, timeout_s)

    async def _run(self, command: str, timeout_s: float) -> CommandOutcome:
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            error = ProcessSpawnError(f"Spawn error: {e}")
            pretty_log("Command Spawn Failed", str(error), level="ERROR", icon=Icons.FAIL)
            report = truncate_report(build_report("", str(error), EXIT_TIMEOUT), self.max_output_length)
            self.memory.record_action("Command", command, ActionStatus.FAILURE, str(error))
            return CommandOutcome(ActionStatus.FAILURE, EXIT_TIMEOUT, report)

        token = CompletionToken()
        stdout_chunks: List[str] = []
        stderr_chunks: List[str] = []
        pumps = [
            asyncio.create_task(_pump(proc.stdout, stdout_chunks)),
            asyncio.create_task(_pump(proc.stderr, stderr_chunks)),
        ]

        def on_timeout(source: str):
            if not token.transition(CompletionToken.TIMED_OUT, source):
                return
            pretty_log("Command Timeout", f"{timeout_s:g}s elapsed ({source}), killing process group", level="ERROR", icon=Icons.TIMEOUT)
            kill_process_group(proc)

        loop = asyncio.get_running_loop()
        timer = loop.call_later(timeout_s, on_timeout, "timer")
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=timeout_s)
            except asyncio.TimeoutError:
                on_timeout("wait_for")
                try:
                    await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_TIMEOUT)
                except asyncio.TimeoutError:
                    logger.error(f"Process {proc.pid} survived SIGKILL grace period")
        finally:
            timer.cancel()
        token.transition(CompletionToken.COMPLETED, "exit")

        _, pending = await asyncio.wait(pumps, timeout=PIPE_DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()

        return self._resolve(command, proc, token, timeout_s, "".join(stdout_chunks), "".join(stderr_chunks))

    def _resolve(self, command, proc, token: CompletionToken, timeout_s: float, stdout: str, stderr: str) -> CommandOutcome:
        signal_info = ""
        timed_out = token.state == CompletionToken.TIMED_OUT
        if timed_out:
            exit_code = EXIT_TIMEOUT
            stderr = f"{stderr.strip()} {ProcessTimeout(timeout_s)}".strip()
        elif proc.returncode is None:
            exit_code = EXIT_TIMEOUT
        elif proc.returncode < 0:
            exit_code = EXIT_SIGNAL
            try:
                signal_info = f", signal {signal.Signals(-proc.returncode).name}"
            except ValueError:
                signal_info = f", signal {-proc.returncode}"
        else:
            exit_code = proc.returncode

        status = ActionStatus.SUCCESS if exit_code == 0 else ActionStatus.FAILURE
        pretty_log("Command End", f"exit code {exit_code}{signal_info}", icon=Icons.OK if exit_code == 0 else Icons.FAIL)

        report = truncate_report(build_report(stdout, stderr, exit_code, signal_info), self.max_output_length)
        stderr_tail = stderr.strip()[-STDERR_TAIL_LEN:] or None
        self.memory.record_action("Command", command, status, stderr_tail)
        return CommandOutcome(status, exit_code, report, timed_out=timed_out)
