import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_SUMMARY_MODEL = "gpt-3.5-turbo"
API_KEY_PLACEHOLDER = "sk-YOUR_API_KEY_HERE"

MAX_ACTION_LOG_ENTRIES = 30
MAX_HISTORY_LENGTH = 100
COMPACTION_WINDOW = 10
MAX_DIRECT_READ_SIZE = 100 * 1024
MAX_SEARCH_RESULTS = 5
COMMAND_TIMEOUT_MS = 120000
MAX_FEEDBACK_LEN = 40000
MAX_COMMAND_OUTPUT_LENGTH = 10000
MAX_TOOL_ERROR_LEN = 300
MAX_CONSECUTIVE_ERRORS = 5
RETRY_DELAY_S = 2.0
RATE_LIMIT_DELAY_S = 10.0


def default_config_dir() -> Path:
    return Path(os.getenv("NIVUUS_HOME", Path.home() / ".config" / "nivuus-agent"))


@dataclass
class AgentConfig:
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    summary_model: str = DEFAULT_SUMMARY_MODEL
    config_dir: Path = field(default_factory=default_config_dir)

    max_action_log_entries: int = MAX_ACTION_LOG_ENTRIES
    max_history_length: int = MAX_HISTORY_LENGTH
    compaction_window: int = COMPACTION_WINDOW
    max_direct_read_size: int = MAX_DIRECT_READ_SIZE
    max_search_results: int = MAX_SEARCH_RESULTS
    command_timeout_ms: int = COMMAND_TIMEOUT_MS
    max_feedback_len: int = MAX_FEEDBACK_LEN
    max_command_output_length: int = MAX_COMMAND_OUTPUT_LENGTH
    max_tool_error_len: int = MAX_TOOL_ERROR_LEN
    max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS
    retry_delay_s: float = RETRY_DELAY_S
    rate_limit_delay_s: float = RATE_LIMIT_DELAY_S
    debug: bool = False

    @property
    def history_file(self) -> Path:
        return self.config_dir / "conversation_history.json"

    @property
    def memory_file(self) -> Path:
        return self.config_dir / "agent_memory.json"

    @property
    def log_file(self) -> Path:
        return self.config_dir / "nivuus-agent.log"

    def api_key_problem(self) -> Optional[str]:
        if not self.api_key or self.api_key == API_KEY_PLACEHOLDER:
            return "No API key configured."
        return None


def load_config(args) -> AgentConfig:
    """Command-line flag > environment variable > built-in default."""
    config_dir = Path(args.config_dir) if getattr(args, "config_dir", None) else default_config_dir()
    return AgentConfig(
        api_key=getattr(args, "api_key", None) or os.getenv("OPENAI_API_KEY"),
        base_url=getattr(args, "base_url", None) or os.getenv("NIVUUS_BASE_URL", DEFAULT_BASE_URL),
        model=getattr(args, "model", None) or os.getenv("NIVUUS_MODEL", DEFAULT_MODEL),
        summary_model=getattr(args, "summary_model", None) or os.getenv("NIVUUS_SUMMARY_MODEL", DEFAULT_SUMMARY_MODEL),
        config_dir=config_dir,
        command_timeout_ms=getattr(args, "timeout_ms", None) or COMMAND_TIMEOUT_MS,
        debug=bool(getattr(args, "debug", False)),
    )
