import argparse
import asyncio
import logging
import os
import signal
import sys

from .config import load_config
from .core.agent import AgentContext, ConversationLoop
from .core.history import repair_transcript
from .core.llm import LLMClient
from .core.prompts import build_system_prompt
from .interface.console import ConsoleUI
from .memory.persistence import JsonStorage, migrate_memory_file
from .memory.store import MemoryStore
from .utils.logging import setup_logging, pretty_log, Icons

logger = logging.getLogger("NivuusAgent")

EXIT_INTERRUPTED = 130


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Nivuus Agent: autonomous Linux administration assistant")
    parser.add_argument("--api-key", default=None, help="API key (default: $OPENAI_API_KEY)")
    parser.add_argument("--base-url", default=None, help="OpenAI-compatible API base URL (default: $NIVUUS_BASE_URL)")
    parser.add_argument("--model", default=None, help="Chat model (default: $NIVUUS_MODEL)")
    parser.add_argument("--summary-model", default=None, help="Model used to summarize old history (default: $NIVUUS_SUMMARY_MODEL)")
    parser.add_argument("--config-dir", default=None, help="Where history, memory and logs live (default: $NIVUUS_HOME)")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Default command timeout in milliseconds")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


def install_signal_handlers(loop: ConversationLoop):
    """SIGINT/SIGTERM/SIGHUP flush both documents and exit with 128+signum."""
    def handler(signum, frame):
        name = signal.Signals(signum).name
        pretty_log("Signal Received", f"{name}, saving state", level="WARNING", icon=Icons.SYSTEM_SHUT)
        loop.emergency_flush(name)
        logging.shutdown()
        # A prompt may be blocking a worker thread; interpreter shutdown would wait on it
        os._exit(128 + signum)

    for sig in (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGHUP", None)):
        if sig is not None:
            signal.signal(sig, handler)


async def run_agent(loop: ConversationLoop) -> int:
    try:
        return await loop.run()
    finally:
        await loop.context.llm_client.close()


def main(argv=None) -> int:
    args = parse_args(argv)
    config = load_config(args)
    config.config_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(str(config.log_file), debug=config.debug)
    pretty_log("System Boot", f"config dir {config.config_dir}", icon=Icons.SYSTEM_BOOT)

    problem = config.api_key_problem()
    if problem:
        pretty_log(
            "Startup Failed",
            f"{problem} Pass --api-key or set OPENAI_API_KEY (for example in your shell profile).",
            level="ERROR", icon=Icons.FAIL,
        )
        return 1

    try:
        migrate_memory_file(config.memory_file)
    except OSError as e:
        pretty_log("Migration Failed", f"{e}. Continuing with the file as is.", level="WARNING", icon=Icons.WARN)

    storage = JsonStorage(config.history_file, config.memory_file)
    memory = MemoryStore(storage.load_memory(), max_actions=config.max_action_log_entries)
    transcript = repair_transcript(storage.load_history([]), build_system_prompt())

    llm_client = LLMClient(config.base_url, config.api_key, config.model, config.summary_model)
    context = AgentContext(config, storage, memory, llm_client, ConsoleUI())
    loop = ConversationLoop(context, transcript)
    install_signal_handlers(loop)

    try:
        return asyncio.run(run_agent(loop))
    except KeyboardInterrupt:
        loop.emergency_flush("KeyboardInterrupt")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Uncaught error")
        pretty_log("Fatal Error", f"{type(e).__name__}: {e}", level="ERROR", icon=Icons.FAIL)
        loop.emergency_flush("uncaught exception")
        return 1


if __name__ == "__main__":
    sys.exit(main())
