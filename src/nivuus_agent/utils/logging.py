import datetime
import json
import logging
import os
from typing import Any

LOG_TRUNCATE_LIMIT = 300
DEBUG_MODE = False

class Icons:
    # --- Lifecycle ---
    SYSTEM_BOOT  = "⚡"
    SYSTEM_READY = "🚀"
    SYSTEM_SHUT  = "💤"
    SYSTEM_SAVE  = "💾"

    # --- Conversation ---
    USER_TURN    = "👤"
    LLM_ASK      = "🗣️"
    LLM_REPLY    = "🤖"
    BRAIN_SUM    = "📜"

    # --- Tools ---
    TOOL_SEARCH  = "🌐"
    TOOL_SHELL   = "🐚"
    TOOL_FILE_W  = "📝"
    TOOL_FILE_R  = "📖"
    TOOL_FILE_I  = "👀"
    TOOL_CALL    = "🛠️"

    # --- Memory ---
    MEM_SAVE     = "📌"
    MEM_READ     = "🔎"
    MEM_MIGRATE  = "🧬"

    # --- Status ---
    OK           = "✅"
    FAIL         = "❌"
    WARN         = "⚠️"
    STOP         = "🛑"
    RETRY        = "🔄"
    TIMEOUT      = "⏱️"

logger = logging.getLogger("NivuusAgent")

_LEVELS = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARN": logging.WARNING, "WARNING": logging.WARNING, "ERROR": logging.ERROR}

def setup_logging(log_file: str, debug: bool = False):
    global DEBUG_MODE
    DEBUG_MODE = debug
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s', datefmt='%H:%M:%S')

    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    fh = logging.FileHandler(log_file)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    for lib in ["httpx", "httpcore", "ddgs", "primp"]:
        logging.getLogger(lib).setLevel(logging.WARNING)

def pretty_log(title: str, content: Any = None, icon: str = "📝", level: str = "INFO"):
    timestamp = datetime.datetime.now().strftime("%H:%M:%S")

    # [LEVEL] ICON HH:MM:SS - TITLE : content
    log_line = f"[{level:5}] {icon} {timestamp} - {title.upper():<25}"

    if content is not None and not isinstance(content, (dict, list)):
        log_line += f" : {str(content)}"
        print(log_line, flush=True)
        logger.log(_LEVELS.get(level, logging.INFO), f"{title}: {content}")
    else:
        print(log_line, flush=True)
        if content is not None:
            try: content_str = json.dumps(content, indent=2, default=str)
            except (TypeError, ValueError): content_str = str(content)

            logger.debug(f"DETAILS FOR {title}: {content_str}")
            if level == "ERROR" or DEBUG_MODE:
                if len(content_str) > LOG_TRUNCATE_LIMIT:
                    print(f"      {content_str[:LOG_TRUNCATE_LIMIT]}... [TRUNCATED]", flush=True)
                else:
                    indented = "\n".join([f"      {l}" for l in content_str.splitlines()])
                    print(indented, flush=True)
