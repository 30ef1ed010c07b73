from typing import Optional, Tuple


class AgentError(Exception):
    """Root of every error the agent raises on purpose."""


# --- Model / network ---

class ModelError(AgentError):
    status_code: Optional[int] = None
    fatal = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelAuthError(ModelError):
    fatal = True


class ModelRateLimitError(ModelError):
    pass


class ModelTransportError(ModelError):
    pass


class NetworkError(AgentError):
    pass


# --- Tools ---

class ToolError(AgentError):
    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolArgumentParseError(ToolError):
    def __init__(self, tool_name: str, raw_arguments: str, message: str):
        super().__init__(tool_name, f"Argument parsing error for {tool_name}: {message}")
        self.raw_arguments = raw_arguments


class ToolArgumentError(ToolError):
    pass


class ToolExecutionError(ToolError):
    pass


# --- Memory ---

class MemoryPathError(AgentError):
    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path


class PathNotFound(MemoryPathError):
    def __init__(self, path: str):
        super().__init__(path, f"Path not found in memory: {path}")


class PathNotObject(MemoryPathError):
    def __init__(self, path: str):
        super().__init__(path, f"Value at '{path or 'root'}' is not an object")


class ReservedPathConflict(MemoryPathError):
    def __init__(self, path: str, expected: str):
        super().__init__(path, f"Memory path '{path}' is reserved and must hold {expected}")
        self.expected = expected


# --- Commands ---

class CommandError(AgentError):
    pass


class ProcessTimeout(CommandError):
    def __init__(self, timeout_s: float):
        super().__init__(f"Command timed out after {timeout_s:g} seconds and was killed.")
        self.timeout_s = timeout_s


class ProcessSpawnError(CommandError):
    pass


def classify_model_error(exc: BaseException) -> Tuple[str, str, bool]:
    """Maps a loop-boundary failure to (action type, target, fatal) for the action log."""
    if isinstance(exc, ModelError):
        return "System", f"Model API Error: {exc.status_code or type(exc).__name__}", exc.fatal
    if isinstance(exc, NetworkError):
        return "Network", f"Network Error: {type(exc).__name__}", False
    return "System", "Unexpected Loop Error", False
