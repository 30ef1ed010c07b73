from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

class RunBashCommand(ToolArgs):
    """Executes a shell command on the host after the user confirms it. Use it only when no direct tool fits."""
    command: str = Field(..., min_length=1, description="The full shell command to run.")
    purpose: str = Field(..., min_length=1, description="One sentence explaining why this command is needed. Shown to the user before confirmation.")
    timeout_ms: Optional[int] = Field(None, alias="timeoutMs", description="Optional timeout in milliseconds. The whole process group is killed when it expires.")

class ReadFile(ToolArgs):
    """Reads a text file and returns its content. Large files are refused: use run_bash_command with head/tail/grep for those."""
    filepath: str = Field(..., description="Absolute or relative path of the file to read.")

class ListDirectory(ToolArgs):
    """Lists the entries of a directory. Directories are suffixed with '/'."""
    path: str = Field(..., description="The directory to list.")

class WriteFile(ToolArgs):
    """Writes content to a file after the user confirms it. Overwrites the file and creates missing parent directories."""
    filepath: str = Field(..., description="Path of the file to write.")
    content: str = Field(..., description="The complete new content of the file.")

class WebSearch(ToolArgs):
    """Searches the web and returns the top results (title, url, snippet)."""
    query: str

class GetMemoryKeys(ToolArgs):
    """Lists the keys stored at a memory path. Omit the path (or use '') to list the root."""
    path: Optional[str] = Field("", description="Hierarchical path such as 'system/info' or 'system.info'.")

class GetMemoryValue(ToolArgs):
    """Returns the value stored at a memory path."""
    path: str = Field(..., description="Hierarchical path such as 'system/info/os'.")

class SetMemoryValue(ToolArgs):
    """Stores a value at a memory path, creating intermediate levels as needed. Overwrites any existing value."""
    path: str = Field(..., description="Hierarchical path such as 'projects/web/port'.")
    value: Any = Field(..., description="Any JSON value: string, number, boolean, list or object.")
