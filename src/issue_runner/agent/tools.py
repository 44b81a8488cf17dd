"""File tools exposed to the coding agent.

This module defines the tool catalog the model can call and the executor
that performs each call inside a workspace root:
- ReadFile / WriteFile / ListDirectory / CreateDirectory: typed requests
- parse_tool_request: Build a typed request from a model tool call
- ToolExecutor: Perform exactly one filesystem effect per request
- TOOL_DEFINITIONS: Catalog in OpenAI function-calling format

Every path is resolved against the workspace root with symlinks followed.
A request whose resolved path falls outside the root is refused with an
error output and performs no filesystem effect.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union


logger = logging.getLogger(__name__)


class ToolError(Exception):
    """Base class for tool request errors."""


class UnknownToolError(ToolError):
    """Raised when the model asks for a tool that does not exist.

    Attributes:
        name: The requested tool name.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolInputError(ToolError):
    """Raised when a tool call is missing a field or has the wrong type."""

    def __init__(self, tool: str, field: str, reason: str = "is required"):
        self.tool = tool
        self.field = field
        super().__init__(f"Invalid input for {tool}: '{field}' {reason}")


@dataclass(frozen=True)
class ReadFile:
    path: str


@dataclass(frozen=True)
class WriteFile:
    path: str
    content: str


@dataclass(frozen=True)
class ListDirectory:
    path: str


@dataclass(frozen=True)
class CreateDirectory:
    path: str


ToolRequest = Union[ReadFile, WriteFile, ListDirectory, CreateDirectory]


@dataclass(frozen=True)
class ToolOutput:
    """Result of executing one tool request.

    Attributes:
        text: Text returned to the model.
        is_error: Whether the text describes a failure.
    """

    text: str
    is_error: bool = False


def _function(name: str, description: str, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": list(properties),
            },
        },
    }


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    _function(
        "read_file",
        "Read the contents of a file at the specified path. Returns the file "
        "contents as a string. Use this to examine existing code before making "
        "changes.",
        {
            "path": {
                "type": "string",
                "description": 'The relative path to the file to read (e.g., "src/app/utils.py")',
            },
        },
    ),
    _function(
        "write_file",
        "Write content to a file at the specified path. Creates the file if it "
        "does not exist, or overwrites it if it does. Parent directories are "
        "created automatically.",
        {
            "path": {
                "type": "string",
                "description": 'The relative path to the file to write (e.g., "src/app/utils.py")',
            },
            "content": {
                "type": "string",
                "description": "The full content to write to the file",
            },
        },
    ),
    _function(
        "list_directory",
        "List all files and directories in the specified directory.",
        {
            "path": {
                "type": "string",
                "description": 'The relative path to the directory to list (e.g., "src" or ".")',
            },
        },
    ),
    _function(
        "create_directory",
        "Create a directory at the specified path. Parent directories are "
        "created automatically.",
        {
            "path": {
                "type": "string",
                "description": 'The relative path to the directory to create (e.g., "src/app")',
            },
        },
    ),
]

TOOL_NAMES = frozenset(d["function"]["name"] for d in TOOL_DEFINITIONS)


def _require_str(tool: str, data: Mapping[str, Any], field: str) -> str:
    if field not in data:
        raise ToolInputError(tool, field)
    value = data[field]
    if not isinstance(value, str):
        raise ToolInputError(tool, field, "must be a string")
    return value


def parse_tool_request(name: str, data: Any) -> ToolRequest:
    """Build a typed tool request from a model tool call.

    Args:
        name: Tool name requested by the model.
        data: The call's arguments, expected to be a mapping.

    Returns:
        The matching ToolRequest variant.

    Raises:
        UnknownToolError: If no tool has this name.
        ToolInputError: If a required field is missing or not a string.
    """
    if name not in TOOL_NAMES:
        raise UnknownToolError(name)
    if not isinstance(data, Mapping):
        raise ToolInputError(name, "input", "must be an object")

    path = _require_str(name, data, "path")
    if name == "read_file":
        return ReadFile(path=path)
    if name == "write_file":
        return WriteFile(path=path, content=_require_str(name, data, "content"))
    if name == "list_directory":
        return ListDirectory(path=path)
    return CreateDirectory(path=path)


class PathOutsideWorkspaceError(ToolError):
    """Raised internally when a path resolves outside the workspace root."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path is outside the workspace: {path}")


class ToolExecutor:
    """Executes tool requests confined to one workspace root.

    Attributes:
        root: Resolved absolute path of the workspace.

    Example:
        >>> executor = ToolExecutor("/tmp/ws")
        >>> executor.execute(WriteFile(path="a.txt", content="hi")).text
        'Successfully wrote 2 bytes to a.txt'
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        """Resolve a request path against the root.

        Raises:
            PathOutsideWorkspaceError: If the resolved path is not the root
                or a descendant of it.
        """
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise PathOutsideWorkspaceError(path)
        return target

    def execute(self, request: ToolRequest) -> ToolOutput:
        """Perform one tool request and describe the outcome.

        Never raises for filesystem failures; those are returned as error
        outputs so the model can react to them.
        """
        try:
            target = self.resolve(request.path)
        except PathOutsideWorkspaceError as e:
            logger.warning(
                "Refused tool path outside workspace",
                extra={"tool_path": request.path, "root": str(self.root)},
            )
            return ToolOutput(text=str(e), is_error=True)
        except (OSError, ValueError, RuntimeError) as e:
            return ToolOutput(text=f"Invalid path {request.path!r}: {e}", is_error=True)

        match request:
            case ReadFile():
                return self._read_file(request, target)
            case WriteFile():
                return self._write_file(request, target)
            case ListDirectory():
                return self._list_directory(request, target)
            case CreateDirectory():
                return self._create_directory(request, target)
        raise TypeError(f"Unsupported tool request: {request!r}")

    def _read_file(self, request: ReadFile, target: Path) -> ToolOutput:
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Tool read_file failed: %s", e)
            return ToolOutput(text=f"Failed to read file: {e}", is_error=True)
        logger.info(
            "Tool: read_file",
            extra={"tool_path": request.path, "size": len(content)},
        )
        return ToolOutput(text=content)

    def _write_file(self, request: WriteFile, target: Path) -> ToolOutput:
        data = request.content.encode("utf-8")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error("Tool write_file failed: %s", e)
            return ToolOutput(text=f"Failed to write file: {e}", is_error=True)
        logger.info(
            "Tool: write_file",
            extra={"tool_path": request.path, "size": len(data)},
        )
        return ToolOutput(
            text=f"Successfully wrote {len(data)} bytes to {request.path}"
        )

    def _list_directory(self, request: ListDirectory, target: Path) -> ToolOutput:
        try:
            entries = sorted(target.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.error("Tool list_directory failed: %s", e)
            return ToolOutput(text=f"Failed to list directory: {e}", is_error=True)
        lines = [
            f"[{'DIR' if entry.is_dir() else 'FILE'}] {entry.name}"
            for entry in entries
        ]
        logger.info(
            "Tool: list_directory",
            extra={"tool_path": request.path, "entries": len(lines)},
        )
        return ToolOutput(text="\n".join(lines) or "(empty directory)")

    def _create_directory(self, request: CreateDirectory, target: Path) -> ToolOutput:
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Tool create_directory failed: %s", e)
            return ToolOutput(text=f"Failed to create directory: {e}", is_error=True)
        logger.info("Tool: create_directory", extra={"tool_path": request.path})
        return ToolOutput(text=f"Successfully created directory: {request.path}")
