"""Tool registry: dict-based dispatch with arguments validated once at the boundary."""

import json
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type

from ..config import ToolsConfig
from ..errors import ArgumentError, ShellBlockedError, ShellTimeoutError, ToolError
from ..logger import get_logger
from .base import ToolResult
from .file_ops import (ReadFileArgs, WriteFileArgs, ListDirectoryArgs,
                       read_file, write_file, list_directory)
from .git_ops import GitGrepArgs, GitLsFilesArgs, git_grep, git_ls_files
from .init_ops import InitArgs, init_project
from .schema import build_schema, parse_arguments
from .shell import ExecuteCommandArgs, ShellExecutor, execute_command

_log = get_logger(__name__)


@dataclass
class ListToolsArgs:
    format: str = field(default="text", metadata={
        "description": "Output format: 'text' (default) or 'json'",
        "enum": ("text", "json"),
    })


class _ToolEntry:
    """Single tool registration: handler + argument type + schema."""
    __slots__ = ("name", "description", "handler", "args_cls", "schema", "cancellable")

    def __init__(self, name: str, description: str, handler: Callable,
                 args_cls: Type, cancellable: bool = False):
        self.name = name
        self.description = description
        self.handler = handler
        self.args_cls = args_cls
        self.schema = build_schema(name, description, args_cls)
        self.cancellable = cancellable


class ToolRegistry:
    def __init__(self, config: ToolsConfig):
        self.config = config
        self.shell = ShellExecutor(config)
        self._tools: Dict[str, _ToolEntry] = {}
        self._register_tools()

    def _register_tools(self):
        """Register every tool; each entry carries both its schema and its handler."""
        T = _ToolEntry
        for entry in [
            T("read_file", "Read the contents of a file", read_file, ReadFileArgs),
            T("write_file", "Write content to a file", write_file, WriteFileArgs),
            T("execute_command", "Execute a shell command",
              lambda a, c, cancel_event=None: execute_command(a, c, cancel_event, self.shell),
              ExecuteCommandArgs, cancellable=True),
            T("list_directory", "List files in a directory", list_directory, ListDirectoryArgs),
            T("list_tools", "List all available tools and their descriptions",
              self._list_tools, ListToolsArgs),
            T("git_grep", "Search for a pattern in git repository files", git_grep, GitGrepArgs),
            T("git_ls_files", "List files in git repository", git_ls_files, GitLsFilesArgs),
            T("init", "Generate an AGENTS.md file for the project", init_project, InitArgs),
        ]:
            self._tools[entry.name] = entry

    def _list_tools(self, args: ListToolsArgs, config: ToolsConfig) -> ToolResult:
        if args.format == "json":
            return ToolResult(output=json.dumps(self.describe(), indent=2))
        return ToolResult(output=self.format_text())

    # ── Public API ──

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    @property
    def schemas(self) -> List[dict]:
        return [entry.schema for entry in self._tools.values()]

    def describe(self) -> List[dict]:
        result = []
        for entry in self._tools.values():
            params = entry.schema["function"]["parameters"]
            result.append({
                "name": entry.name,
                "description": entry.description,
                "parameters": {k: v.get("description", "") for k, v in params["properties"].items()},
                "required": list(params["required"]),
            })
        return result

    def format_text(self) -> str:
        lines = ["Available Tools:", "================", ""]
        for i, info in enumerate(self.describe(), 1):
            lines.append(f"{i}. {info['name']}")
            lines.append(f"   Description: {info['description']}")
            if info["parameters"]:
                lines.append("   Parameters:")
                for param, desc in info["parameters"].items():
                    required = " (required)" if param in info["required"] else ""
                    lines.append(f"     - {param}: {desc}{required}")
            else:
                lines.append("   Parameters: None")
            lines.append("")
        return "\n".join(lines) + "\n"

    def execute(self, tool_name: str, arguments: Optional[str],
                cancel_event: Optional[threading.Event] = None) -> ToolResult:
        """Dispatch a tool call by name; every failure comes back as result text."""
        entry = self._tools.get(tool_name)
        if not entry:
            _log.error("Unknown tool requested: %s", tool_name)
            return ToolResult.failure(f"Error: Unknown tool '{tool_name}'", f"unknown tool: {tool_name}")

        _log.info("Executing tool %s", tool_name)
        try:
            args = parse_arguments(tool_name, entry.args_cls, arguments)
            if entry.cancellable:
                result = entry.handler(args, self.config, cancel_event=cancel_event)
            else:
                result = entry.handler(args, self.config)
        except ArgumentError as e:
            _log.error("Failed to parse tool arguments for %s: %s", tool_name, e.detail)
            return ToolResult.failure(f"Error: {e.detail}", str(e))
        except ShellBlockedError as e:
            return ToolResult.failure(str(e))
        except ShellTimeoutError as e:
            return ToolResult.failure(f"Error: {e}")
        except ToolError as e:
            _log.error("Tool execution failed: %s", e)
            return ToolResult.failure(e.message, str(e))
        except Exception as e:
            _log.exception("Tool %s raised", tool_name)
            return ToolResult.failure(f"{tool_name} error: {type(e).__name__}: {e}")

        if result.error:
            _log.error("Tool execution failed: %s: %s", tool_name, result.error)
        else:
            _log.info("Tool execution completed: %s (%d chars)", tool_name, len(result.output))
        return result
