"""File operations: read, write, list."""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..config import ToolsConfig
from ..errors import ToolError
from ..logger import get_logger
from .base import ToolResult

_log = get_logger(__name__)


@dataclass
class ReadFileArgs:
    path: str = field(metadata={"description": "The file path to read"})


@dataclass
class WriteFileArgs:
    path: str = field(metadata={"description": "The file path to write"})
    content: str = field(metadata={"description": "The content to write"})


@dataclass
class ListDirectoryArgs:
    path: str = field(default=".", metadata={"description": "The directory path to list"})


def _resolve(path: str, config: ToolsConfig) -> Path:
    p = Path(os.path.normpath(os.path.expanduser(path)))
    if not p.is_absolute():
        p = Path(config.working_dir) / p
    return p


def read_file(args: ReadFileArgs, config: ToolsConfig) -> ToolResult:
    fp = _resolve(args.path, config)
    limit = config.max_output_size
    try:
        with open(fp, "rb") as f:
            data = f.read(limit + 1)
    except OSError as e:
        raise ToolError("read_file", f"Error reading file: {e}") from e

    text = data[:limit].decode("utf-8", errors="replace")
    if len(data) > limit:
        text += f"\n\n[File truncated at {limit} bytes]"
    return ToolResult(output=text)


def write_file(args: WriteFileArgs, config: ToolsConfig) -> ToolResult:
    fp = _resolve(args.path, config)
    try:
        fp.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ToolError("write_file", f"Error creating directory: {e}") from e
    data = args.content.encode("utf-8")
    try:
        fp.write_bytes(data)
    except OSError as e:
        raise ToolError("write_file", f"Error writing file: {e}") from e
    _log.info("Wrote %d bytes to %s", len(data), fp)
    return ToolResult(output=f"Successfully wrote {len(data)} bytes to {args.path}")


def list_directory(args: ListDirectoryArgs, config: ToolsConfig) -> ToolResult:
    dp = _resolve(args.path or ".", config)
    try:
        entries = sorted(os.scandir(dp), key=lambda e: e.name)
    except OSError as e:
        raise ToolError("list_directory", f"Error reading directory: {e}") from e

    lines = [f"Contents of {os.path.normpath(args.path or '.')}:"]
    for entry in entries:
        try:
            info = entry.stat()
        except OSError:
            continue
        kind = "dir " if entry.is_dir() else "file"
        mtime = datetime.fromtimestamp(info.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
        lines.append(f"  [{kind}] {entry.name} ({info.st_size} bytes) {mtime}")
    return ToolResult(output="\n".join(lines) + "\n")
