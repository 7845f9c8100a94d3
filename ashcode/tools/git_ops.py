"""Repository search through git grep and git ls-files."""

import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import ToolsConfig
from ..errors import ShellTimeoutError, ToolError
from ..logger import get_logger
from .base import ToolResult, truncate_output

_log = get_logger(__name__)

GREP_NO_MATCH = 1
NOT_A_REPOSITORY = 128


@dataclass
class GitGrepArgs:
    pattern: str = field(metadata={"description": "The pattern to search for"})
    path: Optional[str] = field(default=None, metadata={"description": "Limit search to specific path or file pattern"})
    case_insensitive: bool = field(default=False, metadata={"description": "Perform case-insensitive search"})
    line_number: bool = field(default=False, metadata={"description": "Show line numbers in output"})
    count: bool = field(default=False, metadata={"description": "Show only count of matching lines"})


@dataclass
class GitLsFilesArgs:
    cached: bool = field(default=False, metadata={"description": "Show cached files"})
    deleted: bool = field(default=False, metadata={"description": "Show deleted files"})
    modified: bool = field(default=False, metadata={"description": "Show modified files"})
    others: bool = field(default=False, metadata={"description": "Show untracked files"})
    ignored: bool = field(default=False, metadata={"description": "Show ignored files"})
    stage: bool = field(default=False, metadata={"description": "Show staged contents' mode bits, object name and stage number"})
    unmerged: bool = field(default=False, metadata={"description": "Show unmerged files"})
    killed: bool = field(default=False, metadata={"description": "Show files that git checkout would overwrite"})
    exclude_standard: bool = field(default=False, metadata={"description": "Use standard git exclusions"})
    full_name: bool = field(default=False, metadata={"description": "Show full path from repository root"})
    path: Optional[str] = field(default=None, metadata={"description": "Limit to specific path or file pattern"})


_LS_FILES_FLAGS = [
    ("cached", "--cached"),
    ("deleted", "--deleted"),
    ("modified", "--modified"),
    ("others", "--others"),
    ("ignored", "--ignored"),
    ("stage", "--stage"),
    ("unmerged", "--unmerged"),
    ("killed", "--killed"),
    ("exclude_standard", "--exclude-standard"),
    ("full_name", "--full-name"),
]


def _run_git(tool_name: str, cmd_args: List[str], config: ToolsConfig) -> subprocess.CompletedProcess:
    _log.info("executing git %s", " ".join(cmd_args))
    try:
        return subprocess.run(
            ["git"] + cmd_args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
            cwd=config.working_dir, timeout=config.command_timeout,
        )
    except subprocess.TimeoutExpired as e:
        _log.error("git %s timed out after %ss", cmd_args[0], config.command_timeout)
        raise ShellTimeoutError(config.command_timeout) from e
    except OSError as e:
        raise ToolError(tool_name, f"Git {cmd_args[0]} failed: {e}") from e


def git_grep(args: GitGrepArgs, config: ToolsConfig) -> ToolResult:
    cmd_args = ["grep"]
    if args.case_insensitive:
        cmd_args.append("-i")
    if args.line_number:
        cmd_args.append("-n")
    if args.count:
        cmd_args.append("-c")
    cmd_args += ["-e", args.pattern]
    if args.path:
        cmd_args += ["--", args.path]

    proc = _run_git("git_grep", cmd_args, config)
    if proc.returncode == GREP_NO_MATCH:
        return ToolResult(output="No matches found")
    if proc.returncode != 0:
        detail = proc.stdout.decode("utf-8", errors="replace").strip()
        return ToolResult.failure(f"Git grep failed: exit status {proc.returncode}: {detail}")
    _log.info("git grep completed (%d bytes)", len(proc.stdout))
    return ToolResult(output=truncate_output(proc.stdout, config.max_output_size))


def git_ls_files(args: GitLsFilesArgs, config: ToolsConfig) -> ToolResult:
    cmd_args = ["ls-files"]
    for attr, flag in _LS_FILES_FLAGS:
        if getattr(args, attr):
            cmd_args.append(flag)
    if args.path:
        cmd_args += ["--", args.path]

    proc = _run_git("git_ls_files", cmd_args, config)
    if proc.returncode == NOT_A_REPOSITORY:
        return ToolResult.failure("Git ls-files failed: not in a git repository")
    if proc.returncode != 0:
        detail = proc.stdout.decode("utf-8", errors="replace").strip()
        return ToolResult.failure(f"Git ls-files failed: exit status {proc.returncode}: {detail}")
    output = truncate_output(proc.stdout, config.max_output_size)
    _log.info("git ls-files completed (%d bytes)", len(proc.stdout))
    return ToolResult(output=output or "No files found")
