"""Shell command execution with safety guards."""

import os
import re
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..config import ToolsConfig
from ..errors import ShellBlockedError, ShellTimeoutError, ToolError
from ..logger import get_logger
from .base import ToolResult, truncate_output

_log = get_logger(__name__)

CANCELLED_OUTPUT = "Cancelled by user."
POLL_INTERVAL = 0.1


@dataclass
class ExecuteCommandArgs:
    command: str = field(metadata={"description": "The command to execute"})
    working_dir: Optional[str] = field(default=None, metadata={"description": "Working directory for the command"})


class CommandCancelled(Exception):
    """The cancel event fired while the command was running."""


class ShellExecutor:
    """Run ``sh -c`` commands after screening them against blocked patterns."""

    # Regex signatures for high-risk commands and common exploit chains.
    DANGEROUS_PATTERNS = [
        r"\brm\b\s+-[^\s;|&]*r[^\s;|&]*f[^\s;|&]*\s+/(?:\s|$|\*)",
        r"\b(?:mkfs(?:\.[a-z0-9_+\-]+)?|fdisk|parted|sfdisk|wipefs)\b",
        r"\bdd\b[^\n;|&]*\bof\s*=\s*/dev/",
        r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        r"(?:>|>>)\s*/dev/sd[a-z]\d*",
        r"\bcurl\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
        r"\bwget\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
        r"\bbase64\b[^\n;|&]*-(?:d|decode)\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
    ]

    def __init__(self, config: ToolsConfig):
        self.config = config
        self._dangerous_regexes = [
            re.compile(pattern, re.IGNORECASE) for pattern in self.DANGEROUS_PATTERNS
        ]
        self._blocked_key: Optional[tuple] = None
        self._blocked_rules: List[Tuple[str, re.Pattern]] = []

    @staticmethod
    def _canonicalize_command(command: str) -> str:
        """Normalize quoting and whitespace so trivially obfuscated variants still match."""
        normalized = command.lower().replace("\\\n", " ")
        normalized = re.sub(r"\$\{?\s*ifs\s*\}?", " ", normalized)
        normalized = re.sub(r"[\'\"`\\]", "", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    @classmethod
    def _build_block_regex(cls, blocked: str) -> re.Pattern:
        """Match a blocked entry as a whole token run, not inside longer words or paths."""
        canonical = cls._canonicalize_command(blocked)
        pattern = re.escape(canonical).replace(r"\ ", r"\s*")
        if canonical[:1].isalnum():
            pattern = r"(?<![\w])" + pattern
        if canonical[-1:].isalnum() or canonical.endswith("/"):
            pattern = pattern + r"(?![\w/])"
        return re.compile(pattern)

    def _blocked(self) -> List[Tuple[str, re.Pattern]]:
        """Block rules for the current list, recompiled whenever the list changes."""
        key = tuple(self.config.blocked_commands or ())
        if key != self._blocked_key:
            self._blocked_rules = [
                (blocked, self._build_block_regex(blocked)) for blocked in key if blocked.strip()
            ]
            self._blocked_key = key
        return self._blocked_rules

    def block_reason(self, command: str) -> Optional[str]:
        canonical = self._canonicalize_command(command)
        for raw, rule in self._blocked():
            if rule.search(canonical):
                return f"matches blocked command '{raw}'"
        for pattern in self._dangerous_regexes:
            if pattern.search(command) or pattern.search(canonical):
                return f"matches dangerous pattern '{pattern.pattern}'"
        return None

    def check(self, command: str):
        reason = self.block_reason(command)
        if reason:
            _log.warning("Command blocked: %s", reason)
            raise ShellBlockedError(reason)

    @staticmethod
    def _kill(proc: subprocess.Popen):
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass

    def run(self, command: str, working_dir: Optional[str] = None,
            cancel_event: Optional[threading.Event] = None) -> Tuple[bytes, int]:
        """Run ``command`` and return (combined output, exit code).

        Raises ``ShellTimeoutError`` when the command outlives the configured
        timeout and ``CommandCancelled`` when ``cancel_event`` fires; the
        process group is killed in both cases.
        """
        self.check(command)
        cwd = working_dir or self.config.working_dir
        timeout = self.config.command_timeout
        _log.info("Executing command by 'sh -c': %s (cwd=%s)", command[:200], cwd)

        try:
            proc = subprocess.Popen(
                ["sh", "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                cwd=cwd,
                env={**os.environ, "TERM": "dumb"},
                start_new_session=True,
            )
        except OSError as e:
            raise ToolError("execute_command", f"Command failed: {e}") from e

        deadline = time.monotonic() + timeout
        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    self._kill(proc)
                    proc.communicate()
                    _log.info("Command cancelled: %s", command[:200])
                    raise CommandCancelled(command)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._kill(proc)
                    proc.communicate()
                    _log.error("Command timed out after %ss: %s", timeout, command[:200])
                    raise ShellTimeoutError(timeout)
                try:
                    out, _ = proc.communicate(timeout=min(POLL_INTERVAL, remaining))
                    return out or b"", proc.returncode
                except subprocess.TimeoutExpired:
                    continue
        except BaseException:
            if proc.poll() is None:
                self._kill(proc)
                proc.wait()
            raise


def execute_command(args: ExecuteCommandArgs, config: ToolsConfig,
                    cancel_event: Optional[threading.Event] = None,
                    executor: Optional[ShellExecutor] = None) -> ToolResult:
    executor = executor or ShellExecutor(config)
    try:
        out, code = executor.run(args.command, args.working_dir, cancel_event)
    except CommandCancelled:
        return ToolResult.failure(CANCELLED_OUTPUT, "cancelled")

    text = truncate_output(out, config.max_output_size)
    _log.info("Command finished with exit code %d (%d bytes)", code, len(out))
    if code != 0:
        if text.strip():
            return ToolResult(output=f"{text.rstrip()}\n[exit code: {code}]",
                              error=f"exit status {code}")
        return ToolResult.failure(f"Command failed: exit status {code}")
    return ToolResult(output=text if text else "(no output)")
