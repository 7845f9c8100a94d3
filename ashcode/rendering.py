"""Terminal rendering and user confirmation logic."""

import json
from typing import Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .events import (EventSink, TurnEvent, PARTIAL_TEXT, TURN_FINISHED, APPROVAL_NEEDED,
                     TOOL_STARTED, TOOL_OUTPUT, ERROR as ERROR_EVENT, COMPACTED)
from .messages import ToolCall

__all__ = [
    "ConsoleSink", "render_error", "render_tool_call", "render_result",
    "render_stats", "render_config", "confirm_batch",
]

ACCENT = "cyan"
DIM = "grey50"
TEXT = "white"
MUTED = "grey62"
SUCCESS = "green"
WARN = "yellow"
ERROR = "red"

_ICONS = {
    "read_file": "▸", "write_file": "◆", "list_directory": "≡",
    "execute_command": "$", "git_grep": "⊙", "git_ls_files": "≡", "list_tools": "·",
}
RESULT_PREVIEW_LINES = 12


def _parse_args(call: ToolCall) -> Dict:
    try:
        data = json.loads(call.arguments or "{}")
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _call_detail(call: ToolCall) -> str:
    args = _parse_args(call)
    if call.name == "execute_command":
        return args.get("command", "")
    if call.name == "write_file":
        n = str(args.get("content", "")).count("\n") + 1
        return f"{args.get('path', '')} ({n} lines)"
    if call.name in ("read_file", "list_directory"):
        return args.get("path", ".")
    if call.name == "git_grep":
        return f"/{args.get('pattern', '')}/ in {args.get('path') or '.'}"
    return ""


def render_error(console: Console, message: str):
    panel = Panel(
        f"[{ERROR}]{message}[/{ERROR}]",
        title=f"[bold {ERROR}]Error[/bold {ERROR}]",
        title_align="left",
        border_style=ERROR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def render_tool_call(console: Console, call: ToolCall):
    icon = _ICONS.get(call.name, "·")
    detail = _call_detail(call)
    console.print(f"\n  [{ACCENT}]{icon}[/{ACCENT}] [bold {TEXT}]{call.name}[/bold {TEXT}] "
                  f"[{DIM}]{detail}[/{DIM}]", highlight=False)


def render_result(console: Console, output: str, error: bool = False):
    lines = output.splitlines()
    if len(lines) > RESULT_PREVIEW_LINES:
        lines = lines[:RESULT_PREVIEW_LINES] + [f"... ({len(output.splitlines()) - RESULT_PREVIEW_LINES} more lines)"]
    style = ERROR if error else DIM
    for line in lines:
        console.print(f"     {line}", style=style, markup=False, highlight=False)


def render_stats(console: Console, stats: Dict):
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style=MUTED)
    table.add_column(style=TEXT)
    for key, value in stats.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


def render_config(console: Console, summary: Dict):
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style=MUTED)
    table.add_column(style=TEXT)
    for key, value in summary.items():
        table.add_row(key, str(value))
    console.print(Panel(table, title="Configuration", title_align="left", border_style=ACCENT))


def confirm_batch(console: Console, calls: List[ToolCall]) -> bool:
    """Show the whole pending batch and ask once. Returns True to run all of it."""
    console.print()
    console.print(f"  [{WARN}]The model wants to run {len(calls)} tool call(s):[/{WARN}]")
    for i, call in enumerate(calls, 1):
        console.print(f"    [{DIM}]{i}.[/{DIM}] [bold {TEXT}]{call.name}[/bold {TEXT}] "
                      f"[{DIM}]{call.arguments}[/{DIM}]", highlight=False)
    try:
        ans = console.input(
            f"  [{WARN}]?[/{WARN}] "
            f"[bold {TEXT}](y)[/bold {TEXT}][{MUTED}]es[/{MUTED}] / "
            f"[bold {TEXT}](n)[/bold {TEXT}][{MUTED}]o[/{MUTED}]: "
        ).strip().lower()
    except (KeyboardInterrupt, EOFError):
        return False
    return ans in ("y", "yes")


class ConsoleSink(EventSink):
    """Streams turn events to a rich console."""

    def __init__(self, console: Console):
        self.console = console
        self._streaming = False

    def _end_stream(self):
        if self._streaming:
            self.console.print()
            self._streaming = False

    def emit(self, event: TurnEvent):
        if event.kind == PARTIAL_TEXT:
            if not self._streaming:
                self.console.print()
                self._streaming = True
            self.console.print(event.text, end="", markup=False, highlight=False, soft_wrap=True)
            return

        self._end_stream()
        if event.kind == TOOL_STARTED and event.call is not None:
            render_tool_call(self.console, event.call)
        elif event.kind == TOOL_OUTPUT:
            render_result(self.console, event.text, error=bool(event.data.get("error")))
        elif event.kind == APPROVAL_NEEDED:
            blocked = ", ".join(event.data.get("blocked", []))
            self.console.print(f"\n  [{WARN}]Approval needed for: {blocked}[/{WARN}]")
        elif event.kind == ERROR_EVENT:
            if event.data.get("recoverable"):
                self.console.print(f"  [{WARN}]warning: {event.text}[/{WARN}]", highlight=False)
            else:
                render_error(self.console, event.text)
        elif event.kind == COMPACTED:
            self.console.print(f"  [{DIM}]Context compacted: {event.data.get('before')} → "
                               f"{event.data.get('after')} messages[/{DIM}]")
        elif event.kind == TURN_FINISHED:
            status = event.data.get("status")
            if status == "rejected":
                self.console.print(f"  [{MUTED}]Tool calls rejected.[/{MUTED}]")
            elif status == "cancelled":
                self.console.print(f"  [{MUTED}]Cancelled.[/{MUTED}]")
            elif status == "incomplete":
                self.console.print(f"  [{WARN}]Response ended without a finish reason.[/{WARN}]")
            elif status == "max_iterations":
                self.console.print(f"  [{WARN}]Stopped after reaching max iterations.[/{WARN}]")
