"""Slash-command routing and handlers."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from prompt_toolkit.completion import Completer, Completion
from rich.console import Console

from .agent import Agent
from .config import CONFIG_FIELDS, Config
from .context_window import COMPACTION_STRATEGIES
from .errors import AgentError, ToolError
from .rendering import ACCENT, DIM, SUCCESS, WARN, ERROR, render_config, render_stats
from .tools.init_ops import AGENTS_FILE, generate_agents_md


@dataclass(frozen=True)
class SlashCommandSpec:
    command: str
    usage: str
    description: str
    keywords: tuple[str, ...] = ()


SLASH_COMMAND_SPECS: tuple[SlashCommandSpec, ...] = (
    SlashCommandSpec("/help", "/help", "Show commands", ("commands", "usage")),
    SlashCommandSpec("/clear", "/clear", "Clear the conversation", ("reset", "new")),
    SlashCommandSpec("/compact", "/compact [default|aggressive|smart]",
                     "Compact older messages into a summary", ("context", "summary")),
    SlashCommandSpec("/config", "/config [key [value]]", "Show or change settings", ("settings",)),
    SlashCommandSpec("/stats", "/stats", "Session statistics", ("tokens", "usage")),
    SlashCommandSpec("/tools", "/tools", "List available tools", ("functions",)),
    SlashCommandSpec("/init", "/init [path]", "Generate AGENTS.md for the project", ("agents", "setup")),
    SlashCommandSpec("/exit", "/exit", "Exit", ("quit", "bye")),
)
SLASH_COMMANDS = [spec.command for spec in SLASH_COMMAND_SPECS]

_SLASH_ALIASES = {"/h": "/help", "/?": "/help", "/reset": "/clear", "/quit": "/exit", "/q": "/exit"}
INIT_PREVIEW_LINES = 20


@dataclass
class CommandContext:
    console: Console
    agent: Agent
    config: Config


CommandHandler = Callable[[CommandContext, list[str]], str]


def build_help_text() -> str:
    usage_width = max(len(spec.usage) for spec in SLASH_COMMAND_SPECS)
    lines = ["", f"[bold {ACCENT}]Commands:[/bold {ACCENT}]"]
    for spec in SLASH_COMMAND_SPECS:
        lines.append(f"  {spec.usage:<{usage_width}}  {spec.description}")
    lines.extend([
        "",
        f"[bold {ACCENT}]Tips:[/bold {ACCENT}]",
        "  Esc → Enter   Multi-line input",
        "  Ctrl-C        Cancel the running turn",
        "  Ctrl-D        Exit",
    ])
    return "\n".join(lines)


class SlashCommandCompleter(Completer):
    """Prefix completion for slash commands."""

    def __init__(self, specs: Sequence[SlashCommandSpec] = SLASH_COMMAND_SPECS):
        self.specs = list(specs)

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor.lstrip()
        if not text.startswith("/") or " " in text:
            return
        for spec in self.specs:
            if spec.command.startswith(text.lower()):
                yield Completion(spec.command, start_position=-len(text),
                                 display_meta=spec.description)


def _resolve_command(raw_cmd: str) -> str:
    """Resolve abbreviated slash commands via exact/alias/prefix matching."""
    cmd = raw_cmd.lower()

    if cmd == "/":
        return SLASH_COMMANDS[0]
    if cmd in SLASH_COMMANDS:
        return cmd
    if cmd in _SLASH_ALIASES:
        return _SLASH_ALIASES[cmd]

    matches = [candidate for candidate in SLASH_COMMANDS if candidate.startswith(cmd)]
    if matches:
        return matches[0]
    return cmd


def handle_command(command: str, *, console: Console, agent: Agent, config: Config) -> str:
    """Handle one slash command string. Returns "quit" when the session should end."""
    parts = command.split()
    if not parts:
        return ""

    cmd = _resolve_command(parts[0])
    args = parts[1:]

    ctx = CommandContext(console=console, agent=agent, config=config)
    handler = COMMAND_HANDLERS.get(cmd)
    if not handler:
        console.print(f"  [{WARN}]Unknown: {cmd}. Try /help[/{WARN}]")
        return ""
    return handler(ctx, args)


def _cmd_help(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.console.print(build_help_text())
    return ""


def _cmd_clear(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.agent.reset()
    ctx.console.print(f"  [{SUCCESS}]✓ Conversation cleared.[/{SUCCESS}]")
    return ""


def _cmd_compact(ctx: CommandContext, args: list[str]) -> str:
    strategy = args[0].lower() if args else "default"
    if strategy not in COMPACTION_STRATEGIES:
        ctx.console.print(f"  [{ERROR}]Unknown strategy '{strategy}'. "
                          f"Use one of: {', '.join(COMPACTION_STRATEGIES)}[/{ERROR}]")
        return ""
    try:
        count = ctx.agent.compact(strategy)
    except AgentError as e:
        ctx.console.print(f"  [{ERROR}]{e}[/{ERROR}]")
        return ""
    if count > 0:
        ctx.console.print(f"  [{SUCCESS}]✓ Compacted {count} old messages into summary[/{SUCCESS}]")
    else:
        ctx.console.print(f"  [{DIM}]Nothing to compact[/{DIM}]")
    return ""


def _format_value(value) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or "(none)"
    return str(value)


def _cmd_config(ctx: CommandContext, args: list[str]) -> str:
    if not args:
        render_config(ctx.console, ctx.config.summary())
        return ""

    key = args[0].lower()
    if key not in CONFIG_FIELDS:
        ctx.console.print(f"  [{ERROR}]Unknown key: {key}[/{ERROR}]")
        ctx.console.print(f"  [{DIM}]Valid keys: {', '.join(CONFIG_FIELDS)}[/{DIM}]")
        return ""

    spec = CONFIG_FIELDS[key]
    if len(args) == 1:
        value = ctx.config.get_config_value(key)
        if spec.secret:
            value = "set" if value else "not set"
        ctx.console.print(f"  [bold {ACCENT}]{key}[/bold {ACCENT}] = {_format_value(value)}")
        ctx.console.print(f"  [{DIM}]{spec.description}[/{DIM}]")
        return ""

    raw = " ".join(args[1:])
    ok, error = ctx.config.set_config_value(key, raw)
    if not ok:
        ctx.console.print(f"  [{ERROR}]Invalid value for {key}: {error}[/{ERROR}]")
        return ""
    shown = "(hidden)" if spec.secret else _format_value(ctx.config.get_config_value(key))
    ctx.console.print(f"  [{SUCCESS}]✓ {key} = {shown}[/{SUCCESS}] [{DIM}](this session)[/{DIM}]")
    if spec.section == "context" or key == "max-iterations":
        ctx.console.print(f"  [{DIM}]Takes effect in the next session.[/{DIM}]")
    return ""


def _cmd_stats(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    render_stats(ctx.console, ctx.agent.get_stats())
    return ""


def _cmd_tools(ctx: CommandContext, args: list[str]) -> str:
    if args and args[0].lower() == "json":
        ctx.console.print_json(json.dumps(ctx.agent.registry.describe()))
        return ""
    ctx.console.print(ctx.agent.registry.format_text(), markup=False, highlight=False)
    return ""


def _cmd_init(ctx: CommandContext, args: list[str]) -> str:
    root = Path(ctx.config.tools.working_dir)
    if args:
        root = root / Path(args[0]).expanduser()
    try:
        content = generate_agents_md(root)
    except ToolError as e:
        ctx.console.print(f"  [{ERROR}]{e.message}[/{ERROR}]")
        return ""
    ctx.console.print(f"  [{SUCCESS}]✓ Generated {AGENTS_FILE}[/{SUCCESS}]")
    lines = content.splitlines()
    preview = "\n".join(lines[:INIT_PREVIEW_LINES])
    if len(lines) > INIT_PREVIEW_LINES:
        preview += "\n..."
    ctx.console.print(preview, markup=False, highlight=False)
    ctx.console.print(f"  [{DIM}]Loaded into the system prompt from the next session.[/{DIM}]")
    return ""


def _cmd_exit(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.console.print(f"[{DIM}]Goodbye![/{DIM}]")
    return "quit"


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "/help": _cmd_help,
    "/clear": _cmd_clear,
    "/compact": _cmd_compact,
    "/config": _cmd_config,
    "/stats": _cmd_stats,
    "/tools": _cmd_tools,
    "/init": _cmd_init,
    "/exit": _cmd_exit,
}
