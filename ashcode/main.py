"""
ashcode: AI coding assistant for your terminal.

Command: ashcode [run | ask MESSAGE... | config]
"""

import os
import sys
from types import SimpleNamespace

import click
from rich.console import Console

from . import __version__
from .agent import Agent
from .config import CONFIG_DIR, HISTORY_FILE, Config
from .errors import AgentError, ConfigError
from .logger import setup_logger
from .rendering import ConsoleSink, confirm_batch, render_config, render_error

console = Console()
BANNER = f"[bold cyan]ashcode[/bold cyan] [dim]v{__version__} · AI coding assistant[/dim]"


def _load_config(opts: SimpleNamespace, require_credentials: bool = True) -> Config:
    try:
        config = Config.load(opts.project_dir, config_path=opts.config_path)
        config.apply_overrides(api_key=opts.api_key, model=opts.model, base_url=opts.base_url)
        if opts.verbose:
            config.verbose = True
        if require_credentials:
            config.validate()
    except ConfigError as e:
        render_error(console, f"Configuration error: {e}")
        sys.exit(1)
    setup_logger("ashcode", verbose=config.verbose, log_file=opts.log_file)
    return config


def _render_startup(config: Config, approve_all: bool):
    console.print(
        f"[dim]model[/dim] [bold]{config.api.model}[/bold]"
        f" [dim]• api[/dim] {config.api.base_url}"
        f" [dim]• approve[/dim] {'all' if approve_all else 'ask'}"
    )
    console.print(f"[dim]project[/dim] {config.project_root}")
    console.print(f"[dim]config[/dim] {config.config_source or '(defaults)'}")
    console.print("[dim]/help · /tools · Ctrl+C to cancel[/dim]")
    console.print()


@click.group(invoke_without_command=True)
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="Config file path")
@click.option("--api-key", "-k", default=None, help="API key override")
@click.option("--model", "-m", default=None, help="Model name override")
@click.option("--base-url", "-b", default=None, help="API base URL override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--log", "log_file", default=None, help="Log file path")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--yes", "-y", "approve_all", is_flag=True, help="Approve every tool call")
@click.version_option(__version__, prog_name="ashcode")
@click.pass_context
def cli(ctx, config_path, api_key, model, base_url, project_dir, log_file, verbose, approve_all):
    """ashcode: AI coding assistant for your terminal."""
    ctx.obj = SimpleNamespace(
        config_path=config_path,
        api_key=api_key,
        model=model,
        base_url=base_url,
        project_dir=project_dir,
        log_file=log_file,
        verbose=verbose,
        approve_all=approve_all,
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.pass_obj
def run(opts):
    """Start an interactive session."""
    console.print(BANNER)
    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    config = _load_config(opts)
    _render_startup(config, opts.approve_all)

    agent = Agent(
        config,
        sink=ConsoleSink(console),
        approver=lambda calls: confirm_batch(console, calls),
        approve_all=opts.approve_all,
        use_reader_thread=True,
    )
    if not agent.project_instructions:
        console.print("[dim]  No AGENTS.md found. Use /init to generate one.[/dim]")

    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory
    from prompt_toolkit.key_binding import KeyBindings

    from .command_router import SlashCommandCompleter, handle_command

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    session = PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        multiline=False,
        completer=SlashCommandCompleter(),
        complete_while_typing=True,
    )

    repl_kb = KeyBindings()

    @repl_kb.add("escape", "enter")
    def _newline(event):
        event.current_buffer.insert_text("\n")

    while True:
        try:
            user_input = session.prompt("ashcode › ", key_bindings=repl_kb).strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            break

        if not user_input:
            continue

        if user_input.startswith("/"):
            result = handle_command(user_input, console=console, agent=agent, config=config)
            if result == "quit":
                break
            continue

        try:
            agent.chat(user_input)
        except KeyboardInterrupt:
            agent.cancel()
            console.print("\n[yellow]  Interrupted.[/yellow]")
        except AgentError as error:
            render_error(console, str(error))


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.pass_obj
def ask(opts, message):
    """Run a single query."""
    config = _load_config(opts)
    agent = Agent(
        config,
        sink=ConsoleSink(console),
        approver=lambda calls: False,
        approve_all=opts.approve_all,
    )
    outcome = agent.chat(" ".join(message))
    console.print()
    if not outcome.ok:
        sys.exit(1)


@cli.command("config")
@click.pass_obj
def config_cmd(opts):
    """Show configuration."""
    config = _load_config(opts, require_credentials=False)
    render_config(console, config.summary())


if __name__ == "__main__":
    cli()
