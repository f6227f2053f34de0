"""
trae-agent CLI - run one instruction-file driven task.

    trae -f TRAE.md "Create a weather app"
    trae -f instructions.md
    trae --list-tools
"""

import logging
import shlex
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from traeagent import __version__
from traeagent.core.session import AgentSession, build_task_message, load_instructions
from traeagent.providers.base import ModelCallError
from traeagent.validation.config import Config, ConfigError

console = Console()


def setup_logging(verbose: bool) -> None:
    """Route library logs through rich; quiet unless --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _type_label(param_type) -> str:
    if param_type is None:
        return "any"
    if isinstance(param_type, list):
        return " | ".join(param_type)
    return param_type


def _print_tools(session: AgentSession) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Source", style="dim")
    table.add_column("Parameters")
    table.add_column("Description")

    for entry in session.registry:
        params = ", ".join(
            f"{p.name}{'' if p.required else '?'}: {_type_label(p.type)}" for p in entry.tool.params
        )
        table.add_row(entry.tool.name, entry.tool.source, params, entry.tool.description)

    console.print(table)
    if session.server_info:
        console.print(
            f"[dim]MCP server: {session.server_info.get('name', '?')} "
            f"{session.server_info.get('version', '')}[/dim]"
        )


@click.command()
@click.option("--file", "-f", "instruction_file", type=click.Path(path_type=Path), help="Instruction file (e.g. TRAE.md)")
@click.option("--model", "-m", default=None, help="Model identifier")
@click.option("--base-url", default=None, help="OpenAI-compatible API base URL")
@click.option("--max-iterations", type=click.IntRange(min=1), default=None, help="Max tool-call iterations per turn")
@click.option("--no-mcp", is_flag=True, help="Use built-in tools only")
@click.option("--mcp-command", default=None, help="Command line starting the MCP server")
@click.option("--list-tools", is_flag=True, help="List available tools and exit")
@click.option("--verbose", is_flag=True, help="Show debug logs")
@click.version_option(__version__, "--version", "-v", prog_name="trae")
@click.argument("task", required=False, nargs=-1)
def cli(
    instruction_file: Optional[Path],
    model: Optional[str],
    base_url: Optional[str],
    max_iterations: Optional[int],
    no_mcp: bool,
    mcp_command: Optional[str],
    list_tools: bool,
    verbose: bool,
    task: tuple,
) -> None:
    """Run TASK following the instructions in an instruction file."""
    setup_logging(verbose)

    overrides = {
        "provider.model": model,
        "provider.base_url": base_url,
        "agent.max_tool_iterations": max_iterations,
        "mcp.enabled": False if no_mcp else None,
    }
    if mcp_command:
        parts = shlex.split(mcp_command)
        if not parts:
            raise click.BadParameter("empty command", param_hint="--mcp-command")
        overrides["mcp.command"] = parts[0]
        overrides["mcp.args"] = parts[1:]

    if not list_tools and instruction_file is None:
        raise click.UsageError("Please provide an instruction file with -f")

    message = None
    if not list_tools:
        instructions = load_instructions(instruction_file)
        if instructions is None:
            console.print(f"[red]Could not load instructions from: {instruction_file}[/red]")
            sys.exit(1)
        task_text = " ".join(task) if task else None
        message = build_task_message(instruction_file, instructions, task_text)
        console.print(f"[dim]Loading instructions from: {instruction_file}[/dim]")
        if task_text:
            console.print(f"[cyan]Task:[/cyan] {escape(task_text)}")

    try:
        config = Config.load().with_overrides(**overrides)
        with AgentSession(config) as session:
            if list_tools:
                _print_tools(session)
                return

            with console.status("[bold blue]Agent is thinking...[/bold blue]"):
                result = session.run_turn(message)
    except (ConfigError, ModelCallError) as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(1)

    console.print(Panel(Markdown(result.output or "(empty response)"), title="TRAE Response", border_style="blue"))
    summary = f"{result.model_calls} model call(s), {len(result.tool_calls)} tool call(s)"
    if result.tool_calls:
        summary += f": {', '.join(result.tool_calls)}"
    if result.forced_final:
        summary += " [yellow](iteration limit reached)[/yellow]"
    console.print(f"[dim]{summary}[/dim]")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
