# main.py is the command line entry point: it runs single widget tool calls
# against the production bindings configured in the environment.

import asyncio
import json

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from config import setup_logging
from tools import ToolCollection, ToolResult, WidgetError, build_default_tools
from utils.json_utils import safe_json_loads

console = Console()


def render_result(result: ToolResult) -> None:
    """Pretty-print a tool result: JSON outputs highlighted, markdown as text."""
    title = f"{result.tool_name} · {result.command}"
    if result.output:
        if result.output.lstrip().startswith("{"):
            body = Syntax(result.output, "json", theme="monokai", word_wrap=True)
        else:
            body = result.output
        style = "red" if result.error else "green"
        console.print(Panel(body, title=title, border_style=style))
    elif result.error:
        console.print(Panel(result.error, title=title, border_style="red"))


@click.group()
def cli():
    """Widget workspace tools CLI"""
    load_dotenv()
    setup_logging()


@cli.command()
@click.argument("tool_name")
@click.argument("arguments", default="{}")
def run(tool_name, arguments):
    """Run TOOL_NAME with a JSON object of ARGUMENTS."""
    tool_input = safe_json_loads(arguments)
    if not isinstance(tool_input, dict):
        raise click.BadParameter("arguments must be a JSON object", param_hint="ARGUMENTS")
    try:
        collection = build_default_tools()
    except WidgetError as e:
        console.print(f"[bold red]{e.label}:[/bold red] {e.message}")
        raise SystemExit(2)

    result = asyncio.run(collection.run(tool_name, tool_input))
    render_result(result)
    if result.error:
        raise SystemExit(1)


@cli.command(name="tools")
def list_tools():
    """Print the function-calling schema of every tool."""
    try:
        collection: ToolCollection = build_default_tools()
    except WidgetError as e:
        console.print(f"[bold red]{e.label}:[/bold red] {e.message}")
        raise SystemExit(2)
    console.print(Syntax(json.dumps(collection.to_params(), indent=2), "json", theme="monokai"))


if __name__ == "__main__":
    cli()
