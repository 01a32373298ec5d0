"""
CLI for workspace-sandbox.

Exposes each workspace tool as a subcommand so the sandbox can be driven
by hand or from scripts.
"""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from workspace_sandbox import __version__
from workspace_sandbox.exceptions import OperationCancelledError, WorkspaceRootError
from workspace_sandbox.settings.config import SandboxSettings
from workspace_sandbox.tools import WorkspaceTools

# Load environment variables
load_dotenv()

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """Setup rich logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


def _fail(result: dict[str, Any]) -> None:
    """Print a failed tool result and exit non-zero."""
    err_console.print(
        f"[bold red]{result['error_type']}[/bold red] "
        f"[dim]({result['code']})[/dim]: {result['error']}"
    )
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--workspace",
    "-w",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Workspace root (default: settings or current directory)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML/JSON settings file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, workspace: Optional[Path], config_path: Optional[Path], verbose: bool):
    """Workspace Sandbox CLI - confined file and command tools."""
    if config_path:
        settings = SandboxSettings.from_file(config_path)
    else:
        settings = SandboxSettings()

    setup_logging(settings.log_level, verbose)

    try:
        ctx.obj = WorkspaceTools(settings, workspace_root=workspace)
    except WorkspaceRootError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument("path")
@click.option("--offset", type=int, default=0, help="Byte offset to start at")
@click.option("--limit", type=int, default=None, help="Maximum bytes to read")
@click.option("--raw", is_flag=True, help="Print content without highlighting")
@click.pass_obj
def read(tools: WorkspaceTools, path: str, offset: int, limit: Optional[int], raw: bool):
    """Read a text file."""
    result = asyncio.run(tools.read_file(path, offset=offset, limit=limit))
    if not result["success"]:
        _fail(result)

    if raw:
        click.echo(result["content"], nl=False)
    else:
        lexer = Syntax.guess_lexer(result["relative_path"], code=result["content"])
        console.print(Syntax(result["content"], lexer, line_numbers=True))
    if result["truncated"]:
        err_console.print(
            f"[yellow]Truncated: {result['size']} bytes total[/yellow]"
        )


@cli.command()
@click.argument("path")
@click.option("--mode", type=str, default=None, help="Octal permission bits, e.g. 644")
@click.pass_obj
def write(tools: WorkspaceTools, path: str, mode: Optional[str]):
    """
    Create a new file with content from stdin.

    Examples:

        echo "hello" | workspace-sandbox write notes/hello.txt
    """
    file_mode = None
    if mode:
        try:
            file_mode = int(mode, 8)
        except ValueError:
            raise click.BadParameter(f"Expected octal permission bits, got {mode!r}", param_hint="--mode")
    content = sys.stdin.read()
    result = asyncio.run(tools.write_file(path, content, mode=file_mode))
    if not result["success"]:
        _fail(result)
    console.print(
        f"[green]Wrote {result['bytes_written']} bytes to {result['relative_path']}[/green]"
    )


@cli.command()
@click.argument("path")
@click.option("--before", default=None, help="Text to replace")
@click.option("--after", default=None, help="Replacement text")
@click.option("--count", type=int, default=None, help="Expected number of replacements")
@click.pass_obj
def edit(
    tools: WorkspaceTools,
    path: str,
    before: Optional[str],
    after: Optional[str],
    count: Optional[int],
):
    """
    Edit a file by replacing text.

    Either pass a single replacement with --before/--after, or a JSON list
    of operations on stdin:

        echo '[{"before": "foo", "after": "bar"}]' | workspace-sandbox edit a.py
    """
    if before is not None or after is not None:
        operations = [
            {
                "before": before or "",
                "after": after or "",
                "expected_replacements": count,
            }
        ]
    else:
        try:
            operations = json.loads(sys.stdin.read())
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON operations: {e}")
        if not isinstance(operations, list):
            raise click.BadParameter("Operations must be a JSON list")

    result = asyncio.run(tools.edit_file(path, operations))
    if not result["success"]:
        _fail(result)

    if result["diff"]:
        console.print(Syntax(result["diff"], "diff"))
    console.print(
        f"[green]Applied {result['operations_applied']} operation(s) to "
        f"{result['relative_path']} (+{result['added_lines']} -{result['removed_lines']})[/green]"
    )


@cli.command(name="ls")
@click.argument("path", default="")
@click.option("--depth", "-d", type=int, default=0, help="Max depth (-1 for unlimited)")
@click.option("--all", "-a", "include_ignored", is_flag=True, help="Include gitignored entries")
@click.option("--offset", type=int, default=0)
@click.option("--limit", type=int, default=0)
@click.pass_obj
def list_cmd(
    tools: WorkspaceTools,
    path: str,
    depth: int,
    include_ignored: bool,
    offset: int,
    limit: int,
):
    """List a directory."""
    result = asyncio.run(
        tools.list_directory(
            path,
            max_depth=depth,
            include_ignored=include_ignored,
            offset=offset,
            limit=limit,
        )
    )
    if not result["success"]:
        _fail(result)

    for entry in result["entries"]:
        if entry["is_dir"]:
            console.print(f"[bold blue]{entry['relative_path']}/[/bold blue]")
        else:
            console.print(entry["relative_path"])
    _print_paging(result)


@cli.command()
@click.argument("pattern")
@click.argument("path", default="")
@click.option("--depth", "-d", type=int, default=0, help="Max depth (0 for unlimited)")
@click.option("--all", "-a", "include_ignored", is_flag=True, help="Include ignored/hidden files")
@click.option("--offset", type=int, default=0)
@click.option("--limit", type=int, default=0)
@click.pass_obj
def find(
    tools: WorkspaceTools,
    pattern: str,
    path: str,
    depth: int,
    include_ignored: bool,
    offset: int,
    limit: int,
):
    """Find files by glob pattern."""
    result = asyncio.run(
        tools.find_files(
            pattern,
            search_path=path,
            max_depth=depth,
            include_ignored=include_ignored,
            offset=offset,
            limit=limit,
        )
    )
    if not result["success"]:
        _fail(result)

    for match in result["matches"]:
        console.print(match)
    _print_paging(result)


@cli.command()
@click.argument("query")
@click.argument("path", default="")
@click.option("--ignore-case", "-i", is_flag=True, help="Case insensitive search")
@click.option("--all", "-a", "include_ignored", is_flag=True, help="Include gitignored files")
@click.option("--offset", type=int, default=0)
@click.option("--limit", type=int, default=0)
@click.pass_obj
def grep(
    tools: WorkspaceTools,
    query: str,
    path: str,
    ignore_case: bool,
    include_ignored: bool,
    offset: int,
    limit: int,
):
    """Search file contents with a regular expression."""
    result = asyncio.run(
        tools.search_content(
            query,
            search_path=path,
            case_sensitive=not ignore_case,
            include_ignored=include_ignored,
            offset=offset,
            limit=limit,
        )
    )
    if not result["success"]:
        _fail(result)

    table = Table(show_header=True, header_style="bold")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right", style="green")
    table.add_column("Content")
    for match in result["matches"]:
        table.add_row(match["file"], str(match["line_number"]), match["line_content"])
    console.print(table)
    _print_paging(result)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("argv", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--cwd", "working_dir", default="", help="Working directory in the workspace")
@click.option("--timeout", "-t", type=float, default=None, help="Timeout in seconds")
@click.option("--env", "-e", "env_pairs", multiple=True, help="KEY=VALUE (repeatable)")
@click.option("--env-file", "env_files", multiple=True, help=".env file (repeatable)")
@click.pass_obj
def run(
    tools: WorkspaceTools,
    argv: tuple[str, ...],
    working_dir: str,
    timeout: Optional[float],
    env_pairs: tuple[str, ...],
    env_files: tuple[str, ...],
):
    """
    Run a command in the workspace.

    Examples:

        workspace-sandbox run -- pytest -q

        workspace-sandbox run --cwd backend --timeout 60 -- make test
    """
    env = {}
    for pair in env_pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value

    try:
        result = asyncio.run(
            _run_command(tools, list(argv), working_dir, timeout, env, list(env_files))
        )
    except OperationCancelledError:
        err_console.print("[yellow]Command cancelled.[/yellow]")
        sys.exit(130)

    payload = result.get("result", result)
    if payload.get("stdout"):
        click.echo(payload["stdout"], nl=False)
    if payload.get("stderr"):
        click.echo(payload["stderr"], nl=False, err=True)

    if not result["success"]:
        _fail(result)

    for note in result["notes"]:
        err_console.print(Panel(note, title="Note"))
    if result["truncated"]:
        err_console.print("[yellow]Output truncated.[/yellow]")
    sys.exit(result["exit_code"] if 0 <= result["exit_code"] < 256 else 1)


async def _run_command(
    tools: WorkspaceTools,
    argv: list[str],
    working_dir: str,
    timeout: Optional[float],
    env: dict[str, str],
    env_files: list[str],
) -> dict[str, Any]:
    """Run a command, cancelling it on SIGINT/SIGTERM."""
    cancel_event = asyncio.Event()

    def signal_handler():
        logger.info("Interrupt received, stopping command")
        cancel_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        return await tools.run_command(
            argv,
            working_dir=working_dir,
            timeout_seconds=timeout,
            env=env,
            env_files=env_files,
            cancel_event=cancel_event,
        )
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def _print_paging(result: dict[str, Any]) -> None:
    shown = len(result.get("entries", result.get("matches", [])))
    if result["truncated"]:
        reason = result.get("truncation_reason") or "pagination"
        err_console.print(
            f"[dim]Showing {shown} of {result['total_count']} "
            f"(offset {result['offset']}, truncated: {reason})[/dim]"
        )


if __name__ == "__main__":
    cli()
