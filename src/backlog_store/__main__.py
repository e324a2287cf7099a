"""BacklogStore command line: serve the board API or initialize a backlog."""

import logging
from pathlib import Path

import typer
import uvicorn
from rich.console import Console

from backlog_store.factory import create_app, get_config
from backlog_store.scaffold import init_backlog

cli = typer.Typer(
    name="backlog-store",
    help="Markdown task backlog with a board API",
    no_args_is_help=False,
)

console = Console()


def _configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@cli.callback(invoke_without_command=True)
def cli_main(ctx: typer.Context) -> None:
    """
    Serve the backlog board API (default) or manage the backlog folder.

    Examples:
        backlog-store                  # Serve on BACKLOG_HOST:BACKLOG_PORT
        backlog-store init "My App"    # Create backlog/ with config.yml
    """
    if ctx.invoked_subcommand is None:
        serve()


@cli.command()
def serve(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run the HTTP and WebSocket server."""
    _configure_logging(logging.DEBUG if verbose else logging.INFO)
    config = get_config()
    uvicorn.run(
        create_app(),
        host=config.host,
        port=config.port,
        log_level="debug" if verbose else "info",
    )


@cli.command()
def init(
    project_name: str = typer.Argument(..., help="Project name written to config.yml"),
    prefix: str = typer.Option("task", "--prefix", "-p", help="Task id prefix (letters only)"),
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Board column; repeat for each status"
    ),
    check_branches: bool | None = typer.Option(
        None, "--check-branches/--no-check-branches", help="Show tasks from other branches"
    ),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Workspace root"),
) -> None:
    """
    Create a backlog folder with the standard layout and config.yml.

    Examples:
        backlog-store init "My App"
        backlog-store init "My App" --prefix bug -s Open -s Fixed
    """
    _configure_logging(logging.WARNING)
    try:
        backlog_path = init_backlog(
            workspace,
            project_name,
            task_prefix=prefix,
            statuses=status or None,
            backlog_folder=get_config().backlog_folder,
            check_active_branches=check_branches,
        )
    except (ValueError, FileExistsError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]Initialized backlog at[/green] {backlog_path}")


def main() -> None:
    """Run the application."""
    cli()


if __name__ == "__main__":
    main()
