"""CLI entrypoint for lily-client."""

import logging
import sys
from pathlib import Path

import click
from rich.logging import RichHandler

from . import __version__
from .config import ClientConfig, load_config


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # pygls logs every message it sends at INFO
    logging.getLogger("pygls").setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(__version__, prog_name="lily-client")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="TOML file with a [tool.lily-client] table",
)
@click.option("--executable", type=str, default=None, help="Language server executable (default: lily)")
@click.option("--glob", "file_glob", type=str, default=None, help="Workspace files to forward (default: **/*.lily)")
@click.option("--channel", "diagnostic_channel", type=str, default=None, help="Diagnostic channel name")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    executable: str | None,
    file_glob: str | None,
    diagnostic_channel: str | None,
    verbose: bool,
) -> None:
    """lily-client - Lifecycle manager for the lily language server.

    Launches the server, keeps one session alive and forwards workspace
    file changes to it.
    """
    ctx.ensure_object(dict)
    _configure_logging(verbose)

    try:
        config = load_config(config_path).with_overrides(
            executable=executable,
            file_glob=file_glob,
            diagnostic_channel=diagnostic_channel,
        )
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    ctx.obj["config"] = config


@cli.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=".",
)
@click.pass_context
def serve(ctx: click.Context, root: Path) -> None:
    """Run the language server against a workspace.

    Runs until interrupted (Ctrl+C). Send SIGHUP to restart the server.

    Examples:

        lily-client serve

        lily-client --executable ./bin/lily serve ../project
    """
    from .commands.serve_cmd import run_serve

    sys.exit(run_serve(root, ctx.obj["config"]))


@cli.command()
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--wait",
    type=click.FloatRange(min=0, min_open=True),
    default=5.0,
    show_default=True,
    help="Seconds to wait for diagnostics",
)
@click.pass_context
def check(ctx: click.Context, files: tuple[Path, ...], wait: float) -> None:
    """Report diagnostics for FILES and exit.

    Exit status is 1 if any error was reported and 2 if the server
    could not be started.

    Examples:

        lily-client check src/main.lily

        lily-client check --wait 10 *.lily
    """
    from .commands.check_cmd import run_check

    sys.exit(run_check(list(files), ctx.obj["config"], wait))


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the resolved configuration."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    config: ClientConfig = ctx.obj["config"]
    table = Table(title="lily-client configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        table.add_row(key, escape(str(value)))
    Console().print(table)


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
