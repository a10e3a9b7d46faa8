"""CLI root — entry point for all logtail subcommands.

Entry points:
  uv run logtail          (recommended)
  python -m logtail

Command surface:
  logtail tail            tail a directory, printing records on stdout
  logtail config show     print resolved configuration
"""

from pathlib import Path

import typer

from logtail import __version__
from logtail.logging import get_logger

app = typer.Typer(
    name="logtail",
    help="Tail rotating CRLF log files in a directory.",
    no_args_is_help=True,
)

_log = get_logger(__name__)


def _print_record(record: str) -> None:
    typer.echo(record)


# ---------------------------------------------------------------------------
# Global callback — runs before every subcommand
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"logtail {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit.",
    ),
) -> None:
    """Tail rotating CRLF log files in a directory."""
    # Eager options (--version) raise typer.Exit() before this body runs,
    # so configure_logging() is only called for real subcommands.
    from logtail.logging import configure_logging

    configure_logging()


# ---------------------------------------------------------------------------
# tail
# ---------------------------------------------------------------------------


@app.command("tail")
def tail(
    directory: Path | None = typer.Argument(
        None,
        help="Directory to watch.  Defaults to watch.directory from settings.",
    ),
    pattern: str = typer.Option(
        "",
        "--pattern",
        "-p",
        help="Glob for file names to tail.  Empty = watch.pattern from settings.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Print the files that would be tailed, in order, and exit.",
    ),
) -> None:
    """Tail matching files and print every record on stdout.

    Files already in the directory are drained oldest-first; files that
    appear later are tailed in arrival order.  Each record is printed on
    its own line without its CR LF terminator.  Lifecycle events (file
    started / completed) go to the log on stderr.  Stop with Ctrl-C.
    """
    from logtail.config import get_settings
    from logtail.engine import LogTailer, TailerError
    from logtail.notifier import NotifierError

    settings = get_settings()
    directory = directory if directory is not None else settings.watch.directory
    pattern = pattern or settings.watch.pattern

    if not directory.is_dir():
        typer.echo(f"Error: not a directory: {directory}", err=True)
        raise typer.Exit(2)

    tailer = LogTailer(directory, pattern, settings=settings)

    if dry_run:
        pending = tailer.pending
        for path in pending:
            typer.echo(f"  {path}")
        typer.echo(f"\nDry run — {len(pending)} file(s) would be tailed")
        return

    tailer.set_record_processor(_print_record)
    tailer.on_file_started(lambda path: _log.info("file started", path=str(path)))
    tailer.on_file_completed(lambda path: _log.info("file completed", path=str(path)))

    try:
        tailer.start()
    except NotifierError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    try:
        while not tailer.join(timeout=0.5):
            pass
    except KeyboardInterrupt:
        _log.info("interrupted, stopping")

    try:
        tailer.stop()
    except TailerError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


# ---------------------------------------------------------------------------
# config subcommands
# ---------------------------------------------------------------------------

_config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(_config_app, name="config")


@_config_app.command("show")
def config_show() -> None:
    """Print the fully-resolved configuration and exit.

    Shows which config file was loaded and the final value of every setting
    after environment-variable overrides are applied.  Useful for confirming
    that LOGTAIL_* overrides are being picked up correctly.
    """
    from logtail.config import _config_file, get_settings

    settings = get_settings()

    typer.echo(f"\n  config : {_config_file()}\n")

    for section_name, section in settings.model_dump().items():
        typer.echo(f"  [{section_name}]")
        width = max(len(k) for k in section)
        for key, val in section.items():
            typer.echo(f"  {key.ljust(width)} = {val}")
        typer.echo()
