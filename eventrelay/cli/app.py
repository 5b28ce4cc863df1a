"""Main Typer application — imports and registers all CLI commands.

Entry point: ``eventrelay`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from eventrelay.cli.commands.consume import consume_cmd
from eventrelay.cli.commands.demo import demo_cmd
from eventrelay.cli.commands.publish import publish_cmd
from eventrelay.cli.commands.relay_cmd import relay_cmd
from eventrelay.config import config

app = typer.Typer(
    name="eventrelay",
    help="Eventrelay: in-process event dispatch with a message-broker bridge.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="publish", help="Publish a message to a broker exchange.")(publish_cmd)
app.command(name="consume", help="Print and acknowledge deliveries from a queue.")(consume_cmd)
app.command(name="relay", help="Dispatch queue deliveries as events.")(relay_cmd)
app.command(name="demo", help="Run an in-process fan-out demo.")(demo_cmd)


def configure_logging(level: str) -> None:
    """Send root logging through Rich on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (default: config.log_level, or DEBUG when config.debug is set).",
    ),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level or config.effective_log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
