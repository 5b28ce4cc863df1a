"""``eventrelay consume`` — print and acknowledge deliveries from a queue."""

from __future__ import annotations

import typer
from rich.console import Console

from eventrelay.bridge.broker import BrokerConnectionError, consume, open_channel
from eventrelay.config import config

console = Console()


def consume_cmd(
    queue: str = typer.Option(None, "--queue", "-q", help="Queue name (default: config.queue)."),
    max_messages: int = typer.Option(
        None, "--max", "-n", min=1, help="Stop after this many deliveries."
    ),
    timeout: float = typer.Option(
        None, "--timeout", "-t", help="Stop after this many idle seconds."
    ),
    broker_url: str = typer.Option(
        None, "--broker-url", help="Broker URL (default: config.broker_url)."
    ),
) -> None:
    """Print each delivery body and ack it.

    Runs until interrupted unless --max or --timeout is given.
    """
    queue_name = queue or config.queue
    try:
        channel = open_channel(broker_url)
    except BrokerConnectionError as exc:
        console.print(f"[bold red]Connection failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    received = 0
    try:
        for delivery in consume(channel, queue_name, inactivity_timeout=timeout):
            console.print(delivery.text, markup=False, highlight=False)
            delivery.ack()
            received += 1
            if max_messages is not None and received >= max_messages:
                break
    except KeyboardInterrupt:
        pass
    finally:
        channel.close()

    console.print(f"[dim]{received} message(s) consumed from {queue_name}.[/dim]")
