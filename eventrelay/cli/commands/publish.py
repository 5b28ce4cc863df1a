"""``eventrelay publish`` — publish one message to a broker exchange."""

from __future__ import annotations

import typer
from rich.console import Console

from eventrelay.bridge.broker import BrokerConnectionError, BrokerError, open_channel, publish
from eventrelay.config import config

console = Console()


def publish_cmd(
    message: str = typer.Argument(..., help="Message body to publish."),
    exchange: str = typer.Option(
        None, "--exchange", "-e", help="Destination exchange (default: config.exchange)."
    ),
    routing_key: str = typer.Option("", "--routing-key", "-k", help="Routing key."),
    broker_url: str = typer.Option(
        None, "--broker-url", help="Broker URL (default: config.broker_url)."
    ),
) -> None:
    """Open a channel, publish MESSAGE, and close the channel."""
    destination = exchange or config.exchange
    try:
        channel = open_channel(broker_url)
    except BrokerConnectionError as exc:
        console.print(f"[bold red]Connection failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    try:
        publish(channel, message, destination, routing_key)
    except BrokerError as exc:
        console.print(f"[bold red]Publish failed:[/bold red] {exc}")
        raise typer.Exit(code=1)
    finally:
        channel.close()

    console.print(
        f"[bold green]Published[/bold green] {len(message)} chars to "
        f"[cyan]{destination}[/cyan] (routing key: {routing_key or '-'})"
    )
