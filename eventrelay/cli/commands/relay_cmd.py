"""``eventrelay relay`` — consume a queue and dispatch deliveries as events.

Every delivery is dispatched under the event name (serialized events are
renamed to it) to a logging handler, then acked or nacked according to
the dispatch outcome.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from eventrelay.bridge.broker import BrokerConnectionError, open_channel
from eventrelay.bridge.relay import EventRelay
from eventrelay.cli.render import summary_table
from eventrelay.config import build_dispatcher, config
from eventrelay.core.handlers import SyncHandler
from eventrelay.core.interfaces import EventLike

console = Console()
logger = logging.getLogger(__name__)


def _log_event(event: EventLike) -> None:
    logger.info("Received %s: %r", event.name, event.payload)


def relay_cmd(
    queue: str = typer.Option(None, "--queue", "-q", help="Queue name (default: config.queue)."),
    event_name: str = typer.Option(
        None,
        "--event-name",
        help="Event name for deliveries (default: the queue name).",
    ),
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
    """Consume QUEUE and dispatch each delivery through the event dispatcher."""
    queue_name = queue or config.queue
    name = event_name or queue_name

    try:
        channel = open_channel(broker_url)
    except BrokerConnectionError as exc:
        console.print(f"[bold red]Connection failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    dispatcher = build_dispatcher()
    dispatcher.register(name, SyncHandler(_log_event, name="log_event"))
    relay = EventRelay(dispatcher, channel, queue_name, event_name=name)

    reports = []
    try:
        for report in relay.stream(max_deliveries=max_messages, inactivity_timeout=timeout):
            reports.append(report)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
    finally:
        dispatcher.close()
        channel.close()

    console.print(summary_table(reports))
