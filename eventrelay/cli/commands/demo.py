"""``eventrelay demo`` — in-process fan-out on ``order.created``.

Registers several handlers that sleep for different lengths of time,
dispatches a single order event, and renders the resulting report.
"""

from __future__ import annotations

import random
import threading
import time

import typer
from rich.console import Console
from rich.panel import Panel

from eventrelay.cli.render import report_table
from eventrelay.config import build_dispatcher
from eventrelay.core.interfaces import CompletionSignal, EventLike
from eventrelay.models.events import Event

console = Console()


class _DemoHandler:
    """Sleeps, then records which thread it ran on."""

    def __init__(self, index: int, delay: float, log: list[str], lock: threading.Lock) -> None:
        self.handler_name = f"demo-handler-{index}"
        self._delay = delay
        self._log = log
        self._lock = lock

    def handle(self, event: EventLike, done: CompletionSignal) -> None:
        time.sleep(self._delay)
        with self._lock:
            self._log.append(
                f"{self.handler_name} saw order {event.payload['id']} "
                f"on {threading.current_thread().name}"
            )
        done()


def demo_cmd(
    handlers: int = typer.Option(3, "--handlers", "-n", min=1, help="Number of handlers."),
    delay: float = typer.Option(
        0.2, "--delay", "-d", min=0.0, help="Maximum per-handler sleep in seconds."
    ),
) -> None:
    """Dispatch one ``order.created`` event to several concurrent handlers."""
    dispatcher = build_dispatcher()
    log: list[str] = []
    lock = threading.Lock()

    for index in range(1, handlers + 1):
        dispatcher.register(
            "order.created",
            _DemoHandler(index, random.uniform(0, delay), log, lock),
        )

    event = Event[dict[str, str]](name="order.created", payload={"id": "42"})

    console.print()
    console.print(
        Panel(
            f"[bold]Dispatching[/bold] {event.name} to {handlers} handler(s)\n"
            f"[dim]event_id={event.event_id}[/dim]",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    started = time.perf_counter()
    try:
        report = dispatcher.dispatch(event)
    finally:
        dispatcher.close()
    elapsed_ms = (time.perf_counter() - started) * 1000.0

    for line in log:
        console.print(f"  [dim]{line}[/dim]")
    console.print(report_table(report))
    status = "[bold green]all completed[/bold green]" if report.ok else "[bold red]failures[/bold red]"
    console.print(f"Dispatch returned after {elapsed_ms:.1f} ms: {status}")
