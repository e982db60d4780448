"""
orderq command line.

    orderq publish '{"orderId": "O1234", ...}'      enqueue an order
    orderq work --workers 4                          run consumer workers
    orderq sweep                                     expire overdue deliveries
    orderq status                                    messages per partition
    orderq orders show O1234                         read a stored order
    orderq dead-letters list                         inspect dead letters
    orderq dead-letters replay <message-id>          re-enqueue a dead letter

All settings come from ORDERQ_* environment variables (see orderq.config).
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import signal
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from orderq.config import get_settings
from orderq.core.orders import decode_order
from orderq.domain.errors import DecodeError, EscalationError, MessageNotFoundError
from orderq.domain.models import MessageStatus
from orderq.factory import Runtime, build_runtime
from orderq.log import setup_logging

app = typer.Typer(
    help="At-least-once order queue with dead-lettering",
    add_completion=False,
    no_args_is_help=True,
)
dead_letters_app = typer.Typer(help="Inspect and replay dead-lettered messages", no_args_is_help=True)
orders_app = typer.Typer(help="Read stored orders", no_args_is_help=True)
app.add_typer(dead_letters_app, name="dead-letters")
app.add_typer(orders_app, name="orders")

console = Console()


def _runtime() -> Runtime:
    try:
        settings = get_settings()
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2) from exc
    setup_logging(settings.log_level, settings.log_format)
    return build_runtime(settings)


# ---------------------------------------------------------------------------
# Producer
# ---------------------------------------------------------------------------


@app.command()
def publish(
    order: Optional[str] = typer.Argument(None, help="Order JSON"),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Read the order JSON from a file"
    ),
    delay: float = typer.Option(0.0, "--delay", min=0, help="Seconds before the message becomes visible"),
    check: bool = typer.Option(True, "--check/--no-check", help="Validate the order before enqueueing"),
) -> None:
    """Enqueue one order message and print its message id."""
    if (order is None) == (file is None):
        typer.echo("Pass either an order JSON argument or --file", err=True)
        raise typer.Exit(code=2)
    body = file.read_bytes() if file is not None else order.encode("utf-8")  # type: ignore[union-attr]
    if check:
        try:
            decode_order(body)
        except DecodeError as exc:
            typer.echo(f"Rejected: {exc}", err=True)
            raise typer.Exit(code=1) from exc

    runtime = _runtime()
    message_id = asyncio.run(runtime.store.enqueue(body, delay=timedelta(seconds=delay)))
    typer.echo(message_id)


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------


async def _work(
    runtime: Runtime, workers: int, max_cycles: int | None, until_empty: bool
) -> int:
    settings = runtime.settings
    handler = runtime.handler()
    pool = [runtime.worker(name=f"worker-{i}") for i in range(workers)]

    def _stop_all() -> None:
        for w in pool:
            w.stop()

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, _stop_all)
            installed.append(sig)
    try:
        results = await asyncio.gather(
            *(
                w.run(
                    settings.batch_size,
                    settings.visibility_timeout,
                    handler,
                    max_cycles=max_cycles,
                    until_empty=until_empty,
                )
                for w in pool
            )
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
    return sum(results)


@app.command()
def work(
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, help="Concurrent workers (default: ORDERQ_WORKERS)"),
    max_cycles: Optional[int] = typer.Option(None, "--max-cycles", min=1, help="Stop each worker after this many poll cycles"),
    until_empty: bool = typer.Option(False, "--until-empty", help="Stop each worker at its first empty poll"),
) -> None:
    """Run consumer workers that store orders from the queue."""
    runtime = _runtime()
    acked = asyncio.run(
        _work(runtime, workers or runtime.settings.workers, max_cycles, until_empty)
    )
    console.print(f"Acknowledged {acked} message(s)")


@app.command()
def sweep() -> None:
    """Return expired deliveries to the queue and flush dead letters."""
    runtime = _runtime()
    try:
        result = asyncio.run(runtime.store.sweep())
    except EscalationError as exc:
        console.print(f"[bold red]Dead-letter deposit failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(
        f"Redelivered {result.redelivered}, dead-lettered {result.dead_lettered}"
    )


@app.command()
def status() -> None:
    """Show message counts per partition."""
    runtime = _runtime()

    async def _collect() -> tuple[dict[MessageStatus, int], int]:
        counts = await runtime.store.counts()
        entries = await runtime.dead_letters.list()
        return counts, len(entries)

    counts, dead = asyncio.run(_collect())
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Partition")
    table.add_column("Messages", justify="right")
    for partition, count in counts.items():
        table.add_row(partition.value, str(count))
    table.add_row("dead_letter_sink", str(dead))
    console.print(table)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@orders_app.command("show")
def orders_show(order_id: str = typer.Argument(..., help="Order id")) -> None:
    """Print a stored order as JSON."""
    runtime = _runtime()
    record = asyncio.run(runtime.sink.get(order_id))
    if record is None:
        typer.echo(f"Order {order_id!r} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(record.to_row(), indent=2))


# ---------------------------------------------------------------------------
# Dead letters
# ---------------------------------------------------------------------------


@dead_letters_app.command("list")
def dead_letters_list(
    as_json: bool = typer.Option(False, "--json", help="One JSON object per line"),
) -> None:
    """List dead-lettered messages."""
    runtime = _runtime()
    entries = asyncio.run(runtime.dead_letters.list())
    if as_json:
        for entry in entries:
            typer.echo(entry.model_dump_json())
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Message id")
    table.add_column("Receives", justify="right")
    table.add_column("First seen")
    table.add_column("Last error")
    for entry in entries:
        table.add_row(
            entry.message_id,
            str(entry.receive_count),
            entry.first_seen.isoformat(),
            entry.last_error or "",
        )
    console.print(table)


@dead_letters_app.command("replay")
def dead_letters_replay(message_id: str = typer.Argument(..., help="Dead-lettered message id")) -> None:
    """Re-enqueue a dead-lettered message body as a new message."""
    runtime = _runtime()
    try:
        new_id = asyncio.run(runtime.store.replay(message_id))
    except MessageNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(new_id)


def main() -> None:
    app(prog_name="orderq")


if __name__ == "__main__":
    main()
