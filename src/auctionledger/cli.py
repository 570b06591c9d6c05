"""Auction ledger CLI for operators."""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_settings
from .errors import AuctionError
from .ledger import BidLedger
from .models import utcnow
from .storage import create_store

app = typer.Typer(name="auctionledger", help="Auction Ledger - live auction bids")
console = Console()

T = TypeVar("T")


def run_with_ledger(fn: Callable[[BidLedger], Awaitable[T]]) -> T:
    """Open the configured store, run ``fn`` against a ledger, close the store."""
    settings = get_settings()

    async def _run():
        store = create_store(settings)
        await store.open()
        try:
            return await fn(BidLedger(store))
        finally:
            await store.close()

    try:
        return asyncio.run(_run())
    except AuctionError as e:
        console.print(f"[bold red]{type(e).__name__}:[/] {e.message}")
        raise typer.Exit(code=1)


def _fmt_time(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "-"


def _fmt_amount(value: Optional[float]) -> str:
    return f"{value:.2f}" if value is not None else "-"


# ============================================================
# Server
# ============================================================

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
):
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "auctionledger.api:app",
        host=host or settings.host,
        port=port or settings.port,
    )


# ============================================================
# Auction Commands
# ============================================================

@app.command()
def status(product_id: str = typer.Argument(..., help="Product ID")):
    """Show the public status of an auction."""

    async def _status(ledger: BidLedger):
        s = await ledger.get_status(product_id, utcnow())
        ended = "[red]ended[/]" if s.auction_ended else "[green]open[/]"
        console.print(Panel(
            f"""[bold]Product:[/] {s.product_id}
[bold]State:[/] {ended}
[bold]Closes:[/] {_fmt_time(s.close_time)}
[bold]Highest bid:[/] {_fmt_amount(s.highest_amount)}
[bold]Leader:[/] {s.leader_name or '-'}""",
            title="Auction Status",
        ))

    run_with_ledger(_status)


@app.command()
def bid(
    product_id: str = typer.Argument(..., help="Product ID"),
    amount: float = typer.Option(..., help="Bid amount"),
    email: str = typer.Option(..., help="Bidder email"),
    name: str = typer.Option(..., help="Bidder display name"),
):
    """Place a bid."""

    async def _bid(ledger: BidLedger):
        s = await ledger.place_bid(product_id, email, name, amount, utcnow())
        console.print(f"[bold green]Bid accepted.[/] {s.leader_name} leads at {_fmt_amount(s.highest_amount)}")

    run_with_ledger(_bid)


@app.command()
def set_end(
    product_id: str = typer.Argument(..., help="Product ID"),
    end_time: str = typer.Argument(..., help="Close time, ISO-8601"),
):
    """Set an auction's close time."""

    async def _set_end(ledger: BidLedger):
        state = await ledger.set_close_time(product_id, end_time, utcnow())
        console.print(f"[bold green]{state.product_id} closes at[/] {_fmt_time(state.close_time)}")

    run_with_ledger(_set_end)


@app.command()
def reset(
    product_id: str = typer.Argument(..., help="Product ID"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
):
    """Delete all bids for an auction. Irreversible."""
    if not yes:
        typer.confirm(
            f"This permanently deletes every bid for {product_id}. Continue?",
            abort=True,
        )

    async def _reset(ledger: BidLedger):
        state = await ledger.reset_auction(product_id, utcnow())
        if state is None:
            console.print(f"[yellow]No auction state for {product_id}; nothing to clear.[/]")
        else:
            console.print(f"[bold green]Auction {product_id} reset.[/]")

    run_with_ledger(_reset)


@app.command()
def highest(product_id: str = typer.Argument(..., help="Product ID")):
    """Show the current leader, including email."""

    async def _highest(ledger: BidLedger):
        h = await ledger.get_highest(product_id)
        console.print(Panel(
            f"""[bold]Product:[/] {h.product_id}
[bold]Highest bid:[/] {_fmt_amount(h.highest_amount)}
[bold]Leader:[/] {h.leader_name or '-'} <{h.leader_email or '-'}>
[bold]Closes:[/] {_fmt_time(h.close_time)}
[bold]Winner notified:[/] {_fmt_time(h.notified_at)}""",
            title="Highest Bid",
        ))

    run_with_ledger(_highest)


@app.command()
def bids(product_id: str = typer.Argument(..., help="Product ID")):
    """List the bid history for an auction."""

    async def _bids(ledger: BidLedger):
        history = await ledger.list_bids(product_id)
        if not history:
            console.print(f"[yellow]No bids for {product_id}.[/]")
            return

        table = Table(title=f"Bids for {product_id}")
        table.add_column("Submitted", style="cyan")
        table.add_column("Bidder", style="green")
        table.add_column("Email")
        table.add_column("Amount", justify="right")
        for b in history:
            table.add_row(_fmt_time(b.submitted_at), b.bidder_name, b.bidder_email, _fmt_amount(b.amount))
        console.print(table)

    run_with_ledger(_bids)


@app.command()
def clear_notified(product_id: str = typer.Argument(..., help="Product ID")):
    """Allow the winner email to be sent again."""

    async def _clear(ledger: BidLedger):
        if await ledger.clear_notified(product_id, utcnow()):
            console.print(f"[bold green]Notification cleared for {product_id}.[/]")
        else:
            console.print(f"[yellow]No auction state for {product_id}.[/]")

    run_with_ledger(_clear)


if __name__ == "__main__":
    app()
