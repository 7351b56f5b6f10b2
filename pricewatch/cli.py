"""Command-line interface for tracking prices."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from pricewatch import main as runner
from pricewatch.config import CURRENCY
from pricewatch.discovery import load_or_discover
from pricewatch.errors import CooldownActive, PriceWatchError
from pricewatch.models import AlertType, TrackedItem
from pricewatch.notifiers import AlertLog
from pricewatch.tracker import TrackingEngine, is_below_threshold, price_percentage

app = typer.Typer(help="Track product prices and get alerted on drops.")
console = Console()
ITEM_ARGUMENT = typer.Argument(..., help="Tracked item id.")

ALERT_STYLES = {
    AlertType.SUCCESS: "green",
    AlertType.ALERT: "bold magenta",
    AlertType.UPDATE: "yellow",
    AlertType.ERROR: "red",
}


def _engine(alert_log: AlertLog) -> TrackingEngine:
    return runner.build_engine(alert_log)


def _print_alerts(alert_log: AlertLog) -> None:
    for alert in reversed(alert_log.alerts):
        console.print(f"[{ALERT_STYLES[alert.type]}]{alert.message}[/]")


def _fail(exc: PriceWatchError) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(code=1) from exc


def _money(value: float | None) -> str:
    return f"{CURRENCY} {value:,.2f}" if value is not None else "-"


def _item_row(item: TrackedItem, ratio: float) -> list[str]:
    percent = price_percentage(item.current_price, item.retail_price)
    flags = []
    if item.has_open_offer:
        flags.append("offer")
    if is_below_threshold(item.current_price, item.retail_price, ratio):
        flags.append("deep discount")
    if item.out_of_stock:
        flags.append("out of stock")
    if item.alert_triggered:
        flags.append("alerted")
    return [
        item.id,
        item.sku,
        item.name[:40],
        _money(item.current_price),
        _money(item.retail_price),
        f"{percent}%" if percent else "-",
        ", ".join(flags),
    ]


@app.command()
def add(
    url: str = typer.Argument(..., help="Product page URL."),
    project: str | None = typer.Option(None, help="Project id to file the item under."),
) -> None:
    """Start tracking a product."""

    alert_log = AlertLog()
    engine = _engine(alert_log)
    try:
        item = engine.add_item(url, project_id=project)
    except PriceWatchError as exc:
        _fail(exc)
    _print_alerts(alert_log)
    console.print(f"id {item.id}: {_money(item.current_price)}")


@app.command()
def check(item_id: str = ITEM_ARGUMENT) -> None:
    """Check an item's price now."""

    alert_log = AlertLog()
    engine = _engine(alert_log)
    try:
        item = engine.check_price(item_id, is_background=False)
    except CooldownActive as exc:
        console.print(f"[cyan]{exc}[/cyan]")
        return
    except PriceWatchError as exc:
        _print_alerts(alert_log)
        _fail(exc)
    _print_alerts(alert_log)
    console.print(f"{item.name}: {_money(item.current_price)}")


@app.command(name="list")
def list_items(
    history: bool = typer.Option(False, "--history", help="Show items moved to history."),
) -> None:
    """Show tracked items."""

    engine = _engine(AlertLog())
    items = engine.deleted_items() if history else engine.list_items()
    table = Table(title="History" if history else "Tracked items")
    for column in ("ID", "SKU", "Name", "Price", "Retail", "% of retail", "Flags"):
        table.add_column(column)
    for item in items:
        table.add_row(*_item_row(item, engine.policy.deep_discount_ratio))
    console.print(table)


@app.command()
def delete(item_id: str = ITEM_ARGUMENT) -> None:
    """Move an item to history."""

    try:
        item = _engine(AlertLog()).delete_item(item_id)
    except PriceWatchError as exc:
        _fail(exc)
    console.print(f"[yellow]{item.name} moved to history[/yellow]")


@app.command()
def restore(item_id: str = ITEM_ARGUMENT) -> None:
    """Bring an item back from history."""

    try:
        item = _engine(AlertLog()).restore_item(item_id)
    except PriceWatchError as exc:
        _fail(exc)
    console.print(f"[green]{item.name} restored[/green]")


@app.command(name="reset-alert")
def reset_alert(item_id: str = ITEM_ARGUMENT) -> None:
    """Re-arm the deep-discount alert for an item."""

    try:
        item = _engine(AlertLog()).reset_alert(item_id)
    except PriceWatchError as exc:
        _fail(exc)
    console.print(f"Alert re-armed for {item.name}")


@app.command()
def recheck(item_ids: list[str] = typer.Argument(..., help="Ids of items in history.")) -> None:
    """Re-check items from history; those found again become active."""

    alert_log = AlertLog(maxlen=100)
    engine = _engine(alert_log)
    try:
        restored = engine.check_selected(item_ids)
    except PriceWatchError as exc:
        _fail(exc)
    _print_alerts(alert_log)
    console.print(f"{len(restored)} of {len(item_ids)} items restored")


@app.command()
def project(
    name: str = typer.Argument(..., help="Project name."),
    category: str = typer.Option("General", help="Project category."),
) -> None:
    """Create a project to group items."""

    created = _engine(AlertLog()).create_project(name, category)
    console.print(f"Project {created.name} ({created.category}): {created.id}")


@app.command()
def discover(
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the 24 hour offer cache."),
) -> None:
    """List current offers from the promotion pages."""

    engine = _engine(AlertLog())
    try:
        offers, cached = load_or_discover(engine.store, refresh=refresh)
    except PriceWatchError as exc:
        _fail(exc)
    if cached:
        console.print("[cyan]Using cached offers (refreshes every 24 hours)[/cyan]")
    if not offers:
        console.print("No offers found on promotion pages")
        return

    table = Table(title=f"{len(offers)} offers")
    for column in ("SKU", "Name", "Price", "Was", "Discount"):
        table.add_column(column)
    for offer in offers:
        table.add_row(
            offer.sku or "-",
            offer.name[:50],
            _money(offer.price),
            _money(offer.original_price),
            offer.discount or "",
        )
    console.print(table)


@app.command()
def run() -> None:
    """Run the background scheduler."""

    runner.main()


if __name__ == "__main__":  # pragma: no cover
    app()
