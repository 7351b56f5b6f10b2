"""Tests for the typer command-line interface."""

import pytest
from rich.console import Console
from typer.testing import CliRunner

from pricewatch import cli
from pricewatch.errors import HttpError, NavigationError
from pricewatch.models import DiscoveredOffer

PRODUCT_URL = "https://www.carrefour.ke/mafken/en/dairy/fresh-milk-500ml/p/12345"

runner = CliRunner()


@pytest.fixture(autouse=True)
def wired_cli(monkeypatch, make_engine):
    monkeypatch.setattr(cli, "_engine", lambda alert_log: make_engine(sinks=[alert_log]))
    monkeypatch.setattr(cli, "console", Console(width=200))


def _add(source, *prices: float) -> str:
    source.push_prices(*prices)
    result = runner.invoke(cli.app, ["add", PRODUCT_URL])
    assert result.exit_code == 0, result.output
    return result.output


def _only_id(store) -> str:
    (item,) = store.load_items()
    return item.id


def test_add(source) -> None:
    output = _add(source, 1000)

    assert "✓ Added Fresh Milk" in output
    assert "KES 1,000.00" in output


def test_add_invalid_link() -> None:
    result = runner.invoke(cli.app, ["add", "https://www.carrefour.ke/mafken/en/offers"])

    assert result.exit_code == 1
    assert "Could not extract SKU" in result.output


def test_check_then_cooldown(source, store) -> None:
    _add(source, 1000, 900)
    item_id = _only_id(store)

    first = runner.invoke(cli.app, ["check", item_id])
    second = runner.invoke(cli.app, ["check", item_id])

    assert first.exit_code == 0
    assert "New offer on Fresh Milk" in first.output
    assert second.exit_code == 0
    assert "Please wait 5 minutes before checking again" in second.output


def test_check_failure_exits_nonzero(source, store) -> None:
    _add(source, 1000)
    source.push(HttpError(503))

    result = runner.invoke(cli.app, ["check", _only_id(store)])

    assert result.exit_code == 1
    assert "HTTP 503" in result.output


def test_check_unknown_item() -> None:
    result = runner.invoke(cli.app, ["check", "nope"])

    assert result.exit_code == 1
    assert "No tracked item with id nope" in result.output


def test_list_and_history(source, store) -> None:
    _add(source, 1000)
    item_id = _only_id(store)

    active = runner.invoke(cli.app, ["list"])
    runner.invoke(cli.app, ["delete", item_id])
    after_delete = runner.invoke(cli.app, ["list"])
    history = runner.invoke(cli.app, ["list", "--history"])

    assert "Fresh Milk" in active.output
    assert "Fresh Milk" not in after_delete.output
    assert "Fresh Milk" in history.output


def test_delete_and_restore(source, store) -> None:
    _add(source, 1000)
    item_id = _only_id(store)

    deleted = runner.invoke(cli.app, ["delete", item_id])
    restored = runner.invoke(cli.app, ["restore", item_id])

    assert "moved to history" in deleted.output
    assert "Fresh Milk restored" in restored.output
    assert not store.load_items()[0].is_deleted
    assert store.load_deleted_count() == 1


def test_project(store) -> None:
    result = runner.invoke(cli.app, ["project", "Groceries", "--category", "Food"])

    assert result.exit_code == 0
    assert "Project Groceries (Food)" in result.output
    assert [p.name for p in store.load_projects()] == ["Groceries"]


def test_discover_uses_cache(monkeypatch) -> None:
    offer = DiscoveredOffer(name="Fresh Milk 1L", price=150.0, url="https://a.test/p/111", sku="111")
    monkeypatch.setattr(cli, "load_or_discover", lambda store, refresh=False: ([offer], True))

    result = runner.invoke(cli.app, ["discover"])

    assert result.exit_code == 0
    assert "Using cached offers" in result.output
    assert "Fresh Milk 1L" in result.output


def test_discover_nothing_found(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_or_discover", lambda store, refresh=False: ([], False))

    result = runner.invoke(cli.app, ["discover", "--refresh"])

    assert result.exit_code == 0
    assert "No offers found" in result.output


def test_discover_browser_failure_exits_nonzero(monkeypatch) -> None:
    def broken(store, refresh=False):
        raise NavigationError("browser launch (chromium)")

    monkeypatch.setattr(cli, "load_or_discover", broken)

    result = runner.invoke(cli.app, ["discover"])

    assert result.exit_code == 1
    assert "Navigation failed for browser launch (chromium)" in result.output
