"""Shared pytest fixtures for the Stockroom test suite."""

from __future__ import annotations

import logging
from typing import Generator

import pytest

from stockroom.config import get_settings
from stockroom.db.repository import reset_repository_state
from stockroom.models.invoice import InvoiceLineItem, InvoiceParseResult


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Ensure each test uses an isolated SQLite database and asset directory."""

    monkeypatch.setenv("STOCKROOM_DATABASE_PATH", str(tmp_path / "test_stockroom.db"))
    monkeypatch.setenv("STOCKROOM_ASSET_STORAGE_PATH", str(tmp_path / "assets"))
    get_settings.cache_clear()
    reset_repository_state()
    yield
    reset_repository_state()
    get_settings.cache_clear()


@pytest.fixture()
def restore_root_logging() -> Generator[None, None, None]:
    """Put the root logger back the way it was after a test reconfigures it."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture()
def sample_parse_result() -> InvoiceParseResult:
    """Three parsed rows: a two-pack of lamps, a chair and a rug."""

    return InvoiceParseResult(
        line_items=[
            InvoiceLineItem(description="Lamp", quantity=2, total="40.00"),
            InvoiceLineItem(
                description="Chair",
                sku="CH-1",
                quantity=1,
                unit_price="75.00",
                total="75.00",
                attribute_lines=["Color: Oak"],
            ),
            InvoiceLineItem(description="Rug", quantity=1, total="$120.00"),
        ],
        invoice_number="4411",
        order_date="2024-03-01",
        order_total="235.00",
        calculated_subtotal="215.00",
    )
