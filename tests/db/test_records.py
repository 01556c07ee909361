"""Tests for the SQLite record service."""

from __future__ import annotations

import threading
from contextlib import contextmanager

import pytest

from stockroom.db import SqlItemRecordService, reconcile_item_views
from stockroom.db import records as records_module
from stockroom.db.repository import session_scope
from stockroom.imports.drafts import build_item_drafts, expand_item_drafts
from stockroom.models.assets import CreatedItem, ItemImageUpdate, ReceiptAttachment
from stockroom.models.invoice import InvoiceLineItem, ItemImage, SourcedLineItem

TRANSACTION = {
    "project_name": "Beach House",
    "transaction_date": "2024-03-01",
    "source": "Wayfair",
    "transaction_type": "Purchase",
    "payment_method": "Client Card",
    "amount": "235.00",
    "status": "completed",
}


def _records():
    drafts = build_item_drafts(
        [
            SourcedLineItem(
                line_item=InvoiceLineItem(description="Lamp", quantity=2, total="40.00"),
                source_index=0,
            ),
            SourcedLineItem(
                line_item=InvoiceLineItem(description="Chair", sku="CH-1", total="75.00"),
                source_index=1,
            ),
        ]
    )
    return expand_item_drafts(drafts).items


def _image(url: str) -> ItemImage:
    return ItemImage(url=url, is_primary=True, file_name="lamp.png", size=3, mime_type="image/png")


def test_reconcile_prefers_fresh_rows_and_keeps_unseen_cached_items():
    cached = [CreatedItem(item_id="a", description="old"), CreatedItem(item_id="b", description="Chair")]
    fresh = [CreatedItem(item_id="a", description="Lamp")]

    merged = reconcile_item_views(cached, fresh)

    assert [(item.item_id, item.description) for item in merged] == [("a", "Lamp"), ("b", "Chair")]


@pytest.mark.asyncio
async def test_created_items_are_listed_in_creation_order():
    service = SqlItemRecordService()

    transaction_id = await service.create_transaction("acct-1", "proj-1", TRANSACTION, _records())
    listed = await SqlItemRecordService().list_transaction_items("acct-1", "proj-1", transaction_id)

    assert [item.description for item in listed] == ["Lamp", "Lamp", "Chair"]
    assert len({item.item_id for item in listed}) == 3


@pytest.mark.asyncio
async def test_listing_is_scoped_to_account_and_project():
    service = SqlItemRecordService()
    transaction_id = await service.create_transaction("acct-1", "proj-1", TRANSACTION, _records())

    assert await SqlItemRecordService().list_transaction_items("acct-2", "proj-1", transaction_id) == []


@pytest.mark.asyncio
async def test_item_images_and_receipt_are_persisted():
    service = SqlItemRecordService()
    transaction_id = await service.create_transaction("acct-1", "proj-1", TRANSACTION, _records())
    first = (await service.list_transaction_items("acct-1", "proj-1", transaction_id))[0]

    await service.bulk_update_item_images(
        "acct-1", [ItemImageUpdate(item_id=first.item_id, images=[_image("https://cdn.test/lamp.png")])]
    )
    await service.attach_receipt(
        "acct-1",
        "proj-1",
        transaction_id,
        [ReceiptAttachment(url="https://cdn.test/invoice.pdf", file_name="invoice.pdf", size=8, mime_type="application/pdf")],
    )

    assert [image.url for image in service.get_item_images(first.item_id)] == ["https://cdn.test/lamp.png"]
    assert [a.file_name for a in service.get_receipt_attachments(transaction_id)] == ["invoice.pdf"]


@pytest.mark.asyncio
async def test_updates_for_unknown_records_raise():
    service = SqlItemRecordService()

    with pytest.raises(ValueError):
        await service.bulk_update_item_images(
            "acct-1", [ItemImageUpdate(item_id="missing", images=[_image("https://cdn.test/x.png")])]
        )
    with pytest.raises(ValueError):
        await service.attach_receipt("acct-1", "proj-1", "missing", [])


@pytest.mark.asyncio
async def test_queries_run_off_the_event_loop_thread(monkeypatch):
    query_threads: list[int] = []

    @contextmanager
    def recording_scope():
        query_threads.append(threading.get_ident())
        with session_scope() as session:
            yield session

    monkeypatch.setattr(records_module, "session_scope", recording_scope)
    service = SqlItemRecordService()

    transaction_id = await service.create_transaction("acct-1", "proj-1", TRANSACTION, _records())
    items = await service.list_transaction_items("acct-1", "proj-1", transaction_id)
    await service.bulk_update_item_images(
        "acct-1", [ItemImageUpdate(item_id=items[0].item_id, images=[_image("file:///lamp.png")])]
    )

    assert len(query_threads) == 3
    assert threading.get_ident() not in query_threads
