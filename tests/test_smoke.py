"""Basic smoke tests for scaffolding."""

import stockroom
from stockroom.imports import ConcurrencyLimiter, InvoiceImportSession, ReconciliationBucket
from stockroom.models import InvoiceParseResult
from tests.fakes import FakeUploader, InMemoryRecordService


def test_package_exposes_version() -> None:
    assert stockroom.__version__ == "0.1.0"


def test_empty_invoice_previews_without_items() -> None:
    session = InvoiceImportSession(records=InMemoryRecordService(), uploader=FakeUploader())
    preview = session.confirm(InvoiceParseResult(), [])

    assert preview.items == []
    assert preview.amount == "0.00"
    assert isinstance(ConcurrencyLimiter(1).max_concurrent, int)
    assert len(ReconciliationBucket()) == 0
