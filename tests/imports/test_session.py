"""Tests for the end-to-end invoice import session."""

from __future__ import annotations

import pytest

from stockroom.imports.collaborators import DocumentExtractor, LineItemParser
from stockroom.imports.session import (
    ImportContext,
    ImportValidationError,
    InvoiceImportSession,
    UnsupportedDocumentError,
    build_parse_report,
    validate_before_create,
)
from stockroom.imports.thumbnails import NO_THUMBNAILS_WARNING
from stockroom.models.invoice import (
    ExtractedDocument,
    InvoiceLineItem,
    InvoiceParseResult,
)
from tests.fakes import FakeUploader, InMemoryRecordService, RecordingNotifier, make_placement

CONTEXT = ImportContext(
    account_id="acct-1", project_id="proj-1", user_id="user-1", project_name="Beach House"
)


class StaticExtractor(DocumentExtractor):
    def __init__(self, document: ExtractedDocument) -> None:
        self.document = document

    def extract(self, document: bytes) -> ExtractedDocument:
        return self.document


class StaticParser(LineItemParser):
    def __init__(self, result: InvoiceParseResult) -> None:
        self.result = result
        self.seen_text: list[str] = []

    def parse(self, text: str) -> InvoiceParseResult:
        self.seen_text.append(text)
        return self.result


def _session(records=None, notifier=None, **kwargs) -> InvoiceImportSession:
    return InvoiceImportSession(
        records=records or InMemoryRecordService(),
        uploader=FakeUploader(),
        notifier=notifier or RecordingNotifier(),
        vendor="Wayfair",
        **kwargs,
    )


def _row_placements():
    return [
        make_placement(page=1, y_min=500.0, name="lamp.png"),
        make_placement(page=1, y_min=400.0, name="chair.png"),
        make_placement(page=1, y_min=300.0, name="rug.png"),
    ]


def test_confirm_without_placements_warns_and_prefills_transaction(sample_parse_result):
    preview = _session().confirm(sample_parse_result, [])

    assert [item.description for item in preview.items] == ["Lamp", "Lamp", "Chair", "Rug"]
    assert preview.thumbnail_warning == NO_THUMBNAILS_WARNING
    assert preview.thumbnail_debug.extracted_count == 0
    assert preview.image_files_map == {}
    assert preview.amount == "235.00"
    assert preview.notes == "Wayfair import • Invoice # 4411 • Order date: 2024-03-01"
    assert preview.transaction_date == "2024-03-01"
    assert preview.subtotal == "215.00"
    assert preview.tax_rate_preset == "Other"


def test_confirm_sums_line_totals_when_order_total_missing():
    result = InvoiceParseResult(
        line_items=[
            InvoiceLineItem(description="Lamp", total="$1,000.50"),
            InvoiceLineItem(description="Rug", total="(0.50)"),
        ],
        calculated_subtotal="1000.00",
    )

    preview = _session().confirm(result, [])

    assert preview.amount == "1000.00"
    assert preview.subtotal is None
    assert preview.tax_rate_preset is None
    assert preview.notes == "Wayfair import"


def test_confirm_attaches_thumbnails_to_every_expanded_unit(sample_parse_result):
    preview = _session().confirm(sample_parse_result, _row_placements())

    names = [[file.name for file in preview.image_files_map[item.id]] for item in preview.items]
    assert names == [["lamp.png"], ["lamp.png"], ["chair.png"], ["rug.png"]]
    assert preview.thumbnail_warning is None


@pytest.mark.parametrize(
    ("context", "message"),
    [
        (ImportContext(account_id="a", project_id=None, user_id="u"), "Missing project ID."),
        (ImportContext(account_id=None, project_id="p", user_id="u"), "No account found."),
        (
            ImportContext(account_id="a", project_id="p", user_id=None),
            "You must be signed in to create a transaction.",
        ),
    ],
)
def test_validation_requires_identity(sample_parse_result, context, message):
    preview = _session().confirm(sample_parse_result, [])

    assert validate_before_create(preview, context) == message


def test_validation_checks_amount_subtotal_and_items(sample_parse_result):
    session = _session()
    preview = session.confirm(sample_parse_result, [])
    assert validate_before_create(preview, CONTEXT) is None
    assert validate_before_create(None, CONTEXT) == (
        "No parsed invoice data. Upload and parse a PDF first."
    )

    preview.amount = "0"
    assert validate_before_create(preview, CONTEXT) == "Amount must be a positive number."

    preview.amount = "100.00"
    assert validate_before_create(preview, CONTEXT) == "Subtotal cannot exceed the total amount."

    preview.amount = "235.00"
    preview.subtotal = ""
    assert validate_before_create(preview, CONTEXT) == (
        "Subtotal must be provided and greater than 0 when Tax Rate Preset is Other."
    )

    preview.subtotal = "215.00"
    preview.items[0].template.description = "  "
    assert validate_before_create(preview, CONTEXT) == "Each item must have a description."


@pytest.mark.asyncio
async def test_create_persists_and_finalizes_in_background(sample_parse_result):
    records = InMemoryRecordService()
    notifier = RecordingNotifier()
    session = _session(records=records, notifier=notifier)
    preview = session.confirm(sample_parse_result, _row_placements())

    created = await session.create(preview, CONTEXT)

    assert created.transaction_id == "txn-1"
    assert records.transactions["txn-1"]["amount"] == "235.00"
    assert records.transactions["txn-1"]["subtotal"] == "215.00"
    assert records.transactions["txn-1"]["source"] == "Wayfair"
    assert [item.description for item in created.asset_items] == ["Lamp", "Lamp", "Chair", "Rug"]
    assert created.finalization is not None

    await created.finalization

    assert len(records.images_by_item()) == 4
    assert notifier.levels() == ["success", "info", "success"]
    assert notifier.messages[0] == ("success", "Transaction created.")


@pytest.mark.asyncio
async def test_create_without_assets_skips_finalization(sample_parse_result):
    notifier = RecordingNotifier()
    session = _session(notifier=notifier)
    preview = session.confirm(sample_parse_result, [])

    created = await session.create(preview, CONTEXT)

    assert created.finalization is None
    assert notifier.messages == [("success", "Transaction created.")]


@pytest.mark.asyncio
async def test_create_refuses_invalid_import(sample_parse_result):
    records = InMemoryRecordService()
    notifier = RecordingNotifier()
    session = _session(records=records, notifier=notifier)
    preview = session.confirm(sample_parse_result, [])
    preview.amount = ""

    with pytest.raises(ImportValidationError):
        await session.create(preview, CONTEXT)

    assert records.transactions == {}
    assert notifier.messages == [("error", "Amount must be a positive number.")]


@pytest.mark.asyncio
async def test_create_without_account_raises_validation_error(sample_parse_result):
    records = InMemoryRecordService()
    notifier = RecordingNotifier()
    session = _session(records=records, notifier=notifier)
    preview = session.confirm(sample_parse_result, _row_placements())
    context = ImportContext(account_id=None, project_id="proj-1", user_id="user-1")

    with pytest.raises(ImportValidationError, match="No account found."):
        await session.create(preview, context)

    assert records.transactions == {}
    assert notifier.messages == [("error", "No account found.")]


def test_parse_document_requires_pdf(sample_parse_result):
    session = _session(
        extractor=StaticExtractor(ExtractedDocument()),
        parser=StaticParser(sample_parse_result),
    )

    with pytest.raises(UnsupportedDocumentError):
        session.parse_document(b"hello", "invoice.txt", "text/plain")


def test_parse_document_builds_preview_and_report(sample_parse_result):
    extracted = ExtractedDocument(
        full_text="Order #4411\n\nLamp  40.00\nChair 75.00\n",
        pages=["Order #4411", "Lamp  40.00\nChair 75.00"],
        placements=_row_placements(),
    )
    parser = StaticParser(sample_parse_result)
    notifier = RecordingNotifier()
    session = _session(notifier=notifier, extractor=StaticExtractor(extracted), parser=parser)

    preview = session.parse_document(b"%PDF-1.7", "invoice.pdf", "application/pdf")
    report = session.parse_report(preview)

    assert parser.seen_text == [extracted.full_text]
    assert session.document is not None and session.document.mime_type == "application/pdf"
    assert notifier.messages == [("success", "Parsed successfully. Review and create when ready.")]
    assert report["file"] == {"name": "invoice.pdf", "size": 8, "type": "application/pdf"}
    assert report["extraction"]["page_count"] == 2
    assert report["extraction"]["first_lines"] == ["Order #4411", "Lamp  40.00", "Chair 75.00"]
    assert report["images"]["embedded_placements_count"] == 3
    assert report["debug"] == {
        "sku_count": 1,
        "missing_sku_count": 2,
        "attr_count": 1,
        "missing_attr_count": 2,
    }


def test_parse_report_without_document(sample_parse_result):
    preview = _session().confirm(sample_parse_result, [])

    report = build_parse_report(preview)

    assert report["file"] is None
    assert report["extraction"]["char_count"] == 0
    assert report["parse"]["invoice_number"] == "4411"
