"""Invoice import workflow: review drafts synchronously, then create and finalize."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from stockroom.config import Settings, get_settings
from stockroom.imports.collaborators import (
    AssetUploader,
    DocumentExtractor,
    ItemRecordService,
    LineItemParser,
)
from stockroom.imports.drafts import (
    DEFAULT_VENDOR,
    NOTES_SEPARATOR,
    build_item_drafts,
    expand_item_drafts,
)
from stockroom.imports.finalize import AssetFinalizationWorker, dispatch_asset_finalization
from stockroom.imports.thumbnails import (
    NO_THUMBNAILS_WARNING,
    ThumbnailDebugInfo,
    apply_thumbnails_to_drafts,
)
from stockroom.models.assets import AssetFinalizePayload, AssetItemPayload
from stockroom.models.drafts import ExpandedDraftRecord
from stockroom.models.invoice import (
    AssetFile,
    ExtractedDocument,
    ImagePlacement,
    InvoiceParseResult,
)
from stockroom.money import normalize_money, parse_money, sum_line_totals
from stockroom.notifications import LogNotifier, Notifier

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
OTHER_TAX_PRESET = "Other"
PARSE_REPORT_FIRST_LINE_LIMIT = 600


class UnsupportedDocumentError(RuntimeError):
    """Raised when an uploaded invoice is not a PDF."""


class ImportValidationError(ValueError):
    """Raised when an import cannot be created as reviewed."""


@dataclass
class ImportContext:
    """Who is importing, and into which project."""

    account_id: Optional[str]
    project_id: Optional[str]
    user_id: Optional[str]
    project_name: str = "Project"


@dataclass
class ImportPreview:
    """Reviewable state produced by :meth:`InvoiceImportSession.confirm`.

    Transaction-level fields are pre-filled from the invoice and may be edited before
    :meth:`InvoiceImportSession.create`.
    """

    parse_result: InvoiceParseResult
    items: List[ExpandedDraftRecord]
    image_files_map: Dict[str, List[AssetFile]]
    thumbnail_warning: Optional[str]
    thumbnail_debug: ThumbnailDebugInfo
    amount: str
    notes: str
    transaction_date: str
    subtotal: Optional[str] = None
    tax_rate_preset: Optional[str] = None
    payment_method: str = "Client Card"
    category_id: Optional[str] = None


@dataclass
class CreatedImport:
    transaction_id: str
    finalization: Optional["asyncio.Task[None]"] = None
    asset_items: List[AssetItemPayload] = field(default_factory=list)


def _is_positive_number(value: Optional[str]) -> bool:
    number = parse_money(value)
    return number is not None and math.isfinite(number) and number > 0


def validate_before_create(
    preview: Optional[ImportPreview], context: ImportContext
) -> Optional[str]:
    """Return the first reason the import cannot be created, or None when it can."""

    if not context.project_id:
        return "Missing project ID."
    if not context.account_id:
        return "No account found."
    if not context.user_id:
        return "You must be signed in to create a transaction."
    if preview is None:
        return "No parsed invoice data. Upload and parse a PDF first."
    if not preview.amount.strip() or not _is_positive_number(preview.amount):
        return "Amount must be a positive number."

    if preview.tax_rate_preset == OTHER_TAX_PRESET:
        subtotal = parse_money(preview.subtotal)
        amount = parse_money(preview.amount)
        if subtotal is None or subtotal <= 0:
            return "Subtotal must be provided and greater than 0 when Tax Rate Preset is Other."
        if amount is None or amount < subtotal:
            return "Subtotal cannot exceed the total amount."

    for item in preview.items:
        if not item.template.description.strip():
            return "Each item must have a description."
        price = parse_money(item.template.purchase_price)
        if price is None or price < 0:
            return "Each item must have a valid purchase price (>= 0)."
    return None


def build_parse_report(
    preview: ImportPreview,
    *,
    document: Optional[AssetFile] = None,
    extracted: Optional[ExtractedDocument] = None,
) -> Dict[str, Any]:
    """Return a JSON-ready diagnostic report of the extraction, matching and parse."""

    raw_text = extracted.full_text if extracted else ""
    raw_lines = [line.strip() for line in raw_text.splitlines() if line.strip()]
    line_items = preview.parse_result.line_items
    sku_count = sum(1 for item in line_items if item.sku and item.sku.strip())
    attr_count = sum(1 for item in line_items if item.attribute_lines)

    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "file": (
            {"name": document.name, "size": document.size, "type": document.mime_type}
            if document
            else None
        ),
        "extraction": {
            "page_count": len(extracted.pages) if extracted else None,
            "char_count": len(raw_text),
            "non_empty_line_count": len(raw_lines),
            "first_lines": raw_lines[:PARSE_REPORT_FIRST_LINE_LIMIT],
        },
        "images": {
            "embedded_placements_count": preview.thumbnail_debug.extracted_count,
            "thumbnail_debug": preview.thumbnail_debug.as_dict(),
        },
        "parse": preview.parse_result.model_dump(mode="json"),
        "debug": {
            "sku_count": sku_count,
            "missing_sku_count": len(line_items) - sku_count,
            "attr_count": attr_count,
            "missing_attr_count": len(line_items) - attr_count,
        },
    }


class InvoiceImportSession:
    """Drive one invoice import from upload through background asset finalization."""

    def __init__(
        self,
        *,
        records: ItemRecordService,
        uploader: AssetUploader,
        notifier: Optional[Notifier] = None,
        extractor: Optional[DocumentExtractor] = None,
        parser: Optional[LineItemParser] = None,
        vendor: str = DEFAULT_VENDOR,
        settings: Optional[Settings] = None,
    ) -> None:
        self._records = records
        self._uploader = uploader
        self._notifier = notifier or LogNotifier()
        self._extractor = extractor
        self._parser = parser
        self._vendor = vendor
        self._settings = settings or get_settings()
        self.document: Optional[AssetFile] = None
        self.extracted: Optional[ExtractedDocument] = None

    def parse_document(
        self, content: bytes, filename: str, content_type: Optional[str] = None
    ) -> ImportPreview:
        """Extract and parse an uploaded invoice, then build the reviewable preview."""

        if self._extractor is None or self._parser is None:
            raise RuntimeError("Document extractor and line-item parser are required.")
        is_pdf = (content_type or "").lower() == PDF_MIME or filename.lower().endswith(".pdf")
        if not is_pdf:
            raise UnsupportedDocumentError(f"{filename} is not a PDF invoice.")

        started_at = time.perf_counter()
        extracted = self._extractor.extract(content)
        parse_result = self._parser.parse(extracted.full_text)
        self.document = AssetFile(name=filename, content=content, mime_type=PDF_MIME)
        self.extracted = extracted

        preview = self.confirm(parse_result, extracted.placements)
        if parse_result.warnings:
            self._notifier.warning(
                f"Parsed with {len(parse_result.warnings)} warning(s). Review before creating."
            )
        else:
            self._notifier.success("Parsed successfully. Review and create when ready.")
        logger.info(
            "%s invoice parse finished in %dms with %s line item(s)",
            self._vendor,
            round((time.perf_counter() - started_at) * 1000),
            len(parse_result.line_items),
        )
        return preview

    def confirm(
        self, parse_result: InvoiceParseResult, placements: Sequence[ImagePlacement]
    ) -> ImportPreview:
        """Build drafts and match thumbnails; local and synchronous."""

        drafts = build_item_drafts(parse_result.sourced_line_items(), vendor=self._vendor)
        if placements:
            matched = apply_thumbnails_to_drafts(
                drafts,
                placements,
                len(parse_result.line_items),
                default_page_height=self._settings.default_page_height,
            )
            drafts = matched.drafts
            warning = matched.warning
            debug = matched.debug
        else:
            warning = NO_THUMBNAILS_WARNING
            debug = ThumbnailDebugInfo()

        expanded = expand_item_drafts(drafts)

        amount = parse_result.order_total or sum_line_totals(
            item.total for item in parse_result.line_items
        )
        has_subtotal = bool(parse_result.calculated_subtotal and parse_result.order_total)

        notes_parts = [f"{self._vendor} import"]
        if parse_result.invoice_number:
            notes_parts.append(f"Invoice # {parse_result.invoice_number}")
        if parse_result.order_date:
            notes_parts.append(f"Order date: {parse_result.order_date}")

        return ImportPreview(
            parse_result=parse_result,
            items=expanded.items,
            image_files_map=expanded.image_files_map,
            thumbnail_warning=warning,
            thumbnail_debug=debug,
            amount=amount,
            notes=NOTES_SEPARATOR.join(notes_parts),
            transaction_date=parse_result.order_date or date.today().isoformat(),
            subtotal=parse_result.calculated_subtotal if has_subtotal else None,
            tax_rate_preset=OTHER_TAX_PRESET if has_subtotal else None,
        )

    def asset_items_for(self, preview: ImportPreview) -> List[AssetItemPayload]:
        payloads: List[AssetItemPayload] = []
        for item in preview.items:
            files = preview.image_files_map.get(item.id) or item.template.image_files
            if files:
                payloads.append(AssetItemPayload(description=item.description, files=list(files)))
        return payloads

    async def create(self, preview: ImportPreview, context: ImportContext) -> CreatedImport:
        """Persist the reviewed import and dispatch asset finalization in the background."""

        error = validate_before_create(preview, context)
        account_id, project_id = context.account_id, context.project_id
        if error or not account_id or not project_id:
            message = error or "Missing account or project."
            self._notifier.error(message)
            raise ImportValidationError(message)

        asset_items = self.asset_items_for(preview)
        receipt = self.document
        total_uploads = sum(len(item.files) for item in asset_items) + (1 if receipt else 0)

        transaction = {
            "project_id": project_id,
            "project_name": context.project_name,
            "transaction_date": preview.transaction_date,
            "source": self._vendor,
            "transaction_type": "Purchase",
            "payment_method": preview.payment_method,
            "amount": normalize_money(preview.amount) or preview.amount,
            "category_id": preview.category_id,
            "notes": preview.notes or None,
            "created_by": context.user_id,
            "status": "completed",
            "tax_rate_preset": preview.tax_rate_preset,
            "subtotal": (
                normalize_money(preview.subtotal) or preview.subtotal
                if preview.tax_rate_preset == OTHER_TAX_PRESET
                else None
            ),
        }

        started_at = time.perf_counter()
        transaction_id = await self._records.create_transaction(
            account_id, project_id, transaction, preview.items
        )
        logger.info(
            "Transaction %s created in %dms with %s item(s)",
            transaction_id,
            round((time.perf_counter() - started_at) * 1000),
            len(preview.items),
        )

        finalization = None
        if total_uploads > 0:
            worker = AssetFinalizationWorker(
                records=self._records,
                uploader=self._uploader,
                notifier=self._notifier,
                concurrency=self._settings.upload_concurrency,
                label=self._vendor,
            )
            finalization = dispatch_asset_finalization(
                worker,
                AssetFinalizePayload(
                    account_id=account_id,
                    project_id=project_id,
                    transaction_id=transaction_id,
                    project_name=context.project_name or "Project",
                    items=asset_items,
                    receipt_file=receipt,
                    total_uploads=total_uploads,
                ),
            )

        self._notifier.success("Transaction created.")
        return CreatedImport(
            transaction_id=transaction_id,
            finalization=finalization,
            asset_items=asset_items,
        )

    def parse_report(self, preview: ImportPreview) -> Dict[str, Any]:
        return build_parse_report(preview, document=self.document, extracted=self.extracted)


__all__ = [
    "CreatedImport",
    "ImportContext",
    "ImportPreview",
    "ImportValidationError",
    "InvoiceImportSession",
    "UnsupportedDocumentError",
    "build_parse_report",
    "validate_before_create",
]
