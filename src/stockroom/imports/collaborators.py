"""Interfaces for the services an invoice import talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from stockroom.models.assets import CreatedItem, ItemImageUpdate, ReceiptAttachment, StoredAsset
from stockroom.models.drafts import ExpandedDraftRecord
from stockroom.models.invoice import AssetFile, ExtractedDocument, InvoiceParseResult


class DocumentExtractor(ABC):
    """Pull text and embedded image placements out of a binary document."""

    @abstractmethod
    def extract(self, document: bytes) -> ExtractedDocument:
        """Return full text, per-page text and image placements."""


class LineItemParser(ABC):
    """Vendor-specific grammar turning extracted text into line items."""

    @abstractmethod
    def parse(self, text: str) -> InvoiceParseResult:
        """Return structured line items plus human-readable parse warnings."""


class ItemRecordService(ABC):
    """Persistence for transactions and the inventory items they carry."""

    @abstractmethod
    async def create_transaction(
        self,
        account_id: str,
        project_id: str,
        transaction: Dict[str, Any],
        items: Sequence[ExpandedDraftRecord],
    ) -> str:
        """Persist a transaction with its items and return the transaction id."""

    @abstractmethod
    async def list_transaction_items(
        self, account_id: str, project_id: str, transaction_id: str
    ) -> List[CreatedItem]:
        """Return the items created for a transaction, in creation order."""

    @abstractmethod
    async def bulk_update_item_images(
        self, account_id: str, updates: Sequence[ItemImageUpdate]
    ) -> None:
        """Replace the image lists of several items in one call."""

    @abstractmethod
    async def attach_receipt(
        self,
        account_id: str,
        project_id: str,
        transaction_id: str,
        attachments: Sequence[ReceiptAttachment],
    ) -> None:
        """Attach receipt files to a transaction."""


class AssetUploader(ABC):
    """Blob storage for item images and receipts; owns its own retry policy."""

    @abstractmethod
    async def upload_item_image(
        self, file: AssetFile, project_name: str, item_id: str
    ) -> StoredAsset:
        """Upload an item photo and return its stored reference."""

    @abstractmethod
    async def upload_receipt_attachment(
        self, file: AssetFile, project_name: str, transaction_id: str
    ) -> StoredAsset:
        """Upload a receipt file and return its stored reference."""


__all__ = [
    "AssetUploader",
    "DocumentExtractor",
    "ItemRecordService",
    "LineItemParser",
]
