"""Pydantic models defining shared data contracts."""

from stockroom.models.assets import (
    AssetFinalizePayload,
    AssetItemPayload,
    CreatedItem,
    ItemImageUpdate,
    ReceiptAttachment,
    StoredAsset,
    UploadFailure,
)
from stockroom.models.drafts import ExpandedDraftRecord, ItemDraft, ItemTemplate
from stockroom.models.invoice import (
    AssetFile,
    BoundingBox,
    ExtractedDocument,
    ImagePlacement,
    InvoiceLineItem,
    InvoiceParseResult,
    ItemImage,
    SourcedLineItem,
)

__all__ = [
    "AssetFinalizePayload",
    "AssetItemPayload",
    "CreatedItem",
    "ItemImageUpdate",
    "ReceiptAttachment",
    "StoredAsset",
    "UploadFailure",
    "ExpandedDraftRecord",
    "ItemDraft",
    "ItemTemplate",
    "AssetFile",
    "BoundingBox",
    "ExtractedDocument",
    "ImagePlacement",
    "InvoiceLineItem",
    "InvoiceParseResult",
    "ItemImage",
    "SourcedLineItem",
]
