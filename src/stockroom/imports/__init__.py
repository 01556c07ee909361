"""Invoice import pipeline: drafts, thumbnail matching and asset finalization."""

from .drafts import ExpandedDrafts, build_item_drafts, expand_item_drafts
from .finalize import AssetFinalizationWorker, FinalizeState, dispatch_asset_finalization
from .limiter import ConcurrencyLimiter
from .reconcile import ReconciliationBucket, ReconciliationError
from .session import (
    CreatedImport,
    ImportContext,
    ImportPreview,
    ImportValidationError,
    InvoiceImportSession,
    UnsupportedDocumentError,
)
from .thumbnails import ThumbnailMatch, apply_thumbnails_to_drafts, score_placement

__all__ = [
    "AssetFinalizationWorker",
    "ConcurrencyLimiter",
    "CreatedImport",
    "ExpandedDrafts",
    "FinalizeState",
    "ImportContext",
    "ImportPreview",
    "ImportValidationError",
    "InvoiceImportSession",
    "ReconciliationBucket",
    "ReconciliationError",
    "ThumbnailMatch",
    "UnsupportedDocumentError",
    "apply_thumbnails_to_drafts",
    "build_item_drafts",
    "dispatch_asset_finalization",
    "expand_item_drafts",
    "score_placement",
]
