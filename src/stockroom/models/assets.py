"""Pydantic models describing background asset finalization work."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from stockroom.models.invoice import AssetFile, ItemImage


class AssetItemPayload(BaseModel):
    """Files waiting to be uploaded for one created item, keyed by its description."""

    description: str
    files: List[AssetFile] = Field(default_factory=list)


class AssetFinalizePayload(BaseModel):
    """Unit of work handed to the asset finalization worker."""

    account_id: str
    project_id: str
    transaction_id: str
    project_name: str = "Project"
    items: List[AssetItemPayload] = Field(default_factory=list)
    receipt_file: Optional[AssetFile] = None
    total_uploads: int = 0


class CreatedItem(BaseModel):
    """Item returned by the record lookup service after creation."""

    item_id: str
    description: str = ""


class StoredAsset(BaseModel):
    """Reference returned by the upload service for a stored file."""

    url: str
    file_name: str
    size: int
    mime_type: str


class ItemImageUpdate(BaseModel):
    """Image list to persist onto one item."""

    item_id: str
    images: List[ItemImage]


class ReceiptAttachment(BaseModel):
    """Receipt file reference attached to a transaction."""

    url: str
    file_name: str
    size: int
    mime_type: str
    uploaded_at: datetime = Field(default_factory=datetime.now)


class UploadFailure(BaseModel):
    """Asset task that did not complete, kept for operator follow-up."""

    description: str
    reason: str
