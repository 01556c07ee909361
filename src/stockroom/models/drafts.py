"""Pydantic models for item drafts produced during an invoice import."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from stockroom.models.invoice import AssetFile, ItemImage


class ItemTemplate(BaseModel):
    """Per-unit fields stamped onto every expanded copy of a draft."""

    description: str = ""
    sku: Optional[str] = None
    purchase_price: str = "0.00"
    price: str = "0.00"
    tax_amount_purchase_price: Optional[str] = None
    notes: str = ""
    images: List[ItemImage] = Field(default_factory=list)
    image_files: List[AssetFile] = Field(default_factory=list)

    def copy_for_unit(self) -> "ItemTemplate":
        """Return a shallow copy whose image lists are owned by the new unit."""

        return self.model_copy(
            update={
                "images": [image.model_copy() for image in self.images],
                "image_files": list(self.image_files),
            }
        )


class ItemDraft(BaseModel):
    """One row that will become ``quantity`` persisted inventory items."""

    quantity: int = Field(ge=1)
    source_index: int = Field(ge=0)
    template: ItemTemplate


class ExpandedDraftRecord(BaseModel):
    """One physical unit exploded out of an :class:`ItemDraft`."""

    id: str
    group_key: str
    template: ItemTemplate

    @property
    def description(self) -> str:
        return self.template.description
