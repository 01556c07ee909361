"""Pydantic models for parsed invoices and extracted document content."""

from __future__ import annotations

import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_money_text(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


class InvoiceLineItem(BaseModel):
    """One row parsed out of a vendor invoice, before quantity expansion."""

    description: str
    sku: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[str] = None
    total: Optional[str] = None
    shipping: Optional[str] = None
    adjustment: Optional[str] = None
    tax: Optional[str] = None
    shipped_on: Optional[str] = None
    section: Optional[str] = None
    attribute_lines: List[str] = Field(default_factory=list)
    color: Optional[str] = None
    size: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("unit_price", "total", "shipping", "adjustment", "tax", mode="before")
    @classmethod
    def _money_as_text(cls, value: Any) -> Any:
        return _coerce_money_text(value)


class SourcedLineItem(BaseModel):
    """A line item paired with its zero-based position in the parsed document."""

    line_item: InvoiceLineItem
    source_index: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class InvoiceParseResult(BaseModel):
    """Structured output of a vendor line-item parser."""

    line_items: List[InvoiceLineItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    invoice_number: Optional[str] = None
    order_date: Optional[str] = None
    order_total: Optional[str] = None
    calculated_subtotal: Optional[str] = None

    @field_validator("order_total", "calculated_subtotal", mode="before")
    @classmethod
    def _money_as_text(cls, value: Any) -> Any:
        return _coerce_money_text(value)

    def sourced_line_items(self) -> List[SourcedLineItem]:
        return [
            SourcedLineItem(line_item=item, source_index=index)
            for index, item in enumerate(self.line_items)
        ]


class AssetFile(BaseModel):
    """Binary file awaiting upload (an extracted thumbnail or the invoice itself)."""

    name: str
    content: bytes = Field(repr=False)
    mime_type: str = "application/octet-stream"

    model_config = ConfigDict(frozen=True)

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def cache_key(self) -> str:
        """Identity used to de-duplicate uploads of the same physical file."""

        return f"{self.name}_{self.size}_{self.mime_type}"

    @classmethod
    def from_path(cls, path: Path, *, mime_type: Optional[str] = None) -> "AssetFile":
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content=path.read_bytes(),
            mime_type=mime_type or guessed or "application/octet-stream",
        )


class BoundingBox(BaseModel):
    """Placement rectangle in PDF user-space units (origin at the bottom-left)."""

    x_min: float
    x_max: float
    y_min: float
    y_max: float

    model_config = ConfigDict(frozen=True)

    @property
    def width(self) -> float:
        return abs(self.x_max - self.x_min)

    @property
    def height(self) -> float:
        return abs(self.y_max - self.y_min)


class ImagePlacement(BaseModel):
    """An extracted embedded image together with its page position and size."""

    page_number: int = Field(ge=1)
    bbox: BoundingBox
    page_height: Optional[float] = None
    file: AssetFile

    model_config = ConfigDict(frozen=True)


class ExtractedDocument(BaseModel):
    """Text and embedded images pulled out of an uploaded invoice."""

    full_text: str = ""
    pages: List[str] = Field(default_factory=list)
    placements: List[ImagePlacement] = Field(default_factory=list)


class ItemImage(BaseModel):
    """Image reference attached to an inventory item."""

    url: str
    alt: Optional[str] = None
    is_primary: bool = False
    uploaded_at: datetime = Field(default_factory=datetime.now)
    file_name: str
    size: int
    mime_type: str

    @classmethod
    def preview_for(cls, file: AssetFile, *, is_primary: bool) -> "ItemImage":
        """Build a local preview reference for a file that has not been uploaded yet."""

        return cls(
            url=f"preview://{file.cache_key}",
            alt=file.name,
            is_primary=is_primary,
            file_name=file.name,
            size=file.size,
            mime_type=file.mime_type or "image/png",
        )
