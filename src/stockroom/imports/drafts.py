"""Turn parsed invoice line items into per-unit inventory drafts."""

from __future__ import annotations

import logging
import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from stockroom.models.drafts import ExpandedDraftRecord, ItemDraft, ItemTemplate
from stockroom.models.invoice import AssetFile, InvoiceLineItem, SourcedLineItem
from stockroom.money import normalize_money, parse_money

logger = logging.getLogger(__name__)

DEFAULT_VENDOR = "Invoice"
NOTES_SEPARATOR = " • "
TO_BE_SHIPPED_SECTION = "to_be_shipped"

_PRICE_KEY_PATTERN = re.compile(r"[^0-9.\-]")


@dataclass
class ExpandedDrafts:
    """Result of exploding drafts into one record per physical unit."""

    items: List[ExpandedDraftRecord] = field(default_factory=list)
    image_files_map: Dict[str, List[AssetFile]] = field(default_factory=dict)


def draft_quantity(raw_quantity: Optional[float]) -> int:
    """Return ``max(1, floor(quantity or 1))``; non-finite quantities count as one."""

    if raw_quantity is None or not math.isfinite(raw_quantity) or raw_quantity == 0:
        return 1
    return max(1, math.floor(raw_quantity))


def per_unit_purchase_price(line_item: InvoiceLineItem, quantity: int) -> float:
    total = parse_money(line_item.total)
    unit_price = parse_money(line_item.unit_price) if line_item.unit_price else None
    shipping = (parse_money(line_item.shipping) or 0.0) if line_item.shipping else 0.0
    adjustment = (parse_money(line_item.adjustment) or 0.0) if line_item.adjustment else 0.0

    if unit_price is not None:
        return unit_price - adjustment / quantity + shipping / quantity
    if total is not None:
        return total / quantity
    return 0.0


def per_unit_tax(line_item: InvoiceLineItem, quantity: int) -> float:
    tax = (parse_money(line_item.tax) or 0.0) if line_item.tax else 0.0
    return tax / quantity


def build_notes(line_item: InvoiceLineItem, *, vendor: str = DEFAULT_VENDOR) -> str:
    """Compose the per-unit notes line for a line item."""

    parts: List[str] = []
    if line_item.shipped_on:
        parts.append(f"{vendor} shipped on {line_item.shipped_on}")
    if line_item.section == TO_BE_SHIPPED_SECTION:
        parts.append(f"{vendor}: items to be shipped")

    attribute_parts: List[str] = []
    if line_item.attribute_lines:
        attribute_parts.extend(line_item.attribute_lines)
    else:
        if line_item.color:
            attribute_parts.append(f"Color: {line_item.color}")
        if line_item.size:
            attribute_parts.append(f"Size: {line_item.size}")

    seen: set[str] = set()
    for part in attribute_parts:
        cleaned = part.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            parts.append(cleaned)

    if not parts:
        return f"{vendor} import"
    return NOTES_SEPARATOR.join(parts)


def build_item_drafts(
    sourced_line_items: Iterable[SourcedLineItem],
    *,
    vendor: str = DEFAULT_VENDOR,
) -> List[ItemDraft]:
    """Build one draft per line item, keeping its source index and quantity."""

    drafts: List[ItemDraft] = []
    for sourced in sourced_line_items:
        line_item = sourced.line_item
        quantity = draft_quantity(line_item.quantity)
        purchase_price = normalize_money(per_unit_purchase_price(line_item, quantity)) or "0.00"
        tax = normalize_money(per_unit_tax(line_item, quantity)) or "0.00"

        drafts.append(
            ItemDraft(
                quantity=quantity,
                source_index=sourced.source_index,
                template=ItemTemplate(
                    description=line_item.description,
                    sku=line_item.sku,
                    purchase_price=purchase_price,
                    price=purchase_price,
                    tax_amount_purchase_price=tax,
                    notes=build_notes(line_item, vendor=vendor),
                ),
            )
        )
    logger.debug("Built %s draft(s) from line items", len(drafts))
    return drafts


def compute_group_key(template: ItemTemplate) -> str:
    """Group identical SKU+price units together; SKU-less units always get a unique key."""

    normalized_sku = (template.sku or "").strip().lower()
    if not normalized_sku:
        return f"unique-{uuid.uuid4().hex}"
    raw_price = template.purchase_price or template.price or ""
    normalized_price = _PRICE_KEY_PATTERN.sub("", raw_price.strip().lower())
    return f"{normalized_sku}|{normalized_price}"


def expand_item_drafts(drafts: Iterable[ItemDraft]) -> ExpandedDrafts:
    """Explode each draft into ``quantity`` records with independently owned file lists."""

    result = ExpandedDrafts()
    for draft in drafts:
        for _ in range(draft.quantity):
            # SKU-less units each get their own key; a SKU yields the same key per unit.
            record = ExpandedDraftRecord(
                id=uuid.uuid4().hex,
                group_key=compute_group_key(draft.template),
                template=draft.template.copy_for_unit(),
            )
            result.items.append(record)
            if record.template.image_files:
                result.image_files_map[record.id] = list(record.template.image_files)
    return result


__all__ = [
    "DEFAULT_VENDOR",
    "ExpandedDrafts",
    "build_item_drafts",
    "build_notes",
    "compute_group_key",
    "draft_quantity",
    "expand_item_drafts",
    "per_unit_purchase_price",
    "per_unit_tax",
]
