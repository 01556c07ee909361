"""Heuristic matching of embedded invoice images to line-item drafts.

Vendor invoices embed one small thumbnail per line item in the left column, plus logos and
banners anchored to the top of the first page. Placements arrive unordered by quality and
noisy, so matching runs in stages:

1. drop page-one header decorations (wide/flat or tiny images in the top band),
2. score every remaining placement on size, shape and position,
3. when placements outnumber line items, drop the lowest-scoring excess,
4. assign survivors to drafts strictly by document order against ``source_index``.

Matching never raises; shortfalls degrade to "no thumbnail" plus a warning string.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stockroom import metrics
from stockroom.models.drafts import ItemDraft
from stockroom.models.invoice import BoundingBox, ImagePlacement, ItemImage

logger = logging.getLogger(__name__)

DEFAULT_PAGE_HEIGHT = 792.0

# Header band (page one only); y grows upwards from the bottom of the page.
HEADER_BAND_HEIGHT = 180.0
HEADER_TOP_MARGIN = 30.0
HEADER_MIN_WIDE_WIDTH = 140.0
HEADER_MAX_SHORT_HEIGHT = 70.0

EXTREME_WIDE_ASPECT = 2.2
EXTREME_TALL_ASPECT = 0.5
SQUARE_ASPECT_MIN = 0.7
SQUARE_ASPECT_MAX = 1.5

MEDIUM_AREA = 4000.0
LARGE_AREA = 9000.0
MIN_SOLID_SIDE = 40.0
LEFT_COLUMN_MAX_X = 240.0
HIGH_ON_FIRST_PAGE_Y = 650.0
NOISE_SIDE = 35.0

MEDIUM_AREA_WEIGHT = 2
LARGE_AREA_WEIGHT = 1
SOLID_SIDES_WEIGHT = 1
LEFT_COLUMN_WEIGHT = 1
SQUARE_ASPECT_WEIGHT = 2
EXTREME_ASPECT_PENALTY = -3
HIGH_ON_FIRST_PAGE_PENALTY = -4
NOISE_PENALTY = -2

NO_THUMBNAILS_WARNING = "No embedded item thumbnails detected in the PDF."


@dataclass
class PlacementDebug:
    page_number: int
    bbox: BoundingBox
    page_height: Optional[float]
    width: float
    height: float
    score: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "page_number": self.page_number,
            "bbox": self.bbox.model_dump(),
            "page_height": self.page_height,
            "width": self.width,
            "height": self.height,
            "score": self.score,
        }


@dataclass
class ThumbnailDebugInfo:
    """Counts at each filtering stage plus per-placement geometry and score."""

    extracted_count: int = 0
    header_drop_count: int = 0
    extra_drop_count: int = 0
    final_match_count: int = 0
    placements: List[PlacementDebug] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "extracted_count": self.extracted_count,
            "header_drop_count": self.header_drop_count,
            "extra_drop_count": self.extra_drop_count,
            "final_match_count": self.final_match_count,
            "placements": [entry.as_dict() for entry in self.placements],
        }


@dataclass
class ThumbnailMatch:
    drafts: List[ItemDraft]
    warning: Optional[str]
    debug: ThumbnailDebugInfo


def aspect_ratio(bbox: BoundingBox) -> float:
    height = bbox.height
    return bbox.width / height if height > 0 else 0.0


def is_extreme_aspect(ratio: float) -> bool:
    return ratio >= EXTREME_WIDE_ASPECT or ratio <= EXTREME_TALL_ASPECT


def is_near_square(ratio: float) -> bool:
    return SQUARE_ASPECT_MIN <= ratio <= SQUARE_ASPECT_MAX


def is_header_decoration(
    placement: ImagePlacement, *, default_page_height: float = DEFAULT_PAGE_HEIGHT
) -> bool:
    """Return True for page-one images in the header band that are wide, flat or short."""

    if placement.page_number != 1:
        return False
    page_height = placement.page_height or default_page_height
    bbox = placement.bbox
    near_top_band = bbox.y_min >= page_height - HEADER_BAND_HEIGHT
    touches_top_margin = bbox.y_max >= page_height - HEADER_TOP_MARGIN
    wide = bbox.width >= HEADER_MIN_WIDE_WIDTH or aspect_ratio(bbox) >= EXTREME_WIDE_ASPECT
    short = bbox.height <= HEADER_MAX_SHORT_HEIGHT
    return (near_top_band or touches_top_margin) and (wide or short)


def filter_decorative_placements(
    placements: Sequence[ImagePlacement],
    *,
    default_page_height: float = DEFAULT_PAGE_HEIGHT,
) -> Tuple[List[ImagePlacement], int]:
    """Drop page-one header decorations; returns the kept placements and the drop count."""

    kept = [
        placement
        for placement in placements
        if not is_header_decoration(placement, default_page_height=default_page_height)
    ]
    return kept, len(placements) - len(kept)


def score_placement(placement: ImagePlacement) -> int:
    """Score how much a placement looks like a line-item thumbnail (higher is better)."""

    bbox = placement.bbox
    width, height = bbox.width, bbox.height
    area = width * height
    ratio = aspect_ratio(bbox)

    score = 0
    if area >= MEDIUM_AREA:
        score += MEDIUM_AREA_WEIGHT
    if area >= LARGE_AREA:
        score += LARGE_AREA_WEIGHT
    if width >= MIN_SOLID_SIDE and height >= MIN_SOLID_SIDE:
        score += SOLID_SIDES_WEIGHT
    if bbox.x_min <= LEFT_COLUMN_MAX_X:
        score += LEFT_COLUMN_WEIGHT

    if is_near_square(ratio):
        score += SQUARE_ASPECT_WEIGHT
    elif is_extreme_aspect(ratio):
        score += EXTREME_ASPECT_PENALTY

    if placement.page_number == 1 and bbox.y_max >= HIGH_ON_FIRST_PAGE_Y:
        score += HIGH_ON_FIRST_PAGE_PENALTY
    if height < NOISE_SIDE or width < NOISE_SIDE:
        score += NOISE_PENALTY

    return score


def normalize_placements_for_line_items(
    placements: Sequence[ImagePlacement], line_item_count: int
) -> Tuple[List[ImagePlacement], int]:
    """Drop the lowest-scoring excess so survivors never outnumber line items.

    Ties drop the earliest placement first; survivors keep their document order.
    """

    limit = max(0, line_item_count)
    if len(placements) <= limit:
        return list(placements), 0

    extras = len(placements) - limit
    ranked = sorted(
        range(len(placements)),
        key=lambda index: (score_placement(placements[index]), index),
    )
    dropped = set(ranked[:extras])
    kept = [placement for index, placement in enumerate(placements) if index not in dropped]
    return kept, len(dropped)


def _mismatch_warning(found: int, expected: int) -> str:
    return (
        f"Detected {found} embedded thumbnail(s) but parsed {expected} line item(s). "
        "Matching will be partial; please review."
    )


def _dropped_warning(total_dropped: int) -> str:
    noun = "image" if total_dropped == 1 else "images"
    return f"Ignored {total_dropped} decorative {noun} that did not match any line items."


def apply_thumbnails_to_drafts(
    drafts: Sequence[ItemDraft],
    placements: Sequence[ImagePlacement],
    line_item_count: int,
    *,
    default_page_height: float = DEFAULT_PAGE_HEIGHT,
) -> ThumbnailMatch:
    """Attach the Nth surviving placement to the draft whose ``source_index`` is N."""

    warning_parts: List[str] = []
    filtered, header_drops = filter_decorative_placements(
        placements, default_page_height=default_page_height
    )
    survivors, extra_drops = normalize_placements_for_line_items(filtered, line_item_count)

    if not survivors:
        warning_parts.append(NO_THUMBNAILS_WARNING)
    elif len(survivors) != line_item_count:
        warning_parts.append(_mismatch_warning(len(survivors), line_item_count))

    total_dropped = header_drops + extra_drops
    if total_dropped > 0:
        warning_parts.append(_dropped_warning(total_dropped))
    if header_drops:
        metrics.THUMBNAILS_DROPPED.labels(reason="header").inc(header_drops)
    if extra_drops:
        metrics.THUMBNAILS_DROPPED.labels(reason="excess").inc(extra_drops)

    updated: List[ItemDraft] = []
    for draft in drafts:
        if 0 <= draft.source_index < len(survivors):
            thumbnail = survivors[draft.source_index].file
            template = draft.template.model_copy(
                update={
                    "images": [ItemImage.preview_for(thumbnail, is_primary=True)],
                    "image_files": [thumbnail],
                }
            )
            updated.append(draft.model_copy(update={"template": template}))
        else:
            updated.append(draft)

    debug = ThumbnailDebugInfo(
        extracted_count=len(placements),
        header_drop_count=header_drops,
        extra_drop_count=extra_drops,
        final_match_count=len(survivors),
        placements=[
            PlacementDebug(
                page_number=placement.page_number,
                bbox=placement.bbox,
                page_height=placement.page_height,
                width=placement.bbox.width,
                height=placement.bbox.height,
                score=score_placement(placement),
            )
            for placement in survivors
        ],
    )
    warning = " ".join(warning_parts) if warning_parts else None
    logger.debug(
        "Thumbnail matching extracted=%s header_drops=%s extra_drops=%s matched=%s",
        debug.extracted_count,
        header_drops,
        extra_drops,
        debug.final_match_count,
    )
    return ThumbnailMatch(drafts=updated, warning=warning, debug=debug)


__all__ = [
    "DEFAULT_PAGE_HEIGHT",
    "NO_THUMBNAILS_WARNING",
    "PlacementDebug",
    "ThumbnailDebugInfo",
    "ThumbnailMatch",
    "apply_thumbnails_to_drafts",
    "aspect_ratio",
    "filter_decorative_placements",
    "is_header_decoration",
    "normalize_placements_for_line_items",
    "score_placement",
]
