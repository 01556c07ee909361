"""Prometheus metrics definitions for Stockroom."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

ASSET_UPLOADS = Counter(
    "stockroom_asset_uploads_total",
    "Number of asset uploads attempted during import finalization by result",
    ["kind", "result"],
)

ASSET_UPLOAD_DEDUPED = Counter(
    "stockroom_asset_uploads_deduplicated_total",
    "Number of item image uploads served from the per-run upload cache",
)

FINALIZE_RUNS = Counter(
    "stockroom_finalize_runs_total",
    "Number of asset finalization runs by outcome",
    ["outcome"],
)

FINALIZE_DURATION = Histogram(
    "stockroom_finalize_duration_seconds",
    "Wall-clock duration of asset finalization runs",
)

THUMBNAILS_DROPPED = Counter(
    "stockroom_thumbnails_dropped_total",
    "Embedded image placements discarded during thumbnail matching",
    ["reason"],
)

__all__ = [
    "ASSET_UPLOADS",
    "ASSET_UPLOAD_DEDUPED",
    "FINALIZE_RUNS",
    "FINALIZE_DURATION",
    "THUMBNAILS_DROPPED",
]
