"""Command-line interface for Stockroom."""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer

from stockroom.config import get_settings
from stockroom.db import SqlItemRecordService
from stockroom.imports.finalize import AssetFinalizationWorker
from stockroom.imports.images import asset_file_from_image_bytes
from stockroom.imports.session import InvoiceImportSession, build_parse_report
from stockroom.logging_utils import configure_logging
from stockroom.models.assets import AssetFinalizePayload, AssetItemPayload
from stockroom.models.invoice import (
    AssetFile,
    BoundingBox,
    ExtractedDocument,
    ImagePlacement,
    InvoiceParseResult,
)
from stockroom.notifications import build_notifier
from stockroom.storage import build_uploader

app = typer.Typer(help="Stockroom invoice import commands.")


@app.callback()
def _configure() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format, settings.secrets())


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise typer.BadParameter(f"{path} must contain a JSON object.")
    return payload


def _load_bytes(entry: Dict[str, Any], base_dir: Path) -> bytes:
    if entry.get("content_base64"):
        return base64.b64decode(entry["content_base64"])
    if entry.get("path"):
        return (base_dir / entry["path"]).read_bytes()
    raise typer.BadParameter("File entries need either 'path' or 'content_base64'.")


def _load_placement(entry: Dict[str, Any], base_dir: Path, index: int) -> ImagePlacement:
    file_entry = entry.get("file") or {}
    name = file_entry.get("name") or Path(file_entry.get("path") or f"thumbnail-{index}.png").name
    return ImagePlacement(
        page_number=entry["page_number"],
        bbox=BoundingBox.model_validate(entry["bbox"]),
        page_height=entry.get("page_height"),
        file=asset_file_from_image_bytes(
            name, _load_bytes(file_entry, base_dir), mime_type=file_entry.get("mime_type")
        ),
    )


def _load_import(path: Path) -> Tuple[InvoiceParseResult, ExtractedDocument]:
    payload = _read_json(path)
    parse_result = InvoiceParseResult.model_validate(payload.get("parse_result") or {})
    placements = [
        _load_placement(entry, path.parent, index)
        for index, entry in enumerate(payload.get("placements") or [])
    ]
    extracted = ExtractedDocument(
        full_text=payload.get("full_text") or "",
        pages=payload.get("pages") or [],
        placements=placements,
    )
    return parse_result, extracted


def _load_asset_file(entry: Any, base_dir: Path) -> AssetFile:
    if isinstance(entry, str):
        return AssetFile.from_path(base_dir / entry)
    content = _load_bytes(entry, base_dir)
    name = entry.get("name") or Path(entry.get("path") or "upload.bin").name
    return AssetFile(
        name=name,
        content=content,
        mime_type=entry.get("mime_type") or "application/octet-stream",
    )


def _session(vendor: str) -> InvoiceImportSession:
    return InvoiceImportSession(
        records=SqlItemRecordService(),
        uploader=build_uploader(),
        notifier=build_notifier(),
        vendor=vendor,
    )


def _echo(payload: Any, pretty: bool) -> None:
    typer.echo(json.dumps(payload, indent=2 if pretty else None, sort_keys=pretty, default=str))


@app.command()
def preview(
    import_path: Path = typer.Argument(..., help="JSON file with parse_result and placements."),
    vendor: str = typer.Option("Invoice", "--vendor", help="Vendor label used in notes."),
    pretty: bool = typer.Option(True, "--pretty/--no-pretty", help="Pretty-print output JSON."),
) -> None:
    """
    Build drafts and match thumbnails for a parsed invoice, without creating anything.
    """
    parse_result, extracted = _load_import(import_path)
    result = _session(vendor).confirm(parse_result, extracted.placements)
    items: List[Dict[str, Any]] = [
        {
            "id": item.id,
            "group_key": item.group_key,
            **item.template.model_dump(mode="json", exclude={"image_files"}),
            "image_files": [file.name for file in item.template.image_files],
        }
        for item in result.items
    ]
    _echo(
        {
            "amount": result.amount,
            "notes": result.notes,
            "items": items,
            "thumbnail_warning": result.thumbnail_warning,
            "thumbnail_debug": result.thumbnail_debug.as_dict(),
        },
        pretty,
    )


@app.command("parse-report")
def parse_report(
    import_path: Path = typer.Argument(..., help="JSON file with parse_result and placements."),
    vendor: str = typer.Option("Invoice", "--vendor", help="Vendor label used in notes."),
) -> None:
    """Print the diagnostic parse report for a parsed invoice."""

    parse_result, extracted = _load_import(import_path)
    result = _session(vendor).confirm(parse_result, extracted.placements)
    _echo(build_parse_report(result, extracted=extracted), True)


@app.command()
def finalize(
    payload_path: Path = typer.Argument(..., help="JSON finalize payload (ids, items, receipt)."),
    vendor: str = typer.Option("Invoice", "--vendor", help="Vendor label used in notices."),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", min=1, help="Override upload concurrency."
    ),
) -> None:
    """Upload and attach assets for an already-created transaction."""

    settings = get_settings()
    raw = _read_json(payload_path)
    base_dir = payload_path.parent
    items = [
        AssetItemPayload(
            description=entry.get("description") or "",
            files=[_load_asset_file(file_entry, base_dir) for file_entry in entry.get("files") or []],
        )
        for entry in raw.get("items") or []
    ]
    receipt = _load_asset_file(raw["receipt"], base_dir) if raw.get("receipt") else None
    payload = AssetFinalizePayload(
        account_id=raw["account_id"],
        project_id=raw["project_id"],
        transaction_id=raw["transaction_id"],
        project_name=raw.get("project_name") or "Project",
        items=items,
        receipt_file=receipt,
        total_uploads=sum(len(item.files) for item in items) + (1 if receipt else 0),
    )
    worker = AssetFinalizationWorker(
        records=SqlItemRecordService(),
        uploader=build_uploader(),
        notifier=build_notifier(),
        concurrency=concurrency if concurrency is not None else settings.upload_concurrency,
        label=vendor,
    )
    asyncio.run(worker.run(payload))


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for `python -m stockroom`."""
    app(prog_name="stockroom", args=argv)


if __name__ == "__main__":
    main()
