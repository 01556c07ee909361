"""Blob storage adapters used to upload item images and receipts."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from stockroom.config import get_settings
from stockroom.imports.collaborators import AssetUploader
from stockroom.models.assets import StoredAsset
from stockroom.models.invoice import AssetFile

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT = 60.0
ITEM_IMAGES = "item-images"
RECEIPTS = "receipts"

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]+")


class AssetUploadError(RuntimeError):
    """Raised when an upload cannot be completed."""


def _safe_segment(value: str, fallback: str) -> str:
    cleaned = _UNSAFE_SEGMENT.sub("-", value.strip()).strip("-.")
    return cleaned or fallback


class LocalAssetUploader(AssetUploader):
    """Store uploads under a local directory, content-addressed by sha256.

    Writes run on a worker thread so concurrent uploads do not stall the event loop.
    """

    def __init__(self, root: Optional[Path] = None, *, base_url: Optional[str] = None) -> None:
        settings = get_settings()
        self._root = root or settings.asset_storage_path
        self._base_url = (base_url or settings.asset_base_url or "").rstrip("/") or None

    async def upload_item_image(
        self, file: AssetFile, project_name: str, item_id: str
    ) -> StoredAsset:
        return await asyncio.to_thread(self._store, file, project_name, ITEM_IMAGES, item_id)

    async def upload_receipt_attachment(
        self, file: AssetFile, project_name: str, transaction_id: str
    ) -> StoredAsset:
        return await asyncio.to_thread(
            self._store, file, project_name, RECEIPTS, transaction_id
        )

    def _store(self, file: AssetFile, project_name: str, kind: str, owner_id: str) -> StoredAsset:
        digest = hashlib.sha256(file.content).hexdigest()[:16]
        relative = Path(
            _safe_segment(project_name, "project"),
            kind,
            _safe_segment(owner_id, "unassigned"),
            f"{digest}_{_safe_segment(file.name, 'upload')}",
        )
        target = self._root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(file.content)

        if self._base_url:
            url = f"{self._base_url}/{relative.as_posix()}"
        else:
            url = target.resolve().as_uri()
        logger.debug("Stored %s (%s bytes) at %s", file.name, file.size, target)
        return StoredAsset(
            url=url,
            file_name=target.name,
            size=file.size,
            mime_type=file.mime_type,
        )


class HttpAssetUploader(AssetUploader):
    """Upload to a remote blob API with bounded retries on transient failures."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        resolved_url = base_url or settings.asset_api_base_url
        if not resolved_url:
            raise RuntimeError("Asset API base URL is not configured.")
        self._base_url = resolved_url.rstrip("/")
        self._token = token or settings.asset_api_token
        self._attempts = max(1, attempts if attempts is not None else settings.upload_retry_attempts)
        self._backoff = max(0.0, backoff if backoff is not None else settings.upload_retry_backoff)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def upload_item_image(
        self, file: AssetFile, project_name: str, item_id: str
    ) -> StoredAsset:
        return await self._upload(file, ITEM_IMAGES, {"project": project_name, "item_id": item_id})

    async def upload_receipt_attachment(
        self, file: AssetFile, project_name: str, transaction_id: str
    ) -> StoredAsset:
        return await self._upload(
            file, RECEIPTS, {"project": project_name, "transaction_id": transaction_id}
        )

    async def _upload(self, file: AssetFile, kind: str, fields: Dict[str, str]) -> StoredAsset:
        endpoint = f"{self._base_url}/uploads/{kind}"
        last_error: Optional[str] = None
        for attempt in range(1, self._attempts + 1):
            try:
                response = await self._post(endpoint, file, fields)
            except httpx.TransportError as exc:
                last_error = f"transport error: {exc}"
            else:
                if response.status_code < 400:
                    return self._to_stored_asset(response.json(), file)
                if response.status_code < 500:
                    raise AssetUploadError(
                        f"Upload of {file.name} rejected: {response.status_code}"
                    )
                last_error = f"server error: {response.status_code}"

            logger.warning(
                "Upload attempt %s/%s for %s failed (%s)",
                attempt,
                self._attempts,
                file.name,
                last_error,
            )
            if attempt < self._attempts and self._backoff:
                await asyncio.sleep(self._backoff * 2 ** (attempt - 1))
        raise AssetUploadError(
            f"Upload of {file.name} failed after {self._attempts} attempt(s): {last_error}"
        )

    async def _post(
        self, endpoint: str, file: AssetFile, fields: Dict[str, str]
    ) -> httpx.Response:
        files = {"file": (file.name, file.content, file.mime_type)}
        if self._client is not None:
            return await self._client.post(
                endpoint, headers=self._headers(), data=fields, files=files
            )
        async with httpx.AsyncClient(timeout=UPLOAD_TIMEOUT) as client:
            return await client.post(endpoint, headers=self._headers(), data=fields, files=files)

    @staticmethod
    def _to_stored_asset(payload: Any, file: AssetFile) -> StoredAsset:
        if not isinstance(payload, dict) or not payload.get("url"):
            raise AssetUploadError(f"Upload of {file.name} returned no URL")
        return StoredAsset(
            url=payload["url"],
            file_name=payload.get("file_name") or file.name,
            size=int(payload.get("size") or file.size),
            mime_type=payload.get("mime_type") or file.mime_type,
        )


def build_uploader() -> AssetUploader:
    """Return the HTTP uploader when a remote API is configured, else local storage."""

    if get_settings().asset_api_base_url:
        return HttpAssetUploader()
    return LocalAssetUploader()


__all__ = [
    "AssetUploadError",
    "HttpAssetUploader",
    "LocalAssetUploader",
    "build_uploader",
]
