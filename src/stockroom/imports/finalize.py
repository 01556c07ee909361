"""Background worker that uploads and attaches import assets after records exist."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from stockroom import metrics
from stockroom.imports.collaborators import AssetUploader, ItemRecordService
from stockroom.imports.limiter import ConcurrencyLimiter
from stockroom.imports.reconcile import ReconciliationBucket
from stockroom.models.assets import (
    AssetFinalizePayload,
    AssetItemPayload,
    ItemImageUpdate,
    ReceiptAttachment,
    StoredAsset,
    UploadFailure,
)
from stockroom.models.invoice import AssetFile, ItemImage
from stockroom.notifications import LogNotifier, Notifier

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_CONCURRENCY = 4

_background_tasks: Set["asyncio.Task[None]"] = set()


class FinalizeState(str, Enum):
    DISPATCHED = "dispatched"
    RECONCILING = "reconciling"
    UPLOADING = "uploading"
    WRITING_BACK = "writing-back"
    REPORTED = "reported"


@dataclass
class FinalizeRun:
    """Run-scoped bookkeeping; never shared between runs."""

    run_id: str
    payload: AssetFinalizePayload
    state: FinalizeState = FinalizeState.DISPATCHED
    updates: List[ItemImageUpdate] = field(default_factory=list)
    failures: List[UploadFailure] = field(default_factory=list)
    receipt_error: Optional[str] = None

    @property
    def issue_count(self) -> int:
        return len(self.failures) + (1 if self.receipt_error else 0)


def _reason(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def _count_item_upload(task: "asyncio.Task[StoredAsset]") -> None:
    failed = task.cancelled() or task.exception() is not None
    metrics.ASSET_UPLOADS.labels(kind="item", result="failed" if failed else "succeeded").inc()


class AssetFinalizationWorker:
    """Upload pending item images and the receipt, then attach them to the created records.

    Outcomes are surfaced only through the notifier and the log; :meth:`run` never raises.
    """

    def __init__(
        self,
        *,
        records: ItemRecordService,
        uploader: AssetUploader,
        notifier: Optional[Notifier] = None,
        concurrency: int = DEFAULT_UPLOAD_CONCURRENCY,
        label: str = "Invoice",
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        if concurrency < 1:
            raise ValueError("Upload concurrency must be at least one.")
        self._records = records
        self._uploader = uploader
        self._notifier = notifier or LogNotifier()
        self._concurrency = concurrency
        self._label = label
        self._clock = clock

    async def run(self, payload: AssetFinalizePayload) -> None:
        """Finalize one import; all results are reported as notifications."""

        if not payload.account_id or not payload.project_id:
            return
        if not payload.items and payload.receipt_file is None:
            return

        run = FinalizeRun(run_id=uuid.uuid4().hex[:12], payload=payload)
        started_at = self._clock()
        asset_label = "asset" if payload.total_uploads == 1 else "assets"
        logger.info(
            "Queued %s %s for background upload on transaction %s",
            payload.total_uploads,
            asset_label,
            payload.transaction_id,
            extra={"run_id": run.run_id},
        )
        self._notifier.info(
            f"Uploading {payload.total_uploads} {asset_label} in the background. "
            "We'll notify you when done."
        )

        try:
            await self._finalize(run)
        except Exception:
            elapsed = self._clock() - started_at
            logger.exception(
                "Asset finalization aborted after %dms transaction=%s",
                round(elapsed * 1000),
                payload.transaction_id,
                extra={"run_id": run.run_id},
            )
            metrics.FINALIZE_RUNS.labels(outcome="crashed").inc()
            self._notifier.error(
                f"{self._label} assets failed to upload. "
                "Please retry from the transaction detail page."
            )
            return

        elapsed = self._clock() - started_at
        metrics.FINALIZE_DURATION.observe(elapsed)
        self._report(run, elapsed)

    async def _finalize(self, run: FinalizeRun) -> None:
        payload = run.payload

        self._transition(run, FinalizeState.RECONCILING)
        created_items = await self._records.list_transaction_items(
            payload.account_id, payload.project_id, payload.transaction_id
        )
        bucket = ReconciliationBucket.from_items(created_items)

        self._transition(run, FinalizeState.UPLOADING)
        limiter = ConcurrencyLimiter(self._concurrency)
        upload_cache: Dict[str, "asyncio.Task[StoredAsset]"] = {}

        async def upload_item(item: AssetItemPayload) -> ItemImageUpdate:
            item_id = bucket.claim(item.description)
            images: List[ItemImage] = []
            for index, file in enumerate(item.files):
                stored = await self._upload_item_file(
                    upload_cache, file, payload.project_name or "Project", item_id
                )
                images.append(
                    ItemImage(
                        url=stored.url,
                        alt=file.name,
                        is_primary=index == 0,
                        file_name=stored.file_name,
                        size=stored.size,
                        mime_type=stored.mime_type,
                    )
                )
            return ItemImageUpdate(item_id=item_id, images=images)

        def submit(item: AssetItemPayload) -> "asyncio.Future[ItemImageUpdate]":
            return asyncio.ensure_future(limiter.run(lambda: upload_item(item)))

        settled = await asyncio.gather(
            *(submit(item) for item in payload.items), return_exceptions=True
        )
        for item, outcome in zip(payload.items, settled):
            if isinstance(outcome, BaseException):
                run.failures.append(
                    UploadFailure(
                        description=item.description or "Unknown item",
                        reason=_reason(outcome),
                    )
                )
            elif outcome.images:
                run.updates.append(outcome)

        self._transition(run, FinalizeState.WRITING_BACK)
        if run.updates:
            await self._records.bulk_update_item_images(payload.account_id, run.updates)

        if payload.receipt_file is not None:
            await self._attach_receipt(run, limiter, payload.receipt_file)

    async def _upload_item_file(
        self,
        cache: Dict[str, "asyncio.Task[StoredAsset]"],
        file: AssetFile,
        project_name: str,
        item_id: str,
    ) -> StoredAsset:
        # Keyed by file identity so drafts sharing one source image upload it once.
        key = file.cache_key
        pending = cache.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._uploader.upload_item_image(file, project_name, item_id)
            )
            pending.add_done_callback(_count_item_upload)
            cache[key] = pending
        else:
            metrics.ASSET_UPLOAD_DEDUPED.inc()
        return await asyncio.shield(pending)

    async def _attach_receipt(
        self, run: FinalizeRun, limiter: ConcurrencyLimiter, receipt: AssetFile
    ) -> None:
        payload = run.payload
        try:
            stored = await limiter.run(
                lambda: self._uploader.upload_receipt_attachment(
                    receipt, payload.project_name or "Project", payload.transaction_id
                )
            )
            attachment = ReceiptAttachment(
                url=stored.url,
                file_name=stored.file_name,
                size=stored.size,
                mime_type=stored.mime_type,
            )
            await self._records.attach_receipt(
                payload.account_id, payload.project_id, payload.transaction_id, [attachment]
            )
        except Exception as exc:
            run.receipt_error = _reason(exc)
            metrics.ASSET_UPLOADS.labels(kind="receipt", result="failed").inc()
            logger.warning(
                "Receipt attachment upload failed transaction=%s error=%s",
                payload.transaction_id,
                run.receipt_error,
                extra={"run_id": run.run_id},
            )
            return
        metrics.ASSET_UPLOADS.labels(kind="receipt", result="succeeded").inc()

    def _report(self, run: FinalizeRun, elapsed: float) -> None:
        self._transition(run, FinalizeState.REPORTED)
        duration_ms = round(elapsed * 1000)
        if run.issue_count == 0:
            metrics.FINALIZE_RUNS.labels(outcome="succeeded").inc()
            self._notifier.success(f"{self._label} uploads finished in {duration_ms}ms.")
        else:
            metrics.FINALIZE_RUNS.labels(outcome="partial").inc()
            plural = "" if run.issue_count == 1 else "s"
            self._notifier.warning(
                f"{self._label} uploads finished with {run.issue_count} issue{plural}. "
                "Open the transaction to retry."
            )
            if run.failures:
                logger.warning(
                    "Failed item uploads: %s",
                    [failure.model_dump() for failure in run.failures],
                    extra={"run_id": run.run_id},
                )
        logger.info(
            "Asset worker completed in %dms (success:%s, failed:%s)",
            duration_ms,
            len(run.updates),
            run.issue_count,
            extra={"run_id": run.run_id},
        )

    def _transition(self, run: FinalizeRun, state: FinalizeState) -> None:
        logger.debug(
            "Finalize run %s -> %s", run.state.value, state.value, extra={"run_id": run.run_id}
        )
        run.state = state


def dispatch_asset_finalization(
    worker: AssetFinalizationWorker, payload: AssetFinalizePayload
) -> "asyncio.Task[None]":
    """Start a detached finalization run on the running event loop.

    The caller is not expected to await the task; a reference is held here until it finishes
    so it is not garbage collected mid-flight.
    """

    task = asyncio.get_running_loop().create_task(
        worker.run(payload), name=f"asset-finalize-{payload.transaction_id}"
    )
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


__all__ = [
    "AssetFinalizationWorker",
    "DEFAULT_UPLOAD_CONCURRENCY",
    "FinalizeRun",
    "FinalizeState",
    "dispatch_asset_finalization",
]
