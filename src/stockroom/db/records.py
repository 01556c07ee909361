"""SQLite-backed transaction and item record service."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select

from stockroom.imports.collaborators import ItemRecordService
from stockroom.models.assets import CreatedItem, ItemImageUpdate, ReceiptAttachment
from stockroom.models.drafts import ExpandedDraftRecord
from stockroom.models.invoice import ItemImage

from .models import ItemORM, TransactionORM
from .repository import session_scope

logger = logging.getLogger(__name__)


def _dump_json(payload: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    if payload is None:
        return None
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


def _load_json(payload: Optional[str]) -> List[Dict[str, Any]]:
    if not payload:
        return []
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _to_created_item(row: ItemORM) -> CreatedItem:
    return CreatedItem(item_id=row.id, description=row.description)


def reconcile_item_views(
    cached: Sequence[CreatedItem], fresh: Sequence[CreatedItem]
) -> List[CreatedItem]:
    """Merge a cached item view with a fresh read.

    Fresh rows win and keep their order; cached items the fresh read has not caught up with
    yet are appended so a lagging read never hides just-created items.
    """

    merged = list(fresh)
    seen = {item.item_id for item in fresh}
    merged.extend(item for item in cached if item.item_id not in seen)
    return merged


class SqlItemRecordService(ItemRecordService):
    """Record service persisting to the configured SQLite database.

    Items created through this service are cached per transaction, and reads reconcile the
    cache against the database. Queries run on worker threads so the event loop keeps
    serving uploads while SQLite does its I/O.
    """

    def __init__(self) -> None:
        self._cache: Dict[str, List[CreatedItem]] = {}

    async def create_transaction(
        self,
        account_id: str,
        project_id: str,
        transaction: Dict[str, Any],
        items: Sequence[ExpandedDraftRecord],
    ) -> str:
        transaction_id, created = await asyncio.to_thread(
            self._insert_transaction, account_id, project_id, transaction, items
        )
        self._cache[transaction_id] = created
        logger.debug("Created transaction %s with %s item(s)", transaction_id, len(created))
        return transaction_id

    async def list_transaction_items(
        self, account_id: str, project_id: str, transaction_id: str
    ) -> List[CreatedItem]:
        fresh = await asyncio.to_thread(
            self._select_items, account_id, project_id, transaction_id
        )
        reconciled = reconcile_item_views(self._cache.get(transaction_id, []), fresh)
        self._cache[transaction_id] = reconciled
        return reconciled

    async def bulk_update_item_images(
        self, account_id: str, updates: Sequence[ItemImageUpdate]
    ) -> None:
        await asyncio.to_thread(self._write_item_images, account_id, updates)

    async def attach_receipt(
        self,
        account_id: str,
        project_id: str,
        transaction_id: str,
        attachments: Sequence[ReceiptAttachment],
    ) -> None:
        await asyncio.to_thread(
            self._write_receipt, account_id, project_id, transaction_id, attachments
        )

    @staticmethod
    def _insert_transaction(
        account_id: str,
        project_id: str,
        transaction: Dict[str, Any],
        items: Sequence[ExpandedDraftRecord],
    ) -> Tuple[str, List[CreatedItem]]:
        transaction_id = uuid.uuid4().hex
        created: List[CreatedItem] = []
        with session_scope() as session:
            session.add(
                TransactionORM(
                    id=transaction_id,
                    account_id=account_id,
                    project_id=project_id,
                    project_name=transaction.get("project_name"),
                    transaction_date=transaction.get("transaction_date"),
                    source=transaction.get("source"),
                    transaction_type=transaction.get("transaction_type"),
                    payment_method=transaction.get("payment_method"),
                    amount=transaction.get("amount") or "0.00",
                    subtotal=transaction.get("subtotal"),
                    tax_rate_preset=transaction.get("tax_rate_preset"),
                    category_id=transaction.get("category_id"),
                    notes=transaction.get("notes"),
                    created_by=transaction.get("created_by"),
                    status=transaction.get("status") or "completed",
                )
            )
            session.flush()
            for position, record in enumerate(items):
                template = record.template
                row = ItemORM(
                    id=uuid.uuid4().hex,
                    transaction_id=transaction_id,
                    account_id=account_id,
                    project_id=project_id,
                    position=position,
                    description=template.description,
                    sku=template.sku,
                    purchase_price=template.purchase_price,
                    price=template.price,
                    tax_amount_purchase_price=template.tax_amount_purchase_price,
                    notes=template.notes,
                    group_key=record.group_key,
                )
                session.add(row)
                created.append(_to_created_item(row))
        return transaction_id, created

    @staticmethod
    def _select_items(
        account_id: str, project_id: str, transaction_id: str
    ) -> List[CreatedItem]:
        with session_scope() as session:
            rows = (
                session.execute(
                    select(ItemORM)
                    .where(
                        ItemORM.transaction_id == transaction_id,
                        ItemORM.account_id == account_id,
                        ItemORM.project_id == project_id,
                    )
                    .order_by(ItemORM.position.asc())
                )
                .scalars()
                .all()
            )
            return [_to_created_item(row) for row in rows]

    @staticmethod
    def _write_item_images(account_id: str, updates: Sequence[ItemImageUpdate]) -> None:
        with session_scope() as session:
            for update in updates:
                row = session.get(ItemORM, update.item_id)
                if row is None or row.account_id != account_id:
                    raise ValueError(f"Item {update.item_id} not found")
                row.images = _dump_json([image.model_dump(mode="json") for image in update.images])

    @staticmethod
    def _write_receipt(
        account_id: str,
        project_id: str,
        transaction_id: str,
        attachments: Sequence[ReceiptAttachment],
    ) -> None:
        with session_scope() as session:
            row = session.get(TransactionORM, transaction_id)
            if row is None or row.account_id != account_id or row.project_id != project_id:
                raise ValueError(f"Transaction {transaction_id} not found")
            row.receipt_images = _dump_json(
                [attachment.model_dump(mode="json") for attachment in attachments]
            )

    def get_item_images(self, item_id: str) -> List[ItemImage]:
        """Return the images currently stored on an item."""

        with session_scope() as session:
            row = session.get(ItemORM, item_id)
            if row is None:
                raise ValueError(f"Item {item_id} not found")
            return [ItemImage.model_validate(entry) for entry in _load_json(row.images)]

    def get_receipt_attachments(self, transaction_id: str) -> List[ReceiptAttachment]:
        """Return receipt attachments stored on a transaction."""

        with session_scope() as session:
            row = session.get(TransactionORM, transaction_id)
            if row is None:
                raise ValueError(f"Transaction {transaction_id} not found")
            return [
                ReceiptAttachment.model_validate(entry)
                for entry in _load_json(row.receipt_images)
            ]


__all__ = ["SqlItemRecordService", "reconcile_item_views"]
