"""SQLite persistence for imported transactions and items."""

from .records import SqlItemRecordService, reconcile_item_views
from .repository import get_engine, get_session, reset_repository_state, session_scope

__all__ = [
    "SqlItemRecordService",
    "get_engine",
    "get_session",
    "reconcile_item_views",
    "reset_repository_state",
    "session_scope",
]
