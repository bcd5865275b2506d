"""Persistent conversational memory backed by SQLite."""
from .errors import (
    ConstraintViolation,
    CorruptData,
    DuplicateKey,
    InvalidArgument,
    MemoryStoreError,
    NotFound,
    StoreUnavailable,
    TransactionFailed,
)
from .models import (
    Conversation,
    ContextItem,
    HistoryEntry,
    MemoryQueryOptions,
    Message,
    now_ms,
    split_conversation_id,
)
from .provider import HistoryProvider, MemoryProvider, supports_history
from .sqlite_store import SQLiteMemoryStore, get_store

__all__ = [
    "SQLiteMemoryStore",
    "get_store",
    "MemoryProvider",
    "HistoryProvider",
    "supports_history",
    "Conversation",
    "ContextItem",
    "HistoryEntry",
    "MemoryQueryOptions",
    "Message",
    "now_ms",
    "split_conversation_id",
    "MemoryStoreError",
    "StoreUnavailable",
    "NotFound",
    "ConstraintViolation",
    "DuplicateKey",
    "InvalidArgument",
    "CorruptData",
    "TransactionFailed",
]
