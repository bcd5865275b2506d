"""
SQLite-backed conversational memory store.

Schema
------
conversations : id TEXT PK, user TEXT, platform TEXT, created_at INTEGER,
                metadata TEXT (JSON)
messages      : id TEXT PK, conversation_id TEXT FK, role TEXT, content TEXT,
                timestamp INTEGER, context_id TEXT FK, user_message_id TEXT FK
contexts      : id TEXT PK, conversation_id TEXT FK, type TEXT, content TEXT,
                timestamp INTEGER
history       : id TEXT PK, conversation_id TEXT, type TEXT, content TEXT,
                timestamp INTEGER

Timestamps are epoch milliseconds. ``history`` has no foreign key, so history
can be logged before the conversation row exists.

Usage
-----
    store = SQLiteMemoryStore(db_path=Path("data/memory.db"))
    cid = store.create_conversation("alice-telegram")
    store.store_message(Message(id="m1", role="user", content="hi"), cid)
    latest = store.get_messages({"conversation_id": cid, "limit": 10})
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from src.utils.config import MemoryConfig, load_config
from src.utils.logging import get_logger
from src.utils.tracing import traceable

from .errors import (
    ConstraintViolation,
    CorruptData,
    DuplicateKey,
    InvalidArgument,
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
from .provider import HistoryProvider

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS conversations (
        id          TEXT    PRIMARY KEY,
        user        TEXT    NOT NULL DEFAULT '',
        platform    TEXT    NOT NULL DEFAULT '',
        created_at  INTEGER NOT NULL,
        metadata    TEXT
    );

    CREATE TABLE IF NOT EXISTS contexts (
        id              TEXT    PRIMARY KEY,
        conversation_id TEXT    NOT NULL,
        type            TEXT    NOT NULL,
        content         TEXT    NOT NULL,
        timestamp       INTEGER NOT NULL,
        FOREIGN KEY (conversation_id) REFERENCES conversations(id)
    );

    CREATE TABLE IF NOT EXISTS messages (
        id              TEXT    PRIMARY KEY,
        conversation_id TEXT    NOT NULL,
        role            TEXT    NOT NULL,
        content         TEXT    NOT NULL,
        timestamp       INTEGER NOT NULL,
        context_id      TEXT,
        user_message_id TEXT,
        FOREIGN KEY (conversation_id) REFERENCES conversations(id),
        FOREIGN KEY (context_id) REFERENCES contexts(id),
        FOREIGN KEY (user_message_id) REFERENCES messages(id)
    );

    CREATE TABLE IF NOT EXISTS history (
        id              TEXT    PRIMARY KEY,
        conversation_id TEXT    NOT NULL,
        type            TEXT    NOT NULL,
        content         TEXT    NOT NULL,
        timestamp       INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_messages_conversation
        ON messages(conversation_id, timestamp);
    CREATE INDEX IF NOT EXISTS idx_messages_context
        ON messages(context_id);
    CREATE INDEX IF NOT EXISTS idx_messages_reply
        ON messages(user_message_id);
    CREATE INDEX IF NOT EXISTS idx_contexts_conversation
        ON contexts(conversation_id);
    CREATE INDEX IF NOT EXISTS idx_history_conversation
        ON history(conversation_id);
"""


class SQLiteMemoryStore(HistoryProvider):
    """
    Conversation memory persisted in a single SQLite file.

    One connection is held for the lifetime of the store. Construction
    creates the schema and runs ``check_health()``; any failure there raises
    ``StoreUnavailable`` and the store must not be used.
    """

    id = "sqlite"
    name = "SQLite Memory"
    description = "Stores conversations in a SQLite database"

    def __init__(
        self,
        db_path: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
        config: Optional[MemoryConfig] = None,
    ) -> None:
        cfg = config or load_config()
        self.db_path = Path(db_path or cfg.db_path)
        self.journal_mode = cfg.journal_mode
        self.logger = logger or get_logger(__name__, cfg.log_level)
        # a sqlite3 connection shares one transaction across all threads using it
        self._lock = threading.RLock()
        self._closed = False
        self._conn = self._open()
        try:
            self._init_schema()
            self.check_health()
        except StoreUnavailable:
            self._conn.close()
            self._closed = True
            raise

    # ── lifecycle ─────────────────────────────────────────────────────────────

    def _open(self) -> sqlite3.Connection:
        conn: Optional[sqlite3.Connection] = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path.resolve()),
                isolation_level=None,  # autocommit; transactions are explicit
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
            conn.execute("PRAGMA foreign_keys = ON")
        except (sqlite3.Error, OSError) as exc:
            if conn is not None:
                conn.close()
            self.logger.error("Cannot open memory database %s: %s", self.db_path, exc)
            raise StoreUnavailable(
                f"Failed to open SQLite database at {self.db_path}: {exc}"
            ) from exc
        return conn

    def _init_schema(self) -> None:
        try:
            with self._lock:
                self._conn.executescript(_SCHEMA)
                columns = {
                    row["name"]
                    for row in self._conn.execute("PRAGMA table_info(conversations)")
                }
                # databases created before metadata was persisted
                if "metadata" not in columns:
                    self._conn.execute("ALTER TABLE conversations ADD COLUMN metadata TEXT")
                    self.logger.info("Added metadata column to conversations table")
        except sqlite3.Error as exc:
            self.logger.error("Failed to create memory schema in %s: %s", self.db_path, exc)
            raise StoreUnavailable(f"Failed to create SQLite schema: {exc}") from exc
        self.logger.info("Initialized SQLite memory storage at %s", self.db_path)

    def check_health(self) -> None:
        """
        Verify the store is usable.

        Runs a trivial read, an empty transaction, and reads back the
        ``foreign_keys`` pragma, which must report enforcement as active.

        Raises
        ------
        StoreUnavailable
            If any probe fails.
        """
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
                self._conn.execute("BEGIN")
                self._conn.execute("COMMIT")
                row = self._conn.execute("PRAGMA foreign_keys").fetchone()
            if not row or not row[0]:
                raise StoreUnavailable("Foreign key constraints are not enabled")
        except StoreUnavailable as exc:
            self.logger.error("SQLite health check failed: %s", exc)
            raise
        except sqlite3.Error as exc:
            with self._lock:
                if not self._closed and self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
            self.logger.error("SQLite health check failed: %s", exc)
            raise StoreUnavailable(f"SQLite health check failed: {exc}") from exc
        self.logger.info("SQLite health check passed")

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the underlying connection and drop it from the ``get_store`` cache."""
        with self._lock:
            self._conn.close()
            self._closed = True
        _forget_store(self)
        self.logger.info("Closed SQLite memory storage at %s", self.db_path)

    def __enter__(self) -> "SQLiteMemoryStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── helpers ───────────────────────────────────────────────────────────────

    def _insert(self, table: str, sql: str, params: tuple) -> None:
        try:
            with self._lock:
                self._conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            self.logger.error("Rejected insert into %s: %s", table, exc)
            if "UNIQUE" in str(exc):
                raise DuplicateKey(f"{table}: {exc}") from exc
            raise ConstraintViolation(f"{table}: {exc}") from exc
        except sqlite3.Error as exc:
            raise self._unavailable(f"insert into {table}", exc) from exc

    def _rows(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise self._unavailable("query", exc) from exc

    def _unavailable(self, action: str, exc: sqlite3.Error) -> StoreUnavailable:
        self.logger.error("SQLite %s failed on %s: %s", action, self.db_path, exc)
        return StoreUnavailable(f"SQLite {action} failed: {exc}")

    @staticmethod
    def _encode_metadata(metadata: Any) -> Optional[str]:
        if metadata is None:
            return None
        try:
            return json.dumps(metadata)
        except (TypeError, ValueError) as exc:
            raise InvalidArgument(f"Conversation metadata is not JSON serializable: {exc}") from exc

    def _decode_metadata(self, conversation_id: str, raw: Optional[str]) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            self.logger.error("Corrupt metadata for conversation %s: %s", conversation_id, exc)
            raise CorruptData(
                f"Metadata for conversation {conversation_id} is not valid JSON"
            ) from exc

    # ── writes ────────────────────────────────────────────────────────────────

    def create_conversation(
        self,
        conversation_id: Optional[str] = None,
        metadata: Optional[Any] = None,
    ) -> str:
        """
        Insert a new conversation and return its identifier.

        A missing identifier is replaced by a random UUID (hex form). The
        ``user`` and ``platform`` columns are derived from the identifier.

        Raises
        ------
        DuplicateKey
            If a conversation with this identifier already exists.
        InvalidArgument
            If *metadata* cannot be serialized to JSON.
        """
        cid = conversation_id or uuid.uuid4().hex
        user, platform = split_conversation_id(cid)
        encoded = self._encode_metadata(metadata)

        self.logger.info("Creating new conversation %s", cid)
        self._insert(
            "conversations",
            "INSERT INTO conversations (id, user, platform, created_at, metadata) "
            "VALUES (?, ?, ?, ?, ?)",
            (cid, user, platform, now_ms(), encoded),
        )
        self.logger.info("Created conversation %s", cid)
        return cid

    def ensure_conversation(self, conversation_id: str, metadata: Optional[Any] = None) -> bool:
        """Create the conversation if it does not exist. Returns True if created."""
        user, platform = split_conversation_id(conversation_id)
        encoded = self._encode_metadata(metadata)
        try:
            with self._lock:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO conversations (id, user, platform, created_at, metadata) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (conversation_id, user, platform, now_ms(), encoded),
                )
        except sqlite3.Error as exc:
            raise self._unavailable("insert into conversations", exc) from exc
        if cur.rowcount:
            self.logger.info("Created conversation %s", conversation_id)
        return cur.rowcount > 0

    def store_message(self, message: Message, conversation_id: str) -> None:
        """
        Append one message to a conversation.

        Raises
        ------
        ConstraintViolation
            If the conversation, ``context_id`` or ``user_message_id`` does
            not exist.
        DuplicateKey
            If the message id is already taken.
        """
        self._insert(
            "messages",
            "INSERT INTO messages "
            "(id, conversation_id, role, content, timestamp, context_id, user_message_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                message.id,
                conversation_id,
                message.role,
                message.content,
                message.timestamp,
                message.context_id,
                message.user_message_id,
            ),
        )
        self.logger.debug("Stored message %s in %s", message.id, conversation_id)

    def store_context(self, context: ContextItem, conversation_id: str) -> None:
        """Append one context item to a conversation."""
        self._insert(
            "contexts",
            "INSERT INTO contexts (id, conversation_id, type, content, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (context.id, conversation_id, context.type, context.content, context.timestamp),
        )
        self.logger.debug("Stored context %s (%s) in %s", context.id, context.type, conversation_id)

    def store_history(self, entry: HistoryEntry, conversation_id: str) -> None:
        """Append one entry to the conversation's history log."""
        self._insert(
            "history",
            "INSERT INTO history (id, conversation_id, type, content, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (entry.id, conversation_id, entry.type, entry.content, entry.timestamp),
        )
        self.logger.debug("Stored history %s (%s) for %s", entry.id, entry.type, conversation_id)

    # ── reads ─────────────────────────────────────────────────────────────────

    @traceable(name="memory.get_messages", run_type="retriever", tags=["memory"])
    def get_messages(
        self, options: Union[MemoryQueryOptions, Mapping[str, Any]]
    ) -> List[Message]:
        """
        Return messages of one conversation, newest first.

        Parameters
        ----------
        options : MemoryQueryOptions | Mapping
            ``conversation_id`` is required. ``after``/``before`` are exclusive
            timestamp bounds; ``limit`` keeps the most recent rows.

        Raises
        ------
        InvalidArgument
            If ``conversation_id`` is missing or a filter value is invalid.
        """
        if not isinstance(options, MemoryQueryOptions):
            try:
                options = MemoryQueryOptions(**dict(options))
            except ValidationError as exc:
                raise InvalidArgument(f"Invalid message query: {exc}") from exc
        if not options.conversation_id:
            raise InvalidArgument("Conversation ID is required for SQLite memory provider")

        query = "SELECT * FROM messages WHERE conversation_id = ?"
        params: list = [options.conversation_id]

        if options.after is not None:
            query += " AND timestamp > ?"
            params.append(options.after)

        if options.before is not None:
            query += " AND timestamp < ?"
            params.append(options.before)

        query += " ORDER BY timestamp DESC, rowid DESC"

        if options.limit is not None:
            query += " LIMIT ?"
            params.append(options.limit)

        return [Message(**dict(r)) for r in self._rows(query, tuple(params))]

    def get_contexts(self, conversation_id: str) -> List[ContextItem]:
        """Return all context items of a conversation in insertion order."""
        rows = self._rows(
            "SELECT * FROM contexts WHERE conversation_id = ? ORDER BY rowid",
            (conversation_id,),
        )
        return [ContextItem(**dict(r)) for r in rows]

    def get_history(self, conversation_id: str) -> List[HistoryEntry]:
        """Return all history entries of a conversation in insertion order."""
        rows = self._rows(
            "SELECT * FROM history WHERE conversation_id = ? ORDER BY rowid",
            (conversation_id,),
        )
        return [HistoryEntry(**dict(r)) for r in rows]

    @traceable(name="memory.get_conversation", run_type="retriever", tags=["memory"])
    def get_conversation(self, conversation_id: str) -> Conversation:
        """
        Return a conversation with all of its messages and context items.

        Raises
        ------
        NotFound
            If the conversation does not exist.
        CorruptData
            If the stored metadata is not valid JSON.
        """
        self.logger.info("Fetching conversation %s", conversation_id)
        # one lock hold so a concurrent delete cannot land between the reads
        with self._lock:
            rows = self._rows("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
            if not rows:
                self.logger.error("Conversation not found: %s", conversation_id)
                raise NotFound(f"Conversation not found: {conversation_id}")
            row = rows[0]

            metadata = self._decode_metadata(conversation_id, row["metadata"])
            messages = self.get_messages(MemoryQueryOptions(conversation_id=conversation_id))
            contexts = self.get_contexts(conversation_id)
        self.logger.info(
            "Retrieved conversation %s (%d messages, %d contexts)",
            conversation_id, len(messages), len(contexts),
        )
        return Conversation(
            id=row["id"],
            user=row["user"],
            platform=row["platform"],
            created_at=row["created_at"],
            metadata=metadata,
            messages=messages,
            contexts=contexts,
        )

    def list_conversations(
        self,
        user: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> List[Conversation]:
        """
        Return conversation rows, newest first, without messages or contexts.

        Optionally filtered by the derived *user* and/or *platform*.
        """
        query = "SELECT * FROM conversations WHERE 1 = 1"
        params: list = []
        if user is not None:
            query += " AND user = ?"
            params.append(user)
        if platform is not None:
            query += " AND platform = ?"
            params.append(platform)
        query += " ORDER BY created_at DESC, rowid DESC"

        return [
            Conversation(
                id=r["id"],
                user=r["user"],
                platform=r["platform"],
                created_at=r["created_at"],
                metadata=self._decode_metadata(r["id"], r["metadata"]),
            )
            for r in self._rows(query, tuple(params))
        ]

    # ── deletes ───────────────────────────────────────────────────────────────

    def delete_conversation(self, conversation_id: str) -> None:
        """
        Delete a conversation with its messages and context items atomically.

        History entries are left in place; see ``delete_history``.

        Raises
        ------
        TransactionFailed
            If any statement fails. The transaction is rolled back first, so
            no rows have been removed.
        """
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                messages = self._conn.execute(
                    "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
                ).rowcount
                contexts = self._conn.execute(
                    "DELETE FROM contexts WHERE conversation_id = ?", (conversation_id,)
                ).rowcount
                self._conn.execute(
                    "DELETE FROM conversations WHERE id = ?", (conversation_id,)
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                if not self._closed and self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                self.logger.error("Failed to delete conversation %s: %s", conversation_id, exc)
                raise TransactionFailed(
                    f"Deleting conversation {conversation_id} was rolled back: {exc}"
                ) from exc
        self.logger.info(
            "Deleted conversation %s (%d messages, %d contexts)",
            conversation_id, messages, contexts,
        )

    def delete_history(self, conversation_id: str) -> int:
        """Delete all history entries of a conversation. Returns rows removed."""
        try:
            with self._lock:
                cur = self._conn.execute(
                    "DELETE FROM history WHERE conversation_id = ?", (conversation_id,)
                )
        except sqlite3.Error as exc:
            raise self._unavailable("delete from history", exc) from exc
        self.logger.info("Deleted %d history entries for %s", cur.rowcount, conversation_id)
        return cur.rowcount


# resolved db path -> open store
_STORES: Dict[str, SQLiteMemoryStore] = {}
_STORES_LOCK = threading.Lock()


def _forget_store(store: SQLiteMemoryStore) -> None:
    key = str(store.db_path.resolve())
    with _STORES_LOCK:
        if _STORES.get(key) is store:
            del _STORES[key]


def get_store(db_path: Optional[Path] = None) -> SQLiteMemoryStore:
    """
    Return the process-wide store for *db_path* (default: configured path).

    The same path yields the same open store, so only one connection is
    opened per database file. Closing that store removes it from the cache;
    the next call opens a fresh one.
    """
    path = Path(db_path) if db_path else load_config().db_path
    key = str(path.resolve())
    with _STORES_LOCK:
        store = _STORES.get(key)
        if store is None or store.closed:
            store = SQLiteMemoryStore(db_path=Path(key))
            _STORES[key] = store
    return store
