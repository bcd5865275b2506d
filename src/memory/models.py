"""
Record types for the conversational memory store.

Conversations own messages and context items; history entries are a separate
conversation-scoped log. All timestamps are integer epoch milliseconds.
"""

from __future__ import annotations

import time
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

CONVERSATION_ID_DELIMITER = "-"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def split_conversation_id(conversation_id: str) -> Tuple[str, str]:
    """
    Derive ``(user, platform)`` from a conversation identifier.

    The identifier is split on its first ``-``, so ``"alice-telegram"`` yields
    ``("alice", "telegram")``. Without a delimiter both parts are empty.
    """
    user, sep, platform = conversation_id.partition(CONVERSATION_ID_DELIMITER)
    if not sep:
        return "", ""
    return user, platform


class Message(BaseModel):
    """A chat message exchanged within a conversation."""
    id: str = Field(description="Unique message identifier")
    role: str = Field(description="Author role, e.g. user or assistant")
    content: str = Field(description="Message text")
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    context_id: Optional[str] = Field(None, description="Context item that produced this message")
    user_message_id: Optional[str] = Field(None, description="User message this one replies to")
    conversation_id: Optional[str] = Field(None, description="Owning conversation (set on read)")


class ContextItem(BaseModel):
    """An artifact attached to a conversation, such as extracted document text."""
    id: str = Field(description="Unique context identifier")
    type: str = Field(description="Type tag, e.g. pdf or tool_output")
    content: str = Field(description="Content; may itself be serialized data")
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    conversation_id: Optional[str] = Field(None, description="Owning conversation (set on read)")


class HistoryEntry(BaseModel):
    """A free-form log record scoped to a conversation."""
    id: str = Field(description="Unique history identifier")
    type: str = Field(description="Free-form type tag")
    content: str = Field(description="Entry content")
    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    conversation_id: Optional[str] = Field(None, description="Owning conversation (set on read)")


class Conversation(BaseModel):
    """A conversation row together with its messages and context items."""
    id: str
    user: str = ""
    platform: str = ""
    created_at: int = Field(default_factory=now_ms)
    metadata: Optional[Any] = None
    messages: List[Message] = Field(default_factory=list, description="Newest first")
    contexts: List[ContextItem] = Field(default_factory=list)


class MemoryQueryOptions(BaseModel):
    """
    Filter for ``get_messages``.

    ``after`` and ``before`` are exclusive timestamp bounds. ``limit`` keeps
    only the most recent rows. ``conversation_id`` is optional here so that a
    missing value can be reported by the store as an invalid argument.
    """
    conversation_id: Optional[str] = None
    after: Optional[int] = None
    before: Optional[int] = None
    limit: Optional[int] = None

    @field_validator("limit")
    @classmethod
    def _positive_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("limit must be a positive integer")
        return v
