"""
Memory provider contracts.

``MemoryProvider`` is what an agent runtime needs from conversation memory.
``HistoryProvider`` adds the independent history log; callers holding a
plain ``MemoryProvider`` can check for it with ``supports_history()``.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Union

from .models import Conversation, ContextItem, HistoryEntry, MemoryQueryOptions, Message


class MemoryProvider(ABC):
    """
    Abstract base class for conversation memory backends.

    Each provider must implement conversation creation, message and context
    writes, filtered reads, and conversation deletion.
    """

    id: str = ""
    name: str = ""
    description: str = ""

    @abstractmethod
    def create_conversation(
        self,
        conversation_id: Optional[str] = None,
        metadata: Optional[Any] = None,
    ) -> str:
        ...

    @abstractmethod
    def store_message(self, message: Message, conversation_id: str) -> None:
        ...

    @abstractmethod
    def store_context(self, context: ContextItem, conversation_id: str) -> None:
        ...

    @abstractmethod
    def get_messages(
        self, options: Union[MemoryQueryOptions, Mapping[str, Any]]
    ) -> List[Message]:
        ...

    @abstractmethod
    def get_contexts(self, conversation_id: str) -> List[ContextItem]:
        ...

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Conversation:
        ...

    @abstractmethod
    def delete_conversation(self, conversation_id: str) -> None:
        ...


class HistoryProvider(MemoryProvider):
    """A memory provider that also keeps the per-conversation history log."""

    @abstractmethod
    def store_history(self, entry: HistoryEntry, conversation_id: str) -> None:
        ...

    @abstractmethod
    def get_history(self, conversation_id: str) -> List[HistoryEntry]:
        ...

    @abstractmethod
    def delete_history(self, conversation_id: str) -> int:
        ...


def supports_history(provider: MemoryProvider) -> bool:
    """Return True if *provider* implements the history log operations."""
    if isinstance(provider, HistoryProvider):
        return True
    return all(
        callable(getattr(provider, attr, None))
        for attr in ("store_history", "get_history", "delete_history")
    )
