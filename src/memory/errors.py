"""Exceptions raised by the memory store."""


class MemoryStoreError(Exception):
    """Base class for every memory store failure."""


class StoreUnavailable(MemoryStoreError):
    """The database could not be opened, migrated, or failed its health check.

    Fatal: the owning process should not continue with this store.
    """


class NotFound(MemoryStoreError, LookupError):
    """A row requested by identifier does not exist."""


class ConstraintViolation(MemoryStoreError):
    """A write broke a foreign-key or uniqueness constraint."""


class DuplicateKey(ConstraintViolation):
    """A write reused an existing primary key."""


class InvalidArgument(MemoryStoreError, ValueError):
    """A required argument or filter field is missing or malformed."""


class CorruptData(MemoryStoreError):
    """Stored data could not be deserialized."""


class TransactionFailed(MemoryStoreError):
    """A multi-statement transaction was rolled back."""
