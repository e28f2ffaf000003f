"""Storage services: key-value backends, local and archive tiers, facade."""

from cashbox_kernel.services.archive_store import ArchivePage, ArchiveStore
from cashbox_kernel.services.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
)
from cashbox_kernel.services.local_row_store import LocalRowStore, storage_key
from cashbox_kernel.services.row_store import RowStore

__all__ = [
    "ArchivePage",
    "ArchiveStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
    "LocalRowStore",
    "RowStore",
    "storage_key",
]
