"""
RowStore -- one logical store over the local and archive tiers.

Responsibility:
    Routes reads and writes to the tier that owns a row: ACTIVE rows live in
    LocalRowStore, CLOSED rows in ArchiveStore.  Sequences the cross-tier
    move that happens when a shift closes.

Architecture position:
    Kernel > Services.  The lifecycle controller's only storage dependency.

Invariants enforced:
    - close() writes the archive first and removes the local copy only after
      the archive write succeeded.  A failed archive write leaves the local
      tier untouched.
    - delete() touches exactly one tier, chosen by ``is_closed``.

Failure modes:
    - ArchiveWriteError propagates from close(), delete(is_closed=True) and
      delete_all_closed().
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from cashbox_kernel.db.engine import build_engine, create_tables, make_session_factory
from cashbox_kernel.domain.rows import Branch, CarryOver, ClosureRow
from cashbox_kernel.logging_config import get_logger
from cashbox_kernel.services.archive_store import ArchivePage, ArchiveStore
from cashbox_kernel.services.kv_store import SqlKeyValueStore
from cashbox_kernel.services.local_row_store import LocalRowStore

logger = get_logger("services.row_store")


class RowStore:
    """Facade over both tiers, branch-scoped on every call."""

    def __init__(self, local: LocalRowStore, archive: ArchiveStore):
        self.local = local
        self.archive = archive

    @classmethod
    def open(cls, database_url: str) -> RowStore:
        """
        Both tiers over one database: the local tier in the key-value table,
        the archive in the closed-shift table.  Tables are created if missing.
        """
        engine = build_engine(database_url)
        create_tables(engine)
        factory = make_session_factory(engine)
        return cls(LocalRowStore(SqlKeyValueStore(factory)), ArchiveStore(factory))

    # Active rows

    def list_active(self, branch: Branch) -> list[ClosureRow]:
        return self.local.list(branch)

    def get_active(self, branch: Branch, row_id: UUID) -> ClosureRow | None:
        return self.local.get(branch, row_id)

    def add(
        self,
        branch: Branch,
        employee_name: str,
        now: datetime,
        carry: CarryOver | None = None,
    ) -> ClosureRow:
        return self.local.add(branch, employee_name, now, carry)

    def save_active(self, branch: Branch, row: ClosureRow) -> ClosureRow:
        return self.local.put(branch, row)

    # Closed rows

    def list_closed(
        self,
        branch: Branch,
        page_size: int,
        cursor: str | None = None,
    ) -> ArchivePage:
        return self.archive.list_page(branch, page_size, cursor)

    def get_closed(self, branch: Branch, row_id: UUID) -> ClosureRow | None:
        return self.archive.get(branch, row_id)

    # Cross-tier

    def close(self, branch: Branch, row: ClosureRow) -> ClosureRow:
        """
        Archive a CLOSED row, then drop it from the local tier.

        Preconditions:
            ``row.status`` is CLOSED and ``row.closed_at`` is set.
        """
        self.archive.put(branch, row)
        self.local.remove(branch, row.id)
        logger.info(
            "row_moved_to_archive",
            extra={"branch": Branch(branch).value, "row_id": str(row.id)},
        )
        return row

    def delete(self, branch: Branch, row_id: UUID, is_closed: bool) -> bool:
        if is_closed:
            return self.archive.remove(branch, row_id)
        return self.local.remove(branch, row_id)

    def delete_all_closed(self, branch: Branch) -> int:
        return self.archive.remove_all(branch)
