"""
LocalRowStore -- the active-row tier.

Responsibility:
    Keeps a branch's in-progress (ACTIVE) rows as one JSON list in a
    KeyValueStore under ``cashbox_rows_<branch>``.

Architecture position:
    Kernel > Services.  Used by RowStore; the lifecycle controller writes
    through it on every flushed edit.

Invariants enforced:
    - Only ACTIVE rows are ever written here.  put()/add() refuse closed rows.
    - Loading never raises: an unreadable document loads as an empty list
      and individual malformed rows are skipped, both logged.
    - list() is ordered newest first (created_at descending).
"""

from __future__ import annotations

import dataclasses
import json
from datetime import datetime
from typing import Any
from uuid import UUID

from cashbox_kernel.domain.rows import (
    Branch,
    CarryOver,
    ClosureRow,
    new_row,
    row_from_dict,
    row_to_dict,
)
from cashbox_kernel.exceptions import RowClosedError, RowNotFoundError
from cashbox_kernel.logging_config import get_logger
from cashbox_kernel.services.kv_store import KeyValueStore

logger = get_logger("services.local_row_store")

KEY_PREFIX = "cashbox_rows_"


def storage_key(branch: Branch) -> str:
    return f"{KEY_PREFIX}{Branch(branch).value}"


class LocalRowStore:
    """
    Branch-scoped store of ACTIVE rows.

    Contract:
        Every mutating call rewrites the whole branch document.  Rows are
        small and few (one active row per branch in normal use).

    Non-goals:
        - Does not enforce "one active row per branch"; that is the
          lifecycle controller's rule.
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def _load(self, branch: Branch) -> list[ClosureRow]:
        raw = self._kv.get(storage_key(branch))
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(
                "local_rows_unreadable",
                extra={"branch": Branch(branch).value},
            )
            return []
        if not isinstance(data, list):
            logger.warning(
                "local_rows_unreadable",
                extra={"branch": Branch(branch).value},
            )
            return []

        rows: list[ClosureRow] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            try:
                rows.append(row_from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "local_row_skipped",
                    extra={
                        "branch": Branch(branch).value,
                        "row_id": str(entry.get("id")),
                        "reason": str(exc),
                    },
                )
        return rows

    def _save(self, branch: Branch, rows: list[ClosureRow]) -> None:
        payload: list[dict[str, Any]] = [row_to_dict(row) for row in rows]
        self._kv.set(storage_key(branch), json.dumps(payload, ensure_ascii=False))

    def list(self, branch: Branch) -> list[ClosureRow]:
        rows = self._load(branch)
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def get(self, branch: Branch, row_id: UUID) -> ClosureRow | None:
        for row in self._load(branch):
            if row.id == row_id:
                return row
        return None

    def add(
        self,
        branch: Branch,
        employee_name: str,
        now: datetime,
        carry: CarryOver | None = None,
    ) -> ClosureRow:
        """Create a new ACTIVE row, optionally seeded with carried expenses."""
        row = new_row(employee_name, now, carry)
        rows = self._load(branch)
        rows.append(row)
        self._save(branch, rows)
        logger.info(
            "row_added",
            extra={
                "branch": Branch(branch).value,
                "row_id": str(row.id),
                "carried_expense_count": row.carried_expense_count,
            },
        )
        return row

    def put(self, branch: Branch, row: ClosureRow) -> ClosureRow:
        """Insert or replace ``row`` by id."""
        if row.is_closed:
            raise RowClosedError(str(row.id))
        rows = self._load(branch)
        for index, existing in enumerate(rows):
            if existing.id == row.id:
                rows[index] = row
                break
        else:
            rows.append(row)
        self._save(branch, rows)
        return row

    def patch(self, branch: Branch, row_id: UUID, **changes: Any) -> ClosureRow:
        """Apply field changes to a stored row and return the new row."""
        current = self.get(branch, row_id)
        if current is None:
            raise RowNotFoundError(str(row_id), Branch(branch).value)
        return self.put(branch, dataclasses.replace(current, **changes))

    def remove(self, branch: Branch, row_id: UUID) -> bool:
        """Remove a row; returns False when it was not present."""
        rows = self._load(branch)
        remaining = [row for row in rows if row.id != row_id]
        if len(remaining) == len(rows):
            return False
        self._save(branch, remaining)
        logger.info(
            "row_removed_local",
            extra={"branch": Branch(branch).value, "row_id": str(row_id)},
        )
        return True
