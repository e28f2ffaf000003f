"""
KeyValueStore -- string key-value backends for the local row tier.

Responsibility:
    Minimal ``get`` / ``set`` / ``delete`` storage of string values.
    LocalRowStore keeps one JSON document per branch in it.

Architecture position:
    Kernel > Services.  SqlKeyValueStore opens its own short transaction per
    call through session_scope(); the in-memory variant is for tests and
    single-process use.

Failure modes:
    - SqlKeyValueStore lets SQLAlchemy errors propagate; the local tier is
      expected to be available (it is the device's own storage).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from cashbox_kernel.db.engine import session_scope
from cashbox_kernel.models.kv_entry import KeyValueEntry


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqlKeyValueStore:
    """
    Durable store on the ``kv_entries`` table.

    Contract:
        Each call is its own committed transaction.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        with session_scope(self._session_factory) as session:
            return session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            ).scalar_one_or_none()

    def set(self, key: str, value: str) -> None:
        with session_scope(self._session_factory) as session:
            entry = session.execute(
                select(KeyValueEntry).where(KeyValueEntry.key == key)
            ).scalar_one_or_none()
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value

    def delete(self, key: str) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
