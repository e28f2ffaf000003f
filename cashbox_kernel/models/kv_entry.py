"""
Module: cashbox_kernel.models.kv_entry
Responsibility: ORM persistence for the durable key-value store that backs
    the local (active-row) tier.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - key is unique; a set() overwrites the previous value.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cashbox_kernel.db.base import Base


class KeyValueEntry(Base):
    """A single string value stored under a unique key."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<KeyValueEntry {self.key}>"
