"""
DebouncedWriter -- clock-driven trailing-edge debouncer.

Each key (a row id) has at most one pending deadline.  schedule() restarts
it, flush_due() fires every callback whose deadline has passed.  Nothing
fires on its own: the lifecycle controller calls flush_due() from tick().
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from datetime import datetime, timedelta

from cashbox_kernel.domain.clock import Clock


class DebouncedWriter:
    """
    Per-key trailing-edge debouncer.

    Contract:
        ``flush_fn(key)`` is called at most once per schedule() burst, no
        earlier than ``delay`` seconds after the last schedule() for that
        key.

    Non-goals:
        - No background thread or timer; time only moves on flush_due().
    """

    def __init__(
        self,
        clock: Clock,
        delay: float,
        flush_fn: Callable[[Hashable], None],
    ):
        self._clock = clock
        self._delay = timedelta(seconds=delay)
        self._flush_fn = flush_fn
        self._deadlines: dict[Hashable, datetime] = {}

    @property
    def delay_seconds(self) -> float:
        return self._delay.total_seconds()

    def schedule(self, key: Hashable) -> datetime:
        """(Re)start the pending write for ``key``; returns its deadline."""
        deadline = self._clock.now() + self._delay
        self._deadlines[key] = deadline
        return deadline

    def cancel(self, key: Hashable) -> bool:
        return self._deadlines.pop(key, None) is not None

    def cancel_all(self) -> None:
        self._deadlines.clear()

    def is_pending(self, key: Hashable) -> bool:
        return key in self._deadlines

    def deadline(self, key: Hashable) -> datetime | None:
        return self._deadlines.get(key)

    def pending_keys(self) -> list[Hashable]:
        return list(self._deadlines)

    def flush(self, key: Hashable) -> bool:
        """Fire ``key`` now if pending; returns whether it fired."""
        if self._deadlines.pop(key, None) is None:
            return False
        self._flush_fn(key)
        return True

    def flush_due(self) -> list[Hashable]:
        """Fire every key whose deadline has passed, oldest first."""
        now = self._clock.now()
        due = sorted(
            (key for key, deadline in self._deadlines.items() if deadline <= now),
            key=lambda k: self._deadlines[k],
        )
        for key in due:
            del self._deadlines[key]
            self._flush_fn(key)
        return due
