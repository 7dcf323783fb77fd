from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class OrderLocks:
    """
    Process-local mutual exclusion keyed by order id.

    Two requests for the same order in one process never interleave their
    load -> provider -> save sequence. Across processes the status
    compare-and-swap in `OrderStore.save_if_status` decides the winner.
    Entries are dropped once no thread holds or waits on them.
    """

    _guard = threading.Lock()
    _entries: dict[str, _Entry] = {}

    @classmethod
    @contextmanager
    def hold(cls, order_id: str) -> Iterator[None]:
        with cls._guard:
            entry = cls._entries.get(order_id)
            if entry is None:
                entry = cls._entries[order_id] = _Entry()
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with cls._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    cls._entries.pop(order_id, None)

    @classmethod
    def is_held(cls, order_id: str) -> bool:
        with cls._guard:
            entry = cls._entries.get(order_id)
            return entry is not None and entry.lock.locked()
