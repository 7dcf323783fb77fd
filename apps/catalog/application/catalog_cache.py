from __future__ import annotations

import threading

from apps.catalog.domain.types import CatalogSnapshot


class CatalogCache:
    """
    Process-wide holder of the current catalog snapshot.

    Readers get whole snapshots; writers swap the reference under a lock.
    Snapshots themselves are frozen, so a reader never sees a half-loaded catalog.
    """

    _lock = threading.Lock()
    _snapshot: CatalogSnapshot = CatalogSnapshot()

    @classmethod
    def snapshot(cls) -> CatalogSnapshot:
        return cls._snapshot

    @classmethod
    def replace(cls, snapshot: CatalogSnapshot) -> CatalogSnapshot:
        with cls._lock:
            previous = cls._snapshot
            cls._snapshot = snapshot
        return previous

    @classmethod
    def clear(cls) -> None:
        cls.replace(CatalogSnapshot())
