"""Batch-scoped analysis result cache."""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable

from testgrade.models import AnalysisUnit


def cache_key(path: str, test_source: bytes, source_source: bytes | None, config_repr: str) -> str:
    """Content digest of everything that can change an analysis result."""
    digest = hashlib.sha256()
    for part in (
        path.encode("utf-8"),
        test_source,
        b"\x00none" if source_source is None else source_source,
        config_repr.encode("utf-8"),
    ):
        digest.update(len(part).to_bytes(8, "big"))
        digest.update(part)
    return digest.hexdigest()


class ResultCache:
    """Cache AnalysisUnits across the worker threads of one batch.

    Key: content digest of (path, test bytes, source bytes, config).
    One lock guards every read and every write.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: dict[str, AnalysisUnit] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> AnalysisUnit | None:
        with self._lock:
            found = self._results.get(key)
            if found is None:
                self.misses += 1
            else:
                self.hits += 1
            return found

    def put(self, key: str, unit: AnalysisUnit) -> None:
        with self._lock:
            self._results[key] = unit

    def get_or_compute(self, key: str, compute: Callable[[], AnalysisUnit]) -> AnalysisUnit:
        """Return the cached unit, computing and storing it on a miss.

        ``compute`` runs outside the lock; two threads racing on the same
        key both compute, and both results are identical.
        """
        found = self.get(key)
        if found is not None:
            return found
        unit = compute()
        self.put(key, unit)
        return unit

    def clear(self) -> None:
        with self._lock:
            self._results = {}
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


__all__ = ["ResultCache", "cache_key"]
