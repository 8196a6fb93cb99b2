"""
Admission set

The single synchronisation point of a crawl: a module identity is
processed only by the caller whose ``admit_if_new`` call inserted it.
Membership only grows for the lifetime of a run.
"""

from collections.abc import Hashable
from threading import Lock


class AdmissionSet:
    """Concurrency-safe set with an atomic check-and-insert."""

    def __init__(self) -> None:
        self._members: set[Hashable] = set()
        self._lock = Lock()

    def admit_if_new(self, key: Hashable) -> bool:
        """Insert ``key`` and return True, or return False if it was already present."""
        with self._lock:
            if key in self._members:
                return False
            self._members.add(key)
            return True

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._members

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)
