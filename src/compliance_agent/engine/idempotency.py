"""Process-local idempotency cache for create requests.

Contract: the cache starts empty with every process, holds at most
``max_entries`` keys (least recently used evicted first) and forgets a key
``ttl_seconds`` after it was stored. Keys are scoped by resource so the same
client key may be reused across resource types. Entries are write-once.

A create reserves its key before touching the store and stores the identity
after commit; a second create arriving while the key is reserved is refused
rather than inserting a duplicate row. Reservations are not shared between
processes, so horizontally scaled agents still rely on the store's unique
constraints for duplicates that race across instances.
"""

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Optional

from compliance_agent.config import settings


class IdempotencyCache:
    """Bounded LRU map of (resource, key) to the identity of a created row."""

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[float, dict[str, Any]]] = OrderedDict()
        self._reserved: set[tuple[str, str]] = set()
        self._lock = Lock()

    def get(self, resource: str, key: str) -> Optional[dict[str, Any]]:
        """Return the stored identity, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get((resource, key))
            if entry is None:
                return None
            stored_at, identity = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[(resource, key)]
                return None
            self._entries.move_to_end((resource, key))
            return dict(identity)

    def reserve(self, resource: str, key: str) -> bool:
        """Claim key for an in-flight create. False when another create holds it."""
        with self._lock:
            if (resource, key) in self._reserved:
                return False
            self._reserved.add((resource, key))
            return True

    def release(self, resource: str, key: str) -> None:
        """Drop a reservation whose create did not commit."""
        with self._lock:
            self._reserved.discard((resource, key))

    def put(self, resource: str, key: str, identity: dict[str, Any]) -> None:
        """Remember identity under key unless a live entry already exists."""
        with self._lock:
            self._reserved.discard((resource, key))
            existing = self._entries.get((resource, key))
            if existing is not None and self._clock() - existing[0] <= self.ttl_seconds:
                return
            self._entries[(resource, key)] = (self._clock(), dict(identity))
            self._entries.move_to_end((resource, key))
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


_cache: IdempotencyCache | None = None


def get_idempotency_cache() -> IdempotencyCache:
    """Get or create the process-wide idempotency cache."""
    global _cache
    if _cache is None:
        _cache = IdempotencyCache(
            max_entries=settings.idempotency_max_entries,
            ttl_seconds=settings.idempotency_ttl_seconds,
        )
    return _cache
