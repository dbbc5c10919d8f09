"""Persistent free-trial counter for anonymous sessions."""
from __future__ import annotations

import logging

from docclient.core.settings import QUOTA_STORAGE_KEY
from docclient.core.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_LIMIT = 15


class TrialQuotaTracker:
    """Counts used trials in a device-local key-value store.

    The counter is advisory: anything with access to the store can reset it.
    """

    def __init__(self, store: KeyValueStore, *, limit: int = DEFAULT_TRIAL_LIMIT, key: str = QUOTA_STORAGE_KEY) -> None:
        if limit < 0:
            raise ValueError("limit must not be negative")
        self._store = store
        self._limit = limit
        self._key = key

    @property
    def limit(self) -> int:
        return self._limit

    def _clamp(self, value: int) -> int:
        return max(0, min(self._limit, value))

    def used(self) -> int:
        raw = self._store.get(self._key)
        if raw is None:
            return 0
        try:
            value = int(str(raw).strip())
        except ValueError:
            logger.warning("ignoring malformed trial counter %r", raw)
            return 0
        return self._clamp(value)

    def remaining(self) -> int:
        return max(0, self._limit - self.used())

    def consume(self) -> int:
        """Record one successful trial and return the remaining count."""

        used = self._clamp(self.used() + 1)
        self._store.set(self._key, str(used))
        return max(0, self._limit - used)

    def reset(self) -> None:
        self._store.delete(self._key)
