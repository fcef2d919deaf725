"""
Explicit lifetime tracking for created materials, textures and decal patches.

Nothing in the pipeline relies on garbage collection to free a superseded
resource: whoever replaces one releases it here, and tests read live()
to check that nothing leaked.
"""
import logging
from collections import Counter
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class ResourceLedger:
    def __init__(self):
        self._live: Dict[int, tuple] = {}
        self.created = Counter()
        self.released = Counter()

    def track(self, obj, kind: str):
        self._live[id(obj)] = (kind, obj)
        self.created[kind] += 1
        return obj

    def release(self, obj) -> bool:
        """Drop obj from the ledger and close it if it owns a buffer. Returns False if untracked."""
        entry = self._live.pop(id(obj), None)
        if entry is None:
            return False
        kind, _obj = entry
        self.released[kind] += 1
        close = getattr(obj, "close", None)
        if callable(close):
            close()
        return True

    def owns(self, obj) -> bool:
        return id(obj) in self._live

    def live(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return len(self._live)
        return sum(1 for k, _ in self._live.values() if k == kind)

    def release_all(self) -> int:
        count = 0
        for _kind, obj in list(self._live.values()):
            if self.release(obj):
                count += 1
        if count:
            logger.debug("[resources] Released %d resources", count)
        return count
