"""
Per-keyword record of video ids already delivered.

Each keyword gets an insertion-ordered set bounded to ``capacity`` ids;
when full, the oldest id is evicted. An evicted id can be reported as new
again, which is acceptable: delivery is at-least-once for recent videos,
not exactly-once forever.

All methods are synchronous and never await, so on the event loop every
call (including ``check_and_mark``) runs to completion without
interleaving with other coroutines touching the same keyword.
"""

import logging
from collections import OrderedDict

logger = logging.getLogger(__name__)


class SeenVideoCache:
    """Bounded per-keyword seen sets with oldest-first eviction."""

    def __init__(self, capacity: int = 200) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._seen: dict[str, OrderedDict[str, None]] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def has_seen(self, keyword: str, video_id: str) -> bool:
        seen = self._seen.get(keyword)
        return seen is not None and video_id in seen

    def mark_seen(self, keyword: str, video_id: str) -> None:
        """Record ``video_id`` for ``keyword``, evicting the oldest id when full.

        Re-marking an id already held does not refresh its position.
        """
        seen = self._seen.setdefault(keyword, OrderedDict())
        if video_id in seen:
            return
        seen[video_id] = None
        while len(seen) > self._capacity:
            evicted, _ = seen.popitem(last=False)
            logger.debug("Evicted %s from seen set of %r", evicted, keyword)

    def check_and_mark(self, keyword: str, video_id: str) -> bool:
        """Mark ``video_id`` as seen and report whether it was new."""
        if self.has_seen(keyword, video_id):
            return False
        self.mark_seen(keyword, video_id)
        return True

    def clear(self, keyword: str) -> None:
        """Release the seen set of a keyword that is no longer watched."""
        self._seen.pop(keyword, None)

    def size(self, keyword: str) -> int:
        seen = self._seen.get(keyword)
        return len(seen) if seen else 0

    def __len__(self) -> int:
        """Number of keywords with a seen set."""
        return len(self._seen)
