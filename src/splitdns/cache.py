from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .answer import Answer

""" Answer cache where each entry expires with its most restrictive record.

Brief:
  Thread-safe in-memory cache keyed by "<fqdn>|<qtype>". Each entry lives for
  the minimum TTL across the answers it was stored with; every read reports the
  remaining lifetime on all returned answers.

Notes:
  - Eviction is lazy: an expired entry stays in memory until the next get()
    for that exact key discovers it.
  - There is no per-key locking around "miss -> upstream -> set"; two
    concurrent misses for the same key both reach the upstream and the last
    set() wins.
"""


_logger = logging.getLogger(__name__)


@dataclass
class CachedEntry:
    answers: List[Answer]
    expires_at: float


class AnswerCache:
    """Thread-safe answer cache with per-entry expiry.

    Brief:
        Stores non-empty answer sets until ``now + min(ttl)``. Readers receive
        copies of the cached answers with ``ttl`` rewritten to the remaining
        whole seconds (rounded up); an entry whose remaining ttl is 0 or less
        is treated as expired.

    Inputs:
        - clock: Optional zero-argument callable returning seconds as a float.
          Defaults to time.monotonic.

    Outputs:
        AnswerCache instance

    Notes:
        All dictionary operations are synchronized with an RLock.

    Example use:
        >>> from splitdns.answer import Answer
        >>> cache = AnswerCache()
        >>> cache.set("example.com.|1", [Answer("example.com.", 1, 60, "1.2.3.4")])
        >>> answers, found = cache.get("example.com.|1")
        >>> found, answers[0].ttl
        (True, 60)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: Dict[str, object] = {}
        self._lock = threading.RLock()

        # Best-effort counters for diagnostics; they do not affect cache
        # semantics.
        self.hits: int = 0
        self.misses: int = 0
        self.evictions: int = 0

    def set(self, key: str, answers: List[Answer]) -> None:
        """
        Stores an answer set under key.

        Inputs:
            key: Cache key ("<fqdn>|<qtype>").
            answers: Answers returned by an upstream handle. An empty list is
                never cached.
        Outputs:
            None

        Example use:
            >>> cache = AnswerCache()
            >>> cache.set("empty.|1", [])
            >>> cache.get("empty.|1")
            ([], False)
        """
        if not answers:
            return

        min_ttl = min(int(a.ttl) for a in answers)
        entry = CachedEntry(answers=list(answers), expires_at=self._clock() + min_ttl)
        with self._lock:
            self._store[key] = entry

    def get(self, key: str) -> Tuple[List[Answer], bool]:
        """
        Retrieves a fresh answer set from the cache.

        Inputs:
            key: Cache key to look up.

        Outputs:
            (answers, found): found is False when the key is absent, expired
            or holds a malformed value; expired and malformed entries are
            removed.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self.misses += 1
                return [], False

            if not isinstance(entry, CachedEntry):
                _logger.debug("AnswerCache dropping malformed entry: key=%r", key)
                self._evict_locked(key)
                return [], False

            ttl = int(math.ceil(entry.expires_at - self._clock()))
            if ttl <= 0:
                _logger.debug("AnswerCache TTL eviction: key=%r", key)
                self._evict_locked(key)
                return [], False

            self.hits += 1
            return [a.with_ttl(ttl) for a in entry.answers], True

    def _evict_locked(self, key: str) -> None:
        self._store.pop(key, None)
        self.evictions += 1
        self.misses += 1

    def stats(self) -> Dict[str, int]:
        """Brief: Snapshot of cache size and access counters.

        Inputs:
          - None.

        Outputs:
          - dict with keys entries, hits, misses and evictions.
        """

        with self._lock:
            return {
                "entries": len(self._store),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
