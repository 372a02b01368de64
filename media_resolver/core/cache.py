from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from media_resolver.core.dto.media import CacheEntry, MediaInfo
from media_resolver.core.retry import Clock

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Cache policy
# ------------------------------------------------------------

DOM_CACHE_TTL_SECONDS = 3.5
API_CACHE_TTL_SECONDS = 10.0


@dataclass(frozen=True)
class CacheRule:
    name: str
    ttl_seconds: float


# ------------------------------------------------------------
# Single-slot store
# ------------------------------------------------------------

class SingleSlotCache:
    """
    Holds exactly one entry.

    - Writes always overwrite (last-write-wins, no merge).
    - Reads are valid only for the same key and within the TTL.
    - Nothing is ever deleted; staleness is decided at read time.
    """

    def __init__(self, rule: CacheRule, clock: Clock):
        self.rule = rule
        self._clock = clock
        self._entry: Optional[CacheEntry] = None

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    def get(self, key: str) -> Optional[MediaInfo]:
        entry = self._entry
        if entry is None or entry.key != key:
            return None
        age = self._clock.now() - entry.stored_at
        if age > self.rule.ttl_seconds:
            logger.debug(f"[{self.rule.name} cache] stale for {key} (age {age:.2f}s)")
            return None
        logger.debug(f"[{self.rule.name} cache] hit for {key}")
        return entry.media_info

    def set(self, key: str, media: MediaInfo) -> None:
        self._entry = CacheEntry(key=key, stored_at=self._clock.now(), media_info=media)


# ------------------------------------------------------------
# Combined facade
# ------------------------------------------------------------

class PrefetchCache:
    """Independent DOM and API slots sharing one clock."""

    def __init__(
        self,
        clock: Clock,
        *,
        dom_ttl_seconds: float = DOM_CACHE_TTL_SECONDS,
        api_ttl_seconds: float = API_CACHE_TTL_SECONDS,
    ):
        self.dom = SingleSlotCache(CacheRule("dom", dom_ttl_seconds), clock)
        self.api = SingleSlotCache(CacheRule("api", api_ttl_seconds), clock)

    def get_dom(self, key: str) -> Optional[MediaInfo]:
        return self.dom.get(key)

    def set_dom(self, key: str, media: Optional[MediaInfo]) -> None:
        if media is not None:
            self.dom.set(key, media)

    def get_api(self, key: str) -> Optional[MediaInfo]:
        return self.api.get(key)

    def set_api(self, key: str, media: Optional[MediaInfo]) -> None:
        if media is not None:
            self.api.set(key, media)
