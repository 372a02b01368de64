from __future__ import annotations

import logging
import math
import re
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from media_resolver.core.dto.media import MediaInfo, PerformanceCandidate
from media_resolver.core.dto.page import ResourceTimingBuffer
from media_resolver.core.media_manager import DASH_INIT_RE, SEGMENTED_RE

logger = logging.getLogger(__name__)


CDN_RE = re.compile(r"cdninstagram\.com", re.IGNORECASE)
MP4_RE = re.compile(r"\.mp4(\?|$)", re.IGNORECASE)
EXPLICIT_VIDEO_RE = re.compile(r"mime_type=video|xpv_progressive", re.IGNORECASE)
MIME_VIDEO_RE = re.compile(r"mime_type=video", re.IGNORECASE)
AUDIO_ONLY_RE = re.compile(r"mime_type=audio|[_/.-]audio(?:only)?[_/.-]|heaac", re.IGNORECASE)
VIDEO_PATH_RE = re.compile(r"/o1/v/|/v/t\d/", re.IGNORECASE)

RANGE_PARAMS = ("bytestart", "byteend", "range")

EXPLICIT_VIDEO_BONUS = 100
VIDEO_PATH_BONUS = 25
SEGMENTED_PENALTY = 500
DASH_INIT_PENALTY = 1200
SANITIZED_BONUS = 350

STORY_MAX_AGE_MS = 120_000
POST_MAX_AGE_MS = 30_000


def sanitize_segmented_url(url: str) -> str:
    """Strip byte-range query parameters; returns `url` untouched if none are present."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    query = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(k, v) for k, v in query if k.lower() not in RANGE_PARAMS]
    if len(kept) == len(query):
        return url
    return urlunsplit(parts._replace(query=urlencode(kept)))


def _is_video_resource(url: str) -> bool:
    if not CDN_RE.search(url):
        return False
    if not (MP4_RE.search(url) or MIME_VIDEO_RE.search(url)):
        return False
    return AUDIO_ONLY_RE.search(url) is None


def _base_score(url: str) -> int:
    score = 0
    if EXPLICIT_VIDEO_RE.search(url):
        score += EXPLICIT_VIDEO_BONUS
    if VIDEO_PATH_RE.search(url):
        score += VIDEO_PATH_BONUS
    if SEGMENTED_RE.search(url):
        score -= SEGMENTED_PENALTY
    if DASH_INIT_RE.search(url):
        score -= DASH_INIT_PENALTY
    return score


class PerformanceScanner:
    """
    Recovers video URLs from the resource-timing buffer.

    Blob-backed players never expose their network URL in the DOM, but the
    browser still records the fetches they made.
    """

    def build_candidates(
        self,
        buffer: ResourceTimingBuffer,
        *,
        max_age_ms: Optional[float] = None,
    ) -> List[PerformanceCandidate]:
        candidates: Dict[str, PerformanceCandidate] = {}
        limit = max_age_ms if max_age_ms is not None else math.inf

        def upsert(url: str, score: int, response_end: float, source: str) -> None:
            existing = candidates.get(url)
            if (
                existing is None
                or score > existing.score
                or (score == existing.score and response_end > existing.response_end)
            ):
                candidates[url] = PerformanceCandidate(
                    url=url, score=score, response_end=response_end, source=source
                )

        for entry in buffer.entries:
            raw_url = entry.name
            if not raw_url or not _is_video_resource(raw_url):
                continue

            timestamp = max(entry.response_end, entry.start_time)
            if buffer.now - timestamp > limit:
                continue

            base = _base_score(raw_url)
            upsert(raw_url, base, entry.response_end, "raw")

            sanitized = sanitize_segmented_url(raw_url)
            if sanitized != raw_url and not DASH_INIT_RE.search(raw_url):
                upsert(sanitized, base + SANITIZED_BONUS, entry.response_end, "sanitized")

        ranked = sorted(candidates.values(), key=lambda c: (-c.score, -c.response_end))
        logger.debug(f"Performance scan: {len(ranked)} candidate(s) from {len(buffer.entries)} entries")
        return ranked

    def pick_video(
        self,
        buffer: ResourceTimingBuffer,
        *,
        max_age_ms: Optional[float] = None,
    ) -> Optional[MediaInfo]:
        ranked = self.build_candidates(buffer, max_age_ms=max_age_ms)
        if not ranked:
            return None
        return MediaInfo(url=ranked[0].url, type="video")
