from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from media_resolver.core.dto.media import ApiMediaItem, MediaInfo, Rendition

logger = logging.getLogger(__name__)


PROGRESSIVE_RE = re.compile(r"xpv_progressive|mime_type=video", re.IGNORECASE)
SEGMENTED_RE = re.compile(r"bytestart=|byteend=|range=", re.IGNORECASE)
DASH_INIT_RE = re.compile(r"/dashinit\.mp4", re.IGNORECASE)
VIDEO_URL_RE = re.compile(r"\.mp4(\?|$)|mime_type=video|/video/", re.IGNORECASE)

PROGRESSIVE_BONUS = 2_000_000
SEGMENTED_PENALTY = 3_000_000
DASH_INIT_PENALTY = 5_000_000


class MediaManager:
    """
    Stateless media helpers shared by every evidence source.

    Responsibilities:
    - Rank backend renditions (video and image)
    - Turn a backend item into a MediaInfo
    - Normalize claimed media kinds against the URL shape
    - Derive file-name tokens used for cross-source matching
    """

    # ------------------------------------------------------------------
    # URL shape
    # ------------------------------------------------------------------

    @staticmethod
    def is_transient_url(url: Optional[str]) -> bool:
        return bool(url) and url.startswith("blob:")

    @staticmethod
    def looks_like_video_url(url: Optional[str]) -> bool:
        if not url:
            return False
        return VIDEO_URL_RE.search(url) is not None

    @staticmethod
    def file_token(url: Optional[str]) -> str:
        """Final path segment of a URL, e.g. `350_n.mp4`."""
        if not url or not isinstance(url, str):
            return ""
        try:
            path = urlparse(url).path
        except ValueError:
            path = url.split("?")[0]
        return path.rsplit("/", 1)[-1] if path else ""

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    @classmethod
    def normalize_media_info(cls, media: Optional[MediaInfo]) -> Optional[MediaInfo]:
        """Re-label as video when the URL structurally is one. Never mutates."""
        if media is None:
            return None
        if media.type != "video" and cls.looks_like_video_url(media.url):
            return replace(media, type="video")
        return media

    # ------------------------------------------------------------------
    # Variant ranking
    # ------------------------------------------------------------------

    @staticmethod
    def score_video_rendition(rendition: Rendition) -> int:
        score = rendition.width * rendition.height
        if PROGRESSIVE_RE.search(rendition.url):
            score += PROGRESSIVE_BONUS
        if SEGMENTED_RE.search(rendition.url):
            score -= SEGMENTED_PENALTY
        if DASH_INIT_RE.search(rendition.url):
            score -= DASH_INIT_PENALTY
        return score

    @classmethod
    def rank_video_versions(cls, versions: Sequence[Rendition]) -> List[Tuple[Rendition, int]]:
        scored = [(r, cls.score_video_rendition(r)) for r in versions if r.url]
        # Init segments sink below everything; sorted() keeps list order on ties.
        return sorted(
            scored,
            key=lambda pair: (DASH_INIT_RE.search(pair[0].url) is not None, -pair[1]),
        )

    @staticmethod
    def rank_image_candidates(candidates: Sequence[Rendition]) -> List[Tuple[Rendition, int]]:
        scored = [(r, r.width * r.height) for r in candidates if r.url]
        return sorted(scored, key=lambda pair: -pair[1])

    @classmethod
    def best_video_url(cls, item: Optional[ApiMediaItem]) -> Optional[str]:
        if item is None:
            return None
        ranked = cls.rank_video_versions(item.video_versions)
        return ranked[0][0].url if ranked else None

    @classmethod
    def best_image_url(cls, item: Optional[ApiMediaItem]) -> Optional[str]:
        if item is None:
            return None
        ranked = cls.rank_image_candidates(item.image_candidates)
        return ranked[0][0].url if ranked else None

    @classmethod
    def media_info_from_item(cls, item: Optional[ApiMediaItem]) -> Optional[MediaInfo]:
        """Video wins when the item is a video and a usable video URL exists."""
        if item is None:
            return None

        video_url = cls.best_video_url(item)
        image_url = cls.best_image_url(item)

        if item.is_video and video_url:
            return MediaInfo(url=video_url, type="video", account_name=item.username)
        if image_url:
            return MediaInfo(url=image_url, type="photo", account_name=item.username)
        if video_url:
            return MediaInfo(url=video_url, type="video", account_name=item.username)
        return None

    @classmethod
    def item_has_token(cls, item: Optional[ApiMediaItem], token: str) -> bool:
        if item is None or not token:
            return False
        return any(cls.file_token(url) == token for url in item.rendition_urls())
