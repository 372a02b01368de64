from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from media_resolver.core.carousel import CarouselReconciler
from media_resolver.core.dom_utils import (
    get_best_image_url,
    get_post_root,
    get_video_url,
    is_visible_element,
    largest_visible,
    media_info_from_element,
)
from media_resolver.core.dto.media import MediaInfo
from media_resolver.core.dto.page import ElementSnapshot, PageDocument, ResourceTimingBuffer
from media_resolver.core.media_manager import MediaManager
from media_resolver.core.performance_scanner import STORY_MAX_AGE_MS, PerformanceScanner

logger = logging.getLogger(__name__)


# Story video weights; each tier dominates the ones below it.
VISIBLE_WEIGHT = 500_000
PLAYING_WEIGHT = 300_000
BUFFERED_WEIGHT = 100_000
UNMUTED_WEIGHT = 10_000
TRANSIENT_WEIGHT = 1_000
HAVE_CURRENT_DATA = 2

PORTRAIT_BONUS = 100_000
PROFILE_PHOTO_PENALTY = 1_000_000
PROFILE_PHOTO_RE = re.compile(r"/t51\.2885-19/", re.IGNORECASE)


class DomScanner:
    """
    Reads media candidates out of a document snapshot.

    Story pages: score every video, fall back to the resource-timing buffer,
    then to portrait images. Post pages: active slide first, then the largest
    visible video or image under the post root.
    """

    def __init__(
        self,
        reconciler: Optional[CarouselReconciler] = None,
        performance: Optional[PerformanceScanner] = None,
        *,
        story_perf_max_age_ms: float = STORY_MAX_AGE_MS,
    ):
        self.reconciler = reconciler or CarouselReconciler()
        self.performance = performance or PerformanceScanner()
        self.story_perf_max_age_ms = story_perf_max_age_ms

    # ---------------------------------------------------------
    # Entry point
    # ---------------------------------------------------------

    def scan(
        self,
        document: PageDocument,
        timings: Optional[ResourceTimingBuffer] = None,
        *,
        in_story: bool,
    ) -> Optional[MediaInfo]:
        if in_story:
            return self.scan_story(document, timings)
        return self.scan_post(document)

    # ---------------------------------------------------------
    # Stories
    # ---------------------------------------------------------

    def score_story_video(self, video: ElementSnapshot, document: PageDocument) -> Optional[Tuple[str, float]]:
        url = get_video_url(video)
        if not url:
            return None

        score = video.rect.area
        if is_visible_element(video, document):
            score += VISIBLE_WEIGHT
        if not video.paused and not video.ended:
            score += PLAYING_WEIGHT
        if video.ready_state >= HAVE_CURRENT_DATA:
            score += BUFFERED_WEIGHT
        if not video.muted:
            score += UNMUTED_WEIGHT
        if MediaManager.is_transient_url(url):
            score += TRANSIENT_WEIGHT
        return url, score

    def pick_story_video(self, videos: Sequence[ElementSnapshot], document: PageDocument) -> Optional[MediaInfo]:
        ranked = [s for s in (self.score_story_video(v, document) for v in videos) if s is not None]
        if not ranked:
            return None
        url, _ = sorted(ranked, key=lambda pair: -pair[1])[0]
        return MediaInfo(url=url, type="video")

    def pick_story_image(self, images: Sequence[ElementSnapshot], document: PageDocument) -> Optional[MediaInfo]:
        ranked: List[Tuple[ElementSnapshot, float]] = []
        for image in images:
            if not is_visible_element(image, document):
                continue
            url = get_best_image_url(image)
            if not url:
                continue
            score = image.rect.area
            if image.rect.height > image.rect.width:
                score += PORTRAIT_BONUS
            if PROFILE_PHOTO_RE.search(url):
                score -= PROFILE_PHOTO_PENALTY
            ranked.append((image, score))

        if not ranked:
            return None
        best, _ = sorted(ranked, key=lambda pair: -pair[1])[0]
        url = get_best_image_url(best)
        return MediaInfo(url=url, type="photo") if url else None

    def scan_story(self, document: PageDocument, timings: Optional[ResourceTimingBuffer]) -> Optional[MediaInfo]:
        video = self.pick_story_video(document.query_all("video"), document)
        if video is not None:
            return video

        if timings is not None:
            perf_video = self.performance.pick_video(timings, max_age_ms=self.story_perf_max_age_ms)
            if perf_video is not None:
                logger.debug(f"Story video recovered from resource timings: {perf_video.url}")
                return perf_video

        return self.pick_story_image(document.query_all("img"), document)

    # ---------------------------------------------------------
    # Posts
    # ---------------------------------------------------------

    def pick_largest(self, elements: Sequence[ElementSnapshot], document: PageDocument, kind: str) -> Optional[MediaInfo]:
        largest = largest_visible(elements, document)
        if largest is None:
            return None
        if kind == "video":
            url = largest.current_src or largest.src or None
        else:
            url = get_best_image_url(largest)
        return MediaInfo(url=url, type=kind) if url else None

    def scan_post(self, document: PageDocument) -> Optional[MediaInfo]:
        context = self.reconciler.active_media_context(document)
        active = media_info_from_element(context.active_media_element)
        if active is not None:
            return active

        root = get_post_root(document)
        video = self.pick_largest(root.query_all("video"), document, "video")
        if video is not None:
            return video
        return self.pick_largest(root.query_all("img"), document, "photo")

    def largest_visible_video_url(self, document: PageDocument) -> Optional[str]:
        root = get_post_root(document)
        return get_video_url(largest_visible(root.query_all("video"), document))
