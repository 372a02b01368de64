from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from media_resolver.core.api_fetcher import ApiEvidenceFetcher
from media_resolver.core.context import ResolutionContext
from media_resolver.core.context_resolver import ContextResolver, PageIdentity, has_strong_video_signal
from media_resolver.core.dom_scanner import DomScanner
from media_resolver.core.dto.media import MediaInfo, Resolution
from media_resolver.core.evidence import EvidenceSource
from media_resolver.core.media_manager import MediaManager
from media_resolver.core.retry import BoundedRetry

logger = logging.getLogger(__name__)


DOM_RETRY_COUNT = 6
DOM_RETRY_DELAY_SECONDS = 0.5
VIDEO_WAIT_ATTEMPTS = 10
VIDEO_WAIT_INTERVAL_SECONDS = 0.25


class ResolutionArbiter:
    """
    Fuses DOM, backend and meta-tag evidence into one MediaInfo per request.

    Stories: API > quick DOM > DOM retry.
    Posts:   API (unless API says photo and the DOM shows a video) > quick DOM
             > DOM retry > meta tags, then a canonical-video override when the
             page is inherently video but the pick is not.
    """

    def __init__(
        self,
        source: EvidenceSource,
        context: ResolutionContext,
        api_fetcher: ApiEvidenceFetcher,
        *,
        scanner: Optional[DomScanner] = None,
        resolver: Optional[ContextResolver] = None,
        dom_retry_count: int = DOM_RETRY_COUNT,
        dom_retry_delay: float = DOM_RETRY_DELAY_SECONDS,
        video_wait_attempts: int = VIDEO_WAIT_ATTEMPTS,
        video_wait_interval: float = VIDEO_WAIT_INTERVAL_SECONDS,
    ):
        self.source = source
        self.context = context
        self.api_fetcher = api_fetcher
        self.scanner = scanner or DomScanner()
        self.resolver = resolver or ContextResolver(self.scanner.reconciler)
        self.dom_retry_count = dom_retry_count
        self.dom_retry_delay = dom_retry_delay
        self.video_wait_attempts = video_wait_attempts
        self.video_wait_interval = video_wait_interval

    # ---------------------------------------------------------
    # Evidence helpers
    # ---------------------------------------------------------

    def identify(self) -> PageIdentity:
        return self.resolver.resolve(self.source.location(), self.source.snapshot_document())

    def scan_dom_once(self, identity: PageIdentity) -> Optional[MediaInfo]:
        document = self.source.snapshot_document()
        timings = self.source.query_resource_timings() if identity.in_story else None
        media = self.scanner.scan(document, timings, in_story=identity.in_story)
        return MediaManager.normalize_media_info(media)

    def quick_dom(self, identity: PageIdentity) -> Tuple[Optional[MediaInfo], bool]:
        """DOM result for `identity` and whether it was served from the cache."""
        cached = self.context.cache.get_dom(identity.key)
        if cached is not None:
            return cached, True
        return self.scan_dom_once(identity), False

    async def scan_dom_with_retry(self, identity: PageIdentity) -> Optional[MediaInfo]:
        async for attempt in BoundedRetry(self.dom_retry_count, self.dom_retry_delay, self.context.clock):
            await self.source.prime_videos()
            media = self.scan_dom_once(identity)
            if media is not None:
                logger.debug(f"DOM retry found media on attempt {attempt.number}")
                return media
        return None

    async def wait_for_visible_video(self) -> Optional[MediaInfo]:
        async for _ in BoundedRetry(self.video_wait_attempts, self.video_wait_interval, self.context.clock):
            await self.source.prime_videos()
            url = self.scanner.largest_visible_video_url(self.source.snapshot_document())
            if url:
                return MediaInfo(url=url, type="video")
        return None

    def media_from_meta(self) -> Optional[MediaInfo]:
        meta = self.source.read_meta_tags()
        if meta.video_url:
            return MediaInfo(url=meta.video_url, type="video")
        if meta.og_image:
            return MediaInfo(url=meta.og_image, type="photo")
        return None

    # ---------------------------------------------------------
    # Decision procedure
    # ---------------------------------------------------------

    async def resolve(self, identity: Optional[PageIdentity] = None) -> Resolution:
        identity = identity or self.identify()

        # Start the backend lookup first; the quick DOM scan runs meanwhile.
        api_task = self.api_fetcher.start(identity)
        dom_quick, dom_from_cache = self.quick_dom(identity)
        api_media = MediaManager.normalize_media_info(await asyncio.shield(api_task))

        if identity.in_story:
            media, source = await self._resolve_story(identity, api_media, dom_quick)
        else:
            media, source = await self._resolve_post(identity, api_media, dom_quick)

        details = {
            "api": api_media.to_dict() if api_media else None,
            "domQuick": dom_quick.to_dict() if dom_quick else None,
        }

        if media is None:
            logger.info(f"No media found for {identity.key}")
            return Resolution(media=None, source="none", context_key=identity.key,
                              in_story=identity.in_story, details=details)

        media = MediaManager.normalize_media_info(media)
        # Only fresh scans are stored; a cache hit keeps its original timestamp.
        if source in ("dom-retry", "dom-video-canonical-fallback"):
            self.context.cache.set_dom(identity.key, media)
        elif dom_quick is not None and not dom_from_cache:
            self.context.cache.set_dom(identity.key, dom_quick)

        logger.info(f"Selected media: {source} {media.type} {media.url}")
        return Resolution(media=media, source=source, context_key=identity.key,
                          in_story=identity.in_story, details=details)

    async def _resolve_story(self, identity, api_media, dom_quick):
        if api_media is not None:
            return api_media, "api"
        if dom_quick is not None:
            if dom_quick.is_transient:
                logger.info("Story DOM result is a blob handle; will need blob resolution")
            return dom_quick, "dom"
        retried = await self.scan_dom_with_retry(identity)
        if retried is not None:
            return retried, "dom-retry"
        return None, "none"

    async def _resolve_post(self, identity, api_media, dom_quick):
        media: Optional[MediaInfo] = None
        source = "none"

        if api_media is not None:
            media, source = api_media, "api"
            # The metadata endpoint can lag behind the rendered slide.
            if api_media.type == "photo" and dom_quick is not None and dom_quick.is_video:
                media, source = dom_quick, "dom-video-over-api-photo"
        elif dom_quick is not None:
            media, source = dom_quick, "dom"
        else:
            retried = await self.scan_dom_with_retry(identity)
            if retried is not None:
                media, source = retried, "dom-retry"
            else:
                meta = MediaManager.normalize_media_info(self.media_from_meta())
                if meta is not None:
                    media, source = meta, "meta"

        if media is None:
            return None, "none"

        if not media.is_video and has_strong_video_signal(identity, self.source.read_meta_tags()):
            fallback = await self.scan_dom_with_retry(identity)
            if fallback is None or not fallback.is_video:
                fallback = MediaManager.normalize_media_info(await self.wait_for_visible_video())
            if fallback is not None and fallback.is_video:
                media, source = fallback, "dom-video-canonical-fallback"

        return media, source
