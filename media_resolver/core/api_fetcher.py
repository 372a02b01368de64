from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from media_resolver.core.api.base import APIError
from media_resolver.core.api.contracts.media import MediaAPIClient
from media_resolver.core.carousel import CarouselReconciler
from media_resolver.core.context import ResolutionContext
from media_resolver.core.context_resolver import PageIdentity, extract_story_id, parse_post_ref, pathname_of
from media_resolver.core.dto.media import ApiMediaItem, MediaInfo
from media_resolver.core.evidence import EvidenceSource
from media_resolver.core.media_manager import MediaManager
from media_resolver.core.retry import BoundedRetry

logger = logging.getLogger(__name__)


STORY_ID_ATTEMPTS = 5
STORY_ID_DELAY_SECONDS = 1.0


class ApiEvidenceFetcher:
    """
    Backend evidence for the current page.

    Guarantees:
    - At most one lookup in flight per context key; later callers join it
    - Fresh results land in the API prefetch slot
    - Network failures become "no result", never an exception
    """

    def __init__(
        self,
        client: MediaAPIClient,
        source: EvidenceSource,
        context: ResolutionContext,
        *,
        reconciler: Optional[CarouselReconciler] = None,
        story_id_attempts: int = STORY_ID_ATTEMPTS,
        story_id_delay: float = STORY_ID_DELAY_SECONDS,
    ):
        self.client = client
        self.source = source
        self.context = context
        self.reconciler = reconciler or CarouselReconciler()
        self.story_id_attempts = story_id_attempts
        self.story_id_delay = story_id_delay

    # ---------------------------------------------------------
    # Cached / single-flight entry points
    # ---------------------------------------------------------

    def cached(self, identity: PageIdentity) -> Optional[MediaInfo]:
        return self.context.cache.get_api(identity.key)

    def start(self, identity: PageIdentity) -> "asyncio.Future[Optional[MediaInfo]]":
        """
        Begin (or join) the lookup for `identity` without waiting for it.

        A fresh cached value resolves immediately.
        """
        hit = self.cached(identity)
        if hit is not None:
            future: asyncio.Future = asyncio.get_running_loop().create_future()
            future.set_result(hit)
            return future
        return self.context.single_flight(identity.key, lambda: self._fetch_and_store(identity))

    async def get(self, identity: PageIdentity) -> Optional[MediaInfo]:
        # Shielded so one cancelled waiter cannot cancel the shared lookup.
        return await asyncio.shield(self.start(identity))

    async def _fetch_and_store(self, identity: PageIdentity) -> Optional[MediaInfo]:
        media = await self.fetch_fresh(identity)
        self.context.cache.set_api(identity.key, media)
        return media

    # ---------------------------------------------------------
    # Uncached lookup
    # ---------------------------------------------------------

    async def fetch_fresh(self, identity: PageIdentity) -> Optional[MediaInfo]:
        try:
            if identity.in_story:
                media = await self._fetch_story()
            else:
                media = await self._fetch_post(identity)
        except APIError as e:
            logger.warning(f"API lookup failed for {identity.key}: {e}")
            return None
        return MediaManager.normalize_media_info(media)

    async def _poll_story_id(self) -> Optional[str]:
        async for attempt in BoundedRetry(self.story_id_attempts, self.story_id_delay, self.context.clock):
            story_id = extract_story_id(self.source.location())
            if story_id:
                return story_id
            logger.debug(f"Story id not in URL yet (attempt {attempt.number}/{self.story_id_attempts})")
        return None

    async def _fetch_story(self) -> Optional[MediaInfo]:
        story_id = await self._poll_story_id()
        if not story_id:
            logger.info("No story id found in URL")
            return None

        raw = await self.client.get_media_info(story_id)
        return MediaManager.media_info_from_item(ApiMediaItem.from_raw(raw))

    async def _fetch_post(self, identity: PageIdentity) -> Optional[MediaInfo]:
        post = identity.post or parse_post_ref(pathname_of(self.source.location()))
        if post is None:
            return None

        media_id = await self.client.get_media_id(post.post_type, post.shortcode)
        if not media_id:
            return None

        raw = await self.client.get_media_info(media_id)
        item = ApiMediaItem.from_raw(raw)
        if item is None:
            return None

        items: List[ApiMediaItem] = list(item.carousel_media) or [item]
        selected = self.select_item(items, identity)
        return MediaManager.media_info_from_item(selected)

    def select_item(self, items: List[ApiMediaItem], identity: PageIdentity) -> Optional[ApiMediaItem]:
        if not items:
            return None

        # The DOM may have moved on while the lookup was in flight.
        document = self.source.snapshot_document()
        matched = self.reconciler.find_best_item(items, document)
        if matched is not None:
            return matched

        position = identity.img_index_hint or self.reconciler.current_index(document) or 1
        index = max(position - 1, 0)
        if index < len(items):
            return items[index]
        return items[0]
