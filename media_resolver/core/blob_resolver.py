"""
Blob resolution.

Players on the site often expose only a `blob:` handle, which cannot be
fetched from outside the page. Before giving up on a fetchable copy the
resolver tries, in order:

  a. a fresh backend lookup (non-story video only)
  b. the page's open-graph video tag
  c. resource-timing candidates, narrowed by file-name token
  d. asking the page context to save the handle natively
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Dict, List, Optional, Sequence

from media_resolver.core.api_fetcher import ApiEvidenceFetcher
from media_resolver.core.carousel import CarouselReconciler
from media_resolver.core.context_resolver import PageIdentity
from media_resolver.core.download_manager import DownloadManager, MediaFetchError
from media_resolver.core.dto.media import DownloadOutcome, MediaInfo, PerformanceCandidate
from media_resolver.core.evidence import PAGE_MESSAGE_SOURCE, EvidenceSource
from media_resolver.core.media_manager import MediaManager
from media_resolver.core.media_validator import InvalidMediaError
from media_resolver.core.performance_scanner import POST_MAX_AGE_MS, STORY_MAX_AGE_MS, PerformanceScanner
from media_resolver.utils.file_utils import get_file_name

logger = logging.getLogger(__name__)


HANDSHAKE_TIMEOUT_SECONDS = 5.0


class HandshakeTimeoutError(RuntimeError):
    """The page context did not confirm a native download in time."""


class PageDownloadError(RuntimeError):
    """The page context reported that its native download failed."""


# ------------------------------------------------------------
# Page-context handshake
# ------------------------------------------------------------

class PageDownloadBridge:
    """
    Request/response channel to the privileged page context.

    Each request carries a unique id; replies for other ids or from other
    senders are ignored.
    """

    def __init__(self, source: EvidenceSource, timeout: float = HANDSHAKE_TIMEOUT_SECONDS):
        self.source = source
        self.timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}

    @staticmethod
    def new_request_id() -> str:
        return f"ig_blob_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    def on_message(self, data) -> None:
        if not isinstance(data, dict) or data.get("source") != PAGE_MESSAGE_SOURCE:
            return
        request_id = data.get("requestId")
        if not isinstance(request_id, str):
            return
        future = self._pending.get(request_id)
        if future is None or future.done():
            return
        if data.get("ok"):
            future.set_result(None)
        else:
            future.set_exception(PageDownloadError(data.get("error") or "Page context failed to download blob."))

    async def download(self, url: str, file_name: str) -> None:
        """
        Raises:
            HandshakeTimeoutError: no reply within `timeout`
            PageDownloadError: the page replied with a failure
        """
        request_id = self.new_request_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.source.request_native_download(request_id, url, file_name, self.on_message)
            await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise HandshakeTimeoutError(
                f"Timed out after {self.timeout}s waiting for page-context download of {url}"
            ) from e
        finally:
            self._pending.pop(request_id, None)

    @property
    def pending(self) -> int:
        return len(self._pending)


# ------------------------------------------------------------
# Resolver
# ------------------------------------------------------------

class BlobResolver:
    """Turns a resolved MediaInfo into a saved file, whatever its URL kind."""

    def __init__(
        self,
        source: EvidenceSource,
        api_fetcher: ApiEvidenceFetcher,
        downloader: DownloadManager,
        *,
        performance: Optional[PerformanceScanner] = None,
        reconciler: Optional[CarouselReconciler] = None,
        bridge: Optional[PageDownloadBridge] = None,
        story_perf_max_age_ms: float = STORY_MAX_AGE_MS,
        post_perf_max_age_ms: float = POST_MAX_AGE_MS,
    ):
        self.source = source
        self.api_fetcher = api_fetcher
        self.downloader = downloader
        self.performance = performance or PerformanceScanner()
        self.reconciler = reconciler or CarouselReconciler()
        self.bridge = bridge or PageDownloadBridge(source)
        self.story_perf_max_age_ms = story_perf_max_age_ms
        self.post_perf_max_age_ms = post_perf_max_age_ms

    async def finalize(self, media: MediaInfo, identity: PageIdentity) -> DownloadOutcome:
        if not media.is_transient:
            return await self.downloader.download(media)
        return await self.resolve_transient(media, identity)

    # ---------------------------------------------------------
    # Ephemeral handles
    # ---------------------------------------------------------

    async def resolve_transient(self, media: MediaInfo, identity: PageIdentity) -> DownloadOutcome:
        evidence_tokens: List[str] = []

        if media.is_video and not identity.in_story:
            api_media = await self.api_fetcher.fetch_fresh(identity)
            if api_media is not None and api_media.is_video and not api_media.is_transient:
                evidence_tokens.append(MediaManager.file_token(api_media.url))
                outcome = await self._try_fetch(api_media, "api")
                if outcome is not None:
                    return outcome

        if media.is_video:
            meta_url = self.source.read_meta_tags().video_url
            if meta_url and not MediaManager.is_transient_url(meta_url):
                evidence_tokens.append(MediaManager.file_token(meta_url))
                meta_media = MediaInfo(url=meta_url, type="video", account_name=media.account_name)
                outcome = await self._try_fetch(meta_media, "meta")
                if outcome is not None:
                    return outcome

            for candidate in self.performance_candidates(identity, evidence_tokens):
                candidate_media = MediaInfo(url=candidate.url, type="video", account_name=media.account_name)
                outcome = await self._try_fetch(candidate_media, f"performance:{candidate.source}")
                if outcome is not None:
                    return outcome

        file_name = get_file_name(media.url, None, media.type, media.account_name)
        try:
            await self.bridge.download(media.url, file_name)
        except (HandshakeTimeoutError, PageDownloadError) as e:
            logger.warning(f"Failed to download blob URL in page context: {e}")
            return DownloadOutcome(status="failed", strategy="page-context", media=media, error=str(e))

        logger.info(f"Blob saved by page context as {file_name}")
        return DownloadOutcome(status="native", strategy="page-context", media=media, path=file_name)

    async def _try_fetch(self, media: MediaInfo, strategy: str) -> Optional[DownloadOutcome]:
        try:
            fetched = await self.downloader.fetch_validated(media.url, media.type)
        except (MediaFetchError, InvalidMediaError) as e:
            logger.warning(f"{strategy} fallback failed: {e}")
            return None

        path = self.downloader.save(
            fetched,
            media.type,
            account_name=media.account_name,
            source=strategy,
            source_url=media.url,
        )
        logger.info(f"Resolved blob URL from {strategy}: {media.url}")
        return DownloadOutcome(status="saved", strategy=strategy, media=media, path=str(path))

    # ---------------------------------------------------------
    # Resource-timing candidates
    # ---------------------------------------------------------

    def performance_candidates(
        self,
        identity: PageIdentity,
        evidence_tokens: Sequence[str],
    ) -> List[PerformanceCandidate]:
        max_age = self.story_perf_max_age_ms if identity.in_story else self.post_perf_max_age_ms
        candidates = self.performance.build_candidates(
            self.source.query_resource_timings(),
            max_age_ms=max_age,
        )
        if not candidates:
            return []

        document = self.source.snapshot_document()
        active = self.reconciler.active_media_context(document).active_media_element
        element_tokens = self.reconciler.element_tokens(active)
        return self.narrow_candidates(candidates, evidence_tokens, element_tokens, identity)

    @staticmethod
    def narrow_candidates(
        candidates: Sequence[PerformanceCandidate],
        evidence_tokens: Sequence[str],
        element_tokens: Sequence[str],
        identity: PageIdentity,
    ) -> List[PerformanceCandidate]:
        """
        Keep candidates sharing a file-name token with the backend/meta hit,
        else with the active element, else all of them.

        Reel and tv pages with no token to go on get none: the buffer there
        usually holds unrelated autoplaying videos.
        """
        for tokens in (evidence_tokens, element_tokens):
            wanted = {t for t in tokens if t}
            if not wanted:
                continue
            matched = [c for c in candidates if MediaManager.file_token(c.url) in wanted]
            if matched:
                return matched

        has_tokens = any(evidence_tokens) or any(element_tokens)
        if identity.path_looks_video and not has_tokens:
            logger.info("No token evidence on a reel/tv page; skipping resource-timing candidates")
            return []
        return list(candidates)
