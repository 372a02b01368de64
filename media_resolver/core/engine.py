from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from media_resolver.core.api.contracts.media import MediaAPIClient
from media_resolver.core.api.instagram import InstagramClient
from media_resolver.core.api_fetcher import ApiEvidenceFetcher
from media_resolver.core.arbiter import ResolutionArbiter
from media_resolver.core.blob_resolver import BlobResolver, PageDownloadBridge
from media_resolver.core.carousel import CarouselReconciler
from media_resolver.core.context import ResolutionContext
from media_resolver.core.context_resolver import ContextResolver, PageIdentity
from media_resolver.core.dom_scanner import DomScanner
from media_resolver.core.download_manager import DownloadManager
from media_resolver.core.dto.media import DownloadOutcome, Resolution
from media_resolver.core.evidence import EvidenceSource
from media_resolver.core.http_client import HttpClient
from media_resolver.core.performance_scanner import PerformanceScanner
from media_resolver.core.retry import Clock
from media_resolver.core.settings import EngineSettings

logger = logging.getLogger(__name__)


class MediaResolutionEngine:
    """
    Shared engine wiring (context + scanners + fetcher + arbiter + blob resolver).

    Use one instance per page; every component gets the same
    ResolutionContext, so prefetch results are visible to the next extract.
    """

    def __init__(
        self,
        source: EvidenceSource,
        client: MediaAPIClient,
        downloader: DownloadManager,
        *,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self.source = source
        self.client = client
        self.downloader = downloader
        self.settings = settings or EngineSettings()
        s = self.settings

        self.context = ResolutionContext(
            clock=clock,
            dom_ttl_seconds=s.dom_cache_ttl,
            api_ttl_seconds=s.api_cache_ttl,
        )
        self.reconciler = CarouselReconciler()
        self.performance = PerformanceScanner()
        self.scanner = DomScanner(
            self.reconciler,
            self.performance,
            story_perf_max_age_ms=s.story_perf_max_age_ms,
        )
        self.resolver = ContextResolver(self.reconciler)
        self.api_fetcher = ApiEvidenceFetcher(
            client,
            source,
            self.context,
            reconciler=self.reconciler,
            story_id_attempts=s.story_id_attempts,
            story_id_delay=s.story_id_delay,
        )
        self.arbiter = ResolutionArbiter(
            source,
            self.context,
            self.api_fetcher,
            scanner=self.scanner,
            resolver=self.resolver,
            dom_retry_count=s.dom_retry_count,
            dom_retry_delay=s.dom_retry_delay,
            video_wait_attempts=s.video_wait_attempts,
            video_wait_interval=s.video_wait_interval,
        )
        self.blob_resolver = BlobResolver(
            source,
            self.api_fetcher,
            downloader,
            performance=self.performance,
            reconciler=self.reconciler,
            bridge=PageDownloadBridge(source, timeout=s.handshake_timeout),
            story_perf_max_age_ms=s.story_perf_max_age_ms,
            post_perf_max_age_ms=s.post_perf_max_age_ms,
        )

    @classmethod
    def from_settings(
        cls,
        source: EvidenceSource,
        settings: EngineSettings,
        *,
        db_manager=None,
        download_dir: Optional[Path] = None,
        cookie_jar_path: Optional[Path] = None,
    ) -> "MediaResolutionEngine":
        """Build the engine with the real HTTP stack (aiohttp sessions, cookies, proxy)."""
        http_client = HttpClient(settings.http_config(cookie_jar_path))
        if download_dir is None and settings.download_dir:
            download_dir = Path(settings.download_dir)
        downloader = DownloadManager(
            http_client,
            db_manager=db_manager,
            download_dir=download_dir,
            min_video_bytes=settings.min_video_bytes,
            init_only_min_bytes=settings.init_segment_max_bytes,
        )
        return cls(source, InstagramClient(http_client), downloader, settings=settings)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
        await self.downloader.close_session()
        await self.downloader.http_client.close()

    # ---------------------------------------------------------
    # Operations
    # ---------------------------------------------------------

    def identify(self) -> PageIdentity:
        return self.arbiter.identify()

    async def prefetch(self) -> PageIdentity:
        """
        Speculative warm-up (hover/focus): store the DOM scan and start the
        backend lookup without waiting for it.
        """
        identity = self.identify()
        dom_media = self.arbiter.scan_dom_once(identity)
        self.context.cache.set_dom(identity.key, dom_media)
        self.api_fetcher.start(identity)
        logger.debug(f"Prefetch for {identity.key}: dom={'hit' if dom_media else 'miss'}")
        return identity

    async def resolve(self, identity: Optional[PageIdentity] = None) -> Resolution:
        return await self.arbiter.resolve(identity)

    async def extract(self, *, download: bool = True) -> Tuple[Resolution, Optional[DownloadOutcome]]:
        identity = self.identify()
        resolution = await self.arbiter.resolve(identity)
        if resolution.media is None or not download:
            return resolution, None

        outcome = await self.blob_resolver.finalize(resolution.media, identity)
        if outcome.ok:
            logger.info(f"Download {outcome.status} via {outcome.strategy}: {outcome.path or outcome.media.url}")
        else:
            logger.warning(f"Download failed via {outcome.strategy}: {outcome.error}")
        return resolution, outcome
