"""
Download dispatcher: fetches a concrete media URL and saves it to disk
"""
import aiohttp
import asyncio
import logging
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from media_resolver.core.dto.media import DownloadOutcome, MediaInfo
from media_resolver.core.http_client import MEDIA_HEADERS, HttpClient, get_media_headers_with_referer
from media_resolver.core.media_validator import (
    INIT_ONLY_MIN_BYTES,
    MIN_VIDEO_BYTES,
    InvalidMediaError,
    validate_video,
)
from media_resolver.utils.file_utils import get_file_name, unique_path

logger = logging.getLogger(__name__)


class MediaFetchError(RuntimeError):
    """A candidate URL could not be downloaded (non-2xx or transport failure)."""


@dataclass(frozen=True)
class FetchedMedia:
    data: bytes
    content_type: Optional[str]
    url: str

    @property
    def size(self) -> int:
        return len(self.data)


class DownloadManager:
    """
    Fetches media bytes with CDN-friendly headers, sanity-checks video, and
    writes the result to the download directory.
    """

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        *,
        db_manager=None,
        download_dir: Optional[Path] = None,
        min_video_bytes: int = MIN_VIDEO_BYTES,
        init_only_min_bytes: int = INIT_ONLY_MIN_BYTES,
        open_url: Optional[Callable[[str], bool]] = None,
    ):
        """
        Initialize download manager

        Args:
            http_client: Shared session factory (cookies, proxy)
            db_manager: DatabaseManager used to record saved files (optional)
            download_dir: Destination directory. Defaults to ~/.media-resolver/downloads
            min_video_bytes: Smallest video accepted as a full asset
            init_only_min_bytes: Smallest ftyp-only mp4 accepted
            open_url: Last-resort opener for URLs that fail to download
        """
        self.http_client = http_client or HttpClient()
        self.db = db_manager
        if download_dir is None:
            download_dir = Path.home() / ".media-resolver" / "downloads"
        self.download_dir = download_dir
        self.min_video_bytes = min_video_bytes
        self.init_only_min_bytes = init_only_min_bytes
        self.session: Optional[aiohttp.ClientSession] = None
        self._open_url = open_url or webbrowser.open_new_tab
        self._chunk_size = 64 * 1024

    async def __aenter__(self):
        """Async context manager entry"""
        await self.create_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close_session()

    async def create_session(self):
        if not self.session:
            self.session = await self.http_client.create_async_session(
                headers=MEDIA_HEADERS,
                total_timeout=None,  # No total timeout for large downloads
            )

    async def close_session(self):
        if self.session:
            await self.session.close()
            self.session = None

    # ---------------------------------------------------------
    # Fetch
    # ---------------------------------------------------------

    async def fetch_media(self, url: str) -> FetchedMedia:
        """
        Download `url` into memory.

        Raises:
            MediaFetchError: non-2xx status or network failure
        """
        if not self.session:
            await self.create_session()

        logger.debug(f"Fetching {url}")
        try:
            async with self.session.get(
                url,
                headers=get_media_headers_with_referer(url),
                **self.http_client.request_kwargs(),
            ) as response:
                if not 200 <= response.status < 300:
                    raise MediaFetchError(f"HTTP {response.status} for {url}")

                chunks = []
                async for chunk in response.content.iter_chunked(self._chunk_size):
                    chunks.append(chunk)
                return FetchedMedia(
                    data=b"".join(chunks),
                    content_type=response.headers.get("Content-Type"),
                    url=str(response.url),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MediaFetchError(f"Network error for {url}: {e}") from e

    async def fetch_validated(self, url: str, media_type: str) -> FetchedMedia:
        """
        Fetch `url`; video bytes must also pass the structural check.

        Raises:
            MediaFetchError: download failed
            InvalidMediaError: video bytes look like a fragment or init segment
        """
        fetched = await self.fetch_media(url)
        if media_type == "video":
            validate_video(
                fetched.data,
                fetched.content_type,
                url,
                min_bytes=self.min_video_bytes,
                init_only_min_bytes=self.init_only_min_bytes,
            )
        return fetched

    # ---------------------------------------------------------
    # Save
    # ---------------------------------------------------------

    def save(
        self,
        fetched: FetchedMedia,
        media_type: str,
        *,
        account_name: Optional[str] = None,
        source: Optional[str] = None,
        source_url: Optional[str] = None,
    ) -> Path:
        """Write fetched bytes under a generated name and record the download."""
        url = source_url or fetched.url
        file_name = get_file_name(url, fetched.content_type, media_type, account_name)

        self.download_dir.mkdir(parents=True, exist_ok=True)
        destination = unique_path(self.download_dir, file_name)
        destination.write_bytes(fetched.data)
        logger.info(f"Saved {fetched.size} bytes: {destination}")

        if self.db is not None:
            self.db.record_download(
                url,
                str(destination),
                media_type=media_type,
                account_name=account_name,
                source=source,
                file_size=fetched.size,
            )
        return destination

    async def download(self, media: MediaInfo, *, source: str = "direct") -> DownloadOutcome:
        """
        Fetch and save a fetchable (non-blob) media URL.

        When the fetch or the video check fails, the URL is opened in a
        browser tab instead.
        """
        try:
            fetched = await self.fetch_validated(media.url, media.type)
        except (MediaFetchError, InvalidMediaError) as e:
            logger.warning(f"Download failed, opening media URL directly: {e}")
            if self.open_in_browser(media.url):
                return DownloadOutcome(status="opened", strategy="browser", media=media, error=str(e))
            return DownloadOutcome(status="failed", strategy="browser", media=media, error=str(e))

        path = self.save(
            fetched,
            media.type,
            account_name=media.account_name,
            source=source,
            source_url=media.url,
        )
        return DownloadOutcome(status="saved", strategy=source, media=media, path=str(path))

    def open_in_browser(self, url: str) -> bool:
        opened = bool(self._open_url(url))
        if not opened:
            logger.warning(f"Could not open browser for {url}")
        return opened
