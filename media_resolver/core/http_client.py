"""
Centralized HTTP client configuration.

Provides aiohttp session management for both backend lookups and media
downloads with:
- Browser-like headers (User-Agent, Accept, etc.)
- The fixed application identifier the media-info endpoints require
- Session credentials from a cookie file and/or a stored session id
- Optional HTTP proxy
"""

from __future__ import annotations

import logging
import socket
from http.cookiejar import CookieJar, LoadError, LWPCookieJar, MozillaCookieJar
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlparse

import aiohttp
from aiohttp import ClientTimeout, TCPConnector
from yarl import URL

logger = logging.getLogger(__name__)


DEFAULT_IG_APP_ID = "936619743392459"
SESSION_COOKIE_DOMAIN = "instagram.com"
MEDIA_CDN_HOSTS = ("cdninstagram.com", "fbcdn.net", "instagram.com")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
)

# Headers for backend JSON lookups
API_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-site",
}

# Headers for media/file downloads
MEDIA_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "identity;q=1, *;q=0",
    "Sec-Fetch-Dest": "video",
    "Sec-Fetch-Mode": "no-cors",
    "Sec-Fetch-Site": "cross-site",
}


def get_media_headers_with_referer(url: str) -> dict:
    """
    Get media headers with a Referer header.
    The media CDN checks Referer to prevent hotlinking.
    """
    headers = MEDIA_HEADERS.copy()
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        host = ""
    if host.endswith(MEDIA_CDN_HOSTS):
        headers["Referer"] = "https://www.instagram.com/"
        headers["Origin"] = "https://www.instagram.com"
    return headers


class HttpClientConfig:
    """Central HTTP client configuration."""

    def __init__(
        self,
        cookie_jar_path: Optional[Path] = None,
        session_id: Optional[str] = None,
        ig_app_id: str = DEFAULT_IG_APP_ID,
        proxy_url: Optional[str] = None,
        max_connections_per_host: int = 10,
        max_total_connections: int = 100,
        connect_timeout: int = 30,
        read_timeout: int = 60,
    ):
        self.cookie_jar_path = cookie_jar_path
        self.session_id = session_id
        self.ig_app_id = ig_app_id or DEFAULT_IG_APP_ID
        self.proxy_url = proxy_url or None
        self.max_connections_per_host = max_connections_per_host
        self.max_total_connections = max_total_connections
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

        self._cookie_jar: Optional[CookieJar] = None

    def api_headers(self) -> Dict[str, str]:
        headers = API_HEADERS.copy()
        headers["x-ig-app-id"] = self.ig_app_id
        return headers

    def get_cookie_jar(self) -> CookieJar:
        """Load cookies.txt (Netscape format first, then LWP)."""
        if self._cookie_jar is not None:
            return self._cookie_jar

        jar: CookieJar = CookieJar()
        path = self.cookie_jar_path
        if path and path.exists():
            for jar_cls in (MozillaCookieJar, LWPCookieJar):
                candidate = jar_cls()
                try:
                    candidate.load(str(path), ignore_discard=True, ignore_expires=True)
                except (LoadError, OSError) as e:
                    logger.debug(f"{jar_cls.__name__} could not read {path}: {e}")
                    continue
                jar = candidate
                logger.info(f"Loaded {len(candidate)} cookies from {path}")
                break
            else:
                logger.warning(f"Failed to load cookies from {path}")

        self._cookie_jar = jar
        return jar


class HttpClient:
    """
    Centralized HTTP session factory.

    Creates aiohttp sessions with shared configuration for headers, cookies,
    and proxy.
    """

    def __init__(self, config: Optional[HttpClientConfig] = None):
        self.config = config or HttpClientConfig()
        self._sessions: list = []

    async def create_async_session(
        self,
        headers: Optional[Dict[str, str]] = None,
        total_timeout: Optional[int] = None,
    ) -> aiohttp.ClientSession:
        """
        Create a configured aiohttp.ClientSession.

        Args:
            headers: Optional headers to use (defaults to MEDIA_HEADERS)
            total_timeout: Total request timeout (None for no limit)

        Returns:
            Configured aiohttp.ClientSession
        """
        connector = TCPConnector(
            limit=self.config.max_total_connections,
            limit_per_host=self.config.max_connections_per_host,
            ttl_dns_cache=300,
            family=socket.AF_INET,
            force_close=False,
        )

        timeout = ClientTimeout(
            total=total_timeout,
            connect=self.config.connect_timeout,
            sock_read=self.config.read_timeout,
        )

        session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers=headers or MEDIA_HEADERS,
            cookie_jar=self._create_aiohttp_cookie_jar(),
            raise_for_status=False,
        )
        if self.config.proxy_url:
            logger.info(f"Async session using proxy: {self.config.proxy_url}")

        self._sessions.append(session)
        return session

    def request_kwargs(self) -> Dict[str, str]:
        """Per-request keyword arguments (aiohttp takes the proxy per request)."""
        return {"proxy": self.config.proxy_url} if self.config.proxy_url else {}

    def _create_aiohttp_cookie_jar(self) -> aiohttp.CookieJar:
        """
        Create an aiohttp cookie jar populated from the shared cookies.

        aiohttp uses its own CookieJar implementation, so cookies from the
        stdlib jar are transferred one by one.
        """
        jar = aiohttp.CookieJar(unsafe=True)

        for cookie in self.config.get_cookie_jar():
            domain = cookie.domain or "localhost"
            if domain.startswith("."):
                domain = domain[1:]
            jar.update_cookies({cookie.name: cookie.value}, response_url=URL(f"https://{domain}/"))

        if self.config.session_id:
            for host in (f"www.{SESSION_COOKIE_DOMAIN}", f"i.{SESSION_COOKIE_DOMAIN}"):
                jar.update_cookies({"sessionid": self.config.session_id}, response_url=URL(f"https://{host}/"))

        return jar

    async def close(self) -> None:
        """Close every session this client created."""
        while self._sessions:
            session = self._sessions.pop()
            if not session.closed:
                await session.close()
