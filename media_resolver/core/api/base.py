"""
Backend API contract.

Platform quirks are normalized inside platform clients.

Contract goals:
- Stable, minimal surface area
- Every transport, status or content-type failure surfaces as APIError
- Returns plain dict payloads (DTO creation belongs to the fetcher)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp

from media_resolver.core.http_client import HttpClient


class APIError(RuntimeError):
    """Raised for platform HTTP / parsing errors."""


logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Authoritative backend API contract.

    The fetcher must not issue raw HTTP calls; it goes through a client.
    """

    BASE_URL: str       # e.g. https://www.instagram.com/api/v1
    PLATFORM: str       # "instagram"

    def __init__(self, http_client: Optional[HttpClient] = None, *, session: Optional[aiohttp.ClientSession] = None):
        self.http_client = http_client or HttpClient()
        self._session = session

    # ------------------------------------------------------------------
    # Session / Request helpers
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = await self.http_client.create_async_session(
                headers=self.http_client.config.api_headers(),
                total_timeout=30,
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        base_url: Optional[str] = None,
    ) -> Any:
        url = f"{base_url or self.BASE_URL}{path}"

        if params:
            logger.info(f"API Request: {method} {url}?{urlencode(params, doseq=True)}")
        else:
            logger.info(f"API Request: {method} {url}")

        session = await self._get_session()
        try:
            async with session.request(
                method,
                url,
                params=params,
                **self.http_client.request_kwargs(),
            ) as resp:
                content_type = resp.headers.get("Content-Type", "")
                if resp.status < 200 or resp.status >= 300:
                    raise APIError(f"{self.PLATFORM} API error {resp.status} for {resp.url}")
                if "application/json" not in content_type:
                    raise APIError(
                        f"{self.PLATFORM} unexpected content type {content_type!r} for {resp.url}"
                    )
                return await resp.json(content_type=None)
        except APIError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise APIError(f"{self.PLATFORM} request failed: {e}") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_media_id(self, post_type: str, shortcode: str) -> Optional[str]:
        """
        Resolve a post (type + shortcode) to the opaque media id via the
        oEmbed-style endpoint. None when the payload carries no id.
        """

    @abstractmethod
    async def get_media_info(self, media_id: str) -> Optional[dict]:
        """
        Returns the first raw item of the media-info payload (which may
        carry a nested carousel list), or None when the payload is empty.
        Used for both posts and stories.
        """
