from __future__ import annotations

import logging
from typing import Optional

from .base import APIError, BaseAPIClient


class InstagramClient(BaseAPIClient):
    BASE_URL = "https://www.instagram.com/api/v1"
    MEDIA_BASE_URL = "https://i.instagram.com/api/v1"
    PLATFORM = "instagram"
    _logger = logging.getLogger(__name__)

    @staticmethod
    def canonical_post_url(post_type: str, shortcode: str) -> str:
        return f"https://www.instagram.com/{post_type}/{shortcode}/"

    async def get_media_id(self, post_type: str, shortcode: str) -> Optional[str]:
        data = await self._request(
            "GET",
            "/oembed/",
            params={"url": self.canonical_post_url(post_type, shortcode)},
        )
        if not isinstance(data, dict):
            raise APIError(f"{self.PLATFORM} oembed response not an object")

        media_id = data.get("media_id")
        if media_id in (None, ""):
            self._logger.warning(f"oEmbed returned no media_id for {post_type}/{shortcode}")
            return None
        return str(media_id)

    async def get_media_info(self, media_id: str) -> Optional[dict]:
        data = await self._request(
            "GET",
            f"/media/{media_id}/info/",
            base_url=self.MEDIA_BASE_URL,
        )
        if not isinstance(data, dict):
            raise APIError(f"{self.PLATFORM} media info response not an object")

        items = data.get("items")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            self._logger.warning(f"Media info for {media_id} has no items")
            return None
        return items[0]
