from __future__ import annotations

from typing import Optional, Protocol


class MediaAPIClient(Protocol):
    PLATFORM: str

    # oEmbed lookup
    async def get_media_id(self, post_type: str, shortcode: str) -> Optional[str]:
        ...

    # Media info (posts and stories)
    async def get_media_info(self, media_id: str) -> Optional[dict]:
        ...
