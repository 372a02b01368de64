from __future__ import annotations

import re
from typing import Iterable, Optional

from media_resolver.core.dto.media import MediaInfo
from media_resolver.core.dto.page import ElementSnapshot, PageDocument


MIN_INTRINSIC_PX = 80
MIN_VISIBLE_PX = 40

_DIGITS_RE = re.compile(r"\D")


def is_visible_element(element: Optional[ElementSnapshot], document: PageDocument) -> bool:
    """Rendered, on-screen and large enough to be real content rather than a thumbnail."""
    if element is None:
        return False

    style = element.style
    if style.display == "none" or style.visibility == "hidden" or style.opacity.strip() == "0":
        return False

    rect = element.rect
    if rect.width <= MIN_INTRINSIC_PX or rect.height <= MIN_INTRINSIC_PX:
        return False

    vw = document.viewport_width
    vh = document.viewport_height
    if not vw or not vh:
        return False

    if rect.bottom <= 0 or rect.right <= 0 or rect.top >= vh or rect.left >= vw:
        return False

    visible_width = min(rect.right, vw) - max(rect.left, 0)
    visible_height = min(rect.bottom, vh) - max(rect.top, 0)
    return visible_width > MIN_VISIBLE_PX and visible_height > MIN_VISIBLE_PX


def get_video_url(video: Optional[ElementSnapshot]) -> Optional[str]:
    if video is None:
        return None
    if video.current_src:
        return video.current_src
    if video.src:
        return video.src
    source = video.query("source")
    if source is not None and source.src:
        return source.src
    return None


def get_best_image_url(image: Optional[ElementSnapshot]) -> Optional[str]:
    """Widest `srcset` variant, else the currently rendered source."""
    if image is None:
        return None
    fallback = image.current_src or image.src or None
    srcset = image.srcset
    if not srcset:
        return fallback

    variants = []
    for entry in srcset.split(","):
        parts = entry.strip().split()
        if not parts:
            continue
        descriptor = parts[1] if len(parts) > 1 else ""
        digits = _DIGITS_RE.sub("", descriptor)
        variants.append((parts[0], int(digits) if digits else 0))

    if not variants:
        return fallback
    variants.sort(key=lambda v: -v[1])
    return variants[0][0] or fallback


def largest_visible(
    elements: Iterable[ElementSnapshot],
    document: PageDocument,
) -> Optional[ElementSnapshot]:
    visible = [el for el in elements if is_visible_element(el, document)]
    if not visible:
        return None
    return sorted(visible, key=lambda el: -el.rect.area)[0]


def get_post_root(document: PageDocument) -> ElementSnapshot:
    return document.query("article") or document.query("main") or document.body


def best_media_element(container: Optional[ElementSnapshot], document: PageDocument) -> Optional[ElementSnapshot]:
    """Largest visible video with a URL, else largest visible image, else first found."""
    if container is None:
        return None

    video = largest_visible(container.query_all("video"), document)
    if video is not None and get_video_url(video):
        return video

    image = largest_visible(container.query_all("img"), document)
    if image is not None:
        return image

    fallback_video = container.query("video")
    if fallback_video is not None and get_video_url(fallback_video):
        return fallback_video

    return container.query("img")


def media_info_from_element(element: Optional[ElementSnapshot]) -> Optional[MediaInfo]:
    if element is None:
        return None
    if element.tag == "video":
        url = get_video_url(element)
        return MediaInfo(url=url, type="video") if url else None
    if element.tag == "img":
        url = get_best_image_url(element)
        return MediaInfo(url=url, type="photo") if url else None
    return None
