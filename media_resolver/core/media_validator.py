from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)


MIN_VIDEO_BYTES = 120 * 1024
SAMPLE_BYTES = 512 * 1024
INIT_ONLY_MIN_BYTES = 2 * 1024 * 1024

FTYP_MARKER = b"ftyp"
MDAT_MARKER = b"mdat"
MP4_URL_RE = re.compile(r"\.mp4(\?|$)", re.IGNORECASE)


class InvalidMediaError(RuntimeError):
    """Downloaded bytes do not look like a complete media asset."""


def looks_like_mp4(content_type: Optional[str], url: Optional[str]) -> bool:
    if "video/mp4" in (content_type or "").lower():
        return True
    return bool(url) and MP4_URL_RE.search(url) is not None


def is_likely_playable_video(
    data: bytes,
    content_type: Optional[str] = None,
    url: Optional[str] = None,
    *,
    min_bytes: int = MIN_VIDEO_BYTES,
    init_only_min_bytes: int = INIT_ONLY_MIN_BYTES,
) -> bool:
    """
    Structural sanity check on downloaded video bytes.

    - Anything under `min_bytes` is a fragment.
    - A non-mp4 container is accepted on size alone.
    - An mp4 needs an `ftyp` box in the first 512 KiB; with an `mdat` box
      as well it is accepted, with `ftyp` only (an init segment shape) it is
      accepted only above `init_only_min_bytes`.
    """
    size = len(data)
    if size < min_bytes:
        return False

    if not looks_like_mp4(content_type, url):
        return True

    sample = data[:min(size, SAMPLE_BYTES)]
    if FTYP_MARKER not in sample:
        return False
    if MDAT_MARKER in sample:
        return True
    return size > init_only_min_bytes


def validate_video(
    data: bytes,
    content_type: Optional[str] = None,
    url: Optional[str] = None,
    **limits: int,
) -> None:
    if not is_likely_playable_video(data, content_type, url, **limits):
        logger.warning(f"Rejected video bytes ({len(data)} B) from {url}")
        raise InvalidMediaError(f"Fetched video looks like a partial/invalid segment: {url}")
