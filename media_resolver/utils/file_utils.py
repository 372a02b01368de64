import re
import time
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse


MIME_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/webm": "webm",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]+')


def ext_from_mime_type(mime_type: Optional[str]) -> Optional[str]:
    """Map a Content-Type header value to a file extension, ignoring parameters."""
    if not mime_type:
        return None
    base = mime_type.split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(base)


def normalize_file_name(name: str) -> str:
    """Strip characters that are not valid in file names on common platforms."""
    cleaned = _UNSAFE_CHARS_RE.sub("_", name).strip(" .")
    return cleaned or "instagram-media"


def get_file_name(
    url: str,
    mime_type: Optional[str] = None,
    media_type: str = "photo",
    account_name: Optional[str] = None,
) -> str:
    """
    Build the saved file name for a media URL.

    Uses the final path segment when there is one, otherwise a timestamped
    placeholder. A segment without an extension gets one from the content
    type, or mp4/jpg by media kind. Known account names become a prefix.

    Args:
        url: Source URL (query string is ignored)
        mime_type: Content-Type of the fetched bytes, if known
        media_type: "photo" or "video"
        account_name: Owner of the post or story, if known

    Returns:
        File name without any directory component
    """
    try:
        path = urlparse(url).path
    except ValueError:
        path = ""
    segment = unquote(path.rsplit("/", 1)[-1]) if path else ""
    if not segment:
        segment = f"instagram-media-{int(time.time() * 1000)}"

    if "." not in segment:
        ext = ext_from_mime_type(mime_type) or ("mp4" if media_type == "video" else "jpg")
        segment = f"{segment}.{ext}"

    if account_name:
        segment = f"{account_name}_{segment}"
    return normalize_file_name(segment)


def unique_path(directory: Path, file_name: str) -> Path:
    """Return `directory/file_name`, adding a numeric suffix if it already exists."""
    candidate = directory / file_name
    if not candidate.exists():
        return candidate

    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while True:
        candidate = directory / f"{stem} ({counter}){suffix}"
        if not candidate.exists():
            return candidate
        counter += 1
