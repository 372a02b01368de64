from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple


MediaType = Literal["photo", "video"]
PerformanceSource = Literal["raw", "sanitized"]


@dataclass(frozen=True, slots=True)
class MediaInfo:
    url: str                            # direct media URL, never empty
    type: MediaType
    account_name: Optional[str] = None  # owner username when the API knows it

    def __post_init__(self):
        if not self.url:
            raise ValueError("MediaInfo.url must not be empty")
        if self.type not in ("photo", "video"):
            raise ValueError(f"Unsupported media type: {self.type!r}")

    @property
    def is_video(self) -> bool:
        return self.type == "video"

    @property
    def is_transient(self) -> bool:
        """True for in-page blob handles that cannot be fetched from outside the page."""
        return self.url.startswith("blob:")

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "type": self.type, "accountName": self.account_name}


@dataclass(frozen=True, slots=True)
class Rendition:
    url: str
    width: int = 0
    height: int = 0

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["Rendition"]:
        if not isinstance(raw, dict):
            return None
        url = raw.get("url") or ""
        if not isinstance(url, str) or not url:
            return None
        return cls(url=url, width=_as_int(raw.get("width")), height=_as_int(raw.get("height")))


@dataclass(frozen=True)
class ApiMediaItem:
    """
    One node of the media-info payload.

    `video_versions` and `image_candidates` keep the backend order; ranking
    relies on that order to break ties.
    """
    is_video_flag: bool = False
    media_type: Optional[int] = None
    video_versions: Tuple[Rendition, ...] = ()
    image_candidates: Tuple[Rendition, ...] = ()
    carousel_media: Tuple["ApiMediaItem", ...] = ()
    username: Optional[str] = None
    media_id: Optional[str] = None

    @property
    def is_video(self) -> bool:
        if self.is_video_flag:
            return True
        if self.media_type == 2:
            return True
        return len(self.video_versions) > 0

    @property
    def kind(self) -> MediaType:
        return "video" if self.is_video else "photo"

    def rendition_urls(self) -> List[str]:
        return [r.url for r in self.video_versions] + [r.url for r in self.image_candidates]

    @classmethod
    def from_raw(cls, raw: Any, *, inherited_username: Optional[str] = None) -> Optional["ApiMediaItem"]:
        if not isinstance(raw, dict):
            return None

        owner = raw.get("user") or raw.get("owner") or {}
        username = owner.get("username") if isinstance(owner, dict) else None
        username = username or inherited_username

        videos = tuple(
            r for r in (Rendition.from_raw(v) for v in (raw.get("video_versions") or [])) if r
        )
        image_versions = raw.get("image_versions2") or {}
        candidates = image_versions.get("candidates") if isinstance(image_versions, dict) else None
        images = tuple(r for r in (Rendition.from_raw(c) for c in (candidates or [])) if r)

        children_raw = raw.get("carousel_media")
        children: Tuple[ApiMediaItem, ...] = ()
        if isinstance(children_raw, list):
            children = tuple(
                child
                for child in (cls.from_raw(c, inherited_username=username) for c in children_raw)
                if child is not None
            )

        media_type = raw.get("media_type")
        media_id = raw.get("pk") or raw.get("id")
        return cls(
            is_video_flag=raw.get("is_video") is True,
            media_type=media_type if isinstance(media_type, int) else None,
            video_versions=videos,
            image_candidates=images,
            carousel_media=children,
            username=username if isinstance(username, str) and username else None,
            media_id=str(media_id) if media_id is not None else None,
        )


@dataclass(frozen=True, slots=True)
class PerformanceCandidate:
    url: str
    score: int
    response_end: float        # ms, browser performance clock
    source: PerformanceSource


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    stored_at: float
    media_info: MediaInfo


@dataclass
class CarouselContext:
    """
    Active slide as seen in the DOM.

    `carousel_index` is zero-based (derived from layout). Indicator-dot
    indices are one-based and are never stored here.
    """
    container: Any
    active_media_element: Any = None
    carousel_index: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of one arbiter run."""
    media: Optional[MediaInfo]
    source: str                         # which evidence won, e.g. "api", "dom-retry"
    context_key: str
    in_story: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.media is not None


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value == value:
        return int(value)
    return 0


DownloadStatus = Literal["saved", "native", "opened", "failed"]


@dataclass(frozen=True, slots=True)
class DownloadOutcome:
    """
    What happened to a resolved MediaInfo once handed to the download side.

    saved:  bytes fetched (and validated for video) and written to disk
    native: the page context saved an ephemeral handle itself
    opened: fetch failed, URL opened in a browser tab instead
    failed: every strategy was exhausted
    """
    status: DownloadStatus
    strategy: str                       # e.g. "direct", "api", "meta", "performance:sanitized"
    media: MediaInfo
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "strategy": self.strategy,
            "media": self.media.to_dict(),
            "path": self.path,
            "error": self.error,
        }
