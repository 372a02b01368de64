from media_resolver.core.dto.media import (
    ApiMediaItem,
    CacheEntry,
    CarouselContext,
    DownloadOutcome,
    MediaInfo,
    MediaType,
    PerformanceCandidate,
    Rendition,
    Resolution,
)
from media_resolver.core.dto.page import (
    ComputedStyle,
    ElementSnapshot,
    MetaTags,
    PageDocument,
    Rect,
    ResourceTimingBuffer,
    ResourceTimingEntry,
)

__all__ = [
    # Media
    "ApiMediaItem",
    "CacheEntry",
    "CarouselContext",
    "DownloadOutcome",
    "MediaInfo",
    "MediaType",
    "PerformanceCandidate",
    "Rendition",
    "Resolution",

    # Page snapshot
    "ComputedStyle",
    "ElementSnapshot",
    "MetaTags",
    "PageDocument",
    "Rect",
    "ResourceTimingBuffer",
    "ResourceTimingEntry",
]
