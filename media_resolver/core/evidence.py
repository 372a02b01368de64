"""
Evidence source capability.

The engine never touches a live browser directly. Everything it knows about
the page comes through an `EvidenceSource`, which keeps the ranking and
fusion logic testable against fixture data.

Snapshot JSON format (what `SnapshotEvidenceSource` reads):

    {
      "url": "https://www.instagram.com/p/ABC/?img_index=2",
      "viewport": {"width": 1280, "height": 900},
      "meta": {"og:video": "...", "og:image": "...", "og:type": "video.other",
               "canonical": "https://www.instagram.com/reel/ABC/"},
      "performance": {"now": 51234.5,
                      "entries": [{"name": "...", "startTime": 1.0, "responseEnd": 2.0}]},
      "document": {"tag": "body", "rect": [0, 0, 1280, 900],
                   "style": {"display": "block", "transform": "none"},
                   "inlineTransform": "", "attrs": {"class": "..."},
                   "currentSrc": "", "src": "", "poster": "",
                   "paused": true, "ended": false, "readyState": 4, "muted": false,
                   "children": [...]}
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Protocol, Union

from media_resolver.core.dom_utils import is_visible_element
from media_resolver.core.dto.page import (
    ElementSnapshot,
    MetaTags,
    PageDocument,
    ResourceTimingBuffer,
    ResourceTimingEntry,
)

logger = logging.getLogger(__name__)


PAGE_MESSAGE_SOURCE = "ig-photo-extractor"

PageReply = Callable[[Dict[str, Any]], None]


class EvidenceSource(Protocol):
    def location(self) -> str:
        """Current page href."""
        ...

    def snapshot_document(self) -> PageDocument:
        """Read-only view of the live document at call time."""
        ...

    def query_resource_timings(self) -> ResourceTimingBuffer:
        ...

    def read_meta_tags(self) -> MetaTags:
        ...

    async def prime_videos(self) -> None:
        """Mute and autoplay visible videos so players expose a URL."""
        ...

    async def request_native_download(
        self,
        request_id: str,
        url: str,
        file_name: str,
        reply: PageReply,
    ) -> None:
        """
        Ask the privileged page context to save `url` itself.

        The page answers asynchronously by calling `reply` with
        {"source": PAGE_MESSAGE_SOURCE, "requestId": ..., "ok": bool, "error": str}.
        """
        ...


class SnapshotEvidenceSource:
    """
    Evidence source backed by a captured page state.

    Used by the CLI and by tests. Priming marks visible videos as muted and
    playing; a snapshot has no page context, so native downloads always
    report failure.
    """

    def __init__(self, payload: Dict[str, Any]):
        self._payload = payload
        self._url = str(payload.get("url") or "")
        viewport = payload.get("viewport") or {}
        self._document = PageDocument(
            body=ElementSnapshot.from_raw(payload.get("document") or {"tag": "body"}),
            viewport_width=float(viewport.get("width") or 0),
            viewport_height=float(viewport.get("height") or 0),
        )
        self._meta = MetaTags.from_raw(payload.get("meta"))
        perf = payload.get("performance") or {}
        entries = [ResourceTimingEntry.from_raw(e) for e in (perf.get("entries") or [])]
        self._timings = ResourceTimingBuffer(
            entries=[e for e in entries if e is not None],
            now=float(perf.get("now") or 0),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SnapshotEvidenceSource":
        path = Path(path)
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Snapshot {path} is not a JSON object")
        logger.info(f"Loaded page snapshot {path} ({payload.get('url')})")
        return cls(payload)

    def location(self) -> str:
        return self._url

    def snapshot_document(self) -> PageDocument:
        return self._document

    def query_resource_timings(self) -> ResourceTimingBuffer:
        return self._timings

    def read_meta_tags(self) -> MetaTags:
        return self._meta

    async def prime_videos(self) -> None:
        for video in self._document.query_all("video"):
            if is_visible_element(video, self._document):
                video.muted = True
                video.paused = False

    async def request_native_download(
        self,
        request_id: str,
        url: str,
        file_name: str,
        reply: PageReply,
    ) -> None:
        logger.info(f"Snapshot source cannot save {url} natively")
        reply({
            "source": PAGE_MESSAGE_SOURCE,
            "requestId": request_id,
            "ok": False,
            "error": "No page context available for a captured snapshot.",
        })
