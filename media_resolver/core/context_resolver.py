from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import urlparse

from media_resolver.core.carousel import CarouselReconciler
from media_resolver.core.dto.page import MetaTags, PageDocument


PageKind = Literal["story", "post", "other"]

STORY_ID_RE = re.compile(r"/stories/[^/]+/(\d+)")
POST_PATH_RE = re.compile(r"^/(?:[^/?#]+/)?(p|reel|reels|tv)/([^/?#]+)", re.IGNORECASE)
VIDEO_PATH_RE = re.compile(r"/(reel|reels|tv)/", re.IGNORECASE)
IMG_INDEX_RE = re.compile(r"img_index=(\d+)")


@dataclass(frozen=True, slots=True)
class PostRef:
    post_type: str      # p | reel | reels | tv
    shortcode: str

    @property
    def canonical_url(self) -> str:
        return f"https://www.instagram.com/{self.post_type}/{self.shortcode}/"


@dataclass(frozen=True, slots=True)
class PageIdentity:
    key: str                            # story:<id> | post:<shortcode>:<slide> | path:<pathname>
    kind: PageKind
    href: str
    pathname: str
    story_id: Optional[str] = None
    post: Optional[PostRef] = None
    slide_number: Optional[int] = None  # one-based
    img_index_hint: Optional[int] = None

    @property
    def in_story(self) -> bool:
        return self.kind == "story"

    @property
    def path_looks_video(self) -> bool:
        return VIDEO_PATH_RE.search(self.pathname) is not None


def pathname_of(href: str) -> str:
    try:
        return urlparse(href).path or "/"
    except ValueError:
        return "/"


def extract_story_id(href: str) -> Optional[str]:
    match = STORY_ID_RE.search(href or "")
    return match.group(1) if match else None


def parse_post_ref(pathname: str) -> Optional[PostRef]:
    # Posts are served as /p/<code>/ and as /<username>/p/<code>/.
    match = POST_PATH_RE.match(pathname or "")
    if not match:
        return None
    return PostRef(post_type=match.group(1).lower(), shortcode=match.group(2))


def img_index_hint(href: str) -> Optional[int]:
    match = IMG_INDEX_RE.search(href or "")
    return int(match.group(1)) if match else None


def canonical_pathname(meta: MetaTags) -> str:
    if not meta.canonical_href:
        return ""
    try:
        return urlparse(meta.canonical_href).path or ""
    except ValueError:
        return ""


def has_strong_video_signal(identity: "PageIdentity", meta: MetaTags) -> bool:
    if identity.path_looks_video:
        return True
    if VIDEO_PATH_RE.search(canonical_pathname(meta)):
        return True
    if "video" in (meta.og_type or "").lower():
        return True
    return bool(meta.video_url)


class ContextResolver:
    """Derives a stable identity for whatever the page is currently showing."""

    def __init__(self, reconciler: Optional[CarouselReconciler] = None):
        self.reconciler = reconciler or CarouselReconciler()

    def resolve(self, href: str, document: Optional[PageDocument] = None) -> PageIdentity:
        pathname = pathname_of(href)

        if "/stories/" in pathname:
            # A missing id is not retried here; the API fetcher polls for it.
            story_id = extract_story_id(href)
            key = f"story:{story_id}" if story_id else f"path:{pathname}"
            return PageIdentity(key=key, kind="story", href=href, pathname=pathname, story_id=story_id)

        post = parse_post_ref(pathname)
        if post is not None:
            slide = self.reconciler.current_index(document) if document is not None else None
            slide = slide or 1
            return PageIdentity(
                key=f"post:{post.shortcode}:{slide}",
                kind="post",
                href=href,
                pathname=pathname,
                post=post,
                slide_number=slide,
                img_index_hint=img_index_hint(href),
            )

        return PageIdentity(key=f"path:{pathname}", kind="other", href=href, pathname=pathname)
