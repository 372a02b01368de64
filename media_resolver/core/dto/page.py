from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass(frozen=True, slots=True)
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_raw(cls, raw: Any) -> "Rect":
        if isinstance(raw, (list, tuple)) and len(raw) == 4:
            return cls(*(float(v) for v in raw))
        if isinstance(raw, dict):
            return cls(
                x=float(raw.get("x", raw.get("left", 0)) or 0),
                y=float(raw.get("y", raw.get("top", 0)) or 0),
                width=float(raw.get("width", 0) or 0),
                height=float(raw.get("height", 0) or 0),
            )
        return cls()


@dataclass(frozen=True, slots=True)
class ComputedStyle:
    display: str = "block"
    visibility: str = "visible"
    opacity: str = "1"
    transform: str = "none"

    @classmethod
    def from_raw(cls, raw: Any) -> "ComputedStyle":
        if not isinstance(raw, dict):
            return cls()
        return cls(
            display=str(raw.get("display", "block")),
            visibility=str(raw.get("visibility", "visible")),
            opacity=str(raw.get("opacity", "1")),
            transform=str(raw.get("transform", "none") or "none"),
        )


@dataclass(eq=False)
class ElementSnapshot:
    """
    A captured DOM element.

    Identity matters (the reconciler compares elements by `is`), so equality
    is left as object identity.
    """
    tag: str
    rect: Rect = field(default_factory=Rect)
    style: ComputedStyle = field(default_factory=ComputedStyle)
    inline_transform: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    current_src: str = ""
    src: str = ""
    poster: str = ""

    # HTMLMediaElement state (videos only)
    paused: bool = True
    ended: bool = False
    ready_state: int = 0
    muted: bool = False

    children: List["ElementSnapshot"] = field(default_factory=list)
    parent: Optional["ElementSnapshot"] = field(default=None, repr=False)

    def __post_init__(self):
        self.tag = self.tag.lower()
        for child in self.children:
            child.parent = self

    @property
    def class_name(self) -> str:
        return self.attrs.get("class", "")

    @property
    def class_list(self) -> List[str]:
        return self.class_name.split()

    @property
    def srcset(self) -> str:
        return self.attrs.get("srcset", "")

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    def iter_descendants(self) -> Iterator["ElementSnapshot"]:
        """Document-order (preorder) walk, excluding self."""
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def query_all(self, tag: str) -> List["ElementSnapshot"]:
        tag = tag.lower()
        return [el for el in self.iter_descendants() if el.tag == tag]

    def query(self, tag: str) -> Optional["ElementSnapshot"]:
        tag = tag.lower()
        for el in self.iter_descendants():
            if el.tag == tag:
                return el
        return None

    def query_class(self, class_name: str) -> List["ElementSnapshot"]:
        return [el for el in self.iter_descendants() if class_name in el.class_list]

    def contains_media(self) -> bool:
        return any(el.tag in ("video", "img") for el in self.iter_descendants())

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "ElementSnapshot":
        attrs = {str(k): str(v) for k, v in (raw.get("attrs") or {}).items() if v is not None}
        return cls(
            tag=str(raw.get("tag") or "div"),
            rect=Rect.from_raw(raw.get("rect")),
            style=ComputedStyle.from_raw(raw.get("style")),
            inline_transform=str(raw.get("inlineTransform") or ""),
            attrs=attrs,
            current_src=str(raw.get("currentSrc") or ""),
            src=str(raw.get("src") or attrs.get("src", "")),
            poster=str(raw.get("poster") or attrs.get("poster", "")),
            paused=bool(raw.get("paused", True)),
            ended=bool(raw.get("ended", False)),
            ready_state=int(raw.get("readyState") or 0),
            muted=bool(raw.get("muted", False)),
            children=[cls.from_raw(c) for c in (raw.get("children") or []) if isinstance(c, dict)],
        )


@dataclass
class PageDocument:
    body: ElementSnapshot
    viewport_width: float = 0.0
    viewport_height: float = 0.0

    def query_all(self, tag: str) -> List[ElementSnapshot]:
        found = [self.body] if self.body.tag == tag.lower() else []
        return found + self.body.query_all(tag)

    def query(self, tag: str) -> Optional[ElementSnapshot]:
        if self.body.tag == tag.lower():
            return self.body
        return self.body.query(tag)


@dataclass(frozen=True, slots=True)
class MetaTags:
    og_video: Optional[str] = None
    og_video_url: Optional[str] = None
    og_video_secure_url: Optional[str] = None
    og_image: Optional[str] = None
    og_type: Optional[str] = None
    canonical_href: Optional[str] = None

    @property
    def video_url(self) -> Optional[str]:
        return self.og_video or self.og_video_url or self.og_video_secure_url or None

    @classmethod
    def from_raw(cls, raw: Any) -> "MetaTags":
        if not isinstance(raw, dict):
            return cls()

        def pick(*keys: str) -> Optional[str]:
            for key in keys:
                value = raw.get(key)
                if isinstance(value, str) and value:
                    return value
            return None

        return cls(
            og_video=pick("og:video"),
            og_video_url=pick("og:video:url"),
            og_video_secure_url=pick("og:video:secure_url"),
            og_image=pick("og:image"),
            og_type=pick("og:type"),
            canonical_href=pick("canonical"),
        )


@dataclass(frozen=True, slots=True)
class ResourceTimingEntry:
    name: str
    start_time: float = 0.0     # ms
    response_end: float = 0.0   # ms

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["ResourceTimingEntry"]:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            return None
        return cls(
            name=raw["name"],
            start_time=_finite(raw.get("startTime")),
            response_end=_finite(raw.get("responseEnd")),
        )


@dataclass(frozen=True)
class ResourceTimingBuffer:
    entries: List[ResourceTimingEntry] = field(default_factory=list)
    now: float = 0.0            # performance.now() at capture, ms


def _finite(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number in (float("inf"), float("-inf")):
        return 0.0
    return number
