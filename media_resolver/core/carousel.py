from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from media_resolver.core.dom_utils import (
    best_media_element,
    get_best_image_url,
    get_post_root,
    get_video_url,
)
from media_resolver.core.dto.media import ApiMediaItem, CarouselContext
from media_resolver.core.dto.page import ElementSnapshot, PageDocument
from media_resolver.core.media_manager import MediaManager

logger = logging.getLogger(__name__)


_NUM = r"(-?\d+(?:\.\d+)?)"
TRANSLATE_X_RE = re.compile(rf"translateX\({_NUM}px\)", re.IGNORECASE)
TRANSLATE_3D_RE = re.compile(rf"translate3d\({_NUM}px,\s*{_NUM}px,\s*{_NUM}px\)", re.IGNORECASE)
MATRIX_RE = re.compile(r"matrix\(([^)]+)\)", re.IGNORECASE)
MATRIX_3D_RE = re.compile(r"matrix3d\(([^)]+)\)", re.IGNORECASE)

MIN_SLIDE_PX = 80

ACTIVE_DOT_CLASS = "_acnf"
DOT_CLASS = "_acnb"
DOT_MIN_CHILDREN = 2
DOT_MAX_CHILDREN = 20
DOT_MAX_CHILD_PX = 30
DOT_ROW_MIN_WIDTH = 80
DOT_ROW_MIN_HEIGHT = 3
DOT_ROW_MAX_HEIGHT = 20


def parse_translate_x(transform: Optional[str]) -> Optional[float]:
    """Horizontal offset (px) of a CSS transform, or None when absent/unparseable."""
    if not transform or transform == "none":
        return None

    match = TRANSLATE_X_RE.search(transform)
    if match:
        return float(match.group(1))

    match = TRANSLATE_3D_RE.search(transform)
    if match:
        return float(match.group(1))

    match = MATRIX_RE.search(transform)
    if match:
        values = _parse_floats(match.group(1))
        if len(values) == 6 and values[4] is not None:
            return values[4]

    match = MATRIX_3D_RE.search(transform)
    if match:
        values = _parse_floats(match.group(1))
        if len(values) == 16 and values[12] is not None:
            return values[12]

    return None


def _parse_floats(raw: str) -> List[Optional[float]]:
    values: List[Optional[float]] = []
    for part in raw.split(","):
        try:
            number = float(part.strip())
        except ValueError:
            number = None
        if number is not None and not math.isfinite(number):
            number = None
        values.append(number)
    return values


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_indicator_dot(element: ElementSnapshot) -> int:
    score = 0
    if element.get_attribute("aria-current") == "true":
        score += 1000
    if element.get_attribute("aria-selected") == "true":
        score += 500
    if ACTIVE_DOT_CLASS in element.class_list:
        score += 300
    return score + len(element.class_name)


def _best_dot_position(dots: Sequence[ElementSnapshot]) -> int:
    """One-based position of the highest-scoring dot (first wins ties)."""
    best_index = 0
    best_score = -1
    for index, dot in enumerate(dots):
        score = score_indicator_dot(dot)
        if score > best_score:
            best_score = score
            best_index = index
    return best_index + 1


@dataclass
class ActiveSlide:
    list_element: ElementSnapshot
    item: ElementSnapshot
    index: Optional[int]        # zero-based, from transform
    distance: float
    area: float


class CarouselReconciler:
    """
    Maps the slide currently shown in the DOM onto the backend's ordered
    media list.

    Strategies, first success wins:
      1. file-name token shared between the active element and an item
      2. zero-based index from the slide container's transform
      3. one-based index from the indicator dots
      4. the only item of the DOM's media kind
    """

    # ------------------------------------------------------------------
    # Active slide location
    # ------------------------------------------------------------------

    def transform_index(self, item: ElementSnapshot) -> Optional[int]:
        width = item.rect.width
        if not width:
            return None
        for transform in (item.inline_transform, item.style.transform):
            offset = parse_translate_x(transform)
            if offset is not None:
                return _round_half_up(abs(offset) / width)
        return None

    def find_active_slide(self, document: PageDocument) -> Optional[ActiveSlide]:
        root = get_post_root(document)
        best: Optional[ActiveSlide] = None

        for list_element in root.query_all("ul"):
            children = list_element.children
            if len(children) < 2:
                continue
            media_children = [child for child in children if child.contains_media()]
            if len(media_children) < 2:
                continue

            parent = list_element.parent
            reference = (parent.parent if parent is not None else None) or parent or list_element
            reference_x = reference.rect.x

            for child in media_children:
                rect = child.rect
                if rect.width < MIN_SLIDE_PX or rect.height < MIN_SLIDE_PX:
                    continue
                distance = abs(rect.x - reference_x)
                area = rect.area
                if (
                    best is None
                    or distance < best.distance
                    or (distance == best.distance and area > best.area)
                ):
                    best = ActiveSlide(
                        list_element=list_element,
                        item=child,
                        index=self.transform_index(child),
                        distance=distance,
                        area=area,
                    )
        return best

    def active_media_context(self, document: PageDocument) -> CarouselContext:
        slide = self.find_active_slide(document)
        if slide is not None:
            return CarouselContext(
                container=slide.item,
                active_media_element=best_media_element(slide.item, document),
                carousel_index=slide.index,
            )

        root = get_post_root(document)
        return CarouselContext(
            container=root,
            active_media_element=best_media_element(root, document),
            carousel_index=None,
        )

    # ------------------------------------------------------------------
    # Indicator dots
    # ------------------------------------------------------------------

    def find_dot_row(self, root: ElementSnapshot) -> Optional[ElementSnapshot]:
        stack = [root]
        while stack:
            current = stack.pop()
            count = len(current.children)
            if DOT_MIN_CHILDREN <= count <= DOT_MAX_CHILDREN:
                rect = current.rect
                if rect.width >= DOT_ROW_MIN_WIDTH and DOT_ROW_MIN_HEIGHT <= rect.height <= DOT_ROW_MAX_HEIGHT:
                    if all(
                        c.rect.width <= DOT_MAX_CHILD_PX and c.rect.height <= DOT_MAX_CHILD_PX
                        for c in current.children
                    ):
                        return current
            stack.extend(current.children)
        return None

    def dot_index(self, document: PageDocument) -> Optional[int]:
        """One-based index of the selected indicator dot."""
        root = get_post_root(document)

        class_dots = root.query_class(DOT_CLASS)
        if len(class_dots) >= 2:
            return _best_dot_position(class_dots)

        row = self.find_dot_row(root)
        if row is None or len(row.children) < 2:
            return None
        return _best_dot_position(row.children)

    def current_index(self, document: PageDocument) -> Optional[int]:
        """One-based slide number as the DOM shows it (transform first, then dots)."""
        slide = self.find_active_slide(document)
        if slide is not None and slide.index is not None:
            return slide.index + 1
        return self.dot_index(document)

    # ------------------------------------------------------------------
    # Token matching
    # ------------------------------------------------------------------

    def element_tokens(self, element: Optional[ElementSnapshot]) -> List[str]:
        if element is None:
            return []

        urls: List[Optional[str]] = []
        if element.tag == "video":
            video_url = get_video_url(element)
            if video_url and not MediaManager.is_transient_url(video_url):
                urls.append(video_url)
            if element.poster:
                urls.append(element.poster)
            for source in element.query_all("source"):
                if source.src and not MediaManager.is_transient_url(source.src):
                    urls.append(source.src)
        elif element.tag == "img":
            urls.extend([get_best_image_url(element), element.current_src, element.src])

        tokens: List[str] = []
        for url in urls:
            token = MediaManager.file_token(url)
            if token and token not in tokens:
                tokens.append(token)
        return tokens

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def find_best_item(
        self,
        items: Sequence[ApiMediaItem],
        document: PageDocument,
    ) -> Optional[ApiMediaItem]:
        if len(items) <= 1:
            return None

        context = self.active_media_context(document)
        active = context.active_media_element
        if active is None:
            return None

        preferred = "video" if active.tag == "video" else "photo"
        same_kind = [item for item in items if item.kind == preferred]
        other_kind = [item for item in items if item.kind != preferred]

        for token in self.element_tokens(active):
            for group in (same_kind, other_kind):
                for item in group:
                    if MediaManager.item_has_token(item, token):
                        logger.info(f"Carousel mapping: token {token} ({preferred})")
                        return item

        index = context.carousel_index
        if index is not None and 0 <= index < len(items):
            logger.info(f"Carousel mapping: transform-index {index}")
            return items[index]

        position = self.current_index(document)
        if position and 0 < position <= len(items):
            logger.info(f"Carousel mapping: dot-index {position - 1}")
            return items[position - 1]

        if preferred == "video" and len(same_kind) == 1:
            logger.info("Carousel mapping: single-video-item")
            return same_kind[0]

        return None
