import pytest

from fakes import CDN

from media_resolver.core.dto.page import ResourceTimingBuffer, ResourceTimingEntry
from media_resolver.core.performance_scanner import PerformanceScanner, sanitize_segmented_url


def _buffer(*urls, now=10_000.0, end=9_500.0):
    return ResourceTimingBuffer(
        entries=[ResourceTimingEntry(name=u, start_time=end - 200, response_end=end) for u in urls],
        now=now,
    )


def test_non_cdn_and_audio_resources_are_ignored():
    buffer = _buffer(
        "https://example.com/video.mp4",
        f"{CDN}/o1/v/t16/clip_audio_n.mp4",
        f"{CDN}/o1/v/t16/x.mp4?mime_type=audio_mp4",
        f"{CDN}/v/t51.2885-15/photo_n.jpg",
    )
    assert PerformanceScanner().build_candidates(buffer) == []


def test_segmented_entry_yields_boosted_sanitized_variant():
    raw = f"{CDN}/o1/v/t16/clip_n.mp4?efg=abc&bytestart=0&byteend=1023"
    ranked = PerformanceScanner().build_candidates(_buffer(raw))

    assert [c.source for c in ranked] == ["sanitized", "raw"]
    sanitized, original = ranked
    assert sanitized.url == f"{CDN}/o1/v/t16/clip_n.mp4?efg=abc"
    assert sanitized.score == original.score + 350


def test_dash_init_gets_no_sanitized_variant():
    raw = f"{CDN}/o1/v/t16/x/dashinit.mp4?bytestart=0&byteend=800"
    ranked = PerformanceScanner().build_candidates(_buffer(raw))
    assert [c.source for c in ranked] == ["raw"]
    assert ranked[0].score < 0


def test_progressive_outranks_plain_video_path():
    plain = f"{CDN}/o1/v/t16/plain_n.mp4"
    progressive = f"{CDN}/o1/v/t16/prog_n.mp4?efg=xpv_progressive"
    ranked = PerformanceScanner().build_candidates(_buffer(plain, progressive))
    assert [c.url for c in ranked] == [progressive, plain]


def test_max_age_filters_old_entries():
    buffer = ResourceTimingBuffer(
        entries=[
            ResourceTimingEntry(name=f"{CDN}/o1/v/t16/old_n.mp4", start_time=1_000, response_end=1_200),
            ResourceTimingEntry(name=f"{CDN}/o1/v/t16/new_n.mp4", start_time=40_000, response_end=40_100),
        ],
        now=50_000,
    )
    urls = [c.url for c in PerformanceScanner().build_candidates(buffer, max_age_ms=30_000)]
    assert urls == [f"{CDN}/o1/v/t16/new_n.mp4"]
    assert len(PerformanceScanner().build_candidates(buffer)) == 2


def test_duplicates_keep_latest_response():
    url = f"{CDN}/o1/v/t16/dup_n.mp4"
    buffer = ResourceTimingBuffer(
        entries=[
            ResourceTimingEntry(name=url, start_time=100, response_end=200),
            ResourceTimingEntry(name=url, start_time=300, response_end=900),
        ],
        now=1_000,
    )
    ranked = PerformanceScanner().build_candidates(buffer)
    assert len(ranked) == 1
    assert ranked[0].response_end == 900


def test_pick_video_returns_best_or_none():
    scanner = PerformanceScanner()
    assert scanner.pick_video(_buffer()) is None
    media = scanner.pick_video(_buffer(f"{CDN}/o1/v/t16/a_n.mp4"))
    assert media.type == "video"
    assert media.url.endswith("a_n.mp4")


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://x/a.mp4?bytestart=1&byteend=2", "https://x/a.mp4"),
        ("https://x/a.mp4?range=0-10&efg=1", "https://x/a.mp4?efg=1"),
        ("https://x/a.mp4?efg=1", "https://x/a.mp4?efg=1"),
    ],
)
def test_sanitize_segmented_url(url, expected):
    assert sanitize_segmented_url(url) == expected
