from fakes import CDN, carousel, el, img, page, perf_entry, video

from media_resolver.core.dom_scanner import DomScanner
from media_resolver.core.dom_utils import get_best_image_url, is_visible_element
from media_resolver.core.evidence import SnapshotEvidenceSource

STORY_URL = "https://www.instagram.com/stories/alice/3141592653589793238/"


def _scan(payload, *, in_story):
    source = SnapshotEvidenceSource(payload)
    return DomScanner().scan(source.snapshot_document(), source.query_resource_timings(), in_story=in_story)


def test_story_prefers_playing_visible_video_regardless_of_order():
    background = video(
        f"{CDN}/o1/v/t16/old_n.mp4",
        rect=(2000, 0, 600, 900),       # off-screen
        paused=True,
        muted=True,
        ready_state=1,
    )
    current = video(
        f"{CDN}/o1/v/t16/current_n.mp4",
        rect=(340, 0, 600, 900),
        paused=False,
        muted=False,
        ready_state=4,
    )
    media = _scan(page(STORY_URL, [background, current]), in_story=True)
    assert media.url.endswith("current_n.mp4")
    assert media.type == "video"

    media = _scan(page(STORY_URL, [current, background]), in_story=True)
    assert media.url.endswith("current_n.mp4")


def test_story_visibility_dominates_playing_state():
    hidden_playing = video(f"{CDN}/hidden_n.mp4", rect=(0, 0, 600, 900), paused=False, muted=False,
                           ready_state=4, style={"display": "none"})
    visible_paused = video(f"{CDN}/visible_n.mp4", rect=(0, 0, 600, 900))
    media = _scan(page(STORY_URL, [hidden_playing, visible_paused]), in_story=True)
    assert media.url.endswith("visible_n.mp4")


def test_story_falls_back_to_resource_timings():
    blobless = video("", rect=(0, 0, 600, 900))
    perf = [perf_entry(f"{CDN}/o1/v/t16/f2/m69/story_n.mp4?efg=xpv_progressive")]
    media = _scan(page(STORY_URL, [blobless], perf=perf), in_story=True)
    assert media.url.endswith("xpv_progressive")
    assert media.type == "video"


def test_story_image_prefers_portrait_and_skips_profile_photos():
    avatar = img(f"{CDN}/v/t51.2885-19/avatar_n.jpg", rect=(0, 0, 1000, 1000))
    landscape = img(f"{CDN}/v/t51.2885-15/land_n.jpg", rect=(0, 0, 700, 400))
    portrait = img(f"{CDN}/v/t51.2885-15/frame_n.jpg", rect=(0, 0, 400, 700))
    media = _scan(page(STORY_URL, [avatar, landscape, portrait]), in_story=True)
    assert media.url.endswith("frame_n.jpg")
    assert media.type == "photo"


def test_post_uses_active_carousel_slide():
    slides = [img(f"{CDN}/v/t51.2885-15/one_n.jpg"), video(f"{CDN}/o1/v/t16/two_n.mp4")]
    media = _scan(page("https://www.instagram.com/p/ABC/", [carousel(slides, active=1)]), in_story=False)
    assert media.url.endswith("two_n.mp4")


def test_post_falls_back_to_largest_visible_under_post_root():
    outside = img(f"{CDN}/outside_n.jpg", rect=(0, 0, 1200, 800))
    article = el("article", (0, 0, 600, 600), [
        img(f"{CDN}/thumb_n.jpg", rect=(0, 0, 60, 60)),
        img(f"{CDN}/main_n.jpg", rect=(0, 0, 500, 500)),
    ])
    media = _scan(page("https://www.instagram.com/p/ABC/", [outside, article]), in_story=False)
    assert media.url.endswith("main_n.jpg")


def test_nothing_to_scan_yields_none():
    payload = page("https://www.instagram.com/p/ABC/", [el("article", (0, 0, 600, 600), [el("div", (0, 0, 600, 600))])])
    assert _scan(payload, in_story=False) is None
    assert _scan(page(STORY_URL, [img(f"{CDN}/tiny_n.jpg", rect=(0, 0, 50, 50))]), in_story=True) is None


def test_visibility_thresholds():
    source = SnapshotEvidenceSource(page("https://www.instagram.com/p/ABC/", [
        img("a", rect=(0, 0, 81, 81)),
        img("b", rect=(0, 0, 80, 200)),
        img("c", rect=(1250, 0, 200, 200)),     # only 30px on screen
        img("d", rect=(0, 0, 200, 200), style={"opacity": "0"}),
    ]))
    document = source.snapshot_document()
    results = [is_visible_element(node, document) for node in document.query_all("img")]
    assert results == [True, False, False, False]


def test_srcset_widest_variant():
    source = SnapshotEvidenceSource(page("https://www.instagram.com/p/ABC/", [
        img(f"{CDN}/640_n.jpg", srcset=f"{CDN}/640_n.jpg 640w, {CDN}/1080_n.jpg 1080w, {CDN}/320_n.jpg 320w"),
    ]))
    assert get_best_image_url(source.snapshot_document().query("img")).endswith("1080_n.jpg")
