from fakes import CDN, carousel, img, page

from media_resolver.core.context_resolver import ContextResolver, has_strong_video_signal
from media_resolver.core.dto.page import MetaTags
from media_resolver.core.evidence import SnapshotEvidenceSource


def _resolve(href, children=()):
    document = SnapshotEvidenceSource(page(href, children)).snapshot_document()
    return ContextResolver().resolve(href, document)


def test_story_key_uses_numeric_id():
    identity = _resolve("https://www.instagram.com/stories/alice/3141592653589793238/?r=1")
    assert identity.kind == "story"
    assert identity.key == "story:3141592653589793238"
    assert identity.in_story


def test_story_without_id_falls_back_to_path_key():
    identity = _resolve("https://www.instagram.com/stories/alice/")
    assert identity.kind == "story"
    assert identity.story_id is None
    assert identity.key == "path:/stories/alice/"


def test_post_defaults_to_first_slide():
    identity = _resolve("https://www.instagram.com/p/ABC123/", [img(f"{CDN}/a_n.jpg")])
    assert identity.key == "post:ABC123:1"
    assert identity.post.post_type == "p"
    assert identity.post.canonical_url == "https://www.instagram.com/p/ABC123/"


def test_username_prefixed_reel_path():
    identity = _resolve("https://www.instagram.com/alice/reel/XYZ/")
    assert identity.kind == "post"
    assert identity.post.post_type == "reel"
    assert identity.post.shortcode == "XYZ"
    assert identity.path_looks_video


def test_slide_number_comes_from_the_dom():
    slides = [img(f"{CDN}/s{i}_n.jpg") for i in range(3)]
    identity = _resolve("https://www.instagram.com/p/ABC/", [carousel(slides, active=2, dots=True)])
    assert identity.key == "post:ABC:3"
    assert identity.slide_number == 3


def test_img_index_is_kept_as_a_hint_only():
    identity = _resolve("https://www.instagram.com/p/ABC/?img_index=4", [img(f"{CDN}/a_n.jpg")])
    assert identity.img_index_hint == 4
    assert identity.key == "post:ABC:1"


def test_other_pages_get_path_keys():
    identity = _resolve("https://www.instagram.com/explore/")
    assert identity.kind == "other"
    assert identity.key == "path:/explore/"


def test_strong_video_signal_sources():
    post = _resolve("https://www.instagram.com/p/ABC/")
    assert not has_strong_video_signal(post, MetaTags())
    assert has_strong_video_signal(post, MetaTags(og_type="video.other"))
    assert has_strong_video_signal(post, MetaTags(canonical_href="https://www.instagram.com/reel/ABC/"))
    assert has_strong_video_signal(post, MetaTags(og_video_secure_url=f"{CDN}/v_n.mp4"))
    assert has_strong_video_signal(_resolve("https://www.instagram.com/tv/ABC/"), MetaTags())
