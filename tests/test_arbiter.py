import pytest

from fakes import CDN, FakeApiClient, FakeEvidenceSource, api_photo_item, api_video_item, el, page, video

from media_resolver.core.evidence import SnapshotEvidenceSource

STORY_URL = "https://www.instagram.com/stories/alice/3141592653589793238/"
POST_URL = "https://www.instagram.com/p/ABC/"
REEL_URL = "https://www.instagram.com/reel/XYZ/"


def _article(*children):
    return el("article", (0, 0, 600, 600), children)


@pytest.mark.asyncio
async def test_story_prefers_api_over_dom_video(make_engine):
    source = FakeEvidenceSource(page(STORY_URL, [video(f"{CDN}/o1/v/t16/dom_n.mp4", rect=(340, 0, 600, 900))]))
    client = FakeApiClient(infos={"3141592653589793238": api_video_item(f"{CDN}/o1/v/t16/api_n.mp4", username="alice")})
    engine = make_engine(source, client)

    resolution = await engine.resolve()
    assert resolution.source == "api"
    assert resolution.media.url.endswith("api_n.mp4")
    assert resolution.media.account_name == "alice"
    assert resolution.in_story
    assert resolution.details["domQuick"]["url"].endswith("dom_n.mp4")


@pytest.mark.asyncio
async def test_story_dom_retry_waits_between_attempts(make_engine, clock):
    empty = page(STORY_URL)
    playing = page(STORY_URL, [video(f"{CDN}/o1/v/t16/late_n.mp4", rect=(340, 0, 600, 900))])
    source = FakeEvidenceSource(empty, later=[empty, empty, playing])
    engine = make_engine(source)

    resolution = await engine.resolve()
    assert resolution.source == "dom-retry"
    assert resolution.media.url.endswith("late_n.mp4")
    assert source.primes == 3
    assert clock.slept() == [0.5, 0.5]


@pytest.mark.asyncio
async def test_post_dom_video_beats_api_photo(make_engine):
    source = FakeEvidenceSource(page(POST_URL, [_article(video(f"{CDN}/o1/v/t16/clip_n.mp4"))]))
    client = FakeApiClient({"ABC": "1"}, {"1": api_photo_item(f"{CDN}/v/t51.2885-15/cover_n.jpg")})
    engine = make_engine(source, client)

    resolution = await engine.resolve()
    assert resolution.source == "dom-video-over-api-photo"
    assert resolution.media.type == "video"
    assert resolution.details["api"]["type"] == "photo"


@pytest.mark.asyncio
async def test_post_api_photo_kept_when_dom_agrees(make_engine):
    image = el("img", (0, 0, 600, 600), currentSrc=f"{CDN}/v/t51.2885-15/cover_n.jpg")
    source = FakeEvidenceSource(page(POST_URL, [_article(image)]))
    client = FakeApiClient({"ABC": "1"}, {"1": api_photo_item(f"{CDN}/v/t51.2885-15/hd_n.jpg")})
    engine = make_engine(source, client)

    resolution = await engine.resolve()
    assert resolution.source == "api"
    assert resolution.media.url.endswith("hd_n.jpg")


@pytest.mark.asyncio
async def test_post_falls_back_to_meta_tags(make_engine, clock):
    source = FakeEvidenceSource(page(POST_URL, meta={"og:image": f"{CDN}/v/t51.2885-15/og_n.jpg"}))
    engine = make_engine(source)

    resolution = await engine.resolve()
    assert resolution.source == "meta"
    assert resolution.media.url.endswith("og_n.jpg")
    assert source.primes == 6
    assert clock.slept() == [0.5] * 5


@pytest.mark.asyncio
async def test_nothing_anywhere_yields_no_media(make_engine):
    engine = make_engine(FakeEvidenceSource(page(STORY_URL)), dom_retry_count=2, story_id_attempts=1)

    resolution = await engine.resolve()
    assert not resolution.found
    assert resolution.source == "none"
    assert resolution.context_key == "story:3141592653589793238"


@pytest.mark.asyncio
async def test_reel_photo_is_replaced_by_canonical_video(make_engine):
    later = page(REEL_URL, [_article(video(f"{CDN}/o1/v/t16/reel_n.mp4"))])
    source = FakeEvidenceSource(page(REEL_URL), later=[later])
    client = FakeApiClient({"XYZ": "5"}, {"5": api_photo_item(f"{CDN}/v/t51.2885-15/thumb_n.jpg")})
    engine = make_engine(source, client)

    resolution = await engine.resolve()
    assert resolution.source == "dom-video-canonical-fallback"
    assert resolution.media.url.endswith("reel_n.mp4")
    assert engine.context.cache.get_dom(resolution.context_key) == resolution.media


@pytest.mark.asyncio
async def test_canonical_override_keeps_photo_without_a_video(make_engine):
    meta = {"og:type": "video.other", "og:image": f"{CDN}/v/t51.2885-15/og_n.jpg"}
    source = FakeEvidenceSource(page(POST_URL, meta=meta))
    engine = make_engine(source, dom_retry_count=2, video_wait_attempts=3)

    resolution = await engine.resolve()
    assert resolution.source == "meta"
    assert resolution.media.type == "photo"
    # two retry scans for the meta fallback, two for the override, three visible-video waits
    assert source.primes == 2 + 2 + 3


@pytest.mark.asyncio
async def test_prefetched_dom_result_is_reused(make_engine, clock):
    clip = f"{CDN}/o1/v/t16/clip_n.mp4"
    source = FakeEvidenceSource(page(POST_URL, [_article(video(clip))]))
    engine = make_engine(source)

    identity = await engine.prefetch()
    assert identity.key == "post:ABC:1"

    # The player is torn down before the user clicks.
    source._document = SnapshotEvidenceSource(page(POST_URL)).snapshot_document()
    clock.advance(1.0)

    resolution = await engine.resolve()
    assert resolution.source == "dom"
    assert resolution.media.url == clip
    assert source.primes == 0


@pytest.mark.asyncio
async def test_dom_cache_hit_does_not_extend_its_lifetime(make_engine, clock):
    old = el("img", (0, 0, 600, 600), currentSrc=f"{CDN}/v/t51.2885-15/old_n.jpg")
    new = el("img", (0, 0, 600, 600), currentSrc=f"{CDN}/v/t51.2885-15/new_n.jpg")
    source = FakeEvidenceSource(page(POST_URL, [_article(old)]))
    engine = make_engine(source)

    first = await engine.resolve()
    assert first.media.url.endswith("old_n.jpg")

    source._document = SnapshotEvidenceSource(page(POST_URL, [_article(new)])).snapshot_document()
    clock.advance(3.0)
    cached = await engine.resolve()
    assert cached.media.url.endswith("old_n.jpg")

    # 6s after the only scan of the old page, past the 3.5s lifetime
    clock.advance(3.0)
    fresh = await engine.resolve()
    assert fresh.source == "dom"
    assert fresh.media.url.endswith("new_n.jpg")
