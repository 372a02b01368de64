import pytest

from fakes import CDN, FakeEvidenceSource, el, mp4_bytes, page, video

from media_resolver.core.dispatcher import Command, dispatch

POST_URL = "https://www.instagram.com/p/ABC/"
CLIP = f"{CDN}/o1/v/t16/clip_n.mp4"


def _clip_page():
    return page(POST_URL, [el("article", (0, 0, 600, 600), [video(CLIP)])])


class ExplodingEngine:
    async def extract(self, *, download=True):
        raise RuntimeError("page went away")


@pytest.mark.asyncio
async def test_unknown_action_is_rejected(make_engine):
    engine = make_engine(FakeEvidenceSource(_clip_page()))
    for message in ({"action": "deleteEverything"}, {}, "extractMedia", None):
        result = await dispatch(engine, message)
        assert result.status == "unknown_action"
        assert not result.ok


@pytest.mark.asyncio
async def test_prefetch_reports_context_key(make_engine):
    engine = make_engine(FakeEvidenceSource(_clip_page()))
    result = await dispatch(engine, {"action": Command.PREFETCH_MEDIA.value})
    assert result.ok
    assert result.context_key == "post:ABC:1"
    assert engine.context.cache.get_dom("post:ABC:1").url == CLIP


@pytest.mark.asyncio
async def test_extract_without_media(make_engine):
    engine = make_engine(FakeEvidenceSource(page(POST_URL)), dom_retry_count=1)
    result = await dispatch(engine, {"action": "extractMedia"})
    assert result.status == "no_media"
    assert result.to_dict()["media"] is None


@pytest.mark.asyncio
async def test_extract_reports_download(make_engine):
    engine = make_engine(FakeEvidenceSource(_clip_page()), None, {CLIP: mp4_bytes(200 * 1024)})
    result = await dispatch(engine, {"action": "extractMedia"})

    payload = result.to_dict()
    assert payload["status"] == "ok"
    assert payload["source"] == "dom"
    assert payload["media"] == {"url": CLIP, "type": "video", "accountName": None}
    assert payload["download"]["status"] == "saved"


@pytest.mark.asyncio
async def test_failed_download_is_an_error(make_engine):
    blob = "blob:https://www.instagram.com/feed"
    source = FakeEvidenceSource(
        page("https://www.instagram.com/reel/XYZ/", [el("article", (0, 0, 600, 600), [video(blob)])]),
        native_reply="fail",
    )
    result = await dispatch(make_engine(source), {"action": "extractMedia"})
    assert result.status == "error"
    assert result.error == "blocked"
    assert result.download.strategy == "page-context"


@pytest.mark.asyncio
async def test_engine_exceptions_never_escape():
    result = await dispatch(ExplodingEngine(), {"action": "extractMedia"})
    assert result.status == "error"
    assert result.error == "page went away"
