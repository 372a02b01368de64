from media_resolver.core.dto.media import ApiMediaItem, MediaInfo, Rendition
from media_resolver.core.media_manager import MediaManager

CDN = "https://scontent.cdninstagram.com/o1/v/t16/f2/m69"


def _urls(ranked):
    return [r.url for r, _ in ranked]


def test_largest_area_wins_without_markers():
    versions = [
        Rendition(f"{CDN}/480_n.mp4", 480, 854),
        Rendition(f"{CDN}/1080_n.mp4", 1080, 1920),
        Rendition(f"{CDN}/720_n.mp4", 720, 1280),
    ]
    assert _urls(MediaManager.rank_video_versions(versions))[0] == f"{CDN}/1080_n.mp4"


def test_segmented_ranks_below_same_resolution_plain():
    versions = [
        Rendition(f"{CDN}/seg_n.mp4?bytestart=0&byteend=1000", 720, 1280),
        Rendition(f"{CDN}/plain_n.mp4", 720, 1280),
    ]
    assert _urls(MediaManager.rank_video_versions(versions)) == [
        f"{CDN}/plain_n.mp4",
        f"{CDN}/seg_n.mp4?bytestart=0&byteend=1000",
    ]


def test_dash_init_always_last_even_at_huge_resolution():
    versions = [
        Rendition(f"{CDN}/x/dashinit.mp4", 100_000, 100_000),
        Rendition(f"{CDN}/seg_n.mp4?range=0-10", 320, 240),
        Rendition(f"{CDN}/small_n.mp4", 320, 240),
    ]
    ranked = _urls(MediaManager.rank_video_versions(versions))
    assert ranked[-1] == f"{CDN}/x/dashinit.mp4"
    assert ranked[0] == f"{CDN}/small_n.mp4"


def test_progressive_beats_larger_plain_rendition():
    versions = [
        Rendition(f"{CDN}/big_n.mp4", 1080, 1920),
        Rendition(f"{CDN}/prog_n.mp4?efg=xpv_progressive", 720, 1280),
    ]
    assert _urls(MediaManager.rank_video_versions(versions))[0].endswith("xpv_progressive")


def test_ties_keep_backend_order():
    versions = [Rendition(f"{CDN}/a_n.mp4", 720, 1280), Rendition(f"{CDN}/b_n.mp4", 720, 1280)]
    assert _urls(MediaManager.rank_video_versions(versions)) == [f"{CDN}/a_n.mp4", f"{CDN}/b_n.mp4"]


def test_normalize_relabels_video_urls_and_is_idempotent():
    photo_claim = MediaInfo(url=f"{CDN}/clip_n.mp4?x=1", type="photo", account_name="alice")
    once = MediaManager.normalize_media_info(photo_claim)
    twice = MediaManager.normalize_media_info(once)

    assert once.type == "video"
    assert once.account_name == "alice"
    assert once == twice
    assert photo_claim.type == "photo"  # never mutated


def test_normalize_leaves_real_photos_alone():
    photo = MediaInfo(url="https://scontent.cdninstagram.com/v/t51.2885-15/pic_n.jpg", type="photo")
    assert MediaManager.normalize_media_info(photo) is photo
    assert MediaManager.normalize_media_info(None) is None


def test_video_item_prefers_video_and_carries_owner():
    raw = {
        "media_type": 2,
        "user": {"username": "alice"},
        "video_versions": [{"url": f"{CDN}/v_n.mp4", "width": 720, "height": 1280}],
        "image_versions2": {"candidates": [{"url": "https://x.cdninstagram.com/p_n.jpg", "width": 1080, "height": 1920}]},
    }
    media = MediaManager.media_info_from_item(ApiMediaItem.from_raw(raw))
    assert media == MediaInfo(url=f"{CDN}/v_n.mp4", type="video", account_name="alice")


def test_photo_item_uses_widest_candidate():
    raw = {
        "media_type": 1,
        "image_versions2": {"candidates": [
            {"url": "https://x.cdninstagram.com/320_n.jpg", "width": 320, "height": 320},
            {"url": "https://x.cdninstagram.com/1080_n.jpg", "width": 1080, "height": 1080},
        ]},
    }
    media = MediaManager.media_info_from_item(ApiMediaItem.from_raw(raw))
    assert media.type == "photo"
    assert media.url.endswith("1080_n.jpg")


def test_carousel_children_inherit_owner():
    raw = {
        "owner": {"username": "bob"},
        "carousel_media": [
            {"media_type": 1, "image_versions2": {"candidates": [{"url": "https://x/1_n.jpg"}]}},
            {"is_video": True, "video_versions": [{"url": "https://x/2_n.mp4"}]},
        ],
    }
    item = ApiMediaItem.from_raw(raw)
    assert [child.username for child in item.carousel_media] == ["bob", "bob"]
    assert [child.kind for child in item.carousel_media] == ["photo", "video"]


def test_file_token_is_last_path_segment():
    assert MediaManager.file_token(f"{CDN}/350_n.mp4?efg=abc") == "350_n.mp4"
    assert MediaManager.file_token("") == ""
    assert MediaManager.item_has_token(
        ApiMediaItem(video_versions=(Rendition(f"{CDN}/350_n.mp4"),)), "350_n.mp4"
    )
