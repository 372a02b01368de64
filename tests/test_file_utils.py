import re

from media_resolver.utils.file_utils import ext_from_mime_type, get_file_name, normalize_file_name, unique_path


def test_last_segment_is_kept():
    url = "https://scontent.cdninstagram.com/v/t51.2885-15/123_n.jpg?stp=dst-jpg&_nc_ht=x"
    assert get_file_name(url, "image/jpeg", "photo") == "123_n.jpg"


def test_account_prefix():
    assert get_file_name("https://x/o1/v/clip_n.mp4", None, "video", "alice") == "alice_clip_n.mp4"


def test_extension_added_from_mime_or_kind():
    assert get_file_name("https://x/media/abcdef", "image/webp; charset=binary", "photo") == "abcdef.webp"
    assert get_file_name("https://x/media/abcdef", None, "video") == "abcdef.mp4"
    assert get_file_name("https://x/media/abcdef", None, "photo") == "abcdef.jpg"


def test_placeholder_when_no_segment():
    assert re.fullmatch(r"instagram-media-\d+\.mp4", get_file_name("https://x/", None, "video"))


def test_unsafe_characters_are_replaced():
    assert normalize_file_name('a<b>:"c".jpg') == "a_b_c_.jpg"
    assert normalize_file_name("...") == "instagram-media"


def test_mime_lookup_ignores_parameters():
    assert ext_from_mime_type("VIDEO/MP4; codecs=avc1") == "mp4"
    assert ext_from_mime_type("application/octet-stream") is None
    assert ext_from_mime_type(None) is None


def test_unique_path_adds_counter(tmp_path):
    (tmp_path / "a.jpg").write_bytes(b"1")
    (tmp_path / "a (1).jpg").write_bytes(b"2")
    assert unique_path(tmp_path, "a.jpg") == tmp_path / "a (2).jpg"
    assert unique_path(tmp_path, "b.jpg") == tmp_path / "b.jpg"
