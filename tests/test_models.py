"""Tests for pipeline value types: MediaBlob, TrimRange, ConcatManifest."""

from __future__ import annotations

import math

import pytest


class TestMediaBlob:
    def test_family_and_is_video(self):
        from clipshare.pipeline.models import MediaBlob
        assert MediaBlob(b"x", "video/webm").family == "video"
        assert MediaBlob(b"x", "video/webm").is_video
        assert MediaBlob(b"x", "audio/mpeg").family == "audio"
        assert not MediaBlob(b"x", "audio/mpeg").is_video
        assert MediaBlob(b"x", "image/png").family == "image"
        assert MediaBlob(b"x", "application/pdf").family == "other"

    def test_from_path_guesses_mime(self, tmp_path):
        from clipshare.pipeline.models import MediaBlob
        p = tmp_path / "song.mp3"
        p.write_bytes(b"abc")
        blob = MediaBlob.from_path(p)
        assert blob.mime_type == "audio/mpeg"
        assert blob.name == "song.mp3"
        assert blob.size == 3

    def test_from_path_unknown_extension(self, tmp_path):
        from clipshare.pipeline.models import MediaBlob
        p = tmp_path / "blob.zzz-unknown"
        p.write_bytes(b"abc")
        assert MediaBlob.from_path(p).mime_type == "application/octet-stream"

    def test_write_to_creates_parents(self, tmp_path):
        from clipshare.pipeline.models import MediaBlob
        out = MediaBlob(b"data", "video/mp4").write_to(tmp_path / "a" / "b" / "out.mp4")
        assert out.read_bytes() == b"data"

    def test_repr_hides_bytes(self):
        from clipshare.pipeline.models import MediaBlob
        assert "data" not in repr(MediaBlob(b"secret-bytes", "video/mp4"))


class TestTrimRange:
    def test_valid_range(self):
        from clipshare.pipeline.models import TrimRange
        r = TrimRange(1.0, 4.0, 10.0).validate()
        assert r.length == 3.0
        assert not r.is_noop

    def test_full_range_is_noop(self):
        from clipshare.pipeline.models import TrimRange
        assert TrimRange(0, 10.0, 10.0).is_noop

    def test_zero_length_allowed(self):
        from clipshare.pipeline.models import TrimRange
        assert TrimRange(3.0, 3.0, 10.0).validate().length == 0

    @pytest.mark.parametrize("start,end,duration,fragment", [
        (-1.0, 4.0, 10.0, "negative"),
        (5.0, 4.0, 10.0, "after end"),
        (1.0, 11.0, 10.0, "exceeds source duration"),
    ])
    def test_invalid_ranges(self, start, end, duration, fragment):
        from clipshare.engine.errors import InvalidRange
        from clipshare.pipeline.models import TrimRange
        with pytest.raises(InvalidRange, match=fragment):
            TrimRange(start, end, duration).validate()

    @pytest.mark.parametrize("start,end,duration", [
        (math.nan, math.nan, 10.0),
        (0.0, math.nan, 10.0),
        (math.nan, 4.0, 10.0),
        (0.0, math.inf, math.inf),
        (0.0, 4.0, math.nan),
        (-math.inf, 4.0, 10.0),
    ])
    def test_non_finite_bounds_rejected(self, start, end, duration):
        from clipshare.engine.errors import InvalidRange
        from clipshare.pipeline.models import TrimRange
        with pytest.raises(InvalidRange, match="finite"):
            TrimRange(start, end, duration).validate()

    def test_invalid_range_is_client_error(self):
        from clipshare.engine.errors import InvalidRange
        from clipshare.pipeline.models import TrimRange
        with pytest.raises(InvalidRange) as exc:
            TrimRange(5, 1, 10).validate()
        assert exc.value.status_code == 400
        assert exc.value.code == "INVALID_RANGE"


class TestConcatManifest:
    def test_render_in_order(self):
        from clipshare.pipeline.models import ConcatManifest
        m = ConcatManifest.for_clips(3)
        assert m.render() == "file 'clip0.mp4'\nfile 'clip1.mp4'\nfile 'clip2.mp4'"

    def test_single_clip(self):
        from clipshare.pipeline.models import ConcatManifest
        assert ConcatManifest.for_clips(1).render() == "file 'clip0.mp4'"

    def test_quote_escaping(self):
        from clipshare.pipeline.models import ConcatManifest
        m = ConcatManifest(("it's.mp4",))
        assert m.render() == "file 'it'\\''s.mp4'"

    def test_extension(self):
        from clipshare.pipeline.models import ConcatManifest, clip_name
        assert clip_name(4, ".mov") == "clip4.mov"
        assert ConcatManifest.for_clips(2, "mov").names == ("clip0.mov", "clip1.mov")

    def test_encode_utf8(self):
        from clipshare.pipeline.models import ConcatManifest
        assert ConcatManifest.for_clips(1).encode() == b"file 'clip0.mp4'"
