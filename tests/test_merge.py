"""Tests for merge_clips: ordering, manifest, fetch failures, cleanup."""

from __future__ import annotations

import pytest

from clipshare.pipeline.models import Phase


def _fetcher(store: dict[str, bytes], log: list[str] | None = None):
    def fetch(ref):
        if log is not None:
            log.append(ref)
        return store[ref]
    return fetch


CLIPS = {
    "https://cdn.example.test/a.mp4": b"clip-a",
    "https://cdn.example.test/b.mp4": b"clip-b",
    "https://cdn.example.test/c.mp4": b"clip-c",
}


class TestMergeClips:
    def test_empty_list_never_loads_engine(self, session, loader):
        from clipshare.engine.errors import EmptyInput
        from clipshare.pipeline.merge import merge_clips
        with pytest.raises(EmptyInput) as exc:
            merge_clips([], session=session)
        assert exc.value.status_code == 400
        assert loader.load_count == 0

    def test_stages_in_order_and_concatenates(self, session, engine):
        from clipshare.pipeline.merge import merge_clips
        order = []
        refs = list(CLIPS)
        result = merge_clips(refs, session=session, fetcher=_fetcher(CLIPS, order), title="Trip")
        assert order == refs
        staged = engine.contents_at_run[0]
        assert staged["clip0.mp4"] == b"clip-a"
        assert staged["clip1.mp4"] == b"clip-b"
        assert staged["clip2.mp4"] == b"clip-c"
        assert staged["concat.txt"] == b"file 'clip0.mp4'\nfile 'clip1.mp4'\nfile 'clip2.mp4'"
        assert engine.calls[0][:6] == ["-f", "concat", "-safe", "0", "-i", "concat.txt"]
        assert result.blob.mime_type == "video/mp4"
        assert result.blob.name == "merged_Trip.mp4"
        assert result.phases[-1] == Phase.done
        assert engine.list_files() == set()

    def test_reversed_order_changes_staged_bytes(self, session, engine):
        from clipshare.pipeline.merge import merge_clips
        refs = list(reversed(list(CLIPS)))
        merge_clips(refs, session=session, fetcher=_fetcher(CLIPS))
        staged = engine.contents_at_run[0]
        assert staged["clip0.mp4"] == b"clip-c"
        assert staged["clip2.mp4"] == b"clip-a"

    def test_single_clip(self, session, engine):
        from clipshare.pipeline.merge import merge_clips
        ref = "https://cdn.example.test/a.mp4"
        merge_clips([ref], session=session, fetcher=_fetcher(CLIPS))
        assert engine.contents_at_run[0]["concat.txt"] == b"file 'clip0.mp4'"

    def test_fetch_failure_aborts_and_cleans_up(self, session, engine):
        from clipshare.engine.errors import FetchFailed, OperationFailed
        from clipshare.pipeline.merge import merge_clips

        def fetch(ref):
            if ref.endswith("c.mp4"):
                raise FetchFailed(ref, "HTTP 404")
            return CLIPS[ref]

        with pytest.raises(OperationFailed) as exc:
            merge_clips(list(CLIPS), session=session, fetcher=fetch)
        assert str(exc.value).startswith("Failed to merge clips: Failed to download clip")
        assert "HTTP 404" in str(exc.value)
        assert exc.value.status_code == 502
        assert engine.calls == []
        assert engine.list_files() == set()

    def test_first_fetch_failure_reports_staging(self, session, engine):
        from clipshare.engine.errors import FetchFailed, OperationFailed
        from clipshare.pipeline.merge import merge_clips

        def fetch(ref):
            raise FetchFailed(ref, "HTTP 500")

        with pytest.raises(OperationFailed) as exc:
            merge_clips(list(CLIPS), session=session, fetcher=fetch)
        assert exc.value.phase == "staging"

    def test_remote_only_refuses_local_paths(self, session, engine, tmp_path):
        from clipshare.engine.errors import FetchFailed, OperationFailed
        from clipshare.pipeline.merge import merge_clips
        secret = tmp_path / "secret.txt"
        secret.write_bytes(b"TOP-SECRET")
        with pytest.raises(OperationFailed) as exc:
            merge_clips([str(secret)], session=session, remote_only=True)
        assert isinstance(exc.value.cause, FetchFailed)
        assert engine.calls == []
        assert engine.files_at_run == []

    def test_engine_failure_surfaced(self, session, engine):
        from clipshare.engine.errors import OperationFailed
        from clipshare.pipeline.merge import merge_clips
        engine.returncode = 1
        engine.stderr = "[concat @ 0x1] Impossible to open 'clip1.mp4'"
        with pytest.raises(OperationFailed, match="Impossible to open 'clip1.mp4'"):
            merge_clips(list(CLIPS), session=session, fetcher=_fetcher(CLIPS))
        assert engine.list_files() == set()

    def test_default_fetcher_reads_local_paths(self, session, engine, tmp_path):
        from clipshare.pipeline.merge import merge_clips
        paths = []
        for i, data in enumerate((b"one", b"two")):
            p = tmp_path / f"local{i}.mp4"
            p.write_bytes(data)
            paths.append(p)
        merge_clips(paths, session=session)
        staged = engine.contents_at_run[0]
        assert staged["clip0.mp4"] == b"one"
        assert staged["clip1.mp4"] == b"two"


class TestMergedFilename:
    @pytest.mark.parametrize("title,expected", [
        ("", "merged_video.mp4"),
        ("Summer Trip", "merged_Summer Trip.mp4"),
        ("a/b:c", "merged_a_b_c.mp4"),
    ])
    def test_names(self, title, expected):
        from clipshare.pipeline.merge import merged_filename
        assert merged_filename(title) == expected
