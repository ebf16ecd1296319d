"""CLI tests via typer's CliRunner, with the fake engine behind every session."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch, loader):
    """Run in tmp_path; every TranscodeSession the CLI builds uses the fake loader."""
    from clipshare.engine.session import TranscodeSession
    monkeypatch.chdir(tmp_path)
    with patch("clipshare.cli.TranscodeSession",
               side_effect=lambda config=None: TranscodeSession(loader, config=config)):
        yield tmp_path


def _write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


class TestTrimCommand:
    def test_trim_writes_output(self, cli_env, engine):
        from clipshare.cli import app
        src = _write(cli_env / "holiday.mp4", b"video")
        result = runner.invoke(app, ["trim", "-i", str(src), "--start", "1", "--end", "3", "--duration", "10"])
        assert result.exit_code == 0, result.output
        out = cli_env / "holiday_trimmed.mp4"
        assert out.read_bytes() == b"FAKE-OUTPUT"
        assert engine.calls[0][-1] == "output.mp4"

    def test_timeout_option_reaches_engine(self, cli_env, engine):
        from clipshare.cli import app
        src = _write(cli_env / "holiday.mp4", b"video")
        result = runner.invoke(app, ["trim", "-i", str(src), "--end", "3", "--duration", "10",
                                     "--timeout", "9"])
        assert result.exit_code == 0, result.output
        assert engine.timeouts == [9.0]

    def test_invalid_range_exits_1(self, cli_env, engine):
        from clipshare.cli import app
        src = _write(cli_env / "holiday.mp4", b"video")
        result = runner.invoke(app, ["trim", "-i", str(src), "--start", "5", "--end", "2", "--duration", "10"])
        assert result.exit_code == 1
        assert "after end" in result.output
        assert engine.calls == []
        assert not (cli_env / "holiday_trimmed.mp4").exists()

    def test_missing_input_exits_1(self, cli_env):
        from clipshare.cli import app
        result = runner.invoke(app, ["trim", "-i", "nope.mp4", "--end", "1", "--duration", "2"])
        assert result.exit_code == 1

    def test_duration_probed_when_omitted(self, cli_env, engine):
        from clipshare.cli import app
        from clipshare.pipeline.probe import ProbeResult
        src = _write(cli_env / "voice.mp3", b"audio")
        with patch("clipshare.pipeline.probe.probe_media", return_value=ProbeResult(duration=8.0)):
            result = runner.invoke(app, ["trim", "-i", str(src), "--start", "2"])
        assert result.exit_code == 0, result.output
        assert engine.calls[0][engine.calls[0].index("-to") + 1] == "8"


class TestBackgroundCommands:
    def test_background_image(self, cli_env, engine):
        from clipshare.cli import app
        audio = _write(cli_env / "voice.mp3", b"audio")
        image = _write(cli_env / "cover.png", b"png")
        result = runner.invoke(app, ["background-image", "--audio", str(audio), "--image", str(image)])
        assert result.exit_code == 0, result.output
        assert (cli_env / "voice_bg.mp4").exists()

    def test_background_music_failure_exits_1(self, cli_env, engine):
        from clipshare.cli import app
        video = _write(cli_env / "holiday.mp4", b"video")
        audio = _write(cli_env / "song.mp3", b"audio")
        engine.returncode = 1
        engine.stderr = "video.mp4: Invalid data found when processing input"
        result = runner.invoke(app, ["background-music", "--video", str(video), "--audio", str(audio)])
        assert result.exit_code == 1
        assert "Failed to add background music" in result.output
        assert engine.list_files() == set()


class TestEditAndMerge:
    def test_edit_nothing_to_do(self, cli_env, engine):
        from clipshare.cli import app
        src = _write(cli_env / "holiday.mp4", b"video")
        result = runner.invoke(app, ["edit", "-i", str(src)])
        assert result.exit_code == 0
        assert engine.calls == []

    def test_edit_with_background(self, cli_env, engine):
        from clipshare.cli import app
        src = _write(cli_env / "voice.mp3", b"audio")
        image = _write(cli_env / "cover.png", b"png")
        result = runner.invoke(app, ["edit", "-i", str(src), "-b", str(image)])
        assert result.exit_code == 0, result.output
        assert (cli_env / "voice_edited.mp4").read_bytes() == b"FAKE-OUTPUT"

    def test_merge(self, cli_env, engine):
        from clipshare.cli import app
        a = _write(cli_env / "a.mp4", b"A")
        b = _write(cli_env / "b.mp4", b"B")
        result = runner.invoke(app, ["merge", str(b), str(a), "--title", "Trip"])
        assert result.exit_code == 0, result.output
        assert (cli_env / "merged_Trip.mp4").exists()
        staged = engine.contents_at_run[0]
        assert staged["clip0.mp4"] == b"B"
        assert staged["clip1.mp4"] == b"A"


class TestUtilityCommands:
    def test_init_config(self, cli_env):
        from clipshare.cli import app
        from clipshare.utils.config import DEFAULT_CONFIG_YAML
        result = runner.invoke(app, ["init-config"])
        assert result.exit_code == 0
        assert (cli_env / "config.yaml").read_text() == DEFAULT_CONFIG_YAML

    def test_init_config_force_overwrites(self, cli_env):
        from clipshare.cli import app
        (cli_env / "config.yaml").write_text("old: true\n")
        result = runner.invoke(app, ["init-config", "--force"])
        assert result.exit_code == 0
        assert "engine:" in (cli_env / "config.yaml").read_text()

    def test_init_config_declined(self, cli_env):
        from clipshare.cli import app
        (cli_env / "config.yaml").write_text("old: true\n")
        result = runner.invoke(app, ["init-config"], input="n\n")
        assert result.exit_code == 0
        assert (cli_env / "config.yaml").read_text() == "old: true\n"

    def test_check_fails_without_ffmpeg(self, cli_env):
        from clipshare.cli import app
        from clipshare.utils.deps_check import DepStatus
        missing = [DepStatus("ffmpeg", False, hint="install it"), DepStatus("ffprobe", True)]
        with patch("clipshare.cli.check_all", return_value=missing):
            result = runner.invoke(app, ["check"])
        assert result.exit_code == 1

    def test_check_load(self, cli_env, loader):
        from clipshare.cli import app
        from clipshare.utils.deps_check import DepStatus
        ok = [DepStatus("ffmpeg", True, version="ffmpeg version 6.1"), DepStatus("ffprobe", True)]
        with patch("clipshare.cli.check_all", return_value=ok):
            result = runner.invoke(app, ["check", "--load"])
        assert result.exit_code == 0, result.output
        assert loader.load_count == 1

    def test_publish(self, cli_env):
        from clipshare.cli import app
        src = _write(cli_env / "holiday.mp4", b"video")
        with patch("clipshare.pipeline.probe.probe_blob") as probe:
            probe.return_value.duration = 3.5
            result = runner.invoke(app, ["publish", "-i", str(src)])
        assert result.exit_code == 0, result.output
        assert '"duration": 3.5' in result.output
        assert list((cli_env / "data" / "storage" / "media").iterdir())
