"""Command-line interface with typer subcommands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Callable, Optional

import typer
from dotenv import load_dotenv
from rich.prompt import Confirm
from rich.table import Table

from clipshare.engine.errors import PipelineError
from clipshare.engine.session import TranscodeSession
from clipshare.pipeline.models import MediaBlob, OperationResult, Phase, TrimRange
from clipshare.utils.config import AppConfig, DEFAULT_CONFIG_YAML, load_config, merge_cli_overrides
from clipshare.utils.deps_check import check_all, print_dep_status
from clipshare.utils.logging import (
    setup_logging, Verbosity, console, info, success, warn, error,
)

load_dotenv()

app = typer.Typer(
    name="clipshare",
    help="Trim clips, add backgrounds and merge clips into one video with ffmpeg.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

ConfigOpt = Annotated[Optional[Path], typer.Option("--config", help="config.yaml path")]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v")]
TimeoutOpt = Annotated[Optional[float], typer.Option("--timeout", help="Seconds per ffmpeg command")]


# ── Helper functions ──────────────────────────────────────────────────────────

def _setup(config: Optional[Path], verbose: bool, timeout: Optional[float] = None) -> AppConfig:
    setup_logging(Verbosity.VERBOSE if verbose else Verbosity.NORMAL)
    cfg = load_config(config)
    return merge_cli_overrides(cfg, {"engine.command_timeout": timeout})


def _load_blob(path: Path) -> MediaBlob:
    if not path.is_file():
        error(f"Input not found: {path}")
        raise typer.Exit(1)
    return MediaBlob.from_path(path)


def _run(cfg: AppConfig, label: str, fn: Callable[..., OperationResult], *args, **kwargs) -> OperationResult:
    """Run one pipeline call with a status spinner; PipelineError exits with code 1."""
    session = TranscodeSession(config=cfg)
    with console.status(f"{label}...") as status:
        def on_phase(phase: Phase) -> None:
            status.update(f"{label}: {phase.value.replace('_', ' ')}")
        try:
            result = fn(*args, session=session, progress_cb=on_phase, **kwargs)
        except PipelineError as e:
            error(str(e))
            raise typer.Exit(1)
    for w in result.warnings:
        warn(w)
    return result


def _save(result: OperationResult, output: Path) -> None:
    result.blob.write_to(output)
    success(f"{output} ({result.blob.size / 1024:.0f} KB)")


def _source_duration(path: Path, cfg: AppConfig, duration: Optional[float]) -> float:
    if duration is not None:
        return duration
    from clipshare.pipeline.probe import probe_media
    probed = probe_media(path, cfg.engine.ffprobe_path).duration
    if probed <= 0:
        error(f"Could not determine the duration of {path.name}, pass --duration")
        raise typer.Exit(1)
    return probed


# ── TRIM ──────────────────────────────────────────────────────────────────────

@app.command()
def trim(
    input: Annotated[Path, typer.Option("--input", "-i", help="Audio or video file")],
    start: Annotated[float, typer.Option(help="Start (seconds)")] = 0.0,
    end: Annotated[Optional[float], typer.Option(help="End (seconds), default: end of file")] = None,
    duration: Annotated[Optional[float], typer.Option(help="Source duration, probed when omitted")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    config: ConfigOpt = None,
    timeout: TimeoutOpt = None,
    verbose: VerboseOpt = False,
):
    """Cut a clip to [start, end] without re-encoding."""
    cfg = _setup(config, verbose, timeout)
    from clipshare.pipeline.transforms import trim_clip

    source = _load_blob(input)
    total = _source_duration(input, cfg, duration)
    window = TrimRange(start, total if end is None else end, total)
    result = _run(cfg, "Trimming", trim_clip, source, window)
    _save(result, output or input.with_name(f"{input.stem}_trimmed{input.suffix}"))


# ── BACKGROUNDS ───────────────────────────────────────────────────────────────

@app.command("background-image")
def background_image(
    audio: Annotated[Path, typer.Option("--audio", "-a", help="Audio clip")],
    image: Annotated[Path, typer.Option("--image", help="Still image")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    config: ConfigOpt = None,
    timeout: TimeoutOpt = None,
    verbose: VerboseOpt = False,
):
    """Turn an audio clip into an mp4 showing a still image."""
    cfg = _setup(config, verbose, timeout)
    from clipshare.pipeline.transforms import composite_image_under_audio

    result = _run(cfg, "Rendering", composite_image_under_audio, _load_blob(audio), _load_blob(image))
    _save(result, output or audio.with_name(f"{audio.stem}_bg.mp4"))


@app.command("background-music")
def background_music(
    video: Annotated[Path, typer.Option("--video", help="Video clip")],
    audio: Annotated[Path, typer.Option("--audio", "-a", help="Background music")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    config: ConfigOpt = None,
    timeout: TimeoutOpt = None,
    verbose: VerboseOpt = False,
):
    """Mix background music under a video's own audio."""
    cfg = _setup(config, verbose, timeout)
    from clipshare.pipeline.transforms import overlay_audio_under_video

    result = _run(cfg, "Mixing", overlay_audio_under_video, _load_blob(video), _load_blob(audio))
    _save(result, output or video.with_name(f"{video.stem}_music.mp4"))


# ── EDIT ──────────────────────────────────────────────────────────────────────

@app.command()
def edit(
    input: Annotated[Path, typer.Option("--input", "-i", help="Audio or video file")],
    start: Annotated[Optional[float], typer.Option(help="Trim start (seconds)")] = None,
    end: Annotated[Optional[float], typer.Option(help="Trim end (seconds)")] = None,
    duration: Annotated[Optional[float], typer.Option(help="Source duration, probed when trimming")] = None,
    background: Annotated[Optional[Path], typer.Option("--background", "-b",
                                                       help="Image (audio clips) or music (video clips)")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    config: ConfigOpt = None,
    timeout: TimeoutOpt = None,
    verbose: VerboseOpt = False,
):
    """Editor flow: optional trim, then optional background."""
    cfg = _setup(config, verbose, timeout)
    from clipshare.pipeline.editor import edit_clip

    source = _load_blob(input)
    window = None
    if start is not None or end is not None:
        total = _source_duration(input, cfg, duration)
        window = TrimRange(start or 0.0, total if end is None else end, total)
    bg = _load_blob(background) if background else None
    if window is None and bg is None:
        warn("Nothing to do: pass --start/--end and/or --background")
        raise typer.Exit(0)

    result = _run(cfg, "Editing", edit_clip, source, window, bg)
    suffix = Path(result.blob.name).suffix or input.suffix
    _save(result, output or input.with_name(f"{input.stem}_edited{suffix}"))


# ── MERGE ─────────────────────────────────────────────────────────────────────

@app.command()
def merge(
    clips: Annotated[list[str], typer.Argument(help="Clip files or URLs, in playback order")],
    title: Annotated[str, typer.Option(help="Post title, used for the file name")] = "",
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    config: ConfigOpt = None,
    timeout: TimeoutOpt = None,
    verbose: VerboseOpt = False,
):
    """Concatenate clips into a single mp4."""
    cfg = _setup(config, verbose, timeout)
    from clipshare.pipeline.merge import merge_clips

    info(f"Merging {len(clips)} clip(s)")
    result = _run(cfg, "Merging", merge_clips, clips, title=title)
    _save(result, output or Path(result.blob.name))


# ── PUBLISH ───────────────────────────────────────────────────────────────────

@app.command()
def publish(
    input: Annotated[Path, typer.Option("--input", "-i", help="Processed clip")],
    config: ConfigOpt = None,
    verbose: VerboseOpt = False,
):
    """Copy a processed clip into storage and print its clip record."""
    cfg = _setup(config, verbose)
    from clipshare.pipeline.probe import probe_blob
    from clipshare.storage.uploader import LocalStorage, publish_clip

    storage = LocalStorage(cfg.storage.root, cfg.storage.public_base_url)
    record = publish_clip(
        _load_blob(input), storage,
        probe=lambda blob: probe_blob(blob, cfg.engine.ffprobe_path).duration,
    )
    console.print_json(data=record.to_dict())


# ── PROBE ─────────────────────────────────────────────────────────────────────

@app.command()
def probe(
    input: Annotated[Path, typer.Option("--input", "-i", help="Media file")],
    config: ConfigOpt = None,
):
    """Show duration, streams and resolution of a media file."""
    cfg = _setup(config, False)
    from clipshare.pipeline.probe import probe_media

    if not input.is_file():
        error(f"Input not found: {input}")
        raise typer.Exit(1)
    r = probe_media(input, cfg.engine.ffprobe_path)

    table = Table(title=input.name, show_header=False)
    table.add_row("Duration", f"{r.duration:.2f}s")
    table.add_row("Video", r.resolution if r.has_video else "—")
    table.add_row("Audio", "yes" if r.has_audio else "no")
    table.add_row("Codec", r.codec or "—")
    console.print(table)


# ── CHECK ─────────────────────────────────────────────────────────────────────

@app.command()
def check(
    config: ConfigOpt = None,
    load: Annotated[bool, typer.Option("--load", help="Also load the engine once")] = False,
):
    """Check that ffmpeg/ffprobe are installed and usable."""
    cfg = _setup(config, False)
    ok = print_dep_status(check_all(cfg.engine.ffmpeg_path, cfg.engine.ffprobe_path), strict=True)
    if load:
        try:
            handle = TranscodeSession(config=cfg).with_engine()
            success(f"Engine loaded: {handle.version}")
        except PipelineError as e:
            error(str(e))
            ok = False
    if not ok:
        raise typer.Exit(1)


# ── INIT CONFIG ───────────────────────────────────────────────────────────────

@app.command(name="init-config")
def init_config(
    force: Annotated[bool, typer.Option("--force", help="Overwrite without asking")] = False,
):
    """Generate a default config.yaml in the current directory."""
    setup_logging(Verbosity.NORMAL)
    p = Path("config.yaml")
    if p.exists() and not force:
        if not Confirm.ask("config.yaml exists. Overwrite?", default=False):
            raise typer.Exit(0)
    p.write_text(DEFAULT_CONFIG_YAML)
    success(f"Created {p}")


# ── ENTRY POINT ───────────────────────────────────────────────────────────────

def app_entry():
    app()


if __name__ == "__main__":
    app_entry()
