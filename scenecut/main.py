import typer
from pathlib import Path
from typing import Dict, List, Optional
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table
from pydantic import ValidationError

from scenecut.config.loader import load_config
from scenecut.domain.errors import ProbeError
from scenecut.domain.events import format_duration, format_timestamp
from scenecut.domain.models import JobPhase, ProcessOptions, VideoSource
from scenecut.infrastructure.broadcaster import StatusBroadcaster
from scenecut.infrastructure.ffmpeg import FFmpegAdapter
from scenecut.infrastructure.ffprobe import FFprobeAdapter
from scenecut.infrastructure.housekeeping import HousekeepingService
from scenecut.infrastructure.logging import setup_logging
from scenecut.infrastructure.scene_detector import FFmpegSceneDetector
from scenecut.infrastructure.storage import InMemoryClipStore, OutputLayout
from scenecut.pipeline.pipeline import ProcessingPipeline
from scenecut.pipeline.registry import JobRegistry
from scenecut.pipeline.service import ProcessingService

app = typer.Typer(help="SceneCut - split videos into per-scene clips with thumbnails")
console = Console()


@app.command()
def process(
    videos: List[Path] = typer.Argument(..., help="Video files to split into scenes"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    threshold: Optional[float] = typer.Option(None, "--threshold", "-t", help="Scene cut threshold in (0, 1]; higher finds fewer cuts"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for clips/ and thumbnails/"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Detect scenes in each video and extract one clip and thumbnail per scene."""
    try:
        config = load_config(config_path)
        if output_dir is not None: config.general.output_dir = str(output_dir)
        if log_path is not None: config.general.log_path = str(log_path)
        if debug: config.general.debug = True
        options = ProcessOptions(threshold=threshold)
    except (FileNotFoundError, ValidationError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    missing = [v for v in videos if not v.is_file()]
    if missing:
        typer.secho(f"Error: file not found: {', '.join(str(m) for m in missing)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    layout = OutputLayout(Path(config.general.output_dir))
    layout.ensure_dirs()
    logger = setup_logging(
        layout.output_dir,
        debug=config.general.debug,
        log_path=Path(config.general.log_path) if config.general.log_path else None,
    )
    logger.info(f"SceneCut started: videos={len(videos)}, threshold={options.threshold or config.general.threshold}, output={layout.output_dir}")
    HousekeepingService().cleanup_temp_files(layout.output_dir)

    timeout = config.encoding.timeout_s
    pipeline = ProcessingPipeline(
        probe=FFprobeAdapter(timeout_s=timeout),
        detector=FFmpegSceneDetector(timeout_s=timeout),
        extractor=FFmpegAdapter(config.encoding),
        layout=layout,
        config=config.general,
    )
    store = InMemoryClipStore()
    broadcaster = StatusBroadcaster()
    service = ProcessingService(pipeline, JobRegistry(), broadcaster, store)

    sources: Dict[str, VideoSource] = {}
    for i, path in enumerate(videos, start=1):
        source = VideoSource(
            video_id=str(i),
            path=path.resolve(),
            size_bytes=path.stat().st_size,
            original_filename=path.name,
        )
        sources[source.video_id] = source
        store.add_video(source)

    subscription = service.subscribe()
    try:
        with Progress(
            TextColumn("{task.fields[name]}", justify="left"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[stage]}"),
            console=console,
        ) as progress:
            tasks = {
                vid: progress.add_task("", total=100, name=src.display_name, stage="Queued")
                for vid, src in sources.items()
            }
            pending = set()
            for vid, src in sources.items():
                if service.start_processing(src, options).accepted:
                    pending.add(vid)
                else:
                    progress.update(tasks[vid], stage="[yellow]Already running[/yellow]")

            for event in subscription if pending else ():
                stage = escape(event.stage)
                if event.phase is JobPhase.FAILED:
                    stage = f"[red]{escape(event.error or '')}[/red]"
                elif event.phase is JobPhase.COMPLETED:
                    stage = "[green]Done[/green]"
                progress.update(tasks[event.video_id], completed=event.progress, stage=stage)
                if event.is_terminal:
                    pending.discard(event.video_id)
                if not pending:
                    break
    except KeyboardInterrupt:
        for vid in sources:
            service.cancel(vid)
        typer.secho("\nProcessing stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)
    finally:
        broadcaster.close()

    failed = 0
    for vid, src in sources.items():
        record = service.get_status(vid)
        if record.phase is not JobPhase.COMPLETED:
            failed += 1
            typer.secho(f"{src.display_name}: {record.error}", fg=typer.colors.RED, err=True)
            continue
        _print_clips(src, store.get_clips(vid))

    logger.info(f"SceneCut finished: completed={len(sources) - failed} failed={failed}")
    if failed:
        raise typer.Exit(code=1)


def _print_clips(source: VideoSource, stored) -> None:
    table = Table(title=f"{source.display_name}: {len(stored)} scenes")
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Duration", justify="right")
    table.add_column("Clip")
    table.add_column("Thumbnail")
    for item in stored:
        clip = item.clip
        table.add_row(
            str(clip.scene_index + 1),
            format_timestamp(clip.start_ms, clip.end_ms),
            f"{clip.duration_ms / 1000:.1f}s",
            str(clip.clip_path),
            str(clip.thumbnail_path),
        )
    console.print(table)


@app.command()
def probe(video: Path = typer.Argument(..., help="Video file to inspect")):
    """Print duration, format and resolution of a video."""
    try:
        metadata = FFprobeAdapter().probe(video)
    except ProbeError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    console.print(f"Duration:   {format_duration(metadata.duration_ms)} ({metadata.duration_ms} ms)")
    console.print(f"Format:     {metadata.format_label}")
    console.print(f"Resolution: {metadata.resolution}")


if __name__ == "__main__":
    app()
