import subprocess
import logging
import time
from pathlib import Path
from typing import List, Optional
from scenecut.config.models import EncodingConfig
from scenecut.domain.errors import ExtractionError


def _seconds(ms: int) -> str:
    return f"{ms / 1000:.3f}"


def temp_path_for(output_path: Path) -> Path:
    """Path ffmpeg writes to before the result is renamed into place."""
    return output_path.with_name(output_path.name + ".tmp")


class FFmpegAdapter:
    """Wrapper around ffmpeg for clip and thumbnail extraction.

    Output is written to ``<name>.tmp`` and renamed on success, so a failed
    call never leaves a file that looks like a finished clip.
    """

    def __init__(self, config: Optional[EncodingConfig] = None):
        self.config = config or EncodingConfig()
        self.logger = logging.getLogger(__name__)

    def _build_clip_command(self, source: Path, tmp_path: Path, start_ms: int, end_ms: int) -> List[str]:
        """Constructs the ffmpeg command line for one re-encoded clip."""
        return [
            "ffmpeg",
            "-y",  # Overwrite output files
            "-ss", _seconds(start_ms),
            "-i", str(source),
            "-t", _seconds(end_ms - start_ms),
            "-c:v", self.config.video_codec,
            "-c:a", self.config.audio_codec,
            "-preset", self.config.preset,
            "-crf", str(self.config.crf),
            # Force mp4 format since .tmp extension doesn't indicate format
            "-f", "mp4",
            str(tmp_path),
        ]

    def _build_thumbnail_command(self, source: Path, tmp_path: Path, at_ms: int) -> List[str]:
        return [
            "ffmpeg",
            "-y",
            "-ss", _seconds(at_ms),
            "-i", str(source),
            "-frames:v", "1",
            "-q:v", str(self.config.thumbnail_quality),
            "-f", "image2",
            str(tmp_path),
        ]

    def _run(self, cmd: List[str], output_path: Path, what: str) -> None:
        tmp_path = temp_path_for(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        start_time = time.monotonic()
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            res = subprocess.run(cmd, capture_output=True, text=True, timeout=self.config.timeout_s)
        except subprocess.TimeoutExpired:
            self._discard(tmp_path)
            raise ExtractionError(f"Failed to {what}: ffmpeg timed out for {output_path.name}")
        except OSError as e:
            self._discard(tmp_path)
            raise ExtractionError(f"Failed to {what}: {e}")

        if res.returncode != 0 or not tmp_path.exists():
            self._discard(tmp_path)
            raise ExtractionError(f"Failed to {what}: ffmpeg exited with code {res.returncode}")

        tmp_path.replace(output_path)
        elapsed = time.monotonic() - start_time
        self.logger.debug(f"FFMPEG_END: {output_path.name} elapsed={elapsed:.2f}s")

    def _discard(self, tmp_path: Path) -> None:
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError as e:
            self.logger.warning(f"Failed to remove temp file {tmp_path}: {e}")

    def extract_clip(self, source: Path, output_path: Path, start_ms: int, end_ms: int) -> None:
        """Materializes [start_ms, end_ms) of source as a standalone mp4."""
        if end_ms <= start_ms:
            raise ExtractionError(f"Invalid clip range {start_ms}-{end_ms}ms")
        cmd = self._build_clip_command(source, temp_path_for(output_path), start_ms, end_ms)
        self._run(cmd, output_path, "extract clip")

    def extract_thumbnail(self, source: Path, output_path: Path, at_ms: int) -> None:
        """Captures a single still frame at at_ms."""
        cmd = self._build_thumbnail_command(source, temp_path_for(output_path), at_ms)
        self._run(cmd, output_path, "generate thumbnail")
