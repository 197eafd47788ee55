import subprocess
import json
import logging
from pathlib import Path
from typing import Any, Optional
from scenecut.domain.errors import ProbeError
from scenecut.domain.models import MediaMetadata

class FFprobeAdapter:
    """Wrapper around ffprobe to extract duration, codec and resolution."""

    def __init__(self, timeout_s: Optional[float] = None):
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        if ":" in text:
            parts = text.split(":")
            if len(parts) in (2, 3):
                try:
                    parts_f = [float(p) for p in parts]
                except ValueError:
                    return 0.0
                if len(parts_f) == 2:
                    minutes, seconds = parts_f
                    return minutes * 60 + seconds
                hours, minutes, seconds = parts_f
                return hours * 3600 + minutes * 60 + seconds
        return 0.0

    def probe(self, file_path: Path) -> MediaMetadata:
        """Executes ffprobe and parses its JSON output into MediaMetadata."""
        cmd = [
            "ffprobe",
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired:
            raise ProbeError(f"Failed to get video info: ffprobe timed out for {file_path}")
        except OSError as e:
            raise ProbeError(f"Failed to get video info: {e}")

        if result.returncode != 0:
            raise ProbeError(f"Failed to get video info: ffprobe failed for {file_path}: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout)
        except (json.JSONDecodeError, TypeError):
            raise ProbeError("Failed to parse video information")

        video_stream = next((s for s in data.get("streams", []) if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ProbeError(f"No video stream found in {file_path}")

        # Duration fallback order: format.duration, format tags, stream.duration, stream tags
        fmt = data.get("format", {}) or {}
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = self._to_float(video_stream.get("duration"))
        if duration <= 0:
            tags = video_stream.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            raise ProbeError(f"Failed to parse video information: no duration for {file_path}")

        try:
            width = int(video_stream.get("width", 0))
            height = int(video_stream.get("height", 0))
        except (TypeError, ValueError):
            raise ProbeError("Failed to parse video information")

        metadata = MediaMetadata(
            duration_ms=int(duration * 1000),
            codec=video_stream.get("codec_name", "unknown"),
            width=width,
            height=height,
        )
        self.logger.debug(f"PROBE: {file_path.name} duration={metadata.duration_ms}ms codec={metadata.codec} {metadata.resolution}")
        return metadata
