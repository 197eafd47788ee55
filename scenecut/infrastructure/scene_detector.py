import re
import subprocess
import logging
from pathlib import Path
from typing import List, Optional
from scenecut.config.models import DEFAULT_THRESHOLD
from scenecut.domain.errors import DetectionError

# showinfo prints one line per frame that passed the select filter
PTS_TIME_REGEX = re.compile(r"pts_time:\s*([\d.]+)")


class FFmpegSceneDetector:
    """Threshold-based scene cut detection using ffmpeg's ``scene`` score.

    ffmpeg decodes the source once, scores the visual change between each
    frame and its predecessor, and the ``select`` filter keeps the frames whose
    score exceeds the threshold. ``showinfo`` then reports their timestamps.
    """

    def __init__(self, timeout_s: Optional[float] = None):
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(__name__)

    def _build_command(self, file_path: Path, threshold: float) -> List[str]:
        return [
            "ffmpeg",
            "-hide_banner",
            "-i", str(file_path),
            "-vf", f"select='gt(scene,{threshold})',showinfo",
            "-an",
            "-f", "null",
            "-",
        ]

    @staticmethod
    def parse_boundaries(output: str) -> List[int]:
        """Extracts cut timestamps (ms) from showinfo output, sorted and de-duplicated."""
        boundaries = set()
        for line in output.splitlines():
            if "pts_time:" not in line:
                continue
            match = PTS_TIME_REGEX.search(line)
            if match:
                try:
                    boundaries.add(int(float(match.group(1)) * 1000))
                except ValueError:
                    continue
        return sorted(boundaries)

    def detect(self, file_path: Path, threshold: float = DEFAULT_THRESHOLD) -> List[int]:
        """Returns strictly increasing scene boundaries in milliseconds.

        Raises DetectionError when ffmpeg fails or no cut is found.
        """
        if not (0.0 < threshold <= 1.0):
            raise DetectionError(f"Invalid scene threshold {threshold}")

        cmd = self._build_command(file_path, threshold)
        self.logger.debug(f"DETECT_CMD: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired:
            raise DetectionError(f"Failed to detect scenes: ffmpeg timed out for {file_path}")
        except OSError as e:
            raise DetectionError(f"Failed to detect scenes: {e}")

        if result.returncode != 0:
            raise DetectionError(f"Failed to detect scenes: ffmpeg exited with code {result.returncode}")

        # ffmpeg writes filter output to stderr
        boundaries = self.parse_boundaries(result.stderr or "")
        if not boundaries:
            raise DetectionError("No scenes detected in the video")
        return boundaries
