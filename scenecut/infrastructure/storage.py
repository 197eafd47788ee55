"""Collaborators around the engine: output path layout and the clip store.

The engine asks ``OutputLayout`` where a video's clips and thumbnails go and
hands finished results to a ``ClipStore``. ``InMemoryClipStore`` is the
process-local keyed repository used by the CLI and tests.
"""

import itertools
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol
from pydantic import BaseModel, ConfigDict
from scenecut.domain.models import ClipDescriptor, MediaMetadata, VideoSource

logger = logging.getLogger(__name__)


class OutputLayout:
    """Resolves where a video's clips and thumbnails are written."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.clips_dir = self.output_dir / "clips"
        self.thumbnails_dir = self.output_dir / "thumbnails"

    def ensure_dirs(self) -> None:
        for d in (self.output_dir, self.clips_dir, self.thumbnails_dir):
            d.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _base_name(source: VideoSource, position: int) -> str:
        # position is the raw candidate position; file numbering is 1-based
        return f"{source.path.stem}_scene_{position + 1}"

    def clip_path(self, source: VideoSource, position: int) -> Path:
        return self.clips_dir / f"{self._base_name(source, position)}.mp4"

    def thumbnail_path(self, source: VideoSource, position: int) -> Path:
        return self.thumbnails_dir / f"{self._base_name(source, position)}.jpg"


class StoredClip(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    video_id: str
    clip: ClipDescriptor

    @property
    def url(self) -> str:
        return f"/api/clips/{self.id}/stream"

    @property
    def thumbnail_url(self) -> str:
        return f"/api/clips/{self.id}/thumbnail"


class StoredVideo(BaseModel):
    source: VideoSource
    processing_status: str = "pending"
    metadata: Optional[MediaMetadata] = None


class ClipStore(Protocol):
    def set_status(self, video_id: str, status: str) -> None: ...

    def save_results(self, source: VideoSource, metadata: MediaMetadata, clips: List[ClipDescriptor]) -> List[StoredClip]: ...


class InMemoryClipStore:
    """Thread-safe keyed repository for videos and their clips."""

    def __init__(self):
        self._lock = threading.Lock()
        self._videos: Dict[str, StoredVideo] = {}
        self._clips: Dict[int, StoredClip] = {}
        self._clip_ids = itertools.count(1)

    def add_video(self, source: VideoSource) -> StoredVideo:
        with self._lock:
            video = StoredVideo(source=source)
            self._videos[source.video_id] = video
            return video

    def get_video(self, video_id: str) -> Optional[StoredVideo]:
        with self._lock:
            return self._videos.get(video_id)

    def set_status(self, video_id: str, status: str) -> None:
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                raise KeyError(f"Video with ID {video_id} not found")
            video.processing_status = status

    def save_results(self, source: VideoSource, metadata: MediaMetadata, clips: List[ClipDescriptor]) -> List[StoredClip]:
        """Stores a finished run; clips from an earlier run of the same video are replaced."""
        with self._lock:
            video = self._videos.setdefault(source.video_id, StoredVideo(source=source))
            video.metadata = metadata
            video.processing_status = "completed"
            self._clips = {k: v for k, v in self._clips.items() if v.video_id != source.video_id}
            stored = []
            for clip in clips:
                item = StoredClip(id=next(self._clip_ids), video_id=source.video_id, clip=clip)
                self._clips[item.id] = item
                stored.append(item)
        logger.info(f"STORE: saved {len(stored)} clips for video {source.video_id}")
        return stored

    def get_clip(self, clip_id: int) -> Optional[StoredClip]:
        with self._lock:
            return self._clips.get(clip_id)

    def get_clips(self, video_id: str) -> List[StoredClip]:
        with self._lock:
            clips = [c for c in self._clips.values() if c.video_id == video_id]
        return sorted(clips, key=lambda c: c.clip.scene_index)
