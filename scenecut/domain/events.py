"""Domain events for the scene extraction pipeline.

A run emits ``ProgressEvent`` snapshots at each milestone. The registry folds
them into the job record and the broadcaster relays them to subscribers.

See `infrastructure/broadcaster.py` for the pub/sub mechanism.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from .models import ClipDescriptor, JobPhase, JobRecord, MediaMetadata


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models and frozen once built.
    """

    model_config = ConfigDict(frozen=True)


class ProgressEvent(Event):
    """Snapshot of a run at one milestone."""

    video_id: str
    phase: JobPhase
    progress: int = Field(ge=0, le=100)
    stage: str = ""
    clips: Optional[List[ClipDescriptor]] = None
    metadata: Optional[MediaMetadata] = None
    error: Optional[str] = None
    # Wire-ready fields filled in by the service layer for terminal events.
    payload_extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    def to_payload(self) -> Dict[str, Any]:
        """Outbound push payload: ``{videoId, status, progress?, stage?, clips?, videoInfo?, error?}``."""
        payload: Dict[str, Any] = {
            "videoId": self.video_id,
            "status": self.phase.wire_status,
        }
        if self.phase is JobPhase.FAILED:
            payload["error"] = self.error or "Unknown error"
            return payload

        payload["progress"] = self.progress
        if self.stage:
            payload["stage"] = self.stage
        if self.clips is not None:
            payload["clips"] = [clip_payload(c) for c in self.clips]
        payload.update(self.payload_extra)
        return payload


def format_duration(ms: int) -> str:
    """Format milliseconds as MM:SS, or HH:MM:SS past one hour."""
    total_seconds = int(ms) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def format_timestamp(start_ms: int, end_ms: int) -> str:
    return f"{format_duration(start_ms)} - {format_duration(end_ms)}"


def clip_payload(
    clip: ClipDescriptor,
    url: Optional[str] = None,
    thumbnail_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Wire form of a clip. Locations default to the local file paths."""
    return {
        "sceneIndex": clip.scene_index,
        "startTime": clip.start_ms,
        "endTime": clip.end_ms,
        "duration": clip.duration_ms,
        "timestamp": format_timestamp(clip.start_ms, clip.end_ms),
        "url": url or str(clip.clip_path),
        "thumbnailUrl": thumbnail_url or str(clip.thumbnail_path),
    }


def record_payload(record: JobRecord) -> Dict[str, Any]:
    """Pull view of a job record in the same shape as the pushed events."""
    event = ProgressEvent(
        video_id=record.video_id,
        phase=record.phase,
        progress=record.progress,
        stage=record.stage,
        clips=list(record.clips) if record.clips else None,
        error=record.error,
        payload_extra=record.details,
    )
    return event.to_payload()
