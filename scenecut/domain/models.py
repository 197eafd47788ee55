from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class JobPhase(str, Enum):
    PENDING = "PENDING"
    PROBING = "PROBING"
    DETECTING = "DETECTING"
    EXTRACTING = "EXTRACTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobPhase.COMPLETED, JobPhase.FAILED)

    @property
    def wire_status(self) -> str:
        """Status string used in outbound event payloads."""
        if self is JobPhase.PENDING:
            return "pending"
        if self is JobPhase.COMPLETED:
            return "completed"
        if self is JobPhase.FAILED:
            return "error"
        return "processing"


# Position of each phase in the run; used to check that phases never go backwards.
PHASE_ORDER = {
    JobPhase.PENDING: 0,
    JobPhase.PROBING: 1,
    JobPhase.DETECTING: 2,
    JobPhase.EXTRACTING: 3,
    JobPhase.COMPLETED: 4,
    JobPhase.FAILED: 4,
}


class VideoSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    video_id: str
    path: Path
    size_bytes: int = Field(default=0, ge=0)
    original_filename: str = ""

    @property
    def display_name(self) -> str:
        return self.original_filename or self.path.name


class MediaMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_ms: int = Field(ge=0)
    codec: str
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    @property
    def format_label(self) -> str:
        return self.codec.upper()

    @property
    def resolution(self) -> str:
        return f"{self.width} × {self.height}"


class ClipDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    scene_index: int = Field(ge=0)
    start_ms: int = Field(ge=0)
    end_ms: int
    clip_path: Path
    thumbnail_path: Path

    @model_validator(mode="after")
    def validate_range(self):
        if self.end_ms <= self.start_ms:
            raise ValueError("end_ms must be greater than start_ms")
        return self

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


class SceneCandidate(BaseModel):
    """Time range between two consecutive boundaries, before filtering."""

    model_config = ConfigDict(frozen=True)

    position: int  # 0-based position among raw candidates
    start_ms: int
    end_ms: int
    keep: bool

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


class ProcessingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata: MediaMetadata
    clips: List[ClipDescriptor] = Field(default_factory=list)


class ProcessOptions(BaseModel):
    threshold: Optional[float] = None

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not (0.0 < v <= 1.0):
            raise ValueError(f"threshold must be in (0, 1], got {v}")
        return v


class JobRecord(BaseModel):
    """Snapshot of a run. Replaced as a whole on every update, never mutated."""

    model_config = ConfigDict(frozen=True)

    video_id: str
    phase: JobPhase = JobPhase.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    stage: str = ""
    clips: List[ClipDescriptor] = Field(default_factory=list)
    error: Optional[str] = None
    result: Optional[ProcessingResult] = None
    # Wire fields attached by the service to the terminal event (videoInfo, stored clip urls)
    details: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal
