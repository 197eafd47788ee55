from typing import Optional
from pydantic import BaseModel, Field, field_validator

DEFAULT_THRESHOLD = 0.4


class GeneralConfig(BaseModel):
    threshold: float = Field(default=DEFAULT_THRESHOLD)
    min_scene_ms: int = Field(default=500, ge=0)
    thumbnail_offset_ms: int = Field(default=1000, ge=0)
    output_dir: str = "uploads"
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not (0.0 < v <= 1.0):
            raise ValueError(f"Invalid scene threshold {v}. Must be in (0, 1].")
        return v


class EncodingConfig(BaseModel):
    """ffmpeg settings for clip and thumbnail extraction."""
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    preset: str = "fast"
    crf: int = Field(default=22, ge=0, le=51)
    thumbnail_quality: int = Field(default=2, ge=1, le=31)
    timeout_s: Optional[float] = Field(default=None, gt=0)


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
