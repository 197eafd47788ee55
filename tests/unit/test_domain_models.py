import pytest
from pathlib import Path
from pydantic import ValidationError
from scenecut.domain.errors import DetectionError, JobNotFoundError, ProcessingError, RunCancelled
from scenecut.domain.events import ProgressEvent, clip_payload, format_duration, format_timestamp, record_payload
from scenecut.domain.models import (
    ClipDescriptor,
    JobPhase,
    JobRecord,
    MediaMetadata,
    ProcessOptions,
    VideoSource,
)


def make_clip(index=0, start=0, end=2000):
    return ClipDescriptor(
        scene_index=index,
        start_ms=start,
        end_ms=end,
        clip_path=Path(f"/out/clips/v_scene_{index + 1}.mp4"),
        thumbnail_path=Path(f"/out/thumbnails/v_scene_{index + 1}.jpg"),
    )


def test_job_phase_terminal():
    assert JobPhase.COMPLETED.is_terminal
    assert JobPhase.FAILED.is_terminal
    assert not JobPhase.EXTRACTING.is_terminal
    assert not JobPhase.PENDING.is_terminal


@pytest.mark.parametrize("phase,status", [
    (JobPhase.PENDING, "pending"),
    (JobPhase.PROBING, "processing"),
    (JobPhase.DETECTING, "processing"),
    (JobPhase.EXTRACTING, "processing"),
    (JobPhase.COMPLETED, "completed"),
    (JobPhase.FAILED, "error"),
])
def test_wire_status(phase, status):
    assert phase.wire_status == status


def test_clip_descriptor_requires_positive_range():
    with pytest.raises(ValidationError):
        make_clip(start=5000, end=5000)
    assert make_clip(start=2300, end=7000).duration_ms == 4700


def test_models_are_immutable():
    record = JobRecord(video_id="1")
    with pytest.raises(ValidationError):
        record.progress = 50


def test_media_metadata_labels():
    metadata = MediaMetadata(duration_ms=10000, codec="h264", width=1280, height=720)
    assert metadata.format_label == "H264"
    assert metadata.resolution == "1280 × 720"


def test_video_source_display_name():
    assert VideoSource(video_id="1", path=Path("/u/abc.mp4"), original_filename="beach.mp4").display_name == "beach.mp4"
    assert VideoSource(video_id="1", path=Path("/u/abc.mp4")).display_name == "abc.mp4"


def test_process_options_threshold_validation():
    assert ProcessOptions().threshold is None
    assert ProcessOptions(threshold=0.7).threshold == 0.7
    with pytest.raises(ValidationError):
        ProcessOptions(threshold=0)


def test_progress_bounds():
    with pytest.raises(ValidationError):
        ProgressEvent(video_id="1", phase=JobPhase.EXTRACTING, progress=101)


@pytest.mark.parametrize("ms,expected", [
    (0, "00:00"),
    (2300, "00:02"),
    (65_000, "01:05"),
    (3_600_000, "01:00:00"),
    (3_725_999, "01:02:05"),
])
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


def test_format_timestamp():
    assert format_timestamp(2300, 7000) == "00:02 - 00:07"


def test_clip_payload_defaults_to_file_paths():
    payload = clip_payload(make_clip())
    assert payload == {
        "sceneIndex": 0,
        "startTime": 0,
        "endTime": 2000,
        "duration": 2000,
        "timestamp": "00:00 - 00:02",
        "url": str(Path("/out/clips/v_scene_1.mp4")),
        "thumbnailUrl": str(Path("/out/thumbnails/v_scene_1.jpg")),
    }


def test_processing_payload():
    event = ProgressEvent(
        video_id="1",
        phase=JobPhase.EXTRACTING,
        progress=47,
        stage="Extracting clip 1 of 4...",
        clips=[make_clip()],
    )
    payload = event.to_payload()
    assert payload["videoId"] == "1"
    assert payload["status"] == "processing"
    assert payload["progress"] == 47
    assert payload["stage"] == "Extracting clip 1 of 4..."
    assert len(payload["clips"]) == 1
    assert "error" not in payload


def test_failed_payload_has_error_only():
    event = ProgressEvent(video_id="1", phase=JobPhase.FAILED, progress=30, stage="Processing failed",
                          clips=[make_clip()], error="Failed to extract clip")
    assert event.to_payload() == {"videoId": "1", "status": "error", "error": "Failed to extract clip"}


def test_payload_extra_overrides_clips():
    event = ProgressEvent(
        video_id="1",
        phase=JobPhase.COMPLETED,
        progress=100,
        clips=[make_clip()],
        payload_extra={"clips": [{"id": 9}], "videoInfo": {"id": "1"}},
    )
    payload = event.to_payload()
    assert payload["clips"] == [{"id": 9}]
    assert payload["videoInfo"] == {"id": "1"}


def test_record_payload_of_pending_record():
    payload = record_payload(JobRecord(video_id="5"))
    assert payload == {"videoId": "5", "status": "pending", "progress": 0}


def test_job_not_found_error():
    err = JobNotFoundError("42")
    assert isinstance(err, KeyError)
    assert err.video_id == "42"
    assert str(err) == "No job found for video 42"


def test_stage_errors_share_base():
    assert issubclass(DetectionError, ProcessingError)
    assert issubclass(RunCancelled, ProcessingError)
