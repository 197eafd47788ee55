import pytest
import threading
import yaml
from pathlib import Path
from typing import List, Optional
from scenecut.config.models import AppConfig, GeneralConfig
from scenecut.domain.errors import DetectionError, ExtractionError, ProbeError
from scenecut.domain.models import MediaMetadata, VideoSource
from scenecut.infrastructure.broadcaster import StatusBroadcaster
from scenecut.infrastructure.storage import InMemoryClipStore, OutputLayout
from scenecut.pipeline.pipeline import ProcessingPipeline
from scenecut.pipeline.registry import JobRegistry
from scenecut.pipeline.service import ProcessingService

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "threshold": 0.4,
            "min_scene_ms": 500,
            "thumbnail_offset_ms": 1000,
            "output_dir": "uploads",
            "debug": False,
        },
        encoding={
            "video_codec": "libx264",
            "audio_codec": "aac",
            "preset": "fast",
            "crf": 22,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "scenecut.yaml"

    content = {
        'general': {
            'threshold': 0.3,
            'min_scene_ms': 750,
            'output_dir': str(tmp_path / "out"),
            'debug': True,
        },
        'encoding': {
            'crf': 28,
            'preset': 'veryfast',
        }
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# Fake media primitives
# ============================================================================

class FakeProbe:
    def __init__(self, duration_ms: int = 10000, error: Optional[Exception] = None):
        self.duration_ms = duration_ms
        self.error = error
        self.calls: List[Path] = []

    def probe(self, file_path: Path) -> MediaMetadata:
        self.calls.append(file_path)
        if self.error:
            raise self.error
        return MediaMetadata(duration_ms=self.duration_ms, codec="h264", width=1920, height=1080)


class FakeDetector:
    def __init__(self, boundaries=None, error: Optional[Exception] = None):
        self.boundaries = list(boundaries or [])
        self.error = error
        self.calls = []

    def detect(self, file_path: Path, threshold: float) -> List[int]:
        self.calls.append((file_path, threshold))
        if self.error:
            raise self.error
        if not self.boundaries:
            raise DetectionError("No scenes detected in the video")
        return list(self.boundaries)


class FakeExtractor:
    """Writes small placeholder files; can fail on the Nth clip or block on a gate."""

    def __init__(self, fail_on_clip: Optional[int] = None, gate: Optional[threading.Event] = None):
        self.fail_on_clip = fail_on_clip
        self.gate = gate
        self.clip_calls = []
        self.thumbnail_calls = []
        self.entered = threading.Event()

    def extract_clip(self, source: Path, output_path: Path, start_ms: int, end_ms: int) -> None:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        self.clip_calls.append((source, output_path, start_ms, end_ms))
        if self.fail_on_clip is not None and len(self.clip_calls) == self.fail_on_clip:
            raise ExtractionError("Failed to extract clip: ffmpeg exited with code 1")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"clip")

    def extract_thumbnail(self, source: Path, output_path: Path, at_ms: int) -> None:
        self.thumbnail_calls.append((source, output_path, at_ms))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"jpg")


@pytest.fixture
def fake_probe():
    return FakeProbe()

@pytest.fixture
def fake_detector():
    return FakeDetector(boundaries=[0, 2000, 2300, 7000])

@pytest.fixture
def fake_extractor():
    return FakeExtractor()

@pytest.fixture
def layout(tmp_path):
    output = OutputLayout(tmp_path / "uploads")
    output.ensure_dirs()
    return output

@pytest.fixture
def video_source(tmp_path):
    path = tmp_path / "3f2a9c.mp4"
    path.write_bytes(b"dummy video content " * 100)
    return VideoSource(video_id="1", path=path, size_bytes=2000, original_filename="holiday.mp4")

@pytest.fixture
def pipeline(fake_probe, fake_detector, fake_extractor, layout):
    return ProcessingPipeline(fake_probe, fake_detector, fake_extractor, layout, GeneralConfig())

@pytest.fixture
def broadcaster():
    """Returns a fresh StatusBroadcaster instance."""
    return StatusBroadcaster()

@pytest.fixture
def clip_store():
    return InMemoryClipStore()

@pytest.fixture
def service(pipeline, broadcaster, clip_store):
    return ProcessingService(pipeline, JobRegistry(), broadcaster, clip_store)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
