"""Scene extraction pipeline: Probe → Detect → per-scene Extract.

One ``ProcessingPipeline.run`` call drives a single video from PROBING to a
terminal phase, reporting each milestone to an event sink:

- PROBING (5%): read duration, codec and resolution
- DETECTING (15%): find scene cuts with the configured threshold
- EXTRACTING (30% → 99%): one clip + thumbnail per retained scene; the last
  70 points are spread evenly over the candidate scenes
- COMPLETED (100%) with the metadata and ordered clips, or FAILED with the
  triggering error's message and no clips

Candidate scenes shorter than ``min_scene_ms`` are skipped and do not consume
a scene index, so indices of the retained clips are always 0..n-1.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence
from scenecut.config.models import GeneralConfig
from scenecut.domain.errors import DetectionError, ProcessingError, RunCancelled
from scenecut.domain.events import ProgressEvent
from scenecut.domain.models import (
    ClipDescriptor,
    JobPhase,
    MediaMetadata,
    ProcessingResult,
    ProcessOptions,
    SceneCandidate,
    VideoSource,
)
from scenecut.infrastructure.storage import OutputLayout

EventSink = Callable[[ProgressEvent], None]

PROBING_PROGRESS = 5
DETECTING_PROGRESS = 15
EXTRACTING_PROGRESS = 30
EXTRACTION_SPAN = 70


class MediaProbe(Protocol):
    def probe(self, file_path: Path) -> MediaMetadata: ...


class SceneDetector(Protocol):
    def detect(self, file_path: Path, threshold: float) -> List[int]: ...


class ClipExtractor(Protocol):
    def extract_clip(self, source: Path, output_path: Path, start_ms: int, end_ms: int) -> None: ...

    def extract_thumbnail(self, source: Path, output_path: Path, at_ms: int) -> None: ...


def plan_scenes(boundaries: Sequence[int], duration_ms: int, min_scene_ms: int = 500) -> List[SceneCandidate]:
    """Turns raw boundaries into candidate scenes, the last one closed by duration_ms.

    Time zero is always a boundary, whether or not the detector reported it.
    """
    points = sorted({int(b) for b in boundaries if b >= 0})
    if not points or points[0] != 0:
        points.insert(0, 0)

    ends = points[1:] + [duration_ms]
    return [
        SceneCandidate(position=i, start_ms=start, end_ms=end, keep=(end - start) >= min_scene_ms)
        for i, (start, end) in enumerate(zip(points, ends))
    ]


def extraction_progress(processed: int, total: int) -> int:
    """Progress after `processed` of `total` candidates; 100 is left for completion."""
    if total <= 0:
        return EXTRACTING_PROGRESS
    return min(99, EXTRACTING_PROGRESS + (EXTRACTION_SPAN * processed) // total)


def thumbnail_time(candidate: SceneCandidate, offset_ms: int = 1000) -> int:
    return candidate.start_ms + min(offset_ms, candidate.duration_ms // 2)


class ProcessingPipeline:
    """Runs the probe/detect/extract stages for one video at a time per call.

    The pipeline holds no per-run state, so one instance serves any number of
    concurrent runs (each on its own thread).
    """

    def __init__(
        self,
        probe: MediaProbe,
        detector: SceneDetector,
        extractor: ClipExtractor,
        layout: OutputLayout,
        config: Optional[GeneralConfig] = None,
    ):
        self.probe = probe
        self.detector = detector
        self.extractor = extractor
        self.layout = layout
        self.config = config or GeneralConfig()
        self.logger = logging.getLogger(__name__)

    def run(
        self,
        source: VideoSource,
        emit: EventSink,
        options: Optional[ProcessOptions] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[ProcessingResult]:
        """Processes source end to end. Returns the result, or None if the run failed.

        Never raises: every error becomes a FAILED event.
        """
        video_id = source.video_id
        threshold = options.threshold if options and options.threshold is not None else self.config.threshold
        progress = 0
        start_time = time.monotonic()

        def report(phase: JobPhase, value: int, stage: str, **extra) -> None:
            nonlocal progress
            progress = max(progress, value)
            emit(ProgressEvent(video_id=video_id, phase=phase, progress=progress, stage=stage, **extra))

        def check_cancelled() -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelled("Processing cancelled")

        self.logger.info(f"RUN_START: {source.display_name} (video {video_id}, threshold={threshold})")
        try:
            check_cancelled()
            report(JobPhase.PROBING, PROBING_PROGRESS, "Analyzing video...")
            metadata = self.probe.probe(source.path)
            self.logger.info(f"PROBE_OK: {video_id} duration={metadata.duration_ms}ms format={metadata.format_label} resolution={metadata.resolution}")

            check_cancelled()
            report(JobPhase.DETECTING, DETECTING_PROGRESS, "Detecting scenes...")
            boundaries = self.detector.detect(source.path, threshold)
            if not boundaries:
                raise DetectionError("No scenes detected in the video")
            candidates = plan_scenes(boundaries, metadata.duration_ms, self.config.min_scene_ms)
            self.logger.info(f"DETECT_OK: {video_id} boundaries={len(boundaries)} candidates={len(candidates)}")

            check_cancelled()
            report(JobPhase.EXTRACTING, EXTRACTING_PROGRESS, "Extracting clips...")
            clips = self._extract_all(source, candidates, report, check_cancelled)

            result = ProcessingResult(metadata=metadata, clips=clips)
            report(JobPhase.COMPLETED, 100, "Processing complete", clips=list(clips), metadata=metadata)
            elapsed = time.monotonic() - start_time
            self.logger.info(f"PIPELINE_END: {video_id} status=completed clips={len(clips)} elapsed={elapsed:.2f}s")
            return result

        except Exception as e:
            elapsed = time.monotonic() - start_time
            if isinstance(e, ProcessingError):
                self.logger.error(f"PIPELINE_END: {video_id} status=failed error={e} elapsed={elapsed:.2f}s")
            else:
                self.logger.exception(f"PIPELINE_END: {video_id} status=exception elapsed={elapsed:.2f}s")
            message = str(e) or type(e).__name__
            try:
                emit(ProgressEvent(video_id=video_id, phase=JobPhase.FAILED, progress=progress, stage="Processing failed", error=message))
            except Exception as emit_error:
                self.logger.error(f"Failed to report failure for video {video_id}: {emit_error}")
            return None

    def _extract_all(
        self,
        source: VideoSource,
        candidates: List[SceneCandidate],
        report: Callable[..., None],
        check_cancelled: Callable[[], None],
    ) -> List[ClipDescriptor]:
        clips: List[ClipDescriptor] = []
        total = len(candidates)

        for processed, candidate in enumerate(candidates, start=1):
            check_cancelled()
            if not candidate.keep:
                self.logger.info(
                    f"CLIP_SKIP: {source.video_id} scene {candidate.position + 1}/{total} "
                    f"({candidate.start_ms}-{candidate.end_ms}ms, {candidate.duration_ms}ms < {self.config.min_scene_ms}ms)"
                )
                stage = f"Skipping clip {processed} of {total} (too short)..."
            else:
                clip_path = self.layout.clip_path(source, candidate.position)
                thumbnail_path = self.layout.thumbnail_path(source, candidate.position)

                self.extractor.extract_clip(source.path, clip_path, candidate.start_ms, candidate.end_ms)
                self.extractor.extract_thumbnail(
                    source.path, thumbnail_path, thumbnail_time(candidate, self.config.thumbnail_offset_ms)
                )

                clips.append(ClipDescriptor(
                    scene_index=len(clips),
                    start_ms=candidate.start_ms,
                    end_ms=candidate.end_ms,
                    clip_path=clip_path,
                    thumbnail_path=thumbnail_path,
                ))
                self.logger.info(f"CLIP_OK: {source.video_id} #{len(clips) - 1} {candidate.start_ms}-{candidate.end_ms}ms -> {clip_path.name}")
                stage = f"Extracting clip {processed} of {total}..."

            report(JobPhase.EXTRACTING, extraction_progress(processed, total), stage, clips=list(clips))

        return clips
