"""Processing service: the inbound boundary of the engine.

Wires one ``ProcessingPipeline`` to a ``JobRegistry``, a ``StatusBroadcaster``
and an optional clip store. For every event a run emits, the service

1. on completion, saves the clips to the store and attaches the stored
   retrieval locations and ``videoInfo`` (a store failure fails the run),
2. folds the event into the registry's job record,
3. publishes it to the video's subscribers.

Steps 2 and 3 happen in that order, under the video's event lock, so an
observer that sees a terminal event can immediately start a new run for the
same video and still receive the new run's events after the old one's.
"""

import logging
from typing import Any, Dict, List, Optional
from scenecut.domain.errors import PersistenceError
from scenecut.domain.events import ProgressEvent, clip_payload, format_duration, record_payload
from scenecut.domain.models import ClipDescriptor, JobPhase, JobRecord, MediaMetadata, ProcessOptions, VideoSource
from scenecut.infrastructure.broadcaster import StatusBroadcaster, Subscription
from scenecut.infrastructure.storage import ClipStore, StoredClip
from scenecut.pipeline.pipeline import ProcessingPipeline
from scenecut.pipeline.registry import JobRegistry, RunContext, StartResult

SAVE_FAILED_MESSAGE = "Failed to save clip data"


def build_video_info(source: VideoSource, metadata: MediaMetadata, scene_count: int, status: str) -> Dict[str, Any]:
    return {
        "id": source.video_id,
        "filename": source.path.name,
        "originalFilename": source.original_filename or source.path.name,
        "fileSize": source.size_bytes,
        "duration": format_duration(metadata.duration_ms),
        "format": metadata.format_label,
        "resolution": metadata.resolution,
        "processingStatus": status,
        "sceneCount": scene_count,
    }


class ProcessingService:
    """Starts runs, answers status queries and relays run events to observers."""

    def __init__(
        self,
        pipeline: ProcessingPipeline,
        registry: Optional[JobRegistry] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        store: Optional[ClipStore] = None,
    ):
        self.pipeline = pipeline
        self.registry = registry or JobRegistry()
        self.broadcaster = broadcaster or StatusBroadcaster()
        self.store = store
        self.logger = logging.getLogger(__name__)

    def start_processing(self, source: VideoSource, options: Optional[ProcessOptions] = None) -> StartResult:
        """Registers a run for source and starts it in the background.

        Returns REJECTED if a run for the same video is still active.
        """
        def runner(ctx: RunContext) -> None:
            self._handle_event(source, ctx, ProgressEvent(
                video_id=source.video_id, phase=JobPhase.PENDING, progress=0, stage="Queued for processing",
            ))
            self.pipeline.run(
                source,
                lambda event: self._handle_event(source, ctx, event),
                options=options,
                cancel_event=ctx.cancel_event,
            )

        return self.registry.start(source.video_id, runner)

    def get_status(self, video_id: str) -> JobRecord:
        """Current job record snapshot. Raises JobNotFoundError."""
        return self.registry.get(video_id)

    def status_payload(self, video_id: str) -> Dict[str, Any]:
        """Current status in the same shape as the pushed events."""
        return record_payload(self.registry.get(video_id))

    def subscribe(self, video_id: Optional[str] = None) -> Subscription:
        return self.broadcaster.subscribe(video_id)

    def unsubscribe(self, sub: Subscription) -> None:
        self.broadcaster.unsubscribe(sub)

    def cancel(self, video_id: str) -> bool:
        return self.registry.cancel(video_id)

    def wait(self, video_id: str, timeout: Optional[float] = None) -> JobRecord:
        return self.registry.wait(video_id, timeout)

    def _handle_event(self, source: VideoSource, ctx: RunContext, event: ProgressEvent) -> None:
        with ctx.event_lock:
            details: Dict[str, Any] = {}
            if event.phase is JobPhase.COMPLETED:
                event, details = self._finish(source, ctx, event)
            else:
                self._update_store_status(source.video_id, event.phase)

            ctx.apply(event, details)
            self.broadcaster.publish(source.video_id, event)

        if event.phase is JobPhase.COMPLETED:
            self.logger.info(f"RUN_END: {source.video_id} status=completed clips={len(event.clips or [])}")
        elif event.phase is JobPhase.FAILED:
            self.logger.info(f"RUN_END: {source.video_id} status=failed error={event.error}")

    def _finish(self, source: VideoSource, ctx: RunContext, event: ProgressEvent):
        clips = list(event.clips or [])
        metadata = event.metadata
        stored: Optional[List[StoredClip]] = None

        if self.store is not None and metadata is not None:
            try:
                stored = self._save(source, metadata, clips)
            except PersistenceError as e:
                self._update_store_status(source.video_id, JobPhase.FAILED)
                # Keeps the progress extraction reached; 100 is reserved for completion
                failed = ProgressEvent(
                    video_id=source.video_id,
                    phase=JobPhase.FAILED,
                    progress=ctx.record.progress,
                    stage="Processing failed",
                    error=str(e),
                )
                return failed, {}

        details: Dict[str, Any] = {}
        if stored is not None:
            details["clips"] = [self._stored_clip_payload(s) for s in stored]
        if metadata is not None:
            details["videoInfo"] = build_video_info(source, metadata, len(clips), "completed")

        completed = event.model_copy(update={"payload_extra": details})
        return completed, details

    def _save(self, source: VideoSource, metadata: MediaMetadata, clips: List[ClipDescriptor]) -> List[StoredClip]:
        try:
            return self.store.save_results(source, metadata, clips)
        except Exception as e:
            self.logger.error(f"Error saving clips for video {source.video_id}: {e}")
            raise PersistenceError(SAVE_FAILED_MESSAGE) from e

    @staticmethod
    def _stored_clip_payload(stored: StoredClip) -> Dict[str, Any]:
        payload = clip_payload(stored.clip, stored.url, stored.thumbnail_url)
        payload["id"] = stored.id
        payload["videoId"] = stored.video_id
        return payload

    def _update_store_status(self, video_id: str, phase: JobPhase) -> None:
        # The store tracks the coarse status only; it changes at run start and at failure
        if self.store is None or phase not in (JobPhase.PROBING, JobPhase.FAILED):
            return
        try:
            self.store.set_status(video_id, phase.wire_status)
        except Exception as e:
            self.logger.warning(f"Could not update stored status for video {video_id}: {e}")
