"""Single-flight job registry.

Tracks the latest run per video identity. A start request is rejected while
the identity's previous run is still non-terminal; once it is terminal a new
start replaces the record entirely.

Locking: ``_lock`` guards only the identity → entry map and is never held
while a run does work. Each entry's record is an immutable snapshot swapped
under that entry's own lock, so readers always see a consistent record.
A separate event lock per identity is handed from one run to the next, so a
new run cannot relay events while the previous run's last event is in flight.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional
from scenecut.domain.errors import JobNotFoundError
from scenecut.domain.events import ProgressEvent
from scenecut.domain.models import PHASE_ORDER, JobPhase, JobRecord, ProcessingResult


class StartResult(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"  # a run for this identity is already active

    @property
    def accepted(self) -> bool:
        return self is StartResult.ACCEPTED


class _JobEntry:
    def __init__(self, video_id: str, event_lock: Optional[threading.Lock] = None):
        self.record = JobRecord(video_id=video_id)
        self.lock = threading.Lock()
        # Shared by every run of one video; serializes event hand-off across restarts
        self.event_lock = event_lock or threading.Lock()
        self.cancel_event = threading.Event()
        self.done = threading.Event()
        self.thread: Optional[threading.Thread] = None


class RunContext:
    """Handle given to a runner: the only way to write its job record."""

    def __init__(self, registry: "JobRegistry", video_id: str, entry: _JobEntry):
        self.video_id = video_id
        self._registry = registry
        self._entry = entry

    @property
    def cancel_event(self) -> threading.Event:
        return self._entry.cancel_event

    @property
    def event_lock(self) -> threading.Lock:
        """Held while an event is applied and relayed, so one video's events leave in order."""
        return self._entry.event_lock

    @property
    def record(self) -> JobRecord:
        return self._entry.record

    def apply(self, event: ProgressEvent, details: Optional[dict] = None) -> JobRecord:
        return self._registry._apply(self._entry, event, details)


Runner = Callable[[RunContext], None]


class JobRegistry:
    """Owns one JobRecord per video identity and the thread running it."""

    def __init__(self):
        self._entries: Dict[str, _JobEntry] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def start(self, video_id: str, runner: Runner) -> StartResult:
        """Registers a PENDING run and executes runner on its own thread.

        Rejected without side effects if the identity has a non-terminal run.
        """
        with self._lock:
            current = self._entries.get(video_id)
            if current is not None and not current.record.is_terminal:
                self.logger.warning(f"START_REJECTED: video {video_id} already {current.record.phase.value}")
                return StartResult.REJECTED
            entry = _JobEntry(video_id, current.event_lock if current is not None else None)
            self._entries[video_id] = entry

        context = RunContext(self, video_id, entry)
        entry.thread = threading.Thread(
            target=self._execute,
            args=(runner, context, entry),
            name=f"scenecut-run-{video_id}",
            daemon=True,
        )
        entry.thread.start()
        self.logger.info(f"START_ACCEPTED: video {video_id}")
        return StartResult.ACCEPTED

    def _execute(self, runner: Runner, context: RunContext, entry: _JobEntry) -> None:
        try:
            runner(context)
        except Exception as e:
            self.logger.exception(f"Runner for video {context.video_id} raised")
            if not entry.record.is_terminal:
                self._apply(entry, ProgressEvent(
                    video_id=context.video_id,
                    phase=JobPhase.FAILED,
                    progress=entry.record.progress,
                    error=str(e) or type(e).__name__,
                ))
        finally:
            if not entry.record.is_terminal:
                self.logger.error(f"Runner for video {context.video_id} returned without a terminal state")
                self._apply(entry, ProgressEvent(
                    video_id=context.video_id,
                    phase=JobPhase.FAILED,
                    progress=entry.record.progress,
                    error="Processing ended unexpectedly",
                ))
            entry.done.set()

    def _apply(self, entry: _JobEntry, event: ProgressEvent, details: Optional[dict] = None) -> JobRecord:
        with entry.lock:
            record = entry.record
            if record.is_terminal:
                self.logger.warning(f"Ignoring {event.phase.value} event for finished job {record.video_id}")
                return record
            if PHASE_ORDER[event.phase] < PHASE_ORDER[record.phase]:
                self.logger.warning(
                    f"Ignoring out-of-order {event.phase.value} event for job {record.video_id} in {record.phase.value}"
                )
                return record

            update = {
                "phase": event.phase,
                "progress": max(record.progress, event.progress),
                "stage": event.stage,
            }
            if event.clips is not None:
                update["clips"] = list(event.clips)
            if details:
                update["details"] = dict(details)

            if event.phase is JobPhase.COMPLETED:
                update["progress"] = 100
                if event.metadata is not None:
                    update["result"] = ProcessingResult(metadata=event.metadata, clips=list(event.clips or []))
            elif event.phase is JobPhase.FAILED:
                # All-or-nothing: a failed run exposes only its error message
                update["clips"] = []
                update["result"] = None
                update["error"] = event.error or "Unknown error"
            if event.phase.is_terminal:
                update["finished_at"] = datetime.now()

            entry.record = record.model_copy(update=update)
            return entry.record

    def get(self, video_id: str) -> JobRecord:
        """Current snapshot for video_id. Raises JobNotFoundError."""
        with self._lock:
            entry = self._entries.get(video_id)
        if entry is None:
            raise JobNotFoundError(video_id)
        return entry.record

    def records(self) -> List[JobRecord]:
        with self._lock:
            entries = list(self._entries.values())
        return [e.record for e in entries]

    def is_active(self, video_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(video_id)
        return entry is not None and not entry.record.is_terminal

    def cancel(self, video_id: str) -> bool:
        """Requests cooperative cancellation; takes effect before the run's next stage call."""
        with self._lock:
            entry = self._entries.get(video_id)
        if entry is None or entry.record.is_terminal:
            return False
        entry.cancel_event.set()
        self.logger.info(f"CANCEL_REQUESTED: video {video_id}")
        return True

    def wait(self, video_id: str, timeout: Optional[float] = None) -> JobRecord:
        """Blocks until the current run for video_id is terminal (or timeout) and returns its record."""
        with self._lock:
            entry = self._entries.get(video_id)
        if entry is None:
            raise JobNotFoundError(video_id)
        entry.done.wait(timeout)
        return entry.record
