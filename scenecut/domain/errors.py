"""Error kinds raised by the processing engine.

Every stage error is terminal for the run that raised it. The pipeline catches
them at its boundary and turns them into a FAILED job record plus a terminal
error event; only the message string reaches observers.
"""


class ProcessingError(Exception):
    """Base class for failures that end a run."""


class ProbeError(ProcessingError):
    """Source is unreadable, has no video stream, or its metadata is unparsable."""


class DetectionError(ProcessingError):
    """Scene scan failed or found no boundaries."""


class ExtractionError(ProcessingError):
    """A clip or thumbnail could not be produced."""


class PersistenceError(ProcessingError):
    """The clip store rejected finished results."""


class RunCancelled(ProcessingError):
    """Run was cancelled between two stage calls."""


class JobNotFoundError(KeyError):
    """No job record exists for the requested video identity."""

    def __init__(self, video_id: str):
        super().__init__(video_id)
        self.video_id = video_id

    def __str__(self) -> str:
        return f"No job found for video {self.video_id}"
