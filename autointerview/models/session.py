"""
Session, clip and snapshot models for AutoInterview
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SessionPhase(str, Enum):
    """Session state machine phases."""

    LOADING = "loading"  # Fetching questions
    IDLE = "idle"  # Question shown, auto-start countdown running
    RECORDING = "recording"  # Capturing the answer
    PROCESSING = "processing"  # Clip stored, upload dispatched, settling
    COMPLETE = "complete"  # Last clip processed (terminal)
    REVIEW = "review"  # Candidate reviewing recorded answers


class UploadStatus(str, Enum):
    """Outcome of a clip upload, reported back into the snapshot."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Nothing captured, nothing sent


class NarrationEventType(str, Enum):
    """Events emitted by a narration service."""

    STARTED = "started"
    ENDED = "ended"
    FAILED = "failed"


class NarrationEvent(BaseModel):
    """A single narration lifecycle event."""

    model_config = ConfigDict(frozen=True)

    type: NarrationEventType
    utterance_id: int
    text: str
    error: str | None = None


class RecordingClip(BaseModel):
    """One recorded answer, tied to a single question index."""

    model_config = ConfigDict(frozen=True)

    question_index: int = Field(..., ge=0)
    question_text: str
    media: bytes = b""
    content_type: str = "audio/wav"
    # Separate audio track recorded next to a video
    audio: bytes = b""
    audio_content_type: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def size(self) -> int:
        return len(self.media) + len(self.audio)

    @property
    def is_empty(self) -> bool:
        return not self.media and not self.audio


class ReviewSnapshot(BaseModel):
    """Read-only view of the review cursor."""

    cursor: int
    clip_count: int
    question_index: int
    question_text: str
    clip_size: int
    can_previous: bool
    can_next: bool


class SessionSnapshot(BaseModel):
    """
    Read-only projection of the session state for rendering.

    Produced after every transition and every timer tick.
    """

    # Identification
    job_id: str
    interview_id: str

    # Sequencing
    phase: SessionPhase
    current_question_index: int = 0
    question_count: int = 0
    question_text: str | None = None

    # Countdowns
    time_left_seconds: int = 0
    auto_start_countdown: int = 0

    # Mutually exclusive activity flags
    is_narrating: bool = False
    is_recording: bool = False
    is_processing: bool = False

    # Capabilities
    narration_available: bool = False
    device_ready: bool = False
    device_pending: bool = False

    # Sticky error (surfaced once, persists until the session ends)
    error: str | None = None

    # Answers
    clip_count: int = 0
    uploads: list[UploadStatus] = Field(default_factory=list)

    review: ReviewSnapshot | None = None

    @property
    def time_left_display(self) -> str:
        """Format the answer timer as m:ss."""
        minutes, seconds = divmod(self.time_left_seconds, 60)
        return f"{minutes}:{seconds:02d}"

    @property
    def progress_percent(self) -> float:
        """Position in the question sequence, 1-based, as a percentage."""
        if not self.question_count:
            return 100.0
        if self.phase == SessionPhase.COMPLETE:
            return 100.0
        return (self.current_question_index + 1) / self.question_count * 100

    def to_payload(self) -> dict:
        """Serialize for the presentation layer, including derived fields."""
        payload = self.model_dump(mode="json")
        payload["time_left_display"] = self.time_left_display
        payload["progress_percent"] = round(self.progress_percent, 1)
        return payload
