"""
Data models and schemas for AutoInterview

Contains Pydantic models for:
- Session phases and snapshots
- Recorded answer clips
- Upload outcomes
- Narration events
"""

from autointerview.models.session import (
    NarrationEvent,
    NarrationEventType,
    RecordingClip,
    ReviewSnapshot,
    SessionPhase,
    SessionSnapshot,
    UploadStatus,
)

__all__ = [
    # Session
    "SessionPhase",
    "SessionSnapshot",
    "ReviewSnapshot",
    # Clips
    "RecordingClip",
    "UploadStatus",
    # Narration
    "NarrationEvent",
    "NarrationEventType",
]
