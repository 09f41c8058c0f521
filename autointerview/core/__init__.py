"""
Core session modules for AutoInterview

Contains:
- Session Controller: State machine for the interview session
- Capture: Input device adapter
- Narration: Text-to-speech adapter
- Question Source / Upload Client: Remote interview API
- Review Navigator: Stepping through recorded answers
"""

from autointerview.core.session_controller import SessionController
from autointerview.core.capture import CameraCapture, CaptureProvider, SoundDeviceCapture
from autointerview.core.narration import NarrationService, EdgeTTSNarrator
from autointerview.core.question_source import QuestionSource
from autointerview.core.upload_client import UploadClient
from autointerview.core.review import ReviewNavigator

__all__ = [
    "SessionController",
    "CaptureProvider",
    "SoundDeviceCapture",
    "CameraCapture",
    "NarrationService",
    "EdgeTTSNarrator",
    "QuestionSource",
    "UploadClient",
    "ReviewNavigator",
]
