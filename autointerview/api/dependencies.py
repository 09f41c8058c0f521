"""
API Dependencies

Provides dependency injection for API endpoints.
Manages the single interview session this process runs.
"""

import logging

from autointerview.config.settings import get_settings
from autointerview.core.capture import CameraCapture, SoundDeviceCapture
from autointerview.core.narration import EdgeTTSNarrator
from autointerview.core.question_source import QuestionSource
from autointerview.core.session_controller import SessionController
from autointerview.core.upload_client import UploadClient
from autointerview.models.session import SessionPhase

logger = logging.getLogger(__name__)


class SessionAlreadyRunning(Exception):
    """Raised when a second session is started while one is active."""
    pass


# ============================================================================
# SINGLETON INSTANCES
# ============================================================================

_controller: SessionController | None = None


def get_controller() -> SessionController | None:
    """Get the current session controller, if a session was started."""
    return _controller


def build_controller(job_id: str, interview_id: str) -> SessionController:
    """Wire a controller to the production adapters."""
    settings = get_settings()

    narrator = EdgeTTSNarrator(settings) if settings.narration_enabled else None
    capture = CameraCapture(settings) if settings.capture_video else SoundDeviceCapture(settings)

    return SessionController(
        job_id=job_id,
        interview_id=interview_id,
        question_source=QuestionSource(settings),
        capture=capture,
        narrator=narrator,
        uploader=UploadClient(interview_id, settings),
        settings=settings,
    )


async def start_session(job_id: str, interview_id: str) -> SessionController:
    """
    Start the process-wide session.

    A finished or closed session is torn down and replaced; a live one is not.

    Raises:
        SessionAlreadyRunning: If a session is still in progress
    """
    global _controller

    if _controller is not None:
        if not _controller.closed and _controller.phase != SessionPhase.COMPLETE:
            raise SessionAlreadyRunning(
                f"Session {_controller.interview_id} is still in progress"
            )
        await _shutdown(_controller)
        _controller = None

    controller = build_controller(job_id, interview_id)
    _controller = controller
    await controller.start()
    return controller


async def _shutdown(controller: SessionController) -> None:
    settings = get_settings()

    await controller.close()
    await controller.drain_uploads(timeout=settings.upload_drain_timeout_seconds)

    await controller.question_source.close()
    if controller.uploader is not None:
        await controller.uploader.close()
    if controller.narrator is not None:
        await controller.narrator.close()


async def cleanup():
    """Cleanup resources on shutdown."""
    global _controller

    if _controller is not None:
        await _shutdown(_controller)

    _controller = None
