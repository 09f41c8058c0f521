"""
Upload Client for AutoInterview

Sends a finished answer clip and its question text to the remote answer
sink. No retries: failures are reported to the caller, which logs them.
"""

import logging

import httpx

from autointerview.config.settings import Settings, get_settings
from autointerview.core.errors import UploadFailed
from autointerview.models.session import RecordingClip

logger = logging.getLogger(__name__)


FILE_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/webm": "webm",
    "video/webm": "webm",
    "video/mp4": "mp4",
}


def file_name(stem: str, content_type: str) -> str:
    """Name an upload part after its content type."""
    base_type = content_type.split(";")[0].strip().lower()
    return f"{stem}.{FILE_EXTENSIONS.get(base_type, 'bin')}"


class UploadClient:
    """Answer sink client keyed by interview identifier."""

    def __init__(
        self,
        interview_id: str,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.interview_id = interview_id
        self.settings = settings or get_settings()
        self.client = client or httpx.AsyncClient(
            base_url=self.settings.api_base_url.rstrip("/"),
            timeout=self.settings.http_timeout_seconds,
        )

    async def close(self):
        """Clean up resources."""
        await self.client.aclose()

    async def upload(self, clip: RecordingClip, question_text: str) -> dict:
        """
        Upload one clip.

        Args:
            clip: The recorded answer
            question_text: Question the clip answers

        Returns:
            Decoded JSON response (empty dict if the body is not JSON)

        Raises:
            UploadFailed: On network or server error
        """
        stem = f"answer_{clip.question_index + 1}"
        files = {}
        if clip.media:
            files["video_file"] = (file_name(stem, clip.content_type), clip.media, clip.content_type)
        if clip.audio:
            audio_type = clip.audio_content_type or "audio/wav"
            files["audio_file"] = (file_name(stem, audio_type), clip.audio, audio_type)
        data = {
            "question": question_text,
        }

        try:
            response = await self.client.post(
                "/call/process/",
                params={"interview_id": self.interview_id},
                files=files,
                data=data,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Upload failed for question {clip.question_index}: {e}")
            raise UploadFailed(str(e)) from e

        logger.info(f"Uploaded answer for question {clip.question_index} ({clip.size} bytes)")
        try:
            return response.json()
        except ValueError:
            return {}
