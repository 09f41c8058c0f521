"""
Fake collaborators for deterministic session tests.
"""

import asyncio

from autointerview.core.capture import CaptureProvider, DeviceHandle, RecordingSession
from autointerview.core.errors import (
    DeviceDenied,
    NarrationUnavailable,
    QuestionFetchFailed,
    UploadFailed,
)
from autointerview.core.narration import NarrationService
from autointerview.models.session import RecordingClip


class FakeQuestionSource:
    """Returns a fixed question list, or fails."""

    def __init__(self, questions=("A", "B", "C"), fail: bool = False):
        self.questions = tuple(questions)
        self.fail = fail
        self.requested_jobs: list[str] = []
        self.closed = False

    async def fetch(self, job_id: str) -> tuple[str, ...]:
        self.requested_jobs.append(job_id)
        if self.fail:
            raise QuestionFetchFailed("boom")
        return self.questions

    async def close(self):
        self.closed = True


class FakeCapture(CaptureProvider):
    """In-memory capture device that writes one chunk per recording."""

    content_type = "video/webm"

    def __init__(
        self,
        deny: bool = False,
        acquire_delay: float = 0.0,
        chunk: bytes = b"frame",
        acquire_error: Exception | None = None,
        start_error: Exception | None = None,
    ):
        self.deny = deny
        self.acquire_error = acquire_error
        self.start_error = start_error
        self.acquire_delay = acquire_delay
        self.chunk = chunk
        self.acquire_count = 0
        self.recordings_started = 0
        self.live_handles: list[DeviceHandle] = []
        self.max_live_handles = 0

    async def acquire(self) -> DeviceHandle:
        self.acquire_count += 1
        if self.acquire_delay:
            await asyncio.sleep(self.acquire_delay)
        if self.deny:
            raise DeviceDenied("permission denied")
        if self.acquire_error is not None:
            raise self.acquire_error

        handle = DeviceHandle(device="fake")
        self.live_handles.append(handle)
        self.max_live_handles = max(self.max_live_handles, len(self.live_handles))
        return handle

    def release(self, handle: DeviceHandle) -> None:
        handle.released = True
        if handle in self.live_handles:
            self.live_handles.remove(handle)

    def start_recording(self, handle, question_index, question_text) -> RecordingSession:
        if self.start_error is not None:
            raise self.start_error
        recording = super().start_recording(handle, question_index, question_text)
        self.recordings_started += 1
        handle.feed(self.chunk)
        return recording

    def stop(self, recording: RecordingSession) -> RecordingClip:
        return super().stop(recording)


class FakeNarrator(NarrationService):
    """Narrator that 'plays' for a fixed duration."""

    def __init__(
        self,
        duration: float = 0.0,
        fail: bool = False,
        unavailable: bool = False,
        prepare_delay: float = 0.0,
    ):
        super().__init__()
        self.duration = duration
        self.prepare_delay = prepare_delay
        self.fail = fail
        self.unavailable = unavailable
        self.spoken: list[str] = []
        self.events = []
        self.on_event(self.events.append)

    async def prepare(self) -> None:
        if self.prepare_delay:
            await asyncio.sleep(self.prepare_delay)
        if self.unavailable:
            raise NarrationUnavailable("no speech synthesis")

    def speak(self, text: str) -> int:
        self.spoken.append(text)
        return super().speak(text)

    async def _play(self, utterance_id: int, text: str) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("synthesis failed")
        self._emit_started(utterance_id, text)
        self._publish_audio(utterance_id, text.encode(), "mp3")
        await asyncio.sleep(self.duration)


class FakeUploader:
    """Records uploads; optionally fails or stalls."""

    def __init__(self, fail: bool = False, delay: float = 0.0, error: Exception | None = None):
        self.fail = fail
        self.error = error
        self.delay = delay
        self.uploaded: list[tuple[RecordingClip, str]] = []
        self.closed = False

    async def upload(self, clip: RecordingClip, question_text: str) -> dict:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise UploadFailed("503 Service Unavailable")
        if self.error is not None:
            raise self.error
        self.uploaded.append((clip, question_text))
        return {"status": "ok"}

    async def close(self):
        self.closed = True


async def wait_for(predicate, timeout: float = 5.0, interval: float = 0.005):
    """Poll until predicate() is true."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(interval)
    await asyncio.wait_for(_poll(), timeout)
