"""
Session Controller - State machine for a timed video-interview session.

This is the central coordinator for one interview session. It sequences
questions, narration, recording windows, auto-advance timers and review
navigation while coordinating the capture device, the narration service
and the upload client.

Everything runs on one asyncio event loop. Transitions are synchronous
methods; timers, narration playback, device acquisition and uploads are
background tasks whose results come back as method calls on the loop.
"""

import asyncio
import logging
from typing import Callable

from autointerview.config.settings import Settings, get_settings
from autointerview.core.capture import CaptureProvider, DeviceHandle, RecordingSession
from autointerview.core.errors import (
    DeviceDenied,
    NarrationUnavailable,
    QuestionFetchFailed,
    UploadFailed,
)
from autointerview.core.narration import NarrationService
from autointerview.core.question_source import QuestionSource
from autointerview.core.review import ReviewNavigator
from autointerview.core.upload_client import UploadClient
from autointerview.models.session import (
    NarrationEvent,
    NarrationEventType,
    RecordingClip,
    SessionPhase,
    SessionSnapshot,
    UploadStatus,
)

logger = logging.getLogger(__name__)

# (phase, question index, epoch) a timer was scheduled for
TimerToken = tuple[SessionPhase, int, int]


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class SessionController:
    """
    Drives one interview session using a state machine pattern.

    States:
        LOADING → IDLE(i) → RECORDING(i) → PROCESSING(i) → IDLE(i+1) | COMPLETE
                    ↕
                  REVIEW

    Every timer is tagged with the phase, question index and epoch it was
    scheduled for. Each transition bumps the epoch, so a timer that fires
    after its phase ended is discarded.
    """

    VALID_TRANSITIONS: dict[SessionPhase, list[SessionPhase]] = {
        SessionPhase.LOADING: [SessionPhase.IDLE, SessionPhase.COMPLETE],
        SessionPhase.IDLE: [SessionPhase.RECORDING, SessionPhase.REVIEW],
        SessionPhase.RECORDING: [SessionPhase.PROCESSING],
        SessionPhase.PROCESSING: [SessionPhase.IDLE, SessionPhase.COMPLETE],
        SessionPhase.REVIEW: [SessionPhase.IDLE],
        SessionPhase.COMPLETE: [],  # Terminal state
    }

    def __init__(
        self,
        job_id: str,
        interview_id: str,
        question_source: QuestionSource,
        capture: CaptureProvider | None = None,
        narrator: NarrationService | None = None,
        uploader: UploadClient | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the controller with its collaborators.

        Args:
            job_id: Identifier passed to the question source
            interview_id: Identifier the uploader is keyed by
            question_source: Fetches the question list
            capture: Capture device provider (None = no recording capability)
            narrator: Text-to-speech service (None = narration disabled)
            uploader: Answer sink (None = uploads skipped)
            settings: Timing configuration
        """
        self.job_id = job_id
        self.interview_id = interview_id
        self.question_source = question_source
        self.capture = capture
        self.narrator = narrator
        self.uploader = uploader
        self.settings = settings or get_settings()

        # Sequencing
        self._phase = SessionPhase.LOADING
        self._epoch = 0
        self._questions: tuple[str, ...] = ()
        self._index = 0
        self._time_left = self.settings.answer_time_limit_seconds
        self._auto_start_countdown = self.settings.auto_start_delay_seconds

        # Timers (at most one of each kind)
        self._tick_task: asyncio.Task | None = None
        self._settle_task: asyncio.Task | None = None

        # Narration
        self._narration_task: asyncio.Task | None = None
        self._narration_available = False
        self._utterance_id: int | None = None
        self._narrating = False

        # Capture device
        self._device: DeviceHandle | None = None
        self._device_task: asyncio.Task | None = None
        self._device_epoch = 0
        self._recording: RecordingSession | None = None

        # Answers
        self._clips: list[RecordingClip] = []
        self._uploads: list[UploadStatus] = []
        self._upload_tasks: set[asyncio.Task] = set()

        # Review
        self._review = ReviewNavigator(narrator)
        self._frozen: tuple[int, int] | None = None
        self._exiting_review = False

        # Lifecycle
        self._error: str | None = None
        self._started = False
        self._closed = False
        self._completed = asyncio.Event()

        # Event callbacks
        self._snapshot_callbacks: list[Callable[[SessionSnapshot], None]] = []
        self._audio_callbacks: list[Callable[[bytes, str], None]] = []

        if narrator is not None:
            narrator.on_event(self._on_narration_event)
            narrator.on_audio(self._on_narration_audio)

    # =========================================================================
    # READ-ONLY STATE
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def questions(self) -> tuple[str, ...]:
        return self._questions

    @property
    def current_question(self) -> str | None:
        if self._index < len(self._questions):
            return self._questions[self._index]
        return None

    @property
    def clips(self) -> tuple[RecordingClip, ...]:
        return tuple(self._clips)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionSnapshot:
        """Build the read-only projection of the current state."""
        return SessionSnapshot(
            job_id=self.job_id,
            interview_id=self.interview_id,
            phase=self._phase,
            current_question_index=self._index,
            question_count=len(self._questions),
            question_text=self.current_question,
            time_left_seconds=self._time_left,
            auto_start_countdown=self._auto_start_countdown,
            is_narrating=self._narrating,
            is_recording=self._phase == SessionPhase.RECORDING,
            is_processing=self._phase == SessionPhase.PROCESSING,
            narration_available=self._narration_available,
            device_ready=self._device is not None,
            device_pending=self._device_task is not None and not self._device_task.done(),
            error=self._error,
            clip_count=len(self._clips),
            uploads=list(self._uploads),
            review=self._review.snapshot(),
        )

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _token(self) -> TimerToken:
        return (self._phase, self._index, self._epoch)

    def _transition(self, new_phase: SessionPhase) -> None:
        """
        Move to a new phase.

        Raises:
            StateTransitionError: If transition is invalid
        """
        old_phase = self._phase

        valid_next_phases = self.VALID_TRANSITIONS.get(old_phase, [])
        if new_phase not in valid_next_phases:
            raise StateTransitionError(
                f"Invalid transition from {old_phase} to {new_phase}. "
                f"Valid transitions: {valid_next_phases}"
            )

        self._phase = new_phase
        self._epoch += 1

        logger.info(
            f"Session {self.interview_id}: {old_phase.value} → {new_phase.value} "
            f"(question {self._index + 1}/{len(self._questions)})"
        )

    def _publish(self) -> None:
        """Notify snapshot callbacks."""
        if not self._snapshot_callbacks:
            return
        snapshot = self.snapshot()
        for callback in self._snapshot_callbacks:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Snapshot callback error: {e}")

    def _set_error(self, message: str) -> None:
        """Record a sticky error. Only the first one is kept and surfaced."""
        if self._error is None:
            self._error = message
            logger.warning(f"Session {self.interview_id}: {message}")
        else:
            logger.debug(f"Session {self.interview_id}: suppressed repeat error: {message}")

    # =========================================================================
    # TIMERS
    # =========================================================================

    def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self._tick_task, self._settle_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._tick_task = None
        self._settle_task = None

    def _start_ticks(self) -> None:
        self._tick_task = asyncio.create_task(self._tick_loop(self._token()))

    async def _tick_loop(self, token: TimerToken) -> None:
        while True:
            await asyncio.sleep(self.settings.tick_interval_seconds)
            if not self._on_tick(token):
                return

    def _on_tick(self, token: TimerToken) -> bool:
        """
        Advance the countdown of the phase the timer belongs to.

        Returns:
            True while the timer should keep ticking
        """
        if token != self._token():
            logger.debug(f"Discarding stale tick for {token[0].value} of question {token[1]}")
            return False

        phase = token[0]
        if phase == SessionPhase.IDLE:
            self._auto_start_countdown = max(0, self._auto_start_countdown - 1)
            if self._auto_start_countdown == 0:
                logger.info(f"Session {self.interview_id}: auto-starting question {self._index + 1}")
                self._begin_recording()
                return False

        elif phase == SessionPhase.RECORDING:
            self._time_left = max(0, self._time_left - 1)
            if self._time_left == 0:
                logger.info(f"Session {self.interview_id}: answer time up for question {self._index + 1}")
                self._finish_recording()
                return False

        else:
            return False

        self._publish()
        return True

    async def _settle(self, token: TimerToken) -> None:
        await asyncio.sleep(self.settings.settle_delay_seconds)
        if token != self._token():
            logger.debug(f"Discarding stale settle timer for question {token[1]}")
            return

        next_index = self._index + 1
        if next_index < len(self._questions):
            self._enter_idle(next_index)
        else:
            self._complete()

    # =========================================================================
    # SESSION FLOW
    # =========================================================================

    async def start(self) -> SessionSnapshot:
        """
        Load questions and enter the first question.

        Device acquisition and narration setup run in the background and
        never gate this.
        """
        if self._started:
            raise RuntimeError("Session already started")
        self._started = True

        logger.info(f"Starting session {self.interview_id} for job {self.job_id}")
        self._start_device_acquisition()
        self._narration_task = asyncio.create_task(self._prepare_narration())

        questions = await self._load_questions()

        if self._closed:
            return self.snapshot()

        self._questions = questions
        if questions:
            self._enter_idle(0)
        else:
            logger.warning(f"Session {self.interview_id}: no questions, completing immediately")
            self._complete()

        return self.snapshot()

    async def _load_questions(self) -> tuple[str, ...]:
        try:
            return await self.question_source.fetch(self.job_id)
        except QuestionFetchFailed as e:
            logger.warning(f"Question fetch failed ({e}); using fallback question")
            return (self.settings.fallback_question,)

    async def _prepare_narration(self) -> None:
        if self.narrator is None or not self.settings.narration_enabled:
            self._narration_available = False
            return
        try:
            await self.narrator.prepare()
        except NarrationUnavailable as e:
            logger.info(f"Narration disabled: {e}")
            self._narration_available = False
            return
        except Exception as e:
            logger.error(f"Narration setup failed: {e}")
            self._narration_available = False
            return

        if self._closed:
            return
        self._narration_available = True

        # Questions arrived first: read the one already waiting
        if self._phase == SessionPhase.IDLE and self._narrate(self.current_question):
            self._publish()

    def _enter_idle(self, index: int, resume: tuple[int, int] | None = None) -> None:
        self._cancel_timers()
        self._index = index
        self._transition(SessionPhase.IDLE)

        if resume is not None:
            self._time_left, self._auto_start_countdown = resume
        else:
            self._time_left = self.settings.answer_time_limit_seconds
            self._auto_start_countdown = self.settings.auto_start_delay_seconds

        self._narrate(self.current_question)
        self._start_ticks()
        self._publish()

    def _begin_recording(self) -> None:
        self._cancel_timers()
        self._cancel_narration()
        self._transition(SessionPhase.RECORDING)
        self._time_left = self.settings.answer_time_limit_seconds

        self._recording = None
        if self._device is not None:
            try:
                self._recording = self.capture.start_recording(
                    self._device, self._index, self.current_question or ""
                )
            except Exception as e:
                logger.error(f"Could not start recording question {self._index + 1}: {e}")
                self._set_error(f"Recording unavailable: {e}")
        else:
            logger.warning(f"Session {self.interview_id}: no capture device, question {self._index + 1} will be empty")

        self._start_ticks()
        self._publish()

    def _finish_recording(self) -> None:
        self._cancel_timers()
        clip = self._stop_capture()
        self._transition(SessionPhase.PROCESSING)

        self._clips.append(clip)
        self._dispatch_upload(clip)

        self._settle_task = asyncio.create_task(self._settle(self._token()))
        self._publish()

    def _stop_capture(self) -> RecordingClip:
        """Produce exactly one clip for the current question."""
        recording, self._recording = self._recording, None
        question_text = self.current_question or ""

        if recording is not None:
            try:
                return self.capture.stop(recording)
            except Exception as e:
                logger.error(f"Capture stop failed for question {self._index + 1}: {e}")

        return RecordingClip(
            question_index=self._index,
            question_text=question_text,
            content_type=self.capture.content_type if self.capture else "application/octet-stream",
        )

    def _complete(self) -> None:
        self._cancel_timers()
        self._cancel_narration()
        self._transition(SessionPhase.COMPLETE)
        self._release_device()
        self._completed.set()
        self._publish()

        logger.info(f"Session {self.interview_id} complete with {len(self._clips)} clips")

    # =========================================================================
    # UPLOADS (fire-and-forget)
    # =========================================================================

    def _dispatch_upload(self, clip: RecordingClip) -> None:
        if self.uploader is None:
            logger.info(f"Skipping upload for question {clip.question_index + 1}: no uploader configured")
            self._uploads.append(UploadStatus.SKIPPED)
            return
        if clip.is_empty:
            logger.info(f"Skipping upload for question {clip.question_index + 1}: nothing captured")
            self._uploads.append(UploadStatus.SKIPPED)
            return

        slot = len(self._uploads)
        self._uploads.append(UploadStatus.PENDING)

        task = asyncio.create_task(self._upload(slot, clip))
        self._upload_tasks.add(task)
        task.add_done_callback(self._upload_tasks.discard)

    async def _upload(self, slot: int, clip: RecordingClip) -> None:
        try:
            await self.uploader.upload(clip, clip.question_text)
        except UploadFailed as e:
            logger.warning(f"Upload failed for question {clip.question_index + 1}: {e}")
            self._uploads[slot] = UploadStatus.FAILED
        except Exception as e:
            logger.error(f"Unexpected upload error for question {clip.question_index + 1}: {e}")
            self._uploads[slot] = UploadStatus.FAILED
        else:
            self._uploads[slot] = UploadStatus.SUCCEEDED
        self._publish()

    async def drain_uploads(self, timeout: float | None = None) -> None:
        """Wait for uploads still in flight."""
        if not self._upload_tasks:
            return
        done, pending = await asyncio.wait(set(self._upload_tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} uploads still in flight after {timeout}s")

    # =========================================================================
    # CAPTURE DEVICE
    # =========================================================================

    def _start_device_acquisition(self) -> asyncio.Task | None:
        if self.capture is None:
            self._set_error("No capture device configured; answers will not be recorded")
            return None

        self._device_task = asyncio.create_task(self._acquire_device(self._device_epoch))
        return self._device_task

    async def _acquire_device(self, epoch: int) -> None:
        try:
            handle = await self.capture.acquire()
        except Exception as e:
            if not isinstance(e, DeviceDenied):
                logger.error(f"Capture device acquisition failed: {e}")
            if epoch == self._device_epoch and not self._closed:
                self._set_error(f"Capture device unavailable: {e}")
                self._publish()
            return

        # Ownership moved while we were waiting
        if epoch != self._device_epoch or self._closed:
            logger.info(f"Releasing late device {handle!r}")
            self.capture.release(handle)
            return

        self._device = handle
        self._publish()

    def _release_device(self) -> None:
        self._device_epoch += 1
        device, self._device = self._device, None
        if device is not None:
            self.capture.release(device)

    # =========================================================================
    # NARRATION
    # =========================================================================

    def _narrate(self, text: str | None) -> bool:
        if not text or not self._narration_available or self.narrator is None:
            return False
        if self._utterance_id is not None:
            return False
        self._utterance_id = self.narrator.speak(text)
        return True

    def _cancel_narration(self) -> None:
        if self.narrator is not None:
            self.narrator.cancel()
        self._utterance_id = None
        self._narrating = False

    def _on_narration_event(self, event: NarrationEvent) -> None:
        if event.utterance_id != self._utterance_id:
            logger.debug(f"Ignoring narration event for stale utterance {event.utterance_id}")
            return

        if event.type == NarrationEventType.STARTED:
            self._narrating = True
        else:
            if event.type == NarrationEventType.FAILED:
                logger.info(f"Narration failed, continuing without it: {event.error}")
            self._narrating = False
            self._utterance_id = None
        self._publish()

    def _on_narration_audio(self, utterance_id: int, audio: bytes, audio_format: str) -> None:
        if utterance_id != self._utterance_id:
            return
        for callback in self._audio_callbacks:
            try:
                callback(audio, audio_format)
            except Exception as e:
                logger.error(f"Narration audio callback error: {e}")

    # =========================================================================
    # USER INTENTS
    # =========================================================================

    def _accepts(self, intent: str, *phases: SessionPhase) -> bool:
        if self._closed or self._phase not in phases:
            logger.debug(f"Ignoring {intent} in phase {self._phase.value}")
            return False
        return True

    def start_answering_now(self) -> bool:
        """Skip the rest of the countdown and start recording."""
        if not self._accepts("start_answering_now", SessionPhase.IDLE):
            return False
        self._begin_recording()
        return True

    def stop_answering_now(self) -> bool:
        """Finish the answer before the timer runs out."""
        if not self._accepts("stop_answering_now", SessionPhase.RECORDING):
            return False
        self._finish_recording()
        return True

    def repeat_question(self) -> bool:
        """Read the current question aloud again while waiting to answer."""
        if not self._accepts("repeat_question", SessionPhase.IDLE):
            return False
        if not self._narrate(self.current_question):
            return False
        self._publish()
        return True

    def enter_review(self) -> bool:
        """Pause the session and step through recorded answers."""
        if not self._accepts("enter_review", SessionPhase.IDLE) or not self._clips:
            return False

        self._frozen = (self._time_left, self._auto_start_countdown)
        self._cancel_timers()
        self._cancel_narration()
        self._transition(SessionPhase.REVIEW)
        self._release_device()
        self._review.enter(self._clips)
        self._publish()
        return True

    async def exit_review(self) -> bool:
        """Re-acquire the device and resume the question that was paused."""
        if not self._accepts("exit_review", SessionPhase.REVIEW) or self._exiting_review:
            return False

        self._exiting_review = True
        try:
            self._review.exit()
            self._utterance_id = None
            self._narrating = False
            self._publish()

            task = self._start_device_acquisition()
            if task is not None:
                await task
        finally:
            self._exiting_review = False

        if self._closed:
            return False

        resume, self._frozen = self._frozen, None
        self._enter_idle(self._index, resume=resume)
        return True

    def review_next(self) -> bool:
        if not self._accepts("review_next", SessionPhase.REVIEW) or not self._review.active:
            return False
        self._review.next()
        self._publish()
        return True

    def review_previous(self) -> bool:
        if not self._accepts("review_previous", SessionPhase.REVIEW) or not self._review.active:
            return False
        self._review.previous()
        self._publish()
        return True

    def review_replay_narration(self) -> bool:
        """Read the reviewed clip's question aloud."""
        if not self._accepts("review_replay_narration", SessionPhase.REVIEW) or not self._review.active:
            return False
        if not self._narration_available:
            return False
        utterance_id = self._review.replay_narration()
        if utterance_id is None:
            return False
        self._utterance_id = utterance_id
        self._narrating = False
        self._publish()
        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def wait_until_complete(self, timeout: float | None = None) -> SessionSnapshot:
        """Wait for the terminal phase, or for close()."""
        await asyncio.wait_for(self._completed.wait(), timeout)
        return self.snapshot()

    async def close(self) -> None:
        """Unmount: cancel narration and timers, release the device."""
        if self._closed:
            return
        self._closed = True

        self._cancel_timers()
        if self._narration_task is not None and not self._narration_task.done():
            self._narration_task.cancel()
        self._cancel_narration()
        if self._review.active:
            self._review.exit()
        self._release_device()
        self._completed.set()

        logger.info(f"Session {self.interview_id} closed in phase {self._phase.value}")

    # =========================================================================
    # EVENT CALLBACKS
    # =========================================================================

    def on_snapshot(self, callback: Callable[[SessionSnapshot], None]) -> None:
        """Register a callback for state changes and timer ticks."""
        self._snapshot_callbacks.append(callback)

    def remove_snapshot_callback(self, callback: Callable[[SessionSnapshot], None]) -> None:
        if callback in self._snapshot_callbacks:
            self._snapshot_callbacks.remove(callback)

    def on_narration_audio(self, callback: Callable[[bytes, str], None]) -> None:
        """Register a callback receiving synthesized narration audio."""
        self._audio_callbacks.append(callback)

    def remove_narration_audio_callback(self, callback: Callable[[bytes, str], None]) -> None:
        if callback in self._audio_callbacks:
            self._audio_callbacks.remove(callback)
