"""
Capture Device Adapter for AutoInterview

Handles:
- Acquiring and releasing the input stream
- Buffering binary chunks while an answer is being recorded
- Turning a finished recording into a RecordingClip

The local implementations record the microphone with sounddevice
(16-bit PCM WAV via soundfile) and, with a camera, video frames with
OpenCV written to MP4 while the answer is recorded.
"""

import asyncio
import io
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from itertools import count
from typing import Any

import numpy as np

from autointerview.config.settings import Settings, get_settings
from autointerview.core.errors import DeviceDenied
from autointerview.models.session import RecordingClip

logger = logging.getLogger(__name__)

_handle_ids = count(1)


class RecordingSession:
    """
    An in-progress recording for one question.

    Audio chunks and video frames arrive from capture threads, so both
    sinks are guarded by one lock. Frames go straight to video_writer
    when one is attached.
    """

    def __init__(self, handle: "DeviceHandle", question_index: int, question_text: str):
        self.handle = handle
        self.question_index = question_index
        self.question_text = question_text
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()
        self._finished = False

        self.video_writer: Any = None
        self.video_path: str | None = None
        self.frame_count = 0

    def append(self, chunk: bytes) -> None:
        """Buffer a chunk. Empty chunks and chunks after finish() are dropped."""
        if not chunk:
            return
        with self._lock:
            if not self._finished:
                self._chunks.append(chunk)

    def finish(self) -> bytes:
        """Stop buffering and return everything captured so far."""
        with self._lock:
            self._finished = True
            return b"".join(self._chunks)

    def append_frame(self, frame: Any) -> None:
        """Write a video frame. Dropped without a writer or after finish()."""
        with self._lock:
            if self._finished or self.video_writer is None:
                return
            self.video_writer.write(frame)
            self.frame_count += 1

    @property
    def chunk_count(self) -> int:
        with self._lock:
            return len(self._chunks)


class DeviceHandle:
    """An acquired input stream, owned by whoever holds this handle."""

    def __init__(self, device: Any = None, stream: Any = None):
        self.handle_id = next(_handle_ids)
        self.device = device
        self.stream = stream
        self.released = False

        # Camera side, only set by CameraCapture
        self.camera: Any = None
        self.frame_size: tuple[int, int] | None = None
        self.reader: threading.Thread | None = None
        self.stop_reading: threading.Event | None = None

        self._recording: RecordingSession | None = None
        self._lock = threading.Lock()

    def attach(self, recording: RecordingSession) -> None:
        with self._lock:
            self._recording = recording

    def detach(self, recording: RecordingSession) -> None:
        with self._lock:
            if self._recording is recording:
                self._recording = None

    def feed(self, chunk: bytes) -> None:
        """Route a chunk from the stream to the active recording, if any."""
        with self._lock:
            recording = self._recording
        if recording is not None:
            recording.append(chunk)

    def feed_frame(self, frame: Any) -> None:
        """Route a camera frame to the active recording, if any."""
        with self._lock:
            recording = self._recording
        if recording is not None:
            recording.append_frame(frame)

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"DeviceHandle(id={self.handle_id}, device={self.device!r}, {state})"


class CaptureProvider(ABC):
    """
    Capture device contract.

    acquire() -> DeviceHandle | raises DeviceDenied
    start_recording(handle, ...) -> RecordingSession
    stop(recording) -> RecordingClip
    """

    content_type: str = "application/octet-stream"

    @abstractmethod
    async def acquire(self) -> DeviceHandle:
        """Acquire the input stream. Raises DeviceDenied."""

    @abstractmethod
    def release(self, handle: DeviceHandle) -> None:
        """Release the input stream. Safe to call twice."""

    def start_recording(
        self,
        handle: DeviceHandle,
        question_index: int,
        question_text: str,
    ) -> RecordingSession:
        """Begin buffering chunks from the handle's stream."""
        if handle.released:
            raise DeviceDenied(f"Device handle {handle.handle_id} was already released")

        recording = RecordingSession(handle, question_index, question_text)
        handle.attach(recording)
        logger.debug(f"Recording started on {handle!r} for question {question_index}")
        return recording

    def stop(self, recording: RecordingSession) -> RecordingClip:
        """Stop buffering and produce the clip. Never discards empty captures."""
        recording.handle.detach(recording)
        raw = recording.finish()

        return RecordingClip(
            question_index=recording.question_index,
            question_text=recording.question_text,
            media=self.encode(raw) if raw else b"",
            content_type=self.content_type,
        )

    def encode(self, raw: bytes) -> bytes:
        """Turn the concatenated raw chunks into the clip payload."""
        return raw


class SoundDeviceCapture(CaptureProvider):
    """
    Local microphone capture via sounddevice.

    The stream is opened on acquire() and runs until release(); blocks are
    only kept while a recording is attached to the handle.
    """

    content_type = "audio/wav"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.sample_rate = self.settings.capture_sample_rate
        self.channels = self.settings.capture_channels
        self.device = self._parse_device(self.settings.capture_device)
        self._handle: DeviceHandle | None = None

    @staticmethod
    def _parse_device(device: str | None) -> int | str | None:
        if device is None or device == "":
            return None
        return int(device) if device.isdigit() else device

    async def acquire(self) -> DeviceHandle:
        """Open the input stream off the event loop."""
        # Never hold two concurrent streams
        if self._handle is not None and not self._handle.released:
            logger.info(f"Releasing previous stream {self._handle!r} before re-acquiring")
            self.release(self._handle)

        loop = asyncio.get_running_loop()
        handle = await loop.run_in_executor(None, self._open_stream)
        self._handle = handle

        logger.info(f"Capture device acquired: {handle!r}")
        return handle

    def _open_stream(self) -> DeviceHandle:
        """Open and start the stream (blocking, runs in thread pool)."""
        try:
            import sounddevice as sd
        except OSError as e:
            # PortAudio shared library missing on this host
            raise DeviceDenied(f"Audio backend unavailable: {e}") from e

        handle = DeviceHandle(device=self.device)

        def callback(indata, frames, time_info, status):
            # Audio thread: buffer only
            handle.feed(indata.tobytes())

        try:
            stream = sd.InputStream(
                device=self.device,
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.settings.capture_block_size,
                callback=callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            logger.warning(f"Could not open capture device {self.device!r}: {e}")
            raise DeviceDenied(str(e)) from e

        handle.stream = stream
        return handle

    def release(self, handle: DeviceHandle) -> None:
        if handle.released:
            return

        handle.released = True
        stream = handle.stream
        handle.stream = None
        if self._handle is handle:
            self._handle = None

        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing capture stream {handle!r}: {e}")
        else:
            logger.info(f"Capture device released: {handle!r}")

    def encode(self, raw: bytes) -> bytes:
        """Encode float32 interleaved samples as a PCM_16 WAV file."""
        import soundfile as sf

        samples = np.frombuffer(raw, dtype=np.float32)
        if self.channels > 1:
            usable = len(samples) - len(samples) % self.channels
            samples = samples[:usable].reshape(-1, self.channels)

        output = io.BytesIO()
        sf.write(output, samples, self.sample_rate, format="WAV", subtype="PCM_16")
        return output.getvalue()


class CameraCapture(SoundDeviceCapture):
    """
    Camera plus microphone capture.

    The microphone stream is the one SoundDeviceCapture opens. Camera
    frames are read on a background thread for as long as the device is
    held and written to an MP4 file only while a recording is attached.
    The answer's audio track travels alongside the video as WAV.
    """

    content_type = "video/mp4"
    audio_content_type = "audio/wav"

    # Tried in order until a writer opens
    CODECS = ("mp4v", "avc1", "MJPG")

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.camera_index = self.settings.capture_camera_index
        self.fps = self.settings.capture_video_fps

    def _open_stream(self) -> DeviceHandle:
        """Open microphone and camera (blocking, runs in thread pool)."""
        import cv2

        handle = super()._open_stream()

        camera = cv2.VideoCapture(self.camera_index)
        ok, frame = camera.read() if camera.isOpened() else (False, None)
        if not ok or frame is None:
            camera.release()
            SoundDeviceCapture.release(self, handle)
            raise DeviceDenied(f"Cannot open camera {self.camera_index}")

        camera.set(cv2.CAP_PROP_FPS, self.fps)
        height, width = frame.shape[:2]
        handle.camera = camera
        handle.frame_size = (width, height)
        handle.stop_reading = threading.Event()
        handle.reader = threading.Thread(
            target=self._read_frames,
            args=(handle,),
            name=f"camera-{handle.handle_id}",
            daemon=True,
        )
        handle.reader.start()

        logger.info(f"Camera {self.camera_index} opened at {width}x{height}")
        return handle

    @staticmethod
    def _read_frames(handle: DeviceHandle) -> None:
        camera = handle.camera
        while not handle.stop_reading.is_set():
            ok, frame = camera.read()
            if ok:
                handle.feed_frame(frame)
            else:
                handle.stop_reading.wait(0.01)

    def release(self, handle: DeviceHandle) -> None:
        if handle.released:
            return

        if handle.stop_reading is not None:
            handle.stop_reading.set()
        if handle.reader is not None:
            handle.reader.join(timeout=1.0)
            handle.reader = None

        camera, handle.camera = handle.camera, None
        if camera is not None:
            try:
                camera.release()
            except Exception as e:
                logger.warning(f"Error releasing camera for {handle!r}: {e}")

        super().release(handle)

    def _open_writer(self, path: str, frame_size: tuple[int, int]) -> Any:
        import cv2

        for codec in self.CODECS:
            writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*codec), self.fps, frame_size)
            if writer.isOpened():
                logger.debug(f"Using video codec: {codec}")
                return writer
            writer.release()
        return None

    def start_recording(
        self,
        handle: DeviceHandle,
        question_index: int,
        question_text: str,
    ) -> RecordingSession:
        recording = super().start_recording(handle, question_index, question_text)
        if handle.frame_size is None:
            return recording

        fd, path = tempfile.mkstemp(prefix=f"answer_{question_index + 1}_", suffix=".mp4")
        os.close(fd)

        writer = self._open_writer(path, handle.frame_size)
        if writer is None:
            os.remove(path)
            logger.warning(f"No usable video codec; question {question_index + 1} records audio only")
            return recording

        recording.video_path = path
        recording.video_writer = writer
        return recording

    def stop(self, recording: RecordingSession) -> RecordingClip:
        recording.handle.detach(recording)
        raw = recording.finish()

        video = b""
        writer, path = recording.video_writer, recording.video_path
        if writer is not None:
            writer.release()
            try:
                if recording.frame_count:
                    with open(path, "rb") as f:
                        video = f.read()
            finally:
                os.remove(path)

        return RecordingClip(
            question_index=recording.question_index,
            question_text=recording.question_text,
            media=video,
            content_type=self.content_type,
            audio=self.encode(raw) if raw else b"",
            audio_content_type=self.audio_content_type if raw else None,
        )


def list_input_devices() -> list[dict[str, Any]]:
    """
    Enumerate capture devices for the setup screen's device picker.

    Returns an empty list when no audio backend is present.
    """
    try:
        import sounddevice as sd
    except OSError as e:
        logger.warning(f"Audio backend unavailable: {e}")
        return []

    try:
        devices = sd.query_devices()
    except sd.PortAudioError as e:
        logger.warning(f"Device enumeration failed: {e}")
        return []

    return [
        {
            "index": index,
            "name": info.get("name", f"Device {index + 1}"),
            "channels": int(info.get("max_input_channels", 0)),
            "default_sample_rate": float(info.get("default_samplerate", 0.0)),
        }
        for index, info in enumerate(devices)
        if info.get("max_input_channels", 0) > 0
    ]
