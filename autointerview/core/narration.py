"""
Narration Service Adapter for AutoInterview

Reads questions aloud. speak() returns immediately; playback runs as a
background task and reports STARTED / ENDED / FAILED events to listeners.
cancel() is idempotent.

The default implementation synthesizes speech with Edge TTS (Microsoft)
and hands the audio to the presentation layer for playback.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable

from autointerview.config.settings import Settings, get_settings
from autointerview.core.errors import NarrationUnavailable
from autointerview.models.session import NarrationEvent, NarrationEventType

logger = logging.getLogger(__name__)


NarrationListener = Callable[[NarrationEvent], None]
AudioListener = Callable[[int, bytes, str], None]


def estimate_duration(text: str, words_per_minute: int = 150) -> float:
    """Estimate spoken duration in seconds."""
    word_count = len(text.split())
    return word_count / words_per_minute * 60


def select_voice(
    voices: Iterable[dict[str, Any]],
    language: str = "en",
    gender: str | None = "Female",
    preferred: Iterable[str] = (),
    default: str = "en-US-JennyNeural",
) -> str:
    """
    Pick a voice, best effort.

    Order of preference:
    1. A voice whose name contains a preferred fragment, in the language
    2. A voice matching both language and gender
    3. Any voice in the language
    4. The configured default
    """
    voices = list(voices)
    language = language.lower()
    preferred = [p.lower() for p in preferred]

    def in_language(voice: dict[str, Any]) -> bool:
        return str(voice.get("Locale", "")).lower().startswith(language)

    def name_of(voice: dict[str, Any]) -> str:
        return str(voice.get("ShortName") or voice.get("Name") or "")

    candidates = [v for v in voices if in_language(v) and name_of(v)]

    for fragment in preferred:
        for voice in candidates:
            names = f"{voice.get('ShortName', '')} {voice.get('FriendlyName', '')}".lower()
            if fragment in names:
                return name_of(voice)

    if gender:
        for voice in candidates:
            if str(voice.get("Gender", "")).lower() == gender.lower():
                return name_of(voice)

    if candidates:
        return name_of(candidates[0])

    return default


class NarrationService(ABC):
    """
    Base narration service.

    Subclasses implement _play(); it must call _emit_started() once audio
    actually begins and return when playback is over.
    """

    def __init__(self):
        self._event_listeners: list[NarrationListener] = []
        self._audio_listeners: list[AudioListener] = []
        self._utterance_seq = 0
        self._task: asyncio.Task | None = None
        self._speaking_id: int | None = None

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def on_event(self, listener: NarrationListener) -> None:
        """Register a listener for narration events."""
        self._event_listeners.append(listener)

    def on_audio(self, listener: AudioListener) -> None:
        """Register a listener receiving (utterance_id, audio, format)."""
        self._audio_listeners.append(listener)

    def _emit(self, event_type: NarrationEventType, utterance_id: int, text: str, error: str | None = None) -> None:
        event = NarrationEvent(type=event_type, utterance_id=utterance_id, text=text, error=error)
        for listener in self._event_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Narration listener error: {e}")

    def _emit_started(self, utterance_id: int, text: str) -> None:
        self._speaking_id = utterance_id
        self._emit(NarrationEventType.STARTED, utterance_id, text)

    def _publish_audio(self, utterance_id: int, audio: bytes, audio_format: str) -> None:
        for listener in self._audio_listeners:
            try:
                listener(utterance_id, audio, audio_format)
            except Exception as e:
                logger.error(f"Narration audio listener error: {e}")

    # =========================================================================
    # PLAYBACK
    # =========================================================================

    async def prepare(self) -> None:
        """Check the service can be used. Raises NarrationUnavailable."""

    @property
    def is_speaking(self) -> bool:
        return self._speaking_id is not None

    def speak(self, text: str) -> int:
        """
        Start narrating text, replacing anything currently playing.

        Returns:
            Utterance ID carried by the events of this narration
        """
        self.cancel()

        self._utterance_seq += 1
        utterance_id = self._utterance_seq
        self._task = asyncio.get_running_loop().create_task(self._run(utterance_id, text))
        return utterance_id

    async def _run(self, utterance_id: int, text: str) -> None:
        try:
            await self._play(utterance_id, text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Narration {utterance_id} failed: {e}")
            self._clear(utterance_id)
            self._emit(NarrationEventType.FAILED, utterance_id, text, error=str(e))
        else:
            self._clear(utterance_id)
            self._emit(NarrationEventType.ENDED, utterance_id, text)

    def _clear(self, utterance_id: int) -> None:
        if self._speaking_id == utterance_id:
            self._speaking_id = None

    def cancel(self) -> None:
        """Stop current playback. Safe to call when not speaking."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self._speaking_id = None

    async def close(self) -> None:
        self.cancel()

    @abstractmethod
    async def _play(self, utterance_id: int, text: str) -> None:
        """Synthesize and play text."""


class EdgeTTSNarrator(NarrationService):
    """Narration using Edge TTS voices."""

    def __init__(self, settings: Settings | None = None):
        super().__init__()
        self.settings = settings or get_settings()
        self.voice: str | None = None

    async def prepare(self) -> None:
        """Resolve the voice once; an unreachable voice list disables narration."""
        import edge_tts

        try:
            voices = await edge_tts.list_voices()
        except Exception as e:
            raise NarrationUnavailable(f"Edge TTS voice list unavailable: {e}") from e

        if not voices:
            raise NarrationUnavailable("Edge TTS returned no voices")

        self.voice = select_voice(
            voices,
            language=self.settings.tts_voice_language,
            gender=self.settings.tts_voice_gender,
            preferred=self.settings.tts_preferred_voices,
            default=self.settings.tts_default_voice,
        )
        logger.info(f"Narration voice selected: {self.voice}")

    async def _play(self, utterance_id: int, text: str) -> None:
        import edge_tts

        communicate = edge_tts.Communicate(text, self.voice or self.settings.tts_default_voice)

        # Collect audio chunks
        audio_chunks = []
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                audio_chunks.append(chunk["data"])

        audio_data = b"".join(audio_chunks)
        if not audio_data:
            raise NarrationUnavailable("Edge TTS produced no audio")

        self._emit_started(utterance_id, text)
        self._publish_audio(utterance_id, audio_data, "mp3")

        # Hold the speaking state while the client plays the audio
        await asyncio.sleep(estimate_duration(text, self.settings.tts_words_per_minute))
