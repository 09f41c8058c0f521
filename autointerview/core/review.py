"""
Review Navigator - steps through recorded answers.

Pure navigation over the immutable clip list; no timers. The cursor only
exists between enter() and exit().
"""

import logging
from typing import Sequence

from autointerview.core.narration import NarrationService
from autointerview.models.session import RecordingClip, ReviewSnapshot

logger = logging.getLogger(__name__)


class ReviewNavigator:
    """Cursor over recorded clips with clamped navigation."""

    def __init__(self, narrator: NarrationService | None = None):
        self.narrator = narrator
        self._clips: tuple[RecordingClip, ...] = ()
        self._cursor: int | None = None

    @property
    def active(self) -> bool:
        return self._cursor is not None

    @property
    def cursor(self) -> int | None:
        return self._cursor

    def enter(self, clips: Sequence[RecordingClip]) -> int:
        """Start reviewing; the cursor starts at the first clip."""
        if not clips:
            raise ValueError("Nothing to review: no clips recorded yet")
        self._clips = tuple(clips)
        self._cursor = 0
        return self._cursor

    def _require_active(self) -> int:
        if self._cursor is None:
            raise RuntimeError("Review mode is not active")
        return self._cursor

    @property
    def current(self) -> RecordingClip:
        return self._clips[self._require_active()]

    def next(self) -> int:
        cursor = self._require_active()
        self._cursor = min(len(self._clips) - 1, cursor + 1)
        return self._cursor

    def previous(self) -> int:
        cursor = self._require_active()
        self._cursor = max(0, cursor - 1)
        return self._cursor

    def replay_narration(self) -> int | None:
        """
        Read the current clip's question aloud again.

        Returns:
            Utterance ID, or None when there is no narrator
        """
        clip = self.current
        if self.narrator is None:
            return None
        logger.debug(f"Replaying narration for reviewed question {clip.question_index}")
        return self.narrator.speak(clip.question_text)

    def exit(self) -> None:
        """Discard the cursor and stop any review narration."""
        if self.narrator is not None:
            self.narrator.cancel()
        self._clips = ()
        self._cursor = None

    def snapshot(self) -> ReviewSnapshot | None:
        if self._cursor is None:
            return None
        clip = self._clips[self._cursor]
        return ReviewSnapshot(
            cursor=self._cursor,
            clip_count=len(self._clips),
            question_index=clip.question_index,
            question_text=clip.question_text,
            clip_size=clip.size,
            can_previous=self._cursor > 0,
            can_next=self._cursor < len(self._clips) - 1,
        )
