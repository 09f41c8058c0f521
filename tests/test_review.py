import pytest

from autointerview.core.review import ReviewNavigator
from autointerview.models.session import RecordingClip

from tests.fakes import FakeNarrator


def make_clips(*texts):
    return [
        RecordingClip(question_index=i, question_text=text, media=text.encode())
        for i, text in enumerate(texts)
    ]


def test_enter_requires_clips():
    navigator = ReviewNavigator()

    with pytest.raises(ValueError):
        navigator.enter([])
    assert not navigator.active


def test_navigation_is_clamped():
    navigator = ReviewNavigator()
    assert navigator.enter(make_clips("A", "B", "C")) == 0

    assert navigator.previous() == 0
    assert navigator.next() == 1
    assert navigator.next() == 2
    assert navigator.next() == 2
    assert navigator.current.question_text == "C"


def test_navigation_outside_review_raises():
    navigator = ReviewNavigator()

    with pytest.raises(RuntimeError):
        navigator.next()


def test_snapshot_tracks_cursor():
    navigator = ReviewNavigator()
    assert navigator.snapshot() is None

    navigator.enter(make_clips("A", "Bee"))
    navigator.next()
    snapshot = navigator.snapshot()

    assert snapshot.cursor == 1
    assert snapshot.clip_count == 2
    assert snapshot.question_text == "Bee"
    assert snapshot.clip_size == 3
    assert snapshot.can_previous
    assert not snapshot.can_next


def test_exit_clears_cursor():
    navigator = ReviewNavigator()
    navigator.enter(make_clips("A"))
    navigator.exit()

    assert navigator.cursor is None
    assert navigator.snapshot() is None


async def test_replay_speaks_reviewed_question():
    narrator = FakeNarrator(duration=10)
    navigator = ReviewNavigator(narrator)
    navigator.enter(make_clips("A", "B"))
    navigator.next()

    utterance_id = navigator.replay_narration()

    assert utterance_id is not None
    assert narrator.spoken == ["B"]

    navigator.exit()
    assert not narrator.is_speaking


def test_replay_without_narrator_is_a_no_op():
    navigator = ReviewNavigator()
    navigator.enter(make_clips("A"))

    assert navigator.replay_narration() is None
