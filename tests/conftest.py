import pytest

from autointerview.config.settings import Settings
from autointerview.core.session_controller import SessionController

from tests.fakes import FakeCapture, FakeNarrator, FakeQuestionSource, FakeUploader


def make_settings(**overrides) -> Settings:
    """Millisecond ticks so whole sessions finish in well under a second."""
    values = dict(
        auto_start_delay_seconds=3,
        answer_time_limit_seconds=4,
        tick_interval_seconds=0.01,
        settle_delay_seconds=0.01,
        narration_enabled=True,
        _env_file=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fast_settings() -> Settings:
    return make_settings()


@pytest.fixture
async def make_controller():
    """Factory building controllers wired to fakes; closes them afterwards."""
    created: list[SessionController] = []

    def factory(
        questions=("A", "B", "C"),
        source=None,
        capture=None,
        narrator=None,
        uploader=None,
        settings=None,
    ) -> SessionController:
        controller = SessionController(
            job_id="job-1",
            interview_id="interview-1",
            question_source=source or FakeQuestionSource(questions),
            capture=capture if capture is not None else FakeCapture(),
            narrator=narrator if narrator is not None else FakeNarrator(),
            uploader=uploader if uploader is not None else FakeUploader(),
            settings=settings or make_settings(),
        )
        created.append(controller)
        return controller

    yield factory

    for controller in created:
        await controller.close()
