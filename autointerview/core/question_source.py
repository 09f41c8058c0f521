"""
Question Source for AutoInterview

Fetches the ordered question list for a job from the remote interview API.
"""

import logging
from typing import Any

import httpx

from autointerview.config.settings import Settings, get_settings
from autointerview.core.errors import QuestionFetchFailed

logger = logging.getLogger(__name__)


def parse_questions(payload: Any) -> tuple[str, ...]:
    """
    Accept either {"questions": [...]} or a bare list of strings.

    Raises:
        QuestionFetchFailed: If the payload has any other shape
    """
    if isinstance(payload, dict) and isinstance(payload.get("questions"), list):
        questions = payload["questions"]
    elif isinstance(payload, list):
        questions = payload
    else:
        raise QuestionFetchFailed(f"Unexpected question payload: {type(payload).__name__}")

    if not all(isinstance(q, str) for q in questions):
        raise QuestionFetchFailed("Question list contains non-string entries")

    return tuple(questions)


class QuestionSource:
    """Fetch-by-job-identifier client for interview questions."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or httpx.AsyncClient(
            base_url=self.settings.api_base_url.rstrip("/"),
            timeout=self.settings.http_timeout_seconds,
        )

    async def close(self):
        """Clean up resources."""
        await self.client.aclose()

    async def fetch(self, job_id: str) -> tuple[str, ...]:
        """
        Fetch questions for a job.

        Args:
            job_id: Opaque job identifier

        Returns:
            Ordered question texts

        Raises:
            QuestionFetchFailed: On network, HTTP or payload errors
        """
        try:
            response = await self.client.get(f"/openings/questions/{job_id}/")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Error fetching questions for job {job_id}: {e}")
            raise QuestionFetchFailed(str(e)) from e
        except ValueError as e:
            logger.error(f"Question response for job {job_id} is not JSON: {e}")
            raise QuestionFetchFailed(str(e)) from e

        questions = parse_questions(payload)
        logger.info(f"Fetched {len(questions)} questions for job {job_id}")
        return questions
