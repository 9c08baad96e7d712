"""Result emitter for the result queue.

Publishes each terminal Result keyed by its audio id, so results for the
same audio asset share an ordering domain, and acknowledges the inbound
job only once the publish has succeeded.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable

import httpx

from transcription_worker.pipeline import Result
from transcription_worker.utils.errors import PublishError
from transcription_worker.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PUBLISH_MAX_RETRIES = 2
PUBLISH_BASE_DELAY_SECONDS = 1.0


class ResultEmitter:
    """Publishes Results to the result queue via its HTTP send API.

    Configuration from environment variables:
        QUEUE_API_URL, RESULT_QUEUE_ID, QUEUE_API_TOKEN
    """

    def __init__(
        self,
        queue_api_url: str | None = None,
        queue_id: str | None = None,
        api_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.queue_api_url = (
            queue_api_url or os.environ.get("QUEUE_API_URL", "")
        ).rstrip("/")
        self.queue_id = queue_id or os.environ.get("RESULT_QUEUE_ID", "")
        self.api_token = api_token or os.environ.get("QUEUE_API_TOKEN", "")
        self._client = client or httpx.AsyncClient(timeout=30.0)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def publish(self, result: Result) -> None:
        """Send one result to the result queue, keyed by audio id.

        Raises:
            PublishError: If every attempt fails.
        """
        try:
            await self._send(result)
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            raise PublishError(
                f"Result publish failed for audio '{result.audio_id}': {exc}",
                task_id=result.task_id,
                key=result.audio_id,
            ) from exc

        logger.info(
            "Published %s result for task %s",
            result.status.name,
            result.task_id,
            extra={"task_id": result.task_id, "audio_id": result.audio_id},
        )

    async def emit(
        self, result: Result, acknowledge: Callable[[], Awaitable[None]]
    ) -> bool:
        """Publish a result, then acknowledge the inbound job.

        A failed publish is logged and the job is left unacknowledged so the
        task queue redelivers it.

        Returns:
            True if the result was published and the job acknowledged.
        """
        try:
            await self.publish(result)
        except PublishError as exc:
            logger.error(
                "Failed to publish result for task %s (audio %s): %s",
                result.task_id,
                result.audio_id,
                exc,
                extra={
                    "task_id": result.task_id,
                    "audio_id": result.audio_id,
                    "error": str(exc),
                },
            )
            return False

        await acknowledge()
        return True

    @retry_with_backoff(
        max_retries=PUBLISH_MAX_RETRIES,
        base_delay=PUBLISH_BASE_DELAY_SECONDS,
        retryable_exceptions=(httpx.HTTPStatusError, httpx.RequestError),
    )
    async def _send(self, result: Result) -> None:
        url = f"{self.queue_api_url}/queues/{self.queue_id}/messages"
        response = await self._client.post(
            url,
            headers=self._headers(),
            json={
                "key": result.audio_id,
                "body": result.to_message(),
                "content_type": "json",
            },
        )
        response.raise_for_status()
