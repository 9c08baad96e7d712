"""Task queue consumer for transcription jobs.

Pulls job messages from the task queue via its HTTP pull API with a small
fixed pool of worker loops, one job in flight per worker. Messages are
validated, dispatched to the pipeline, then acked once the result has been
published, or nacked so the queue redelivers them. Messages that cannot be
parsed into a Job are acked and dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CONSUMER_GROUP = "audio-service-group"
DEFAULT_CONCURRENCY = 3
# Must outlive the 10 minute job timeout so the lease does not lapse mid-job
DEFAULT_VISIBILITY_TIMEOUT_MS = 900_000
AUDIO_TYPES = ("AUDIO_FILE", "VOICE_MESSAGE", "VIDEO_NOTE")

Acknowledge = Callable[[], Awaitable[None]]
DispatchFn = Callable[["Job", Acknowledge], Awaitable[bool]]


def _pick(body: dict[str, Any], *keys: str) -> Any:
    """Return the first present value among camelCase/snake_case spellings."""
    for key in keys:
        if key in body:
            return body[key]
    return None


def _parse_created_at(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid 'createdAt': {value!r}")
    if isinstance(value, int | float):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(
                f"Invalid 'createdAt' ISO 8601 format: '{value}'"
            ) from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Invalid 'createdAt': {value!r}")


@dataclass(frozen=True)
class Job:
    """Validated transcription job deserialized from a task queue message."""

    task_id: str
    audio_id: str
    chat_id: int
    created_at: datetime | None = None
    audio_url: str | None = None
    audio_type: str = "VOICE_MESSAGE"

    @classmethod
    def from_message_body(cls, body: dict[str, Any]) -> Job:
        """Deserialize and validate a queue message body.

        Accepts the camelCase task record (taskId, audioId, chatId,
        createdAt, audioUrl, audioType) as well as snake_case keys.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        task_id = _pick(body, "taskId", "task_id")
        if not task_id or not isinstance(task_id, str):
            raise ValueError("Missing or invalid 'taskId' in message")

        audio_id = _pick(body, "audioId", "audio_id")
        if not audio_id or not isinstance(audio_id, str):
            raise ValueError("Missing or invalid 'audioId' in message")

        raw_chat_id = _pick(body, "chatId", "chat_id")
        if isinstance(raw_chat_id, bool) or not isinstance(raw_chat_id, int | str):
            raise ValueError("Missing or invalid 'chatId' in message")
        try:
            chat_id = int(raw_chat_id)
        except ValueError as exc:
            raise ValueError(f"Invalid 'chatId': '{raw_chat_id}'") from exc

        audio_type = _pick(body, "audioType", "audio_type") or "VOICE_MESSAGE"
        if audio_type not in AUDIO_TYPES:
            raise ValueError(
                f"Invalid 'audioType': '{audio_type}'. "
                f"Must be one of {', '.join(AUDIO_TYPES)}"
            )

        return cls(
            task_id=task_id,
            audio_id=audio_id,
            chat_id=chat_id,
            created_at=_parse_created_at(_pick(body, "createdAt", "created_at")),
            audio_url=_pick(body, "audioUrl", "audio_url"),
            audio_type=audio_type,
        )

    def queue_wait_seconds(self, now: datetime | None = None) -> float:
        """Seconds between job creation and now; 0.0 when unknown."""
        if self.created_at is None:
            return 0.0
        now = now or datetime.now(UTC)
        return max((now - self.created_at).total_seconds(), 0.0)


@dataclass
class QueueMessage:
    """A message leased from the task queue."""

    message_id: str
    lease_id: str
    body: dict[str, Any]


class QueueConsumer:
    """HTTP pull consumer running a fixed pool of worker loops.

    Configuration from environment variables:
        QUEUE_API_URL, TASK_QUEUE_ID, QUEUE_API_TOKEN, CONSUMER_GROUP
    """

    def __init__(
        self,
        queue_api_url: str | None = None,
        queue_id: str | None = None,
        api_token: str | None = None,
        consumer_group: str | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_interval: float = 5.0,
        visibility_timeout_ms: int = DEFAULT_VISIBILITY_TIMEOUT_MS,
    ) -> None:
        self.queue_api_url = (
            queue_api_url or os.environ.get("QUEUE_API_URL", "")
        ).rstrip("/")
        self.queue_id = queue_id or os.environ.get("TASK_QUEUE_ID", "")
        self.api_token = api_token or os.environ.get("QUEUE_API_TOKEN", "")
        self.consumer_group = consumer_group or os.environ.get(
            "CONSUMER_GROUP", DEFAULT_CONSUMER_GROUP
        )
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.visibility_timeout_ms = visibility_timeout_ms
        self._running = False

    def _headers(self) -> dict[str, str]:
        """Build authentication headers for the queue API."""
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _url(self, action: str) -> str:
        return f"{self.queue_api_url}/queues/{self.queue_id}/messages/{action}"

    async def _pull_messages(
        self, client: httpx.AsyncClient, batch_size: int = 1
    ) -> list[QueueMessage]:
        """Lease up to batch_size messages from the task queue.

        Returns:
            List of QueueMessage objects. Empty list on error or no messages.
        """
        try:
            response = await client.post(
                self._url("pull"),
                headers=self._headers(),
                json={
                    "batch_size": batch_size,
                    "visibility_timeout_ms": self.visibility_timeout_ms,
                    "consumer_group": self.consumer_group,
                },
                timeout=30.0,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Queue pull failed for %s: %s", self.queue_id, exc)
            return []

        data = response.json()
        messages_data = data.get("result", {}).get("messages", [])

        messages: list[QueueMessage] = []
        for msg in messages_data:
            try:
                body = msg["body"]
                if isinstance(body, str):
                    # Bodies may arrive as JSON-encoded strings
                    try:
                        body = json.loads(body)
                    except ValueError:
                        logger.warning("Undecodable body in message %s", msg["id"])
                        body = {}
                messages.append(
                    QueueMessage(
                        message_id=msg["id"],
                        lease_id=msg["lease_id"],
                        body=body if isinstance(body, dict) else {},
                    )
                )
            except (KeyError, TypeError) as exc:
                logger.warning("Malformed queue message structure: %s", exc)

        return messages

    async def _ack_message(self, lease_id: str, client: httpx.AsyncClient) -> None:
        """Acknowledge a message whose result has been published."""
        try:
            response = await client.post(
                self._url("ack"),
                headers=self._headers(),
                json={"acks": [{"lease_id": lease_id}]},
                timeout=30.0,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Ack failed for lease %s: %s", lease_id, exc)

    async def _nack_message(self, lease_id: str, client: httpx.AsyncClient) -> None:
        """Negative-acknowledge a message (return to queue for redelivery)."""
        try:
            response = await client.post(
                self._url("nack"),
                headers=self._headers(),
                json={"nacks": [{"lease_id": lease_id}]},
                timeout=30.0,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Nack failed for lease %s: %s", lease_id, exc)

    async def _process_message(
        self,
        message: QueueMessage,
        dispatch_fn: DispatchFn,
        client: httpx.AsyncClient,
    ) -> None:
        """Validate, dispatch, and ack/nack a single message.

        Args:
            message: The leased queue message.
            dispatch_fn: Async callable(job, acknowledge) -> bool. It must
                call acknowledge() once the result is published and return
                whether it did.
            client: Shared httpx client.
        """
        try:
            job = Job.from_message_body(message.body)
        except ValueError as exc:
            # Redelivery cannot fix a malformed body
            logger.error(
                "Dropping invalid message %s: %s", message.message_id, exc
            )
            await self._ack_message(message.lease_id, client)
            return

        logger.info(
            "Received task %s for audio %s (created_at=%s, type=%s)",
            job.task_id,
            job.audio_id,
            job.created_at.isoformat() if job.created_at else None,
            job.audio_type,
            extra={"task_id": job.task_id, "audio_id": job.audio_id},
        )

        async def acknowledge() -> None:
            await self._ack_message(message.lease_id, client)

        try:
            acknowledged = await dispatch_fn(job, acknowledge)
        except Exception:
            logger.error(
                "Dispatch failed for task %s",
                job.task_id,
                exc_info=True,
                extra={"task_id": job.task_id, "audio_id": job.audio_id},
            )
            await self._nack_message(message.lease_id, client)
            return

        if not acknowledged:
            logger.warning(
                "Task %s left unacknowledged, releasing for redelivery",
                job.task_id,
                extra={"task_id": job.task_id, "audio_id": job.audio_id},
            )
            await self._nack_message(message.lease_id, client)

    async def poll_once(
        self, dispatch_fn: DispatchFn, client: httpx.AsyncClient
    ) -> int:
        """Lease and process at most one message.

        Returns:
            Number of messages processed (0 or 1).
        """
        messages = await self._pull_messages(client, batch_size=1)
        for msg in messages:
            await self._process_message(msg, dispatch_fn, client)
        return len(messages)

    async def _worker_loop(
        self, worker_id: int, dispatch_fn: DispatchFn, client: httpx.AsyncClient
    ) -> None:
        logger.info("Worker %d started", worker_id)
        while self._running:
            try:
                count = await self.poll_once(dispatch_fn, client)
            except Exception:
                logger.error(
                    "Unexpected error in worker %d poll cycle",
                    worker_id,
                    exc_info=True,
                )
                count = 0

            if count == 0 and self._running:
                await asyncio.sleep(self.poll_interval)
        logger.info("Worker %d stopped", worker_id)

    async def run(self, dispatch_fn: DispatchFn) -> None:
        """Start the worker pool. Runs until stopped.

        Args:
            dispatch_fn: Async callable(job, acknowledge) -> bool.
        """
        self._running = True
        logger.info(
            "Queue consumer starting %d workers (group=%s)",
            self.concurrency,
            self.consumer_group,
        )
        async with httpx.AsyncClient() as client:
            await asyncio.gather(
                *(
                    self._worker_loop(worker_id, dispatch_fn, client)
                    for worker_id in range(self.concurrency)
                )
            )

    def stop(self) -> None:
        """Signal the worker loops to stop after their in-flight job."""
        self._running = False
        logger.info("Queue consumer stopping")
