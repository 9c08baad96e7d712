"""Transcript status poll loop.

Drives repeated status checks for one submitted transcript until the
provider reports a terminal state. The loop is bounded by two independent
limits: an attempt ceiling and a wall-clock budget. Delays between checks
ramp linearly and are capped, since polling usually takes many iterations.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from transcription_worker.asr.interface import (
    TranscriptionClient,
    TranscriptionStatus,
    TranscriptState,
)
from transcription_worker.utils.errors import (
    PollExhausted,
    PollTimeout,
    StatusFetchFailed,
)

logger = logging.getLogger(__name__)

MAX_POLL_ATTEMPTS = 60
POLL_TIMEOUT_SECONDS = 600.0
POLL_BASE_DELAY_MS = 2000
POLL_MAX_DELAY_MS = 10000
TEXT_PREVIEW_CHARS = 100


def poll_delay_ms(attempt: int) -> int:
    """Delay in milliseconds before the check that follows attempt N (N >= 1)."""
    return min(POLL_BASE_DELAY_MS * attempt, POLL_MAX_DELAY_MS)


class PollState(str, Enum):
    """States of the poll loop. DONE and FAILED are terminal."""

    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PollOutcome:
    """Terminal outcome of a poll loop run."""

    state: PollState
    attempts: int
    text: str = ""
    reason: str | None = None
    confidence: float | None = None


class TranscriptPoller:
    """Poll a transcript until DONE or FAILED.

    Args:
        client: Transcription client used for status checks.
        max_attempts: Maximum number of status checks, including the one
            that observes a terminal state.
        timeout_seconds: Wall-clock budget for the whole loop.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        client: TranscriptionClient,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        timeout_seconds: float = POLL_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._timeout = timeout_seconds
        self._clock = clock
        self.attempts = 0

    async def run(self, transcript_id: str) -> PollOutcome:
        """Run the loop for one transcript.

        Returns:
            PollOutcome in state DONE (with text, possibly empty) or FAILED
            (with the provider's error reason).

        Raises:
            PollExhausted: If max_attempts checks ran without a terminal state.
            PollTimeout: If the wall-clock budget ran out first.
        """
        deadline = self._clock() + self._timeout
        self.attempts = 0

        while self.attempts < self._max_attempts:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise self._timed_out(transcript_id)

            self.attempts += 1
            attempt = self.attempts
            status: TranscriptionStatus | None = None
            try:
                status = await asyncio.wait_for(
                    self._client.poll_status(transcript_id), timeout=remaining
                )
            except TimeoutError:
                raise self._timed_out(transcript_id) from None
            except StatusFetchFailed as exc:
                logger.warning(
                    "Status check %d/%d for transcript %s failed, will retry: %s",
                    attempt,
                    self._max_attempts,
                    transcript_id,
                    exc,
                    extra={"transcript_id": transcript_id, "attempt": attempt},
                )

            if status is not None:
                outcome = self._interpret(transcript_id, status, attempt)
                if outcome is not None:
                    return outcome

            if attempt >= self._max_attempts:
                break

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise self._timed_out(transcript_id)
            await asyncio.sleep(min(poll_delay_ms(attempt) / 1000, remaining))

        raise PollExhausted(
            f"Polling exhausted: transcript {transcript_id} not finished "
            f"after {self.attempts} status checks",
            attempts=self.attempts,
        )

    def _interpret(
        self, transcript_id: str, status: TranscriptionStatus, attempt: int
    ) -> PollOutcome | None:
        """Map a status snapshot to a terminal outcome, or None to keep polling."""
        if not status.is_terminal:
            logger.debug(
                "Transcript %s in progress (status=%s, check %d/%d)",
                transcript_id,
                status.state,
                attempt,
                self._max_attempts,
            )
            return None

        if status.state == TranscriptState.COMPLETED:
            text = status.text or ""
            if not text.strip():
                logger.warning(
                    "Transcript %s completed with empty text",
                    transcript_id,
                    extra={"transcript_id": transcript_id},
                )
                text = ""
            else:
                preview = text[:TEXT_PREVIEW_CHARS]
                if len(text) > TEXT_PREVIEW_CHARS:
                    preview += "..."
                logger.info(
                    "Transcript %s completed after %d checks "
                    "(confidence=%s, %d chars): '%s'",
                    transcript_id,
                    attempt,
                    status.confidence,
                    len(text),
                    preview,
                    extra={"transcript_id": transcript_id, "attempt": attempt},
                )
            return PollOutcome(
                state=PollState.DONE,
                attempts=attempt,
                text=text,
                confidence=status.confidence,
            )

        reason = f"Transcription error: {status.error_detail}"
        logger.error(
            "Transcript %s failed: %s",
            transcript_id,
            status.error_detail,
            extra={"transcript_id": transcript_id, "attempt": attempt},
        )
        return PollOutcome(state=PollState.FAILED, attempts=attempt, reason=reason)

    def _timed_out(self, transcript_id: str) -> PollTimeout:
        return PollTimeout(
            f"Transcription timeout for transcript {transcript_id} "
            f"after {self._timeout:.0f}s",
            timeout_seconds=self._timeout,
        )
