"""Job orchestrator for the transcription pipeline.

Contains the Result model published for every job, and JobOrchestrator,
which runs fetch -> upload -> submit -> poll for one Job under a single
backstop timeout and always turns the outcome into exactly one Result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from transcription_worker.asr.interface import TranscriptionClient
from transcription_worker.asr.poller import PollState, TranscriptPoller
from transcription_worker.observability.metrics import (
    JobMetrics,
    StageTimer,
    log_job_metrics,
)
from transcription_worker.queue.consumer import Job
from transcription_worker.storage.fetcher import BlobFetcher
from transcription_worker.utils.errors import FetchError, OuterTimeout, PipelineError

logger = logging.getLogger(__name__)

JOB_TIMEOUT_SECONDS = 600.0
FAILURE_PREFIX = "Transcription failed: "

STAGES = ("fetch", "upload", "submit", "poll")


class ResultStatus(str, Enum):
    """Terminal job status. Values are the result queue wire values."""

    SUCCESS = "SUCCESSFULLY_DECRYPTED"
    FAILURE = "DECRYPTION_FAILED"


@dataclass(frozen=True)
class Result:
    """Terminal outcome of exactly one Job."""

    task_id: str
    audio_id: str
    chat_id: int
    status: ResultStatus
    processed_at: datetime
    text: str | None = None
    error_message: str | None = None

    @classmethod
    def success(cls, job: Job, text: str) -> Result:
        return cls(
            task_id=job.task_id,
            audio_id=job.audio_id,
            chat_id=job.chat_id,
            status=ResultStatus.SUCCESS,
            processed_at=datetime.now(UTC),
            text=text,
        )

    @classmethod
    def failure(cls, job: Job, error_message: str) -> Result:
        return cls(
            task_id=job.task_id,
            audio_id=job.audio_id,
            chat_id=job.chat_id,
            status=ResultStatus.FAILURE,
            processed_at=datetime.now(UTC),
            error_message=error_message,
        )

    def to_message(self) -> dict[str, Any]:
        """Render the result record published to the result queue."""
        return {
            "taskId": self.task_id,
            "audioId": self.audio_id,
            "chatId": self.chat_id,
            "decryptedText": self.text,
            "status": self.status.value,
            "processedAt": int(self.processed_at.timestamp() * 1000),
            "errorMessage": self.error_message,
        }


@dataclass
class _JobProgress:
    """Values observed while a job runs, kept for metrics."""

    audio_size_bytes: int = 0
    transcript_id: str = ""
    poll_attempts: int = 0
    stage_timings: dict[str, float] = field(default_factory=dict)


class JobOrchestrator:
    """Run the transcription pipeline for one job at a time.

    Args:
        fetcher: Blob fetcher for raw audio bytes.
        client: Transcription provider client (shared across jobs).
        language_code: Fixed target language sent with every submission.
        job_timeout_seconds: Backstop timeout around all four stages.
        poller_factory: Builds a poll loop for a client; one per job.
    """

    def __init__(
        self,
        fetcher: BlobFetcher,
        client: TranscriptionClient,
        language_code: str,
        job_timeout_seconds: float = JOB_TIMEOUT_SECONDS,
        poller_factory: Callable[[TranscriptionClient], TranscriptPoller] = TranscriptPoller,
    ) -> None:
        self._fetcher = fetcher
        self._client = client
        self._language_code = language_code
        self._timeout = job_timeout_seconds
        self._poller_factory = poller_factory

    async def process(self, job: Job, queue_wait_time_seconds: float = 0.0) -> Result:
        """Process one job and return its Result. Never raises for job failures.

        Args:
            job: The job to process.
            queue_wait_time_seconds: Time the job spent queued, for metrics.

        Returns:
            Result with status SUCCESS and the transcript text, or FAILURE
            with an error message.
        """
        wall_start = time.monotonic()
        progress = _JobProgress()
        log_extra = {"task_id": job.task_id, "audio_id": job.audio_id}

        try:
            text = await asyncio.wait_for(
                self._run_stages(job, progress), timeout=self._timeout
            )
        except TimeoutError:
            cause = OuterTimeout(
                f"Job exceeded {self._timeout:.0f}s",
                timeout_seconds=self._timeout,
            )
            result = Result.failure(job, f"{FAILURE_PREFIX}{cause}")
            logger.error(
                "Task %s timed out at stage '%s'",
                job.task_id,
                _determine_error_stage(progress.stage_timings),
                extra=log_extra,
            )
        except PipelineError as exc:
            result = Result.failure(job, f"{FAILURE_PREFIX}{exc}")
            logger.error(
                "Task %s failed at stage '%s': %s",
                job.task_id,
                _determine_error_stage(progress.stage_timings),
                exc,
                extra=log_extra,
            )
        except Exception as exc:
            result = Result.failure(job, f"{FAILURE_PREFIX}{exc}")
            logger.error(
                "Task %s failed unexpectedly at stage '%s'",
                job.task_id,
                _determine_error_stage(progress.stage_timings),
                exc_info=True,
                extra=log_extra,
            )
        else:
            result = Result.success(job, text)
            logger.info("Task %s transcribed", job.task_id, extra=log_extra)

        log_job_metrics(
            _build_job_metrics(
                job,
                result,
                progress,
                wall_time=time.monotonic() - wall_start,
                queue_wait_time_seconds=queue_wait_time_seconds,
            )
        )
        return result

    async def _run_stages(self, job: Job, progress: _JobProgress) -> str:
        """Execute the four stages in order. Raises on failure.

        Returns:
            Transcript text (possibly empty).
        """
        timings = progress.stage_timings

        with StageTimer("fetch", timings):
            audio_data = await self._fetcher.fetch(job.audio_id)
            if not audio_data:
                raise FetchError(
                    f"Audio '{job.audio_id}' is empty", audio_id=job.audio_id
                )
        progress.audio_size_bytes = len(audio_data)

        with StageTimer("upload", timings):
            upload_url = await self._client.upload(audio_data)

        with StageTimer("submit", timings):
            transcript_id = await self._client.submit(upload_url, self._language_code)
        progress.transcript_id = transcript_id

        poller = self._poller_factory(self._client)
        try:
            with StageTimer("poll", timings):
                outcome = await poller.run(transcript_id)
                if outcome.state is PollState.FAILED:
                    raise PipelineError(outcome.reason or "Transcription error")
        finally:
            progress.poll_attempts = poller.attempts

        return outcome.text


def _determine_error_stage(stage_timings: dict[str, float]) -> str:
    """Name the stage a job stopped in, based on recorded timings.

    A stage recorded with the ``_<stage>_failed`` sentinel raised; otherwise
    the first stage without a timing was still running.
    """
    for stage in STAGES:
        if f"_{stage}_failed" in stage_timings:
            return stage
    for stage in STAGES:
        if stage not in stage_timings:
            return stage
    return "unknown"


def _build_job_metrics(
    job: Job,
    result: Result,
    progress: _JobProgress,
    wall_time: float,
    queue_wait_time_seconds: float = 0.0,
) -> JobMetrics:
    """Build a JobMetrics record. Uses 0.0 for stages that did not run."""
    timings = progress.stage_timings
    failed = result.status is ResultStatus.FAILURE

    def _duration(stage: str) -> float:
        return timings.get(stage, timings.get(f"_{stage}_failed", 0.0))

    return JobMetrics(
        task_id=job.task_id,
        audio_id=job.audio_id,
        status="failed" if failed else "completed",
        processing_wall_time_seconds=wall_time,
        queue_wait_time_seconds=queue_wait_time_seconds,
        audio_size_bytes=progress.audio_size_bytes,
        transcript_id=progress.transcript_id,
        poll_attempts=progress.poll_attempts,
        fetch_duration_seconds=_duration("fetch"),
        upload_duration_seconds=_duration("upload"),
        submit_duration_seconds=_duration("submit"),
        poll_duration_seconds=_duration("poll"),
        error_stage=_determine_error_stage(timings) if failed else None,
        error_message=result.error_message,
    )
