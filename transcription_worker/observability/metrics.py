"""Per-job processing metrics.

Provides the JobMetrics dataclass, a StageTimer context manager for
measuring pipeline stage durations, and log_job_metrics() for emitting
metrics as one structured JSON line on stdout.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime


@dataclass
class JobMetrics:
    """All metrics collected for a single job run."""

    task_id: str
    audio_id: str
    status: str
    processing_wall_time_seconds: float
    queue_wait_time_seconds: float
    audio_size_bytes: int
    transcript_id: str
    poll_attempts: int
    fetch_duration_seconds: float
    upload_duration_seconds: float
    submit_duration_seconds: float
    poll_duration_seconds: float
    error_stage: str | None = None
    error_message: str | None = None


class StageTimer:
    """Context manager that records the wall-clock duration of a stage.

    Completed stages are stored in ``timings`` under their name; a stage
    that raised is stored under ``_<name>_failed`` instead.

    Usage:
        timings: dict[str, float] = {}
        with StageTimer("upload", timings):
            await do_work()
    """

    def __init__(self, stage_name: str, timings: dict[str, float]) -> None:
        self.stage_name = stage_name
        self.duration_seconds: float = 0.0
        self._timings = timings
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.duration_seconds = time.monotonic() - self._mono_start
        if exc_type is not None:
            self._timings[f"_{self.stage_name}_failed"] = self.duration_seconds
        else:
            self._timings[self.stage_name] = self.duration_seconds


def log_job_metrics(metrics: JobMetrics) -> None:
    """Emit job metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated JobMetrics dataclass.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "job_completion",
        **asdict(metrics),
    }
    print(json.dumps(entry, ensure_ascii=False))
