"""Worker configuration loaded from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from transcription_worker.asr.assemblyai import DEFAULT_BASE_URL
from transcription_worker.pipeline import JOB_TIMEOUT_SECONDS
from transcription_worker.queue.consumer import DEFAULT_CONCURRENCY, DEFAULT_CONSUMER_GROUP
from transcription_worker.storage.fetcher import DEFAULT_MAX_WORKERS
from transcription_worker.utils.errors import ConfigError

REQUIRED_SETTINGS = (
    "TRANSCRIPTION_API_KEY",
    "BLOB_ENDPOINT",
    "BLOB_BUCKET",
    "QUEUE_API_URL",
    "TASK_QUEUE_ID",
    "RESULT_QUEUE_ID",
)


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got '{raw}'", setting=name) from exc
    if value < 1:
        raise ConfigError(f"{name} must be positive, got {value}", setting=name)
    return value


@dataclass(frozen=True)
class WorkerConfig:
    """Root configuration for one worker process."""

    transcription_api_key: str
    blob_endpoint: str
    blob_bucket: str
    queue_api_url: str
    task_queue_id: str
    result_queue_id: str
    transcription_provider: str = "assemblyai"
    transcription_api_url: str = DEFAULT_BASE_URL
    language_code: str = "ru"
    blob_access_key_id: str = ""
    blob_secret_access_key: str = ""
    queue_api_token: str = ""
    consumer_group: str = DEFAULT_CONSUMER_GROUP
    worker_concurrency: int = DEFAULT_CONCURRENCY
    blob_fetch_workers: int = DEFAULT_MAX_WORKERS
    job_timeout_seconds: float = JOB_TIMEOUT_SECONDS
    port: int = 8080

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> WorkerConfig:
        """Load configuration from environment variables.

        Raises:
            ConfigError: If a required variable is missing or a numeric
                variable is malformed.
        """
        env = os.environ if env is None else env
        for name in REQUIRED_SETTINGS:
            if not env.get(name):
                raise ConfigError(f"{name} is required", setting=name)

        return cls(
            transcription_api_key=env["TRANSCRIPTION_API_KEY"],
            blob_endpoint=env["BLOB_ENDPOINT"],
            blob_bucket=env["BLOB_BUCKET"],
            queue_api_url=env["QUEUE_API_URL"],
            task_queue_id=env["TASK_QUEUE_ID"],
            result_queue_id=env["RESULT_QUEUE_ID"],
            transcription_provider=env.get("TRANSCRIPTION_PROVIDER", "assemblyai"),
            transcription_api_url=env.get("TRANSCRIPTION_API_URL", DEFAULT_BASE_URL),
            language_code=env.get("TRANSCRIPTION_LANGUAGE", "ru"),
            blob_access_key_id=env.get("BLOB_ACCESS_KEY_ID", ""),
            blob_secret_access_key=env.get("BLOB_SECRET_ACCESS_KEY", ""),
            queue_api_token=env.get("QUEUE_API_TOKEN", ""),
            consumer_group=env.get("CONSUMER_GROUP", DEFAULT_CONSUMER_GROUP),
            worker_concurrency=_int_setting(
                env, "WORKER_CONCURRENCY", DEFAULT_CONCURRENCY
            ),
            blob_fetch_workers=_int_setting(
                env, "BLOB_FETCH_WORKERS", DEFAULT_MAX_WORKERS
            ),
            job_timeout_seconds=float(
                _int_setting(env, "JOB_TIMEOUT_SECONDS", int(JOB_TIMEOUT_SECONDS))
            ),
            port=_int_setting(env, "PORT", 8080),
        )
