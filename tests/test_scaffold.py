"""Tests for project scaffold: imports, logger, and custom exceptions."""

import json
import logging
import sys

import pytest

from transcription_worker.observability.logger import StructuredJsonFormatter, setup_logging
from transcription_worker.utils.errors import (
    AudioNotFoundError,
    ConfigError,
    FetchError,
    OuterTimeout,
    PipelineError,
    PollExhausted,
    PollTimeout,
    ProviderError,
    PublishError,
    StatusFetchFailed,
    SubmitFailed,
    UploadFailed,
)


class TestModuleImports:
    """Verify all package modules are importable."""

    def test_subpackage_imports(self) -> None:
        import transcription_worker.asr
        import transcription_worker.observability
        import transcription_worker.queue
        import transcription_worker.storage
        import transcription_worker.utils

        assert transcription_worker.asr is not None
        assert transcription_worker.observability is not None
        assert transcription_worker.queue is not None
        assert transcription_worker.storage is not None
        assert transcription_worker.utils is not None

    def test_entry_point_importable(self) -> None:
        from transcription_worker.main import main

        assert callable(main)


class TestCustomExceptions:
    """Verify custom exception hierarchy and string representations."""

    def test_all_exceptions_inherit_from_pipeline_error(self) -> None:
        exception_classes = [
            ConfigError,
            FetchError,
            AudioNotFoundError,
            ProviderError,
            UploadFailed,
            SubmitFailed,
            StatusFetchFailed,
            PollExhausted,
            PollTimeout,
            OuterTimeout,
            PublishError,
        ]
        for cls in exception_classes:
            assert issubclass(cls, PipelineError), (
                f"{cls.__name__} must inherit from PipelineError"
            )

    def test_not_found_is_a_fetch_error(self) -> None:
        assert issubclass(AudioNotFoundError, FetchError)

    def test_pipeline_error_str_without_task_id(self) -> None:
        assert str(PipelineError("something failed")) == "something failed"

    def test_pipeline_error_str_with_task_id(self) -> None:
        error = PipelineError("something failed", task_id="task-123")
        assert str(error) == "[task=task-123] something failed"

    def test_context_attributes(self) -> None:
        assert UploadFailed("x", attempts=3).attempts == 3
        assert StatusFetchFailed("x", transcript_id="tr-1").transcript_id == "tr-1"
        assert PollTimeout("x", timeout_seconds=600.0).timeout_seconds == 600.0
        assert PublishError("x", key="audio-1").key == "audio-1"
        assert ConfigError("x", setting="PORT").setting == "PORT"
        assert ProviderError("x", status_code=502).status_code == 502


class TestStructuredLogger:
    """Verify structured JSON logger output format."""

    def _format(self, record: logging.LogRecord) -> dict:
        return json.loads(StructuredJsonFormatter().format(record))

    def _record(self, msg: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            name="test.logger",
            level=level,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=(),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_output_is_valid_json(self) -> None:
        parsed = self._format(self._record("test message"))
        assert parsed["message"] == "test message"
        assert parsed["severity"] == "INFO"
        assert parsed["logger"] == "test.logger"
        assert "timestamp" in parsed

    def test_includes_extra_fields(self) -> None:
        parsed = self._format(
            self._record("x", task_id="task-1", audio_id="audio-1", attempt=2)
        )
        assert parsed["task_id"] == "task-1"
        assert parsed["audio_id"] == "audio-1"
        assert parsed["attempt"] == 2
        assert "transcript_id" not in parsed

    def test_includes_exception_text(self) -> None:
        try:
            raise RuntimeError("kaboom")
        except RuntimeError:
            record = self._record("failed", level=logging.ERROR)
            record.exc_info = sys.exc_info()
        parsed = self._format(record)
        assert parsed["severity"] == "ERROR"
        assert parsed["exception"] == "kaboom"

    def test_setup_logging_installs_json_handler(self, capsys: pytest.CaptureFixture[str]) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging()
            logging.getLogger("test.setup").info("hello")
            parsed = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
            assert parsed["message"] == "hello"
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)
