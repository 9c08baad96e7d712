"""Custom exception hierarchy for the transcription worker.

All exceptions inherit from PipelineError, enabling targeted handling
at job boundaries while preserving specific failure context.
"""


class PipelineError(Exception):
    """Base exception for all transcription pipeline errors."""

    def __init__(self, message: str, task_id: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.task_id:
            return f"[task={self.task_id}] {super().__str__()}"
        return super().__str__()


class ConfigError(PipelineError):
    """Raised when a required setting is missing or malformed."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        self.setting = setting
        super().__init__(message)


class FetchError(PipelineError):
    """Raised when reading audio bytes from the blob store fails."""

    def __init__(
        self,
        message: str,
        task_id: str | None = None,
        audio_id: str | None = None,
    ) -> None:
        self.audio_id = audio_id
        super().__init__(message, task_id)


class AudioNotFoundError(FetchError):
    """Raised when the blob store has no object for the audio id."""


class ProviderError(PipelineError):
    """Raised when the transcription provider returns an unusable response."""

    def __init__(
        self,
        message: str,
        task_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, task_id)


class UploadFailed(PipelineError):
    """Raised when every upload attempt to the provider failed."""

    def __init__(
        self, message: str, task_id: str | None = None, attempts: int = 0
    ) -> None:
        self.attempts = attempts
        super().__init__(message, task_id)


class SubmitFailed(PipelineError):
    """Raised when every transcript submission attempt failed."""

    def __init__(
        self, message: str, task_id: str | None = None, attempts: int = 0
    ) -> None:
        self.attempts = attempts
        super().__init__(message, task_id)


class StatusFetchFailed(PipelineError):
    """Raised when a single status poll could not be completed.

    Transient: the poll loop logs it and keeps polling.
    """

    def __init__(
        self,
        message: str,
        task_id: str | None = None,
        transcript_id: str | None = None,
    ) -> None:
        self.transcript_id = transcript_id
        super().__init__(message, task_id)


class PollExhausted(PipelineError):
    """Raised when the poll loop hits its attempt ceiling."""

    def __init__(
        self, message: str, task_id: str | None = None, attempts: int = 0
    ) -> None:
        self.attempts = attempts
        super().__init__(message, task_id)


class PollTimeout(PipelineError):
    """Raised when the poll loop exceeds its wall-clock budget."""

    def __init__(
        self,
        message: str,
        task_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(message, task_id)


class OuterTimeout(PipelineError):
    """Raised when a whole job exceeds its backstop timeout."""

    def __init__(
        self,
        message: str,
        task_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(message, task_id)


class PublishError(PipelineError):
    """Raised when a result cannot be handed to the result queue."""

    def __init__(
        self,
        message: str,
        task_id: str | None = None,
        key: str | None = None,
    ) -> None:
        self.key = key
        super().__init__(message, task_id)
