"""Abstract transcription client interface.

Defines the TranscriptionClient ABC and the status model returned by
status polls. Concrete providers (e.g., AssemblyAI) subclass
TranscriptionClient.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


class TranscriptState(str, Enum):
    """Transcript states reported by the provider."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class TranscriptionStatus:
    """One status snapshot for a submitted transcript.

    ``state`` is normalized to lower case. Unknown states are kept
    verbatim and treated as still in progress.
    """

    state: str
    text: str | None = None
    confidence: float | None = None
    error_detail: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (TranscriptState.COMPLETED, TranscriptState.ERROR)

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> TranscriptionStatus:
        """Build a status from a ``GET /transcript/{id}`` response body.

        Raises:
            ValueError: If ``status`` is missing, or ``text``, ``error`` or
                ``confidence`` has the wrong type.
        """
        raw_state = body.get("status")
        if not isinstance(raw_state, str) or not raw_state.strip():
            raise ValueError("Missing 'status' in transcript response")

        for field in ("text", "error"):
            value = body.get(field)
            if value is not None and not isinstance(value, str):
                raise ValueError(
                    f"Invalid '{field}' in transcript response: "
                    f"expected string, got {type(value).__name__}"
                )

        confidence = body.get("confidence")
        if confidence is not None and (
            isinstance(confidence, bool) or not isinstance(confidence, int | float)
        ):
            raise ValueError(
                f"Invalid 'confidence' in transcript response: {confidence!r}"
            )

        return cls(
            state=raw_state.strip().lower(),
            text=body.get("text"),
            confidence=float(confidence) if confidence is not None else None,
            error_detail=body.get("error"),
        )


class TranscriptionClient(ABC):
    """Abstract base class for transcription provider clients.

    Subclasses implement the three remote operations. No state is kept
    between calls beyond the handle and id values threaded by the caller.
    """

    @abstractmethod
    async def upload(self, data: bytes) -> str:
        """Upload raw audio bytes and return the provider's upload handle."""

    @abstractmethod
    async def submit(self, upload_url: str, language_code: str) -> str:
        """Request a transcript for an uploaded file and return its id."""

    @abstractmethod
    async def poll_status(self, transcript_id: str) -> TranscriptionStatus:
        """Fetch the current status of a transcript. Single attempt."""

    async def close(self) -> None:
        """Release network resources held by the client."""
