"""AssemblyAI transcription client implementation.

Wraps the provider's three REST operations (upload, submit, status poll)
with per-attempt wall-clock timeouts. Upload and submit retry with
exponential backoff; status polls are single attempts and leave retry
policy to the poll loop.
"""

import asyncio
import logging
from typing import Any

import httpx

from transcription_worker.asr.interface import TranscriptionClient, TranscriptionStatus
from transcription_worker.utils.errors import (
    ProviderError,
    StatusFetchFailed,
    SubmitFailed,
    UploadFailed,
)
from transcription_worker.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PROVIDER_NAME = "assemblyai"
DEFAULT_BASE_URL = "https://api.assemblyai.com/v2"
REQUEST_TIMEOUT_SECONDS = 30.0

UPLOAD_MAX_ATTEMPTS = 3
UPLOAD_BASE_DELAY_SECONDS = 2.0
UPLOAD_MAX_DELAY_SECONDS = 10.0
UPLOAD_JITTER = 0.5

SUBMIT_MAX_ATTEMPTS = 3
SUBMIT_BASE_DELAY_SECONDS = 1.0

RETRYABLE_EXCEPTIONS = (httpx.HTTPError, TimeoutError, ProviderError)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class AssemblyAIClient(TranscriptionClient):
    """AssemblyAI REST client sharing one connection pool across workers.

    Args:
        api_key: AssemblyAI API key, sent as the ``authorization`` header.
        base_url: API base URL (default production endpoint).
        request_timeout: Wall-clock bound in seconds for one attempt,
            covering connect, send, and body decoding.
        client: Optional pre-built httpx client (tests inject a mock
            transport here).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._request_timeout = request_timeout
        self._client = client or httpx.AsyncClient(timeout=request_timeout)

    def _headers(self, content_type: str = "application/json") -> dict[str, str]:
        return {"authorization": self._api_key, "content-type": content_type}

    async def close(self) -> None:
        """Close the shared HTTP client and release the connection pool."""
        await self._client.aclose()

    async def upload(self, data: bytes) -> str:
        """Upload raw audio bytes.

        Returns:
            The ``upload_url`` handle to pass to submit().

        Raises:
            ValueError: If data is empty.
            UploadFailed: After all attempts fail.
        """
        if not data:
            raise ValueError("audio payload is empty")

        try:
            upload_url = await self._upload_once(data)
        except RETRYABLE_EXCEPTIONS as exc:
            attempts = getattr(exc, "_retry_count", 0) + 1
            raise UploadFailed(
                f"Upload failed after {attempts} attempts: {_describe(exc)}",
                attempts=attempts,
            ) from exc

        logger.info("Uploaded %d bytes to %s", len(data), PROVIDER_NAME)
        return upload_url

    async def submit(self, upload_url: str, language_code: str) -> str:
        """Request a transcript for a previously uploaded file.

        Returns:
            The transcript id used for status polls.

        Raises:
            SubmitFailed: After all attempts fail.
        """
        try:
            transcript_id = await self._submit_once(upload_url, language_code)
        except RETRYABLE_EXCEPTIONS as exc:
            attempts = getattr(exc, "_retry_count", 0) + 1
            raise SubmitFailed(
                f"Submit failed after {attempts} attempts: {_describe(exc)}",
                attempts=attempts,
            ) from exc

        logger.info(
            "Submitted transcript %s (language=%s)",
            transcript_id,
            language_code,
            extra={"transcript_id": transcript_id},
        )
        return transcript_id

    async def poll_status(self, transcript_id: str) -> TranscriptionStatus:
        """Fetch the current status of a transcript. No retries.

        Raises:
            StatusFetchFailed: On transport, timeout, HTTP, or decoding errors.
        """
        url = f"{self._base_url}/transcript/{transcript_id}"
        try:
            body = await self._request_json("GET", url, "Status fetch")
            status = TranscriptionStatus.from_response(body)
        except (*RETRYABLE_EXCEPTIONS, ValueError) as exc:
            raise StatusFetchFailed(
                f"Failed to fetch status for transcript {transcript_id}: "
                f"{_describe(exc)}",
                transcript_id=transcript_id,
            ) from exc

        logger.debug(
            "Transcript %s status: %s",
            transcript_id,
            status.state,
            extra={"transcript_id": transcript_id},
        )
        return status

    @retry_with_backoff(
        max_retries=UPLOAD_MAX_ATTEMPTS - 1,
        base_delay=UPLOAD_BASE_DELAY_SECONDS,
        max_delay=UPLOAD_MAX_DELAY_SECONDS,
        jitter=UPLOAD_JITTER,
        retryable_exceptions=RETRYABLE_EXCEPTIONS,
    )
    async def _upload_once(self, data: bytes) -> str:
        body = await self._request_json(
            "POST",
            f"{self._base_url}/upload",
            "Upload",
            content=data,
            headers=self._headers("application/octet-stream"),
        )
        return self._require_field(body, "upload_url", "Upload")

    @retry_with_backoff(
        max_retries=SUBMIT_MAX_ATTEMPTS - 1,
        base_delay=SUBMIT_BASE_DELAY_SECONDS,
        retryable_exceptions=RETRYABLE_EXCEPTIONS,
    )
    async def _submit_once(self, upload_url: str, language_code: str) -> str:
        body = await self._request_json(
            "POST",
            f"{self._base_url}/transcript",
            "Submit",
            json={"audio_url": upload_url, "language_code": language_code},
        )
        return self._require_field(body, "id", "Submit")

    async def _request_json(
        self, method: str, url: str, operation: str, **kwargs: Any
    ) -> dict[str, Any]:
        """Send one request bounded by the attempt timeout and decode it.

        Raises:
            TimeoutError: If the whole exchange exceeds the attempt timeout.
            httpx.HTTPError: On transport failure.
            ProviderError: On non-2xx status or a non-JSON-object body.
        """
        kwargs.setdefault("headers", self._headers())

        async def _exchange() -> httpx.Response:
            response = await self._client.request(method, url, **kwargs)
            await response.aread()
            return response

        response = await asyncio.wait_for(_exchange(), timeout=self._request_timeout)

        if not response.is_success:
            raise ProviderError(
                f"{operation} failed with status {response.status_code}: "
                f"{response.text}",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{operation} returned a non-JSON body",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict):
            raise ProviderError(
                f"{operation} returned an unexpected body",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            )
        return body

    @staticmethod
    def _require_field(body: dict[str, Any], field: str, operation: str) -> str:
        value = body.get(field)
        if not value or not isinstance(value, str):
            raise ProviderError(
                f"No '{field}' in {operation.lower()} response",
                provider=PROVIDER_NAME,
            )
        return value
