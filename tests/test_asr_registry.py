"""Tests for transcription client registry and provider selection."""

import pytest

from transcription_worker.asr import get_transcription_client
from transcription_worker.asr.assemblyai import AssemblyAIClient
from transcription_worker.asr.interface import TranscriptionClient, TranscriptionStatus
from transcription_worker.asr.registry import TRANSCRIPTION_CLIENTS
from transcription_worker.utils.errors import ProviderError


class TestGetTranscriptionClient:
    """Tests for get_transcription_client factory function."""

    def test_assemblyai_returns_instance(self) -> None:
        client = get_transcription_client("assemblyai", api_key="key")
        assert isinstance(client, AssemblyAIClient)
        assert isinstance(client, TranscriptionClient)

    def test_kwargs_passed_to_constructor(self) -> None:
        client = get_transcription_client(
            "assemblyai", api_key="key", base_url="https://proxy/v2"
        )
        assert client._base_url == "https://proxy/v2"

    def test_unknown_provider_raises_provider_error(self) -> None:
        with pytest.raises(ProviderError, match="Unknown transcription provider: 'whisper'"):
            get_transcription_client("whisper")

    def test_error_message_lists_available_providers(self) -> None:
        with pytest.raises(ProviderError) as exc_info:
            get_transcription_client("nonexistent")
        message = str(exc_info.value)
        assert "assemblyai" in message
        assert "Available:" in message
        assert exc_info.value.provider == "nonexistent"

    def test_mock_client_retrievable_from_registry(self) -> None:
        """A dynamically added client class is retrievable."""

        class MockClient(TranscriptionClient):
            async def upload(self, data: bytes) -> str:
                return "upload"

            async def submit(self, upload_url: str, language_code: str) -> str:
                return "tr"

            async def poll_status(self, transcript_id: str) -> TranscriptionStatus:
                return TranscriptionStatus(state="completed", text="")

        original = TRANSCRIPTION_CLIENTS.copy()
        try:
            TRANSCRIPTION_CLIENTS["mock"] = MockClient
            assert isinstance(get_transcription_client("mock"), MockClient)
        finally:
            TRANSCRIPTION_CLIENTS.clear()
            TRANSCRIPTION_CLIENTS.update(original)


class TestTranscriptionStatus:
    def test_from_response_normalizes_state(self) -> None:
        status = TranscriptionStatus.from_response({"status": " Processing "})
        assert status.state == "processing"

    def test_from_response_requires_status(self) -> None:
        with pytest.raises(ValueError, match="status"):
            TranscriptionStatus.from_response({"status": ""})

    def test_abstract_client_cannot_be_instantiated(self) -> None:
        with pytest.raises(TypeError):
            TranscriptionClient()  # type: ignore[abstract]
