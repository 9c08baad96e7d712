"""Transcription provider registry with configuration-driven selection.

Maps provider name strings to client classes. Use get_transcription_client()
to instantiate a client by name with provider-specific configuration.
"""

from transcription_worker.asr.assemblyai import AssemblyAIClient
from transcription_worker.asr.interface import TranscriptionClient
from transcription_worker.utils.errors import ProviderError

TRANSCRIPTION_CLIENTS: dict[str, type[TranscriptionClient]] = {
    "assemblyai": AssemblyAIClient,
}


def get_transcription_client(provider: str, **kwargs: object) -> TranscriptionClient:
    """Create a transcription client instance by provider name.

    Args:
        provider: Provider name (e.g., "assemblyai").
        **kwargs: Client-specific configuration passed to the constructor.

    Returns:
        An initialized TranscriptionClient instance.

    Raises:
        ProviderError: If the provider name is not registered.
    """
    client_cls = TRANSCRIPTION_CLIENTS.get(provider)
    if not client_cls:
        available = ", ".join(sorted(TRANSCRIPTION_CLIENTS.keys()))
        raise ProviderError(
            f"Unknown transcription provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return client_cls(**kwargs)
