"""Tests for BlobFetcher."""

import threading

import pytest

from transcription_worker.storage.fetcher import BlobFetcher
from transcription_worker.utils.errors import AudioNotFoundError, FetchError


class RecordingStore:
    """Blocking store stub that records the thread each read runs on."""

    def __init__(self, data: dict[str, bytes] | None = None, error: Exception | None = None):
        self.data = data or {}
        self.error = error
        self.threads: list[str] = []

    def get(self, audio_id: str) -> bytes:
        self.threads.append(threading.current_thread().name)
        if self.error is not None:
            raise self.error
        return self.data[audio_id]


@pytest.fixture
def make_fetcher():
    fetchers: list[BlobFetcher] = []

    def _make(store, **kwargs) -> BlobFetcher:
        fetcher = BlobFetcher(store, **kwargs)
        fetchers.append(fetcher)
        return fetcher

    yield _make
    for fetcher in fetchers:
        fetcher.shutdown()


class TestBlobFetcher:
    async def test_fetch_returns_bytes(self, make_fetcher) -> None:
        fetcher = make_fetcher(RecordingStore({"audio-1": b"raw"}))
        assert await fetcher.fetch("audio-1") == b"raw"

    async def test_reads_run_on_fetch_pool(self, make_fetcher) -> None:
        store = RecordingStore({"audio-1": b"raw"})
        fetcher = make_fetcher(store, max_workers=2)

        await fetcher.fetch("audio-1")

        assert store.threads[0].startswith("blob-fetch")
        assert store.threads[0] != threading.current_thread().name

    async def test_fetch_error_propagates_unchanged(self, make_fetcher) -> None:
        error = AudioNotFoundError("Audio 'x' not found", audio_id="x")
        fetcher = make_fetcher(RecordingStore(error=error))

        with pytest.raises(AudioNotFoundError) as exc_info:
            await fetcher.fetch("x")
        assert exc_info.value is error

    async def test_os_error_wrapped(self, make_fetcher) -> None:
        fetcher = make_fetcher(RecordingStore(error=ConnectionResetError("reset")))

        with pytest.raises(FetchError, match="reset") as exc_info:
            await fetcher.fetch("audio-1")
        assert exc_info.value.audio_id == "audio-1"
