"""Blob fetcher that keeps blocking storage reads off the event loop.

Blob store reads run on a dedicated, fixed-size thread pool so slow storage
cannot stall the coroutines waiting on provider network calls.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from transcription_worker.utils.errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class BlobStore(Protocol):
    def get(self, audio_id: str) -> bytes: ...


class BlobFetcher:
    """Async facade over a blocking BlobStore.

    Args:
        store: Blocking store exposing get(audio_id) -> bytes.
        max_workers: Size of the dedicated fetch thread pool.
    """

    def __init__(self, store: BlobStore, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self._store = store
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="blob-fetch"
        )

    async def fetch(self, audio_id: str) -> bytes:
        """Read the bytes for audio_id on the fetch pool.

        Raises:
            FetchError: If the store fails (AudioNotFoundError when missing).
        """
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(self._executor, self._store.get, audio_id)
        except FetchError:
            raise
        except OSError as exc:
            raise FetchError(
                f"I/O error fetching audio '{audio_id}': {exc}", audio_id=audio_id
            ) from exc

        logger.info(
            "Fetched %d bytes for audio %s",
            len(data),
            audio_id,
            extra={"audio_id": audio_id},
        )
        return data

    def shutdown(self) -> None:
        """Stop the fetch pool, waiting for in-flight reads."""
        self._executor.shutdown(wait=True)
