"""Worker entry point for the transcription pipeline.

Starts the QueueConsumer worker pool alongside a lightweight HTTP health
check server (container platforms require a listening port). Handles
SIGTERM for graceful shutdown.
"""

import asyncio
import logging
import signal
from asyncio import StreamReader, StreamWriter

from transcription_worker.asr.registry import get_transcription_client
from transcription_worker.config import WorkerConfig
from transcription_worker.observability.logger import setup_logging
from transcription_worker.pipeline import JobOrchestrator
from transcription_worker.queue.consumer import Acknowledge, DispatchFn, Job, QueueConsumer
from transcription_worker.queue.publisher import ResultEmitter
from transcription_worker.storage.blob_store import S3BlobStore
from transcription_worker.storage.fetcher import BlobFetcher

logger = logging.getLogger(__name__)

# Leaves a buffer before the platform's SIGKILL at 30s
SHUTDOWN_TIMEOUT_SECONDS = 25


async def _health_handler(reader: StreamReader, writer: StreamWriter) -> None:
    """Minimal HTTP handler that returns 200 OK for liveness probes."""
    await reader.read(4096)
    response = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/plain\r\n"
        "Content-Length: 2\r\n"
        "\r\n"
        "ok"
    )
    writer.write(response.encode())
    await writer.drain()
    writer.close()


def build_dispatch(orchestrator: JobOrchestrator, emitter: ResultEmitter) -> DispatchFn:
    """Compose job processing and result emission into one dispatch callable."""

    async def _dispatch(job: Job, acknowledge: Acknowledge) -> bool:
        result = await orchestrator.process(
            job, queue_wait_time_seconds=job.queue_wait_seconds()
        )
        return await emitter.emit(result, acknowledge)

    return _dispatch


async def _run(consumer: QueueConsumer, dispatch_fn: DispatchFn, port: int = 8080) -> None:
    """Run the health server and queue consumer until a shutdown signal."""
    server = await asyncio.start_server(_health_handler, "0.0.0.0", port)
    logger.info("Health server listening on port %d", port)

    consumer_task = asyncio.create_task(consumer.run(dispatch_fn))

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown() -> None:
        logger.info("Received shutdown signal")
        consumer.stop()
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown)

    await stop_event.wait()
    try:
        await asyncio.wait_for(consumer_task, timeout=SHUTDOWN_TIMEOUT_SECONDS)
    except TimeoutError:
        logger.warning(
            "Consumer did not stop within %ss, in-flight jobs cancelled",
            SHUTDOWN_TIMEOUT_SECONDS,
        )
    server.close()
    await server.wait_closed()


async def _serve(config: WorkerConfig) -> None:
    """Build the pipeline components from config and run until stopped."""
    store = S3BlobStore(
        endpoint_url=config.blob_endpoint,
        bucket=config.blob_bucket,
        access_key_id=config.blob_access_key_id,
        secret_access_key=config.blob_secret_access_key,
    )
    fetcher = BlobFetcher(store, max_workers=config.blob_fetch_workers)
    client = get_transcription_client(
        config.transcription_provider,
        api_key=config.transcription_api_key,
        base_url=config.transcription_api_url,
    )
    emitter = ResultEmitter(
        queue_api_url=config.queue_api_url,
        queue_id=config.result_queue_id,
        api_token=config.queue_api_token,
    )
    orchestrator = JobOrchestrator(
        fetcher,
        client,
        language_code=config.language_code,
        job_timeout_seconds=config.job_timeout_seconds,
    )
    consumer = QueueConsumer(
        queue_api_url=config.queue_api_url,
        queue_id=config.task_queue_id,
        api_token=config.queue_api_token,
        consumer_group=config.consumer_group,
        concurrency=config.worker_concurrency,
    )

    try:
        await _run(consumer, build_dispatch(orchestrator, emitter), config.port)
    finally:
        await client.close()
        await emitter.close()
        fetcher.shutdown()


def main() -> None:
    """Start the worker pool and process incoming transcription jobs."""
    setup_logging()
    logger.info("Transcription worker starting")

    config = WorkerConfig.from_env()
    asyncio.run(_serve(config))


if __name__ == "__main__":
    main()
