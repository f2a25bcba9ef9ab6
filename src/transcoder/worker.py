"""Entrypoint for the transcoder worker pool.

Wires the S3, SQS and SNS clients from settings and runs
WORKER_CONCURRENCY consumer loops in a thread pool. Every loop holds at
most one in-flight message. SIGTERM/SIGINT stop the loops after their
current message; a job in progress is never interrupted.
"""

import signal
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from aws_lambda_powertools import Logger, Metrics
from botocore.exceptions import BotoCoreError, ClientError

from ..shared.aws_clients import get_s3_client, get_sns_client, get_sqs_client
from ..shared.config import Settings, get_settings
from ..shared.storage import S3ObjectStore
from .consumer import JobConsumer
from .encoder import encoder_from_settings
from .publisher import ResultPublisher

logger = Logger(service="transcoder-worker")
metrics = Metrics(service="transcoder-worker", namespace="VodPipeline")

# Pause after a failed receive before polling again
RECEIVE_ERROR_BACKOFF_SECONDS = 5.0


def build_consumer(settings: Settings) -> JobConsumer:
    """Create a job consumer sharing the process-wide AWS clients."""
    s3_client = get_s3_client()
    encoder = encoder_from_settings(settings)
    publisher = ResultPublisher(
        store=S3ObjectStore(settings.processed_bucket, client=s3_client),
        sns_client=get_sns_client(),
        settings=settings,
    )
    return JobConsumer(
        raw_store=S3ObjectStore(settings.raw_bucket, client=s3_client),
        encoder=encoder,
        publisher=publisher,
        sqs_client=get_sqs_client(),
        settings=settings,
    )


def run_consumer_loop(consumer: JobConsumer, stop_event: threading.Event) -> None:
    """Poll, handle and flush metrics until stop_event is set."""
    while not stop_event.is_set():
        try:
            handled = consumer.poll_once()
        except (ClientError, BotoCoreError) as e:
            logger.warning("Failed to receive from upload queue", extra={"error": str(e)})
            stop_event.wait(RECEIVE_ERROR_BACKOFF_SECONDS)
            continue

        if handled:
            metrics.flush_metrics()


def run_worker_pool(
    settings: Settings,
    stop_event: threading.Event,
    consumer: JobConsumer | None = None,
) -> None:
    """Run settings.worker_concurrency consumer loops until stop_event is set.

    Raises:
        ValueError: If the upload queue or completion topic is not configured
    """
    if not settings.upload_queue_url:
        raise ValueError("UPLOAD_QUEUE_URL must be set")
    if not settings.completion_topic_arn:
        raise ValueError("COMPLETION_TOPIC_ARN must be set")

    consumer = consumer or build_consumer(settings)

    logger.info(
        "Transcoder worker starting",
        extra={
            "concurrency": settings.worker_concurrency,
            "raw_bucket": settings.raw_bucket,
            "processed_bucket": settings.processed_bucket,
            "max_attempts": settings.max_attempts,
        },
    )

    with ThreadPoolExecutor(
        max_workers=settings.worker_concurrency,
        thread_name_prefix="transcoder",
    ) as pool:
        futures = [
            pool.submit(run_consumer_loop, consumer, stop_event)
            for _ in range(settings.worker_concurrency)
        ]
        wait(futures)

    # Surface a loop that died on an unexpected error
    for future in futures:
        future.result()

    logger.info("Transcoder worker stopped")


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _stop(signum: int, _frame: Any) -> None:
        logger.info("Shutdown requested", extra={"signal": signal.Signals(signum).name})
        stop_event.set()

    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)


def main() -> None:
    settings = get_settings()
    logger.setLevel(settings.log_level)

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    run_worker_pool(settings, stop_event)


if __name__ == "__main__":
    main()
