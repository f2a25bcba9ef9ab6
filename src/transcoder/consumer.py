"""Job consumer: per-message lifecycle for upload events.

Each SQS delivery moves through an explicit state machine:

    RECEIVED -> PROCESSING -> SUCCEEDED          message deleted
                           -> RETRYING -> REQUEUED     visibility set to the backoff delay
                           -> DEAD_LETTERED           sent to the DLQ, then deleted

Permanent errors (unparseable body, missing required field, unsupported
rendition) are dead-lettered immediately. Everything else is transient and
retried as a whole job until the attempt budget (SQS
ApproximateReceiveCount) is exhausted. Each attempt owns a fresh
workspace that is removed on every exit path.

While a job runs, a heartbeat thread keeps pushing the message visibility
out so other workers do not receive it until the attempt ends.
"""

import json
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from ..shared.config import Settings
from ..shared.exceptions import EventValidationError, PipelineError, RetryableError
from ..shared.models import CompletionEvent, UploadEvent
from ..shared.storage import S3ObjectStore
from .encoder import Encoder
from .ladder_builder import build_renditions
from .playlists import write_master_playlist
from .publisher import ResultPublisher
from .renditions import resolve_ladder

logger = Logger(service="job-consumer")
tracer = Tracer(service="job-consumer")
metrics = Metrics(service="job-consumer", namespace="VodPipeline")

# SQS caps message attribute values; keep dead-letter reasons short
MAX_ERROR_ATTRIBUTE_CHARS = 1024


class MessageState(str, Enum):
    """States of a single message delivery."""

    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    RETRYING = "RETRYING"
    REQUEUED = "REQUEUED"
    DEAD_LETTERED = "DEAD_LETTERED"


def parse_upload_event(body: str) -> UploadEvent:
    """Parse and validate a queue message body.

    Raises:
        EventValidationError: If the body is not JSON or misses a required field
    """
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise EventValidationError(f"Message body is not valid JSON: {e}")

    if not isinstance(payload, dict):
        raise EventValidationError("Message body must be a JSON object")

    try:
        return UploadEvent.model_validate(payload)
    except ValidationError as e:
        raise EventValidationError(
            "Invalid upload event",
            {"errors": e.errors(include_url=False, include_context=False)},
        )


def retry_delay(attempt: int, base_seconds: int, max_seconds: int) -> int:
    """Redelivery delay after a failed attempt.

    Exponential without jitter: ``min(base * 2**(attempt-1), max)``.

    Example:
        >>> [retry_delay(n, 30, 900) for n in range(1, 7)]
        [30, 60, 120, 240, 480, 900]
    """
    return min(base_seconds * (2 ** max(attempt - 1, 0)), max_seconds)


class VisibilityHeartbeat:
    """Extends the visibility timeout of an in-flight message.

    Every ``visibility_timeout / 2`` seconds the message is made invisible
    for another full ``visibility_timeout``. Use as a context manager around
    the job; the thread stops and is joined on exit.
    """

    def __init__(
        self,
        sqs_client: Any,
        queue_url: str,
        receipt_handle: str,
        visibility_timeout: int,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.sqs_client = sqs_client
        self.queue_url = queue_url
        self.receipt_handle = receipt_handle
        self.visibility_timeout = visibility_timeout
        self.interval = max(visibility_timeout / 2, 1.0)
        self.context = context or {}
        self.extensions = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"{threading.current_thread().name}-heartbeat",
            daemon=True,
        )

    def __enter__(self) -> "VisibilityHeartbeat":
        self._thread.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._stop.set()
        self._thread.join()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sqs_client.change_message_visibility(
                    QueueUrl=self.queue_url,
                    ReceiptHandle=self.receipt_handle,
                    VisibilityTimeout=self.visibility_timeout,
                )
                self.extensions += 1
            except (ClientError, BotoCoreError) as e:
                logger.warning(
                    "Could not extend message visibility",
                    extra={"error": str(e), **self.context},
                )


class JobConsumer:
    """Turns upload events into published HLS packages."""

    def __init__(
        self,
        raw_store: S3ObjectStore,
        encoder: Encoder,
        publisher: ResultPublisher,
        sqs_client: Any,
        settings: Settings,
    ) -> None:
        self.raw_store = raw_store
        self.encoder = encoder
        self.publisher = publisher
        self.sqs_client = sqs_client
        self.settings = settings

    @tracer.capture_method
    def process_job(self, event: UploadEvent) -> CompletionEvent:
        """Run one job attempt end to end.

        Download, encode the ladder, write the master playlist and publish.
        The workspace is removed whether or not the attempt succeeds.

        Raises:
            EventValidationError: If the requested ladder is not supported
            RetryableError: For storage, encoder or broker failures
        """
        ladder = resolve_ladder(event.resolutions)

        with tempfile.TemporaryDirectory(
            prefix=f"job-{event.upload_id}-",
            dir=self.settings.work_dir or None,
        ) as tmp:
            workspace = Path(tmp)
            input_path = workspace / f"source{Path(event.raw_video_path).suffix}"
            output_root = workspace / "output"

            self.raw_store.download_to(event.raw_video_path, input_path)
            logger.info(
                "Source downloaded",
                extra={
                    "upload_id": event.upload_id,
                    "raw_video_path": event.raw_video_path,
                    "renditions": [r.label for r in ladder],
                },
            )

            labels = build_renditions(self.encoder, input_path, output_root, ladder)
            write_master_playlist(output_root, labels)

            return self.publisher.publish(event, output_root, self.encoder, input_path)

    def handle_message(self, message: dict[str, Any]) -> MessageState:
        """Drive one SQS message through the state machine.

        Args:
            message: Message as returned by ``receive_message``

        Returns:
            Final state of this delivery
        """
        receipt_handle = message["ReceiptHandle"]
        attempt = int(message.get("Attributes", {}).get("ApproximateReceiveCount", "1"))
        context = {"message_id": message.get("MessageId"), "attempt": attempt}

        logger.debug("Message received", extra={"state": MessageState.RECEIVED.value, **context})

        try:
            event = parse_upload_event(message.get("Body", ""))
        except EventValidationError as e:
            return self._dead_letter(message, e, context)

        context.update({"upload_id": event.upload_id, "user_id": event.user_id})
        logger.info("Processing job", extra={"state": MessageState.PROCESSING.value, **context})

        heartbeat = VisibilityHeartbeat(
            self.sqs_client,
            self.settings.upload_queue_url,
            receipt_handle,
            self.settings.visibility_timeout_seconds,
            context,
        )
        try:
            with heartbeat:
                self.process_job(event)
        except EventValidationError as e:
            return self._dead_letter(message, e, context)
        except RetryableError as e:
            return self._retry(message, e, attempt, context)
        except Exception as e:
            logger.exception("Unexpected job failure", extra=context)
            return self._retry(
                message,
                RetryableError(f"Unexpected error: {e}", original_error=e),
                attempt,
                context,
            )

        self.sqs_client.delete_message(
            QueueUrl=self.settings.upload_queue_url,
            ReceiptHandle=receipt_handle,
        )
        metrics.add_metric(name="JobsSucceeded", unit=MetricUnit.Count, value=1)
        logger.info("Job succeeded", extra={"state": MessageState.SUCCEEDED.value, **context})
        return MessageState.SUCCEEDED

    def poll_once(self) -> int:
        """Receive at most one message from the upload queue and handle it.

        Returns:
            Number of messages handled (0 or 1)
        """
        response = self.sqs_client.receive_message(
            QueueUrl=self.settings.upload_queue_url,
            MaxNumberOfMessages=1,
            WaitTimeSeconds=self.settings.receive_wait_seconds,
            VisibilityTimeout=self.settings.visibility_timeout_seconds,
            AttributeNames=["All"],
        )
        messages = response.get("Messages") or []
        for message in messages:
            self.handle_message(message)
        return len(messages)

    def _retry(
        self,
        message: dict[str, Any],
        error: RetryableError,
        attempt: int,
        context: dict[str, Any],
    ) -> MessageState:
        if attempt >= self.settings.max_attempts:
            return self._dead_letter(message, error, context)

        delay = retry_delay(
            attempt,
            self.settings.retry_base_delay_seconds,
            self.settings.retry_max_delay_seconds,
        )
        logger.warning(
            "Job failed, scheduling retry",
            extra={
                "state": MessageState.RETRYING.value,
                "retry_in_seconds": delay,
                **context,
                **error.to_dict(),
            },
        )

        try:
            self.sqs_client.change_message_visibility(
                QueueUrl=self.settings.upload_queue_url,
                ReceiptHandle=message["ReceiptHandle"],
                VisibilityTimeout=delay,
            )
        except (ClientError, BotoCoreError) as e:
            # Message still reappears once the receive-time visibility timeout lapses
            logger.warning(
                "Could not shorten message visibility",
                extra={"error": str(e), **context},
            )

        metrics.add_metric(name="JobsRetried", unit=MetricUnit.Count, value=1)
        return MessageState.REQUEUED

    def _dead_letter(
        self,
        message: dict[str, Any],
        error: PipelineError,
        context: dict[str, Any],
    ) -> MessageState:
        dlq_url = self.settings.dead_letter_queue_url

        if dlq_url:
            try:
                self.sqs_client.send_message(
                    QueueUrl=dlq_url,
                    MessageBody=message.get("Body") or "{}",
                    MessageAttributes={
                        "errorCode": {
                            "DataType": "String",
                            "StringValue": error.error_code,
                        },
                        "errorMessage": {
                            "DataType": "String",
                            "StringValue": error.message[:MAX_ERROR_ATTRIBUTE_CHARS] or "unknown",
                        },
                        "attempts": {
                            "DataType": "Number",
                            "StringValue": str(context.get("attempt", 1)),
                        },
                    },
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(
                    "Failed to dead-letter message, leaving it on the queue",
                    extra={"error": str(e), **context},
                )
                return MessageState.REQUEUED
        else:
            logger.error("No dead-letter queue configured, dropping message", extra=context)

        self.sqs_client.delete_message(
            QueueUrl=self.settings.upload_queue_url,
            ReceiptHandle=message["ReceiptHandle"],
        )
        metrics.add_metric(name="JobsDeadLettered", unit=MetricUnit.Count, value=1)
        logger.error(
            "Message dead-lettered",
            extra={"state": MessageState.DEAD_LETTERED.value, **context, **error.to_dict()},
        )
        return MessageState.DEAD_LETTERED
