"""
Module: delivery/worker.py
Description: SQS Lambda worker for large messages.

Resolves each record of an SQS-triggered Lambda batch (fetching offloaded
payloads from S3) and hands it to a processing function. Records that
fail are reported back as batch item failures so SQS redelivers only
those.
"""

from typing import Any, Callable, Dict

from large_message.client import LargeMessageClient
from large_message.models.message import LargeMessage
from large_message.sqs_queue.codec import lambda_record_to_envelope
from large_message.utils.logger import get_logger

logger = get_logger(__name__)

LambdaHandler = Callable[[Dict[str, Any], Any], Dict[str, Any]]


def build_handler(
    client: LargeMessageClient,
    process_fn: Callable[[LargeMessage], Any],
    delete_payload_on_success: bool = False,
) -> LambdaHandler:
    """
    Build a Lambda handler for SQS event processing.

    Args:
        client: Client whose receive pipeline resolves payloads
        process_fn: Called once per resolved message; raising marks the record failed
        delete_payload_on_success: Delete the offloaded blob after process_fn returns

    Returns:
        handler(event, context) returning {'batchItemFailures': [...]}
    """

    def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
        batch_failures = []

        for record in event.get('Records', []):
            try:
                envelope = lambda_record_to_envelope(record)
                message = client.receive_pipeline.resolve(envelope)

                logger.info(
                    "Processing message from SQS",
                    message_id=message.message_id,
                    payload_from_blob=message.payload_from_blob
                )
                process_fn(message)

                if delete_payload_on_success:
                    client.delete_payload(message)

            except Exception as e:
                logger.error(
                    "Error processing SQS message",
                    message_id=record.get('messageId'),
                    error=str(e),
                    error_type=type(e).__name__
                )
                batch_failures.append({
                    'itemIdentifier': record.get('messageId')
                })

        return {'batchItemFailures': batch_failures}

    return handler
