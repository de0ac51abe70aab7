"""
Module: codec.py
Description: Conversion between MessageEnvelope and SQS messages.

Application properties travel as one JSON string attribute so that
scalar types survive and the SQS limit of ten message attributes does not
apply to them. Bodies that are not valid UTF-8 are base64 encoded and
flagged with BodyEncoding=base64.
"""

import base64
import json
from typing import Any, Dict

from large_message.models.message import MessageEnvelope

PROPERTIES_ATTRIBUTE = "ApplicationProperties"
MESSAGE_ID_ATTRIBUTE = "MessageId"
SESSION_ID_ATTRIBUTE = "SessionId"
CONTENT_TYPE_ATTRIBUTE = "ContentType"
BODY_ENCODING_ATTRIBUTE = "BodyEncoding"
DEAD_LETTER_REASON_ATTRIBUTE = "DeadLetterReason"
DEAD_LETTER_DESCRIPTION_ATTRIBUTE = "DeadLetterErrorDescription"

DEFAULT_MESSAGE_GROUP_ID = "default"


def _string_attribute(value: str) -> Dict[str, str]:
    return {'StringValue': value, 'DataType': 'String'}


def is_fifo_queue(queue_url: str) -> bool:
    return queue_url.endswith(".fifo")


def envelope_to_sqs(envelope: MessageEnvelope, fifo: bool = False) -> Dict[str, Any]:
    """
    Build send_message parameters (without QueueUrl) for an envelope.

    FIFO queues get MessageGroupId from the session id and, when the
    envelope has a message id, MessageDeduplicationId from it.
    """
    try:
        body = envelope.body.decode("utf-8")
        encoded = False
    except UnicodeDecodeError:
        body = base64.b64encode(envelope.body).decode("ascii")
        encoded = True

    attributes = {
        PROPERTIES_ATTRIBUTE: _string_attribute(
            json.dumps(envelope.properties, default=str)
        )
    }
    if envelope.message_id:
        attributes[MESSAGE_ID_ATTRIBUTE] = _string_attribute(envelope.message_id)
    if envelope.session_id:
        attributes[SESSION_ID_ATTRIBUTE] = _string_attribute(envelope.session_id)
    if envelope.content_type:
        attributes[CONTENT_TYPE_ATTRIBUTE] = _string_attribute(envelope.content_type)
    if encoded:
        attributes[BODY_ENCODING_ATTRIBUTE] = _string_attribute("base64")
    if envelope.dead_letter_reason:
        attributes[DEAD_LETTER_REASON_ATTRIBUTE] = _string_attribute(envelope.dead_letter_reason)
    if envelope.dead_letter_description:
        attributes[DEAD_LETTER_DESCRIPTION_ATTRIBUTE] = _string_attribute(
            envelope.dead_letter_description
        )

    params = {'MessageBody': body, 'MessageAttributes': attributes}
    if fifo:
        params['MessageGroupId'] = envelope.session_id or DEFAULT_MESSAGE_GROUP_ID
        if envelope.message_id:
            params['MessageDeduplicationId'] = envelope.message_id
    return params


def sqs_message_size(params: Dict[str, Any]) -> int:
    """Size SQS charges against the 256 KiB limit: body plus attributes."""
    size = len(params['MessageBody'].encode("utf-8"))
    for name, attribute in params.get('MessageAttributes', {}).items():
        size += len(name.encode("utf-8"))
        size += len(attribute['DataType'].encode("utf-8"))
        size += len(attribute.get('StringValue', '').encode("utf-8"))
    return size


def sqs_to_envelope(message: Dict[str, Any]) -> MessageEnvelope:
    """Convert a receive_message entry into an envelope."""
    attributes = {
        name: value.get('StringValue')
        for name, value in message.get('MessageAttributes', {}).items()
    }
    system = message.get('Attributes', {})

    body = message.get('Body', '')
    if attributes.get(BODY_ENCODING_ATTRIBUTE) == "base64":
        body_bytes = base64.b64decode(body)
    else:
        body_bytes = body.encode("utf-8")

    properties = {}
    if attributes.get(PROPERTIES_ATTRIBUTE):
        properties = json.loads(attributes[PROPERTIES_ATTRIBUTE])

    sequence_number = system.get('SequenceNumber')
    return MessageEnvelope(
        body=body_bytes,
        properties=properties,
        session_id=attributes.get(SESSION_ID_ATTRIBUTE) or system.get('MessageGroupId'),
        message_id=attributes.get(MESSAGE_ID_ATTRIBUTE) or message.get('MessageId'),
        delivery_count=int(system.get('ApproximateReceiveCount', 0)),
        dead_letter_reason=attributes.get(DEAD_LETTER_REASON_ATTRIBUTE),
        dead_letter_description=attributes.get(DEAD_LETTER_DESCRIPTION_ATTRIBUTE),
        sequence_number=int(sequence_number) if sequence_number else None,
        lock_token=message.get('ReceiptHandle'),
        content_type=attributes.get(CONTENT_TYPE_ATTRIBUTE),
    )


def lambda_record_to_envelope(record: Dict[str, Any]) -> MessageEnvelope:
    """
    Convert an SQS record from a Lambda event into an envelope.

    Lambda delivers the same fields as receive_message with lower-camel
    keys (body, messageAttributes.stringValue, receiptHandle).
    """
    message = {
        'Body': record.get('body', ''),
        'MessageId': record.get('messageId'),
        'ReceiptHandle': record.get('receiptHandle'),
        'Attributes': record.get('attributes', {}),
        'MessageAttributes': {
            name: {
                'StringValue': value.get('stringValue'),
                'DataType': value.get('dataType', 'String'),
            }
            for name, value in record.get('messageAttributes', {}).items()
        },
    }
    return sqs_to_envelope(message)
