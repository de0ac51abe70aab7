"""
Module: constants.py
Description: Reserved application property keys and client defaults.

The key strings are part of the wire contract with other producers and
consumers of offloaded messages and must not change. Send and receive
paths both read them from here.
"""

from large_message import __version__

# Size marker written on offload (modern spelling)
RESERVED_ATTRIBUTE_NAME = "ExtendedPayloadSize"

# Size marker written on offload (legacy spelling)
LEGACY_RESERVED_ATTRIBUTE_NAME = "ServiceBusLargePayloadSize"

# Boolean marker, present iff the body is a blob pointer
BLOB_POINTER_MARKER = "com.azure.servicebus.largemessage.BlobPointer"

# Version tag attached to every sent message
LARGE_MESSAGE_CLIENT_USER_AGENT = "LargeMessageClientUserAgent"
USER_AGENT_VALUE = f"LargeMessageClient/{__version__}"

RESERVED_PROPERTY_NAMES = frozenset({
    RESERVED_ATTRIBUTE_NAME,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    BLOB_POINTER_MARKER,
    LARGE_MESSAGE_CLIENT_USER_AGENT,
})

SIZE_MARKER_NAMES = (RESERVED_ATTRIBUTE_NAME, LEGACY_RESERVED_ATTRIBUTE_NAME)

# SQS maximum message size (256 KiB)
DEFAULT_MESSAGE_SIZE_THRESHOLD = 262144
MAX_ALLOWED_PROPERTIES = 9

# Summed key + value bytes allowed across user properties
MAX_PROPERTIES_SIZE_BYTES = 65536

# Blob metadata key carrying the ISO 8601 expiry used by the TTL sweep
EXPIRES_AT_METADATA_KEY = "expiresAt"
CONTENT_TYPE_METADATA_KEY = "contentType"

DEFAULT_TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
DEFAULT_BINARY_CONTENT_TYPE = "application/octet-stream"
