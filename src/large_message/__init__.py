"""
Large message client: sends payloads of any size through SQS by
offloading oversized bodies to S3 and sending a JSON pointer instead.
"""

__version__ = "1.0.0"

from .async_client import AsyncLargeMessageClient  # noqa: E402
from .client import LargeMessageClient  # noqa: E402
from .config.settings import LargeMessageSettings  # noqa: E402
from .models import BatchSendResult, BlobPointer, LargeMessage, MessageEnvelope  # noqa: E402
from .storage import ReceiveOnlyPayloadResolver  # noqa: E402

__all__ = [
    "__version__",
    "AsyncLargeMessageClient",
    "LargeMessageClient",
    "LargeMessageSettings",
    "BatchSendResult",
    "BlobPointer",
    "LargeMessage",
    "MessageEnvelope",
    "ReceiveOnlyPayloadResolver",
]
