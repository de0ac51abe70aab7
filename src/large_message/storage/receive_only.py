"""
Module: receive_only.py
Description: Payload download through presigned URLs.

Lets a consumer without storage credentials fetch an offloaded payload
from a time-limited read URL produced by the sender.
"""

import httpx

from large_message.utils.errors import PayloadStoreError
from large_message.utils.logger import get_logger

logger = get_logger(__name__)


class ReceiveOnlyPayloadResolver:
    """HTTP client downloading payloads from presigned read URLs."""

    def __init__(self, timeout_seconds: float = 30.0, transport: httpx.BaseTransport = None):
        """
        Args:
            timeout_seconds: HTTP timeout for downloads
            transport: Optional httpx transport (used by tests)
        """
        self.timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0))
        self.transport = transport

    def get_payload_by_url(self, url: str) -> bytes:
        """
        Download a payload.

        Raises:
            ValueError: If url is not an HTTP(S) URL
            PayloadStoreError: If the URL is expired or invalid, or the
                download fails
        """
        if not url or not url.startswith(('http://', 'https://')):
            raise ValueError("url must be a valid HTTP/HTTPS URL")

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = client.get(url)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(
                    "Payload download rejected",
                    status_code=e.response.status_code,
                    response=e.response.text[:500]
                )
                raise PayloadStoreError(
                    f"Failed to download payload (HTTP {e.response.status_code}); "
                    "the URL may be expired or invalid"
                ) from e
            except httpx.HTTPError as e:
                logger.error("Payload download failed", error=str(e), error_type=type(e).__name__)
                raise PayloadStoreError(f"Failed to download payload: {e}") from e

        logger.debug("Payload downloaded by URL", size=len(response.content))
        return response.content
