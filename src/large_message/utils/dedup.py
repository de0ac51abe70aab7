"""
Module: dedup.py
Description: Content hashing for duplicate detection message ids.

The message id is derived from the original body, before any offload,
so the same content always produces the same id whether or not it went
through the blob store.
"""

import base64
import hashlib
from typing import Optional, Union


def compute_content_hash(content: Optional[Union[str, bytes]]) -> str:
    """
    Compute the base64-encoded SHA-256 digest of `content`.

    Args:
        content: Message body; str is UTF-8 encoded, None hashes as empty

    Returns:
        44-character base64 string

    Example:
        >>> compute_content_hash("hello") == compute_content_hash(b"hello")
        True
    """
    if content is None:
        content = b""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return base64.b64encode(hashlib.sha256(content).digest()).decode("ascii")
