"""
Core Utilities - Shared helper functions for the knowledge module.
"""

import hashlib
import logging


logger = logging.getLogger(__name__)


def truncate_to_max_bytes(text: str, max_bytes: int) -> str:
    """
    Truncate text so its UTF-8 encoding fits in max_bytes.

    The cut is moved back to the start of the code point it would otherwise
    split, so multi-byte characters are never broken.

    Args:
        text: Text to truncate
        max_bytes: Maximum encoded length in bytes

    Returns:
        The input unchanged if it fits, otherwise the longest prefix that does

    Example:
        >>> truncate_to_max_bytes("héllo", 2)
        'h'
    """
    if max_bytes < 0:
        raise ValueError(f"max_bytes must be non-negative, got {max_bytes}")

    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text

    logger.warning(f"Truncating embedding input from {len(encoded)} to {max_bytes} bytes")

    end = max_bytes
    # Continuation bytes look like 0b10xxxxxx
    while end > 0 and (encoded[end] & 0xC0) == 0x80:
        end -= 1
    return encoded[:end].decode("utf-8")


def compute_content_hash(content: str) -> str:
    """
    Compute SHA256 hash of text content.

    Args:
        content: Text content to hash

    Returns:
        Hex-encoded SHA256 hash (64 characters)
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
