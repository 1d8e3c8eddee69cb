"""Trigger instance id generation using coolname slugs."""

from coolname import generate_slug


def generate_instance_id(prefix: str = "") -> str:
    """Generate a memorable instance id for keying stream cursors.

    Args:
        prefix: Optional prefix (e.g., "stream")

    Returns:
        An id in the format "prefix-word1-word2-word3" or "word1-word2-word3"

    Examples:
        >>> generate_instance_id("stream")
        'stream-swift-blue-falcon'
    """
    slug = generate_slug(3)
    return f"{prefix}-{slug}" if prefix else slug
