"""Random identity token generation."""

import os

from common.constants import UID_LENGTH_BYTES
from clusterid.exceptions import EntropyUnavailableError


def new_token(length_bytes: int = UID_LENGTH_BYTES) -> str:
    """
    Generate a random identity token.

    Args:
        length_bytes: Number of random bytes to draw

    Returns:
        Lowercase hex string, two characters per byte

    Raises:
        EntropyUnavailableError: If the OS random source cannot supply bytes
    """
    try:
        raw = os.urandom(length_bytes)
    except (OSError, NotImplementedError) as e:
        raise EntropyUnavailableError(f"Failed to read {length_bytes} random bytes: {e}") from e
    return raw.hex()
