"""Small helpers shared across modules."""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from cloud_kms_eth.exceptions import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def hex_to_bytes(value: str | bytes) -> bytes:
    """Accept ``0x``-prefixed or bare hex text; bytes pass through."""
    if isinstance(value, bytes | bytearray):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as error:
        msg = "Invalid hex string"
        raise ValueError(msg) from error


def retry_call(func: Callable[[], T], *, attempts: int, backoff: float, description: str) -> T:
    """
    Call ``func`` until it succeeds, sleeping ``backoff * attempt`` seconds between tries.

    Only for idempotent reads. The last transport error is chained onto the
    ``NetworkError`` raised when every attempt fails.
    """
    last_error: Exception | None = None
    for attempt in range(max(1, attempts)):
        try:
            return func()
        except Exception as e:
            last_error = e
            if attempt < attempts - 1:
                logger.warning("%s failed (attempt %d/%d): %s", description, attempt + 1, attempts, e)
                time.sleep(backoff * (attempt + 1))

    msg = f"{description} failed after {max(1, attempts)} attempts: {last_error}"
    raise NetworkError(msg) from last_error
