"""Transaction id generation for the local store gateway."""

import re
import time
import uuid
from typing import Optional

DEFAULT_TRANSACTION_PREFIX = "local"

_TRANSACTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+_txn_[0-9a-f]{16}_\d{13}$")


def generate_transaction_id(
    prefix: str = DEFAULT_TRANSACTION_PREFIX, timestamp_millis: Optional[int] = None
) -> str:
    """Generate a unique transaction id.

    Format: {prefix}_txn_{uuid}_{timestamp}
    Example: local_txn_a1b2c3d4e5f6a7b8_1700000000000

    Args:
        prefix: Id prefix
        timestamp_millis: Timestamp to embed (defaults to now)

    Returns:
        Unique transaction id string
    """
    token_id = uuid.uuid4().hex[:16]
    if timestamp_millis is None:
        timestamp_millis = int(time.time() * 1000)
    return f"{prefix}_txn_{token_id}_{timestamp_millis:013d}"


def validate_transaction_id(transaction_id: str) -> bool:
    """Check that a string has the local transaction id format."""
    if not transaction_id or not isinstance(transaction_id, str):
        return False
    return bool(_TRANSACTION_ID_PATTERN.match(transaction_id))

