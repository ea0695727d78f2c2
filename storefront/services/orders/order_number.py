"""Human-facing order number generation."""

import secrets
from datetime import datetime, timezone
from typing import Optional

BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SUFFIX_LENGTH = 6


def generate_order_number(now: Optional[datetime] = None) -> str:
    """
    Generate an order number of the form ``YYMMDD-XXXXXX``.

    The date part is the UTC calendar day; the suffix is six random
    uppercase base36 characters. Uniqueness is enforced by the database,
    so callers must regenerate on conflict.

    Args:
        now: Timestamp to take the date from (defaults to current UTC time)

    Returns:
        Order number string
    """
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{moment:%y%m%d}-{suffix}"
