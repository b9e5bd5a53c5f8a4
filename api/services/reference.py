"""Human-readable application references."""

import secrets
import string
from datetime import datetime
from typing import Optional

ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(job_posting_id: int, now: Optional[datetime] = None) -> str:
    """Build a reference like ``APP-250114-42-K7Q2``.

    Format: APP-{yymmdd}-{job posting id}-{4 random uppercase letters/digits}.
    """
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(ALPHABET) for _ in range(4))
    return f"APP-{now:%y%m%d}-{job_posting_id}-{suffix}"
