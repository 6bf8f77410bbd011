from __future__ import annotations

import re
from typing import Optional

from .errors import InvalidInput

# local part: no whitespace, no "@"; then a single "@" and any non-empty remainder
EMAIL_RE = re.compile(r"^[^\s@]+@.+$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def require_email(email: Optional[str]) -> str:
    """Normalize ``email`` or raise InvalidInput when it is missing or malformed."""
    if email is None or not email.strip():
        raise InvalidInput("Email is required")
    normalized = normalize_email(email)
    if not EMAIL_RE.match(normalized):
        raise InvalidInput("Invalid email format")
    return normalized
