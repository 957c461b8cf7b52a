from __future__ import annotations

import re
from typing import Optional

from droptidy.core.errors import ValidationError

SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

MIN_PASSWORD_LENGTH = 8

# Evaluated in order; the first failing rule is reported.
_RULES = (
    (lambda p: len(p) >= MIN_PASSWORD_LENGTH, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"),
    (lambda p: re.search(r"[A-Z]", p) is not None, "Password must contain at least one uppercase letter"),
    (lambda p: re.search(r"[a-z]", p) is not None, "Password must contain at least one lowercase letter"),
    (lambda p: re.search(r"[0-9]", p) is not None, "Password must contain at least one number"),
    (lambda p: any(c in SYMBOLS for c in p), "Password must contain at least one special character"),
)


def password_problem(password: str) -> Optional[str]:
    """Return the message of the first rule the password breaks, or None."""
    for ok, message in _RULES:
        if not ok(password or ""):
            return message
    return None


def check_password(password: str) -> None:
    msg = password_problem(password)
    if msg:
        raise ValidationError(msg)


def check_username(username: str, *, min_length: int = 3) -> None:
    name = username or ""
    if len(name) < int(min_length):
        raise ValidationError(f"Username must be at least {int(min_length)} characters long")
    if name != name.strip():
        raise ValidationError("Username must not start or end with whitespace")
