"""Initial credentials for newly created accounts."""

from __future__ import annotations

import secrets
import string

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()-_+="


def generate_password(length: int = 32) -> str:
    """Random password drawn from ``PASSWORD_ALPHABET`` with the OS CSPRNG."""
    if length < 1:
        raise ValueError("password length must be positive")
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
