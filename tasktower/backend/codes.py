"""Lobby join code helpers."""

from __future__ import annotations

import re
import secrets
import string


CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,12}$")


def generate_lobby_code(length: int = CODE_LENGTH) -> str:
    """Generate a shareable upper-case alphanumeric join code."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def is_valid_code(code: object) -> bool:
    """Check a raw code after normalisation."""
    if not isinstance(code, str):
        return False
    return _CODE_PATTERN.match(normalize_code(code)) is not None
