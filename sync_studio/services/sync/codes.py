"""Room code generation."""
from __future__ import annotations

import secrets
from typing import Callable

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6

CodeFactory = Callable[[], str]


def generate_code(length: int = CODE_LENGTH, alphabet: str = CODE_ALPHABET) -> str:
    """Return a random room code, e.g. ``"A2B7C9"``."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str) -> str:
    """Codes are case-insensitive; storage and comparison use upper case."""
    return code.strip().upper()


def is_well_formed(code: str, length: int = CODE_LENGTH, alphabet: str = CODE_ALPHABET) -> bool:
    code = normalize_code(code)
    return len(code) == length and all(c in alphabet for c in code)
