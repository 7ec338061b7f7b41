from __future__ import annotations

import os
import re

from .constants import IDENTITY_MAX_CHARS, IDENTITY_MIN_CHARS

_IDENTITY_RE = re.compile(r"[A-Za-z0-9_]+")


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def is_valid_identity(value: str) -> bool:
    if not (IDENTITY_MIN_CHARS <= len(value) <= IDENTITY_MAX_CHARS):
        return False
    return _IDENTITY_RE.fullmatch(value) is not None


def normalize_identity(value) -> str | None:
    """Trim and validate a claimed identity; None if it is not acceptable."""
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if not is_valid_identity(s):
        return None

    return s


def one_line(text: str) -> str:
    """Collapse line breaks so ``text`` fits in a single frame."""
    return text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
