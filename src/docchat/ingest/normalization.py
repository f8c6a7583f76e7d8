"""Text normalisation utilities."""
from __future__ import annotations

import re
import unicodedata

_WHITESPACE_RE = re.compile(r"[^\S\n]+")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")
_TRAILING_SPACE_RE = re.compile(r" +\n")
_LEADING_SPACE_RE = re.compile(r"\n +")


def normalize_text(text: str) -> str:
    """Collapse whitespace runs and excess blank lines, then trim.

    Line breaks survive so paragraph and line separators remain usable by the
    chunker; any other whitespace run becomes a single space.
    """

    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    normalized = _TRAILING_SPACE_RE.sub("\n", normalized)
    normalized = _LEADING_SPACE_RE.sub("\n", normalized)
    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)
    return normalized.strip()
