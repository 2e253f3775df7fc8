# utils/strings.py
from __future__ import annotations
import re
import unicodedata

_separators_re = re.compile(r"[\\/\x00-\x1f]+")
_multi_space_re = re.compile(r"\s{2,}")


def safe_segment(s: object, fallback: str = "untitled") -> str:
    """
    Make a display name usable as one path segment while keeping it readable:
      - Unicode NFC normalize (names stay as users typed them; no slugging)
      - Replace path separators and control characters with "-"
      - Collapse runs of whitespace and trim
      - Never return "", "." or ".."
    """
    text = "" if s is None else str(s)
    text = unicodedata.normalize("NFC", text)
    text = _separators_re.sub("-", text)
    text = _multi_space_re.sub(" ", text).strip()
    if text in ("", ".", ".."):
        return fallback
    return text
