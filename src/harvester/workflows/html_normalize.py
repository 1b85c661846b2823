"""Decoding and text cleanup for fetched product pages."""

from __future__ import annotations

import re
import unicodedata
from typing import Mapping, Optional

import ftfy
from charset_normalizer import from_bytes

__all__ = ["charset_from_headers", "decode_bytes_auto", "minimal_text_fix"]

_ZERO_WIDTH = {0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF}
_REMOVE = {0x00, 0x0B, 0x0C}
_TRANSLATE = {cp: None for cp in _ZERO_WIDTH | _REMOVE}
_CHARSET_RE = re.compile(r"charset=([^\s;]+)", re.I)


def charset_from_headers(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    if not headers:
        return None
    match = _CHARSET_RE.search(headers.get("content-type", "") or headers.get("Content-Type", ""))
    if not match:
        return None
    return match.group(1).strip(" \"'").lower() or None


def decode_bytes_auto(body: bytes, headers: Optional[Mapping[str, str]] = None) -> str:
    """Decode with the declared charset, else let charset-normalizer guess."""

    enc = charset_from_headers(headers)
    if enc:
        try:
            return body.decode(enc, errors="replace")
        except LookupError:
            pass
    result = from_bytes(body).best()
    if result is None:
        return body.decode("utf-8", errors="replace")
    return str(result)


def minimal_text_fix(text: str) -> str:
    """Fix mojibake and strip zero-width noise from scraped text."""

    if not text:
        return ""
    normalized = unicodedata.normalize("NFC", text)
    fixed = ftfy.fix_text(normalized, normalization="NFC")
    return fixed.translate(_TRANSLATE)
