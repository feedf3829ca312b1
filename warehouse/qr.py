"""Parsing of scanned QR/barcode payloads.

Printed labels carry one of several payload styles, tried in this order:

1. a JSON object with an ``id`` (or, failing that, an ``article``) field
2. a bare numeric item id, e.g. ``"123"``
3. a letters-then-digits code such as ``ITEM000123`` or ``WH000123``
4. anything else, used as a free-text search term

Only ASCII digits count as an id. Ids too large for the database match
nothing instead of failing.

The order matters for labels already in circulation, so an article name that
is all digits is read as an id.

Copyright (c) Bryn Gwalad 2025
"""

import json
import re
from dataclasses import dataclass
from typing import Optional

from .exceptions import ValidationError

_DIGITS = re.compile(r"[0-9]+")
_NON_DIGITS = re.compile(r"[^0-9]")
_PREFIXED_CODE = re.compile(r"[A-Za-z]+([0-9]+)")

# Largest value a 64-bit signed INTEGER primary key can hold.
MAX_ITEM_ID = 2 ** 63 - 1

LOOKUP_MODES = ("auto", "full", "id", "article")


@dataclass(frozen=True)
class QrLookup:
    """What a payload asks to look up. At most one field is set."""

    item_id: Optional[int] = None
    article: Optional[str] = None
    term: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.item_id is None and self.article is None and self.term is None


def _as_int(value) -> Optional[int]:
    """Return ``value`` as a storable item id, or None when it cannot be one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and not _DIGITS.fullmatch(value.strip()):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if abs(number) > MAX_ITEM_ID:
        return None
    return number


def _id_lookup(value) -> QrLookup:
    item_id = _as_int(value)
    return QrLookup(item_id=item_id) if item_id is not None else QrLookup()


def parse_qr_payload(text: str, mode: str = "auto") -> QrLookup:
    """Parse ``text`` according to ``mode``.

    ``auto`` (alias ``full``) tries every payload style above. ``id`` keeps only
    the digits and never falls back to a search. ``article`` matches the whole
    text against article names.
    """
    if text is None or not str(text).strip():
        raise ValidationError("QR data is required")
    if mode not in LOOKUP_MODES:
        raise ValidationError(f"unknown lookup mode '{mode}' (expected one of: {', '.join(LOOKUP_MODES)})")
    text = str(text).strip()

    if mode == "id":
        digits = _NON_DIGITS.sub("", text)
        return _id_lookup(digits) if digits else QrLookup()
    if mode == "article":
        return QrLookup(article=text)

    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        if payload.get("id"):
            return _id_lookup(payload["id"])
        if payload.get("article"):
            return QrLookup(article=str(payload["article"]))
        return QrLookup()

    if _DIGITS.fullmatch(text):
        return _id_lookup(text)
    code = _PREFIXED_CODE.fullmatch(text)
    if code:
        return _id_lookup(code.group(1))
    return QrLookup(term=text)


def barcode_text(item_id: int, prefix: str = "ITEM") -> str:
    """Barcode printed on labels, e.g. ``ITEM000042``."""
    return f"{prefix}{item_id:06d}"
