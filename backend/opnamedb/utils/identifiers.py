from __future__ import annotations

import os
import re
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional

_TRAILING_ZERO_DECIMALS = re.compile(r"\.0+$")
_SCIENTIFIC = re.compile(r"^[+-]?\d+(\.\d+)?[eE][+-]?\d+$")


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    48-bit millisecond timestamp, 4-bit version, 74 random bits.
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def normalize_product_code(code: object) -> Optional[str]:
    """
    Product codes are barcodes, and spreadsheets like to turn them into
    floats ("8.99e+12", "8991002101.0"). Bring them back to plain digits.
    """
    if code is None:
        return None
    text = str(code).strip()
    if not text:
        return None
    if _SCIENTIFIC.match(text):
        try:
            text = format(Decimal(text).quantize(Decimal(1)), "f")
        except InvalidOperation:
            return None
    return _TRAILING_ZERO_DECIMALS.sub("", text).strip()
