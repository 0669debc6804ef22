"""Price parsing and the standard price buckets of a tariff book."""

import re
from typing import Any, Optional

# Output columns of the consolidated price list, in order
PRICE_BUCKETS = ["OPD", "ED", "KELAS 3", "KELAS 2", "KELAS 1", "VIP", "VVIP"]

# Bucket value that means "drop this price"
IGNORE_BUCKET = "ignore"

# Default class-name normalisation (roman numerals to digits)
DEFAULT_CLASS_MAP = {
    "OPD": "OPD",
    "ED": "ED",
    "KELAS 3": "KELAS 3",
    "KELAS III": "KELAS 3",
    "KELAS 2": "KELAS 2",
    "KELAS II": "KELAS 2",
    "KELAS 1": "KELAS 1",
    "KELAS I": "KELAS 1",
    "VIP": "VIP",
    "VVIP": "VVIP",
}

_NON_PRICE_CHARS = re.compile(r"[^\d,-]")
_NUMBER_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)")


def parse_price(value: Any) -> Optional[float]:
    """Convert a cell value to a price.

    Numbers pass through. Text keeps only digits, ``,`` and ``-``; the first
    comma becomes the decimal point and the longest numeric prefix is used.
    Returns None for empty or unparsable values.

    >>> parse_price("Rp 15.000")
    15000.0
    >>> parse_price("12,5")
    12.5
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    if not text:
        return None
    cleaned = _NON_PRICE_CHARS.sub("", text).replace(",", ".", 1)
    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return None
    return float(match.group(0))
