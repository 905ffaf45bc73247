"""Parsing and formatting of human-readable byte sizes."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from http_speedtest.errors import SizeSpecError

# Largest value representable as an unsigned 64-bit byte count
MAX_SIZE = 2**64

_SIZE_RE = re.compile(r"^([0-9.,]*)(.*)$", re.DOTALL)

_PREFIXES = ["k", "m", "g", "t", "p", "e"]

# Suffix (lowercased) -> multiplier. "" and "b" mean plain bytes.
UNITS = {"": 1, "b": 1}
for _exp, _prefix in enumerate(_PREFIXES, start=1):
    UNITS[_prefix] = UNITS[_prefix + "b"] = 1000**_exp
    UNITS[_prefix + "i"] = UNITS[_prefix + "ib"] = 1024**_exp

_SI_NAMES = ["B", "kB", "MB", "GB", "TB", "PB", "EB"]


def parse_size(text: Optional[str]) -> int:
    """Parse a size like '100MB', '1kiB', '1,000' or '42' into bytes.

    SI prefixes (k, M, G, ...) are powers of 1000, binary prefixes
    (ki, Mi, Gi, ...) are powers of 1024. Matching is case-insensitive and
    the trailing 'B' is optional. Fractions are truncated toward zero.

    Raises SizeSpecError for empty, malformed, zero or oversized input.
    """
    if not text:
        raise SizeSpecError("empty size")

    number, suffix = _SIZE_RE.match(text).groups()
    try:
        value = Decimal(number.replace(",", ""))
    except InvalidOperation:
        raise SizeSpecError(f"invalid number: {text!r}") from None

    unit = suffix.strip().lower()
    if unit not in UNITS:
        raise SizeSpecError(f"unhandled size name: {unit!r}")

    value *= UNITS[unit]
    if value >= MAX_SIZE:
        raise SizeSpecError(f"too large: {text!r}")

    size = int(value)
    if size == 0:
        raise SizeSpecError(f"zero size: {text!r}")
    return size


def human_bytes(n: int) -> str:
    """Format byte count as human-readable string in SI units.

    Counts under ten are printed exactly ("1 B"), larger ones are rounded
    to one decimal under ten units ("1.0 kB") and to a whole number above
    ("100 MB").
    """
    if n < 10:
        return f"{n} B"
    exp = 0
    while exp < len(_SI_NAMES) - 1 and n >= 1000 ** (exp + 1):
        exp += 1
    val = int(n / 1000**exp * 10 + 0.5) / 10
    if val < 10:
        return f"{val:.1f} {_SI_NAMES[exp]}"
    return f"{val:.0f} {_SI_NAMES[exp]}"


def human_speed(bps: float) -> str:
    """Format bytes/sec as human-readable speed string."""
    if bps < 1:
        return "idle"
    elif bps < 1000:
        return f"{bps:.0f} B/s"
    elif bps < 1000 * 1000:
        return f"{bps / 1000:.1f} kB/s"
    elif bps < 1000 * 1000 * 1000:
        return f"{bps / (1000 * 1000):.1f} MB/s"
    else:
        return f"{bps / (1000 * 1000 * 1000):.2f} GB/s"
