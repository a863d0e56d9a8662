"""
Utility functions and constants for receipt parsing.
"""

import hashlib
import re
from pathlib import Path
from typing import Optional

# File type constants
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}
PDF_EXTS = {".pdf"}
TEXT_EXTS = {".txt"}
JSON_EXTS = {".json"}

# Pattern constants for amounts
TRAILING_PRICE_RE = re.compile(r"(.+?)\s+\$?(\d+\.\d{2})$")
CURRENCY_AMOUNT_RE = re.compile(r"[$€£]?(\d+\.\d{2})")
BARE_DECIMAL_RE = re.compile(r"(\d+\.\d+)")

# "2 @ $0.59" / "3 x 1.99" / "2*1.50" at the end of a would-be item name
QTY_UNIT_TAIL_RE = re.compile(r"\d+\s*[@*xX]\s*[$€£]?\d+\.\d{2}\s*$")

TOTALS_KEYWORDS_RE = re.compile(r"total|subtotal|tax|balance|sum|amount due", re.IGNORECASE)
SEPARATOR_RE = re.compile(r"^[-=*_]{5,}$")


def normalize_amount(s: str) -> Optional[float]:
    """Normalize amount string to float."""
    if not s:
        return None
    s = s.replace(",", "").replace(" ", "")
    try:
        return float(s)
    except ValueError:
        return None


def parse_price(s: str) -> float:
    """Parse a price token like '$1.18', '-2.00' or '2.00-'; unparseable tokens give 0."""
    s = (s or "").strip()
    negative = s.startswith("-") or s.endswith("-")
    cleaned = re.sub(r"[^\d.]", "", s)
    value = normalize_amount(cleaned)
    if value is None:
        return 0.0
    return -value if negative else value


def extract_amount_from_line(line: str) -> float:
    """
    Extract the first currency-shaped amount on a line.

    Looks for "$13.94"-style amounts first, then any bare decimal number.
    Returns 0 when the line carries no number.
    """
    m = CURRENCY_AMOUNT_RE.search(line)
    if m:
        return float(m.group(1))
    m = BARE_DECIMAL_RE.search(line)
    if m:
        return float(m.group(1))
    return 0.0


def round_money(v: float) -> float:
    return round(v, 2)


def clamp(v: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, v))


def sha1_file(path: Path) -> str:
    """Calculate SHA1 hash of file."""
    h = hashlib.sha1()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def money_fmt(v: Optional[float]) -> str:
    """Format amount as currency."""
    return f"${v:,.2f}" if v is not None else ""
