"""
Transaction date extraction.
"""

import datetime as dt
import logging
import re
from typing import List, Optional, Tuple

from .base import BaseParser
from .models import ParseContext, ParserResult

logger = logging.getLogger(__name__)

_MONTHS = (
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)

MONTH_NUMBERS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

# Ordered date shapes: (format name, pattern). First valid calendar date wins.
DATE_FORMATS: List[Tuple[str, re.Pattern]] = [
    ("MM/DD/YYYY", re.compile(r"(?<![\d/-])(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?![\d/-])")),
    ("MM/DD/YY", re.compile(r"(?<![\d/-])(\d{1,2})[/-](\d{1,2})[/-](\d{2})(?![\d/-])")),
    ("DD/MM/YYYY", re.compile(r"(?<![\d/-])(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?![\d/-])")),
    ("YYYY/MM/DD", re.compile(r"(?<![\d/-])(\d{4})[/-](\d{1,2})[/-](\d{1,2})(?![\d/-])")),
    ("Month DD, YYYY", re.compile(_MONTHS + r"\.?[,\s]+(\d{1,2})(?:st|nd|rd|th)?[,.\s]+(\d{4}|\d{2})\b", re.IGNORECASE)),
    ("DD Month YYYY", re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)?[,.\s]+" + _MONTHS + r"\.?[,.\s]+(\d{4}|\d{2})\b", re.IGNORECASE)),
]

DATE_LABELS = [
    re.compile(r"(?:receipt|invoice|transaction|order)?\s*date\s*:?\s*(\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2}))", re.IGNORECASE),
    re.compile(r"date\s*:?\s*([A-Za-z]{3,9}\.?\s+\d{1,2},?\s+(?:\d{4}|\d{2}))", re.IGNORECASE),
    re.compile(r"(\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2}))\s*(?:receipt|invoice|transaction|date)", re.IGNORECASE),
]

DATE_KEYWORD_RE = re.compile(r"date|time", re.IGNORECASE)
DATE_FRAGMENT_RE = re.compile(r"(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?")

LABELED_CONFIDENCE = 0.9
PATTERN_CONFIDENCE = 0.8
FRAGMENT_CONFIDENCE = 0.6
MISSING_CONFIDENCE = 0.3


def expand_year(year: int) -> int:
    """Two-digit years below 50 are 20xx, the rest 19xx."""
    if year > 999:
        return year
    return year + 2000 if year < 50 else year + 1900


def _build(fmt: str, groups: Tuple[str, ...]) -> dt.date:
    if fmt == "MM/DD/YYYY" or fmt == "MM/DD/YY":
        month, day, year = int(groups[0]), int(groups[1]), expand_year(int(groups[2]))
    elif fmt == "DD/MM/YYYY":
        day, month, year = int(groups[0]), int(groups[1]), expand_year(int(groups[2]))
    elif fmt == "YYYY/MM/DD":
        year, month, day = expand_year(int(groups[0])), int(groups[1]), int(groups[2])
    elif fmt == "Month DD, YYYY":
        month, day, year = MONTH_NUMBERS[groups[0][:3].lower()], int(groups[1]), expand_year(int(groups[2]))
    elif fmt == "DD Month YYYY":
        day, month, year = int(groups[0]), MONTH_NUMBERS[groups[1][:3].lower()], expand_year(int(groups[2]))
    else:
        raise ValueError(f"Unsupported date format: {fmt}")
    return dt.date(year, month, day)


def match_date(text: str) -> Optional[Tuple[dt.date, str, str]]:
    """
    Find the first valid calendar date in text.

    Returns:
        Tuple of (date, format name, matched text) or None
    """
    for fmt, pattern in DATE_FORMATS:
        for m in pattern.finditer(text or ""):
            try:
                return _build(fmt, m.groups()), fmt, m.group(0)
            except (ValueError, KeyError):
                continue
    return None


def match_date_fragment(text: str, today: Optional[dt.date] = None) -> Optional[dt.date]:
    """
    Date from a "date"/"time" keyword line holding a d/d fragment.

    A fragment without a year takes the most recent year that keeps it
    out of the future.
    """
    today = today or dt.date.today()
    for line in (text or "").split("\n"):
        if not DATE_KEYWORD_RE.search(line):
            continue
        for m in DATE_FRAGMENT_RE.finditer(line):
            month, day, year = int(m.group(1)), int(m.group(2)), m.group(3)
            try:
                if year:
                    return dt.date(expand_year(int(year)), month, day)
                candidate = dt.date(today.year, month, day)
                if candidate > today:
                    candidate = candidate.replace(year=today.year - 1)
                return candidate
            except ValueError:
                continue
    return None


class DateParser(BaseParser[dt.date]):
    """Parser for the transaction date."""

    def parse(self, text: str, context: Optional[ParseContext] = None) -> ParserResult[dt.date]:
        errors: List[str] = []
        today = dt.date.today()
        receipt_date = today
        confidence = MISSING_CONFIDENCE

        try:
            cleaned = self.clean_text(text)
            found = self._find_labeled(cleaned)
            if found:
                receipt_date, confidence = found, LABELED_CONFIDENCE
            else:
                matched = match_date(cleaned)
                if matched:
                    receipt_date, confidence = matched[0], PATTERN_CONFIDENCE
                else:
                    fragment = match_date_fragment(cleaned, today)
                    if fragment:
                        receipt_date, confidence = fragment, FRAGMENT_CONFIDENCE
                    else:
                        errors.append("No date found in receipt")

            if receipt_date > today:
                errors.append("Parsed date is in the future")
                confidence *= 0.5
            elif receipt_date < today - dt.timedelta(days=self.settings.max_receipt_age_days):
                confidence *= 0.8
        except Exception as e:
            logger.warning(f"Date parsing failed: {e}")
            errors.append(f"Error parsing date: {e}")
            receipt_date, confidence = today, MISSING_CONFIDENCE

        logger.debug(f"Date: {receipt_date} (confidence {confidence:.2f})")
        return ParserResult(data=receipt_date, confidence=confidence, errors=errors)

    def _find_labeled(self, text: str) -> Optional[dt.date]:
        for label in DATE_LABELS:
            for m in label.finditer(text):
                matched = match_date(m.group(1))
                if matched:
                    return matched[0]
        return None
