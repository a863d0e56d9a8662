"""
Store information extraction from the receipt header.
"""

import logging
import re
from typing import Iterable, List, Optional

from .base import BaseParser
from .config import ParserSettings
from .models import ParseContext, ParserResult, Store
from .templates import ReceiptTemplate, as_catalog
from .utils import clamp

logger = logging.getLogger(__name__)

DATE_LIKE_RE = re.compile(r"\d{1,4}[-./]\d{1,2}[-./]\d{1,4}|\d{1,2}[-./]\d{1,2}[-./]\d{2,4}")
TIME_LIKE_RE = re.compile(r"\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AP]M)?", re.IGNORECASE)
GREETINGS_RE = re.compile(r"welcome to|thank you for shopping", re.IGNORECASE)

ADDRESS_EXCLUDE_RE = re.compile(r"total|subtotal|tax|item|qty|price|\$\d+\.\d+", re.IGNORECASE)
ADDRESS_RE = re.compile(
    r"\d+\s+[A-Za-z0-9\s,]+(?:street|st|avenue|ave|road|rd|boulevard|blvd|lane|ln|drive|dr|way|place|pl|square|sq)\b",
    re.IGNORECASE,
)
LABELED_PHONE_RE = re.compile(r"(?:phone|tel|telephone)[:\s]*(\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})", re.IGNORECASE)
PHONE_RE = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
WEBSITE_RE = re.compile(r"(?:www\.|https?://)[A-Za-z0-9.-]+\.[A-Za-z]{2,}", re.IGNORECASE)
TAX_ID_RE = re.compile(r"\b(?:tax\s*id|tin|ein|gst|vat|abn)\b[#:]?\s*([A-Za-z0-9-]{5,})", re.IGNORECASE)


class StoreParser(BaseParser[Store]):
    """Parser for store name, address and contact details."""

    def __init__(self, templates: Iterable[ReceiptTemplate] = (), settings: Optional[ParserSettings] = None):
        super().__init__(settings)
        self.catalog = as_catalog(templates)

    def parse(self, text: str, context: Optional[ParseContext] = None) -> ParserResult[Store]:
        errors: List[str] = []
        store = Store()

        try:
            cleaned = self.clean_text(text)
            name = self.match_store_template(cleaned) or self.extract_store_heuristically(cleaned)
            store.name = name

            if name:
                store.address = self.extract_address(cleaned, name)
                store.phone = self.extract_phone(cleaned)
                store.website = self.extract_website(cleaned)
                store.tax_id = self.extract_tax_id(cleaned)
            else:
                errors.append("Could not determine store name")
        except Exception as e:
            logger.warning(f"Store parsing failed: {e}")
            errors.append(f"Error parsing store information: {e}")

        logger.debug(f"Store: {store.name!r}")
        return self.format_result(store, errors, context)

    def match_store_template(self, text: str) -> Optional[str]:
        """Canonical name of the first template whose store pattern is in the text."""
        template = self.catalog.find_matching_template(text)
        return template.store_name if template else None

    def extract_store_heuristically(self, text: str) -> str:
        lines = text.split("\n") if text else []
        name = ""
        index = -1
        for i, line in enumerate(lines[:5]):
            line = line.strip()
            if line and not DATE_LIKE_RE.search(line) and not TIME_LIKE_RE.search(line):
                name, index = line, i
                break

        # Very short first lines are usually a split logo ("H E B")
        if name and len(name) < 5 and index + 1 < len(lines):
            name = f"{name} {lines[index + 1].strip()}".strip()

        return GREETINGS_RE.sub("", name).strip()

    def extract_address(self, text: str, store_name: str) -> Optional[str]:
        lines = text.split("\n")
        needle = store_name.lower()
        index = next((i for i, line in enumerate(lines) if needle in line.lower()), -1)

        if index >= 0:
            for line in lines[index + 1:index + 3]:
                line = line.strip()
                if re.search(r"\d", line) and not ADDRESS_EXCLUDE_RE.search(line):
                    return line

        m = ADDRESS_RE.search(text)
        return m.group(0).strip() if m else None

    def extract_phone(self, text: str) -> Optional[str]:
        m = LABELED_PHONE_RE.search(text)
        if m:
            return m.group(1)
        m = PHONE_RE.search(text)
        return m.group(0) if m else None

    def extract_website(self, text: str) -> Optional[str]:
        m = WEBSITE_RE.search(text)
        return m.group(0) if m else None

    def extract_tax_id(self, text: str) -> Optional[str]:
        m = TAX_ID_RE.search(text)
        return m.group(1) if m else None

    def calculate_confidence(self, data: Store, errors: List[str], context: Optional[ParseContext] = None) -> float:
        score = self.base_confidence(errors, context)
        if not data.name:
            score *= 0.3
        if data.address:
            score += 0.1
        if data.phone:
            score += 0.05
        if data.website:
            score += 0.05
        if data.tax_id:
            score += 0.05
        return clamp(score)
