"""
Line item extraction.

Finds the items section, then reads each line with the matched store's
template patterns or with the generic line shapes below.
"""

import logging
import math
import re
from typing import Dict, Iterable, List, Optional

from .base import BaseParser
from .categorization import categorize_item
from .config import ParserSettings
from .models import ParseContext, ParserResult, ReceiptItem
from .templates import ItemLayout, ItemPattern, ReceiptTemplate, as_catalog
from .utils import QTY_UNIT_TAIL_RE, SEPARATOR_RE, parse_price

logger = logging.getLogger(__name__)

SECTION_START_RE = re.compile(
    r"item.*qty.*price|description.*amount|item.*price|qty.*description|product.*price",
    re.IGNORECASE,
)
SECTION_END_RE = re.compile(
    r"subtotal|sub-total|sub total|total|tax|balance|amount due|due amount|payment",
    re.IGNORECASE,
)
HEADER_FOOTER_RE = re.compile(
    r"header|footer|item|qty|quantity|description|price|amount|subtotal|total|tax",
    re.IGNORECASE,
)
PRICE_SHAPE_RE = re.compile(r"\$?\d+\.\d{2}")
TRAILING_PRICE_TOKEN_RE = re.compile(r"(-?\$?\d+\.\d{2}-?)[^0-9]*$")
QTY_TOKEN_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:x|@|ea\.?|each)", re.IGNORECASE)
QTY_TAIL_PARTS_RE = re.compile(r"^(.*?)\s*(\d+)\s*[@*xX]\s*[$€£]?(\d+\.\d{2})\s*$")
NAME_JUNK_RE = re.compile(r"[^\w\s&()\-.,]")

GENERIC_PATTERNS = (
    ItemPattern(re.compile(r"^(\d+)\s+(.+?)\s+(\$?\d+\.\d{2})$"), ItemLayout.QTY_NAME_PRICE),
    ItemPattern(re.compile(r"^(.+?)\s+(-?\$?\d+\.\d{2})$"), ItemLayout.NAME_PRICE),
    ItemPattern(re.compile(r"^(.+?)\s+(\d+)\s*@\s*(\$?\d+\.\d{2})\s+(\$?\d+\.\d{2})$"), ItemLayout.NAME_QTY_UNIT_PRICE),
    ItemPattern(re.compile(r"^(.+?)\s+(\d+)\s*\*\s*(\$?\d+\.\d{2})\s+(\$?\d+\.\d{2})$"), ItemLayout.NAME_QTY_UNIT_PRICE),
)

TEMPLATE_CONFIDENCE = 0.8
GENERIC_CONFIDENCE = 0.7
UNSTRUCTURED_CONFIDENCE = 0.5
NO_ITEMS_CONFIDENCE = 0.2

_LAYOUT_GROUPS: Dict[ItemLayout, Dict[str, int]] = {
    ItemLayout.NAME_ONLY: {"name": 1},
    ItemLayout.NAME_PRICE: {"name": 1, "price": 2},
    ItemLayout.QTY_NAME_PRICE: {"quantity": 1, "name": 2, "price": 3},
    ItemLayout.NAME_QTY_PRICE: {"name": 1, "quantity": 2, "price": 3},
    ItemLayout.NAME_QTY_UNIT_PRICE: {"name": 1, "quantity": 2, "unit_price": 3, "price": 4},
}


def clean_item_name(name: str) -> str:
    name = re.sub(r"\s+", " ", name or "")
    return NAME_JUNK_RE.sub("", name).strip()


def is_header_or_footer(line: str) -> bool:
    line = line.strip()
    return bool(HEADER_FOOTER_RE.search(line) or SEPARATOR_RE.match(line) or len(line) < 5)


def _group(m: re.Match, key: str, layout: ItemLayout) -> Optional[str]:
    if key in m.re.groupindex:
        return m.group(key)
    index = _LAYOUT_GROUPS[layout].get(key)
    if index is None or index > m.re.groups:
        return None
    return m.group(index)


def item_from_match(m: re.Match, layout: ItemLayout, line: str, confidence: float) -> Optional[ReceiptItem]:
    """
    Build an item from a pattern match using the pattern's group layout.

    Returns None when the match has no usable name or a zero price. Negative
    prices are kept; they are discount lines.
    """
    name = _group(m, "name", layout) or ""
    price_token = _group(m, "price", layout)
    if price_token is None:
        trailing = TRAILING_PRICE_TOKEN_RE.search(line)
        price_token = trailing.group(1) if trailing else "0"
    price = parse_price(price_token)

    quantity_token = _group(m, "quantity", layout)
    unit_token = _group(m, "unit_price", layout)
    quantity = float(quantity_token) if quantity_token else 1.0
    unit_price = parse_price(unit_token) if unit_token else None

    # "Bananas 2 @ $0.59" read as a bare name still carries its quantity
    if quantity_token is None and QTY_UNIT_TAIL_RE.search(name):
        parts = QTY_TAIL_PARTS_RE.match(name)
        if parts:
            name, quantity, unit_price = parts.group(1), float(parts.group(2)), float(parts.group(3))

    name = clean_item_name(name)
    if not name or price == 0:
        return None
    return ReceiptItem(name=name, price=price, quantity=quantity, unit_price=unit_price, confidence=confidence)


class ItemParser(BaseParser[List[ReceiptItem]]):
    """Parser for purchased line items."""

    def __init__(self, templates: Iterable[ReceiptTemplate] = (), settings: Optional[ParserSettings] = None,
                 rules: Optional[Dict] = None):
        super().__init__(settings)
        self.catalog = as_catalog(templates)
        self.rules = rules or {}

    def parse(self, text: str, context: Optional[ParseContext] = None) -> ParserResult[List[ReceiptItem]]:
        errors: List[str] = []
        items: List[ReceiptItem] = []

        try:
            section = self.extract_items_section(self.clean_text(text))
            if not section.strip():
                errors.append("Could not identify items section in receipt")
            else:
                template = self.template_for(context)
                if template:
                    items = self.parse_with_template(template, section)
                    if not items:
                        logger.debug(f"Template {template.store_id} found no items, using generic patterns")
                if not items:
                    items = self.parse_generic(section)

            if not items and context is not None and context.preprocessed_items:
                items = [
                    ReceiptItem(
                        name=li.name,
                        price=li.price,
                        quantity=li.quantity or 1,
                        unit_price=li.unit_price,
                        confidence=li.confidence,
                    )
                    for li in context.preprocessed_items
                ]

            self.post_process(items)
            if not items:
                errors.append("No items found in receipt")
        except Exception as e:
            logger.warning(f"Item parsing failed: {e}")
            errors.append(f"Error parsing items: {e}")

        logger.debug(f"Items: {len(items)} found")
        return self.format_result(items, errors, context)

    def template_for(self, context: Optional[ParseContext]) -> Optional[ReceiptTemplate]:
        if context is None:
            return None
        return self.catalog.template_for_store(context.store_name)

    def extract_items_section(self, text: str) -> str:
        lines = text.split("\n")
        start = None
        end = None

        for i, line in enumerate(lines):
            if SECTION_START_RE.search(line) or SEPARATOR_RE.match(line.strip()):
                start = i + 1
                break

        search_from = start if start is not None else 0
        for i in range(search_from, len(lines)):
            line = lines[i]
            if SECTION_END_RE.search(line) or SEPARATOR_RE.match(line.strip()):
                end = i - 1
                break

        if start is None:
            start = min(5, math.floor(len(lines) * 0.2))
        if end is None or end < start:
            end = max(start + 1, len(lines) - 5)

        return "\n".join(lines[start:end + 1])

    def parse_with_template(self, template: ReceiptTemplate, section: str) -> List[ReceiptItem]:
        """Try each template pattern in turn; the first one that yields items wins."""
        lines = [line for line in section.split("\n") if line.strip() and not is_header_or_footer(line)]
        for pattern in template.item_patterns:
            items = []
            for line in lines:
                m = pattern.regex.search(line.strip())
                if not m:
                    continue
                try:
                    item = item_from_match(m, pattern.layout, line, TEMPLATE_CONFIDENCE)
                except (ValueError, IndexError) as e:
                    logger.debug(f"Skipping line {line!r}: {e}")
                    continue
                if item:
                    items.append(item)
            if items:
                return items
        return []

    def parse_generic(self, section: str) -> List[ReceiptItem]:
        items = []
        for line in section.split("\n"):
            line = line.strip()
            if not line or is_header_or_footer(line):
                continue

            item = None
            for pattern in GENERIC_PATTERNS:
                m = pattern.regex.match(line)
                if not m:
                    continue
                if pattern.layout is ItemLayout.NAME_PRICE and QTY_UNIT_TAIL_RE.search(m.group(1)):
                    continue
                item = item_from_match(m, pattern.layout, line, GENERIC_CONFIDENCE)
                if item:
                    break

            if item is None and PRICE_SHAPE_RE.search(line):
                item = self.parse_unstructured_line(line)
            if item:
                items.append(item)
        return items

    def parse_unstructured_line(self, line: str) -> Optional[ReceiptItem]:
        m = TRAILING_PRICE_TOKEN_RE.search(line)
        if not m:
            return None
        price = parse_price(m.group(1))
        name = line[:line.rfind(m.group(1))].strip()

        quantity = 1.0
        unit_price = None
        parts = QTY_TAIL_PARTS_RE.match(name)
        if parts:
            # "Milk 2 x 3.00 6.00"
            name, quantity, unit_price = parts.group(1), float(parts.group(2)), float(parts.group(3))
        else:
            qty = QTY_TOKEN_RE.search(name)
            if qty:
                quantity = float(qty.group(1))
                name = name.replace(qty.group(0), "", 1).strip()

        name = clean_item_name(name)
        if not name or price == 0:
            return None
        return ReceiptItem(name=name, price=price, quantity=quantity, unit_price=unit_price,
                           confidence=UNSTRUCTURED_CONFIDENCE)

    def post_process(self, items: List[ReceiptItem]) -> None:
        for item in items:
            if not item.unit_price and item.quantity > 0:
                item.unit_price = item.price / item.quantity
            if (
                "discount" in item.name.lower()
                or item.price < 0
                or (item.unit_price and item.unit_price * item.quantity > item.price + 0.005)
            ):
                item.discounted = True
            category, _ = categorize_item(item.name, self.rules)
            item.category = category

    def calculate_confidence(self, data: List[ReceiptItem], errors: List[str],
                             context: Optional[ParseContext] = None) -> float:
        if not data:
            return NO_ITEMS_CONFIDENCE
        score = self.base_confidence(errors, context)
        if len(data) < 3 and errors:
            score *= 0.7
        mean = sum(item.confidence for item in data) / len(data)
        return self.settings.item_base_weight * score + self.settings.item_mean_weight * mean
