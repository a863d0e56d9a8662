"""
OCR preprocessing: segment receipt text into sections and pick out line items.

Works in two modes. With text blocks the vertical extent of the page is
split into overlapping percentage bands; without them the same bands are
applied to line indices.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .models import TextBlock
from .normalizer import fix_ocr_errors
from .utils import QTY_UNIT_TAIL_RE, TOTALS_KEYWORDS_RE, clamp

logger = logging.getLogger(__name__)

SECTION_NAMES = ("header", "items", "totals", "footer")

# (start, end) fractions of the page height
HEADER_BAND = (0.0, 0.2)
ITEMS_BAND = (0.15, 0.7)
TOTALS_BAND = (0.65, 0.85)
FOOTER_BAND = (0.8, 1.0)

TEXT_ONLY_CONFIDENCE = 0.4

LINE_ITEM_PATTERNS = [
    # name + price
    ("name_price", re.compile(r"^(.+?)\s+\$?(\d+\.\d{2})$")),
    # name + qty x unit price + price
    ("qty_x", re.compile(r"^(.+?)\s+(\d+)\s*[xX]\s*\$?(\d+\.\d{2})\s*\$?(\d+\.\d{2})$")),
    # name + qty @ unit price + price
    ("qty_at", re.compile(r"^(.+?)\s+(\d+)\s*@\s*\$?(\d+\.\d{2})\s*\$?(\d+\.\d{2})$")),
]


@dataclass
class LineItem:
    name: str
    price: float
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    confidence: float = 0.0


@dataclass
class PreprocessedOcrResult:
    enhanced_text: str
    sections: Dict[str, str] = field(default_factory=dict)
    line_items: List[LineItem] = field(default_factory=list)
    confidence: float = 0.5


def preprocess(text: str, blocks: Optional[Sequence[TextBlock]] = None) -> PreprocessedOcrResult:
    """
    Preprocess OCR output for receipt parsing.

    Args:
        text: Raw OCR text
        blocks: Optional text blocks with bounding boxes

    Returns:
        PreprocessedOcrResult with sections, preliminary line items and a
        self-assessed confidence
    """
    cleaned = fix_ocr_errors(text or "")
    result = PreprocessedOcrResult(enhanced_text=cleaned)

    if blocks:
        result.sections = identify_sections(blocks)
        result.line_items = extract_line_items(blocks)
        result.confidence = section_confidence(result.sections, result.line_items)
        logger.debug(f"Spatial preprocessing: sections={list(result.sections)} items={len(result.line_items)}")
    else:
        result.sections = identify_sections_from_text(cleaned)
        result.line_items = extract_line_items_from_text(cleaned)
        result.confidence = TEXT_ONLY_CONFIDENCE
        logger.debug(f"Text-only preprocessing: sections={list(result.sections)} items={len(result.line_items)}")

    result.enhanced_text = enhance_text(cleaned, result.sections, result.line_items)
    return result


def _sorted_blocks(blocks: Sequence[TextBlock]) -> List[TextBlock]:
    return sorted(blocks, key=lambda b: b.bounding_box.y)


def identify_sections(blocks: Sequence[TextBlock]) -> Dict[str, str]:
    """Assign blocks to overlapping vertical bands; a block may land in several."""
    sections: Dict[str, str] = {}
    ordered = _sorted_blocks(blocks)
    if not ordered:
        return sections

    top = ordered[0].bounding_box.y
    height = ordered[-1].bounding_box.bottom - top

    def band(start: float, end: float) -> List[TextBlock]:
        lo = top + height * start
        hi = top + height * end
        if start == 0.0:
            return [b for b in ordered if b.bounding_box.y < hi]
        if end >= 1.0:
            return [b for b in ordered if b.bounding_box.y >= lo]
        return [b for b in ordered if lo <= b.bounding_box.y <= hi]

    for name, (start, end) in zip(SECTION_NAMES, (HEADER_BAND, ITEMS_BAND, TOTALS_BAND, FOOTER_BAND)):
        members = band(start, end)
        if members:
            sections[name] = "\n".join(b.text for b in members)

    if "totals" not in sections:
        keyword_blocks = [b for b in ordered if TOTALS_KEYWORDS_RE.search(b.text)]
        if keyword_blocks:
            sections["totals"] = "\n".join(b.text for b in keyword_blocks)

    return sections


def identify_sections_from_text(text: str) -> Dict[str, str]:
    """Same bands as identify_sections, over line indices."""
    sections: Dict[str, str] = {}
    lines = text.split("\n") if text else []
    n = len(lines)
    if n == 0:
        return sections

    sections["header"] = "\n".join(lines[:math.ceil(n * 0.2)])
    sections["items"] = "\n".join(lines[math.floor(n * 0.15):math.ceil(n * 0.7)])

    totals_lines: List[str] = []
    half = math.floor(n * 0.5)
    for i in range(half, n):
        if TOTALS_KEYWORDS_RE.search(lines[i]):
            start = max(i - 2, half)
            totals_lines = lines[start:min(i + 3, n)]
            break
    if not totals_lines:
        totals_lines = lines[math.floor(n * 0.7):math.ceil(n * 0.9)]
    if totals_lines:
        sections["totals"] = "\n".join(totals_lines)

    footer = lines[math.floor(n * 0.85):]
    if footer:
        sections["footer"] = "\n".join(footer)

    return {k: v for k, v in sections.items() if v}


def match_line_item(line: str, confidence: float, qty_confidence: float) -> Optional[LineItem]:
    """Apply the ordered line-item patterns to a non-totals line; first match wins."""
    line = line.strip()
    if TOTALS_KEYWORDS_RE.search(line):
        return None
    for kind, pattern in LINE_ITEM_PATTERNS:
        m = pattern.match(line)
        if not m:
            continue
        name = m.group(1).strip()
        if kind == "name_price":
            # "Bananas 2 @ $0.59 $1.18" belongs to a quantity pattern
            if QTY_UNIT_TAIL_RE.search(name) or not name:
                continue
            return LineItem(name=name, price=float(m.group(2)), confidence=confidence)
        if name:
            return LineItem(
                name=name,
                price=float(m.group(4)),
                quantity=int(m.group(2)),
                unit_price=float(m.group(3)),
                confidence=qty_confidence,
            )
    return None


def extract_line_items(blocks: Sequence[TextBlock]) -> List[LineItem]:
    """Line items from the middle 20-70% of blocks (ordered top to bottom)."""
    ordered = _sorted_blocks(blocks)
    n = len(ordered)
    items: List[LineItem] = []
    for block in ordered[math.floor(n * 0.2):math.ceil(n * 0.7)]:
        for line in fix_ocr_errors(block.text).split("\n"):
            item = match_line_item(line, 0.8, 0.9)
            if item:
                items.append(item)
    return items


def extract_line_items_from_text(text: str) -> List[LineItem]:
    """Line items from the middle 20-70% of lines."""
    lines = text.split("\n") if text else []
    n = len(lines)
    items: List[LineItem] = []
    for line in lines[math.floor(n * 0.2):math.ceil(n * 0.7)]:
        item = match_line_item(line, 0.7, 0.8)
        if item:
            items.append(item)
    return items


def enhance_text(text: str, sections: Dict[str, str], line_items: List[LineItem]) -> str:
    """Rebuild the text with section markers once header, items and totals are known."""
    if not (sections.get("header") and sections.get("items") and sections.get("totals")):
        return text

    def render(item: LineItem) -> str:
        s = item.name
        if item.quantity and item.unit_price:
            s += f" {item.quantity:g} @ ${item.unit_price:.2f}"
        return s + f" ${item.price:.2f}"

    parts = [
        "--- RECEIPT HEADER ---",
        sections["header"],
        "",
        "--- RECEIPT ITEMS ---",
        "\n".join(render(item) for item in line_items),
        "",
        "--- RECEIPT TOTALS ---",
        sections["totals"],
    ]
    if sections.get("footer"):
        parts += ["", "--- RECEIPT FOOTER ---", sections["footer"]]
    return "\n".join(parts)


def section_confidence(sections: Dict[str, str], line_items: List[LineItem]) -> float:
    """Start at 0.5, add for each detected section and for items found."""
    score = 0.5
    if sections.get("header"):
        score += 0.1
    if sections.get("items"):
        score += 0.1
    if sections.get("totals"):
        score += 0.1
    if sections.get("footer"):
        score += 0.05
    if line_items:
        score += min(0.2, len(line_items) * 0.02)
    else:
        score -= 0.2
    return clamp(score)
