"""
Template matching for receipt layouts.

Scores every store template against the receipt text (and text blocks when
available) and falls back to generic feature detection when no template
fits well enough.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .config import DEFAULT_SETTINGS, ParserSettings
from .date_parser import DATE_KEYWORD_RE, DATE_FRAGMENT_RE, match_date
from .models import TextBlock
from .normalizer import normalize
from .templates import ReceiptTemplate
from .utils import TRAILING_PRICE_RE

logger = logging.getLogger(__name__)

STORE_PATTERN_WEIGHT = 0.3
GENERIC_STORE_ID = "generic"
UNKNOWN_STORE = "Unknown Store"

COMMON_STORES = (
    "walmart", "target", "costco", "kroger", "safeway", "cvs", "walgreens",
    "starbucks", "mcdonald", "subway", "taco bell", "burger king",
    "home depot", "lowes", "best buy", "amazon", "ebay", "whole foods",
    "trader joe", "publix", "aldi", "dollar", "office depot", "staples",
)

TOTALS_FALLBACK_RE = re.compile(r"total|subtotal|sub-total|sum|amount|tax", re.IGNORECASE)
FOOTER_TEXT_RE = re.compile(
    r"thank you|come again|receipt|customer copy|merchant copy|return policy|www|http|\.com|follow us",
    re.IGNORECASE,
)

TOTAL_AMOUNT_PATTERNS = [
    re.compile(r"(?<!sub)(?<!sub-)(?<!sub )total[:\s]*[$€£]?(\d+\.\d{2})", re.IGNORECASE),
    re.compile(r"amount\s*due[:\s]*[$€£]?(\d+\.\d{2})", re.IGNORECASE),
    re.compile(r"grand\s*total[:\s]*[$€£]?(\d+\.\d{2})", re.IGNORECASE),
    re.compile(r"balance\s*due[:\s]*[$€£]?(\d+\.\d{2})", re.IGNORECASE),
]
LOOSE_AMOUNT_RE = re.compile(r"\$?\s?(\d+\.\d{2})")


@dataclass(frozen=True)
class Region:
    """Page area covered by a set of blocks."""
    top: float = 0.0
    left: float = 0.0
    bottom: float = 0.0
    right: float = 0.0

    @classmethod
    def around(cls, blocks: Sequence[TextBlock]) -> "Region":
        return cls(
            top=min(b.bounding_box.y for b in blocks),
            left=min(b.bounding_box.x for b in blocks),
            bottom=max(b.bounding_box.bottom for b in blocks),
            right=max(b.bounding_box.right for b in blocks),
        )


@dataclass
class RegionMatch:
    confidence: float
    region: Region
    text: str


@dataclass
class TemplateMatchResult:
    template: ReceiptTemplate
    confidence: float
    matched_regions: Dict[str, RegionMatch] = field(default_factory=dict)

    @property
    def is_generic(self) -> bool:
        return self.template.store_id == GENERIC_STORE_ID


@dataclass
class Feature:
    """Outcome of one generic detector."""
    found: bool = False
    confidence: float = 0.0
    value: Any = None
    region: Optional[Region] = None


def _sorted_blocks(blocks: Sequence[TextBlock]) -> List[TextBlock]:
    return sorted(blocks, key=lambda b: b.bounding_box.y)


def _any_match(patterns: Sequence[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def _block_region(blocks: Optional[Sequence[TextBlock]], predicate: Callable[[TextBlock], bool]) -> Optional[Region]:
    for block in blocks or ():
        if predicate(block):
            return Region.around([block])
    return None


class TemplateMatcher:
    """Find the template that best explains a receipt."""

    def __init__(self, templates: Iterable[ReceiptTemplate] = (), settings: Optional[ParserSettings] = None):
        self.templates = tuple(templates)
        self.settings = settings or DEFAULT_SETTINGS

    def find_best_match(self, text: str, blocks: Optional[Sequence[TextBlock]] = None) -> Optional[TemplateMatchResult]:
        """
        Best template match for the receipt, or None.

        Falls back to generic feature detection when no template reaches
        the generic fallback threshold. Never raises.
        """
        if not text:
            return None

        cleaned = normalize(text)
        best: Optional[TemplateMatchResult] = None

        for template in self.templates:
            try:
                match = self.match_template(template, cleaned, blocks)
            except Exception as e:
                logger.warning(f"Template {template.store_name} could not be matched: {e}")
                continue
            if match and (best is None or match.confidence > best.confidence):
                best = match

        if best is None or best.confidence < self.settings.generic_fallback_threshold:
            try:
                generic = self.detect_generic(cleaned, blocks)
            except Exception as e:
                logger.warning(f"Generic receipt detection failed: {e}")
                generic = None
            if generic and (best is None or generic.confidence > best.confidence):
                best = generic

        if best:
            logger.debug(f"Best template: {best.template.store_id} ({best.confidence:.2f})")
        return best

    def match_template(self, template: ReceiptTemplate, text: str,
                       blocks: Optional[Sequence[TextBlock]] = None) -> Optional[TemplateMatchResult]:
        store_confidence = STORE_PATTERN_WEIGHT * template.matches_store(text)
        if store_confidence == 0:
            return None

        regions: Dict[str, RegionMatch] = {}
        for section in ("header", "items", "totals", "footer"):
            region = self.match_section(template, section, text, blocks)
            if region:
                regions[section] = region

        scores = [c for c in [store_confidence] + [r.confidence for r in regions.values()] if c > 0]
        confidence = sum(scores) / len(scores)
        if confidence > self.settings.template_accept_threshold:
            return TemplateMatchResult(template=template, confidence=confidence, matched_regions=regions)
        return None

    def match_section(self, template: ReceiptTemplate, section: str, text: str,
                      blocks: Optional[Sequence[TextBlock]] = None) -> Optional[RegionMatch]:
        patterns = section_patterns(template, section)
        if not patterns:
            return None

        if blocks:
            region = identify_section_region(section, blocks, patterns)
            if region:
                return region

        hits = sum(1 for p in patterns if p.search(text))
        if hits:
            return RegionMatch(confidence=hits / len(patterns), region=Region(), text=text)
        return None

    def detect_generic(self, text: str, blocks: Optional[Sequence[TextBlock]] = None) -> Optional[TemplateMatchResult]:
        """Template-free detection of store name, date, total and items."""
        store = detect_store_name(text, blocks)
        features = [store, detect_date(text), detect_total(text, blocks), detect_items(text, blocks)]
        found = [f for f in features if f.found]
        if not found:
            return None

        confidence = sum(f.confidence for f in found) / len(found)
        template = ReceiptTemplate(
            store_id=GENERIC_STORE_ID,
            store_name=store.value if store.found and isinstance(store.value, str) else UNKNOWN_STORE,
            store_patterns=(),
            totals_patterns=MappingProxyType({"total": re.compile("total", re.IGNORECASE)}),
        )

        regions: Dict[str, RegionMatch] = {}
        if blocks:
            for section, feature in (("header", features[0]), ("totals", features[2]), ("items", features[3])):
                if feature.found and feature.region:
                    value = feature.value if isinstance(feature.value, str) else ""
                    regions[section] = RegionMatch(feature.confidence, feature.region, value)

        return TemplateMatchResult(template=template, confidence=confidence, matched_regions=regions)


def section_patterns(template: ReceiptTemplate, section: str) -> List[re.Pattern]:
    if section == "header":
        return list(template.header_patterns)
    if section == "items":
        return [p.regex for p in template.item_patterns]
    if section == "totals":
        return list(template.totals_patterns.values())
    if section == "footer":
        return list(template.payment_patterns)
    raise ValueError(f"Unknown section: {section}")


def identify_section_region(section: str, blocks: Sequence[TextBlock],
                            patterns: Sequence[re.Pattern]) -> Optional[RegionMatch]:
    """Locate a section among the blocks using its position on the page."""
    ordered = _sorted_blocks(blocks)
    if not ordered:
        return None
    n = len(ordered)

    if section == "header":
        top_count = max(1, math.ceil(n * 0.2))
        top = ordered[:top_count]
        matched = [b for b in top if _any_match(patterns, b.text)] or top[:3]
        confidence = len(matched) / top_count
    elif section == "items":
        matched = [b for b in ordered if _any_match(patterns, b.text)]
        if matched:
            confidence = min(0.9, len(matched) / 5)
        else:
            middle = n / 2
            matched = ordered[math.floor(middle * 0.7):math.ceil(middle * 1.3)]
            confidence = 0.5
    elif section == "totals":
        bottom = ordered[math.floor(n * 0.66):]
        matched = [b for b in bottom if _any_match(patterns, b.text)]
        if matched:
            confidence = min(0.9, len(matched) / 3)
        else:
            matched = [b for b in bottom if TOTALS_FALLBACK_RE.search(b.text)]
            confidence = 0.6
    elif section == "footer":
        bottom_count = max(1, math.ceil(n * 0.1))
        bottom = ordered[-bottom_count:]
        matched = [b for b in bottom if _any_match(patterns, b.text)]
        if not matched:
            matched = [b for b in bottom if FOOTER_TEXT_RE.search(b.text)]
        confidence = len(matched) / bottom_count
    else:
        raise ValueError(f"Unknown section: {section}")

    if not matched:
        return None
    return RegionMatch(
        confidence=confidence,
        region=Region.around(matched),
        text="\n".join(b.text for b in matched),
    )


def detect_store_name(text: str, blocks: Optional[Sequence[TextBlock]] = None) -> Feature:
    lines = text.split("\n")[:5]
    for line in lines:
        lowered = line.strip().lower()
        for store in COMMON_STORES:
            if store in lowered:
                region = _block_region(blocks, lambda b: store in b.text.lower())
                return Feature(True, 0.9, line.strip(), region)

    for line in lines:
        stripped = line.strip()
        if stripped:
            region = _block_region(blocks, lambda b: stripped in b.text)
            return Feature(True, 0.5, stripped, region)
    return Feature()


def detect_date(text: str) -> Feature:
    matched = match_date(text)
    if matched:
        return Feature(True, 0.9, matched[0])

    for line in text.split("\n"):
        if DATE_KEYWORD_RE.search(line):
            m = DATE_FRAGMENT_RE.search(line)
            if m:
                return Feature(True, 0.7, m.group(0))
    return Feature()


def detect_total(text: str, blocks: Optional[Sequence[TextBlock]] = None) -> Feature:
    for pattern in TOTAL_AMOUNT_PATTERNS:
        m = pattern.search(text)
        if m:
            region = _block_region(blocks, lambda b: bool(pattern.search(b.text)))
            return Feature(True, 0.9, float(m.group(1)), region)

    lines = text.split("\n")
    best_amount, best_line = 0.0, None
    for line in lines[math.floor(len(lines) * 0.66):]:
        for m in LOOSE_AMOUNT_RE.finditer(line):
            amount = float(m.group(1))
            if amount > 5 and amount > best_amount:
                best_amount, best_line = amount, line.strip()
    if best_line is None:
        return Feature()
    region = _block_region(blocks, lambda b: best_line in b.text)
    return Feature(True, 0.6, best_amount, region)


def detect_items(text: str, blocks: Optional[Sequence[TextBlock]] = None) -> Feature:
    item_lines = [line for line in text.split("\n") if TRAILING_PRICE_RE.search(line.strip())]
    if len(item_lines) <= 2:
        return Feature()

    region = None
    if blocks:
        first, last = item_lines[0].strip(), item_lines[-1].strip()
        first_block = next((b for b in blocks if first in b.text), None)
        last_block = next((b for b in blocks if last in b.text), None)
        if first_block and last_block:
            region = Region.around([first_block, last_block])

    return Feature(True, min(0.9, len(item_lines) / 10), "\n".join(item_lines), region)
