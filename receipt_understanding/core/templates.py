"""
Store-specific receipt templates.

Templates are static configuration: their regex patterns are compiled once,
when the template is built, and never change afterwards. Patterns that fail
to compile are quarantined with a warning instead of breaking the catalog.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

TOTALS_KEYS = ("subtotal", "tax", "total", "tip", "discount")


class TemplateError(Exception):
    """Raised for a template entry that cannot be used at all."""


class ItemLayout(str, Enum):
    """Which capture group of an item pattern holds which field."""
    NAME_ONLY = "name_only"                      # (name)
    NAME_PRICE = "name_price"                    # (name) (price)
    QTY_NAME_PRICE = "qty_name_price"            # (qty) (name) (price)
    NAME_QTY_PRICE = "name_qty_price"            # (name) (qty) (price)
    NAME_QTY_UNIT_PRICE = "name_qty_unit_price"  # (name) (qty) (unit price) (price)


@dataclass(frozen=True)
class ItemPattern:
    regex: re.Pattern
    layout: ItemLayout = ItemLayout.NAME_PRICE


@dataclass(frozen=True)
class ReceiptTemplate:
    """Compiled, read-only template for one store."""
    store_id: str
    store_name: str
    store_patterns: Tuple[re.Pattern, ...]
    item_patterns: Tuple[ItemPattern, ...] = ()
    totals_patterns: Mapping[str, re.Pattern] = field(default_factory=lambda: MappingProxyType({}))
    date_patterns: Tuple[re.Pattern, ...] = ()
    header_patterns: Tuple[re.Pattern, ...] = ()
    payment_patterns: Tuple[re.Pattern, ...] = ()
    rejected_patterns: Tuple[str, ...] = ()
    metadata: Mapping = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Dict) -> "ReceiptTemplate":
        """
        Build a template from a configuration mapping.

        Accepts the camelCase keys of the template catalog format
        (storeId, storeName, storePatterns, ...) or their snake_case forms.
        Item patterns may be plain strings (NAME_PRICE layout) or objects
        with "pattern" and "layout" keys.
        """
        def get(key: str, snake: str, default=None):
            if key in data:
                return data[key]
            return data.get(snake, default)

        store_name = get("storeName", "store_name")
        if not store_name:
            raise TemplateError(f"Template is missing storeName: {data!r}")
        store_id = get("storeId", "store_id") or re.sub(r"[^a-z0-9]+", "-", store_name.lower()).strip("-")
        rejected: List[str] = []

        def compile_all(patterns: Optional[Iterable[str]], section: str) -> Tuple[re.Pattern, ...]:
            compiled = []
            for pattern in patterns or []:
                regex = _compile(pattern, store_name, section, rejected)
                if regex is not None:
                    compiled.append(regex)
            return tuple(compiled)

        item_patterns = []
        for entry in get("itemPatterns", "item_patterns") or []:
            if isinstance(entry, dict):
                pattern = entry.get("pattern", "")
                layout_name = entry.get("layout", ItemLayout.NAME_PRICE.value)
            else:
                pattern, layout_name = entry, ItemLayout.NAME_PRICE.value
            try:
                layout = ItemLayout(layout_name)
            except ValueError:
                logger.warning(f"Unknown item layout '{layout_name}' in template {store_name}; pattern skipped")
                rejected.append(pattern)
                continue
            regex = _compile(pattern, store_name, "items", rejected)
            if regex is not None:
                item_patterns.append(ItemPattern(regex, layout))

        totals = {}
        for key, pattern in (get("totalsPatterns", "totals_patterns") or {}).items():
            if key not in TOTALS_KEYS or not pattern:
                continue
            regex = _compile(pattern, store_name, "totals", rejected)
            if regex is not None:
                totals[key] = regex

        return cls(
            store_id=store_id,
            store_name=store_name,
            store_patterns=compile_all(get("storePatterns", "store_patterns"), "store"),
            item_patterns=tuple(item_patterns),
            totals_patterns=MappingProxyType(totals),
            date_patterns=compile_all(get("datePatterns", "date_patterns"), "date"),
            header_patterns=compile_all(get("headerPatterns", "header_patterns"), "header"),
            payment_patterns=compile_all(get("paymentPatterns", "payment_patterns"), "payment"),
            rejected_patterns=tuple(rejected),
            metadata=MappingProxyType(dict(data.get("metadata") or {})),
        )

    def matches_store(self, text: str) -> int:
        """Number of store patterns found in the text."""
        return sum(1 for regex in self.store_patterns if regex.search(text))


def _compile(pattern: str, store_name: str, section: str, rejected: List[str]) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE | re.MULTILINE)
    except (re.error, TypeError) as e:
        logger.warning(f"Invalid regex pattern in template {store_name} ({section}): {pattern!r}: {e}")
        rejected.append(str(pattern))
        return None


class TemplateCatalog:
    """Read-only collection of templates shared by all parses."""

    def __init__(self, templates: Sequence[ReceiptTemplate] = ()):
        self._templates = tuple(templates)

    def __iter__(self):
        return iter(self._templates)

    def __len__(self):
        return len(self._templates)

    @property
    def templates(self) -> Tuple[ReceiptTemplate, ...]:
        return self._templates

    def find_matching_template(self, text: str) -> Optional[ReceiptTemplate]:
        """First template with any store pattern present in the text."""
        if not text:
            return None
        for template in self._templates:
            if template.matches_store(text):
                return template
        return None

    def get_templates_for_store(self, store: str) -> List[ReceiptTemplate]:
        """Templates whose id or (case-insensitive) name equals the given value."""
        store_lower = (store or "").lower()
        return [
            t for t in self._templates
            if t.store_id == store or t.store_name.lower() == store_lower
        ]

    def template_for_store(self, store: Optional[str]) -> Optional[ReceiptTemplate]:
        if not store:
            return None
        matches = self.get_templates_for_store(store)
        return matches[0] if matches else None


def as_catalog(templates: Iterable[ReceiptTemplate] = ()) -> TemplateCatalog:
    """Wrap templates in a catalog; an existing catalog is returned as is."""
    if isinstance(templates, TemplateCatalog):
        return templates
    return TemplateCatalog(tuple(templates))


def load_templates(path: Path) -> List[ReceiptTemplate]:
    """Load templates from a JSON file holding a list of template objects."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("templates", [])
    if not isinstance(data, list):
        raise TemplateError(f"Template file {path} must hold a list of templates")
    return [ReceiptTemplate.from_dict(entry) for entry in data]


_PRICE = r"(-?\$?[0-9]+\.[0-9]{2})"

INITIAL_TEMPLATES = [
    {
        "storeId": "walmart",
        "storeName": "Walmart",
        "storePatterns": ["walmart", "wal-mart", r"save money\. live better"],
        "itemPatterns": [
            {"pattern": rf"^(.+?)\s+([0-9]+)\s+{_PRICE}\s+{_PRICE}\s?[A-Z]?$", "layout": "name_qty_unit_price"},
            {"pattern": rf"^(.+?)\s+{_PRICE}\s?[A-Z]?$", "layout": "name_price"},
        ],
        "totalsPatterns": {"subtotal": "subtotal", "tax": "tax", "total": "total"},
        "datePatterns": [
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})",
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})\s+([0-9]{2}:[0-9]{2}:[0-9]{2})",
        ],
    },
    {
        "storeId": "target",
        "storeName": "Target",
        "storePatterns": [r"\btarget\b", r"expect more\. pay less"],
        "itemPatterns": [
            {"pattern": rf"^(.+?)\s+([0-9]+)\s+@\s+{_PRICE}\s+{_PRICE}$", "layout": "name_qty_unit_price"},
            {"pattern": rf"^(.+?)\s+{_PRICE}\s?[A-Z]?$", "layout": "name_price"},
        ],
        "totalsPatterns": {"subtotal": "subtotal", "tax": "tax", "total": "total"},
        "datePatterns": [
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})",
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})\s+([0-9]{2}:[0-9]{2})",
        ],
    },
    {
        "storeId": "costco",
        "storeName": "Costco",
        "storePatterns": ["costco", "costco wholesale", "wholesale"],
        "itemPatterns": [
            {"pattern": rf"^([0-9]+)\s+(.+?)\s+{_PRICE}\s?[A-Z]?$", "layout": "qty_name_price"},
            {"pattern": rf"^(.+?)\s+{_PRICE}$", "layout": "name_price"},
        ],
        "totalsPatterns": {"subtotal": "subtotal", "tax": "tax", "total": "total"},
        "datePatterns": [
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})",
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})\s+([0-9]{2}:[0-9]{2}:[0-9]{2})",
        ],
    },
    {
        "storeId": "kroger",
        "storeName": "Kroger",
        "storePatterns": [
            "kroger", "ralphs", "dillons", "smith's", "king soopers", "city market", "fred meyer",
        ],
        "itemPatterns": [
            {"pattern": rf"^(.+?)\s+([0-9]+)\s+{_PRICE}\s?[A-Z]?$", "layout": "name_qty_price"},
            {"pattern": rf"^(.+?)\s+{_PRICE}\s?[A-Z]?$", "layout": "name_price"},
        ],
        "totalsPatterns": {"subtotal": "subtotal", "tax": "tax", "total": "total"},
        "datePatterns": [
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})",
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})\s+([0-9]{2}:[0-9]{2})",
        ],
    },
    {
        "storeId": "starbucks",
        "storeName": "Starbucks",
        "storePatterns": ["starbucks", "starbucks coffee"],
        "itemPatterns": [
            {"pattern": rf"^([0-9]+)\s+(.+?)\s+{_PRICE}$", "layout": "qty_name_price"},
            {"pattern": rf"^(.+?)\s+{_PRICE}$", "layout": "name_price"},
        ],
        "totalsPatterns": {"subtotal": "subtotal", "tax": "tax", "total": "total"},
        "datePatterns": [
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})",
            r"([0-9]{2}/[0-9]{2}/[0-9]{2,4})\s+([0-9]{2}:[0-9]{2})",
        ],
    },
    {
        "storeId": "amazon",
        "storeName": "Amazon",
        "storePatterns": [r"amazon\.com", "amazon"],
        "itemPatterns": [
            {"pattern": rf"^(.+?)\s+([0-9]+)\s+{_PRICE}\s+{_PRICE}$", "layout": "name_qty_unit_price"},
            {"pattern": rf"^(.+?)\s+{_PRICE}$", "layout": "name_price"},
        ],
        "totalsPatterns": {
            "subtotal": r"subtotal|item\(s\) subtotal",
            "tax": "tax|sales tax",
            "total": "total|grand total|order total",
        },
        "datePatterns": [
            r"order date:\s+([a-z]+ [0-9]{1,2}, [0-9]{4})",
            r"order placed:\s+([a-z]+ [0-9]{1,2}, [0-9]{4})",
        ],
        "paymentPatterns": [
            r"payment method:\s+(\w+)",
            r"payment information\s+(\w+)\D+([0-9]{4})",
        ],
    },
]


def create_initial_templates() -> List[ReceiptTemplate]:
    """Build the bundled catalog of common store templates."""
    return [ReceiptTemplate.from_dict(entry) for entry in INITIAL_TEMPLATES]
