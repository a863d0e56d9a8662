"""
Categorization of receipt line items.

User matchers from the rules file are tried first, then the built-in keyword
table. First match wins; unmatched items get no category.
"""

import re
from typing import Dict, List, Optional, Tuple

DEFAULT_CATEGORIES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Dairy", ("milk", "cheese", "yogurt", "butter", "cream", "egg")),
    ("Bakery", ("bread", "bagel", "muffin", "cake", "cookie", "pastry", "donut", "croissant")),
    ("Meat", ("beef", "chicken", "pork", "turkey", "ham", "bacon", "sausage", "steak")),
    ("Produce", ("apple", "banana", "orange", "lettuce", "tomato", "potato", "onion", "fruit", "vegetable", "grape", "berry")),
    ("Beverages", ("water", "soda", "juice", "coffee", "tea", "beer", "wine", "drink", "latte")),
    ("Snacks", ("chip", "candy", "chocolate", "snack", "cracker", "popcorn", "nut")),
    ("Household", ("paper", "towel", "tissue", "detergent", "soap", "cleaner", "trash", "bag")),
    ("Personal Care", ("shampoo", "toothpaste", "deodorant", "lotion", "razor", "conditioner")),
    ("Electronics", ("battery", "cable", "charger", "headphone", "phone", "usb")),
]

_DEFAULT_MATCHERS = [
    (category, re.compile(r"\b(?:" + "|".join(keywords) + r")", re.IGNORECASE))
    for category, keywords in DEFAULT_CATEGORIES
]


def _rule_matches(rule: Dict, name: str) -> bool:
    item_re = rule.get("item_re")
    return bool(item_re and re.search(item_re, name, flags=re.IGNORECASE))


def categorize_item(name: str, rules: Optional[Dict] = None) -> Tuple[Optional[str], Optional[str]]:
    """
    Categorize a line item by its name.

    Args:
        name: Item name
        rules: Optional rules dictionary with format:
            {
              "item_matchers": [
                {"name":"Pet food","any":[{"item_re":"KIBBLE|CAT FOOD"}], "category":"Pets"}
              ]
            }

    Returns:
        Tuple of (category, matcher_name); (None, None) when nothing matched
    """
    n = name or ""

    for m in (rules or {}).get("item_matchers", []):
        any_rules = m.get("any", [])
        all_rules = m.get("all", [])
        matched_any = not any_rules or any(_rule_matches(rule, n) for rule in any_rules)
        matched_all = all(_rule_matches(rule, n) for rule in all_rules)
        if matched_any and matched_all:
            return (m.get("category"), m.get("name"))

    for category, pattern in _DEFAULT_MATCHERS:
        if pattern.search(n):
            return (category, None)

    return (None, None)
