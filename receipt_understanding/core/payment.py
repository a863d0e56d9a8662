"""
Payment method classification.
"""

import logging
import re
from typing import Optional

from .models import PaymentInfo
from .templates import ReceiptTemplate

logger = logging.getLogger(__name__)

CASH_RE = re.compile(r"paid in cash|cash payment|cash tender|tendered cash|^\s*cash\b", re.IGNORECASE | re.MULTILINE)
CARD_RE = re.compile(r"visa|mastercard|master card|amex|american express|discover|credit", re.IGNORECASE)
CARD_BRANDS = [
    ("VISA", re.compile(r"visa", re.IGNORECASE)),
    ("MASTERCARD", re.compile(r"mastercard|master card", re.IGNORECASE)),
    ("AMEX", re.compile(r"amex|american express", re.IGNORECASE)),
    ("DISCOVER", re.compile(r"discover", re.IGNORECASE)),
]
CARD_LAST4_RE = re.compile(
    r"x{4}[^0-9]*(\d{4})|card\s*#?\s*\*+(\d{4})|card ending (?:in )?(\d{4})|\*{4,}\s*(\d{4})",
    re.IGNORECASE,
)
DEBIT_RE = re.compile(r"debit|interac", re.IGNORECASE)
WALLET_RE = re.compile(r"(paypal|venmo|apple pay|google pay|samsung pay)", re.IGNORECASE)
TRANSACTION_RE = re.compile(r"(?:trans(?:action)?\s*(?:id|#|no\.?)|ref\s*#)[:#\s]*([A-Z0-9-]{4,})", re.IGNORECASE)


def card_last4(text: str) -> Optional[str]:
    m = CARD_LAST4_RE.search(text)
    if not m:
        return None
    return next(g for g in m.groups() if g)


def extract_payment_info(text: str, template: Optional[ReceiptTemplate] = None) -> Optional[PaymentInfo]:
    """
    Classify how the receipt was paid.

    Args:
        text: Receipt text
        template: Matched store template; its payment patterns are tried first

    Returns:
        PaymentInfo, or None when no payment method is recognizable
    """
    if not text:
        return None

    info = _classify(text, template)
    if info is not None:
        m = TRANSACTION_RE.search(text)
        if m:
            info.transaction_id = m.group(1)
    return info


def _classify(text: str, template: Optional[ReceiptTemplate]) -> Optional[PaymentInfo]:
    if template is not None:
        for pattern in template.payment_patterns:
            m = pattern.search(text)
            if m and m.groups() and m.group(1):
                last4 = m.group(2) if m.re.groups >= 2 else None
                return PaymentInfo(method=m.group(1).upper(), card_last4=last4 or card_last4(text))

    if CASH_RE.search(text):
        return PaymentInfo(method="CASH")

    if CARD_RE.search(text):
        method = next((brand for brand, regex in CARD_BRANDS if regex.search(text)), "CREDIT")
        return PaymentInfo(method=method, card_type="credit", card_last4=card_last4(text))

    if DEBIT_RE.search(text):
        return PaymentInfo(method="DEBIT", card_type="debit", card_last4=card_last4(text))

    m = WALLET_RE.search(text)
    if m:
        return PaymentInfo(method=m.group(1).upper())

    logger.debug("No payment method found")
    return None
