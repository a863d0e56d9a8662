"""
Subtotal, tax, total, tip and discount extraction with reconciliation
against the parsed line items.
"""

import logging
import math
import re
from typing import Dict, List, Optional

from .base import BaseParser
from .models import ParseContext, ParserResult, ReceiptTotals
from .utils import clamp, extract_amount_from_line, round_money

logger = logging.getLogger(__name__)

SUBTOTAL_RE = re.compile(r"subtotal|sub-total|sub total", re.IGNORECASE)
TOTAL_RE = re.compile(r"total|balance|amount due|due amount|grand total", re.IGNORECASE)
TAX_RE = re.compile(r"tax|vat|gst|hst|pst", re.IGNORECASE)
TAX_EXEMPT_RE = re.compile(r"tax exempt|tax free", re.IGNORECASE)
TOTAL_WORD_RE = re.compile(r"total", re.IGNORECASE)
TIP_RE = re.compile(r"\btip\b|gratuity", re.IGNORECASE)
DISCOUNT_RE = re.compile(r"discount|savings|coupon|promo|promotion", re.IGNORECASE)
# "Total Tax", "Total Savings", "Tip Total"
OTHER_TOTAL_RE = re.compile(
    r"total\s*(tax|vat|gst|hst|pst|savings|discount|coupons?|tip|gratuity)\b"
    r"|\b(tax|vat|gst|hst|pst|savings|discount|coupon|tip|gratuity)\s*total",
    re.IGNORECASE,
)

MAX_SECTION_LINES = 10


class TotalsParser(BaseParser[ReceiptTotals]):
    """Parser for the receipt summary amounts."""

    def parse(self, text: str, context: Optional[ParseContext] = None) -> ParserResult[ReceiptTotals]:
        errors: List[str] = []
        totals = ReceiptTotals()
        total_found = False

        try:
            section = self.extract_totals_section(self.clean_text(text))
            if section.strip():
                values = self.extract_total_values(section)
                for key, value in values.items():
                    setattr(totals, key, value)
                total_found = totals.total > 0
            else:
                errors.append("Could not identify totals section in receipt")

            self.reconcile(totals, errors, context)
        except Exception as e:
            logger.warning(f"Totals parsing failed: {e}")
            errors.append(f"Error parsing totals: {e}")

        confidence = self.totals_confidence(totals, errors, context, total_found)
        logger.debug(f"Totals: {totals} (confidence {confidence:.2f})")
        return ParserResult(data=totals, confidence=confidence, errors=errors)

    def extract_totals_section(self, text: str) -> str:
        lines = text.split("\n")
        n = len(lines)
        start = next((i for i, line in enumerate(lines) if SUBTOTAL_RE.search(line)), None)

        if start is None:
            for i in range(math.floor(n * 0.7), n):
                if TOTAL_WORD_RE.search(lines[i]):
                    start = max(0, i - 3)
                    break

        if start is None:
            start = math.floor(n * 0.7)

        return "\n".join(lines[start:start + MAX_SECTION_LINES])

    def extract_total_values(self, section: str) -> Dict[str, float]:
        """
        First matching line per field; missing fields are left out.

        "Total Tax" and "Total Savings" style lines never count as the total.
        """
        lines = section.split("\n")
        matchers = {
            "subtotal": lambda l: SUBTOTAL_RE.search(l),
            "tax": lambda l: TAX_RE.search(l) and not TAX_EXEMPT_RE.search(l),
            "total": lambda l: TOTAL_RE.search(l) and not SUBTOTAL_RE.search(l) and not OTHER_TOTAL_RE.search(l),
            "tip": lambda l: TIP_RE.search(l),
            "discount": lambda l: DISCOUNT_RE.search(l),
        }
        values = {}
        for key, matches in matchers.items():
            line = next((l for l in lines if matches(l)), None)
            if line is not None:
                values[key] = extract_amount_from_line(line)
        return values

    def reconcile(self, totals: ReceiptTotals, errors: List[str], context: Optional[ParseContext] = None) -> None:
        """Fill derivable amounts and record inconsistencies."""
        if context is not None and context.items is not None:
            items_sum = round_money(sum(item.price for item in context.items))
            if totals.subtotal == 0 and items_sum > 0:
                totals.subtotal = items_sum
            elif totals.subtotal > 0 and self.items_mismatch(items_sum, totals.subtotal):
                errors.append(
                    f"Subtotal (${totals.subtotal:.2f}) doesn't match sum of items (${items_sum:.2f})"
                )

        if totals.subtotal == 0:
            errors.append("Subtotal amount not found")

        if totals.total == 0:
            errors.append("Total amount not found")
            if totals.subtotal > 0:
                totals.total = round_money(totals.computed_total())

        if totals.tax == 0 and totals.subtotal > 0 and totals.total > 0:
            derived = totals.total - totals.subtotal - (totals.tip or 0) + (totals.discount or 0)
            if derived > 0:
                totals.tax = round_money(derived)

        if totals.subtotal > 0 and totals.total > 0:
            if totals.total < totals.subtotal and not totals.discount:
                errors.append("Total is less than subtotal without a discount")
            if totals.tax > 0:
                rate = totals.tax / totals.subtotal * 100
                if rate < self.settings.tax_rate_min_pct or rate > self.settings.tax_rate_max_pct:
                    errors.append(f"Unusual tax rate: {rate:.1f}%")

    def items_mismatch(self, items_sum: float, subtotal: float) -> bool:
        diff = abs(items_sum - subtotal)
        return (
            diff > self.settings.items_subtotal_tolerance_abs
            and diff > subtotal * self.settings.items_subtotal_tolerance_pct
        )

    def totals_confidence(self, totals: ReceiptTotals, errors: List[str],
                          context: Optional[ParseContext] = None, total_found: bool = True) -> float:
        """
        Base confidence adjusted for missing amounts and arithmetic consistency.

        A total computed from the other amounts counts as missing and earns
        no consistency bonus.
        """
        score = self.base_confidence(errors, context)
        if not total_found:
            score *= 0.5
        if totals.subtotal == 0:
            score *= 0.7

        if total_found and totals.total > 0:
            diff = abs(totals.computed_total() - totals.total)
            if diff < self.settings.totals_consistent_tolerance:
                score += 0.2
            elif diff > self.settings.totals_discrepancy_tolerance:
                score *= 0.7
        return clamp(score)

    def calculate_confidence(self, data: ReceiptTotals, errors: List[str],
                             context: Optional[ParseContext] = None) -> float:
        return self.totals_confidence(data, errors, context, total_found=data.total > 0)
