"""
Receipt Understanding

Turns noisy receipt OCR output into structured, confidence-scored receipts:
store, date, line items, totals and payment method.
"""

__version__ = "1.0.0"
__author__ = "Receipt Understanding Contributors"

from receipt_understanding.core.models import ParseContext, ParserResult, RawOcrResult, Receipt
from receipt_understanding.core.receipt_parser import ReceiptParser
from receipt_understanding.core.template_matcher import TemplateMatcher
from receipt_understanding.core.templates import create_initial_templates

__all__ = [
    "ParseContext",
    "ParserResult",
    "RawOcrResult",
    "Receipt",
    "ReceiptParser",
    "TemplateMatcher",
    "create_initial_templates",
]
