"""
Receipt parsing pipeline.

Runs the field parsers in order (store, date, items, totals, payment),
cross-validates the assembled receipt and blends the stage confidences
into one receipt-level score.
"""

import datetime as dt
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from .base import BaseParser
from .config import ParserSettings
from .date_parser import DateParser
from .item_parser import ItemParser
from .models import ParseContext, ParserResult, Receipt, ReceiptTotals, Store, TextBlock
from .payment import extract_payment_info
from .preprocessor import PreprocessedOcrResult, preprocess
from .store_parser import StoreParser
from .template_matcher import TemplateMatcher, TemplateMatchResult
from .templates import ReceiptTemplate, as_catalog
from .totals_parser import TotalsParser
from .utils import clamp

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGES = ("store", "date", "items", "totals")


@dataclass
class LayoutAnalysis:
    """Preprocessor sections plus the best template match for one receipt."""
    preprocessed: PreprocessedOcrResult
    template_match: Optional[TemplateMatchResult] = None

    @property
    def template(self) -> Optional[ReceiptTemplate]:
        return self.template_match.template if self.template_match else None


class ReceiptParser(BaseParser[Receipt]):
    """Parser for a complete receipt."""

    def __init__(self, templates: Iterable[ReceiptTemplate] = (), settings: Optional[ParserSettings] = None,
                 rules: Optional[Dict] = None):
        super().__init__(settings)
        self.catalog = as_catalog(templates)
        self.store_parser = StoreParser(self.catalog, self.settings)
        self.date_parser = DateParser(self.settings)
        self.item_parser = ItemParser(self.catalog, self.settings, rules)
        self.totals_parser = TotalsParser(self.settings)
        self.matcher = TemplateMatcher(self.catalog, self.settings)

    def analyze_layout(self, text: str, blocks: Optional[Sequence[TextBlock]] = None) -> LayoutAnalysis:
        """Segment the receipt and find the template that best explains it."""
        preprocessed = preprocess(text, blocks)
        match = self.matcher.find_best_match(text, blocks)
        return LayoutAnalysis(preprocessed=preprocessed, template_match=match)

    def parse(self, text: str, context: Optional[ParseContext] = None) -> ParserResult[Receipt]:
        """
        Parse receipt text into a Receipt.

        Never raises for data-quality problems; they end up in the result's
        errors and lower its confidence.

        Args:
            text: OCR text
            context: Optional caller context (user id, OCR confidence, layout hints)

        Returns:
            ParserResult holding the Receipt
        """
        context = context or ParseContext()
        errors: List[str] = []
        cleaned = self.clean_text(text or "")
        receipt = Receipt(user_id=context.user_id, raw_text=cleaned, image_url=context.image_url)
        stage_confidence: Dict[str, float] = {}

        try:
            store = self._run_stage("store", self.store_parser.parse, cleaned, context, Store(), errors)
            receipt.store = store.data
            stage_confidence["store"] = store.confidence

            date = self._run_stage("date", self.date_parser.parse, cleaned, context, dt.date.today(), errors)
            receipt.date = date.data
            stage_confidence["date"] = date.confidence

            item_context = replace(context, store_name=receipt.store.name or None)
            items = self._run_stage("items", self.item_parser.parse, cleaned, item_context, [], errors)
            receipt.items = items.data
            stage_confidence["items"] = items.confidence

            totals_context = replace(item_context, items=tuple(receipt.items))
            totals = self._run_stage("totals", self.totals_parser.parse, cleaned, totals_context,
                                     ReceiptTotals(), errors)
            receipt.totals = totals.data
            stage_confidence["totals"] = totals.confidence

            try:
                receipt.payment_info = extract_payment_info(cleaned, self._payment_template(receipt, context))
            except Exception as e:
                logger.warning(f"Payment extraction failed: {e}")
                errors.append(f"Error parsing payment information: {e}")

            errors.extend(self.cross_validate(receipt))
        except Exception as e:
            logger.exception("Receipt parsing failed")
            errors.append(f"Error in receipt parsing: {e}")

        receipt.confidence = self.receipt_confidence(receipt, errors, context, stage_confidence)
        logger.debug(f"Receipt confidence {receipt.confidence:.2f} with {len(errors)} error(s)")
        return ParserResult(data=receipt, confidence=receipt.confidence, errors=errors)

    def _run_stage(self, name: str, parse: Callable[[str, ParseContext], ParserResult[T]], text: str,
                   context: ParseContext, default: T, errors: List[str]) -> ParserResult[T]:
        try:
            result = parse(text, context)
        except Exception as e:
            logger.warning(f"Stage {name} failed: {e}")
            result = ParserResult(data=default, confidence=0.0, errors=[f"Error parsing {name}: {e}"])
        errors.extend(result.errors)
        logger.debug(f"Stage {name}: confidence {result.confidence:.2f}, {len(result.errors)} error(s)")
        return result

    def _payment_template(self, receipt: Receipt, context: ParseContext) -> Optional[ReceiptTemplate]:
        template = self.catalog.template_for_store(receipt.store.name)
        if template is None and isinstance(context.template_match, TemplateMatchResult):
            if not context.template_match.is_generic:
                template = context.template_match.template
        return template

    def cross_validate(self, receipt: Receipt, today: Optional[dt.date] = None) -> List[str]:
        """Consistency checks across the assembled receipt; returns new errors."""
        today = today or dt.date.today()
        errors = []

        if not receipt.store.name:
            errors.append("Store name is missing")
        if not receipt.items:
            errors.append("No items found in receipt")
        if receipt.totals.total == 0:
            errors.append("Receipt total amount is missing")

        if receipt.items and receipt.totals.subtotal > 0:
            items_sum = receipt.items_sum()
            if self.totals_parser.items_mismatch(items_sum, receipt.totals.subtotal):
                errors.append(
                    f"Sum of items (${items_sum:.2f}) doesn't match subtotal (${receipt.totals.subtotal:.2f})"
                )

        receipt_date = receipt.date.date() if isinstance(receipt.date, dt.datetime) else receipt.date
        if receipt_date > today:
            errors.append("Receipt date is in the future")
        elif receipt_date < today - dt.timedelta(days=self.settings.max_receipt_age_days):
            errors.append("Receipt date is more than a year old")

        return errors

    def receipt_confidence(self, receipt: Receipt, errors: List[str], context: ParseContext,
                           stage_confidence: Dict[str, float]) -> float:
        """
        Blend base, component and OCR confidence, then apply penalties.

        Without an OCR confidence the base and component weights are
        rescaled to sum to one.
        """
        s = self.settings
        base = self.base_confidence(errors, context)
        weights = {"store": s.store_weight, "date": s.date_weight, "items": s.items_weight, "totals": s.totals_weight}
        component = sum(weights[stage] * stage_confidence.get(stage, 0.0) for stage in STAGES)

        if context.ocr_confidence is not None:
            score = (
                s.receipt_base_weight * base
                + s.receipt_component_weight * component
                + s.receipt_ocr_weight * context.ocr_confidence
            )
        else:
            score = (s.receipt_base_weight * base + s.receipt_component_weight * component) / (
                s.receipt_base_weight + s.receipt_component_weight
            )

        if not receipt.items:
            score *= s.no_items_multiplier
        if not receipt.store.name:
            score *= s.no_store_multiplier
        if receipt.totals.total == 0:
            score *= s.zero_total_multiplier

        length = len(receipt.raw_text)
        if length < s.very_short_text_chars:
            score *= s.very_short_text_multiplier
        elif length < s.short_text_chars:
            score *= s.short_text_multiplier

        return clamp(score)
