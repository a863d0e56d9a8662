"""
Shared parser behaviour: text cleanup, confidence baseline, result formatting.
"""

from typing import Generic, List, Optional, Sequence, TypeVar

from .config import DEFAULT_SETTINGS, ParserSettings
from .models import ParseContext, ParserResult
from .normalizer import normalize

T = TypeVar("T")

ERROR_PENALTY = 0.1


class BaseParser(Generic[T]):
    """Base class for the field parsers. Subclasses implement parse()."""

    def __init__(self, settings: Optional[ParserSettings] = None):
        self.settings = settings or DEFAULT_SETTINGS

    def parse(self, text: str, context: Optional[ParseContext] = None) -> ParserResult[T]:
        raise NotImplementedError

    def clean_text(self, text: str) -> str:
        return normalize(text)

    def base_confidence(self, errors: Sequence[str], context: Optional[ParseContext] = None) -> float:
        """1.0 (or OCR-weighted when OCR confidence is known) minus 0.1 per error."""
        confidence = 1.0
        if context is not None and context.ocr_confidence is not None:
            confidence = context.ocr_confidence * 0.7 + 0.3
        return max(0.0, confidence - len(errors) * ERROR_PENALTY)

    def calculate_confidence(self, data: T, errors: List[str], context: Optional[ParseContext] = None) -> float:
        return self.base_confidence(errors, context)

    def format_result(self, data: T, errors: List[str], context: Optional[ParseContext] = None) -> ParserResult[T]:
        return ParserResult(data=data, confidence=self.calculate_confidence(data, errors, context), errors=list(errors))

