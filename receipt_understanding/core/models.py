"""
Data models for receipt understanding.
"""

import datetime as dt
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

CONTEXT_VERSION = 1


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


@dataclass(frozen=True)
class BoundingBox:
    """Pixel-space box of an OCR text block."""
    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def right(self) -> float:
        return self.x + self.width

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "BoundingBox":
        data = data or {}
        return cls(
            x=float(data.get("x", 0) or 0),
            y=float(data.get("y", 0) or 0),
            width=float(data.get("width", 0) or 0),
            height=float(data.get("height", 0) or 0),
        )


@dataclass(frozen=True)
class TextSymbol:
    text: str
    confidence: float = 0.0


@dataclass(frozen=True)
class TextWord:
    text: str
    confidence: float = 0.0
    symbols: tuple = ()


@dataclass(frozen=True)
class TextParagraph:
    text: str
    confidence: float = 0.0
    words: tuple = ()


@dataclass(frozen=True)
class TextBlock:
    """A block of OCR text with its position on the page."""
    text: str
    confidence: float
    bounding_box: BoundingBox
    paragraphs: tuple = ()

    @classmethod
    def from_dict(cls, data: Dict) -> "TextBlock":
        """Build a block from snake_case or the OCR provider's camelCase keys."""
        box = data.get("bounding_box", data.get("boundingBox"))
        paragraphs = []
        for p in data.get("paragraphs") or []:
            words = []
            for w in p.get("words") or []:
                symbols = tuple(
                    TextSymbol(s.get("text", ""), float(s.get("confidence", 0) or 0))
                    for s in w.get("symbols") or []
                )
                words.append(TextWord(w.get("text", ""), float(w.get("confidence", 0) or 0), symbols))
            paragraphs.append(TextParagraph(p.get("text", ""), float(p.get("confidence", 0) or 0), tuple(words)))
        return cls(
            text=data.get("text", "") or "",
            confidence=float(data.get("confidence", 0) or 0),
            bounding_box=BoundingBox.from_dict(box),
            paragraphs=tuple(paragraphs),
        )


@dataclass(frozen=True)
class RawOcrResult:
    """Output of the OCR collaborator; read-only input to the parsers."""
    text: str
    confidence: float
    blocks: tuple = ()
    language: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "RawOcrResult":
        return cls(
            text=data.get("text", "") or "",
            confidence=float(data.get("confidence", 0) or 0),
            blocks=tuple(TextBlock.from_dict(b) for b in data.get("blocks") or []),
            language=data.get("language"),
        )


@dataclass
class Store:
    """Store information found in a receipt header."""
    name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    tax_id: Optional[str] = None

    def to_dict(self):
        return _drop_none(asdict(self))


@dataclass
class ReceiptItem:
    """A single purchased line item."""
    name: str
    price: float
    quantity: float = 1
    unit_price: Optional[float] = None
    category: Optional[str] = None
    discounted: Optional[bool] = None
    confidence: float = 0.0

    def to_dict(self):
        return _drop_none(asdict(self))


@dataclass
class ReceiptTotals:
    """Summary amounts; total should be close to subtotal + tax - discount + tip."""
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    tip: Optional[float] = None
    discount: Optional[float] = None

    def computed_total(self) -> float:
        return self.subtotal + self.tax - (self.discount or 0) + (self.tip or 0)

    def to_dict(self):
        return _drop_none(asdict(self))


@dataclass
class PaymentInfo:
    method: str
    card_type: Optional[str] = None
    card_last4: Optional[str] = None
    transaction_id: Optional[str] = None

    def to_dict(self):
        return _drop_none(asdict(self))


@dataclass
class Receipt:
    """Aggregate produced by a single parse call."""
    user_id: str = ""
    store: Store = field(default_factory=Store)
    items: List[ReceiptItem] = field(default_factory=list)
    totals: ReceiptTotals = field(default_factory=ReceiptTotals)
    date: dt.date = field(default_factory=dt.date.today)
    payment_info: Optional[PaymentInfo] = None
    raw_text: str = ""
    image_url: str = ""
    confidence: float = 0.0
    created_at: dt.datetime = field(default_factory=dt.datetime.now)
    updated_at: dt.datetime = field(default_factory=dt.datetime.now)

    def items_sum(self) -> float:
        return sum(item.price for item in self.items)

    def to_dict(self):
        """Convert to a JSON-friendly dictionary."""
        return _drop_none({
            "user_id": self.user_id,
            "store": self.store.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "totals": self.totals.to_dict(),
            "date": _iso(self.date),
            "payment_info": self.payment_info.to_dict() if self.payment_info else None,
            "raw_text": self.raw_text,
            "image_url": self.image_url or None,
            "confidence": self.confidence,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        })


@dataclass
class ParserResult(Generic[T]):
    """Uniform result of every parser: value, self-assessed confidence, errors."""
    data: T
    confidence: float
    errors: List[str] = field(default_factory=list)

    def is_acceptable(self, threshold: float) -> bool:
        return self.confidence >= threshold


@dataclass(frozen=True)
class ParseContext:
    """
    Explicit context threaded between parsing stages.

    The Store stage writes ``store_name`` (read by Items); the Items stage
    writes ``items`` (read by Totals). The remaining fields are supplied by
    the caller or by layout analysis.
    """
    version: int = CONTEXT_VERSION
    user_id: str = ""
    image_url: str = ""
    ocr_confidence: Optional[float] = None
    text_blocks: tuple = ()
    store_name: Optional[str] = None
    items: Optional[tuple] = None
    template_match: Optional[Any] = None
    preprocessed_items: tuple = ()
