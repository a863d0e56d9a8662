import dataclasses
import datetime as dt

import pytest

from receipt_understanding.core.models import (
    ParseContext,
    ParserResult,
    PaymentInfo,
    RawOcrResult,
    Receipt,
    ReceiptItem,
    ReceiptTotals,
    Store,
)


def test_raw_ocr_result_from_camel_case():
    raw = RawOcrResult.from_dict({
        "text": "WALMART",
        "confidence": 0.93,
        "language": "en",
        "blocks": [{
            "text": "WALMART",
            "confidence": 0.93,
            "boundingBox": {"x": 10, "y": 5, "width": 60, "height": 12},
            "paragraphs": [{"text": "WALMART", "confidence": 0.93,
                            "words": [{"text": "WALMART", "confidence": 0.93}]}],
        }],
    })
    block = raw.blocks[0]
    assert block.bounding_box.bottom == 17
    assert block.bounding_box.right == 70
    assert block.paragraphs[0].words[0].text == "WALMART"
    assert raw.language == "en"


def test_computed_total():
    totals = ReceiptTotals(subtotal=20.0, tax=1.6, total=22.6, tip=3.0, discount=2.0)
    assert totals.computed_total() == pytest.approx(22.6)


def test_receipt_to_dict_drops_empty_fields():
    receipt = Receipt(
        user_id="u-1",
        store=Store(name="Corner Market"),
        items=[ReceiptItem("Bread", 2.49)],
        totals=ReceiptTotals(subtotal=2.49, total=2.49),
        date=dt.date(2024, 5, 1),
        payment_info=PaymentInfo(method="CASH"),
    )
    data = receipt.to_dict()
    assert data["date"] == "2024-05-01"
    assert data["store"] == {"name": "Corner Market"}
    assert data["items"] == [{"name": "Bread", "price": 2.49, "quantity": 1, "confidence": 0.0}]
    assert data["payment_info"] == {"method": "CASH"}
    assert "image_url" not in data
    assert receipt.items_sum() == 2.49


def test_parser_result_threshold():
    result = ParserResult(data=None, confidence=0.5)
    assert result.is_acceptable(0.5)
    assert not result.is_acceptable(0.6)


def test_parse_context_is_immutable():
    context = ParseContext(user_id="u-1")
    with pytest.raises(dataclasses.FrozenInstanceError):
        context.store_name = "Walmart"
    assert dataclasses.replace(context, store_name="Walmart").user_id == "u-1"
