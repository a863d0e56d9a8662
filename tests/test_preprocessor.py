import pytest

from receipt_understanding.core.preprocessor import (
    TEXT_ONLY_CONFIDENCE,
    match_line_item,
    preprocess,
    section_confidence,
)


def test_text_only_preprocessing(sample_text):
    result = preprocess(sample_text)

    assert result.confidence == TEXT_ONLY_CONFIDENCE
    assert [item.name for item in result.line_items] == ["Apple", "Bananas"]
    bananas = result.line_items[1]
    assert bananas.quantity == 2
    assert bananas.unit_price == 0.59
    assert bananas.price == 1.18
    assert bananas.confidence == 0.8
    assert result.line_items[0].confidence == 0.7
    assert "Subtotal $13.94" in result.sections["totals"]
    assert result.sections["header"].startswith("WALMART")


def test_text_only_enhanced_text_has_section_markers(sample_text):
    enhanced = preprocess(sample_text).enhanced_text
    assert "--- RECEIPT HEADER ---" in enhanced
    assert "--- RECEIPT ITEMS ---" in enhanced
    assert "Bananas 2 @ $0.59 $1.18" in enhanced
    assert "--- RECEIPT FOOTER ---" in enhanced


def test_spatial_preprocessing(sample_blocks):
    text = "\n".join(b.text for b in sample_blocks)
    result = preprocess(text, sample_blocks)

    assert set(result.sections) == {"header", "items", "totals", "footer"}
    assert "WALMART" in result.sections["header"]
    assert "Total $4.42" in result.sections["totals"]
    assert result.sections["footer"] == "Thank you"
    assert [(i.name, i.confidence) for i in result.line_items] == [("Apple", 0.8), ("Bananas", 0.9)]
    assert result.confidence == pytest.approx(0.89)


def test_totals_lines_are_not_line_items():
    assert match_line_item("Subtotal $13.94", 0.7, 0.8) is None
    assert match_line_item("Tax $0.84", 0.7, 0.8) is None


def test_qty_x_line_item():
    item = match_line_item("Eggs 3 x $1.50 $4.50", 0.7, 0.8)
    assert (item.name, item.quantity, item.unit_price, item.price) == ("Eggs", 3, 1.50, 4.50)


def test_section_confidence_without_items():
    assert section_confidence({"header": "A"}, []) == pytest.approx(0.4)


def test_empty_input():
    result = preprocess("")
    assert result.line_items == []
    assert result.sections == {}
    assert result.enhanced_text == ""
