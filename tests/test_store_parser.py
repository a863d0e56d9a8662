import pytest

from receipt_understanding.core.models import ParseContext
from receipt_understanding.core.store_parser import StoreParser


@pytest.mark.parametrize("header, expected", [
    ("WALMART SUPERCENTER", "Walmart"),
    ("TARGET STORE T-1234", "Target"),
    ("COSTCO WHOLESALE #482", "Costco"),
    ("RALPHS FRESH FARE", "Kroger"),
    ("STARBUCKS COFFEE", "Starbucks"),
    ("Order from amazon.com", "Amazon"),
])
def test_template_store_names(templates, header, expected):
    result = StoreParser(templates).parse(f"{header}\nMilk 3.49\nTotal 3.49")
    assert result.data.name == expected


def test_sample_receipt(templates, sample_text):
    result = StoreParser(templates).parse(sample_text)
    store = result.data
    assert store.name == "Walmart"
    assert store.address == "123 Main Street"
    assert store.phone == "(555) 123-4567"
    assert store.website is None
    assert result.confidence == 1.0
    assert result.errors == []


def test_heuristic_name_strips_greeting():
    result = StoreParser().parse("Welcome to Corner Market\n55 Oak Avenue\nMilk 3.49")
    assert result.data.name == "Corner Market"
    assert result.data.address == "55 Oak Avenue"


def test_short_first_line_is_joined():
    result = StoreParser().parse("ABC\nMARKET\nBread 2.49")
    assert result.data.name == "ABC MARKET"


def test_date_lines_are_not_store_names():
    result = StoreParser().parse("01/02/2024 10:15\nFRESH FOODS\nBread 2.49")
    assert result.data.name == "FRESH FOODS"


def test_contact_details():
    text = "Corner Market\nwww.cornermarket.com\nVAT: GB123456\nPhone: 555-123-4567"
    store = StoreParser().parse(text).data
    assert store.website == "www.cornermarket.com"
    assert store.tax_id == "GB123456"
    assert store.phone == "555-123-4567"


def test_address_pattern_fallback():
    parser = StoreParser()
    text = "Corner Market\nOpen daily\nFresh bread\nVisit 9 Hill Road soon"
    assert parser.extract_address(text, "Corner Market") == "9 Hill Road"


def test_no_store_name():
    result = StoreParser().parse("")
    assert result.data.name == ""
    assert result.errors == ["Could not determine store name"]
    assert result.confidence == pytest.approx(0.27)


def test_ocr_confidence_lowers_score(templates, sample_text):
    result = StoreParser(templates).parse(sample_text, ParseContext(ocr_confidence=0.5))
    # 0.5 * 0.7 + 0.3, plus address and phone
    assert result.confidence == pytest.approx(0.8)
