import pytest

from receipt_understanding.core.item_parser import ItemParser, clean_item_name, is_header_or_footer
from receipt_understanding.core.models import ParseContext, ReceiptItem
from receipt_understanding.core.preprocessor import LineItem
from receipt_understanding.core.templates import ReceiptTemplate


def _summary(items):
    return [(i.name, i.quantity, i.unit_price, i.price) for i in items]


def test_walmart_template_items(templates, sample_text):
    result = ItemParser(templates).parse(sample_text, ParseContext(store_name="Walmart"))
    assert _summary(result.data) == [("Apple", 1.0, 2.99, 2.99), ("Bananas", 2.0, 0.59, 1.18)]
    assert all(item.confidence == 0.8 for item in result.data)
    assert result.errors == []
    assert result.confidence == pytest.approx(0.88)


def test_generic_items(sample_text):
    result = ItemParser().parse(sample_text)
    assert _summary(result.data) == [("Apple", 1.0, 2.99, 2.99), ("Bananas", 2.0, 0.59, 1.18)]
    assert all(item.confidence == 0.7 for item in result.data)
    assert result.confidence == pytest.approx(0.82)


def test_items_are_categorized(templates, sample_text):
    items = ItemParser(templates).parse(sample_text, ParseContext(store_name="Walmart")).data
    assert [i.category for i in items] == ["Produce", "Produce"]


def test_rules_take_precedence_over_builtin_categories(sample_text):
    rules = {"item_matchers": [{"name": "Apples", "any": [{"item_re": "APPLE"}], "category": "Fruit"}]}
    items = ItemParser(rules=rules).parse(sample_text).data
    assert [i.category for i in items] == ["Fruit", "Produce"]


def test_generic_line_shapes():
    items = ItemParser().parse_generic("2 Milk 3.98\nEggs 2 * $1.50 $3.00\nWidget 3x $4.50 T")
    assert _summary(items) == [
        ("Milk", 2.0, None, 3.98),
        ("Eggs", 2.0, 1.50, 3.00),
        ("Widget", 3.0, None, 4.50),
    ]
    assert [i.confidence for i in items] == [0.7, 0.7, 0.5]


def test_header_and_separator_lines_are_skipped():
    items = ItemParser().parse_generic("ITEM PRICE\n----------\nBread 2.49\nTotal 2.49")
    assert _summary(items) == [("Bread", 1.0, None, 2.49)]


def test_items_section_starts_after_column_header():
    text = "Corner Market\n1 Main St\nItem Qty Price\nBread 2.49\nJam 3.10\nSubtotal 5.59\nTotal 5.59"
    section = ItemParser().extract_items_section(text)
    assert section == "Bread 2.49\nJam 3.10"


def test_named_groups_override_layout():
    template = ReceiptTemplate.from_dict({
        "storeName": "Acme",
        "itemPatterns": [r"^(?P<price>\d+\.\d{2})\s+(?P<name>.+)$"],
    })
    items = ItemParser([template]).parse_with_template(template, "4.99 Dish Soap")
    assert _summary(items) == [("Dish Soap", 1.0, None, 4.99)]


def test_template_without_matches_falls_back_to_generic(sample_text):
    template = ReceiptTemplate.from_dict({
        "storeName": "Acme",
        "itemPatterns": [r"^NEVER (.+) (\d+\.\d{2})$"],
    })
    result = ItemParser([template]).parse(sample_text, ParseContext(store_name="Acme"))
    assert [i.name for i in result.data] == ["Apple", "Bananas"]
    assert all(item.confidence == 0.7 for item in result.data)


def test_preprocessed_items_are_adopted():
    context = ParseContext(preprocessed_items=(
        LineItem("Apple", 2.99, confidence=0.7),
        LineItem("Bananas", 1.18, quantity=2, unit_price=0.59, confidence=0.7),
    ))
    result = ItemParser().parse("Nothing here", context)
    assert _summary(result.data) == [("Apple", 1, 2.99, 2.99), ("Bananas", 2, 0.59, 1.18)]
    assert result.errors == []
    assert result.confidence == pytest.approx(0.82)


def test_post_process_discounts():
    items = [
        ReceiptItem("Store Discount", 1.00),
        ReceiptItem("Cheese", 4.00, quantity=2, unit_price=2.50),
        ReceiptItem("Milk", 3.49),
    ]
    ItemParser().post_process(items)
    assert [i.discounted for i in items] == [True, True, None]
    assert items[2].unit_price == 3.49
    assert items[2].category == "Dairy"


def test_no_items():
    result = ItemParser().parse("")
    assert result.data == []
    assert result.errors == ["Could not identify items section in receipt", "No items found in receipt"]
    assert result.confidence == 0.2


def test_helpers():
    assert clean_item_name("  Organic   Milk* ") == "Organic Milk"
    assert is_header_or_footer("QTY DESCRIPTION")
    assert is_header_or_footer("=====")
    assert not is_header_or_footer("Bread 2.49")


DISCOUNT_RECEIPT = """CORNER MARKET
42 Elm Road
01/02/2024
Milk 3.49
Bread 2.50
Eggs 4.00
Member Discount -2.00
Subtotal $7.99
Tax $0.64
Total $8.63"""


class TestDiscountLines:
    def test_discount_line_is_negative_item(self):
        result = ItemParser().parse(DISCOUNT_RECEIPT)
        items = result.data
        assert _summary(items)[-1] == ("Member Discount", 1.0, -2.00, -2.00)
        assert items[-1].discounted
        assert sum(i.price for i in items) == pytest.approx(7.99)

    def test_trailing_minus(self):
        items = ItemParser().parse_generic("Bread 2.50\nCoupon 0.50-")
        assert _summary(items) == [("Bread", 1.0, None, 2.50), ("Coupon", 1.0, None, -0.50)]

    def test_walmart_template_keeps_discount(self, templates):
        text = "WALMART\n123 Main Street\n01/15/2023\nApple $2.99\nRollback -0.50\nSubtotal $2.49\nTotal $2.64"
        items = ItemParser(templates).parse(text, ParseContext(store_name="Walmart")).data
        assert [(i.name, i.price) for i in items] == [("Apple", 2.99), ("Rollback", -0.50)]
        assert items[1].discounted


def test_unstructured_quantity_and_unit_price():
    items = ItemParser().parse_generic("Milk 2 x 3.00 6.00")
    assert _summary(items) == [("Milk", 2.0, 3.00, 6.00)]
    assert items[0].confidence == 0.5
