import pytest

from receipt_understanding.core.models import PaymentInfo
from receipt_understanding.core.payment import card_last4, extract_payment_info
from receipt_understanding.core.templates import ReceiptTemplate


@pytest.mark.parametrize("text, expected", [
    ("Total $4.42\nVISA XXXX1234", PaymentInfo(method="VISA", card_type="credit", card_last4="1234")),
    ("MASTERCARD ************5678", PaymentInfo(method="MASTERCARD", card_type="credit", card_last4="5678")),
    ("AMEX card ending in 1005", PaymentInfo(method="AMEX", card_type="credit", card_last4="1005")),
    ("CASH $20.00\nCHANGE $5.22", PaymentInfo(method="CASH")),
    ("DEBIT card ending in 4321", PaymentInfo(method="DEBIT", card_type="debit", card_last4="4321")),
    ("Paid with Apple Pay", PaymentInfo(method="APPLE PAY")),
])
def test_payment_methods(text, expected):
    assert extract_payment_info(text) == expected


def test_no_payment_method():
    assert extract_payment_info("Thanks for visiting") is None
    assert extract_payment_info("") is None


def test_template_payment_patterns_come_first():
    template = ReceiptTemplate.from_dict({
        "storeName": "Acme",
        "storePatterns": ["acme"],
        "paymentPatterns": [r"tender:\s+(\w+)"],
    })
    info = extract_payment_info("Tender: GiftCard\nVISA XXXX1234", template)
    assert info.method == "GIFTCARD"
    assert info.card_last4 == "1234"


def test_amazon_payment_pattern_with_last4(templates):
    amazon = next(t for t in templates if t.store_id == "amazon")
    info = extract_payment_info("Payment information Visa ending in 4444", amazon)
    assert info.method == "VISA"
    assert info.card_last4 == "4444"


def test_transaction_id():
    info = extract_payment_info("VISA XXXX1234\nTrans ID: A1B2C3")
    assert info.transaction_id == "A1B2C3"


def test_card_last4():
    assert card_last4("Card #****9876") == "9876"
    assert card_last4("no card here") is None
