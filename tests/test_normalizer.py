import pytest

from receipt_understanding.core.normalizer import fix_ocr_errors, normalize


def test_normalize_collapses_whitespace_and_keeps_lines():
    assert normalize("  A   B \r\n\r\n C\t\tD ") == "A B\nC D"


def test_normalize_empty():
    assert normalize("") == ""
    assert normalize(None) == ""


def test_normalize_is_idempotent(sample_text):
    once = normalize("  Apple \t $2.99\r\n\n  Total   $2.99  ")
    assert normalize(once) == once
    assert normalize(normalize(sample_text)) == normalize(sample_text)


@pytest.mark.parametrize("raw, fixed", [
    ("Total l2.99", "Total 12.99"),
    ("1O.5O", "10.50"),
    ("$ 4.S0", "$4.50"),
    ("12 .99", "12.99"),
])
def test_fix_ocr_errors(raw, fixed):
    assert fix_ocr_errors(raw) == fixed


def test_fix_ocr_errors_leaves_words_alone():
    assert fix_ocr_errors("SOAP Olive Oil") == "SOAP Olive Oil"


def test_fix_ocr_errors_is_idempotent():
    once = fix_ocr_errors("Milk lO.S9\nTax $ O.84")
    assert fix_ocr_errors(once) == once
