from receipt_understanding.core.utils import (
    clamp,
    extract_amount_from_line,
    money_fmt,
    normalize_amount,
    parse_price,
    sha1_file,
)


def test_extract_amount_from_line():
    assert extract_amount_from_line("Subtotal $13.94") == 13.94
    assert extract_amount_from_line("Tax 0.8") == 0.8
    assert extract_amount_from_line("Total due") == 0


def test_parse_price():
    assert parse_price("$1.18") == 1.18
    assert parse_price("-$2.00") == -2.0
    assert parse_price("2.00-") == -2.0
    assert parse_price("n/a") == 0.0


def test_normalize_amount():
    assert normalize_amount("1,234.50") == 1234.5
    assert normalize_amount("") is None
    assert normalize_amount("abc") is None


def test_clamp_and_money_fmt():
    assert clamp(1.3) == 1.0
    assert clamp(-0.2) == 0.0
    assert money_fmt(1234.5) == "$1,234.50"
    assert money_fmt(None) == ""


def test_sha1_file(tmp_path):
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("same")
    b.write_text("same")
    assert sha1_file(a) == sha1_file(b)
    assert len(sha1_file(a)) == 40
