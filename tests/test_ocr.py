import json
from unittest.mock import MagicMock

import pytest

from receipt_understanding.core import ocr
from receipt_understanding.core.ocr import OcrUnavailableError, ocr_image, pdf_to_ocr_result, read_ocr_result


class FakeTesseractNotFound(Exception):
    pass


@pytest.fixture
def fake_tesseract(monkeypatch):
    tesseract = MagicMock()
    tesseract.TesseractNotFoundError = FakeTesseractNotFound
    tesseract.image_to_data.return_value = {
        "text": ["WALMART", "", "Apple", "$2.99"],
        "conf": [96, -1, 90, 80],
        "block_num": [1, 1, 2, 2],
        "par_num": [1, 1, 1, 1],
        "line_num": [1, 1, 1, 1],
        "left": [10, 0, 10, 80],
        "top": [5, 0, 40, 40],
        "width": [60, 0, 40, 30],
        "height": [12, 0, 12, 12],
    }
    monkeypatch.setattr(ocr, "pytesseract", tesseract)
    monkeypatch.setattr(ocr, "PIL_Image", MagicMock())
    return tesseract


def test_text_file(tmp_path):
    path = tmp_path / "receipt.txt"
    path.write_text("WALMART\nTotal $4.42", encoding="utf-8")
    result = read_ocr_result(path)
    assert result.text == "WALMART\nTotal $4.42"
    assert result.blocks == ()


def test_json_file(tmp_path):
    path = tmp_path / "receipt.json"
    path.write_text(json.dumps({
        "text": "WALMART",
        "confidence": 0.88,
        "blocks": [{"text": "WALMART", "confidence": 0.88,
                    "bounding_box": {"x": 0, "y": 0, "width": 50, "height": 10}}],
    }))
    result = read_ocr_result(path)
    assert result.confidence == 0.88
    assert result.blocks[0].bounding_box.width == 50


def test_unsupported_file(tmp_path):
    with pytest.raises(ValueError):
        read_ocr_result(tmp_path / "receipt.docx")


def test_image_blocks(tmp_path, fake_tesseract):
    result = read_ocr_result(tmp_path / "receipt.png")

    assert result.text == "WALMART\nApple $2.99"
    assert [b.text for b in result.blocks] == ["WALMART", "Apple $2.99"]
    second = result.blocks[1]
    assert second.confidence == pytest.approx(0.85)
    assert (second.bounding_box.x, second.bounding_box.y) == (10, 40)
    assert (second.bounding_box.width, second.bounding_box.height) == (100, 12)
    assert result.confidence == pytest.approx((0.96 + 0.9 + 0.8) / 3)


def test_missing_tesseract_binary(tmp_path, fake_tesseract):
    fake_tesseract.image_to_data.side_effect = FakeTesseractNotFound("tesseract is not installed")
    with pytest.raises(OcrUnavailableError):
        ocr_image(tmp_path / "receipt.png")


def test_missing_ocr_libraries(tmp_path, monkeypatch):
    def fail(name):
        raise ImportError(f"No module named {name!r}")

    monkeypatch.setattr(ocr, "pytesseract", None)
    monkeypatch.setattr("importlib.import_module", fail)
    with pytest.raises(OcrUnavailableError):
        ocr_image(tmp_path / "receipt.png")


def test_pdf_pages_are_stacked(tmp_path, monkeypatch):
    first = MagicMock()
    first.get_text.return_value = [
        (0, 0, 100, 20, "WALMART\n", 0, 0),
        (0, 30, 100, 50, "<image>", 1, 1),
    ]
    first.rect.height = 800
    second = MagicMock()
    second.get_text.return_value = [(0, 10, 100, 30, "Total $4.42", 0, 0)]
    second.rect.height = 800

    doc = MagicMock()
    doc.__iter__.return_value = iter([first, second])
    fitz = MagicMock()
    fitz.open.return_value = doc
    monkeypatch.setattr(ocr, "fitz", fitz)

    result = pdf_to_ocr_result(tmp_path / "receipt.pdf")

    assert result.text == "WALMART\nTotal $4.42"
    assert [b.bounding_box.y for b in result.blocks] == [0, 810]
    assert result.confidence == 1.0
    doc.close.assert_called_once()
