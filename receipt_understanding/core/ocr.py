"""
OCR functionality: turn receipt files into RawOcrResult values.
"""

import json
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Tuple

from .models import BoundingBox, RawOcrResult, TextBlock
from .utils import IMAGE_EXTS, JSON_EXTS, PDF_EXTS, TEXT_EXTS


class OcrUnavailableError(RuntimeError):
    """Raised when the OCR libraries or the Tesseract binary are missing."""


def _lazy_import_ocr_deps():
    """Lazy import heavy OCR dependencies."""
    global pytesseract, PIL_Image, fitz
    import importlib
    try:
        pytesseract = importlib.import_module("pytesseract")
        PIL_Image = importlib.import_module("PIL.Image")
        fitz = importlib.import_module("fitz")  # pymupdf
    except ImportError as e:
        raise OcrUnavailableError(f"OCR dependencies are not installed: {e}") from e


# Initialize on first use
pytesseract = None
PIL_Image = None
fitz = None


def _block_text(lines: "OrderedDict[Tuple[int, int], List[str]]") -> str:
    return "\n".join(" ".join(words) for words in lines.values())


def ocr_image(img_path: Path) -> RawOcrResult:
    """
    OCR an image file with Tesseract.

    Words are grouped into blocks by Tesseract's block number; each block's
    box is the union of its word boxes and its confidence the mean word
    confidence, scaled to [0, 1].
    """
    if pytesseract is None:
        _lazy_import_ocr_deps()

    img = PIL_Image.open(img_path)
    try:
        data = pytesseract.image_to_data(img, output_type=pytesseract.Output.DICT)
    except pytesseract.TesseractNotFoundError as e:
        raise OcrUnavailableError(str(e)) from e

    grouped: Dict[int, Dict] = OrderedDict()
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        conf = float(data["conf"][i])
        if not word or conf < 0:
            continue
        block = grouped.setdefault(data["block_num"][i], {"lines": OrderedDict(), "confs": [], "boxes": []})
        block["lines"].setdefault((data["par_num"][i], data["line_num"][i]), []).append(word)
        block["confs"].append(conf / 100.0)
        block["boxes"].append((data["left"][i], data["top"][i], data["width"][i], data["height"][i]))

    blocks = []
    for block in grouped.values():
        left = min(b[0] for b in block["boxes"])
        top = min(b[1] for b in block["boxes"])
        right = max(b[0] + b[2] for b in block["boxes"])
        bottom = max(b[1] + b[3] for b in block["boxes"])
        blocks.append(TextBlock(
            text=_block_text(block["lines"]),
            confidence=sum(block["confs"]) / len(block["confs"]),
            bounding_box=BoundingBox(left, top, right - left, bottom - top),
        ))

    all_confs = [c for block in grouped.values() for c in block["confs"]]
    return RawOcrResult(
        text="\n".join(b.text for b in blocks),
        confidence=sum(all_confs) / len(all_confs) if all_confs else 0.0,
        blocks=tuple(blocks),
    )


def pdf_to_ocr_result(pdf_path: Path) -> RawOcrResult:
    """
    Extract text blocks from a searchable PDF using PyMuPDF.

    Pages are stacked vertically so block positions stay ordered across pages.
    """
    if fitz is None:
        _lazy_import_ocr_deps()

    doc = fitz.open(pdf_path.as_posix())
    blocks = []
    offset = 0.0
    try:
        for page in doc:
            for x0, y0, x1, y1, text, _block_no, block_type in page.get_text("blocks"):
                text = (text or "").strip()
                if block_type != 0 or not text:
                    continue
                blocks.append(TextBlock(
                    text=text,
                    confidence=1.0,
                    bounding_box=BoundingBox(x0, y0 + offset, x1 - x0, y1 - y0),
                ))
            offset += page.rect.height
    finally:
        doc.close()

    return RawOcrResult(text="\n".join(b.text for b in blocks), confidence=1.0, blocks=tuple(blocks))


def read_ocr_result(path: Path) -> RawOcrResult:
    """
    Produce OCR output for a receipt file.

    Text files are taken as already-recognized text, JSON files as a
    serialized RawOcrResult, images go through Tesseract and PDFs through
    PyMuPDF.

    Raises:
        ValueError: unsupported file type
        OcrUnavailableError: OCR dependencies missing
    """
    ext = path.suffix.lower()
    if ext in TEXT_EXTS:
        return RawOcrResult(text=path.read_text(encoding="utf-8"), confidence=1.0)
    if ext in JSON_EXTS:
        with path.open("r", encoding="utf-8") as f:
            return RawOcrResult.from_dict(json.load(f))
    if ext in IMAGE_EXTS:
        return ocr_image(path)
    if ext in PDF_EXTS:
        return pdf_to_ocr_result(path)
    raise ValueError(f"Unsupported file type: {path}")
