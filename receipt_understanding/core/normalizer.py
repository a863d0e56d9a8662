"""
Text normalization and OCR misread correction.
"""

import re

_HSPACE = re.compile(r"[^\S\n]+")

# Letters commonly misread in numeric context
_L_NEAR_DIGIT = re.compile(r"(?<=\d)l+|l+(?=\d)")
_O_NEAR_DIGIT = re.compile(r"(?<=\d)O+|O+(?=\d)")
_S_NEAR_DIGIT = re.compile(r"(?<=\d)S+|S+(?=\d)")

# "$ 12.99" -> "$12.99", "12 .99" / "12. 99" -> "12.99"
_CURRENCY_GAP = re.compile(r"([$€£])\s+(?=\d)")
_DECIMAL_GAP = re.compile(r"(\d)\s*\.\s+(\d{2})\b|(\d)\s+\.(\d{2})\b")


def normalize(text: str) -> str:
    """
    Canonicalize line endings and whitespace.

    Runs of spaces and tabs collapse to one space, each line is trimmed and
    blank lines are dropped, so line structure survives for the parsers.
    Applying it twice gives the same result as applying it once.
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = (_HSPACE.sub(" ", ln).strip() for ln in text.split("\n"))
    return "\n".join(ln for ln in lines if ln)


def _correct_once(text: str) -> str:
    text = _L_NEAR_DIGIT.sub(lambda m: "1" * len(m.group(0)), text)
    text = _O_NEAR_DIGIT.sub(lambda m: "0" * len(m.group(0)), text)
    text = _S_NEAR_DIGIT.sub(lambda m: "5" * len(m.group(0)), text)
    text = _CURRENCY_GAP.sub(r"\1", text)
    text = _DECIMAL_GAP.sub(lambda m: f"{m.group(1) or m.group(3)}.{m.group(2) or m.group(4)}", text)
    return text


def fix_ocr_errors(text: str) -> str:
    """Rewrite common character misreads in numeric contexts (l->1, O->0, S->5)."""
    text = normalize(text)
    # Each pass only turns letters into digits or removes spaces, so it settles.
    while True:
        corrected = _correct_once(text)
        if corrected == text:
            return text
        text = corrected
