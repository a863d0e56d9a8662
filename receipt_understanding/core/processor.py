"""
Main receipt processing orchestration.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .config import DEFAULT_SETTINGS, ParserSettings
from .models import ParseContext
from .ocr import read_ocr_result
from .receipt_parser import ReceiptParser
from .templates import ReceiptTemplate
from .utils import IMAGE_EXTS, JSON_EXTS, PDF_EXTS, TEXT_EXTS, money_fmt, sha1_file

logger = logging.getLogger(__name__)

SUPPORTED_EXTS = IMAGE_EXTS | PDF_EXTS | TEXT_EXTS | JSON_EXTS


class ReceiptProcessor:
    """Batch runner: OCR each receipt file and parse it into a row."""

    def __init__(self, templates: Sequence[ReceiptTemplate] = (),
                 settings: Optional[ParserSettings] = None,
                 rules: Optional[Dict] = None,
                 user_id: str = "",
                 verbose: bool = False):
        """
        Initialize receipt processor.

        Args:
            templates: Store templates used for layout matching and parsing
            settings: Parser tuning (defaults when omitted)
            rules: Rules dictionary (item categorisation matchers)
            user_id: Owner recorded on every parsed receipt
            verbose: Whether to show verbose debugging output
        """
        self.settings = settings or DEFAULT_SETTINGS
        self.parser = ReceiptParser(templates, self.settings, rules)
        self.user_id = user_id
        self.verbose = verbose

    def discover_files(self, inputs: Iterable[Path]) -> List[Path]:
        """Expand the given files and directories into supported receipt files."""
        files = []
        for path in inputs:
            if path.is_dir():
                files.extend(p for p in sorted(path.iterdir()) if p.suffix.lower() in SUPPORTED_EXTS)
            elif path.suffix.lower() in SUPPORTED_EXTS:
                files.append(path)
            else:
                print(f"[WARN] Skipping unsupported file {path}")
        print(f"[INFO] Found {len(files)} receipt file(s)")
        return files

    def process_file(self, path: Path, file_hash: Optional[str] = None) -> Dict:
        """
        Process a single receipt file.

        Args:
            path: Path to receipt file
            file_hash: Pre-computed SHA1 hash (optional, will compute if not provided)

        Returns:
            Dictionary with the parsed receipt and its quality signals
        """
        print(f"[INFO] Processing {path.name}")
        ocr = read_ocr_result(path)
        sha1 = file_hash or sha1_file(path)

        layout = self.parser.analyze_layout(ocr.text, ocr.blocks)
        context = ParseContext(
            user_id=self.user_id,
            image_url=path.as_posix(),
            ocr_confidence=None if path.suffix.lower() in TEXT_EXTS else ocr.confidence,
            text_blocks=ocr.blocks,
            template_match=layout.template_match,
            preprocessed_items=tuple(layout.preprocessed.line_items),
        )
        result = self.parser.parse(ocr.text, context)
        receipt = result.data
        needs_review = not result.is_acceptable(self.settings.confidence_threshold)

        if self.verbose:
            template = layout.template
            print(f"  [DEBUG] Template: {template.store_id if template else '(none)'}")
            print(f"  [DEBUG] Store: '{receipt.store.name or '(none)'}'")
            print(f"  [DEBUG] Date: {receipt.date}")
            print(f"  [DEBUG] Items: {len(receipt.items)}")
            print(f"  [DEBUG] Total: {money_fmt(receipt.totals.total) or '(none)'}")
            for error in result.errors:
                print(f"  [DEBUG] {error}")
        if needs_review:
            print(f"  [WARN] Low confidence ({result.confidence:.2f}); flagged for review")

        return {
            "source_file": path.name,
            "sha1": sha1,
            "receipt": receipt,
            "confidence": result.confidence,
            "errors": list(result.errors),
            "needs_review": needs_review,
        }

    def process_all(self, inputs: Iterable[Path]) -> List[Dict]:
        """
        Process all receipts, skipping byte-identical duplicates.

        Files that fail to OCR are reported and left out of the result.
        """
        files = self.discover_files(inputs)
        if not files:
            print("No receipt files found.")
            return []

        rows = []
        seen: Dict[str, str] = {}
        for path in files:
            try:
                file_hash = sha1_file(path)
                if file_hash in seen:
                    print(f"[WARN] Skipping {path.name}: duplicate of {seen[file_hash]}")
                    continue
                seen[file_hash] = path.name
                rows.append(self.process_file(path, file_hash))
            except Exception as e:
                logger.debug("Processing failed", exc_info=True)
                print(f"[ERROR] Failed {path.name}: {e}")

        flagged = sum(1 for row in rows if row["needs_review"])
        print(f"[OK] Parsed {len(rows)} receipt(s); {flagged} flagged for review")
        return rows
