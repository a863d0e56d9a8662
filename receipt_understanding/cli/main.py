#!/usr/bin/env python3
"""
Main CLI entrypoint for receipt understanding.
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from receipt_understanding.core.config import ConfigError, load_rules, load_settings
from receipt_understanding.core.processor import ReceiptProcessor
from receipt_understanding.core.reporting import category_totals, write_items_csv, write_json
from receipt_understanding.core.templates import TemplateError, create_initial_templates, load_templates
from receipt_understanding.core.utils import money_fmt


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt-parse",
        description="Parse receipt OCR output into structured, confidence-scored receipts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Parse a folder of receipts with the built-in store templates
  receipt-parse ./receipts

  # Write JSON and an item-level CSV
  receipt-parse scan1.jpg scan2.pdf --output receipts.json --csv items.csv

  # Use your own templates and a stricter review threshold
  receipt-parse ./receipts --templates templates.json --threshold 0.7
        """
    )
    parser.add_argument("inputs", nargs="+",
                        help="Receipt files or folders (.txt, .json, images, PDFs)")
    parser.add_argument("--templates",
                        help="JSON file with store templates (default: built-in catalog)")
    parser.add_argument("--rules", default="./rules.json",
                        help="rules.json with parser settings and item categories (default: ./rules.json)")
    parser.add_argument("--user-id",
                        help="Owner recorded on parsed receipts (default: RECEIPT_USER_ID env var)")
    parser.add_argument("--output",
                        help="Write parsed receipts to this JSON file")
    parser.add_argument("--csv",
                        help="Write one line per item to this CSV file")
    parser.add_argument("--threshold", type=float,
                        help="Confidence below which receipts are flagged for review")
    parser.add_argument("--no-templates", action="store_true",
                        help="Parse with generic heuristics only")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show detailed parsing information for debugging")
    return parser


def main(argv=None):
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    rules_path = Path(args.rules)
    try:
        rules = load_rules(rules_path)
        settings = load_settings(rules_path)
        if args.no_templates:
            templates = []
        elif args.templates:
            templates = load_templates(Path(args.templates))
        else:
            templates = create_initial_templates()
    except (ConfigError, TemplateError, OSError, ValueError) as e:
        print(f"[ERROR] {e}")
        return 1

    if args.threshold is not None:
        settings = replace(settings, confidence_threshold=args.threshold)

    rejected = sum(len(t.rejected_patterns) for t in templates)
    print(f"[INFO] Using {len(templates)} store template(s)")
    if rejected:
        print(f"[WARN] {rejected} invalid template pattern(s) were skipped")

    processor = ReceiptProcessor(
        templates=templates,
        settings=settings,
        rules=rules,
        user_id=args.user_id or os.getenv("RECEIPT_USER_ID", ""),
        verbose=args.verbose,
    )
    rows = processor.process_all([Path(p) for p in args.inputs])
    if not rows:
        return 0

    for r in rows:
        receipt = r["receipt"]
        flag = " [REVIEW]" if r["needs_review"] else ""
        print(f"  {r['source_file']}: {receipt.date} | {receipt.store.name or '(unknown store)'} | "
              f"{money_fmt(receipt.totals.total)} | {len(receipt.items)} item(s) | "
              f"confidence {r['confidence']:.2f}{flag}")

    for category, amount in category_totals(rows).items():
        print(f"  {category}: {money_fmt(amount)}")

    if args.output:
        out_json = Path(args.output)
        write_json(rows, out_json)
        print(f"[OK] Wrote {out_json}")
    if args.csv:
        out_csv = Path(args.csv)
        write_items_csv(rows, out_csv)
        print(f"[OK] Wrote {out_csv}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
