"""
Output writers for parsed receipts.
"""

import csv
import json
from collections import defaultdict
from pathlib import Path
from typing import Dict, List

ITEM_FIELDS = [
    "source_file", "store", "date", "item", "quantity", "unit_price", "price",
    "category", "discounted", "receipt_total", "confidence", "needs_review",
]


def row_to_dict(row: Dict) -> Dict:
    """JSON-friendly copy of a processor row."""
    out = dict(row)
    out["receipt"] = row["receipt"].to_dict()
    return out


def write_json(rows: List[Dict], out_json: Path):
    """Write parsed receipts, with their errors and confidence, to a JSON file."""
    with out_json.open("w", encoding="utf-8") as f:
        json.dump([row_to_dict(r) for r in rows], f, indent=2)


def write_items_csv(rows: List[Dict], out_csv: Path):
    """Write one CSV line per purchased item."""
    with out_csv.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=ITEM_FIELDS)
        w.writeheader()
        for r in rows:
            receipt = r["receipt"]
            for item in receipt.items:
                w.writerow({
                    "source_file": r.get("source_file"),
                    "store": receipt.store.name,
                    "date": receipt.date.isoformat(),
                    "item": item.name,
                    "quantity": f"{item.quantity:g}",
                    "unit_price": f"{item.unit_price:.2f}" if item.unit_price is not None else "",
                    "price": f"{item.price:.2f}",
                    "category": item.category or "",
                    "discounted": "yes" if item.discounted else "",
                    "receipt_total": f"{receipt.totals.total:.2f}",
                    "confidence": f"{r.get('confidence', 0):.2f}",
                    "needs_review": "yes" if r.get("needs_review") else "",
                })


def category_totals(rows: List[Dict]) -> Dict[str, float]:
    """Spend per item category across all receipts; uncategorized items are grouped."""
    totals = defaultdict(float)
    for r in rows:
        for item in r["receipt"].items:
            totals[item.category or "Uncategorized"] += item.price
    return {k: round(v, 2) for k, v in sorted(totals.items())}
