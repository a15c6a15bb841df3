# =============================================
# File: concierge/cli/seed_catalog.py
# Purpose: Load categories/products from a JSON file into the bundled SQL store.
# Usage:
#   python -m concierge.cli.seed_catalog data/catalog.json
#   (file shape: {"categories": [{id, name, parent_id?}], "products": [{id, name, price, ...}]})
# =============================================
from __future__ import annotations
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError

from concierge.db.repo import SqlStore, init_db
from concierge.services.catalog import Category, Product


def parse_catalog(data: Dict[str, Any]) -> Tuple[List[Category], List[Product]]:
    categories = [Category.model_validate(c) for c in data.get("categories") or []]
    products = [Product.model_validate(p) for p in data.get("products") or []]
    return categories, products


def main(argv=None):
    ap = argparse.ArgumentParser(description="Seed the catalog tables from a JSON file.")
    ap.add_argument("file", help="JSON file with 'categories' and 'products' arrays")
    args = ap.parse_args(argv)

    path = Path(args.file)
    if not path.exists():
        print(f"[ERR] File not found: {path}", file=sys.stderr)
        sys.exit(1)

    try:
        categories, products = parse_catalog(json.loads(path.read_text(encoding="utf-8")))
    except (ValueError, ValidationError) as e:
        print(f"[ERR] Invalid catalog file: {e}", file=sys.stderr)
        sys.exit(1)

    init_db()
    n = asyncio.run(SqlStore().seed_catalog(categories, products))
    print(f"[OK] Upserted {len(categories)} categories and {len(products)} products ({n} rows)")

if __name__ == "__main__":
    main()
