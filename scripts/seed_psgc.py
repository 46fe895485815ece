#!/usr/bin/env python3
"""
Load PSGC reference geography (regions, provinces, cities/municipalities).

Usage:
  python scripts/seed_psgc.py                   # built-in sample set
  python scripts/seed_psgc.py --csv psgc.csv    # full dataset

CSV columns: level,psgc_code,code,name,parent_psgc_code,is_municipality
(level is region|province|city; rows must list parents before children).
Idempotent: rows are upserted by psgc_code.
"""

from __future__ import annotations

import argparse
import csv
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.lending.modules.locations.service import load_psgc_rows  # noqa: E402
from scripts._db_utils import database_url, script_session  # noqa: E402

CSV_COLUMNS = ("level", "psgc_code", "code", "name", "parent_psgc_code", "is_municipality")

SAMPLE_ROWS: tuple[tuple[str, str, str, str, str, str], ...] = (
    ("region", "130000000", "NCR", "National Capital Region (NCR)", "", ""),
    ("province", "137400000", "1374", "NCR, Second District", "130000000", ""),
    ("city", "137401000", "137401", "City of Mandaluyong", "137400000", "0"),
    ("city", "137402000", "137402", "City of Marikina", "137400000", "0"),
    ("city", "137403000", "137403", "City of Pasig", "137400000", "0"),
    ("city", "137404000", "137404", "Quezon City", "137400000", "0"),
    ("city", "137405000", "137405", "City of San Juan", "137400000", "0"),
    ("region", "040000000", "IV-A", "Region IV-A (CALABARZON)", "", ""),
    ("province", "042100000", "0421", "Cavite", "040000000", ""),
    ("city", "042103000", "042103", "City of Bacoor", "042100000", "0"),
    ("city", "042106000", "042106", "City of Dasmarinas", "042100000", "0"),
    ("city", "042119000", "042119", "Silang", "042100000", "1"),
    ("province", "043400000", "0434", "Laguna", "040000000", ""),
    ("city", "043405000", "043405", "City of Calamba", "043400000", "0"),
    ("city", "043411000", "043411", "Los Banos", "043400000", "1"),
    ("region", "070000000", "VII", "Region VII (Central Visayas)", "", ""),
    ("province", "072200000", "0722", "Cebu", "070000000", ""),
    ("city", "072217000", "072217", "City of Cebu", "072200000", "0"),
    ("city", "072230000", "072230", "City of Mandaue", "072200000", "0"),
    ("city", "072250000", "072250", "Moalboal", "072200000", "1"),
)


def sample_rows() -> list[dict[str, str]]:
    return [dict(zip(CSV_COLUMNS, row)) for row in SAMPLE_ROWS]


def read_csv_rows(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        missing = [c for c in ("level", "psgc_code", "name") if c not in (reader.fieldnames or [])]
        if missing:
            raise SystemExit(f"CSV missing required columns: {', '.join(missing)}")
        return list(reader)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--csv", type=Path, help="PSGC CSV file (defaults to the built-in sample set)")
    args = parser.parse_args()

    rows = read_csv_rows(args.csv) if args.csv else sample_rows()
    with script_session(database_url()) as s:
        stats = load_psgc_rows(s, rows)
    print(
        "PSGC load complete: "
        f"{stats['created']} created, {stats['updated']} updated, "
        f"{stats['unchanged']} unchanged, {stats['skipped']} skipped"
    )


if __name__ == "__main__":
    main()
