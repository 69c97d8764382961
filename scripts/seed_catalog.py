#!/usr/bin/env python3
"""
Seed tree prices and the achievement catalog.

Usage:
    python scripts/seed_catalog.py
    python scripts/seed_catalog.py --keep-prices   # only add missing prices
"""
import argparse
import sys

from app.core.logger import init_logging
from app.db.seed import seed_catalog
from app.db.session import SessionLocal


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed 4Planet catalog data")
    parser.add_argument(
        "--keep-prices",
        action="store_true",
        help="Do not overwrite prices that are already configured",
    )
    args = parser.parse_args(argv)

    init_logging()
    db = SessionLocal()
    try:
        counts = seed_catalog(db, update_prices=not args.keep_prices)
    except Exception as e:  # noqa: BLE001
        db.rollback()
        print(f"❌ Seeding failed: {e}")
        return 1
    finally:
        db.close()

    print(f"✅ Tree prices written: {counts['prices']}")
    print(f"✅ Achievements created: {counts['achievements']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
