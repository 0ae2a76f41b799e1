from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Make the project root importable when run as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.repositories.db import Base, SessionLocal, engine
from app.domain.catalog.models import Category
from app.domain.catalog.pricing import classify

# (name_ar, name_en)
DEFAULT_CATEGORIES = [
    ("بيتزا", "Pizza"),
    ("ساندويتشات", "Sandwiches"),
    ("كريب", "Crepe"),
    ("كريب بيتزا", "Crepe Pizza"),
    ("مشروبات", "Drinks"),
]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Seed the standard catalog categories (idempotent).")
    p.add_argument("--dry-run", action="store_true", help="Only print what would be created")
    return p


def seed(db, dry_run: bool = False) -> list[str]:
    existing = {str(c.name_en).strip().lower() for c in db.query(Category).all()}
    created: list[str] = []
    for name_ar, name_en in DEFAULT_CATEGORIES:
        if name_en.lower() in existing:
            continue
        created.append(name_en)
        if not dry_run:
            db.add(Category(name_ar=name_ar, name_en=name_en))
    if created and not dry_run:
        db.commit()
    return created


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        created = seed(db, dry_run=bool(args.dry_run))
    for name in created:
        print(f"{'would create' if args.dry_run else 'created'}: {name} ({classify(name).value})")
    if not created:
        print("Nothing to do.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
