from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import settings
from app.repositories.db import SessionLocal
from app.domain.catalog.models import Ad, Gallery, NewsItem
from app.services.object_store import LocalObjectStore


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="List (and optionally remove) stored images no item, ad or gallery references."
    )
    p.add_argument("--root", default=settings.UPLOAD_ROOT)
    p.add_argument("--apply", action="store_true", help="Delete the orphaned files")
    return p


def referenced_keys(db, store: LocalObjectStore) -> set[str]:
    urls: list[str] = []
    for item in db.query(NewsItem).all():
        urls.extend(item.images or [])
    urls.extend(a.image_url for a in db.query(Ad).all())
    for g in db.query(Gallery).all():
        urls.extend(g.image_urls or [])
    return {k for k in (store.key_from_url(u) for u in urls) if k}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    store = LocalObjectStore(root=args.root)
    if not store.root.exists():
        print(f"No upload root at {store.root}")
        return 0

    with SessionLocal() as db:
        keep = referenced_keys(db, store)

    orphans = sorted(p for p in store.root.iterdir() if p.is_file() and p.name not in keep)
    print(f"Referenced objects: {len(keep)}")
    print(f"Orphaned objects: {len(orphans)}")
    for p in orphans[:20]:
        print(f"  - {p.name}")

    if args.apply:
        for p in orphans:
            p.unlink(missing_ok=True)
        print(f"Removed {len(orphans)} files.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
