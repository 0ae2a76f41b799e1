from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol

import anyio
import structlog

from app.core.config import settings

# Objects are stored on the local disk (MVP). In production prefer S3/GCS behind a CDN.

log = structlog.get_logger()


class ObjectStore(Protocol):
    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> str: ...

    async def remove(self, keys: Iterable[str]) -> None: ...

    def get_public_url(self, key: str) -> str: ...

    def key_from_url(self, url: str) -> str | None: ...


def _safe_key(key: str) -> str:
    k = str(key or "").strip()
    if not k or "/" in k or "\\" in k or k in (".", ".."):
        raise ValueError(f"invalid_object_key:{key}")
    return k


class LocalObjectStore:
    """Flat bucket on disk; objects are served by the app under ``public_base_url``."""

    def __init__(self, root: str | Path | None = None, public_base_url: str | None = None):
        self.root = Path(root or settings.UPLOAD_ROOT)
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def get_public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{_safe_key(key)}"

    def key_from_url(self, url: str) -> str | None:
        u = str(url or "").strip()
        prefix = self.public_base_url + "/"
        if not u.startswith(prefix):
            return None
        key = u[len(prefix):].split("?", 1)[0].split("#", 1)[0]
        return key or None

    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self.root / _safe_key(key)

        def _write() -> None:
            self.ensure_root()
            with path.open("xb") as out:
                out.write(data)

        await anyio.to_thread.run_sync(_write)
        log.debug("object_store.upload", key=key, size=len(data), content_type=content_type)
        return self.get_public_url(key)

    async def remove(self, keys: Iterable[str]) -> None:
        paths = [self.root / _safe_key(k) for k in keys]

        def _unlink() -> None:
            for p in paths:
                p.unlink(missing_ok=True)

        await anyio.to_thread.run_sync(_unlink)
        log.debug("object_store.remove", keys=[p.name for p in paths])
