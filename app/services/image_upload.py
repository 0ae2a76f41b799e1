from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Sequence

import structlog

from app.core.config import settings
from app.core.errors import UploadError
from app.services.object_store import ObjectStore

log = structlog.get_logger()

REASON_TOO_MANY = "too_many_images"
REASON_NOT_IMAGE = "not_an_image"
REASON_TOO_LARGE = "file_too_large"


@dataclass(frozen=True)
class ImageFile:
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Rejection:
    file: ImageFile
    reason: str


@dataclass(frozen=True)
class ValidationResult:
    accepted: list[ImageFile]
    rejected: list[Rejection]

    @property
    def ok(self) -> bool:
        return not self.rejected


def _extension(f: ImageFile) -> str:
    ext = PurePath(f.filename or "").suffix.lstrip(".").lower()
    if ext:
        return ext
    # "image/png" -> "png"
    sub = (f.content_type or "").split("/", 1)[-1].split(";", 1)[0].strip().lower()
    return sub or "bin"


class _KeyClock:
    """Millisecond timestamps, strictly increasing within the process."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = int(time.time() * 1000)
            self._last = now if now > self._last else self._last + 1
            return self._last


_clock = _KeyClock()


def object_key_for(f: ImageFile) -> str:
    return f"{_clock.next()}.{_extension(f)}"


class ImageUploadPipeline:
    def __init__(
        self,
        store: ObjectStore,
        *,
        max_images: int | None = None,
        max_bytes: int | None = None,
    ):
        self.store = store
        self.max_images = int(max_images if max_images is not None else settings.MAX_IMAGES_PER_ITEM)
        self.max_bytes = int(max_bytes if max_bytes is not None else settings.MAX_IMAGE_BYTES)

    def validate(self, files: Sequence[ImageFile], existing_count: int = 0) -> ValidationResult:
        files = list(files)
        # The cap rejects the whole batch, valid files included
        if existing_count + len(files) > self.max_images:
            return ValidationResult([], [Rejection(f, REASON_TOO_MANY) for f in files])

        accepted: list[ImageFile] = []
        rejected: list[Rejection] = []
        for f in files:
            if not (f.content_type or "").lower().startswith("image/"):
                rejected.append(Rejection(f, REASON_NOT_IMAGE))
            elif f.size > self.max_bytes:
                rejected.append(Rejection(f, REASON_TOO_LARGE))
            else:
                accepted.append(f)
        return ValidationResult(accepted, rejected)

    async def upload(self, files: Sequence[ImageFile]) -> list[str]:
        """Uploads every file and returns their URLs in input order.

        All or nothing: on the first failure the objects already written by
        this call are removed and UploadError is raised.
        """
        uploaded: list[str] = []
        urls: list[str] = []
        try:
            for f in files:
                key = object_key_for(f)
                url = await self.store.upload(key, f.data, f.content_type)
                uploaded.append(key)
                urls.append(url)
        except Exception as e:
            log.warning("upload.failed", error=str(e), uploaded=len(uploaded), total=len(files))
            await self._discard(uploaded)
            if isinstance(e, UploadError):
                raise
            raise UploadError("image upload failed") from e
        except BaseException:
            # Cancelled mid-batch
            await self._discard(uploaded)
            raise

        log.info("upload.ok", count=len(urls))
        return urls

    async def _discard(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self.store.remove(keys)
        except Exception as e:
            log.error("upload.cleanup_failed", keys=keys, error=str(e))
