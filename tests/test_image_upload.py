from __future__ import annotations

import pytest

from app.core.config import settings
from app.core.errors import UploadError
from app.services.image_upload import (
    REASON_NOT_IMAGE,
    REASON_TOO_LARGE,
    REASON_TOO_MANY,
    ImageUploadPipeline,
    object_key_for,
)

pytestmark = pytest.mark.anyio


class FlakyStore:
    """In-memory store whose Nth upload blows up."""

    def __init__(self, fail_on: int | None = None):
        self.fail_on = fail_on
        self.objects: dict[str, bytes] = {}
        self.calls = 0
        self.removed: list[str] = []

    async def upload(self, key, data, content_type=None):
        self.calls += 1
        if self.fail_on is not None and self.calls == self.fail_on:
            raise OSError("disk full")
        self.objects[key] = data
        return self.get_public_url(key)

    async def remove(self, keys):
        for k in keys:
            self.removed.append(k)
            self.objects.pop(k, None)

    def get_public_url(self, key):
        return f"http://cdn.test/{key}"

    def key_from_url(self, url):
        prefix = "http://cdn.test/"
        return url[len(prefix):] if url.startswith(prefix) else None


def test_defaults_come_from_settings():
    p = ImageUploadPipeline(FlakyStore())
    assert p.max_images == settings.MAX_IMAGES_PER_ITEM == 5
    assert p.max_bytes == settings.MAX_IMAGE_BYTES == 50 * 1024 * 1024


def test_count_cap_rejects_whole_batch(image):
    p = ImageUploadPipeline(FlakyStore())
    batch = [image(f"{i}.png") for i in range(3)]

    res = p.validate(batch, existing_count=3)
    assert res.accepted == []
    assert [r.reason for r in res.rejected] == [REASON_TOO_MANY] * 3
    assert not res.ok

    res2 = p.validate(batch, existing_count=2)
    assert res2.ok
    assert len(res2.accepted) == 3


def test_type_and_size_rejections_are_per_file(image):
    p = ImageUploadPipeline(FlakyStore(), max_bytes=32)
    files = [
        image("a.png"),
        image("notes.pdf", content_type="application/pdf"),
        image("huge.jpg", content_type="image/jpeg", size=33),
    ]
    res = p.validate(files)
    assert [f.filename for f in res.accepted] == ["a.png"]
    assert {r.file.filename: r.reason for r in res.rejected} == {
        "notes.pdf": REASON_NOT_IMAGE,
        "huge.jpg": REASON_TOO_LARGE,
    }


def test_object_keys_are_unique_and_keep_extension(image):
    keys = [object_key_for(image("x.JPG", content_type="image/jpeg")) for _ in range(50)]
    assert len(set(keys)) == 50
    assert all(k.endswith(".jpg") for k in keys)
    stamps = [int(k.split(".")[0]) for k in keys]
    assert stamps == sorted(stamps)

    assert object_key_for(image("noext", content_type="image/webp")).endswith(".webp")


async def test_upload_returns_urls_in_input_order(image):
    store = FlakyStore()
    p = ImageUploadPipeline(store)
    files = [image(f"{i}.png", size=i + 1) for i in range(4)]

    urls = await p.upload(files)

    assert len(urls) == 4
    for f, url in zip(files, urls):
        assert store.objects[store.key_from_url(url)] == f.data


async def test_upload_failure_discards_what_was_uploaded(image):
    store = FlakyStore(fail_on=3)
    p = ImageUploadPipeline(store)

    with pytest.raises(UploadError):
        await p.upload([image(f"{i}.png") for i in range(4)])

    assert store.objects == {}
    assert len(store.removed) == 2


async def test_upload_to_local_store(store, image):
    p = ImageUploadPipeline(store)
    urls = await p.upload([image("a.png"), image("b.gif", content_type="image/gif")])
    assert all(u.startswith("http://testserver/static/uploads/") for u in urls)
    for u in urls:
        assert (store.root / store.key_from_url(u)).exists()
