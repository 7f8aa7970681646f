"""Tests for the in-memory multipart store."""

import hashlib

import pytest

from conftest import body_of

from uploadgate.config import StorageConfig
from uploadgate.storage.backend import StoreError
from uploadgate.storage.memory import (
    InvalidPartError,
    MemoryCapacityError,
    MemoryMultipartStore,
    NoSuchUploadError,
)
from uploadgate.uploads.models import PartInfo


@pytest.fixture
def mem():
    return MemoryMultipartStore()


async def _put(store, key, upload_id, n, data) -> PartInfo:
    etag = await store.upload_part(key, upload_id, n, body_of(data), len(data))
    return PartInfo(n, etag)


class TestUploadPart:
    """Tests for upload_part()."""

    async def test_etag_is_quoted_md5(self, mem):
        upload_id = await mem.initiate("k")
        part = await _put(mem, "k", upload_id, 1, b"hello")
        assert part.etag == f'"{hashlib.md5(b"hello").hexdigest()}"'

    async def test_unknown_upload(self, mem):
        with pytest.raises(NoSuchUploadError):
            await _put(mem, "k", "nope", 1, b"x")

    async def test_key_must_match(self, mem):
        upload_id = await mem.initiate("k")
        with pytest.raises(NoSuchUploadError):
            await _put(mem, "other", upload_id, 1, b"x")

    async def test_errors_are_store_errors(self, mem):
        with pytest.raises(StoreError):
            await _put(mem, "k", "nope", 1, b"x")

    async def test_capacity_limit(self):
        store = MemoryMultipartStore(max_size_bytes=8)
        upload_id = await store.initiate("k")
        await _put(store, "k", upload_id, 1, b"12345")
        with pytest.raises(MemoryCapacityError):
            await _put(store, "k", upload_id, 2, b"6789")
        # Overwriting a part only counts the size difference.
        await _put(store, "k", upload_id, 1, b"12345678")

    async def test_abort_frees_capacity(self):
        store = MemoryMultipartStore(max_size_bytes=4)
        first = await store.initiate("a")
        await _put(store, "a", first, 1, b"1234")
        await store.abort("a", first)
        second = await store.initiate("b")
        await _put(store, "b", second, 1, b"1234")


class TestComplete:
    """Tests for complete()."""

    async def test_assembles_in_order(self, mem):
        upload_id = await mem.initiate("k")
        p2 = await _put(mem, "k", upload_id, 2, b"world")
        p1 = await _put(mem, "k", upload_id, 1, b"hello ")

        await mem.complete("k", upload_id, [p1, p2])

        assert mem.get_object("k") == b"hello world"
        assert not mem.has_upload(upload_id)

    async def test_multipart_etag(self, mem):
        upload_id = await mem.initiate("k")
        p1 = await _put(mem, "k", upload_id, 1, b"a")
        p2 = await _put(mem, "k", upload_id, 2, b"b")
        await mem.complete("k", upload_id, [p1, p2])

        digest = hashlib.md5(hashlib.md5(b"a").digest() + hashlib.md5(b"b").digest())
        assert mem.object_etag("k") == f'"{digest.hexdigest()}-2"'

    async def test_rejects_descending_parts(self, mem):
        upload_id = await mem.initiate("k")
        p1 = await _put(mem, "k", upload_id, 1, b"a")
        p2 = await _put(mem, "k", upload_id, 2, b"b")
        with pytest.raises(InvalidPartError, match="ascending"):
            await mem.complete("k", upload_id, [p2, p1])

    async def test_rejects_wrong_etag(self, mem):
        upload_id = await mem.initiate("k")
        await _put(mem, "k", upload_id, 1, b"a")
        with pytest.raises(InvalidPartError):
            await mem.complete("k", upload_id, [PartInfo(1, '"bogus"')])

    async def test_rejects_missing_part(self, mem):
        upload_id = await mem.initiate("k")
        p1 = await _put(mem, "k", upload_id, 1, b"a")
        with pytest.raises(InvalidPartError):
            await mem.complete("k", upload_id, [p1, PartInfo(2, p1.etag)])

    async def test_rejects_empty_list(self, mem):
        upload_id = await mem.initiate("k")
        with pytest.raises(InvalidPartError):
            await mem.complete("k", upload_id, [])

    async def test_subset_of_parts(self, mem):
        """Only the listed parts make up the object."""
        upload_id = await mem.initiate("k")
        p1 = await _put(mem, "k", upload_id, 1, b"a")
        await _put(mem, "k", upload_id, 2, b"b")
        p3 = await _put(mem, "k", upload_id, 3, b"c")
        await mem.complete("k", upload_id, [p1, p3])
        assert mem.get_object("k") == b"ac"

    async def test_complete_twice(self, mem):
        upload_id = await mem.initiate("k")
        p1 = await _put(mem, "k", upload_id, 1, b"a")
        await mem.complete("k", upload_id, [p1])
        with pytest.raises(NoSuchUploadError):
            await mem.complete("k", upload_id, [p1])


class TestAbort:
    """Tests for abort()."""

    async def test_abort_forgets_upload(self, mem):
        upload_id = await mem.initiate("k")
        await _put(mem, "k", upload_id, 1, b"a")
        await mem.abort("k", upload_id)
        assert not mem.has_upload(upload_id)
        with pytest.raises(FileNotFoundError):
            mem.get_object("k")

    async def test_abort_unknown(self, mem):
        with pytest.raises(NoSuchUploadError):
            await mem.abort("k", "nope")


def test_from_config():
    store = MemoryMultipartStore.from_config(StorageConfig(memory_max_size_bytes=64))
    assert store.max_size_bytes == 64
