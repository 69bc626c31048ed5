"""
Unit tests for chunk stores.
"""

import asyncio

import pytest

from bridgebox.core.exceptions import ChunkStoreError
from bridgebox.core.storage import (
    ChunkStoreWriter,
    FileChunkStore,
    MemoryChunkStore,
    open_store,
    read_stream,
    resolve_store_factory,
)
from bridgebox.core.streams import collect


@pytest.fixture(params=["memory", "fs"])
def store(request, tmp_path):
    factory = resolve_store_factory(request.param, tmp_dir=tmp_path)
    s = factory(10)
    yield s
    s.close()


def test_out_of_order_puts_land_at_offsets(store):
    store.put(6, b"ghij")
    store.put(0, b"abc")
    store.put(3, b"def")
    assert store.get() == b"abcdefghij"
    assert store.get(2, 3) == b"cde"


def test_put_out_of_bounds_raises(store):
    with pytest.raises(ChunkStoreError):
        store.put(8, b"abc")
    with pytest.raises(ChunkStoreError):
        store.put(-1, b"a")


def test_get_out_of_bounds_raises(store):
    with pytest.raises(ChunkStoreError):
        store.get(5, 6)


def test_closed_store_rejects_access(store):
    store.close()
    with pytest.raises(ChunkStoreError, match="closed"):
        store.get()


def test_negative_length_rejected():
    with pytest.raises(ChunkStoreError):
        MemoryChunkStore(-1)


def test_file_store_is_removed_on_close(tmp_path):
    with FileChunkStore(4, tmp_dir=tmp_path) as s:
        path = s.path
        assert path.exists()
        assert path.parent == tmp_path
        s.put(0, b"data")
    assert not path.exists()
    # second close is a no-op
    s.close()


def test_file_store_creates_tmp_dir(tmp_path):
    target = tmp_path / "nested" / "dir"
    with FileChunkStore(1, tmp_dir=target) as s:
        assert s.path.parent == target


def test_writer_tracks_offset_and_completion():
    s = MemoryChunkStore(6)
    writer = ChunkStoreWriter(s)
    writer.write(b"abc")
    assert not writer.complete
    writer.write(b"def")
    assert writer.complete
    assert writer.offset == 6
    with pytest.raises(ChunkStoreError):
        writer.write(b"g")


def test_read_stream_yields_in_order():
    s = MemoryChunkStore(10)
    s.put(0, b"0123456789")
    chunks = []

    async def run():
        async for chunk in read_stream(s, chunk_size=4):
            chunks.append(chunk)

    asyncio.run(run())
    assert chunks == [b"0123", b"4567", b"89"]
    assert asyncio.run(collect(read_stream(s))) == b"0123456789"


def test_resolve_store_factory_variants(tmp_path):
    assert resolve_store_factory("memory") is MemoryChunkStore
    assert resolve_store_factory(None) is MemoryChunkStore
    custom = lambda n: MemoryChunkStore(n)  # noqa: E731
    assert resolve_store_factory(custom) is custom
    fs = resolve_store_factory("fs", tmp_dir=tmp_path)(3)
    assert isinstance(fs, FileChunkStore)
    fs.close()


def test_resolve_store_factory_unknown():
    with pytest.raises(ChunkStoreError, match="unknown chunk store"):
        resolve_store_factory("s3")


def test_open_store_uses_factory():
    calls = []

    def factory(n):
        calls.append(n)
        return MemoryChunkStore(n)

    s = open_store(factory, 7)
    assert calls == [7]
    assert s.length == 7
