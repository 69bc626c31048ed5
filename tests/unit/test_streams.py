import asyncio
import io
import threading

import pytest

from bridgebox.core.exceptions import SourceReadError
from bridgebox.core.streams import collect, iter_source, source_size


def gather(source, chunk_size=4):
    return asyncio.run(collect(iter_source(source, chunk_size=chunk_size)))


def test_bytes_source_is_chunked():
    chunks = []

    async def run():
        async for chunk in iter_source(b"abcdefghij", chunk_size=4):
            chunks.append(chunk)

    asyncio.run(run())
    assert chunks == [b"abcd", b"efgh", b"ij"]


def test_file_like_source():
    assert gather(io.BytesIO(b"hello world")) == b"hello world"


def test_sync_and_async_iterables():
    assert gather([b"ab", b"cd"]) == b"abcd"

    async def agen():
        yield b"x"
        yield b"y"

    assert gather(agen()) == b"xy"


def test_read_failure_wraps_error():
    class Broken:
        def read(self, n):
            raise OSError("device unplugged")

    with pytest.raises(SourceReadError, match="device unplugged"):
        gather(Broken())


def test_async_iterable_failure_wraps_error():
    async def agen():
        yield b"x"
        raise RuntimeError("stream reset")

    with pytest.raises(SourceReadError):
        gather(agen())


def test_file_reads_run_off_the_event_loop_thread():
    readers = []

    class Recording(io.BytesIO):
        def read(self, n=-1):
            readers.append(threading.get_ident())
            return super().read(n)

    assert gather(Recording(b"threaded")) == b"threaded"
    assert readers
    assert threading.get_ident() not in readers


@pytest.mark.parametrize("source", [["abc"], [b"ab", 7], io.StringIO("text")])
def test_non_bytes_chunks_are_rejected(source):
    with pytest.raises(SourceReadError, match="expected bytes"):
        gather(source)


def test_bytearray_chunks_become_bytes():
    chunks = []

    async def run():
        async for chunk in iter_source([bytearray(b"ab"), memoryview(b"cd")]):
            chunks.append(chunk)

    asyncio.run(run())
    assert chunks == [b"ab", b"cd"]
    assert all(type(c) is bytes for c in chunks)


def test_source_size(tmp_path):
    assert source_size(b"abc") == 3
    path = tmp_path / "f.bin"
    path.write_bytes(b"12345")
    with open(path, "rb") as fh:
        fh.read(2)
        assert source_size(fh) == 3
    assert source_size(iter([b"a"])) is None


def test_source_size_uses_size_attribute():
    class Sized:
        size = 42

    assert source_size(Sized()) == 42
