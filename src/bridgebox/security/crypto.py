"""Streaming AEAD pipeline with compact binary header.

Header layout (binary, all big-endian):
- 4 bytes: magic b'BBX1'
- 1 byte: version (1)
- 1 byte: alg_id (1 = AESGCM)
- 4 bytes: record_size (plaintext bytes per record)
- 1 byte: len_nonce_seed (L)
- L bytes: nonce_seed (random per upload)

Body: sequence of records: 4-byte big-endian ciphertext length + ciphertext bytes.

Every record is AES-256-GCM sealed under the per-file key. The nonce is hashed
from the file IV, the nonce seed and the record index; the associated data
binds the record index and whether the record is the last one. A wrong key,
flipped byte, reordered record, dropped tail or appended garbage therefore all
fail authentication and raise IntegrityError. An empty plaintext still yields
one empty final record.

Both directions are async generators: they pull from the source lazily and
hold at most one record of plaintext in memory.
"""
import hashlib
import os
import struct
from typing import AsyncIterable, AsyncIterator, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from bridgebox.core.exceptions import IntegrityError
from bridgebox.core.streams import iter_source
from .kdf import FileKey


MAGIC = b"BBX1"
VERSION = 1
ALG_ID_AESGCM = 1
RECORD_SIZE = 64 * 1024
SEED_LEN = 16
TAG_LEN = 16
LEN_PREFIX = 4
HEADER_FIXED = len(MAGIC) + 1 + 1 + 4 + 1


def header_size(seed_len: int = SEED_LEN) -> int:
    return HEADER_FIXED + seed_len


def ciphertext_size(plaintext_len: int, record_size: int = RECORD_SIZE) -> int:
    """Exact encrypted length of ``plaintext_len`` bytes, header included."""
    records = max(1, -(-plaintext_len // record_size))
    return header_size() + records * (LEN_PREFIX + TAG_LEN) + plaintext_len


def _make_nonce(iv: bytes, seed: bytes, index: int) -> bytes:
    # Produce a 12-byte nonce by hashing iv||seed||index and taking first 12 bytes.
    h = hashlib.sha256()
    h.update(iv)
    h.update(seed)
    h.update(index.to_bytes(8, "big"))
    return h.digest()[:12]


def _associated_data(index: int, final: bool) -> bytes:
    return b"bbx:" + index.to_bytes(8, "big") + (b"\x01" if final else b"\x00")


def _build_header(record_size: int, seed: bytes) -> bytes:
    header = bytearray()
    header += MAGIC
    header += struct.pack("B", VERSION)
    header += struct.pack("B", ALG_ID_AESGCM)
    header += struct.pack(">I", record_size)
    header += struct.pack("B", len(seed))
    header += seed
    return bytes(header)


async def encrypt_stream(
    source: AsyncIterable[bytes],
    file_key: FileKey,
    record_size: int = RECORD_SIZE,
    seed: Optional[bytes] = None,
) -> AsyncIterator[bytes]:
    """Encrypt an async byte stream; yields the header and then sealed records."""
    if record_size <= 0:
        raise ValueError("record_size must be positive")
    seed = seed if seed is not None else os.urandom(SEED_LEN)
    aead = AESGCM(file_key.key)

    def seal(index: int, plaintext: bytes, final: bool) -> bytes:
        nonce = _make_nonce(file_key.iv, seed, index)
        ct = aead.encrypt(nonce, plaintext, _associated_data(index, final))
        return struct.pack(">I", len(ct)) + ct

    yield _build_header(record_size, seed)

    buf = bytearray()
    index = 0
    async for chunk in iter_source(source):
        buf += chunk
        # keep the last full record back until we know whether more data follows
        while len(buf) > record_size:
            record = bytes(buf[:record_size])
            del buf[:record_size]
            yield seal(index, record, final=False)
            index += 1
    yield seal(index, bytes(buf), final=True)


class _RecordReader:
    """Incremental parser for the header and length-prefixed records."""

    def __init__(self):
        self.buf = bytearray()
        self.seed: Optional[bytes] = None
        self.record_size = 0

    def feed(self, data: bytes) -> None:
        self.buf += data

    def read_header(self) -> bool:
        if len(self.buf) < HEADER_FIXED:
            return False
        if bytes(self.buf[:4]) != MAGIC:
            raise IntegrityError("Invalid stream format (magic mismatch)")
        version, alg = self.buf[4], self.buf[5]
        if version != VERSION:
            raise IntegrityError(f"Unsupported version {version}")
        if alg != ALG_ID_AESGCM:
            raise IntegrityError(f"Unsupported algorithm {alg}")
        (record_size,) = struct.unpack(">I", bytes(self.buf[6:10]))
        seed_len = self.buf[10]
        if len(self.buf) < HEADER_FIXED + seed_len:
            return False
        if record_size == 0:
            raise IntegrityError("Invalid record size 0")
        self.record_size = record_size
        self.seed = bytes(self.buf[HEADER_FIXED:HEADER_FIXED + seed_len])
        del self.buf[:HEADER_FIXED + seed_len]
        return True

    def next_record(self) -> Optional[bytes]:
        if len(self.buf) < LEN_PREFIX:
            return None
        (ct_len,) = struct.unpack(">I", bytes(self.buf[:LEN_PREFIX]))
        if ct_len < TAG_LEN or ct_len > self.record_size + TAG_LEN:
            raise IntegrityError(f"Invalid record length {ct_len}")
        if len(self.buf) < LEN_PREFIX + ct_len:
            return None
        ct = bytes(self.buf[LEN_PREFIX:LEN_PREFIX + ct_len])
        del self.buf[:LEN_PREFIX + ct_len]
        return ct


async def decrypt_stream(source: AsyncIterable[bytes], file_key: FileKey) -> AsyncIterator[bytes]:
    """Decrypt a stream produced by :func:`encrypt_stream`; yields plaintext chunks."""
    aead = AESGCM(file_key.key)
    reader = _RecordReader()
    have_header = False
    pending: Optional[bytes] = None
    index = 0

    def open_record(ct: bytes, final: bool) -> bytes:
        nonce = _make_nonce(file_key.iv, reader.seed, index)
        try:
            return aead.decrypt(nonce, ct, _associated_data(index, final))
        except InvalidTag as e:
            raise IntegrityError(
                f"record {index} failed authentication (wrong key, corrupt or truncated data)"
            ) from e

    async for chunk in iter_source(source):
        reader.feed(chunk)
        if not have_header:
            have_header = reader.read_header()
            if not have_header:
                continue
        while True:
            ct = reader.next_record()
            if ct is None:
                break
            if pending is not None:
                # a record follows, so the pending one is not the last
                yield open_record(pending, final=False)
                index += 1
            pending = ct

    if not have_header:
        raise IntegrityError("truncated header")
    if reader.buf:
        raise IntegrityError("truncated ciphertext")
    if pending is None:
        raise IntegrityError("stream has no records")
    yield open_record(pending, final=True)
