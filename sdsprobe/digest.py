from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

import anyio
from blake3 import blake3

from sdsprobe._utils import AsyncFileReader, block_size
from sdsprobe.errors import ConfigurationInvalid

DIGEST_SIZE = 20  # 160 bits

PathLikeArg = str | os.PathLike[str]


class DigestAlgorithm(str, Enum):
    """160-bit hash functions available to compute a `ContentDigest`."""

    SHA1 = "sha1"
    BLAKE3 = "blake3"


@dataclass(frozen=True)
class ContentDigest:
    """Hash of a file's full content.

    Attributes:
        algorithm: Name of the hash function that produced `value`
        value: Raw digest bytes
    """

    algorithm: str
    value: bytes

    @property
    def hexdigest(self) -> str:
        return self.value.hex()

    @property
    def bit_length(self) -> int:
        return len(self.value) * 8

    def __bytes__(self) -> bytes:
        return self.value

    def __len__(self) -> int:
        return len(self.value)


class _Blake3Hasher:
    """Adapts `blake3` to the hashlib interface with a 160-bit output."""

    def __init__(self, max_threads: int = 1) -> None:
        self._hasher = blake3(max_threads=max_threads)

    def update(self, data: bytes) -> None:
        self._hasher.update(data)

    def digest(self) -> bytes:
        return self._hasher.digest(length=DIGEST_SIZE)


def new_hasher(algorithm: DigestAlgorithm | str, size_hint: int | None = None) -> Any:
    """Return an incremental hasher exposing `update()` and `digest()`."""
    try:
        algorithm = DigestAlgorithm(algorithm)
    except ValueError:
        raise ConfigurationInvalid(f"Unknown digest algorithm {algorithm!r}") from None

    if algorithm is DigestAlgorithm.BLAKE3:
        if size_hint is None or size_hint > 1.5 * 1024 * 1024:  # > 1.5 MiB
            return _Blake3Hasher(max_threads=blake3.AUTO)
        return _Blake3Hasher()
    return hashlib.sha1()


def digest_bytes(
    data: bytes, algorithm: DigestAlgorithm | str = DigestAlgorithm.SHA1
) -> ContentDigest:
    """Digest of in-memory `data`."""
    hasher = new_hasher(algorithm, len(data))
    hasher.update(data)
    return ContentDigest(DigestAlgorithm(algorithm).value, hasher.digest())


async def compute_digest(
    source: AsyncFileReader | PathLikeArg | anyio.Path,
    algorithm: DigestAlgorithm | str = DigestAlgorithm.SHA1,
    chunk_size: int | None = None,
) -> ContentDigest:
    """Hash the whole content of `source`, one chunk at a time.

    The result only depends on the bytes of the file, never on `chunk_size`.

    Parameters:
        source: File to hash
        algorithm: Hash function to use
        chunk_size: Bytes read per iteration. Defaults to a block-aligned size
            picked from the file's size.

    Raises:
        ConfigurationInvalid: If `algorithm` is unknown or `chunk_size` isn't
            positive.
        OSError: If the file can't be read.
    """
    if not isinstance(source, AsyncFileReader):
        source = AsyncFileReader(anyio.Path(source))

    if chunk_size is not None and chunk_size <= 0:
        raise ConfigurationInvalid("chunk_size must be positive")

    file_size = None
    try:
        file_size = (await source.source_path.stat()).st_size
    except OSError:
        # reading below raises the real error
        pass

    if chunk_size is None:
        blksize = await block_size(source.source_path)
        if not file_size or file_size > 1.5 * 1024 * 1024:
            # block-aligned size closest to 32MiB
            chunk_size = (32 * 1024 * 1024 // blksize) * blksize
        else:
            chunk_size = blksize

    hasher = new_hasher(algorithm, file_size)
    async for data in source.read(chunk_size):
        hasher.update(data)

    return ContentDigest(DigestAlgorithm(algorithm).value, hasher.digest())
