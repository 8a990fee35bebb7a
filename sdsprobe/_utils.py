from __future__ import annotations

import os
import tempfile
from typing import Any, AsyncGenerator

import anyio

DEFAULT_BLOCK_SIZE = 4096


def compact(items: list[Any]):
    """Return only truthy elements of `items`."""
    return [item for item in items if item]


def shard(checksum: str, prefix_depth: int, prefix_width: int) -> list[str]:
    # This creates a list of `prefix_depth` number of tokens with width
    # `prefix_width` from the first part of the checksum plus the remainder.
    if len(checksum) <= prefix_depth * prefix_width:
        raise ValueError("checksum must be larger prefix_depth * prefix_width")

    return compact(
        [
            checksum[i * prefix_width : prefix_width * (i + 1)]
            for i in range(prefix_depth)
        ]
        + [checksum[prefix_depth * prefix_width :]]
    )


async def block_size(path: anyio.Path) -> int:
    """Preferred I/O block size of the filesystem holding `path`."""
    try:
        return (await path.stat()).st_blksize or DEFAULT_BLOCK_SIZE
    except (OSError, AttributeError):
        # the read that follows reports missing files
        return DEFAULT_BLOCK_SIZE


class AsyncFileReader:
    def __init__(self, source: anyio.Path | AsyncFileReader) -> None:
        self._source = source

    @property
    def source_path(self) -> anyio.Path:
        if isinstance(self._source, anyio.Path):
            return self._source
        return self._source.source_path

    async def read(self, size: int = -1) -> AsyncGenerator[bytes, None]:
        if isinstance(self._source, anyio.Path):
            async with await self.source_path.open("rb") as file:
                while True:
                    data = await file.read(size)
                    if not data:
                        break
                    yield data
        else:
            async for data in self._source.read(size):
                yield data


class TeeAsyncFileReader(AsyncFileReader):
    """Reader copying everything it yields into `dest_path`.

    Data is written to a temporary file in `scratch_dir` (or next to
    `dest_path`) which is renamed onto `dest_path` once the source is
    exhausted, so a partial copy is never visible at the destination.
    """

    def __init__(
        self,
        source: anyio.Path | AsyncFileReader,
        dest_path: anyio.Path,
        scratch_dir: anyio.Path | None = None,
    ):
        super().__init__(source)
        self._destination_path = dest_path
        self._scratch_dir = scratch_dir

    @property
    def destination_path(self) -> anyio.Path:
        return self._destination_path

    async def read(self, size: int = -1) -> AsyncGenerator[bytes, None]:
        temp_dir = self._scratch_dir or self._destination_path.parent
        await temp_dir.mkdir(parents=True, exist_ok=True)
        temp_file = tempfile.NamedTemporaryFile(dir=str(temp_dir), delete=False)
        try:
            with temp_file:
                async_temp_file = anyio.wrap_file(temp_file)
                async for data in super().read(size):
                    await async_temp_file.write(data)
                    yield data
            os.replace(os.path.realpath(temp_file.name), str(self._destination_path))
        finally:
            await anyio.Path(temp_file.name).unlink(missing_ok=True)
