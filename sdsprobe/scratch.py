from __future__ import annotations

import os
import tempfile
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable
from uuid import uuid4

import anyio

NameGenerator = Callable[[], str]


def uuid_name() -> str:
    return uuid4().hex


class ScratchAllocator:
    """Hands out local scratch file paths that are removed once released.

    Every allocation asks `name_generator` for a fresh name, so two
    verifications sharing an allocator never share a scratch file.

    Args:
        directory: Where scratch files are created. Defaults to the system
            temporary directory.
        name_generator: Returns the unique part of each scratch file name
        prefix: Prepended to each generated name
    """

    def __init__(
        self,
        directory: str | os.PathLike[str] | None = None,
        name_generator: NameGenerator = uuid_name,
        prefix: str | None = None,
    ) -> None:
        self._directory = anyio.Path(directory or tempfile.gettempdir())
        self._name_generator = name_generator
        self._prefix = (
            prefix if prefix is not None else f"sdsprobe-roundtrip-{os.getpid()}-"
        )

    @property
    def directory(self) -> anyio.Path:
        return self._directory

    def path(self) -> anyio.Path:
        """Return a new scratch path. Nothing is created on disk."""
        return self._directory.joinpath(f"{self._prefix}{self._name_generator()}")

    @asynccontextmanager
    async def allocate(self) -> AsyncIterator[anyio.Path]:
        """Yield a scratch path, removing whatever sits there on exit."""
        await self._directory.mkdir(parents=True, exist_ok=True)
        scratch_path = self.path()
        try:
            yield scratch_path
        finally:
            await scratch_path.unlink(missing_ok=True)
