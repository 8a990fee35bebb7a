from __future__ import annotations

import pytest

from sdsprobe.address import StorageAddress
from sdsprobe.errors import StorageError
from sdsprobe.scratch import ScratchAllocator
from sdsprobe.storage import LocalStorageClient, StorageClient


@pytest.fixture
def anyio_backend():
    return "asyncio"


class MemoryStorageClient(StorageClient):
    """Keeps objects in a dict and records every call it receives.

    `failures` maps an operation name to the error it raises, `lies` forces
    the result of the n-th `exists` call.
    """

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, BaseException] = {}
        self.lies: dict[int, bool] = {}
        self._exists_calls = 0

    def _record(self, operation, address):
        self.calls.append((operation, str(address)))
        if operation in self.failures:
            raise self.failures[operation]

    @property
    def operations(self):
        return [operation for operation, _ in self.calls]

    async def exists(self, address):
        self._record("exists", address)
        self._exists_calls += 1
        if self._exists_calls in self.lies:
            return self.lies[self._exists_calls]
        return str(address) in self.objects

    async def upload_file(self, address, local_path):
        self._record("upload_file", address)
        with open(local_path, "rb") as file:
            self.objects[str(address)] = file.read()

    async def download_to_file(self, address, local_path):
        self._record("download_to_file", address)
        if str(address) not in self.objects:
            raise StorageError(420, "not found")
        with open(local_path, "wb") as file:
            file.write(self.objects[str(address)])

    async def delete(self, address):
        self._record("delete", address)
        if self.objects.pop(str(address), None) is None:
            raise StorageError(420, "not found")


@pytest.fixture
def memory_client():
    return MemoryStorageClient()


@pytest.fixture
def address():
    return StorageAddress.parse("ns1/accountA/containerB/obj1")


@pytest.fixture
def hello_file(tmp_path):
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello")
    return path


@pytest.fixture
def scratch_dir(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def scratch(scratch_dir):
    return ScratchAllocator(scratch_dir)


@pytest.fixture
def local_client(tmp_path):
    client = LocalStorageClient(tmp_path / "store", "ns1")
    client.init()
    return client
