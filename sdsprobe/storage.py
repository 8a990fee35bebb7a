from __future__ import annotations

import hashlib
import json
import os
import pathlib
from abc import ABC, abstractmethod

import anyio

from sdsprobe._utils import TeeAsyncFileReader, block_size, shard
from sdsprobe.address import StorageAddress
from sdsprobe.errors import ConfigurationInvalid, StorageError

PathLikeArg = str | os.PathLike[str]

CODE_BAD_REQUEST = 400
CODE_NAMESPACE_NOT_MANAGED = 418
CODE_CONTENT_NOT_FOUND = 420
CODE_CONTENT_EXISTS = 421
CODE_CORRUPTED = 500

CONFIG_FILE_NAME = ".sdsprobe_conf.json"
META_SUFFIX = ".meta"


class StorageClient(ABC):
    """Operations of the storage service used by the roundtrip verifier.

    Each operation either completes or raises
    [`StorageError`][sdsprobe.errors.StorageError]. Implementations are not
    required to be safe for concurrent use.
    """

    @abstractmethod
    async def exists(self, address: StorageAddress) -> bool:
        pass

    @abstractmethod
    async def upload_file(
        self, address: StorageAddress, local_path: PathLikeArg
    ) -> None:
        pass

    @abstractmethod
    async def download_to_file(
        self, address: StorageAddress, local_path: PathLikeArg
    ) -> None:
        pass

    @abstractmethod
    async def delete(self, address: StorageAddress) -> None:
        pass


class LocalStorageClient(StorageClient):
    """Storage client keeping the objects of one namespace in a local directory.

    Objects are stored under `root/NS/ACCOUNT/CONTAINER/`, in a file named
    after the SHA-1 of the object path and sharded into `prefix_depth`
    subdirectories of `prefix_width` characters each. A sidecar file holds the
    object path and the hash of its content, checked on every download.

    If a store was already initialized in `root`, its config is loaded from the
    file saved on init. Otherwise a call to
    [`init()`][sdsprobe.storage.LocalStorageClient.init] is required, unless
    `autocreate` is set.

    Parameters:
        root: **Absolute** directory path used as root of storage space
        namespace: The only namespace this client serves
        autocreate: Initialize a store with default settings when none is found
    """

    def __init__(self, root: PathLikeArg, namespace: str, autocreate: bool = False):
        sync_root = pathlib.Path(root)
        if not sync_root.is_absolute():
            raise ValueError("Store root must be an absolute path")
        self._root = anyio.Path(sync_root.resolve())

        if not namespace:
            raise ValueError("A namespace is required")
        self._namespace = namespace

        self._is_initialized = False

        try:
            self._import_config()
            self._is_initialized = True
        except FileNotFoundError:
            if autocreate:
                self.init()

    def init(
        self,
        prefix_depth: int = 1,
        prefix_width: int = 2,
        fmode: int = 0o400,
        dmode: int = 0o700,
    ) -> None:
        """Initialize a new store in `root`, which must either be an empty or
        non-existent directory.

        Parameters:
            prefix_depth: Number of prefix folders to create when saving an
                object.
            prefix_width: Width of each prefix folder.
            fmode: File mode set on stored objects. The default `0o400` lets
                only the owner read them.
            dmode: Directory mode set on created subdirectories.
        """
        sync_root = pathlib.Path(self._root)
        sync_root.mkdir(parents=True, exist_ok=True)

        for _ in sync_root.iterdir():
            raise FileExistsError(
                "Store directory must be empty for new store initialization"
            )

        pathlib.Path(self._scratch_path).mkdir(parents=True)

        self._set_config(
            prefix_depth=prefix_depth,
            prefix_width=prefix_width,
            fmode=fmode,
            dmode=dmode,
        )

        self._is_initialized = True

    @property
    def root(self) -> str:
        """The store's root directory path"""
        return str(self._root)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def is_initialized(self) -> bool:
        """`True` if points to an initialized store"""
        return self._is_initialized

    @property
    def prefix_depth(self) -> int:
        return self._prefix_depth

    @property
    def prefix_width(self) -> int:
        return self._prefix_width

    @property
    def fmode(self) -> int:
        return self._fmode

    @property
    def dmode(self) -> int:
        return self._dmode

    @property
    def _scratch_path(self) -> anyio.Path:
        return self._root.joinpath(".scratch")

    @property
    def _config_file(self) -> pathlib.Path:
        # initialization is sync
        return pathlib.Path(self._root.joinpath(CONFIG_FILE_NAME))

    def _import_config(self) -> None:
        if not self._config_file.is_file():
            raise FileNotFoundError("No config file found")

        try:
            config = json.loads(self._config_file.read_text())
            self._apply_config(
                prefix_depth=config["prefix_depth"],
                prefix_width=config["prefix_width"],
                fmode=config["fmode"],
                dmode=config["dmode"],
            )
        except (ValueError, KeyError, TypeError) as err:
            raise ConfigurationInvalid(
                f"Malformed store config {self._config_file}: {err}"
            ) from err

    def _apply_config(
        self, prefix_depth: int, prefix_width: int, fmode: int, dmode: int
    ) -> None:
        if prefix_depth < 0 or prefix_width < 0:
            raise ConfigurationInvalid("Prefix depth and width can't be negative")
        # the remainder of a 40 characters hexdigest must stay non-empty
        if prefix_depth * prefix_width >= 40:
            raise ConfigurationInvalid("Prefixes would consume the whole checksum")

        self._prefix_depth = prefix_depth
        self._prefix_width = prefix_width
        self._fmode = fmode
        self._dmode = dmode

    def _set_config(
        self, prefix_depth: int, prefix_width: int, fmode: int, dmode: int
    ) -> None:
        if self._config_file.exists():
            raise FileExistsError("Overwriting existing config may cause loss of data")

        if not pathlib.Path(self._root).is_dir():
            raise FileNotFoundError(f"{self._root} is not a directory")

        self._apply_config(prefix_depth, prefix_width, fmode, dmode)

        json_config = json.dumps(
            {
                "prefix_depth": self._prefix_depth,
                "prefix_width": self._prefix_width,
                "fmode": self._fmode,
                "dmode": self._dmode,
            }
        )
        self._config_file.write_text(json_config)

    def _object_path(self, address: StorageAddress) -> anyio.Path:
        """Build the file path of the object at `address`."""
        if not self._is_initialized:
            raise StorageError(CODE_BAD_REQUEST, f"Store {self._root} not initialized")
        if not address.is_fully_qualified:
            raise StorageError(CODE_BAD_REQUEST, f"Partial URL [{address}]")
        if address.namespace != self._namespace:
            raise StorageError(
                CODE_NAMESPACE_NOT_MANAGED,
                f"Namespace {address.namespace} not managed",
            )

        dirs = [address.namespace, address.account, address.container]
        if any(name in (".", "..") for name in dirs):
            raise StorageError(CODE_BAD_REQUEST, f"Invalid URL [{address}]")

        checksum = hashlib.sha1(str(address.path).encode("utf-8")).hexdigest()
        path_parts = shard(checksum, self._prefix_depth, self._prefix_width)
        return self._root.joinpath(*dirs, *path_parts)

    @staticmethod
    def _meta_path(object_path: anyio.Path) -> anyio.Path:
        return object_path.with_name(object_path.name + META_SUFFIX)

    async def exists(self, address: StorageAddress) -> bool:
        return await self._object_path(address).is_file()

    async def upload_file(
        self, address: StorageAddress, local_path: PathLikeArg
    ) -> None:
        """Store the content of `local_path` at `address`.

        Raises:
            StorageError: If an object already exists at `address`, or the
                source is not a file.
        """
        object_path = self._object_path(address)
        source_path = anyio.Path(local_path)

        if not await source_path.is_file():
            raise StorageError(CODE_BAD_REQUEST, f"{source_path} is not a file")
        if await object_path.is_file():
            raise StorageError(CODE_CONTENT_EXISTS, f"Content {address} already exists")

        await object_path.parent.mkdir(
            parents=True,
            mode=self._dmode,
            exist_ok=True,
        )

        checksum, size = await self._copy(
            TeeAsyncFileReader(source_path, object_path, self._scratch_path)
        )

        meta_path = self._meta_path(object_path)
        await meta_path.write_text(
            json.dumps({"path": address.path, "hash": checksum, "size": size})
        )
        await object_path.chmod(self._fmode)
        await meta_path.chmod(self._fmode)

    async def download_to_file(
        self, address: StorageAddress, local_path: PathLikeArg
    ) -> None:
        """Copy the object at `address` into `local_path`.

        Raises:
            StorageError: If no object exists at `address`, its metadata is
                unreadable, or its content no longer matches the hash recorded
                on upload.
        """
        object_path = self._object_path(address)
        if not await object_path.is_file():
            raise StorageError(CODE_CONTENT_NOT_FOUND, f"Content {address} not found")

        meta_path = self._meta_path(object_path)
        try:
            expected = json.loads(await meta_path.read_text())["hash"]
        except (OSError, ValueError, KeyError, TypeError) as err:
            raise StorageError(
                CODE_CORRUPTED, f"Content {address} has malformed metadata: {err}"
            ) from err

        dest_path = anyio.Path(local_path)
        checksum, _ = await self._copy(TeeAsyncFileReader(object_path, dest_path))

        if checksum != expected:
            await dest_path.unlink(missing_ok=True)
            raise StorageError(
                CODE_CORRUPTED,
                f"Content {address} corrupted: expected {expected}"
                f" but read {checksum}",
            )

    async def delete(self, address: StorageAddress) -> None:
        """Remove the object at `address`.

        Raises:
            StorageError: If no object exists at `address`.
        """
        object_path = self._object_path(address)
        if not await object_path.is_file():
            raise StorageError(CODE_CONTENT_NOT_FOUND, f"Content {address} not found")

        await object_path.unlink()
        await self._meta_path(object_path).unlink(missing_ok=True)

    async def _copy(self, reader: TeeAsyncFileReader) -> tuple[str, int]:
        hasher = hashlib.sha1()
        size = 0
        async for data in reader.read(await block_size(reader.source_path)):
            hasher.update(data)
            size += len(data)
        return hasher.hexdigest(), size

    def __contains__(self, address: StorageAddress) -> bool:
        """Return whether an object exists at `address`."""
        return pathlib.Path(self._object_path(address)).is_file()

    def __repr__(self) -> str:
        return f"LocalStorageClient(root={self.root!r}, namespace={self._namespace!r})"
