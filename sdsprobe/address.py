from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from sdsprobe.errors import AddressInvalid

FIELDS = ("namespace", "account", "container", "path")


@dataclass(frozen=True)
class StorageAddress:
    """Locator of a single object in the storage service.

    The textual form is `NS/ACCOUNT/CONTAINER/PATH`, where the path may itself
    contain slashes. Missing components are `None`.

    Attributes:
        namespace: Storage namespace (cluster) name
        account: Account owning the container
        container: Container, also called *user*, holding the object
        path: Object name inside the container
    """

    namespace: str | None = None
    account: str | None = None
    container: str | None = None
    path: str | None = None

    @classmethod
    def parse(cls, text: str) -> StorageAddress:
        """Build an address from its textual form.

        A partial address (e.g. `NS/ACCOUNT`) is accepted, use
        [`is_fully_qualified`][sdsprobe.address.StorageAddress.is_fully_qualified]
        to check it before use.

        Raises:
            AddressInvalid: If `text` is empty or holds no component at all.
        """
        if not text or not text.strip("/"):
            raise AddressInvalid(f"Invalid URL [{text}]")

        parts = text.lstrip("/").split("/", 3)
        parts += [""] * (len(FIELDS) - len(parts))
        return cls(*(part or None for part in parts))

    @property
    def is_fully_qualified(self) -> bool:
        return not self.missing_fields()

    def missing_fields(self) -> list[str]:
        """Return the names of the components absent from this address."""
        return [name for name in FIELDS if not getattr(self, name)]

    def has(self, name: str) -> bool:
        if name not in FIELDS:
            raise ValueError(f"Unknown address field {name}")
        return bool(getattr(self, name))

    def with_container(self, container: str) -> StorageAddress:
        """Return a copy of this address pointing into `container`."""
        if not container:
            raise AddressInvalid("Container name can't be empty")
        return dataclasses.replace(self, container=container)

    def require_fully_qualified(self) -> None:
        missing = self.missing_fields()
        if missing:
            raise AddressInvalid(
                f"Partial URL [{self.whole}]: missing {', '.join(missing)}"
            )

    @property
    def whole(self) -> str:
        return "/".join(getattr(self, name) or "" for name in FIELDS)

    def __str__(self) -> str:
        return self.whole
