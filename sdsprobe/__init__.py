# -*- coding: utf-8 -*-
"""sdsprobe verifies an object storage service from the client side. What does
that mean? Simply, that it takes a local file through the whole lifecycle of
a stored object and reports the first step that misbehaves:

- The object is absent before the test starts.
- It can be uploaded, and is present right after.
- It can be downloaded back, then deleted.

The same roundtrip also runs in an *autocontainer*, a container whose name is
computed from the file's content hash instead of being chosen by the caller.
"""

from .address import StorageAddress
from .autocontainer import AutocontainerConfig, derive_container
from .digest import ContentDigest, DigestAlgorithm, compute_digest
from .roundtrip import (
    RoundtripResult,
    RoundtripStep,
    RoundtripVerifier,
    VerificationOutcome,
    verify,
)
from .storage import LocalStorageClient, StorageClient

__all__ = (
    "AutocontainerConfig",
    "ContentDigest",
    "DigestAlgorithm",
    "LocalStorageClient",
    "RoundtripResult",
    "RoundtripStep",
    "RoundtripVerifier",
    "StorageAddress",
    "StorageClient",
    "VerificationOutcome",
    "compute_digest",
    "derive_container",
    "verify",
)
