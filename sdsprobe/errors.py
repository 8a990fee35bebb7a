from __future__ import annotations


class SdsProbeError(Exception):
    """Base class of every error raised by `sdsprobe`."""


class AddressInvalid(SdsProbeError, ValueError):
    """The storage address can't be parsed or lacks a required component."""


class ConfigurationInvalid(SdsProbeError, ValueError):
    """A derivation parameter or client setting is out of range."""


class PreconditionViolated(SdsProbeError):
    """The object was present while its absence was expected."""


class PostconditionViolated(SdsProbeError):
    """The object was absent right after a successful mutating call."""


class StorageError(SdsProbeError):
    """Failure reported by a storage client.

    Attributes:
        code: Numeric status of the failure, as reported by the storage service
        message: Human readable description of the failure
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"({code}) {message}")
        self.code = code
        self.message = message


class CollaboratorFailure(SdsProbeError):
    """Error from the storage client or the local filesystem, tagged with the
    roundtrip step it happened in. The original error is kept as `__cause__`.
    """

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {self.message}")
        self.__cause__ = cause

    @property
    def code(self) -> int:
        if isinstance(self.cause, StorageError):
            return self.cause.code
        if isinstance(self.cause, OSError) and self.cause.errno is not None:
            return self.cause.errno
        return 0

    @property
    def message(self) -> str:
        if isinstance(self.cause, StorageError):
            return self.cause.message
        if isinstance(self.cause, OSError) and self.cause.strerror:
            return self.cause.strerror
        return str(self.cause)
