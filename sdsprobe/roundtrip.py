from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum

from sdsprobe.address import StorageAddress
from sdsprobe.autocontainer import AutocontainerConfig
from sdsprobe.digest import DigestAlgorithm, compute_digest
from sdsprobe.errors import (
    AddressInvalid,
    CollaboratorFailure,
    ConfigurationInvalid,
    PostconditionViolated,
    PreconditionViolated,
    SdsProbeError,
    StorageError,
)
from sdsprobe.scratch import ScratchAllocator
from sdsprobe.storage import StorageClient

logger = logging.getLogger(__name__)

PathLikeArg = str | os.PathLike[str]

# storage client failures are reported, anything else is a bug and propagates
_COLLABORATOR_ERRORS = (StorageError, OSError)


class RoundtripStep(str, Enum):
    """Steps of a roundtrip, in the order they run."""

    VALIDATE = "validate"
    CHECKSUM = "checksum"
    CHECK_ABSENT = "check_absent"
    UPLOAD = "upload"
    CHECK_PRESENT = "check_present"
    DOWNLOAD = "download"
    DELETE = "delete"
    DONE = "done"


class VerificationOutcome(str, Enum):
    """How a roundtrip ended."""

    SUCCESS = "SUCCESS"
    ADDRESS_INVALID = "ADDRESS_INVALID"
    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    CHECKSUM_FAILED = "CHECKSUM_FAILED"
    EXISTENCE_CHECK_FAILED = "EXISTENCE_CHECK_FAILED"
    UNEXPECTEDLY_PRESENT = "UNEXPECTEDLY_PRESENT"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    UNEXPECTEDLY_ABSENT = "UNEXPECTEDLY_ABSENT"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    DELETE_FAILED = "DELETE_FAILED"


@dataclass(frozen=True)
class RoundtripResult:
    """Result of a single roundtrip.

    Attributes:
        outcome: How the roundtrip ended
        step: Step the roundtrip ended on, `DONE` on success
        address: Address the roundtrip ran against
        error: Error of the failing step, `None` on success
    """

    outcome: VerificationOutcome
    step: RoundtripStep
    address: StorageAddress
    error: SdsProbeError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is VerificationOutcome.SUCCESS

    def raise_for_outcome(self) -> None:
        """Raise the carried error, if any."""
        if self.error is not None:
            raise self.error


class _StepFailed(Exception):
    def __init__(self, result: RoundtripResult) -> None:
        super().__init__(result.outcome.value)
        self.result = result


class RoundtripVerifier:
    """Checks the lifecycle of one object against a storage client.

    A roundtrip checks the object is absent, uploads it, checks it is present,
    downloads it to a local scratch file and finally deletes it. Each step
    waits for the previous one to complete and the first failure ends the run.
    Nothing is retried.

    Args:
        client: Storage client performing the operations
        scratch: Allocator of the local file the object is downloaded to.
            Defaults to uniquely named files in the system temporary directory.
    """

    def __init__(
        self, client: StorageClient, scratch: ScratchAllocator | None = None
    ) -> None:
        self._client = client
        self._scratch = scratch or ScratchAllocator()

    async def verify(
        self, address: StorageAddress, source_path: PathLikeArg
    ) -> RoundtripResult:
        """Run a roundtrip of the content of `source_path` through `address`.

        The object must not exist at `address` beforehand. On success it has
        been deleted again, though its absence is not checked afterwards.

        Returns:
            RoundtripResult: `SUCCESS`, or the outcome of the failing step.
        """
        try:
            address.require_fully_qualified()
        except AddressInvalid as err:
            return self._failed(
                RoundtripStep.VALIDATE,
                VerificationOutcome.ADDRESS_INVALID,
                address,
                err,
            )

        try:
            await self._run(address, source_path)
        except _StepFailed as failure:
            return failure.result

        return RoundtripResult(VerificationOutcome.SUCCESS, RoundtripStep.DONE, address)

    async def verify_autocontainer(
        self,
        address: StorageAddress,
        source_path: PathLikeArg,
        config: AutocontainerConfig = AutocontainerConfig(),
        algorithm: DigestAlgorithm | str = DigestAlgorithm.SHA1,
    ) -> RoundtripResult:
        """Run a roundtrip in the container computed from the content's digest.

        `address` keeps its namespace, account and path, only the container is
        replaced, on a copy.
        """
        try:
            digest = await compute_digest(source_path, algorithm)
            container = config.derive(digest)
        except OSError as err:
            return self._failed(
                RoundtripStep.CHECKSUM,
                VerificationOutcome.CHECKSUM_FAILED,
                address,
                CollaboratorFailure(RoundtripStep.CHECKSUM.value, err),
            )
        except ConfigurationInvalid as err:
            return self._failed(
                RoundtripStep.CHECKSUM,
                VerificationOutcome.CONFIGURATION_INVALID,
                address,
                err,
            )

        logger.info(
            "Autocontainer %s from %s %s (%d bits)",
            container,
            digest.algorithm,
            digest.hexdigest,
            config.dst_bits,
        )
        return await self.verify(address.with_container(container), source_path)

    async def _run(self, address: StorageAddress, source_path: PathLikeArg) -> None:
        logger.info("Roundtrip on local(%s) distant(%s)", source_path, address)

        has = await self._call(
            RoundtripStep.CHECK_ABSENT, address, self._client.exists(address)
        )
        if has:
            raise _StepFailed(
                self._failed(
                    RoundtripStep.CHECK_ABSENT,
                    VerificationOutcome.UNEXPECTEDLY_PRESENT,
                    address,
                    PreconditionViolated(f"Content {address} already present"),
                )
            )
        logger.info("Content absent as expected")

        await self._call(
            RoundtripStep.UPLOAD,
            address,
            self._client.upload_file(address, source_path),
        )
        logger.info("Content uploaded")

        has = await self._call(
            RoundtripStep.CHECK_PRESENT, address, self._client.exists(address)
        )
        if not has:
            raise _StepFailed(
                self._failed(
                    RoundtripStep.CHECK_PRESENT,
                    VerificationOutcome.UNEXPECTEDLY_ABSENT,
                    address,
                    PostconditionViolated(f"Content {address} not present"),
                )
            )
        logger.info("Content present as expected")

        # creating and removing the scratch file belong to the download step
        try:
            async with self._scratch.allocate() as scratch_path:
                await self._call(
                    RoundtripStep.DOWNLOAD,
                    address,
                    self._client.download_to_file(address, scratch_path),
                )
                logger.info("Content downloaded to %s", scratch_path)

                await self._call(
                    RoundtripStep.DELETE, address, self._client.delete(address)
                )
                logger.info("Content removed")
        except _COLLABORATOR_ERRORS as err:
            raise _StepFailed(
                self._failed(
                    RoundtripStep.DOWNLOAD,
                    VerificationOutcome.DOWNLOAD_FAILED,
                    address,
                    CollaboratorFailure(RoundtripStep.DOWNLOAD.value, err),
                )
            ) from err

    async def _call(self, step: RoundtripStep, address: StorageAddress, operation):
        try:
            return await operation
        except _COLLABORATOR_ERRORS as err:
            raise _StepFailed(
                self._failed(
                    step,
                    _COLLABORATOR_OUTCOMES[step],
                    address,
                    CollaboratorFailure(step.value, err),
                )
            ) from err

    @staticmethod
    def _failed(
        step: RoundtripStep,
        outcome: VerificationOutcome,
        address: StorageAddress,
        error: SdsProbeError,
    ) -> RoundtripResult:
        if isinstance(error, CollaboratorFailure):
            logger.error(
                "%s error on %s: (%d) %s",
                step.value,
                address,
                error.code,
                error.message,
            )
        else:
            logger.error("%s error on %s: %s", step.value, address, error)
        return RoundtripResult(outcome, step, address, error)


_COLLABORATOR_OUTCOMES = {
    RoundtripStep.CHECK_ABSENT: VerificationOutcome.EXISTENCE_CHECK_FAILED,
    RoundtripStep.UPLOAD: VerificationOutcome.UPLOAD_FAILED,
    RoundtripStep.CHECK_PRESENT: VerificationOutcome.EXISTENCE_CHECK_FAILED,
    RoundtripStep.DOWNLOAD: VerificationOutcome.DOWNLOAD_FAILED,
    RoundtripStep.DELETE: VerificationOutcome.DELETE_FAILED,
}


async def verify(
    client: StorageClient,
    address: StorageAddress,
    source_path: PathLikeArg,
    scratch: ScratchAllocator | None = None,
) -> RoundtripResult:
    """Shortcut for `RoundtripVerifier(client, scratch).verify(...)`."""
    return await RoundtripVerifier(client, scratch).verify(address, source_path)
