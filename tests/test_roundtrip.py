import logging

import pytest

from sdsprobe.address import StorageAddress
from sdsprobe.autocontainer import AutocontainerConfig
from sdsprobe.errors import (
    AddressInvalid,
    CollaboratorFailure,
    ConfigurationInvalid,
    PostconditionViolated,
    PreconditionViolated,
    StorageError,
)
from sdsprobe.roundtrip import (
    RoundtripStep,
    RoundtripVerifier,
    VerificationOutcome,
    verify,
)
from sdsprobe.scratch import ScratchAllocator

pytestmark = pytest.mark.anyio

FULL_ROUNDTRIP = ["exists", "upload_file", "exists", "download_to_file", "delete"]


def scratch_files(scratch_dir):
    if not scratch_dir.exists():
        return []
    return list(scratch_dir.iterdir())


async def test_success(memory_client, address, hello_file, scratch, scratch_dir):
    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.ok
    assert result.outcome is VerificationOutcome.SUCCESS
    assert result.step is RoundtripStep.DONE
    assert result.error is None
    assert memory_client.operations == FULL_ROUNDTRIP
    assert not await memory_client.exists(address)
    assert scratch_files(scratch_dir) == []
    result.raise_for_outcome()


async def test_success_logs_each_step(
    memory_client, address, hello_file, scratch, caplog
):
    caplog.set_level(logging.INFO, logger="sdsprobe")
    await RoundtripVerifier(memory_client, scratch).verify(address, hello_file)

    messages = [record.getMessage() for record in caplog.records]
    assert "Content absent as expected" in messages
    assert "Content uploaded" in messages
    assert "Content present as expected" in messages
    assert "Content removed" in messages


async def test_already_present(memory_client, address, hello_file, scratch):
    memory_client.objects[str(address)] = b"left over"

    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.outcome is VerificationOutcome.UNEXPECTEDLY_PRESENT
    assert result.step is RoundtripStep.CHECK_ABSENT
    assert isinstance(result.error, PreconditionViolated)
    assert memory_client.operations == ["exists"]
    assert memory_client.objects[str(address)] == b"left over"
    with pytest.raises(PreconditionViolated):
        result.raise_for_outcome()


async def test_partial_address_makes_no_call(memory_client, hello_file, scratch):
    address = StorageAddress.parse("ns1/accountA")

    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.outcome is VerificationOutcome.ADDRESS_INVALID
    assert result.step is RoundtripStep.VALIDATE
    assert isinstance(result.error, AddressInvalid)
    assert memory_client.calls == []


async def test_existence_check_failure(memory_client, address, hello_file, scratch):
    memory_client.failures["exists"] = StorageError(503, "service unavailable")

    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.outcome is VerificationOutcome.EXISTENCE_CHECK_FAILED
    assert result.step is RoundtripStep.CHECK_ABSENT
    assert isinstance(result.error, CollaboratorFailure)
    assert result.error.step == "check_absent"
    assert result.error.code == 503
    assert result.error.message == "service unavailable"
    assert result.error.__cause__ is memory_client.failures["exists"]
    assert memory_client.operations == ["exists"]


async def test_upload_failure(
    memory_client, address, hello_file, scratch, scratch_dir
):
    memory_client.failures["upload_file"] = StorageError(0, "connection reset")

    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.outcome is VerificationOutcome.UPLOAD_FAILED
    assert result.step is RoundtripStep.UPLOAD
    assert result.error.message == "connection reset"
    assert memory_client.operations == ["exists", "upload_file"]
    assert scratch_files(scratch_dir) == []


async def test_upload_of_missing_file(memory_client, address, tmp_path, scratch):
    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, tmp_path / "missing.txt"
    )

    assert result.outcome is VerificationOutcome.UPLOAD_FAILED
    assert isinstance(result.error.cause, FileNotFoundError)


async def test_absent_after_upload(memory_client, address, hello_file, scratch):
    memory_client.lies[2] = False

    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.outcome is VerificationOutcome.UNEXPECTEDLY_ABSENT
    assert result.step is RoundtripStep.CHECK_PRESENT
    assert isinstance(result.error, PostconditionViolated)
    assert memory_client.operations == ["exists", "upload_file", "exists"]


async def test_second_existence_check_failure(
    memory_client, address, hello_file, scratch
):
    class FailingSecondCheck(type(memory_client)):
        async def exists(self, address):
            if self.operations.count("exists") == 1:
                raise StorageError(500, "meta2 down")
            return await super().exists(address)

    client = FailingSecondCheck()
    result = await RoundtripVerifier(client, scratch).verify(address, hello_file)

    assert result.outcome is VerificationOutcome.EXISTENCE_CHECK_FAILED
    assert result.step is RoundtripStep.CHECK_PRESENT
    assert result.error.code == 500


async def test_download_failure_releases_scratch(
    memory_client, address, hello_file, scratch, scratch_dir
):
    class PartialDownload(type(memory_client)):
        async def download_to_file(self, address, local_path):
            self._record("download_to_file", address)
            with open(local_path, "wb") as file:
                file.write(b"hel")
            raise StorageError(0, "truncated")

    client = PartialDownload()
    result = await RoundtripVerifier(client, scratch).verify(address, hello_file)

    assert result.outcome is VerificationOutcome.DOWNLOAD_FAILED
    assert result.step is RoundtripStep.DOWNLOAD
    assert client.operations == ["exists", "upload_file", "exists", "download_to_file"]
    assert scratch_files(scratch_dir) == []


async def test_delete_failure_releases_scratch(
    memory_client, address, hello_file, scratch, scratch_dir
):
    memory_client.failures["delete"] = StorageError(403, "forbidden")

    result = await RoundtripVerifier(memory_client, scratch).verify(
        address, hello_file
    )

    assert result.outcome is VerificationOutcome.DELETE_FAILED
    assert result.step is RoundtripStep.DELETE
    assert result.error.code == 403
    assert scratch_files(scratch_dir) == []


async def test_scratch_failure_is_a_download_failure(
    memory_client, address, hello_file, tmp_path
):
    not_a_dir = tmp_path / "not_a_dir"
    not_a_dir.write_text("regular file")

    result = await RoundtripVerifier(
        memory_client, ScratchAllocator(not_a_dir)
    ).verify(address, hello_file)

    assert result.outcome is VerificationOutcome.DOWNLOAD_FAILED
    assert result.step is RoundtripStep.DOWNLOAD
    assert isinstance(result.error, CollaboratorFailure)
    assert isinstance(result.error.cause, FileExistsError)
    assert memory_client.operations == ["exists", "upload_file", "exists"]


async def test_unexpected_errors_propagate(
    memory_client, address, hello_file, scratch, scratch_dir
):
    memory_client.failures["delete"] = RuntimeError("bug")

    with pytest.raises(RuntimeError):
        await RoundtripVerifier(memory_client, scratch).verify(address, hello_file)
    assert scratch_files(scratch_dir) == []


async def test_scratch_names_are_injected(memory_client, address, hello_file, tmp_path):
    names = iter(["first", "second"])
    seen = []

    class RecordingClient(type(memory_client)):
        async def download_to_file(self, address, local_path):
            seen.append(local_path.name)
            await super().download_to_file(address, local_path)

    scratch = ScratchAllocator(
        tmp_path, name_generator=lambda: next(names), prefix="rt-"
    )
    verifier = RoundtripVerifier(RecordingClient(), scratch)
    assert (await verifier.verify(address, hello_file)).ok
    assert (await verifier.verify(address, hello_file)).ok
    assert seen == ["rt-first", "rt-second"]


async def test_verify_shortcut(memory_client, address, hello_file, scratch):
    assert (await verify(memory_client, address, hello_file, scratch)).ok


async def test_autocontainer(memory_client, address, hello_file, scratch):
    verifier = RoundtripVerifier(memory_client, scratch)

    first = await verifier.verify_autocontainer(address, hello_file)
    second = await verifier.verify_autocontainer(address, hello_file)

    assert first.ok and second.ok
    assert first.address == StorageAddress("ns1", "accountA", "AAF48", "obj1")
    assert second.address == first.address
    assert address.container == "containerB"
    assert memory_client.calls[0] == ("exists", "ns1/accountA/AAF48/obj1")


async def test_autocontainer_other_bits(memory_client, address, hello_file, scratch):
    result = await RoundtripVerifier(memory_client, scratch).verify_autocontainer(
        address, hello_file, AutocontainerConfig(dst_bits=8)
    )
    assert result.address.container == "AA"


async def test_autocontainer_bad_config(memory_client, address, hello_file, scratch):
    result = await RoundtripVerifier(memory_client, scratch).verify_autocontainer(
        address, hello_file, AutocontainerConfig(dst_bits=0)
    )

    assert result.outcome is VerificationOutcome.CONFIGURATION_INVALID
    assert result.step is RoundtripStep.CHECKSUM
    assert isinstance(result.error, ConfigurationInvalid)
    assert memory_client.calls == []


async def test_autocontainer_unreadable_file(memory_client, address, tmp_path, scratch):
    result = await RoundtripVerifier(memory_client, scratch).verify_autocontainer(
        address, tmp_path / "missing.txt"
    )

    assert result.outcome is VerificationOutcome.CHECKSUM_FAILED
    assert isinstance(result.error.cause, FileNotFoundError)
    assert memory_client.calls == []


async def test_roundtrip_on_local_store(local_client, address, hello_file, scratch):
    verifier = RoundtripVerifier(local_client, scratch)

    assert (await verifier.verify(address, hello_file)).ok
    assert (await verifier.verify_autocontainer(address, hello_file)).ok
    assert not await local_client.exists(address)
    assert not await local_client.exists(address.with_container("AAF48"))
