"""Command line driver: roundtrip a local file through a storage address, then
through the same address with a container computed from the file's content.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

import anyio

from sdsprobe.__meta__ import __version__
from sdsprobe.address import FIELDS, StorageAddress
from sdsprobe.autocontainer import DEFAULT_BITS, AutocontainerConfig
from sdsprobe.digest import DigestAlgorithm
from sdsprobe.errors import AddressInvalid
from sdsprobe.logging_setup import configure_logging
from sdsprobe.roundtrip import (
    RoundtripResult,
    RoundtripStep,
    RoundtripVerifier,
    VerificationOutcome,
)
from sdsprobe.scratch import ScratchAllocator
from sdsprobe.storage import LocalStorageClient

logger = logging.getLogger(__name__)

ROOT_ENV = "SDSPROBE_ROOT"

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_INVALID_URL = 2
EXIT_PARTIAL_URL = 3
EXIT_CLIENT_INIT = 4

_EXIT_CODES = {
    (RoundtripStep.VALIDATE, VerificationOutcome.ADDRESS_INVALID): EXIT_PARTIAL_URL,
    (RoundtripStep.CHECK_ABSENT, VerificationOutcome.EXISTENCE_CHECK_FAILED): 5,
    (RoundtripStep.CHECK_ABSENT, VerificationOutcome.UNEXPECTEDLY_PRESENT): 6,
    (RoundtripStep.UPLOAD, VerificationOutcome.UPLOAD_FAILED): 7,
    (RoundtripStep.CHECK_PRESENT, VerificationOutcome.EXISTENCE_CHECK_FAILED): 8,
    (RoundtripStep.CHECK_PRESENT, VerificationOutcome.UNEXPECTEDLY_ABSENT): 9,
    (RoundtripStep.DOWNLOAD, VerificationOutcome.DOWNLOAD_FAILED): 10,
    (RoundtripStep.DELETE, VerificationOutcome.DELETE_FAILED): 11,
    (RoundtripStep.CHECKSUM, VerificationOutcome.CHECKSUM_FAILED): 12,
    (RoundtripStep.CHECKSUM, VerificationOutcome.CONFIGURATION_INVALID): 13,
}


def exit_code(result: RoundtripResult) -> int:
    """Process exit status reporting `result`."""
    if result.ok:
        return EXIT_OK
    return _EXIT_CODES[(result.step, result.outcome)]


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def default_root() -> str:
    return os.path.abspath(
        os.path.expanduser(os.environ.get(ROOT_ENV) or "~/.sdsprobe")
    )


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="sdsprobe",
        description=(
            "Check that an object can be uploaded, found, downloaded and deleted,"
            " first at URL then in a container named after the file's content."
        ),
    )
    parser.add_argument("url", metavar="URL", help="NS/ACCOUNT/CONTAINER/PATH")
    parser.add_argument("path", metavar="PATH", help="local file to roundtrip")
    parser.add_argument(
        "--root",
        default=None,
        help=f"directory of the local store (default: ${ROOT_ENV} or ~/.sdsprobe)",
    )
    parser.add_argument(
        "--bits",
        type=int,
        default=DEFAULT_BITS,
        help="leading digest bits used for the autocontainer (default: %(default)s)",
    )
    parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="first digest byte considered for the autocontainer",
    )
    parser.add_argument(
        "--size",
        type=int,
        default=0,
        help="digest bytes considered for the autocontainer, 0 for all",
    )
    parser.add_argument(
        "--algorithm",
        choices=[algorithm.value for algorithm in DigestAlgorithm],
        default=DigestAlgorithm.SHA1.value,
        help="content hash function (default: %(default)s)",
    )
    parser.add_argument(
        "--scratch-dir",
        default=None,
        help="where downloaded copies are written (default: system temp dir)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="more logging, may be repeated",
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser


async def roundtrip(
    verifier: RoundtripVerifier,
    address: StorageAddress,
    source_path: str,
    config: AutocontainerConfig,
    algorithm: str,
) -> int:
    """Run the plain roundtrip, then the autocontainer one if it succeeded."""
    result = await verifier.verify(address, source_path)
    if result.ok:
        result = await verifier.verify_autocontainer(
            address, source_path, config, algorithm
        )
    if not result.ok:
        print(f"{result.step.value} error: {result.error}", file=sys.stderr)
    return exit_code(result)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        address = StorageAddress.parse(args.url)
    except AddressInvalid as err:
        print(err, file=sys.stderr)
        return EXIT_INVALID_URL

    if not address.is_fully_qualified:
        status = ", ".join(
            f"{name} ({'ok' if address.has(name) else 'missing'})" for name in FIELDS
        )
        print(f"Partial URL [{args.url}]: requires {status}", file=sys.stderr)
        return EXIT_PARTIAL_URL
    logger.info("URL valid [%s]", address)

    root = args.root or default_root()
    try:
        client = LocalStorageClient(
            os.path.abspath(root), str(address.namespace), autocreate=True
        )
    except (OSError, ValueError) as err:
        print(f"Client init error: {err}", file=sys.stderr)
        return EXIT_CLIENT_INIT
    logger.info("Client ready to [%s]", address.namespace)

    verifier = RoundtripVerifier(client, ScratchAllocator(args.scratch_dir))
    config = AutocontainerConfig(args.bits, args.offset, args.size)
    return anyio.run(
        roundtrip, verifier, address, args.path, config, args.algorithm
    )


def run() -> None:
    sys.exit(main())
