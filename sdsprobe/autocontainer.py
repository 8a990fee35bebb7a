from __future__ import annotations

from dataclasses import dataclass

from sdsprobe.digest import ContentDigest
from sdsprobe.errors import ConfigurationInvalid

DEFAULT_BITS = 17


def derive_container(
    digest: ContentDigest | bytes,
    dst_bits: int = DEFAULT_BITS,
    src_offset: int = 0,
    src_size: int = 0,
) -> str:
    """Compute a container name from the leading bits of a content digest.

    The window `digest[src_offset:src_offset + src_size]` is read as a
    big-endian bit string. Its `dst_bits` most significant bits are kept,
    padded with zeros up to a nibble boundary and written as uppercase hex,
    so the label is `ceil(dst_bits / 4)` characters long. Identical digests
    always give the same label, and bits past `dst_bits` never change it.

    Parameters:
        digest: Digest of the object's content
        dst_bits: Count of bits taken into the label
        src_offset: First byte of the window
        src_size: Size of the window in bytes, `0` meaning up to the end

    Returns:
        str: The container label

    Raises:
        ConfigurationInvalid: If the digest is empty, the window falls outside
            the digest, or `dst_bits` is zero or larger than the window.
    """
    raw = bytes(digest)
    if not raw:
        raise ConfigurationInvalid("Cannot derive a container from an empty digest")
    if src_offset < 0 or src_size < 0:
        raise ConfigurationInvalid("Digest window bounds must be positive")
    if src_offset >= len(raw):
        raise ConfigurationInvalid(
            f"Window offset {src_offset} past the end of a {len(raw)}-byte digest"
        )

    size = src_size or len(raw) - src_offset
    if src_offset + size > len(raw):
        raise ConfigurationInvalid(
            f"Window of {size} bytes at {src_offset} overflows a"
            f" {len(raw)}-byte digest"
        )
    if not 0 < dst_bits <= size * 8:
        raise ConfigurationInvalid(
            f"dst_bits must be within [1, {size * 8}], got {dst_bits}"
        )

    window = int.from_bytes(raw[src_offset : src_offset + size], "big")
    nibbles = -(-dst_bits // 4)
    value = window >> (size * 8 - dst_bits)
    value <<= nibbles * 4 - dst_bits
    return format(value, f"0{nibbles}X")


@dataclass(frozen=True)
class AutocontainerConfig:
    """Parameters of [`derive_container`][sdsprobe.autocontainer.derive_container].

    Attributes:
        dst_bits: Count of leading bits of the window kept in the label
        src_offset: First digest byte considered
        src_size: Digest bytes considered, `0` meaning up to the end
    """

    dst_bits: int = DEFAULT_BITS
    src_offset: int = 0
    src_size: int = 0

    def derive(self, digest: ContentDigest | bytes) -> str:
        return derive_container(digest, self.dst_bits, self.src_offset, self.src_size)
