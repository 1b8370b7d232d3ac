"""Type definitions and coercion helpers for zkSync account transactions.

These converters are used by the dataclass factories in ``models`` so that
callers can pass hex strings or raw bytes interchangeably.
"""

from typing import NewType, Optional, Union

from eth_utils import to_bytes, to_checksum_address

Address = NewType("Address", bytes)
Hash32 = NewType("Hash32", bytes)

BytesLike = Union[bytes, bytearray, memoryview, str]

ZERO_ADDRESS = Address(b"\x00" * 20)


def _check_type(value) -> None:
    if not isinstance(value, (str, bytes, bytearray, memoryview)):
        raise TypeError(f"expected str, bytes or bytearray, got {type(value).__name__}")


def as_bytes(value: BytesLike) -> bytes:
    """Convert hex string, bytes, bytearray, or memoryview to bytes."""
    _check_type(value)
    if isinstance(value, str):
        if value == "" or value == "0x":
            return b""
        return to_bytes(hexstr=value)
    return bytes(value)


def as_address(value: BytesLike) -> Address:
    """Convert hex string or bytes to a validated 20-byte address."""
    _check_type(value)
    if isinstance(value, str):
        if value == "" or value == "0x":
            return Address(b"")
        b = to_bytes(hexstr=value)
    else:
        b = bytes(value)

    if len(b) not in (0, 20):
        raise ValueError(f"address must be 20 bytes (or empty), got {len(b)}")
    return Address(b)


def as_optional_address(value: Optional[BytesLike]) -> Optional[Address]:
    """Convert to Address, treating empty/None as None."""
    if value is None:
        return None
    b = as_bytes(value)
    if b == b"":
        return None
    return as_address(b)


def as_hash32(value: BytesLike) -> Hash32:
    """Convert hex string or bytes to a validated 32-byte hash."""
    _check_type(value)
    if isinstance(value, str):
        b = to_bytes(hexstr=value)
    else:
        b = bytes(value)

    if len(b) != 32:
        raise ValueError(f"hash32 must be 32 bytes, got {len(b)}")
    return Hash32(b)


def address_to_int(value: Optional[BytesLike]) -> int:
    """Interpret an address as the uint256 used by the typed-data schema."""
    if value is None:
        return 0
    return int.from_bytes(as_address(value), "big")


def checksum(value: BytesLike) -> str:
    """Return the EIP-55 checksummed form of an address."""
    b = as_address(value)
    if not b:
        raise ValueError("cannot checksum an empty address")
    return to_checksum_address(b)
