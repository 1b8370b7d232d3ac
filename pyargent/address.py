"""Deterministic (CREATE2) address derivation for zkSync account proxies.

zkSync does not use the L1 CREATE2 formula. The deployer system contract
derives addresses as::

    keccak256(
        keccak256("zksyncCreate2") || pad32(sender) || salt ||
        bytecodeHash || keccak256(constructorInput)
    )[12:]

where ``bytecodeHash`` is the versioned hash produced by ``hash_bytecode``.
"""

import hashlib

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from .types import BytesLike, as_address, as_bytes, as_hash32

CREATE2_PREFIX = keccak(text="zksyncCreate2")

BYTECODE_HASH_VERSION = 0x01
MAX_BYTECODE_WORDS = 2**16

INITIALIZE_SELECTOR = function_signature_to_4byte_selector("initialize(address,address)")


def hash_bytecode(bytecode: BytesLike) -> bytes:
    """
    Compute the versioned zkSync bytecode hash.

    Layout: version (1 byte) || 0x00 || length in 32-byte words (2 bytes) ||
    last 28 bytes of sha256(bytecode).
    """
    code = as_bytes(bytecode)
    if len(code) % 32 != 0:
        raise ValueError("bytecode length in bytes must be divisible by 32")
    words = len(code) // 32
    if words >= MAX_BYTECODE_WORDS:
        raise ValueError(f"bytecode length must be less than {MAX_BYTECODE_WORDS} words")
    if words % 2 == 0:
        raise ValueError("bytecode length in 32-byte words must be odd")

    digest = hashlib.sha256(code).digest()
    return bytes([BYTECODE_HASH_VERSION, 0]) + words.to_bytes(2, "big") + digest[4:]


def create2_address(
    sender: BytesLike,
    bytecode_hash: BytesLike,
    salt: BytesLike,
    constructor_input: BytesLike = b"",
) -> str:
    """Derive the address the deployer system contract assigns for a CREATE2 deployment."""
    preimage = (
        CREATE2_PREFIX
        + bytes(12)
        + bytes(as_address(sender))
        + bytes(as_hash32(salt))
        + bytes(as_hash32(bytecode_hash))
        + keccak(as_bytes(constructor_input))
    )
    return to_checksum_address(keccak(preimage)[12:])


def encode_initializer(owner: BytesLike, guardian: BytesLike) -> bytes:
    """Calldata for ``initialize(address owner, address guardian)``."""
    return INITIALIZE_SELECTOR + encode(
        ["address", "address"],
        [to_checksum_address(as_address(owner)), to_checksum_address(as_address(guardian))],
    )


def encode_proxy_constructor(implementation: BytesLike, init_data: BytesLike) -> bytes:
    """ABI-encoded arguments of ``Proxy(address implementation, bytes data)``."""
    return encode(
        ["address", "bytes"],
        [to_checksum_address(as_address(implementation)), as_bytes(init_data)],
    )


def compute_account_address(
    factory: BytesLike,
    proxy_bytecode_hash: BytesLike,
    salt: BytesLike,
    implementation: BytesLike,
    owner: BytesLike,
    guardian: BytesLike,
) -> str:
    """Predict the address of an account proxy deployed by ``factory``."""
    init_data = encode_initializer(owner, guardian)
    constructor_input = encode_proxy_constructor(implementation, init_data)
    return create2_address(factory, proxy_bytecode_hash, salt, constructor_input)
