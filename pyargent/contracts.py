"""Account and factory contract interfaces.

Calldata encoders for the account entry points used by recovery and outside
execution, plus read helpers that decode view calls made through a
``ChainProvider``.
"""

from typing import Sequence

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from .models import Call, Escape, EscapeStatus, EscapeType
from .provider import ChainProvider
from .types import BytesLike, as_address, as_bytes, as_hash32

# zkSync system contract that performs every deployment
CONTRACT_DEPLOYER_ADDRESS = "0x0000000000000000000000000000000000008006"

# zkSync system Transaction struct, as accepted by executeTransactionFromOutside
TRANSACTION_STRUCT_ABI = (
    "(uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256,"
    "uint256[4],bytes,bytes,bytes32[],bytes,bytes)"
)

CHANGE_OWNER_SIGNATURE = "changeOwner(address,bytes)"
CHANGE_GUARDIAN_SIGNATURE = "changeGuardian(address)"
CHANGE_GUARDIAN_BACKUP_SIGNATURE = "changeGuardianBackup(address)"
TRIGGER_ESCAPE_OWNER_SIGNATURE = "triggerEscapeOwner(address)"
TRIGGER_ESCAPE_GUARDIAN_SIGNATURE = "triggerEscapeGuardian(address)"
ESCAPE_OWNER_SIGNATURE = "escapeOwner()"
ESCAPE_GUARDIAN_SIGNATURE = "escapeGuardian()"
CANCEL_ESCAPE_SIGNATURE = "cancelEscape()"
MULTICALL_SIGNATURE = "multicall((address,uint256,bytes)[])"
EXECUTE_FROM_OUTSIDE_SIGNATURE = f"executeTransactionFromOutside({TRANSACTION_STRUCT_ABI})"
IS_VALID_SIGNATURE_SIGNATURE = "isValidSignature(bytes32,bytes)"
DEPLOY_PROXY_ACCOUNT_SIGNATURE = "deployProxyAccount(bytes32,address,address,address)"
COMPUTE_CREATE2_ADDRESS_SIGNATURE = "computeCreate2Address(bytes32,address,address,address)"
CREATE_SIGNATURE = "create(bytes32,bytes32,bytes)"

GET_ESCAPE_SELECTOR = function_signature_to_4byte_selector("getEscape()")
GUARDIAN_ESCAPE_ATTEMPTS_SELECTOR = function_signature_to_4byte_selector(
    "guardianEscapeAttempts()"
)
ESCAPE_SECURITY_PERIOD_SELECTOR = function_signature_to_4byte_selector("escapeSecurityPeriod()")
ESCAPE_EXPIRY_PERIOD_SELECTOR = function_signature_to_4byte_selector("escapeExpiryPeriod()")
MAX_ESCAPE_ATTEMPTS_SELECTOR = function_signature_to_4byte_selector("MAX_ESCAPE_ATTEMPTS()")

EIP1271_MAGIC_VALUE = function_signature_to_4byte_selector(IS_VALID_SIGNATURE_SIGNATURE)


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def _address(value: BytesLike) -> str:
    return to_checksum_address(as_address(value))


def _encode_address_call(signature: str, address: BytesLike) -> bytes:
    return selector(signature) + encode(["address"], [_address(address)])


def encode_change_owner(new_owner: BytesLike, signature: BytesLike) -> bytes:
    return selector(CHANGE_OWNER_SIGNATURE) + encode(
        ["address", "bytes"], [_address(new_owner), as_bytes(signature)]
    )


def encode_change_guardian(new_guardian: BytesLike) -> bytes:
    return _encode_address_call(CHANGE_GUARDIAN_SIGNATURE, new_guardian)


def encode_change_guardian_backup(new_guardian_backup: BytesLike) -> bytes:
    return _encode_address_call(CHANGE_GUARDIAN_BACKUP_SIGNATURE, new_guardian_backup)


def encode_trigger_escape_owner(new_owner: BytesLike) -> bytes:
    return _encode_address_call(TRIGGER_ESCAPE_OWNER_SIGNATURE, new_owner)


def encode_trigger_escape_guardian(new_guardian: BytesLike) -> bytes:
    return _encode_address_call(TRIGGER_ESCAPE_GUARDIAN_SIGNATURE, new_guardian)


def encode_escape_owner() -> bytes:
    return selector(ESCAPE_OWNER_SIGNATURE)


def encode_escape_guardian() -> bytes:
    return selector(ESCAPE_GUARDIAN_SIGNATURE)


def encode_cancel_escape() -> bytes:
    return selector(CANCEL_ESCAPE_SIGNATURE)


def encode_multicall(calls: Sequence[Call]) -> bytes:
    """Encode ``multicall((address to, uint256 value, bytes data)[])``."""
    for call in calls:
        call.validate()
    return selector(MULTICALL_SIGNATURE) + encode(
        ["(address,uint256,bytes)[]"],
        [[c.as_abi_tuple() for c in calls]],
    )


def encode_is_valid_signature(msg_hash: BytesLike, signature: BytesLike) -> bytes:
    return selector(IS_VALID_SIGNATURE_SIGNATURE) + encode(
        ["bytes32", "bytes"], [as_hash32(msg_hash), as_bytes(signature)]
    )


def encode_deploy_proxy_account(
    salt: BytesLike, implementation: BytesLike, owner: BytesLike, guardian: BytesLike
) -> bytes:
    return selector(DEPLOY_PROXY_ACCOUNT_SIGNATURE) + encode(
        ["bytes32", "address", "address", "address"],
        [as_hash32(salt), _address(implementation), _address(owner), _address(guardian)],
    )


def encode_compute_create2_address(
    salt: BytesLike, implementation: BytesLike, owner: BytesLike, guardian: BytesLike
) -> bytes:
    return selector(COMPUTE_CREATE2_ADDRESS_SIGNATURE) + encode(
        ["bytes32", "address", "address", "address"],
        [as_hash32(salt), _address(implementation), _address(owner), _address(guardian)],
    )


def encode_create(bytecode_hash: BytesLike, constructor_input: BytesLike = b"") -> bytes:
    """Deployer system contract call creating a contract; the salt is unused by ``create``."""
    return selector(CREATE_SIGNATURE) + encode(
        ["bytes32", "bytes32", "bytes"],
        [bytes(32), as_hash32(bytecode_hash), as_bytes(constructor_input)],
    )


def decode_escape(result: bytes) -> tuple[Escape, EscapeStatus]:
    """Decode ``getEscape()`` returning ``((uint32 activeAt, uint8 escapeType, address newSigner), uint8 status)``."""
    (active_at, escape_type, new_signer), status = decode(
        ["(uint32,uint8,address)", "uint8"], result
    )
    escape = Escape(
        escape_type=EscapeType(escape_type),
        active_at=active_at,
        new_signer=as_address(new_signer),
    )
    return escape, EscapeStatus(status)


async def _call_uint(provider: ChainProvider, to: BytesLike, data: bytes) -> int:
    result = await provider.call(to, data)
    (value,) = decode(["uint256"], result)
    return value


async def get_escape(provider: ChainProvider, account: BytesLike) -> tuple[Escape, EscapeStatus]:
    """Read the stored escape of an account and the status the contract derives for it."""
    return decode_escape(await provider.call(account, GET_ESCAPE_SELECTOR))


async def get_guardian_escape_attempts(provider: ChainProvider, account: BytesLike) -> int:
    return await _call_uint(provider, account, GUARDIAN_ESCAPE_ATTEMPTS_SELECTOR)


async def get_escape_security_period(provider: ChainProvider, account: BytesLike) -> int:
    return await _call_uint(provider, account, ESCAPE_SECURITY_PERIOD_SELECTOR)


async def get_escape_expiry_period(provider: ChainProvider, account: BytesLike) -> int:
    return await _call_uint(provider, account, ESCAPE_EXPIRY_PERIOD_SELECTOR)


async def get_max_escape_attempts(provider: ChainProvider, account: BytesLike) -> int:
    return await _call_uint(provider, account, MAX_ESCAPE_ATTEMPTS_SELECTOR)


async def is_valid_signature(
    provider: ChainProvider, account: BytesLike, msg_hash: BytesLike, signature: BytesLike
) -> bool:
    """EIP-1271 check: True when the account returns its magic value."""
    result = await provider.call(account, encode_is_valid_signature(msg_hash, signature))
    (magic,) = decode(["bytes4"], result)
    return magic == EIP1271_MAGIC_VALUE


async def factory_compute_address(
    provider: ChainProvider,
    factory: BytesLike,
    salt: BytesLike,
    implementation: BytesLike,
    owner: BytesLike,
    guardian: BytesLike,
) -> str:
    """Ask the deployed factory for the address it would deploy an account to."""
    result = await provider.call(
        factory, encode_compute_create2_address(salt, implementation, owner, guardian)
    )
    (address,) = decode(["address"], result)
    return to_checksum_address(address)
