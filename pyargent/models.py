"""Strongly-typed data models for zkSync account transactions and recovery."""

import enum
from dataclasses import dataclass
from typing import Optional

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from .address import hash_bytecode
from .types import (
    ZERO_ADDRESS,
    Address,
    BytesLike,
    as_address,
    as_bytes,
    as_optional_address,
    checksum,
)

EIP712_TX_TYPE = 0x71
DEFAULT_GAS_PER_PUBDATA_LIMIT = 50_000
SIGNATURE_LENGTH = 65

GENERAL_PAYMASTER_SELECTOR = function_signature_to_4byte_selector("general(bytes)")


@dataclass(frozen=True)
class Call:
    """Single call in a multicall batch."""

    to: Address
    value: int
    data: bytes

    def validate(self) -> None:
        if self.value < 0:
            raise ValueError("call.value must be >= 0")

    def as_abi_tuple(self) -> tuple:
        return (checksum(self.to), self.value, self.data)

    @classmethod
    def create(
        cls,
        to: BytesLike,
        value: int = 0,
        data: BytesLike = b"",
    ) -> "Call":
        """Create a Call with automatic type coercion."""
        return cls(
            to=as_address(to),
            value=value,
            data=as_bytes(data),
        )


@dataclass(frozen=True)
class PaymasterParams:
    """Fee sponsor reference and the sponsor-specific input it is called with."""

    paymaster: Address
    paymaster_input: bytes = b""

    def as_rlp_list(self) -> list:
        return [bytes(self.paymaster), self.paymaster_input]

    @classmethod
    def create(cls, paymaster: BytesLike, paymaster_input: BytesLike = b"") -> "PaymasterParams":
        return cls(paymaster=as_address(paymaster), paymaster_input=as_bytes(paymaster_input))


def general_paymaster_params(paymaster: BytesLike, inner_input: BytesLike = b"") -> PaymasterParams:
    """Build sponsor params for the general paymaster flow: ``general(bytes)``."""
    paymaster_input = GENERAL_PAYMASTER_SELECTOR + encode(["bytes"], [as_bytes(inner_input)])
    return PaymasterParams.create(paymaster, paymaster_input)


@dataclass(frozen=True)
class Signature:
    """65-byte secp256k1 signature (r || s || v)."""

    r: int
    s: int
    v: int

    def to_bytes(self) -> bytes:
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])

    @classmethod
    def from_bytes(cls, sig_bytes: bytes) -> "Signature":
        if len(sig_bytes) != SIGNATURE_LENGTH:
            raise ValueError(f"signature must be 65 bytes, got {len(sig_bytes)}")
        r = int.from_bytes(sig_bytes[:32], "big")
        s = int.from_bytes(sig_bytes[32:64], "big")
        v = sig_bytes[64]
        return cls(r=r, s=s, v=v)


def split_signatures(signature: bytes) -> list[bytes]:
    """Split an aggregated signature into its 65-byte slots."""
    if len(signature) % SIGNATURE_LENGTH:
        raise ValueError(
            f"aggregated signature length {len(signature)} is not a multiple of {SIGNATURE_LENGTH}"
        )
    return [
        signature[i : i + SIGNATURE_LENGTH]
        for i in range(0, len(signature), SIGNATURE_LENGTH)
    ]


# Fields the typed-data schema cannot be computed without.
REQUIRED_FIELDS = (
    "type",
    "sender",
    "to",
    "value",
    "data",
    "chain_id",
    "gas_limit",
    "nonce",
    "gas_per_pubdata",
)


@dataclass(frozen=True)
class TransactionRequest:
    """
    zkSync EIP-712 transaction request (Type 0x71).

    Every field is optional until the request is populated; ``None`` means
    "not specified" and is distinct from an explicit zero. Fee fields are
    resolved by ``effective_fees`` which only falls back on ``None``.
    """

    type: Optional[int] = None
    sender: Optional[Address] = None
    to: Optional[Address] = None
    value: Optional[int] = None
    data: Optional[bytes] = None
    chain_id: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_limit: Optional[int] = None
    nonce: Optional[int] = None
    gas_per_pubdata: Optional[int] = None
    factory_deps: tuple[bytes, ...] = ()
    paymaster_params: Optional[PaymasterParams] = None

    @classmethod
    def create(
        cls,
        to: Optional[BytesLike] = None,
        value: Optional[int] = None,
        data: Optional[BytesLike] = None,
        sender: Optional[BytesLike] = None,
        factory_deps: tuple[BytesLike, ...] = (),
        **kwargs,
    ) -> "TransactionRequest":
        """Create a request with automatic type coercion of byte fields."""
        return cls(
            to=as_optional_address(to),
            value=value,
            data=None if data is None else as_bytes(data),
            sender=as_optional_address(sender),
            factory_deps=tuple(as_bytes(dep) for dep in factory_deps),
            **kwargs,
        )

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if getattr(self, name) is None]

    def require_populated(self) -> None:
        """Raise if a field needed by the signing schema was never filled in."""
        missing = self.missing_fields()
        if missing:
            raise ValueError(f"transaction is not populated, missing: {', '.join(missing)}")

    def effective_fees(self) -> tuple[int, int]:
        """
        Resolve (maxFeePerGas, maxPriorityFeePerGas).

        An explicit zero is kept as zero. The legacy gas price is only used
        when ``max_fee_per_gas`` is absent, and the priority fee only falls
        back to the max fee when it is absent.
        """
        if self.max_fee_per_gas is not None:
            max_fee = self.max_fee_per_gas
        elif self.gas_price is not None:
            max_fee = self.gas_price
        else:
            max_fee = 0
        if self.max_priority_fee_per_gas is not None:
            priority_fee = self.max_priority_fee_per_gas
        else:
            priority_fee = max_fee
        return max_fee, priority_fee

    def effective_gas_per_pubdata(self) -> int:
        if self.gas_per_pubdata is None:
            return DEFAULT_GAS_PER_PUBDATA_LIMIT
        return self.gas_per_pubdata

    def to_rpc_dict(self) -> dict:
        """Render as the JSON-RPC shape zkSync nodes accept for estimation and calls."""
        max_fee, priority_fee = self.effective_fees()
        meta: dict = {
            "gasPerPubdata": hex(self.effective_gas_per_pubdata()),
            "factoryDeps": [list(dep) for dep in self.factory_deps],
        }
        if self.paymaster_params is not None:
            meta["paymasterParams"] = {
                "paymaster": "0x" + bytes(self.paymaster_params.paymaster).hex(),
                "paymasterInput": list(self.paymaster_params.paymaster_input),
            }
        rpc: dict = {
            "type": hex(self.type if self.type is not None else EIP712_TX_TYPE),
            "data": "0x" + (self.data or b"").hex(),
            "value": hex(self.value or 0),
            "maxFeePerGas": hex(max_fee),
            "maxPriorityFeePerGas": hex(priority_fee),
            "eip712Meta": meta,
        }
        if self.sender:
            rpc["from"] = "0x" + bytes(self.sender).hex()
        if self.to:
            rpc["to"] = "0x" + bytes(self.to).hex()
        if self.gas_limit is not None:
            rpc["gas"] = hex(self.gas_limit)
        if self.nonce is not None:
            rpc["nonce"] = hex(self.nonce)
        return rpc


class EscapeType(enum.IntEnum):
    NONE = 0
    GUARDIAN = 1
    OWNER = 2


class EscapeStatus(enum.IntEnum):
    NONE = 0
    TRIGGERED = 1
    ACTIVE = 2
    EXPIRED = 3


@dataclass(frozen=True)
class Escape:
    """Escape record as stored by the account contract."""

    escape_type: EscapeType = EscapeType.NONE
    active_at: int = 0
    new_signer: Address = ZERO_ADDRESS

    def __post_init__(self):
        empty = (
            self.escape_type == EscapeType.NONE,
            self.active_at == 0,
            bytes(self.new_signer) == bytes(ZERO_ADDRESS),
        )
        if any(empty) and not all(empty):
            raise ValueError(
                "escape must be either fully empty or fully set "
                f"(type={self.escape_type.name}, activeAt={self.active_at})"
            )

    @property
    def is_none(self) -> bool:
        return self.escape_type == EscapeType.NONE


NO_ESCAPE = Escape()


@dataclass(frozen=True)
class Artifact:
    """Compiled contract: ABI and bytecode."""

    contract_name: str
    abi: list
    bytecode: bytes
    source_name: str = ""

    @property
    def bytecode_hash(self) -> bytes:
        return hash_bytecode(self.bytecode)


@dataclass(frozen=True)
class ArgentArtifacts:
    implementation: Artifact
    factory: Artifact
    proxy: Artifact
    test_dapp: Optional[Artifact] = None


@dataclass(frozen=True)
class AccountContext:
    """
    Deployed infrastructure shared read-only by every operation of a session.

    Constructing one costs either a full deployment or a configuration read
    plus artifact loading, see ``infrastructure``.
    """

    implementation: Address
    factory: Address
    artifacts: ArgentArtifacts
    escape_security_period: Optional[int] = None
    test_dapp: Optional[Address] = None

    @property
    def proxy_bytecode_hash(self) -> bytes:
        return self.artifacts.proxy.bytecode_hash

