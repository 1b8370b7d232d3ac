"""EIP-712 signing digest for zkSync account transactions.

The account contract validates signatures over the typed-data hash of the
``Transaction`` struct below, under the ``zkSync`` v2 domain bound to the
chain id.

Fee fields are taken literally. An explicit ``max_fee_per_gas=0`` or
``gas_per_pubdata=0`` stays zero in the signed struct; fallbacks apply only
to fields that are ``None``. Outside (priority) transactions depend on this
because they are signed with every fee field zeroed.
"""

from eth_abi import encode
from eth_utils import keccak

from .address import hash_bytecode
from .models import TransactionRequest
from .types import address_to_int

DOMAIN_NAME = "zkSync"
DOMAIN_VERSION = "2"

EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
]

EIP712_TRANSACTION_TYPES = [
    {"name": "txType", "type": "uint256"},
    {"name": "from", "type": "uint256"},
    {"name": "to", "type": "uint256"},
    {"name": "gasLimit", "type": "uint256"},
    {"name": "gasPerPubdataByteLimit", "type": "uint256"},
    {"name": "maxFeePerGas", "type": "uint256"},
    {"name": "maxPriorityFeePerGas", "type": "uint256"},
    {"name": "paymaster", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "value", "type": "uint256"},
    {"name": "data", "type": "bytes"},
    {"name": "factoryDeps", "type": "bytes32[]"},
    {"name": "paymasterInput", "type": "bytes"},
]


def _encode_type(name: str, members: list[dict]) -> str:
    return f"{name}({','.join(m['type'] + ' ' + m['name'] for m in members)})"


DOMAIN_TYPEHASH = keccak(text=_encode_type("EIP712Domain", EIP712_DOMAIN_TYPES))
TRANSACTION_TYPEHASH = keccak(text=_encode_type("Transaction", EIP712_TRANSACTION_TYPES))


def get_sign_input(transaction: TransactionRequest) -> dict:
    """
    Build the ``Transaction`` struct values for a populated request.

    Raises:
        ValueError: If a field required by the schema was never populated
    """
    transaction.require_populated()
    max_fee, priority_fee = transaction.effective_fees()
    paymaster = transaction.paymaster_params
    return {
        "txType": transaction.type,
        "from": address_to_int(transaction.sender),
        "to": address_to_int(transaction.to),
        "gasLimit": transaction.gas_limit,
        "gasPerPubdataByteLimit": transaction.gas_per_pubdata,
        "maxFeePerGas": max_fee,
        "maxPriorityFeePerGas": priority_fee,
        "paymaster": address_to_int(paymaster.paymaster) if paymaster else 0,
        "nonce": transaction.nonce,
        "value": transaction.value,
        "data": transaction.data,
        "factoryDeps": [hash_bytecode(dep) for dep in transaction.factory_deps],
        "paymasterInput": paymaster.paymaster_input if paymaster else b"",
    }


def hash_struct(sign_input: dict) -> bytes:
    values = []
    for member in EIP712_TRANSACTION_TYPES:
        value = sign_input[member["name"]]
        if member["type"] == "bytes":
            values.append(keccak(value))
        elif member["type"] == "bytes32[]":
            values.append(keccak(b"".join(value)))
        else:
            values.append(value)
    abi_types = [
        "bytes32" if m["type"] in ("bytes", "bytes32[]") else m["type"]
        for m in EIP712_TRANSACTION_TYPES
    ]
    return keccak(encode(["bytes32"] + abi_types, [TRANSACTION_TYPEHASH] + values))


class DigestComputer:
    """Computes the signing digest of transactions for one chain."""

    def __init__(self, chain_id: int):
        if chain_id <= 0:
            raise ValueError("chain_id must be > 0")
        self.chain_id = chain_id
        self.domain_separator = keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256"],
                [
                    DOMAIN_TYPEHASH,
                    keccak(text=DOMAIN_NAME),
                    keccak(text=DOMAIN_VERSION),
                    chain_id,
                ],
            )
        )

    def domain(self) -> dict:
        return {"name": DOMAIN_NAME, "version": DOMAIN_VERSION, "chainId": self.chain_id}

    def sign_input(self, transaction: TransactionRequest) -> dict:
        return get_sign_input(transaction)

    def digest(self, transaction: TransactionRequest) -> bytes:
        """Return the 32-byte typed-data hash the account signatories sign."""
        struct_hash = hash_struct(get_sign_input(transaction))
        return keccak(b"\x19\x01" + self.domain_separator + struct_hash)

    def typed_data(self, transaction: TransactionRequest) -> dict:
        """Full EIP-712 message, usable with ``eth_account.messages.encode_typed_data``."""
        return {
            "types": {
                "EIP712Domain": EIP712_DOMAIN_TYPES,
                "Transaction": EIP712_TRANSACTION_TYPES,
            },
            "primaryType": "Transaction",
            "domain": self.domain(),
            "message": get_sign_input(transaction),
        }
