"""zkSync EIP-712 transaction envelope (Type 0x71) with RLP encoding."""

from dataclasses import dataclass

import rlp
from eth_utils import keccak
from rlp.sedes import big_endian_int

from .eip712 import DigestComputer
from .models import EIP712_TX_TYPE, PaymasterParams, TransactionRequest, split_signatures
from .types import as_address, as_optional_address

ENVELOPE_FIELD_COUNT = 16


def _uint(value: bytes) -> int:
    return big_endian_int.deserialize(value) if value else 0


@dataclass(frozen=True)
class SignedEnvelope:
    """A populated transaction request plus its aggregated account signature."""

    request: TransactionRequest
    signature: bytes

    @property
    def signature_count(self) -> int:
        return len(split_signatures(self.signature))

    def encode(self) -> bytes:
        """
        Encode complete transaction: 0x71 || rlp([16 fields])

        Returns:
            Encoded transaction with type prefix
        """
        tx = self.request
        tx.require_populated()
        if not self.signature:
            raise ValueError("custom signature must not be empty")

        max_fee, priority_fee = tx.effective_fees()
        paymaster = tx.paymaster_params

        fields = [
            tx.nonce,
            priority_fee,
            max_fee,
            tx.gas_limit,
            bytes(tx.to) if tx.to else b"",
            tx.value,
            tx.data,
            tx.chain_id,
            b"",
            b"",
            tx.chain_id,
            bytes(tx.sender),
            tx.gas_per_pubdata,
            list(tx.factory_deps),
            self.signature,
            paymaster.as_rlp_list() if paymaster else [],
        ]

        return bytes([EIP712_TX_TYPE]) + rlp.encode(fields)

    def signed_digest(self) -> bytes:
        return DigestComputer(self.request.chain_id).digest(self.request)

    def hash(self) -> bytes:
        """Get transaction hash: keccak(digest || keccak(signature))."""
        return keccak(self.signed_digest() + keccak(self.signature))


def decode_envelope(raw: bytes) -> SignedEnvelope:
    """
    Parse a serialized 0x71 envelope.

    Fee fields come back as explicit values, so the digest recomputed from the
    decoded request matches the one that was signed.
    """
    if not raw or raw[0] != EIP712_TX_TYPE:
        raise ValueError("not an EIP-712 (0x71) transaction")

    fields = rlp.decode(raw[1:])
    if len(fields) != ENVELOPE_FIELD_COUNT:
        raise ValueError(
            f"expected {ENVELOPE_FIELD_COUNT} envelope fields, got {len(fields)}"
        )

    paymaster_fields = fields[15]
    paymaster = None
    if paymaster_fields:
        if len(paymaster_fields) != 2:
            raise ValueError("paymaster params must have 2 fields")
        paymaster = PaymasterParams(
            paymaster=as_address(paymaster_fields[0]),
            paymaster_input=paymaster_fields[1],
        )

    request = TransactionRequest(
        type=EIP712_TX_TYPE,
        nonce=_uint(fields[0]),
        max_priority_fee_per_gas=_uint(fields[1]),
        max_fee_per_gas=_uint(fields[2]),
        gas_limit=_uint(fields[3]),
        to=as_optional_address(fields[4]),
        value=_uint(fields[5]),
        data=fields[6],
        chain_id=_uint(fields[10]),
        sender=as_address(fields[11]),
        gas_per_pubdata=_uint(fields[12]),
        factory_deps=tuple(fields[13]),
        paymaster_params=paymaster,
    )
    return SignedEnvelope(request=request, signature=fields[14])
