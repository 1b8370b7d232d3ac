"""Signatories and signature aggregation for multi-party accounts.

An account expects one 65-byte signature per party, concatenated in a fixed
order (owner first, then guardian). A signatory is one of:

- ``RealKey``: a secp256k1 key that produces a recoverable signature
- ``ZeroPlaceholder``: 65 zero bytes, to exercise all-zero rejection
- ``EphemeralRandom``: a freshly generated key, discarded after signing,
  to exercise wrong-signer rejection
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Sequence, Union

from eth_account import Account
from eth_account.messages import SignableMessage
from eth_account.signers.local import LocalAccount

from .models import SIGNATURE_LENGTH, Signature

logger = logging.getLogger(__name__)


class KeySigner:
    """Signing capability backed by a local secp256k1 key."""

    def __init__(self, account: LocalAccount):
        self.account = account

    @property
    def address(self) -> str:
        return self.account.address

    def sign_hash(self, msg_hash: bytes) -> bytes:
        signed = self.account.unsafe_sign_hash(msg_hash)
        return Signature(r=signed.r, s=signed.s, v=signed.v).to_bytes()

    def sign_message(self, message: SignableMessage) -> bytes:
        signed = self.account.sign_message(message)
        return Signature(r=signed.r, s=signed.s, v=signed.v).to_bytes()


class ZeroSigner:
    """Signing capability that always yields an all-zero signature slot."""

    address = None

    def sign_hash(self, msg_hash: bytes) -> bytes:
        return bytes(SIGNATURE_LENGTH)

    def sign_message(self, message: SignableMessage) -> bytes:
        return bytes(SIGNATURE_LENGTH)


SigningCapability = Union[KeySigner, ZeroSigner]


@dataclass(frozen=True)
class RealKey:
    account: LocalAccount

    @classmethod
    def from_key(cls, private_key) -> "RealKey":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self.account.address

    def resolve(self) -> SigningCapability:
        return KeySigner(self.account)


@dataclass(frozen=True)
class ZeroPlaceholder:
    def resolve(self) -> SigningCapability:
        return ZeroSigner()


@dataclass(frozen=True)
class EphemeralRandom:
    def resolve(self) -> SigningCapability:
        # a new key per resolution, never stored
        return KeySigner(Account.create())


Signatory = Union[RealKey, ZeroPlaceholder, EphemeralRandom]

ZEROS = ZeroPlaceholder()
RANDOM = EphemeralRandom()


def resolve_signatories(signatories: Sequence[Signatory]) -> list[SigningCapability]:
    """Turn abstract signatories into signing capabilities, preserving order."""
    resolved = []
    for signatory in signatories:
        if not isinstance(signatory, (RealKey, ZeroPlaceholder, EphemeralRandom)):
            raise TypeError(f"unsupported signatory: {signatory!r}")
        resolved.append(signatory.resolve())
    return resolved


async def concat_signatures(
    signatories: Sequence[Signatory],
    sign: Callable[[SigningCapability], bytes],
) -> bytes:
    """
    Sign once per signatory and concatenate the results in input order.

    Signing runs concurrently; ``asyncio.gather`` keeps results in the order
    of its arguments regardless of completion order. The output is always
    ``65 * len(signatories)`` bytes. The number of signatories is not checked
    here: a wrong count is left for the destination contract to reject.
    """
    capabilities = resolve_signatories(signatories)
    signatures = await asyncio.gather(
        *(asyncio.to_thread(sign, capability) for capability in capabilities)
    )
    for signature in signatures:
        if len(signature) != SIGNATURE_LENGTH:
            raise ValueError(f"signature must be 65 bytes, got {len(signature)}")
    logger.debug("aggregated %d signatures", len(signatures))
    return b"".join(signatures)
