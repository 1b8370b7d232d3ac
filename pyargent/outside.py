"""Outside (priority) execution of account transactions.

A relayer, possibly on L1 through a priority request, submits an account
transaction on the account's behalf by calling
``executeTransactionFromOutside``. The relayer pays, so the signed
transaction declares zero gas price, gas limit and pubdata price.

The signatories do not sign the transaction digest directly. They sign, as
an EIP-191 personal message, ``keccak256(selector || digest || relayer)``,
which ties the authorization to the single relayer allowed to submit it.
"""

from dataclasses import dataclass, replace

from eth_abi import encode
from eth_utils import keccak

from .contracts import EXECUTE_FROM_OUTSIDE_SIGNATURE, TRANSACTION_STRUCT_ABI, selector
from .eip712 import DigestComputer, get_sign_input
from .models import TransactionRequest
from .signer import ArgentSigner
from .types import BytesLike, as_address

EXECUTE_FROM_OUTSIDE_SELECTOR = selector(EXECUTE_FROM_OUTSIDE_SIGNATURE)


def to_outside_transaction(transaction: TransactionRequest) -> TransactionRequest:
    """Zero the fee fields explicitly; they must not be left unset."""
    return replace(transaction, gas_price=0, gas_limit=0, gas_per_pubdata=0)


def outside_message_hash(digest: bytes, sender: BytesLike) -> bytes:
    """Hash binding the execution mode, the transaction digest and the relayer."""
    if len(digest) != 32:
        raise ValueError(f"digest must be 32 bytes, got {len(digest)}")
    return keccak(EXECUTE_FROM_OUTSIDE_SELECTOR + digest + bytes(as_address(sender)))


@dataclass(frozen=True)
class OutsideTransaction:
    """The struct passed to ``executeTransactionFromOutside``."""

    sign_input: dict
    signature: bytes
    reserved: tuple[int, int, int, int] = (0, 0, 0, 0)
    reserved_dynamic: bytes = b""

    def as_abi_tuple(self) -> tuple:
        s = self.sign_input
        return (
            s["txType"],
            s["from"],
            s["to"],
            s["gasLimit"],
            s["gasPerPubdataByteLimit"],
            s["maxFeePerGas"],
            s["maxPriorityFeePerGas"],
            s["paymaster"],
            s["nonce"],
            s["value"],
            list(self.reserved),
            s["data"],
            self.signature,
            list(s["factoryDeps"]),
            s["paymasterInput"],
            self.reserved_dynamic,
        )

    def encode_call(self) -> bytes:
        """Calldata for ``executeTransactionFromOutside(Transaction)``."""
        return EXECUTE_FROM_OUTSIDE_SELECTOR + encode(
            [TRANSACTION_STRUCT_ABI], [self.as_abi_tuple()]
        )


class OutsideTransactionBuilder:
    """
    Builds outside-execution structs for one account signer.

    Nothing is validated here: a wrong signatory set or relayer produces a
    well-formed struct that the account contract rejects.
    """

    def __init__(self, signer: ArgentSigner):
        self.signer = signer

    async def populate(self, transaction: TransactionRequest) -> TransactionRequest:
        return await self.signer.populate_transaction(to_outside_transaction(transaction))

    async def get_outside_signature(
        self, transaction: TransactionRequest, sender_address: BytesLike
    ) -> bytes:
        digest = DigestComputer(transaction.chain_id).digest(transaction)
        return await self.signer.sign_message(outside_message_hash(digest, sender_address))

    async def build(
        self, transaction: TransactionRequest, sender_address: BytesLike
    ) -> OutsideTransaction:
        """
        Zero the fees, populate, sign for ``sender_address`` and wrap the result.

        Args:
            transaction: The account call to run, e.g. a ``triggerEscapeGuardian``
            sender_address: The relayer allowed to submit the struct
        """
        populated = await self.populate(transaction)
        signature = await self.get_outside_signature(populated, sender_address)
        return OutsideTransaction(sign_input=get_sign_input(populated), signature=signature)
