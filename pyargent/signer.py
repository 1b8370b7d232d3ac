"""Multi-signatory signer for Argent zkSync accounts."""

import logging
from typing import Sequence, Union

from eth_account.messages import encode_defunct, encode_typed_data
from eth_utils import is_0x_prefixed, is_hexstr, to_checksum_address

from .builder import TransactionBuilder
from .eip712 import DigestComputer
from .models import TransactionRequest
from .provider import ChainProvider, wait_for_receipt
from .signatory import Signatory, concat_signatures
from .transaction import SignedEnvelope
from .types import BytesLike, as_address

logger = logging.getLogger(__name__)


class ArgentSigner:
    """
    Signs on behalf of an account with an ordered list of signatories.

    The account contract expects the owner signature first and the guardian
    signature second. Passing another count or order is allowed and is the
    way to exercise the contract's own rejection paths.
    """

    def __init__(
        self,
        address: BytesLike,
        provider: ChainProvider,
        signatories: Sequence[Signatory],
    ):
        self.address = to_checksum_address(as_address(address))
        self.provider = provider
        self.signatories = tuple(signatories)
        self.builder = TransactionBuilder(provider, self.address)

    async def get_chain_id(self) -> int:
        return await self.builder.get_chain_id()

    async def populate_transaction(self, transaction: TransactionRequest) -> TransactionRequest:
        return await self.builder.populate(transaction)

    async def get_signature(self, transaction: TransactionRequest) -> bytes:
        """Aggregated signature over the typed-data digest of a populated transaction."""
        chain_id = transaction.chain_id
        if chain_id is None:
            chain_id = await self.get_chain_id()
        digest = DigestComputer(chain_id).digest(transaction)
        return await concat_signatures(
            self.signatories, lambda signer: signer.sign_hash(digest)
        )

    async def sign_transaction(self, transaction: TransactionRequest) -> SignedEnvelope:
        """Sign an already populated transaction."""
        signature = await self.get_signature(transaction)
        return SignedEnvelope(request=transaction, signature=signature)

    async def sign_message(self, message: Union[bytes, str]) -> bytes:
        """EIP-191 personal-message signature from every signatory, concatenated."""
        if isinstance(message, str) and is_0x_prefixed(message) and is_hexstr(message):
            signable = encode_defunct(hexstr=message)
        elif isinstance(message, str):
            signable = encode_defunct(text=message)
        else:
            signable = encode_defunct(primitive=bytes(message))
        return await concat_signatures(
            self.signatories, lambda signer: signer.sign_message(signable)
        )

    async def sign_typed_data(self, full_message: dict) -> bytes:
        """EIP-712 structured-data signature from every signatory, concatenated."""
        signable = encode_typed_data(full_message=full_message)
        return await concat_signatures(
            self.signatories, lambda signer: signer.sign_message(signable)
        )

    async def send_transaction(
        self, transaction: TransactionRequest, wait: bool = True, timeout: float = 120
    ) -> bytes:
        """
        Populate, sign and broadcast a transaction.

        Nonces are sequential per account, so callers must not send several
        transactions of the same account concurrently.

        Returns:
            The transaction hash
        """
        populated = await self.populate_transaction(transaction)
        envelope = await self.sign_transaction(populated)
        tx_hash = await self.provider.send_raw_transaction(envelope.encode())
        logger.debug("sent transaction %s from %s", tx_hash.hex(), self.address)
        if wait:
            await wait_for_receipt(self.provider, tx_hash, timeout=timeout)
        return tx_hash

    def with_signatories(self, signatories: Sequence[Signatory]) -> "ArgentSigner":
        return ArgentSigner(self.address, self.provider, signatories)

    def connect(self, provider: ChainProvider) -> "ArgentSigner":
        return ArgentSigner(self.address, provider, self.signatories)
