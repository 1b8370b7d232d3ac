"""Builders for account transaction requests.

``TransactionRequestBuilder`` assembles a partial request offline;
``TransactionBuilder`` fills in whatever was left unset from chain state.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from eth_utils import to_checksum_address

from .errors import SignerMismatch
from .models import (
    DEFAULT_GAS_PER_PUBDATA_LIMIT,
    EIP712_TX_TYPE,
    PaymasterParams,
    TransactionRequest,
)
from .provider import ChainProvider
from .types import Address, BytesLike, as_address, as_bytes

logger = logging.getLogger(__name__)


@dataclass
class TransactionRequestBuilder:
    """
    Fluent builder for partial transaction requests.

    Example:
        request = (TransactionRequestBuilder()
            .set_to("0xDapp...")
            .set_data(calldata)
            .set_gas_limit(1_000_000)
            .build())
    """

    to: Optional[Address] = None
    value: Optional[int] = None
    data: Optional[bytes] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    nonce: Optional[int] = None
    gas_per_pubdata: Optional[int] = None
    paymaster_params: Optional[PaymasterParams] = None
    factory_deps: list[bytes] = field(default_factory=list)

    def set_to(self, to: BytesLike) -> "TransactionRequestBuilder":
        """Set the destination address."""
        self.to = as_address(to)
        return self

    def set_value(self, value: int) -> "TransactionRequestBuilder":
        """Set the value in wei."""
        self.value = value
        return self

    def set_data(self, data: BytesLike) -> "TransactionRequestBuilder":
        """Set the call data."""
        self.data = as_bytes(data)
        return self

    def set_gas_limit(self, gas_limit: int) -> "TransactionRequestBuilder":
        """Set the gas limit."""
        self.gas_limit = gas_limit
        return self

    def set_gas_price(self, gas_price: int) -> "TransactionRequestBuilder":
        """Set the legacy gas price."""
        self.gas_price = gas_price
        return self

    def set_max_fee_per_gas(self, max_fee: int) -> "TransactionRequestBuilder":
        """Set the maximum fee per gas."""
        self.max_fee_per_gas = max_fee
        return self

    def set_max_priority_fee_per_gas(self, priority_fee: int) -> "TransactionRequestBuilder":
        """Set the maximum priority fee per gas."""
        self.max_priority_fee_per_gas = priority_fee
        return self

    def set_nonce(self, nonce: int) -> "TransactionRequestBuilder":
        """Set the nonce."""
        self.nonce = nonce
        return self

    def set_gas_per_pubdata(self, gas_per_pubdata: int) -> "TransactionRequestBuilder":
        """Set the per-byte publishing cost limit."""
        self.gas_per_pubdata = gas_per_pubdata
        return self

    def sponsored(self, paymaster_params: PaymasterParams) -> "TransactionRequestBuilder":
        """Have a paymaster pay the fees."""
        self.paymaster_params = paymaster_params
        return self

    def add_factory_dep(self, bytecode: BytesLike) -> "TransactionRequestBuilder":
        """Publish a bytecode alongside the transaction."""
        self.factory_deps.append(as_bytes(bytecode))
        return self

    def build(self) -> TransactionRequest:
        """Build the (still partial) request."""
        if self.value is not None and self.value < 0:
            raise ValueError("value must be >= 0")
        return TransactionRequest(
            to=self.to,
            value=self.value,
            data=self.data,
            gas_limit=self.gas_limit,
            gas_price=self.gas_price,
            max_fee_per_gas=self.max_fee_per_gas,
            max_priority_fee_per_gas=self.max_priority_fee_per_gas,
            nonce=self.nonce,
            gas_per_pubdata=self.gas_per_pubdata,
            paymaster_params=self.paymaster_params,
            factory_deps=tuple(self.factory_deps),
        )


class TransactionBuilder:
    """Populates requests sent from one account address."""

    def __init__(self, provider: ChainProvider, address: BytesLike):
        self.provider = provider
        self.address = as_address(address)
        self._chain_id: Optional[int] = None

    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.provider.get_chain_id()
        return self._chain_id

    def check_sender(self, transaction: TransactionRequest) -> None:
        if transaction.sender and bytes(transaction.sender) != bytes(self.address):
            raise SignerMismatch(
                to_checksum_address(self.address), to_checksum_address(transaction.sender)
            )

    async def populate(self, transaction: TransactionRequest) -> TransactionRequest:
        """
        Fill every unset field of ``transaction``.

        Explicit values, including zeros, are left untouched. Chain queries
        are only made for fields that are ``None``; the sender check happens
        before any of them.

        Raises:
            SignerMismatch: If ``transaction.sender`` is another address
        """
        self.check_sender(transaction)

        populated = replace(
            transaction,
            type=EIP712_TX_TYPE,
            sender=self.address,
            data=transaction.data if transaction.data is not None else b"",
            value=transaction.value if transaction.value is not None else 0,
            chain_id=(
                transaction.chain_id
                if transaction.chain_id is not None
                else await self.get_chain_id()
            ),
            gas_per_pubdata=(
                transaction.gas_per_pubdata
                if transaction.gas_per_pubdata is not None
                else DEFAULT_GAS_PER_PUBDATA_LIMIT
            ),
        )
        if populated.gas_price is None and populated.max_fee_per_gas is None:
            populated = replace(populated, gas_price=await self.provider.get_gas_price())
        if populated.nonce is None:
            populated = replace(
                populated,
                nonce=await self.provider.get_transaction_count(self.address, "pending"),
            )
        if populated.gas_limit is None:
            populated = replace(populated, gas_limit=await self.provider.estimate_gas(populated))

        logger.debug(
            "populated transaction nonce=%d gas_limit=%d", populated.nonce, populated.gas_limit
        )
        return populated
