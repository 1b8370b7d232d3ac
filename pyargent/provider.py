"""Chain access for account operations.

Every method of ``ChainProvider`` is a suspension point. Nothing here retries
a submission: a broadcast transaction cannot be taken back, and resending a
signed transaction risks double submission.
"""

import asyncio
import logging
import time
from typing import Any, Protocol

from eth_utils import to_checksum_address
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from .errors import DestinationRejected, TimestampWaitTimeout
from .models import TransactionRequest
from .types import BytesLike, as_address

logger = logging.getLogger(__name__)


class ChainProvider(Protocol):
    """Opaque ledger access consumed by the signer and account helpers."""

    async def get_chain_id(self) -> int: ...

    async def get_gas_price(self) -> int: ...

    async def get_transaction_count(self, address: BytesLike, block: str = "latest") -> int: ...

    async def estimate_gas(self, transaction: TransactionRequest) -> int: ...

    async def get_block(self, identifier: Any = "latest") -> dict: ...

    async def call(self, to: BytesLike, data: bytes) -> bytes: ...

    async def send_raw_transaction(self, raw: bytes) -> bytes: ...

    async def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: float = 120) -> dict: ...


class Web3ChainProvider:
    """``ChainProvider`` backed by ``web3.AsyncWeb3``."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    @classmethod
    def from_url(cls, rpc_url: str) -> "Web3ChainProvider":
        return cls(AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url)))

    async def get_chain_id(self) -> int:
        return await self.w3.eth.chain_id

    async def get_gas_price(self) -> int:
        return await self.w3.eth.gas_price

    async def get_transaction_count(self, address: BytesLike, block: str = "latest") -> int:
        return await self.w3.eth.get_transaction_count(
            to_checksum_address(as_address(address)), block
        )

    async def estimate_gas(self, transaction: TransactionRequest) -> int:
        # eth_estimateGas is called raw so the eip712Meta block reaches the node
        response = await self.w3.provider.make_request(
            "eth_estimateGas", [transaction.to_rpc_dict()]
        )
        if "error" in response:
            raise DestinationRejected(_error_message(response["error"]))
        return int(response["result"], 16)

    async def get_block(self, identifier: Any = "latest") -> dict:
        return dict(await self.w3.eth.get_block(identifier))

    async def call(self, to: BytesLike, data: bytes) -> bytes:
        try:
            return bytes(
                await self.w3.eth.call(
                    {"to": to_checksum_address(as_address(to)), "data": data}
                )
            )
        except ContractLogicError as exc:
            raise DestinationRejected(str(exc)) from exc

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        try:
            return bytes(await self.w3.eth.send_raw_transaction(raw))
        except (ContractLogicError, Web3RPCError) as exc:
            # node-side validation failures, e.g. an invalid account signature
            raise DestinationRejected(getattr(exc, "message", None) or str(exc)) from exc

    async def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: float = 120) -> dict:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as exc:
            raise TimestampWaitTimeout(
                f"transaction {tx_hash.hex()} not mined within {timeout}s"
            ) from exc
        return dict(receipt)


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


async def wait_for_receipt(provider: ChainProvider, tx_hash: bytes, timeout: float = 120) -> dict:
    """Wait for a receipt and surface a reverted transaction as ``DestinationRejected``."""
    receipt = await provider.wait_for_transaction_receipt(tx_hash, timeout=timeout)
    if receipt.get("status") == 0:
        raise DestinationRejected(f"transaction {tx_hash.hex()} reverted", tx_hash=tx_hash)
    return receipt


async def wait_for_timestamp(
    provider: ChainProvider,
    timestamp: int,
    timeout: float = 60,
    poll_interval: float = 1,
) -> dict:
    """
    Wait until the chain produces a block with ``block.timestamp >= timestamp``.

    Chain time is used, never the local clock. Fails with
    ``TimestampWaitTimeout`` right away when the target lies further ahead
    than ``timeout`` seconds of chain time, and after ``timeout`` seconds of
    polling otherwise.

    Returns:
        The first observed block reaching the target
    """
    block = await provider.get_block("latest")
    if block["timestamp"] >= timestamp:
        return block
    if timestamp - block["timestamp"] > timeout:
        raise TimestampWaitTimeout(
            f"target timestamp {timestamp} is {timestamp - block['timestamp']}s ahead "
            f"of chain time, more than the {timeout}s bound"
        )

    deadline = time.monotonic() + timeout
    logger.debug("waiting for block timestamp %d (now %d)", timestamp, block["timestamp"])
    while time.monotonic() < deadline:
        await asyncio.sleep(poll_interval)
        block = await provider.get_block("latest")
        if block["timestamp"] >= timestamp:
            return block
    raise TimestampWaitTimeout(
        f"no block reached timestamp {timestamp} within {timeout}s "
        f"(last seen {block['timestamp']})"
    )


async def latest_timestamp(provider: ChainProvider) -> int:
    block = await provider.get_block("latest")
    return block["timestamp"]

