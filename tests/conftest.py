"""Shared fixtures: signatory keys and an in-memory chain provider."""

from unittest.mock import AsyncMock

import pytest
from eth_account import Account

from pyargent import RealKey

from helpers import CHAIN_ID, GAS_LIMIT, GAS_PRICE, GUARDIAN_KEY, NONCE, OWNER_KEY


@pytest.fixture
def owner():
    return RealKey.from_key(OWNER_KEY)


@pytest.fixture
def guardian():
    return RealKey.from_key(GUARDIAN_KEY)


@pytest.fixture
def owner_account():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def provider():
    """Chain provider answering every query from fixed values."""
    provider = AsyncMock()
    provider.get_chain_id.return_value = CHAIN_ID
    provider.get_gas_price.return_value = GAS_PRICE
    provider.get_transaction_count.return_value = NONCE
    provider.estimate_gas.return_value = GAS_LIMIT
    provider.get_block.return_value = {"number": 1, "timestamp": 1_000}
    provider.send_raw_transaction.return_value = b"\xab" * 32
    provider.wait_for_transaction_receipt.return_value = {"status": 1, "logs": []}
    return provider
