"""Keys, addresses and chain values shared across the test modules."""

from pyargent import TransactionRequest
from pyargent.models import EIP712_TX_TYPE

OWNER_KEY = "0x7eafbf9699b30c9ed8e3d6bbae57dd4f047544fde34d4c982dd591c2bee39ad0"
GUARDIAN_KEY = "0x" + "22" * 32

ACCOUNT_ADDRESS = "0xF0109fC8DF283027b6285cc889F5aA624EaC1F55"
DAPP_ADDRESS = "0x" + "d" * 40
CHAIN_ID = 270
GAS_PRICE = 250_000_000
NONCE = 7
GAS_LIMIT = 1_500_000


def populated_request(**overrides) -> TransactionRequest:
    """A fully populated request from the account to the dapp."""
    fields = dict(
        type=EIP712_TX_TYPE,
        sender=ACCOUNT_ADDRESS,
        to=DAPP_ADDRESS,
        value=0,
        data="0x12345678",
        chain_id=CHAIN_ID,
        gas_limit=1_000_000,
        nonce=3,
        gas_per_pubdata=50_000,
        gas_price=GAS_PRICE,
    )
    fields.update(overrides)
    return TransactionRequest.create(**fields)
