"""
Example: Outside Escape

Have a relayer submit a guardian-signed ``triggerEscapeOwner`` on the
account's behalf through ``executeTransactionFromOutside``, then wait for
the escape to become active and complete it.

Usage:
    RPC_URL=... ACCOUNT=0x... GUARDIAN_KEY=0x... PRIVATE_KEY=0x... NEW_OWNER=0x... \
        python examples/outside_escape.py
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

from pyargent import (
    ArgentAccount,
    ArgentSigner,
    EscapeStatus,
    OutsideTransactionBuilder,
    RealKey,
    TransactionRequestBuilder,
    WalletDeployer,
    Web3ChainProvider,
    wait_for_escape_status,
)
from pyargent.contracts import encode_trigger_escape_owner, get_escape_expiry_period

load_dotenv()
logging.basicConfig(level=logging.INFO)


async def main():
    provider = Web3ChainProvider.from_url(os.environ["RPC_URL"])
    account_address = os.environ["ACCOUNT"]
    guardian = RealKey.from_key(os.environ["GUARDIAN_KEY"])
    relayer = WalletDeployer(provider, os.environ["PRIVATE_KEY"])

    signer = ArgentSigner(account_address, provider, [guardian])
    request = (
        TransactionRequestBuilder()
        .set_to(account_address)
        .set_data(encode_trigger_escape_owner(os.environ["NEW_OWNER"]))
        .build()
    )
    outside = await OutsideTransactionBuilder(signer).build(request, relayer.address)

    receipt = await relayer.send_transaction(account_address, outside.encode_call())
    print(f"Escape triggered in block {receipt['blockNumber']}")

    account = ArgentAccount(account_address, provider).connect([guardian])
    escape, status = await account.get_escape()
    print(f"Escape status: {status.name}, active at {escape.active_at}")

    expiry_period = await get_escape_expiry_period(provider, account_address)
    await wait_for_escape_status(provider, escape, EscapeStatus.ACTIVE, expiry_period, timeout=600)
    await account.escape_owner()
    print("Owner escaped")


if __name__ == "__main__":
    asyncio.run(main())
