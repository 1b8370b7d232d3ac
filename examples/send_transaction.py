"""
Example: Send Transaction

Send a call from a deployed Argent account, signed by its owner and guardian.

Usage:
    RPC_URL=... ACCOUNT=0x... OWNER_KEY=0x... GUARDIAN_KEY=0x... \
        python examples/send_transaction.py
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

from pyargent import ArgentSigner, RealKey, TransactionRequestBuilder, Web3ChainProvider

load_dotenv()
logging.basicConfig(level=logging.INFO)


async def main():
    provider = Web3ChainProvider.from_url(os.environ.get("RPC_URL", "http://localhost:3050"))

    account = os.environ.get("ACCOUNT")
    owner_key = os.environ.get("OWNER_KEY")
    guardian_key = os.environ.get("GUARDIAN_KEY")
    if not account or not owner_key or not guardian_key:
        raise ValueError("ACCOUNT, OWNER_KEY and GUARDIAN_KEY must be set")

    signer = ArgentSigner(
        account, provider, [RealKey.from_key(owner_key), RealKey.from_key(guardian_key)]
    )

    request = (
        TransactionRequestBuilder()
        .set_to("0xF0109fC8DF283027b6285cc889F5aA624EaC1F55")
        .set_value(0)
        .build()
    )

    tx_hash = await signer.send_transaction(request)
    print(f"Confirmed transaction {tx_hash.hex()}")


if __name__ == "__main__":
    asyncio.run(main())
