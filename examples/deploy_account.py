"""
Example: Deploy Account

Predict, deploy and fund an Argent account for a fresh owner and guardian.

Reads the implementation and factory addresses from config/<network>.json
(or deploys them on the local network) and the compiled contracts from
artifacts-zk/.

Usage:
    ARGENT_NETWORK=goerli RPC_URL=... PRIVATE_KEY=0x... python examples/deploy_account.py
"""

import asyncio
import logging

from eth_account import Account

from pyargent import (
    AddressPredictor,
    WalletDeployer,
    Web3ChainProvider,
    deploy_account,
    load_account_context,
    load_settings,
)
from pyargent.infrastructure import load_artifacts

logging.basicConfig(level=logging.INFO)


async def main():
    settings = load_settings()
    if not settings.rpc_url or not settings.private_key:
        raise ValueError("RPC_URL and PRIVATE_KEY must be set")

    provider = Web3ChainProvider.from_url(settings.rpc_url)
    deployer = WalletDeployer(provider, settings.private_key)
    context = await load_account_context(
        settings.network, load_artifacts("artifacts-zk"), deployer
    )

    owner = Account.create()
    guardian = Account.create()
    salt = bytes(32)

    predicted = AddressPredictor(context).predict(salt, owner.address, guardian.address)
    print(f"Predicted account address: {predicted}")

    account = await deploy_account(
        context, deployer, provider, owner.address, guardian.address, salt=salt, funds=10**14
    )
    print(f"Account deployed to {account.address}")
    print(f"Owner key: {owner.key.hex()}")
    print(f"Guardian key: {guardian.key.hex()}")


if __name__ == "__main__":
    asyncio.run(main())
