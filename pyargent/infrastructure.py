"""Argent infrastructure: compiled artifacts, implementation and factory.

An ``AccountContext`` is built either from the persisted network
configuration or by deploying a fresh implementation and factory. It is
returned to the caller and never cached at module level.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from eth_abi import encode
from eth_utils import to_checksum_address

from . import contracts
from .account import get_deployed_contracts
from .config import DEFAULT_CONFIG_DIR, LOCAL_NETWORK, load_config, save_config
from .errors import ArgentError, ConfigError
from .models import AccountContext, Artifact, ArgentArtifacts, TransactionRequest
from .provider import ChainProvider, wait_for_receipt
from .signatory import RealKey
from .signer import ArgentSigner
from .types import BytesLike, as_address, as_bytes, as_optional_address

logger = logging.getLogger(__name__)

IMPLEMENTATION_CONTRACT = "ArgentAccount"
FACTORY_CONTRACT = "AccountFactory"
PROXY_CONTRACT = "Proxy"
TEST_DAPP_CONTRACT = "TestDapp"


class Deployer(Protocol):
    """Funded sender able to deploy contracts and submit plain calls."""

    address: str

    async def deploy(
        self, artifact: Artifact, constructor_args: Sequence = (), factory_deps: Sequence[bytes] = ()
    ) -> str: ...

    async def send_transaction(self, to: BytesLike, data: bytes, value: int = 0) -> dict: ...


def load_artifact_file(path: Union[str, Path]) -> Artifact:
    """Read a compiled zkSync artifact (``contractName``, ``abi``, ``bytecode`` JSON)."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    try:
        return Artifact(
            contract_name=raw["contractName"],
            abi=raw["abi"],
            bytecode=as_bytes(raw["bytecode"]),
            source_name=raw.get("sourceName", ""),
        )
    except KeyError as exc:
        raise ArgentError(f"artifact {path} has no {exc.args[0]} entry") from exc


def find_artifact(artifacts_dir: Union[str, Path], contract_name: str) -> Path:
    matches = sorted(
        p for p in Path(artifacts_dir).rglob(f"{contract_name}.json") if ".dbg." not in p.name
    )
    if not matches:
        raise ArgentError(f"no artifact for {contract_name} under {artifacts_dir}")
    return matches[0]


def load_artifacts(artifacts_dir: Union[str, Path]) -> ArgentArtifacts:
    def load(name: str) -> Artifact:
        return load_artifact_file(find_artifact(artifacts_dir, name))

    # TestDapp is only compiled in development checkouts
    test_dapp: Optional[Artifact] = None
    try:
        test_dapp_path = find_artifact(artifacts_dir, TEST_DAPP_CONTRACT)
    except ArgentError:
        logger.debug("No %s artifact under %s", TEST_DAPP_CONTRACT, artifacts_dir)
    else:
        test_dapp = load_artifact_file(test_dapp_path)

    return ArgentArtifacts(
        implementation=load(IMPLEMENTATION_CONTRACT),
        factory=load(FACTORY_CONTRACT),
        proxy=load(PROXY_CONTRACT),
        test_dapp=test_dapp,
    )


def encode_constructor_args(artifact: Artifact, args: Sequence = ()) -> bytes:
    """ABI-encode ``args`` against the constructor declared in the artifact ABI."""
    constructor = next((item for item in artifact.abi if item.get("type") == "constructor"), None)
    inputs = constructor.get("inputs", []) if constructor else []
    if len(inputs) != len(args):
        raise ValueError(
            f"{artifact.contract_name} constructor takes {len(inputs)} arguments, got {len(args)}"
        )
    if not inputs:
        return b""
    return encode([item["type"] for item in inputs], list(args))


class WalletDeployer:
    """
    ``Deployer`` backed by a single externally owned key.

    An EOA on zkSync signs the same typed-data digest as an account, with a
    single 65-byte signature, so the account signer is reused as is.
    """

    def __init__(self, provider: ChainProvider, private_key, timeout: float = 120):
        key = RealKey.from_key(private_key)
        self.address = key.address
        self.provider = provider
        self.timeout = timeout
        self.signer = ArgentSigner(key.address, provider, [key])

    async def send_transaction(
        self, to: BytesLike, data: bytes, value: int = 0, factory_deps: Sequence[bytes] = ()
    ) -> dict:
        request = TransactionRequest.create(
            to=to, value=value, data=data, factory_deps=tuple(factory_deps)
        )
        tx_hash = await self.signer.send_transaction(request, wait=False)
        return await wait_for_receipt(self.provider, tx_hash, timeout=self.timeout)

    async def deploy(
        self, artifact: Artifact, constructor_args: Sequence = (), factory_deps: Sequence[bytes] = ()
    ) -> str:
        calldata = contracts.encode_create(
            artifact.bytecode_hash, encode_constructor_args(artifact, constructor_args)
        )
        receipt = await self.send_transaction(
            contracts.CONTRACT_DEPLOYER_ADDRESS,
            calldata,
            factory_deps=[artifact.bytecode, *factory_deps],
        )
        for deployed in get_deployed_contracts(receipt):
            if deployed.bytecode_hash == artifact.bytecode_hash:
                return deployed.address
        raise ArgentError(f"{artifact.contract_name} deployment emitted no ContractDeployed record")


async def deploy_implementation(
    deployer: Deployer, artifacts: ArgentArtifacts, escape_security_period: int
) -> str:
    address = await deployer.deploy(artifacts.implementation, [escape_security_period])
    logger.info("Account implementation deployed to %s", address)
    return address


async def deploy_factory(deployer: Deployer, artifacts: ArgentArtifacts) -> str:
    """Deploy the factory; the proxy bytecode travels as a factory dependency."""
    address = await deployer.deploy(
        artifacts.factory,
        [artifacts.proxy.bytecode_hash],
        factory_deps=[artifacts.proxy.bytecode],
    )
    logger.info("Account factory deployed to %s", address)
    return address


async def deploy_infrastructure(
    deployer: Deployer, artifacts: ArgentArtifacts, escape_security_period: int
) -> AccountContext:
    implementation = await deploy_implementation(deployer, artifacts, escape_security_period)
    factory = await deploy_factory(deployer, artifacts)
    return AccountContext(
        implementation=as_address(implementation),
        factory=as_address(factory),
        artifacts=artifacts,
        escape_security_period=escape_security_period,
    )


async def deploy_test_dapp(
    deployer: Deployer,
    artifacts: ArgentArtifacts,
    network: str,
    config_dir: Union[str, Path] = DEFAULT_CONFIG_DIR,
) -> str:
    """
    Deploy the TestDapp call target and record it as ``testDapp`` in the
    network configuration.

    Raises:
        ArgentError: If no TestDapp artifact was loaded
    """
    if artifacts.test_dapp is None:
        raise ArgentError(f"no {TEST_DAPP_CONTRACT} artifact loaded")
    address = await deployer.deploy(artifacts.test_dapp)
    logger.info("Test dapp deployed to %s", address)
    save_config(network, {"testDapp": address}, config_dir)
    return address


def context_from_config(config: dict, artifacts: ArgentArtifacts) -> AccountContext:
    """
    Build the context of an already deployed infrastructure.

    Raises:
        ConfigError: If the implementation or factory address is missing
    """
    if not config.get("implementation") or not config.get("factory"):
        raise ConfigError("Infrastructure not deployed")
    return AccountContext(
        implementation=as_address(config["implementation"]),
        factory=as_address(config["factory"]),
        artifacts=artifacts,
        escape_security_period=config.get("escapeSecurityPeriodInSeconds"),
        test_dapp=as_optional_address(config.get("testDapp")),
    )


async def load_account_context(
    network: str,
    artifacts: ArgentArtifacts,
    deployer: Optional[Deployer] = None,
    config_dir: Union[str, Path] = DEFAULT_CONFIG_DIR,
) -> AccountContext:
    """
    Context for ``network``: read from its configuration, or freshly
    deployed on the local network when a deployer is given.
    """
    config = load_config(network, config_dir)
    if network == LOCAL_NETWORK and deployer is not None:
        period = config.get("escapeSecurityPeriodInSeconds")
        if period is None:
            raise ConfigError("escapeSecurityPeriodInSeconds is required to deploy")
        return await deploy_infrastructure(deployer, artifacts, period)
    context = context_from_config(config, artifacts)
    logger.info(
        "Using implementation %s and factory %s",
        to_checksum_address(context.implementation),
        to_checksum_address(context.factory),
    )
    return context
