"""Argent account handles, address prediction and proxy deployment."""

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

from eth_account import Account
from eth_utils import keccak, to_checksum_address

from . import contracts
from .address import compute_account_address
from .errors import AddressPredictionMismatch, ArgentError
from .escape import build_signer_signature
from .models import AccountContext, Call, Escape, EscapeStatus, TransactionRequest
from .provider import ChainProvider
from .signatory import Signatory
from .signer import ArgentSigner
from .types import ZERO_ADDRESS, BytesLike, as_address, as_hash32

if TYPE_CHECKING:
    from .infrastructure import Deployer

logger = logging.getLogger(__name__)

CONTRACT_DEPLOYED_TOPIC = keccak(text="ContractDeployed(address,bytes32,address)")


@dataclass(frozen=True)
class DeployedContract:
    deployer: str
    bytecode_hash: bytes
    address: str


def _topic_bytes(topic) -> bytes:
    if isinstance(topic, str):
        return bytes.fromhex(topic[2:] if topic.startswith("0x") else topic)
    return bytes(topic)


def get_deployed_contracts(receipt: dict) -> list[DeployedContract]:
    """Extract ``ContractDeployed`` records emitted by the deployer system contract."""
    deployer = bytes(as_address(contracts.CONTRACT_DEPLOYER_ADDRESS))
    deployed = []
    for log in receipt.get("logs", []):
        if bytes(as_address(log["address"])) != deployer:
            continue
        topics = [_topic_bytes(t) for t in log["topics"]]
        if len(topics) != 4 or topics[0] != CONTRACT_DEPLOYED_TOPIC:
            continue
        deployed.append(
            DeployedContract(
                deployer=to_checksum_address(topics[1][12:]),
                bytecode_hash=topics[2],
                address=to_checksum_address(topics[3][12:]),
            )
        )
    return deployed


class AddressPredictor:
    """
    Predicts account proxy addresses for a deployed factory.

    The client-side computation, the factory's own ``computeCreate2Address``
    and the address recorded at deployment must all agree. Any disagreement
    means the artifacts or configuration do not match what is deployed, and
    is raised as ``AddressPredictionMismatch``.
    """

    def __init__(self, context: AccountContext):
        self.context = context

    def predict(self, salt: BytesLike, owner: BytesLike, guardian: BytesLike) -> str:
        return compute_account_address(
            factory=self.context.factory,
            proxy_bytecode_hash=self.context.proxy_bytecode_hash,
            salt=salt,
            implementation=self.context.implementation,
            owner=owner,
            guardian=guardian,
        )

    async def predict_on_chain(
        self, provider: ChainProvider, salt: BytesLike, owner: BytesLike, guardian: BytesLike
    ) -> str:
        return await contracts.factory_compute_address(
            provider, self.context.factory, salt, self.context.implementation, owner, guardian
        )

    async def verify(
        self, provider: ChainProvider, salt: BytesLike, owner: BytesLike, guardian: BytesLike
    ) -> str:
        """Return the predicted address after checking it against the factory."""
        predicted = self.predict(salt, owner, guardian)
        on_chain = await self.predict_on_chain(provider, salt, owner, guardian)
        if predicted != on_chain:
            raise AddressPredictionMismatch(predicted, on_chain, "factory")
        return predicted

    def verify_deployment(self, receipt: dict, predicted: str) -> str:
        deployed = get_deployed_contracts(receipt)
        if not deployed:
            raise ArgentError("deployment receipt holds no ContractDeployed record")
        actual = deployed[0].address
        if actual != predicted:
            raise AddressPredictionMismatch(predicted, actual, "deployment receipt")
        return actual


class ArgentAccount:
    """
    Handle on a deployed account, optionally connected to a signer.

    State-changing methods send a transaction signed by the connected
    signatories and return its hash once mined.
    """

    def __init__(
        self,
        address: BytesLike,
        provider: ChainProvider,
        signer: Optional[ArgentSigner] = None,
    ):
        self.address = to_checksum_address(as_address(address))
        self.provider = provider
        self.signer = signer

    def connect(self, signatories: Sequence[Signatory]) -> "ArgentAccount":
        return ArgentAccount(
            self.address, self.provider, ArgentSigner(self.address, self.provider, signatories)
        )

    def _require_signer(self) -> ArgentSigner:
        if self.signer is None:
            raise ArgentError(f"account {self.address} is not connected to signatories")
        return self.signer

    async def _send_self_call(self, data: bytes) -> bytes:
        request = TransactionRequest(to=as_address(self.address), data=data)
        return await self._require_signer().send_transaction(request)

    async def change_owner(self, new_owner_private_key) -> bytes:
        """Replace the owner; the new owner proves key possession with a signature."""
        new_owner = Account.from_key(new_owner_private_key)
        signature = await build_signer_signature(
            self.provider,
            new_owner_private_key,
            self.address,
            contracts.CHANGE_OWNER_SIGNATURE,
        )
        return await self._send_self_call(contracts.encode_change_owner(new_owner.address, signature))

    async def change_guardian(self, new_guardian: BytesLike) -> bytes:
        return await self._send_self_call(contracts.encode_change_guardian(new_guardian))

    async def change_guardian_backup(self, new_guardian_backup: BytesLike) -> bytes:
        return await self._send_self_call(
            contracts.encode_change_guardian_backup(new_guardian_backup)
        )

    async def trigger_escape_owner(self, new_owner: BytesLike) -> bytes:
        return await self._send_self_call(contracts.encode_trigger_escape_owner(new_owner))

    async def trigger_escape_guardian(self, new_guardian: BytesLike) -> bytes:
        return await self._send_self_call(contracts.encode_trigger_escape_guardian(new_guardian))

    async def escape_owner(self) -> bytes:
        return await self._send_self_call(contracts.encode_escape_owner())

    async def escape_guardian(self) -> bytes:
        return await self._send_self_call(contracts.encode_escape_guardian())

    async def cancel_escape(self) -> bytes:
        return await self._send_self_call(contracts.encode_cancel_escape())

    async def multicall(self, calls: Sequence[Call]) -> bytes:
        return await self._send_self_call(contracts.encode_multicall(calls))

    async def get_escape(self) -> tuple[Escape, EscapeStatus]:
        return await contracts.get_escape(self.provider, self.address)

    async def guardian_escape_attempts(self) -> int:
        return await contracts.get_guardian_escape_attempts(self.provider, self.address)

    async def is_valid_signature(self, msg_hash: BytesLike, signature: BytesLike) -> bool:
        return await contracts.is_valid_signature(self.provider, self.address, msg_hash, signature)


async def deploy_account(
    context: AccountContext,
    deployer: "Deployer",
    provider: ChainProvider,
    owner: BytesLike,
    guardian: BytesLike = ZERO_ADDRESS,
    salt: Optional[BytesLike] = None,
    signatories: Optional[Sequence[Signatory]] = None,
    funds: Optional[int] = None,
) -> ArgentAccount:
    """
    Deploy an account proxy through the factory and check its address.

    Args:
        context: Deployed implementation and factory
        deployer: Funded sender with ``send_transaction(to, data, value)``
        provider: Chain access for the returned account
        owner: Owner address
        guardian: Guardian address, zero for an account without guardian
        salt: 32-byte salt, random when omitted
        signatories: Connect the returned account to these signatories
        funds: Wei to transfer to the new account

    Raises:
        AddressPredictionMismatch: If the factory or the deployed address disagree
            with the predicted one
    """
    salt = as_hash32(salt) if salt is not None else os.urandom(32)
    predictor = AddressPredictor(context)
    predicted = await predictor.verify(provider, salt, owner, guardian)
    logger.info("Predicted account address %s", predicted)

    receipt = await deployer.send_transaction(
        context.factory,
        contracts.encode_deploy_proxy_account(salt, context.implementation, owner, guardian),
    )
    address = predictor.verify_deployment(receipt, predicted)
    logger.info("Account deployed to %s", address)

    if funds:
        await deployer.send_transaction(as_address(address), b"", value=funds)

    account = ArgentAccount(address, provider)
    if signatories:
        return account.connect(signatories)
    return account
