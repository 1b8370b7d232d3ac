"""Escape (time-delayed recovery) rules as observed from the client.

The account contract stores an ``Escape`` and derives its status from the
block timestamp each time it is read. ``escape_status`` does the same on the
client; the result is never cached.

``EscapeStateMachine`` mirrors the contract's recovery rules so tooling and
tests can predict whether a trigger, override, completion or cancellation
will be accepted before submitting it:

- the owner escapes the guardian, the guardian (or guardian backup) escapes
  the owner; nobody escapes themselves
- the owner may override any pending escape at once
- the guardian may re-trigger over a pending owner escape, but overrides a
  guardian escape only once it has expired
- guardian-triggered owner escapes are counted; past ``max_attempts`` they
  are refused until an owner action or a completed escape resets the count
- overriding an expired escape of either type clears the count before the
  new trigger is counted
- completion requires the ``Active`` status and the stored escape type
- cancellation needs owner and guardian together
"""

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import function_signature_to_4byte_selector, keccak

from .errors import (
    EscapeOverrideForbidden,
    InsufficientSignatories,
    InvalidEscapeState,
    MaxEscapeAttemptsExceeded,
)
from .models import NO_ESCAPE, Escape, EscapeStatus, EscapeType, Signature
from .provider import ChainProvider, wait_for_timestamp
from .types import ZERO_ADDRESS, Address, BytesLike, as_address

logger = logging.getLogger(__name__)


def escape_status(escape: Escape, now: int, expiry_period: int) -> EscapeStatus:
    """Status of ``escape`` at chain time ``now``."""
    if escape.is_none:
        return EscapeStatus.NONE
    if now < escape.active_at:
        return EscapeStatus.TRIGGERED
    if now < escape.active_at + expiry_period:
        return EscapeStatus.ACTIVE
    return EscapeStatus.EXPIRED


def status_timestamp(escape: Escape, status: EscapeStatus, expiry_period: int) -> int:
    """First chain timestamp at which ``escape`` reaches ``status``."""
    if escape.is_none:
        raise InvalidEscapeState("no escape is pending")
    if status == EscapeStatus.ACTIVE:
        return escape.active_at
    if status == EscapeStatus.EXPIRED:
        return escape.active_at + expiry_period
    raise ValueError(f"cannot wait for status {status.name}")


async def wait_for_escape_status(
    provider: ChainProvider,
    escape: Escape,
    status: EscapeStatus,
    expiry_period: int,
    timeout: float = 60,
) -> dict:
    """Wait until chain time moves ``escape`` into ``status`` (Active or Expired)."""
    target = status_timestamp(escape, status, expiry_period)
    return await wait_for_timestamp(provider, target, timeout=timeout)


def signer_signature_hash(
    method_signature: str,
    chain_id: int,
    account: BytesLike,
    nonce: int,
    new_signer: BytesLike,
) -> bytes:
    """
    keccak256(abi.encodePacked(bytes4 selector, uint256 chainId, address account,
    uint256 nonce, address newSigner))
    """
    return keccak(
        function_signature_to_4byte_selector(method_signature)
        + chain_id.to_bytes(32, "big")
        + bytes(as_address(account))
        + nonce.to_bytes(32, "big")
        + bytes(as_address(new_signer))
    )


async def build_signer_signature(
    provider: ChainProvider,
    new_signer_private_key,
    account: BytesLike,
    method_signature: str,
    increment: int = 1,
) -> bytes:
    """
    Signature by which a new signer accepts being set on ``account``.

    The nonce is the account's transaction count plus ``increment``, i.e. the
    nonce the account will have once the transaction carrying this signature
    is validated.
    """
    new_signer = Account.from_key(new_signer_private_key)
    chain_id = await provider.get_chain_id()
    nonce = await provider.get_transaction_count(account, "latest")
    msg_hash = signer_signature_hash(
        method_signature, chain_id, account, nonce + increment, new_signer.address
    )
    signed = new_signer.sign_message(encode_defunct(primitive=msg_hash))
    return Signature(r=signed.r, s=signed.s, v=signed.v).to_bytes()


class Party(enum.Enum):
    OWNER = "owner"
    GUARDIAN = "guardian"
    GUARDIAN_BACKUP = "guardian_backup"


@dataclass
class EscapeStateMachine:
    """Executable model of an account's signers, escape and attempt counter."""

    owner: Address
    guardian: Address
    security_period: int
    expiry_period: int
    max_attempts: int
    guardian_backup: Address = ZERO_ADDRESS
    escape: Escape = NO_ESCAPE
    guardian_escape_attempts: int = 0
    events: list = field(default_factory=list)

    @classmethod
    def create(
        cls,
        owner: BytesLike,
        guardian: BytesLike,
        security_period: int,
        expiry_period: int,
        max_attempts: int,
        guardian_backup: Optional[BytesLike] = None,
    ) -> "EscapeStateMachine":
        return cls(
            owner=as_address(owner),
            guardian=as_address(guardian),
            guardian_backup=as_address(guardian_backup) if guardian_backup else ZERO_ADDRESS,
            security_period=security_period,
            expiry_period=expiry_period,
            max_attempts=max_attempts,
        )

    @property
    def has_guardian(self) -> bool:
        return bytes(self.guardian) != bytes(ZERO_ADDRESS)

    def status(self, now: int) -> EscapeStatus:
        return escape_status(self.escape, now, self.expiry_period)

    def _emit(self, name: str, *args) -> None:
        self.events.append((name, *args))
        logger.info("escape event %s %s", name, args)

    def _clear_escape(self) -> None:
        self.escape = NO_ESCAPE

    def _cancel_pending(self) -> None:
        if not self.escape.is_none:
            self._clear_escape()
            self._emit("EscapeCanceled")

    def _require_guardian(self) -> None:
        if not self.has_guardian:
            raise InvalidEscapeState("guardian required")

    def _require_joint(self, approvals: Iterable[Party]) -> None:
        approvals = set(approvals)
        required = {Party.OWNER, Party.GUARDIAN} if self.has_guardian else {Party.OWNER}
        if Party.GUARDIAN_BACKUP in approvals:
            approvals.add(Party.GUARDIAN)
        if not required <= approvals:
            missing = ", ".join(sorted(p.value for p in required - approvals))
            raise InsufficientSignatories(f"missing signature from {missing}")

    def trigger_escape(self, caller: Party, new_signer: BytesLike, now: int) -> Escape:
        """
        Start an escape of the party opposite to ``caller``.

        Raises:
            InvalidEscapeState: If the account has no guardian
            EscapeOverrideForbidden: If the guardian tries to override an unexpired guardian escape
            MaxEscapeAttemptsExceeded: If the guardian has used up its attempts
        """
        self._require_guardian()
        new_signer = as_address(new_signer)
        if bytes(new_signer) == bytes(ZERO_ADDRESS):
            raise ValueError("new signer must not be the zero address")

        if caller == Party.OWNER:
            escape_type = EscapeType.GUARDIAN
            self.guardian_escape_attempts = 0
        else:
            escape_type = EscapeType.OWNER
            if (
                self.escape.escape_type == EscapeType.GUARDIAN
                and self.status(now) != EscapeStatus.EXPIRED
            ):
                raise EscapeOverrideForbidden("cannot override a pending guardian escape")
            if self.status(now) == EscapeStatus.EXPIRED:
                # overriding an expired escape starts a fresh count
                self.guardian_escape_attempts = 0
            if self.guardian_escape_attempts >= self.max_attempts:
                raise MaxEscapeAttemptsExceeded(
                    f"guardian already triggered {self.guardian_escape_attempts} escapes"
                )
            self.guardian_escape_attempts += 1

        self._cancel_pending()
        self.escape = Escape(
            escape_type=escape_type,
            active_at=now + self.security_period,
            new_signer=new_signer,
        )
        event = "EscapeGuardianTriggerred" if escape_type == EscapeType.GUARDIAN else "EscapeOwnerTriggerred"
        self._emit(event, self.escape.active_at, bytes(new_signer))
        return self.escape

    def trigger_escape_guardian(self, new_guardian: BytesLike, now: int) -> Escape:
        return self.trigger_escape(Party.OWNER, new_guardian, now)

    def trigger_escape_owner(
        self, new_owner: BytesLike, now: int, caller: Party = Party.GUARDIAN
    ) -> Escape:
        if caller == Party.OWNER:
            raise InvalidEscapeState("the owner cannot escape itself")
        return self.trigger_escape(caller, new_owner, now)

    def _complete(self, escape_type: EscapeType, now: int) -> Address:
        if self.status(now) != EscapeStatus.ACTIVE:
            raise InvalidEscapeState(f"inactive escape ({self.status(now).name})")
        if self.escape.escape_type != escape_type:
            raise InvalidEscapeState(
                f"invalid escape type {self.escape.escape_type.name}, expected {escape_type.name}"
            )
        new_signer = self.escape.new_signer
        self._clear_escape()
        self.guardian_escape_attempts = 0
        return new_signer

    def escape_guardian(self, now: int) -> Address:
        """Complete an active guardian escape; the owner installs the new guardian."""
        self.guardian = self._complete(EscapeType.GUARDIAN, now)
        self._emit("GuardianEscaped", bytes(self.guardian))
        return self.guardian

    def escape_owner(self, now: int) -> Address:
        """Complete an active owner escape; the guardian installs the new owner."""
        self.owner = self._complete(EscapeType.OWNER, now)
        self._emit("OwnerEscaped", bytes(self.owner))
        return self.owner

    def cancel_escape(self, approvals: Iterable[Party]) -> None:
        """
        Cancel the pending escape with owner and guardian approval.

        Raises:
            InsufficientSignatories: If either approval is missing
            InvalidEscapeState: If there is no escape to cancel
        """
        self._require_joint(approvals)
        if self.escape.is_none:
            raise InvalidEscapeState("no escape to cancel")
        self._cancel_pending()

    def _change_signer(self, approvals: Iterable[Party]) -> None:
        self._require_joint(approvals)
        self._cancel_pending()
        self.guardian_escape_attempts = 0

    def change_owner(self, new_owner: BytesLike, approvals: Iterable[Party]) -> None:
        new_owner = as_address(new_owner)
        if bytes(new_owner) == bytes(ZERO_ADDRESS):
            raise ValueError("new owner must not be the zero address")
        self._change_signer(approvals)
        self.owner = new_owner
        self._emit("OwnerChanged", bytes(new_owner))

    def change_guardian(self, new_guardian: BytesLike, approvals: Iterable[Party]) -> None:
        self._change_signer(approvals)
        self.guardian = as_address(new_guardian)
        self._emit("GuardianChanged", bytes(self.guardian))

    def change_guardian_backup(
        self, new_guardian_backup: BytesLike, approvals: Iterable[Party]
    ) -> None:
        self._require_guardian()
        self._change_signer(approvals)
        self.guardian_backup = as_address(new_guardian_backup)
        self._emit("GuardianBackupChanged", bytes(self.guardian_backup))

    def snapshot(self) -> "EscapeStateMachine":
        return replace(self, events=list(self.events))
