"""Tests for the escape (recovery) rules."""

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from pyargent.errors import (
    EscapeOverrideForbidden,
    InsufficientSignatories,
    InvalidEscapeState,
    MaxEscapeAttemptsExceeded,
    TimestampWaitTimeout,
)
from pyargent.escape import (
    EscapeStateMachine,
    Party,
    build_signer_signature,
    escape_status,
    signer_signature_hash,
    status_timestamp,
    wait_for_escape_status,
)
from pyargent.models import NO_ESCAPE, Escape, EscapeStatus, EscapeType
from pyargent.types import ZERO_ADDRESS, as_address

from helpers import ACCOUNT_ADDRESS, CHAIN_ID, GUARDIAN_KEY, NONCE

OWNER = "0x" + "a" * 40
GUARDIAN = "0x" + "b" * 40
NEW_SIGNER = "0x" + "c" * 40
OTHER_SIGNER = "0x" + "e" * 40

SECURITY_PERIOD = 100
EXPIRY_PERIOD = 50
MAX_ATTEMPTS = 3
T0 = 1_000


@pytest.fixture
def machine():
    return EscapeStateMachine.create(
        owner=OWNER,
        guardian=GUARDIAN,
        security_period=SECURITY_PERIOD,
        expiry_period=EXPIRY_PERIOD,
        max_attempts=MAX_ATTEMPTS,
    )


def pending_escape(escape_type=EscapeType.OWNER, active_at=T0 + SECURITY_PERIOD) -> Escape:
    return Escape(escape_type=escape_type, active_at=active_at, new_signer=as_address(NEW_SIGNER))


class TestEscapeStatus:
    def test_no_escape(self):
        assert escape_status(NO_ESCAPE, T0, EXPIRY_PERIOD) == EscapeStatus.NONE

    @pytest.mark.parametrize(
        "now, expected",
        [
            (T0, EscapeStatus.TRIGGERED),
            (T0 + SECURITY_PERIOD - 1, EscapeStatus.TRIGGERED),
            (T0 + SECURITY_PERIOD, EscapeStatus.ACTIVE),
            (T0 + SECURITY_PERIOD + EXPIRY_PERIOD - 1, EscapeStatus.ACTIVE),
            (T0 + SECURITY_PERIOD + EXPIRY_PERIOD, EscapeStatus.EXPIRED),
        ],
    )
    def test_window_boundaries(self, now, expected):
        assert escape_status(pending_escape(), now, EXPIRY_PERIOD) == expected

    def test_status_timestamp(self):
        escape = pending_escape()
        assert status_timestamp(escape, EscapeStatus.ACTIVE, EXPIRY_PERIOD) == escape.active_at
        assert status_timestamp(escape, EscapeStatus.EXPIRED, EXPIRY_PERIOD) == (
            escape.active_at + EXPIRY_PERIOD
        )

    def test_status_timestamp_without_escape(self):
        with pytest.raises(InvalidEscapeState):
            status_timestamp(NO_ESCAPE, EscapeStatus.ACTIVE, EXPIRY_PERIOD)


class TestTrigger:
    def test_guardian_triggers_owner_escape(self, machine):
        escape = machine.trigger_escape_owner(NEW_SIGNER, T0)
        assert escape.escape_type == EscapeType.OWNER
        assert escape.active_at == T0 + SECURITY_PERIOD
        assert machine.status(T0) == EscapeStatus.TRIGGERED
        assert machine.guardian_escape_attempts == 1
        assert machine.events[-1][0] == "EscapeOwnerTriggerred"

    def test_owner_triggers_guardian_escape(self, machine):
        escape = machine.trigger_escape_guardian(NEW_SIGNER, T0)
        assert escape.escape_type == EscapeType.GUARDIAN
        assert machine.guardian_escape_attempts == 0

    def test_owner_cannot_escape_itself(self, machine):
        with pytest.raises(InvalidEscapeState):
            machine.trigger_escape_owner(NEW_SIGNER, T0, caller=Party.OWNER)

    def test_guardian_backup_triggers_owner_escape(self, machine):
        escape = machine.trigger_escape_owner(NEW_SIGNER, T0, caller=Party.GUARDIAN_BACKUP)
        assert escape.escape_type == EscapeType.OWNER

    def test_requires_guardian(self):
        machine = EscapeStateMachine.create(
            OWNER, ZERO_ADDRESS, SECURITY_PERIOD, EXPIRY_PERIOD, MAX_ATTEMPTS
        )
        with pytest.raises(InvalidEscapeState, match="guardian required"):
            machine.trigger_escape_guardian(NEW_SIGNER, T0)

    def test_zero_new_signer(self, machine):
        with pytest.raises(ValueError, match="zero address"):
            machine.trigger_escape_owner(ZERO_ADDRESS, T0)


class TestOverrides:
    def test_owner_overrides_owner_escape(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        escape = machine.trigger_escape_guardian(OTHER_SIGNER, T0 + 1)
        assert escape.escape_type == EscapeType.GUARDIAN
        assert ("EscapeCanceled",) in machine.events

    def test_owner_overrides_guardian_escape(self, machine):
        machine.trigger_escape_guardian(NEW_SIGNER, T0)
        escape = machine.trigger_escape_guardian(OTHER_SIGNER, T0 + 1)
        assert escape.new_signer == as_address(OTHER_SIGNER)
        assert escape.active_at == T0 + 1 + SECURITY_PERIOD

    def test_guardian_overrides_owner_escape(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        escape = machine.trigger_escape_owner(OTHER_SIGNER, T0 + 1)
        assert escape.new_signer == as_address(OTHER_SIGNER)

    @pytest.mark.parametrize(
        "now", [T0 + 1, T0 + SECURITY_PERIOD, T0 + SECURITY_PERIOD + EXPIRY_PERIOD - 1]
    )
    def test_guardian_cannot_override_live_guardian_escape(self, machine, now):
        machine.trigger_escape_guardian(NEW_SIGNER, T0)
        with pytest.raises(EscapeOverrideForbidden):
            machine.trigger_escape_owner(OTHER_SIGNER, now)
        assert machine.escape.escape_type == EscapeType.GUARDIAN

    def test_guardian_overrides_expired_guardian_escape(self, machine):
        machine.trigger_escape_guardian(NEW_SIGNER, T0)
        escape = machine.trigger_escape_owner(OTHER_SIGNER, T0 + SECURITY_PERIOD + EXPIRY_PERIOD)
        assert escape.escape_type == EscapeType.OWNER


class TestAttempts:
    def test_limit(self, machine):
        for i in range(MAX_ATTEMPTS):
            machine.trigger_escape_owner(NEW_SIGNER, T0 + i)
        assert machine.guardian_escape_attempts == MAX_ATTEMPTS
        with pytest.raises(MaxEscapeAttemptsExceeded):
            machine.trigger_escape_owner(NEW_SIGNER, T0 + MAX_ATTEMPTS)

    def test_owner_escape_resets_counter(self, machine):
        for i in range(MAX_ATTEMPTS):
            machine.trigger_escape_owner(NEW_SIGNER, T0 + i)
        machine.trigger_escape_guardian(NEW_SIGNER, T0 + MAX_ATTEMPTS)
        assert machine.guardian_escape_attempts == 0

    def test_owner_change_resets_counter(self, machine):
        for i in range(MAX_ATTEMPTS):
            machine.trigger_escape_owner(NEW_SIGNER, T0 + i)
        machine.change_guardian(OTHER_SIGNER, [Party.OWNER, Party.GUARDIAN])
        assert machine.guardian_escape_attempts == 0
        machine.trigger_escape_owner(NEW_SIGNER, T0 + 10)

    def test_expired_override_clears_counter(self, machine):
        for i in range(MAX_ATTEMPTS):
            machine.trigger_escape_owner(NEW_SIGNER, T0 + i)
        expired_at = T0 + MAX_ATTEMPTS - 1 + SECURITY_PERIOD + EXPIRY_PERIOD
        machine.trigger_escape_owner(OTHER_SIGNER, expired_at)
        assert machine.guardian_escape_attempts == 1

    def test_pending_override_keeps_counter(self, machine):
        for i in range(MAX_ATTEMPTS):
            machine.trigger_escape_owner(NEW_SIGNER, T0 + i)
        active_at = T0 + MAX_ATTEMPTS - 1 + SECURITY_PERIOD
        with pytest.raises(MaxEscapeAttemptsExceeded):
            machine.trigger_escape_owner(OTHER_SIGNER, active_at)


class TestCompletion:
    def test_escape_owner_when_active(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        new_owner = machine.escape_owner(T0 + SECURITY_PERIOD)
        assert new_owner == as_address(NEW_SIGNER)
        assert machine.owner == as_address(NEW_SIGNER)
        assert machine.escape.is_none
        assert machine.guardian_escape_attempts == 0

    def test_escape_guardian_when_active(self, machine):
        machine.trigger_escape_guardian(NEW_SIGNER, T0)
        machine.escape_guardian(T0 + SECURITY_PERIOD)
        assert machine.guardian == as_address(NEW_SIGNER)

    def test_not_yet_active(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        with pytest.raises(InvalidEscapeState, match="inactive escape"):
            machine.escape_owner(T0 + SECURITY_PERIOD - 1)

    def test_expired(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        with pytest.raises(InvalidEscapeState, match="inactive escape"):
            machine.escape_owner(T0 + SECURITY_PERIOD + EXPIRY_PERIOD)

    def test_no_escape(self, machine):
        with pytest.raises(InvalidEscapeState, match="inactive escape"):
            machine.escape_guardian(T0)

    def test_wrong_type(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        with pytest.raises(InvalidEscapeState, match="invalid escape type"):
            machine.escape_guardian(T0 + SECURITY_PERIOD)
        assert machine.escape.escape_type == EscapeType.OWNER


class TestCancelAndChanges:
    def test_cancel_needs_both(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        with pytest.raises(InsufficientSignatories, match="guardian"):
            machine.cancel_escape([Party.OWNER])
        with pytest.raises(InsufficientSignatories, match="owner"):
            machine.cancel_escape([Party.GUARDIAN])
        machine.cancel_escape([Party.OWNER, Party.GUARDIAN])
        assert machine.escape.is_none

    def test_cancel_with_backup(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        machine.cancel_escape([Party.OWNER, Party.GUARDIAN_BACKUP])
        assert machine.escape.is_none

    def test_cancel_without_escape(self, machine):
        with pytest.raises(InvalidEscapeState):
            machine.cancel_escape([Party.OWNER, Party.GUARDIAN])

    def test_change_owner_cancels_escape(self, machine):
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        machine.change_owner(OTHER_SIGNER, [Party.OWNER, Party.GUARDIAN])
        assert machine.owner == as_address(OTHER_SIGNER)
        assert machine.escape.is_none
        assert machine.events[-2:] == [
            ("EscapeCanceled",),
            ("OwnerChanged", as_address(OTHER_SIGNER)),
        ]

    def test_change_owner_to_zero(self, machine):
        with pytest.raises(ValueError):
            machine.change_owner(ZERO_ADDRESS, [Party.OWNER, Party.GUARDIAN])

    def test_change_guardian_backup_requires_guardian(self):
        machine = EscapeStateMachine.create(
            OWNER, ZERO_ADDRESS, SECURITY_PERIOD, EXPIRY_PERIOD, MAX_ATTEMPTS
        )
        with pytest.raises(InvalidEscapeState):
            machine.change_guardian_backup(NEW_SIGNER, [Party.OWNER])

    def test_owner_alone_without_guardian(self):
        machine = EscapeStateMachine.create(
            OWNER, ZERO_ADDRESS, SECURITY_PERIOD, EXPIRY_PERIOD, MAX_ATTEMPTS
        )
        machine.change_guardian(GUARDIAN, [Party.OWNER])
        assert machine.has_guardian

    def test_snapshot_is_independent(self, machine):
        snapshot = machine.snapshot()
        machine.trigger_escape_owner(NEW_SIGNER, T0)
        assert snapshot.escape.is_none
        assert snapshot.events == []


class TestSignerSignature:
    def test_hash_layout(self):
        expected = keccak(
            keccak(text="changeOwner(address,bytes)")[:4]
            + CHAIN_ID.to_bytes(32, "big")
            + as_address(ACCOUNT_ADDRESS)
            + (NONCE + 1).to_bytes(32, "big")
            + as_address(NEW_SIGNER)
        )
        assert signer_signature_hash(
            "changeOwner(address,bytes)", CHAIN_ID, ACCOUNT_ADDRESS, NONCE + 1, NEW_SIGNER
        ) == expected

    @pytest.mark.asyncio
    async def test_signed_by_new_signer(self, provider):
        new_signer = Account.from_key(GUARDIAN_KEY)
        signature = await build_signer_signature(
            provider, GUARDIAN_KEY, ACCOUNT_ADDRESS, "changeOwner(address,bytes)"
        )
        msg_hash = signer_signature_hash(
            "changeOwner(address,bytes)", CHAIN_ID, ACCOUNT_ADDRESS, NONCE + 1, new_signer.address
        )
        assert len(signature) == 65
        recovered = Account.recover_message(encode_defunct(primitive=msg_hash), signature=signature)
        assert recovered == new_signer.address


class TestWaitForEscapeStatus:
    @pytest.mark.asyncio
    async def test_already_active(self, provider):
        escape = pending_escape(active_at=900)
        block = await wait_for_escape_status(
            provider, escape, EscapeStatus.ACTIVE, EXPIRY_PERIOD, timeout=5
        )
        assert block["timestamp"] == 1_000

    @pytest.mark.asyncio
    async def test_too_far_ahead(self, provider):
        escape = pending_escape(active_at=10_000)
        with pytest.raises(TimestampWaitTimeout):
            await wait_for_escape_status(
                provider, escape, EscapeStatus.ACTIVE, EXPIRY_PERIOD, timeout=5
            )
        assert provider.get_block.await_count == 1
