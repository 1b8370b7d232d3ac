"""Tests for the multi-signatory account signer."""

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data

from pyargent.builder import TransactionRequestBuilder
from pyargent.eip712 import DigestComputer
from pyargent.errors import DestinationRejected, SignerMismatch
from pyargent.models import TransactionRequest, split_signatures
from pyargent.signatory import ZEROS
from pyargent.signer import ArgentSigner
from pyargent.transaction import decode_envelope

from helpers import ACCOUNT_ADDRESS, CHAIN_ID, DAPP_ADDRESS, populated_request


class TestSignTransaction:
    @pytest.mark.asyncio
    async def test_signature_over_digest(self, provider, owner, guardian):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner, guardian])
        request = populated_request()
        envelope = await signer.sign_transaction(request)

        digest = DigestComputer(CHAIN_ID).digest(request)
        owner_slot, guardian_slot = split_signatures(envelope.signature)
        assert owner_slot == owner.resolve().sign_hash(digest)
        assert guardian_slot == guardian.resolve().sign_hash(digest)

    @pytest.mark.asyncio
    async def test_signature_count_is_not_checked(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner, owner, ZEROS])
        envelope = await signer.sign_transaction(populated_request())
        assert envelope.signature_count == 3

    @pytest.mark.asyncio
    async def test_with_signatories(self, provider, owner, guardian):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        both = signer.with_signatories([owner, guardian])
        assert both.address == signer.address
        assert len((await both.sign_transaction(populated_request())).signature) == 130


class TestSendTransaction:
    @pytest.mark.asyncio
    async def test_populates_signs_and_broadcasts(self, provider, owner, guardian):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner, guardian])
        tx_hash = await signer.send_transaction(
            TransactionRequestBuilder().set_to(DAPP_ADDRESS).set_data("0xabcd").build()
        )

        assert tx_hash == b"\xab" * 32
        (raw,) = provider.send_raw_transaction.await_args.args
        sent = decode_envelope(raw)
        assert sent.signature_count == 2
        assert sent.request.data == bytes.fromhex("abcd")
        # the digest recomputed from the envelope is the one that was signed
        digest = DigestComputer(CHAIN_ID).digest(sent.request)
        assert sent.signature[:65] == owner.resolve().sign_hash(digest)
        provider.wait_for_transaction_receipt.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_wait(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        await signer.send_transaction(TransactionRequest.create(to=DAPP_ADDRESS), wait=False)
        provider.wait_for_transaction_receipt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, provider, owner):
        provider.wait_for_transaction_receipt.return_value = {"status": 0, "logs": []}
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        with pytest.raises(DestinationRejected, match="reverted"):
            await signer.send_transaction(TransactionRequest.create(to=DAPP_ADDRESS))

    @pytest.mark.asyncio
    async def test_rejection_is_not_retried(self, provider, owner):
        provider.send_raw_transaction.side_effect = DestinationRejected("invalid signature")
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        with pytest.raises(DestinationRejected, match="invalid signature"):
            await signer.send_transaction(TransactionRequest.create(to=DAPP_ADDRESS))
        assert provider.send_raw_transaction.await_count == 1

    @pytest.mark.asyncio
    async def test_foreign_sender(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        with pytest.raises(SignerMismatch):
            await signer.send_transaction(
                TransactionRequest.create(to=DAPP_ADDRESS, sender="0x" + "c" * 40)
            )
        provider.send_raw_transaction.assert_not_awaited()


class TestSignMessages:
    @pytest.mark.asyncio
    async def test_sign_message_bytes(self, provider, owner, guardian):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner, guardian])
        msg_hash = b"\x07" * 32
        owner_slot, guardian_slot = split_signatures(await signer.sign_message(msg_hash))
        message = encode_defunct(primitive=msg_hash)
        assert Account.recover_message(message, signature=owner_slot) == owner.address
        assert Account.recover_message(message, signature=guardian_slot) == guardian.address

    @pytest.mark.asyncio
    async def test_sign_message_text(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        signature = await signer.sign_message("hello")
        assert Account.recover_message(encode_defunct(text="hello"), signature=signature) == (
            owner.address
        )

    @pytest.mark.asyncio
    async def test_sign_message_hex_string(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        signature = await signer.sign_message("0x" + "07" * 32)
        message = encode_defunct(primitive=b"\x07" * 32)
        assert Account.recover_message(message, signature=signature) == owner.address

    @pytest.mark.asyncio
    async def test_sign_message_text_with_hex_prefix(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        signature = await signer.sign_message("0xhello")
        message = encode_defunct(text="0xhello")
        assert Account.recover_message(message, signature=signature) == owner.address

    @pytest.mark.asyncio
    async def test_sign_typed_data(self, provider, owner):
        signer = ArgentSigner(ACCOUNT_ADDRESS, provider, [owner])
        typed_data = DigestComputer(CHAIN_ID).typed_data(populated_request())
        signature = await signer.sign_typed_data(typed_data)
        recovered = Account.recover_message(
            encode_typed_data(full_message=typed_data), signature=signature
        )
        assert recovered == owner.address
