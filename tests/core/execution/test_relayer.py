"""
Tests for signing and broadcasting funding-account transactions.
"""

import pytest
from eth_account import Account
from eth_utils import keccak

from app.core.execution import TransactionIntent, TransactionType
from app.core.identity import recover_signer
from app.core.recovery.errors import SubmissionFailedError

PAYMASTER = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"


def intent(chain_id=31337) -> TransactionIntent:
    return TransactionIntent(
        tx_type=TransactionType.SPONSORSHIP,
        chain_id=chain_id,
        to_address=PAYMASTER,
        data="0x1234",
    )


@pytest.fixture
def relayer(container):
    return container.l1_relayer


class TestSubmit:
    """Tests for Relayer.submit."""

    @pytest.mark.asyncio
    async def test_signed_by_funding_account(self, relayer, relayer_account, l1_chain):
        tx_hash = await relayer.submit(intent(), idempotency_key="a")

        assert len(l1_chain.sent) == 1
        raw = l1_chain.sent[0]
        assert tx_hash == "0x" + keccak(hexstr=raw).hex()
        assert Account.recover_transaction(raw) == relayer_account.address

    @pytest.mark.asyncio
    async def test_same_key_submits_once(self, relayer, l1_chain):
        first = await relayer.submit(intent(), idempotency_key="Key-1")
        second = await relayer.submit(intent(), idempotency_key="key-1")

        assert first == second
        assert len(l1_chain.sent) == 1

    @pytest.mark.asyncio
    async def test_distinct_keys_take_next_nonce(self, relayer):
        await relayer.submit(intent(), idempotency_key="a")
        await relayer.submit(intent(), idempotency_key="b")

        assert relayer.get_submission("a").nonce == 0
        assert relayer.get_submission("b").nonce == 1

    @pytest.mark.asyncio
    async def test_retries_rebroadcast_same_bytes(self, relayer, l1_chain):
        l1_chain.send_failures = 2

        await relayer.submit(intent(), idempotency_key="a")

        assert len(l1_chain.send_attempts) == 3
        assert len(set(l1_chain.send_attempts)) == 1
        assert relayer.get_submission("a").attempts == 3

    @pytest.mark.asyncio
    async def test_already_known_counts_as_success(self, relayer, l1_chain):
        l1_chain.send_failures = 1
        l1_chain.send_error = "already known"

        tx_hash = await relayer.submit(intent(), idempotency_key="a")

        assert l1_chain.sent == []
        assert tx_hash == "0x" + keccak(hexstr=l1_chain.send_attempts[0]).hex()

    @pytest.mark.asyncio
    async def test_exhausted_retries_release_nonce(self, relayer, l1_chain):
        l1_chain.send_failures = 3

        with pytest.raises(SubmissionFailedError):
            await relayer.submit(intent(), idempotency_key="a")
        assert relayer.get_submission("a") is None

        await relayer.submit(intent(), idempotency_key="a")
        assert relayer.get_submission("a").nonce == 0

    @pytest.mark.asyncio
    async def test_wrong_chain_rejected(self, relayer):
        with pytest.raises(ValueError):
            await relayer.submit(intent(chain_id=1), idempotency_key="a")

    def test_sign_digest_by_funding_account(self, relayer, relayer_account):
        payload_hash = keccak(b"invoice")
        assert recover_signer(payload_hash, relayer.sign_digest(payload_hash)) == relayer_account.address

    @pytest.mark.asyncio
    async def test_old_keys_forgotten_after_retention(self, relayer, clock):
        await relayer.submit(intent(), idempotency_key="old")
        clock.advance(days=2)

        await relayer.submit(intent(), idempotency_key="new")

        assert relayer.get_submission("old") is None
        assert relayer.get_submission("new") is not None
