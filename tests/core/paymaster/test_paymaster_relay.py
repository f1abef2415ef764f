"""
Tests for gas sponsorship: authorization, replay protection and limits.
"""

import asyncio
from datetime import timedelta

import pytest

from app.core.identity import sign_digest
from app.core.identity.signing import SECP256K1_N
from app.core.paymaster import SponsorshipStatus, parse_gas_used, sponsorship_digest
from app.core.recovery.errors import (
    DuplicateRequestError,
    SponsorshipLimitError,
    SubmissionFailedError,
    UnauthorizedError,
    ValidationError,
)


def signed_request(account, gas):
    return sign_digest(account, sponsorship_digest(account.address, gas))


def malleate(signature):
    raw = bytes.fromhex(signature[2:])
    s = int.from_bytes(raw[32:64], "big")
    return "0x" + (raw[:32] + (SECP256K1_N - s).to_bytes(32, "big") + bytes([55 - raw[64]])).hex()


# ============================================================================
# Gas parsing
# ============================================================================

class TestParseGasUsed:
    def test_integer_strings(self):
        assert parse_gas_used("21000", max_gas=100_000) == 21000
        assert parse_gas_used(" 0 ", max_gas=100_000) == 0
        assert parse_gas_used(500, max_gas=100_000) == 500

    @pytest.mark.parametrize("value", ["-1", "1.5", "1e6", "", "abc", True])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            parse_gas_used(value, max_gas=100_000)

    def test_rejects_over_limit(self):
        with pytest.raises(ValidationError):
            parse_gas_used("100001", max_gas=100_000)


# ============================================================================
# Sponsorship
# ============================================================================

class TestSponsor:
    """Tests for PaymasterRelay.sponsor."""

    @pytest.mark.asyncio
    async def test_owner_signature_sponsored(self, container, owner_account, l1_chain):
        signature = signed_request(owner_account, 21000)

        tx_hash = await container.paymaster.sponsor(owner_account.address, "21000", signature)

        assert tx_hash.startswith("0x") and len(tx_hash) == 66
        assert len(l1_chain.sent) == 1
        assert await container.paymaster.sponsorships_today(owner_account.address) == 1

    @pytest.mark.asyncio
    async def test_session_key_signature_sponsored(self, container, owner_account, clock):
        await container.sessions.create_session_key(owner_account.address, clock.now + timedelta(hours=1))
        signature = await container.sessions.sign_with_session_key(
            owner_account.address, sponsorship_digest(owner_account.address, 50000)
        )

        tx_hash = await container.paymaster.sponsor(owner_account.address, "50000", signature)
        assert tx_hash.startswith("0x")

    @pytest.mark.asyncio
    async def test_replayed_signature_rejected(self, container, owner_account, l1_chain):
        signature = signed_request(owner_account, 21000)
        await container.paymaster.sponsor(owner_account.address, "21000", signature)

        with pytest.raises(DuplicateRequestError):
            await container.paymaster.sponsor(owner_account.address, "21000", signature)
        with pytest.raises(DuplicateRequestError):
            await container.paymaster.sponsor(owner_account.address, "21000", signature.upper().replace("0X", "0x"))
        assert len(l1_chain.sent) == 1

    @pytest.mark.asyncio
    async def test_reencoded_signature_rejected(self, container, owner_account, l1_chain):
        signature = signed_request(owner_account, 21000)
        raw = bytes.fromhex(signature[2:])
        await container.paymaster.sponsor(owner_account.address, "21000", signature)

        with pytest.raises(DuplicateRequestError):
            await container.paymaster.sponsor(owner_account.address, "21000", signature[2:])
        with pytest.raises(DuplicateRequestError):
            await container.paymaster.sponsor(
                owner_account.address, "21000", "0x" + (raw[:64] + bytes([raw[64] - 27])).hex()
            )
        assert len(l1_chain.sent) == 1

    @pytest.mark.asyncio
    async def test_malleated_signature_rejected(self, container, owner_account, l1_chain):
        signature = signed_request(owner_account, 21000)
        await container.paymaster.sponsor(owner_account.address, "21000", signature)

        with pytest.raises(UnauthorizedError):
            await container.paymaster.sponsor(owner_account.address, "21000", malleate(signature))
        assert len(l1_chain.sent) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_sponsored_once(self, container, owner_account, l1_chain):
        signature = signed_request(owner_account, 21000)

        results = await asyncio.gather(
            container.paymaster.sponsor(owner_account.address, "21000", signature),
            container.paymaster.sponsor(owner_account.address, "21000", signature),
            return_exceptions=True,
        )

        assert sum(isinstance(r, str) for r in results) == 1
        assert sum(isinstance(r, DuplicateRequestError) for r in results) == 1
        assert len(l1_chain.sent) == 1

    @pytest.mark.asyncio
    async def test_stranger_signature_rejected(self, container, owner_account, outsider_account, l1_chain):
        signature = sign_digest(outsider_account, sponsorship_digest(owner_account.address, 21000))

        with pytest.raises(UnauthorizedError):
            await container.paymaster.sponsor(owner_account.address, "21000", signature)
        assert l1_chain.sent == []

    @pytest.mark.asyncio
    async def test_signature_over_other_amount_rejected(self, container, owner_account):
        signature = signed_request(owner_account, 21000)
        with pytest.raises(UnauthorizedError):
            await container.paymaster.sponsor(owner_account.address, "99999", signature)

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, container, owner_account):
        with pytest.raises(UnauthorizedError):
            await container.paymaster.sponsor(owner_account.address, "21000", "")

    @pytest.mark.asyncio
    async def test_bad_input_rejected_before_signature_check(self, container, owner_account):
        with pytest.raises(ValidationError):
            await container.paymaster.sponsor(owner_account.address, "9999999999", "0x00")
        with pytest.raises(ValidationError):
            await container.paymaster.sponsor("0xnot-an-address", "21000", "0x00")


# ============================================================================
# Policy and failure handling
# ============================================================================

class TestSponsorPolicy:
    """Daily cap and behavior when the chain fails."""

    @pytest.mark.asyncio
    async def test_daily_limit(self, container, owner_account, clock):
        for gas in (1000, 2000, 3000):
            await container.paymaster.sponsor(owner_account.address, str(gas), signed_request(owner_account, gas))

        with pytest.raises(SponsorshipLimitError):
            await container.paymaster.sponsor(owner_account.address, "4000", signed_request(owner_account, 4000))

        # The refused signature was not consumed
        clock.advance(days=1)
        tx_hash = await container.paymaster.sponsor(
            owner_account.address, "4000", signed_request(owner_account, 4000)
        )
        assert tx_hash.startswith("0x")

    @pytest.mark.asyncio
    async def test_chain_failure_releases_claim(self, container, owner_account, l1_chain):
        signature = signed_request(owner_account, 21000)
        l1_chain.send_failures = 3

        with pytest.raises(SubmissionFailedError):
            await container.paymaster.sponsor(owner_account.address, "21000", signature)

        assert len(l1_chain.send_attempts) == 3
        assert await container.paymaster.sponsorships_today(owner_account.address) == 0

        tx_hash = await container.paymaster.sponsor(owner_account.address, "21000", signature)
        assert tx_hash.startswith("0x")
        assert len(l1_chain.sent) == 1

    @pytest.mark.asyncio
    async def test_failed_request_recorded(self, container, owner_account, l1_chain):
        l1_chain.send_failures = 3

        with pytest.raises(SubmissionFailedError):
            await container.paymaster.sponsor(owner_account.address, "21000", signed_request(owner_account, 21000))

        requests = list(container.paymaster._requests.values())
        assert len(requests) == 1
        assert requests[0].status == SponsorshipStatus.FAILED
        assert "connection reset" in requests[0].error
        assert requests[0].signer == owner_account.address

    @pytest.mark.asyncio
    async def test_failures_do_not_use_up_daily_cap(self, container, owner_account, l1_chain):
        l1_chain.send_failures = 3
        with pytest.raises(SubmissionFailedError):
            await container.paymaster.sponsor(owner_account.address, "1000", signed_request(owner_account, 1000))

        for gas in (2000, 3000, 4000):
            await container.paymaster.sponsor(owner_account.address, str(gas), signed_request(owner_account, gas))

        assert await container.paymaster.sponsorships_today(owner_account.address) == 3

    @pytest.mark.asyncio
    async def test_old_requests_pruned(self, container, owner_account, clock):
        await container.paymaster.sponsor(owner_account.address, "1000", signed_request(owner_account, 1000))
        (first_id,) = list(container.paymaster._requests)

        clock.advance(days=8)
        await container.paymaster.sponsor(owner_account.address, "2000", signed_request(owner_account, 2000))

        assert first_id not in container.paymaster._requests
        assert len(container.paymaster._requests) == 1

    @pytest.mark.asyncio
    async def test_pruned_signature_still_rejected(self, container, owner_account, clock):
        signature = signed_request(owner_account, 1000)
        await container.paymaster.sponsor(owner_account.address, "1000", signature)

        clock.advance(days=8)
        await container.paymaster.sponsor(owner_account.address, "2000", signed_request(owner_account, 2000))

        with pytest.raises(DuplicateRequestError):
            await container.paymaster.sponsor(owner_account.address, "1000", signature)
