"""
Paymaster relay.

Accepts signed gas sponsorship requests and has the funding account credit
the user's sponsor balance on the paymaster contract.

A request is sponsored at most once. Its signature is reduced to canonical
bytes (low s, v in {27, 28}) and the hash of those bytes is claimed in a TTL
replay cache before anything is submitted. Claims of submitted requests are
remembered for good; the signed payload carries no nonce.
"""

import logging
import re
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Set, Union

from eth_abi import encode
from eth_utils import keccak

from ...cache import TTLCache
from ..amounts import generate_id
from ..execution.models import TransactionIntent, TransactionType
from ..execution.relayer import Relayer
from ..execution.userop_builder import build_add_sponsor_balance_call
from ..identity.signing import canonical_signature, normalize_address, recover_signer, to_hex
from ..locks import KeyedLocks
from ..recovery.errors import (
    DuplicateRequestError,
    NotFoundError,
    SponsorshipLimitError,
    UnauthorizedError,
    ValidationError,
)
from ..wallet.session_manager import SessionKeyManager, utcnow
from .models import SponsorshipRequest, SponsorshipStatus


logger = logging.getLogger(__name__)

_GAS_RE = re.compile(r"^[0-9]+$")

DEFAULT_MAX_GAS_PER_REQUEST = 5_000_000
DEFAULT_MAX_DAILY_SPONSORSHIPS = 100
DEFAULT_DEDUP_TTL_SECONDS = 3600
DEFAULT_REQUEST_RETENTION_SECONDS = 7 * 24 * 3600


def sponsorship_digest(user: str, gas_used: int) -> bytes:
    """keccak256(abi.encode(address user, uint256 gasUsed))"""
    return keccak(encode(["address", "uint256"], [user, gas_used]))


def parse_gas_used(value: Union[str, int], max_gas: int) -> int:
    if isinstance(value, bool):
        raise ValidationError("gasUsed must be an integer string")
    text = str(value).strip()
    if not _GAS_RE.match(text):
        raise ValidationError("gasUsed must be a non-negative integer string")
    gas = int(text)
    if gas > max_gas:
        raise ValidationError(f"gasUsed exceeds the per-request limit of {max_gas}")
    return gas


def sponsorship_claim(signature: str) -> Optional[str]:
    """Replay-guard key: keccak of the canonical signature bytes."""
    raw = canonical_signature(signature)
    if raw is None:
        return None
    return to_hex(keccak(raw))


class PaymasterRelay:
    """Owns sponsorship requests, per-user daily counters and the replay cache."""

    def __init__(
        self,
        sessions: SessionKeyManager,
        relayer: Relayer,
        *,
        paymaster_address: str,
        max_gas_per_request: int = DEFAULT_MAX_GAS_PER_REQUEST,
        max_daily_sponsorships: int = DEFAULT_MAX_DAILY_SPONSORSHIPS,
        dedup_ttl_seconds: float = DEFAULT_DEDUP_TTL_SECONDS,
        request_retention_seconds: float = DEFAULT_REQUEST_RETENTION_SECONDS,
        dedup_cache: Optional[TTLCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._sessions = sessions
        self._relayer = relayer
        self.paymaster_address = normalize_address(paymaster_address, field="paymaster_address")
        self.max_gas_per_request = max_gas_per_request
        self.max_daily_sponsorships = max_daily_sponsorships
        self._dedup = dedup_cache or TTLCache(default_ttl=dedup_ttl_seconds, max_size=None)
        self._dedup_ttl = dedup_ttl_seconds
        self._retention = timedelta(seconds=request_retention_seconds)
        self._clock = clock

        # Insertion order is creation order, oldest first
        self._requests: Dict[str, SponsorshipRequest] = {}
        self._sponsored_claims: Set[str] = set()
        self._daily_counts: Dict[str, int] = {}
        self._counts_day: Optional[date] = None
        self._locks = KeyedLocks("sponsor-user")

    async def sponsor(self, user: str, gas_used: Union[str, int], signature: str) -> str:
        """
        Sponsor ``gas_used`` for ``user``; returns the transaction hash.

        Raises:
            ValidationError: bad gas amount or address
            UnauthorizedError: signature from neither the user nor their session key
            DuplicateRequestError: signature already used, in any encoding
            SponsorshipLimitError: daily sponsorship cap reached
            SubmissionFailedError: chain kept failing; the request may be retried
        """
        gas = parse_gas_used(gas_used, self.max_gas_per_request)
        user = normalize_address(user, field="user")
        if not isinstance(signature, str) or not signature.strip():
            raise UnauthorizedError("Signature is required")

        claim = sponsorship_claim(signature)
        payload_hash = sponsorship_digest(user, gas)
        if claim is None or not await self._sessions.is_authorized(user, signature, payload_hash):
            raise UnauthorizedError("Invalid signature for sponsorship request")

        if claim in self._sponsored_claims:
            raise DuplicateRequestError("Sponsorship request already processed")
        if not await self._dedup.set_if_absent(claim, user, ttl=self._dedup_ttl):
            raise DuplicateRequestError("Sponsorship request already processed")

        try:
            request = await self._reserve(user, gas, signature, payload_hash)
        except SponsorshipLimitError:
            await self._dedup.delete(claim)
            raise

        intent = TransactionIntent(
            tx_type=TransactionType.SPONSORSHIP,
            chain_id=self._relayer.chain_id,
            to_address=self.paymaster_address,
            data=build_add_sponsor_balance_call(user, gas),
            description=f"sponsor {gas} gas for {user}",
        )

        try:
            tx_hash = await self._relayer.submit(intent, idempotency_key=f"sponsor:{claim}")
        except Exception as exc:
            async with self._locks.hold(user):
                request.status = SponsorshipStatus.FAILED
                request.error = getattr(exc, "message", str(exc))
                self._uncount(request)
            await self._dedup.delete(claim)
            logger.warning(f"Sponsorship {request.id} for {user} failed: {request.error}")
            raise

        async with self._locks.hold(user):
            request.status = SponsorshipStatus.SUBMITTED
            request.tx_hash = tx_hash
            self._sponsored_claims.add(claim)

        logger.info(f"Sponsored {gas} gas for {user}: {tx_hash}")
        return tx_hash

    async def get_request(self, request_id: str) -> SponsorshipRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Sponsorship request {request_id} not found")
        return replace(request)

    async def sponsorships_today(self, user: str) -> int:
        user = normalize_address(user, field="user")
        async with self._locks.hold(user):
            return self._counts_for_today().get(user, 0)

    async def _reserve(
        self,
        user: str,
        gas: int,
        signature: str,
        payload_hash: bytes,
    ) -> SponsorshipRequest:
        async with self._locks.hold(user):
            counts = self._counts_for_today()
            if counts.get(user, 0) >= self.max_daily_sponsorships:
                raise SponsorshipLimitError(
                    f"Daily sponsorship limit of {self.max_daily_sponsorships} reached"
                )
            now = self._clock()
            request = SponsorshipRequest(
                id=generate_id(),
                user=user,
                gas_used=gas,
                signature=signature,
                signer=recover_signer(payload_hash, signature) or user,
                created_at=now,
            )
            counts[user] = counts.get(user, 0) + 1
            self._prune_requests(now)
            self._requests[request.id] = request
            return request

    def _counts_for_today(self) -> Dict[str, int]:
        today = self._clock().astimezone(timezone.utc).date()
        if today != self._counts_day:
            self._counts_day = today
            self._daily_counts = {}
        return self._daily_counts

    def _uncount(self, request: SponsorshipRequest) -> None:
        """Failed sponsorships do not use up the daily cap."""
        if request.created_at.astimezone(timezone.utc).date() != self._counts_day:
            return
        remaining = self._daily_counts.get(request.user, 0) - 1
        if remaining > 0:
            self._daily_counts[request.user] = remaining
        else:
            self._daily_counts.pop(request.user, None)

    def _prune_requests(self, now: datetime) -> None:
        """Drop settled requests older than the retention window, oldest first."""
        cutoff = now - self._retention
        while self._requests:
            oldest = next(iter(self._requests.values()))
            if oldest.created_at > cutoff or not oldest.is_terminal:
                break
            del self._requests[oldest.id]
