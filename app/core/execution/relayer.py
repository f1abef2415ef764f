"""
Funding-account relayer.

Signs EIP-1559 transactions with the relayer key and broadcasts them through
a ChainClient. Submissions are idempotent per key: a repeated key returns the
earlier hash, and retries rebroadcast the exact same signed bytes so a
transaction the node already accepted is never duplicated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Dict, Optional

from eth_account.signers.local import LocalAccount

from ..identity.signing import sign_digest
from ..locks import KeyedLocks
from ..recovery.errors import ChainError, SubmissionFailedError
from ..recovery.strategies import ExponentialBackoffStrategy, RecoveryStrategy
from .models import SubmittedTransaction, TransactionIntent
from .nonce_manager import NonceManager

if TYPE_CHECKING:
    from app.providers.chain import ChainClient


logger = logging.getLogger(__name__)

ALREADY_KNOWN_MARKERS = ("already known", "known transaction")

DEFAULT_GAS_LIMIT = 300_000
DEFAULT_PRIORITY_FEE_WEI = 1_500_000_000
DEFAULT_RETENTION_SECONDS = 24 * 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Relayer:
    """
    Broadcasts transactions for one chain on behalf of the funding account.
    """

    def __init__(
        self,
        account: LocalAccount,
        chain: "ChainClient",
        nonces: NonceManager,
        *,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        max_priority_fee_per_gas: int = DEFAULT_PRIORITY_FEE_WEI,
        retry: Optional[RecoveryStrategy] = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._account = account
        self.chain = chain
        self._nonces = nonces
        self.gas_limit = gas_limit
        self.max_priority_fee_per_gas = max_priority_fee_per_gas
        self._retry = retry or ExponentialBackoffStrategy(logger=logger)
        self._retention = timedelta(seconds=retention_seconds)
        self._clock = clock
        # Insertion order is submission order, oldest first
        self._submitted: Dict[str, SubmittedTransaction] = {}
        self._locks = KeyedLocks("relayer-idempotency")

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    def sign_digest(self, payload_hash: bytes) -> str:
        """EIP-191 attestation by the funding account."""
        return sign_digest(self._account, payload_hash)

    def get_submission(self, idempotency_key: str) -> Optional[SubmittedTransaction]:
        return self._submitted.get(idempotency_key.lower())

    async def submit(self, intent: TransactionIntent, *, idempotency_key: str) -> str:
        """
        Sign and broadcast ``intent``; returns the transaction hash.

        Raises:
            SubmissionFailedError: the chain kept failing; the reserved nonce
                was released and nothing is recorded for the key
        """
        if intent.chain_id != self.chain_id:
            raise ValueError(
                f"Relayer for chain {self.chain_id} cannot submit to chain {intent.chain_id}"
            )

        key = idempotency_key.lower()
        async with self._locks.hold(key):
            existing = self._submitted.get(key)
            if existing is not None:
                logger.info(f"Idempotent replay of {intent.tx_type.value}: {existing.tx_hash}")
                return existing.tx_hash

            try:
                async with self._nonces.reserve(self.address, self.chain_id) as nonce:
                    submission = await self._sign_and_broadcast(intent, key, nonce)
            except ChainError as exc:
                logger.error(
                    f"Submission of {intent.tx_type.value} on chain {self.chain_id} failed: {exc.message}"
                )
                raise SubmissionFailedError(
                    f"Transaction submission failed: {exc.message}", chain_id=self.chain_id
                ) from exc

            self._prune(submission.submitted_at)
            self._submitted[key] = submission

        logger.info(
            f"Submitted {intent.tx_type.value} on chain {self.chain_id}: "
            f"{submission.tx_hash} (nonce {submission.nonce}, attempts {submission.attempts})"
        )
        return submission.tx_hash

    async def _sign_and_broadcast(
        self,
        intent: TransactionIntent,
        key: str,
        nonce: int,
    ) -> SubmittedTransaction:
        gas_price = await self._retry.execute(
            self.chain.get_gas_price,
            {"operation": f"eth_gasPrice on chain {self.chain_id}"},
        )

        tx = {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": intent.to_address,
            "value": intent.value,
            "data": intent.data,
            "gas": self.gas_limit,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "maxFeePerGas": 2 * gas_price + self.max_priority_fee_per_gas,
        }
        signed = self._account.sign_transaction(tx)
        raw_tx = "0x" + bytes(signed.raw_transaction).hex()
        tx_hash = "0x" + bytes(signed.hash).hex()
        attempts = 0

        async def broadcast() -> str:
            nonlocal attempts
            attempts += 1
            try:
                return await self.chain.send_raw_transaction(raw_tx)
            except ChainError as exc:
                if any(marker in exc.message.lower() for marker in ALREADY_KNOWN_MARKERS):
                    return tx_hash
                raise

        await self._retry.execute(
            broadcast,
            {"operation": f"{intent.tx_type.value} broadcast on chain {self.chain_id}"},
        )

        return SubmittedTransaction(
            idempotency_key=key,
            tx_type=intent.tx_type,
            chain_id=self.chain_id,
            nonce=nonce,
            tx_hash=tx_hash,
            raw_tx=raw_tx,
            attempts=attempts,
            submitted_at=self._clock(),
        )

    def _prune(self, now: datetime) -> None:
        """Forget idempotency keys older than the retention window."""
        cutoff = now - self._retention
        while self._submitted:
            oldest = next(iter(self._submitted.values()))
            if oldest.submitted_at > cutoff:
                break
            del self._submitted[oldest.idempotency_key]
