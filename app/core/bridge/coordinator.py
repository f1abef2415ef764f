"""
Bridge coordinator.

Tracks L1 <-> L2 transfers through ``pending -> confirmed -> settled``.
Withdrawals are confirmed by a threshold of validator signatures over the
L2 burn; each L2 source hash backs at most one withdrawal.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..amounts import AmountInput, ETH_DECIMALS, generate_id, parse_amount, to_base_units
from ..execution.models import TransactionIntent, TransactionType
from ..execution.relayer import Relayer
from ..execution.userop_builder import build_initiate_withdrawal_call, build_process_deposit_call
from ..identity.signing import (
    canonical_signature,
    hex_to_bytes,
    normalize_address,
    recover_signer,
    to_hex,
)
from ..locks import KeyedLocks
from ..recovery.errors import (
    AlreadyClaimedError,
    ConflictError,
    DuplicateSignatureError,
    InsufficientSignaturesError,
    InvalidSignatureError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..wallet.session_manager import utcnow
from .attestation import normalize_source_hash, source_hash_bytes, withdrawal_digest
from .models import BridgeDirection, BridgeStatus, BridgeTransfer


logger = logging.getLogger(__name__)


class BridgeCoordinator:
    """
    Owns bridge transfers and the source-hash claim index.

    Locks: one per source hash (withdraw) and one per transfer id. When both
    are needed the source lock is taken first.
    """

    def __init__(
        self,
        *,
        validators: Iterable[str],
        threshold: int,
        l1_relayer: Relayer,
        l2_relayer: Relayer,
        l1_bridge_address: str,
        l2_bridge_address: str,
        merge_pending_withdrawals: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.validators = {normalize_address(v, field="validator").lower() for v in validators}
        if threshold < 1 or threshold > len(self.validators):
            raise ValueError(
                f"Signature threshold {threshold} must be between 1 and {len(self.validators)}"
            )
        self.threshold = threshold
        self.merge_pending_withdrawals = merge_pending_withdrawals
        self._l1 = l1_relayer
        self._l2 = l2_relayer
        self.l1_bridge_address = normalize_address(l1_bridge_address, field="bridge_address")
        self.l2_bridge_address = normalize_address(l2_bridge_address, field="l2_bridge_address")
        self._clock = clock

        self._transfers: Dict[str, BridgeTransfer] = {}
        self._withdrawal_claims: Dict[str, str] = {}  # source hash -> transfer id
        self._deposit_claims: Dict[str, str] = {}
        self._source_locks = KeyedLocks("bridge-source")
        self._transfer_locks = KeyedLocks("bridge-transfer")

    @property
    def l1_chain_id(self) -> int:
        return self._l1.chain_id

    @property
    def l2_chain_id(self) -> int:
        return self._l2.chain_id

    # =========================================================================
    # Deposits
    # =========================================================================

    async def deposit(self, amount: AmountInput) -> BridgeTransfer:
        """Record a pending L1 -> L2 deposit."""
        value = parse_amount(amount)
        now = self._clock()
        transfer = BridgeTransfer(
            id=generate_id(),
            direction=BridgeDirection.DEPOSIT,
            amount=value,
            source_chain_id=self.l1_chain_id,
            destination_chain_id=self.l2_chain_id,
            created_at=now,
            updated_at=now,
        )
        async with self._transfer_locks.hold(transfer.id):
            self._transfers[transfer.id] = transfer

        logger.info(f"Deposit {transfer.id} created for {value}")
        return transfer.copy()

    async def observe_deposit(self, transfer_id: str, source_tx_hash: str) -> BridgeTransfer:
        """
        Attach the L1 deposit transaction and check its receipt.

        Mined successfully -> confirmed, reverted -> failed, not yet mined ->
        stays pending.
        """
        source = normalize_source_hash(source_tx_hash)

        async with self._transfer_locks.hold(transfer_id):
            transfer = self._get_locked(transfer_id)
            if transfer.direction != BridgeDirection.DEPOSIT:
                raise ValidationError(f"Transfer {transfer_id} is not a deposit")
            if transfer.status != BridgeStatus.PENDING:
                return transfer.copy()
            if transfer.source_tx_hash and transfer.source_tx_hash != source:
                raise ConflictError(f"Deposit {transfer_id} is bound to another transaction")
            claimed_by = self._deposit_claims.get(source)
            if claimed_by and claimed_by != transfer_id:
                raise AlreadyClaimedError("Source transaction already backs another deposit")
            self._deposit_claims[source] = transfer_id
            transfer.source_tx_hash = source

        receipt = await self._l1.chain.get_receipt(source)

        async with self._transfer_locks.hold(transfer_id):
            transfer = self._transfers[transfer_id]
            if transfer.status == BridgeStatus.PENDING and receipt is not None:
                now = self._clock()
                if receipt.success:
                    transfer.transition_to(BridgeStatus.CONFIRMED, now)
                    logger.info(f"Deposit {transfer_id} confirmed by {source}")
                else:
                    transfer.failure_reason = "Deposit transaction reverted"
                    transfer.transition_to(BridgeStatus.FAILED, now)
                    logger.warning(f"Deposit {transfer_id} failed: {source} reverted")
            return transfer.copy()

    # =========================================================================
    # Withdrawals
    # =========================================================================

    async def withdraw(
        self,
        amount: AmountInput,
        source_tx_hash: str,
        signatures: Optional[Sequence[str]],
    ) -> BridgeTransfer:
        """
        Record an L2 -> L1 withdrawal backed by validator signatures.

        Returns the confirmed transfer once enough distinct validators have
        signed. Below the threshold, with at least one valid validator
        signature, the transfer is stored as pending and
        InsufficientSignaturesError carries its id. With no signatures nothing
        is stored and the source hash stays unclaimed.

        Raises:
            ValidationError: bad amount or source hash
            AlreadyClaimedError: the source hash already backs a withdrawal
            InvalidSignatureError: a signature is malformed or not from a validator
            DuplicateSignatureError: one validator signed twice in the request
            InsufficientSignaturesError: recorded, waiting for more signatures
        """
        value = parse_amount(amount)
        source = normalize_source_hash(source_tx_hash)
        payload_hash = withdrawal_digest(value, source)

        async with self._source_locks.hold(source):
            existing_id = self._withdrawal_claims.get(source)
            if existing_id is not None:
                return await self._merge_withdrawal(existing_id, value, payload_hash, signatures)

            collected = self._verify_signatures(payload_hash, signatures)
            if not collected:
                # Only a validator attestation may bind a source hash
                raise InsufficientSignaturesError(
                    f"Collected 0 of {self.threshold} required validator signatures; nothing recorded",
                    transfer_id=None,
                    collected=0,
                    threshold=self.threshold,
                )

            now = self._clock()
            transfer = BridgeTransfer(
                id=generate_id(),
                direction=BridgeDirection.WITHDRAWAL,
                amount=value,
                source_chain_id=self.l2_chain_id,
                destination_chain_id=self.l1_chain_id,
                created_at=now,
                updated_at=now,
                source_tx_hash=source,
                signatures=dict(collected),
            )
            if len(transfer.signatures) >= self.threshold:
                transfer.transition_to(BridgeStatus.CONFIRMED, now)

            async with self._transfer_locks.hold(transfer.id):
                self._transfers[transfer.id] = transfer
                self._withdrawal_claims[source] = transfer.id
                snapshot = transfer.copy()

        return self._threshold_result(snapshot)

    async def _merge_withdrawal(
        self,
        transfer_id: str,
        value: Decimal,
        payload_hash: bytes,
        signatures: Optional[Sequence[str]],
    ) -> BridgeTransfer:
        """Caller holds the source lock."""
        async with self._transfer_locks.hold(transfer_id):
            transfer = self._transfers[transfer_id]
            mergeable = (
                self.merge_pending_withdrawals
                and transfer.status == BridgeStatus.PENDING
                and transfer.amount == value
            )
            if not mergeable:
                raise AlreadyClaimedError("Source transaction already backs a withdrawal")

            collected = self._verify_signatures(payload_hash, signatures)

            added = 0
            for validator, signature in collected:
                if validator not in transfer.signatures:
                    transfer.signatures[validator] = signature
                    added += 1
            if added:
                transfer.updated_at = self._clock()
            if len(transfer.signatures) >= self.threshold:
                transfer.transition_to(BridgeStatus.CONFIRMED, self._clock())
            snapshot = transfer.copy()

        logger.info(f"Merged {added} signatures into withdrawal {transfer_id}")
        return self._threshold_result(snapshot)

    def _threshold_result(self, transfer: BridgeTransfer) -> BridgeTransfer:
        collected = len(transfer.signatures)
        if transfer.status == BridgeStatus.CONFIRMED:
            logger.info(
                f"Withdrawal {transfer.id} confirmed with {collected}/{self.threshold} signatures"
            )
            return transfer

        logger.info(f"Withdrawal {transfer.id} pending with {collected}/{self.threshold} signatures")
        raise InsufficientSignaturesError(
            f"Collected {collected} of {self.threshold} required validator signatures",
            transfer_id=transfer.id,
            collected=collected,
            threshold=self.threshold,
        )

    def _verify_signatures(
        self,
        payload_hash: bytes,
        signatures: Optional[Sequence[str]],
    ) -> List[Tuple[str, str]]:
        """Recover every signer; all must be distinct configured validators."""
        if signatures is None:
            return []
        if isinstance(signatures, str):
            raise ValidationError("signatures must be a list")

        seen: Dict[str, str] = {}
        for index, signature in enumerate(signatures):
            if not isinstance(signature, str):
                raise InvalidSignatureError(f"Signature {index} is malformed")
            signer = recover_signer(payload_hash, signature)
            if signer is None:
                raise InvalidSignatureError(f"Signature {index} is malformed")
            if signer.lower() not in self.validators:
                raise InvalidSignatureError(f"Signature {index} is not from a bridge validator")
            if signer in seen:
                raise DuplicateSignatureError(f"Validator {signer} signed more than once")
            seen[signer] = to_hex(canonical_signature(signature))
        return list(seen.items())

    # =========================================================================
    # Queries and settlement
    # =========================================================================

    async def get_transfer(self, transfer_id: str) -> BridgeTransfer:
        async with self._transfer_locks.hold(transfer_id):
            return self._get_locked(transfer_id).copy()

    async def get_status(self, transfer_id: str) -> Dict[str, str]:
        transfer = await self.get_transfer(transfer_id)
        return transfer.status_view()

    async def list_transfers(self, status: Optional[BridgeStatus] = None) -> List[BridgeTransfer]:
        return [
            t.copy()
            for t in self._transfers.values()
            if status is None or t.status == status
        ]

    async def settle(self, transfer_id: str) -> BridgeTransfer:
        """
        Submit the destination-chain transaction for a confirmed transfer.

        Deposits call ``processDeposit`` on the L2 bridge, withdrawals call
        ``initiateWithdrawal`` on the L1 bridge. A chain failure leaves the
        transfer confirmed.
        """
        async with self._transfer_locks.hold(transfer_id):
            transfer = self._get_locked(transfer_id)
            if transfer.status != BridgeStatus.CONFIRMED:
                raise InvalidTransitionError(
                    f"Transfer {transfer_id} is {transfer.status.value}, only confirmed transfers settle"
                )
            if transfer.settling:
                raise ConflictError(f"Transfer {transfer_id} is already settling")
            transfer.settling = True
            relayer, intent = self._settlement_intent(transfer)

        try:
            tx_hash = await relayer.submit(intent, idempotency_key=f"settle:{transfer_id}")
        except Exception:
            async with self._transfer_locks.hold(transfer_id):
                self._transfers[transfer_id].settling = False
            logger.warning(f"Settlement of {transfer_id} failed; transfer stays confirmed")
            raise

        async with self._transfer_locks.hold(transfer_id):
            transfer = self._transfers[transfer_id]
            transfer.settling = False
            transfer.destination_tx_hash = tx_hash
            transfer.transition_to(BridgeStatus.SETTLED, self._clock())
            snapshot = transfer.copy()

        logger.info(f"Transfer {transfer_id} settled: {tx_hash}")
        return snapshot

    async def fail(self, transfer_id: str, reason: str) -> BridgeTransfer:
        """Mark a transfer failed. The source-hash claim is kept."""
        async with self._transfer_locks.hold(transfer_id):
            transfer = self._get_locked(transfer_id)
            if transfer.settling:
                raise ConflictError(f"Transfer {transfer_id} is settling")
            transfer.transition_to(BridgeStatus.FAILED, self._clock())
            transfer.failure_reason = reason
            snapshot = transfer.copy()

        logger.warning(f"Transfer {transfer_id} failed: {reason}")
        return snapshot

    def _settlement_intent(self, transfer: BridgeTransfer) -> Tuple[Relayer, TransactionIntent]:
        signatures = [
            hex_to_bytes(transfer.signatures[validator], field="signature")
            for validator in sorted(transfer.signatures, key=str.lower)
        ]
        if transfer.direction == BridgeDirection.DEPOSIT:
            relayer = self._l2
            to_address = self.l2_bridge_address
            data = build_process_deposit_call(bytes.fromhex(transfer.id), signatures)
        else:
            relayer = self._l1
            to_address = self.l1_bridge_address
            data = build_initiate_withdrawal_call(
                to_base_units(transfer.amount, ETH_DECIMALS),
                source_hash_bytes(transfer.source_tx_hash or ""),
                signatures,
            )

        return relayer, TransactionIntent(
            tx_type=TransactionType.BRIDGE_SETTLEMENT,
            chain_id=relayer.chain_id,
            to_address=to_address,
            data=data,
            description=f"settle {transfer.direction.value} {transfer.id}",
        )

    def _get_locked(self, transfer_id: str) -> BridgeTransfer:
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise NotFoundError(f"Transfer {transfer_id} not found")
        return transfer
