"""
Payment ledger.

Merchant invoices settled through the point-of-sale contract. An invoice is
paid at most once: it moves to ``processing`` under its lock before the
chain call, so a concurrent attempt sees it in flight and is refused.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from eth_abi import encode
from eth_utils import keccak

from ..amounts import AmountInput, ETH_DECIMALS, generate_id, parse_amount, to_base_units
from ..execution.models import TransactionIntent, TransactionType
from ..execution.relayer import Relayer
from ..execution.userop_builder import build_process_payment_call
from ..identity.signing import hex_to_bytes, normalize_address
from ..locks import KeyedLocks
from ..recovery.errors import (
    AlreadyFinalizedError,
    InvalidExpiryError,
    InvoiceExpiredError,
    NotFoundError,
    PaymentInProgressError,
    ValidationError,
)
from ..wallet.session_manager import utcnow
from .models import Invoice, InvoiceStatus


logger = logging.getLogger(__name__)

DEFAULT_INVOICE_EXPIRY = timedelta(hours=24)


def payment_digest(invoice_id: str, payer: str, amount_wei: int) -> bytes:
    """keccak256(abi.encode(bytes32 invoiceId, address payer, uint256 amountWei))"""
    return keccak(
        encode(["bytes32", "address", "uint256"], [bytes.fromhex(invoice_id), payer, amount_wei])
    )


class PaymentLedger:
    """Owns the invoice table."""

    def __init__(
        self,
        relayer: Relayer,
        *,
        pos_address: str,
        default_expiry: timedelta = DEFAULT_INVOICE_EXPIRY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._relayer = relayer
        self.pos_address = normalize_address(pos_address, field="pos_address")
        self.default_expiry = default_expiry
        self._clock = clock
        self._invoices: Dict[str, Invoice] = {}
        self._locks = KeyedLocks("invoice")

    async def create_invoice(
        self,
        amount: AmountInput,
        description: str,
        expires_at: Optional[datetime] = None,
    ) -> Invoice:
        value = parse_amount(amount)
        if not isinstance(description, str) or not description.strip():
            raise ValidationError("description is required")

        now = self._clock()
        if expires_at is None:
            expires_at = now + self.default_expiry
        else:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= now:
                raise InvalidExpiryError("Invoice expiry must be in the future")

        invoice = Invoice(
            id=generate_id(),
            amount=value,
            description=description.strip(),
            created_at=now,
            expires_at=expires_at,
        )
        async with self._locks.hold(invoice.id):
            self._invoices[invoice.id] = invoice

        logger.info(f"Invoice {invoice.id} created for {value}")
        return invoice.copy()

    async def get_payment(self, invoice_id: str) -> Invoice:
        async with self._locks.hold(invoice_id):
            return self._get_locked(invoice_id).copy()

    async def list_invoices(self, status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        return [
            invoice.copy()
            for invoice in self._invoices.values()
            if status is None or invoice.status == status
        ]

    async def process_payment(self, invoice_id: str, payer: str) -> str:
        """
        Settle an invoice on-chain for ``payer``; returns the transaction hash.

        Raises:
            NotFoundError: unknown invoice
            ValidationError: payer is not an address
            AlreadyFinalizedError: invoice paid or failed
            PaymentInProgressError: another payment attempt is running
            InvoiceExpiredError: invoice lapsed (now recorded as expired)
            SubmissionFailedError: chain kept failing; invoice back to pending
        """
        async with self._locks.hold(invoice_id):
            invoice = self._get_locked(invoice_id)
            payer = normalize_address(payer, field="customer")

            if invoice.status == InvoiceStatus.EXPIRED:
                raise InvoiceExpiredError(f"Invoice {invoice_id} has expired")
            if invoice.is_final:
                raise AlreadyFinalizedError(f"Invoice {invoice_id} is already {invoice.status.value}")
            if invoice.status == InvoiceStatus.PROCESSING:
                raise PaymentInProgressError(f"Invoice {invoice_id} is being processed")
            if invoice.is_expired_at(self._clock()):
                invoice.transition_to(InvoiceStatus.EXPIRED)
                logger.info(f"Invoice {invoice_id} expired")
                raise InvoiceExpiredError(f"Invoice {invoice_id} has expired")

            invoice.transition_to(InvoiceStatus.PROCESSING)
            amount_wei = to_base_units(invoice.amount, ETH_DECIMALS)

        authorization = self._relayer.sign_digest(payment_digest(invoice_id, payer, amount_wei))
        intent = TransactionIntent(
            tx_type=TransactionType.INVOICE_PAYMENT,
            chain_id=self._relayer.chain_id,
            to_address=self.pos_address,
            data=build_process_payment_call(
                bytes.fromhex(invoice_id),
                payer,
                hex_to_bytes(authorization, field="authorization"),
            ),
            description=f"invoice {invoice_id}",
        )

        try:
            tx_hash = await self._relayer.submit(
                intent, idempotency_key=f"invoice:{invoice_id}:{payer.lower()}"
            )
        except Exception:
            async with self._locks.hold(invoice_id):
                self._invoices[invoice_id].transition_to(InvoiceStatus.PENDING)
            logger.warning(f"Payment of invoice {invoice_id} failed; back to pending")
            raise

        async with self._locks.hold(invoice_id):
            invoice = self._invoices[invoice_id]
            invoice.transition_to(InvoiceStatus.PAID)
            invoice.payer = payer
            invoice.tx_hash = tx_hash
            invoice.paid_at = self._clock()

        logger.info(f"Invoice {invoice_id} paid by {payer}: {tx_hash}")
        return tx_hash

    async def mark_failed(self, invoice_id: str, reason: str) -> Invoice:
        """Record a settlement failure observed after the fact."""
        async with self._locks.hold(invoice_id):
            invoice = self._get_locked(invoice_id)
            if invoice.status == InvoiceStatus.PROCESSING:
                raise PaymentInProgressError(f"Invoice {invoice_id} is being processed")
            if invoice.is_final:
                raise AlreadyFinalizedError(f"Invoice {invoice_id} is already {invoice.status.value}")
            invoice.transition_to(InvoiceStatus.FAILED)
            invoice.failure_reason = reason
            snapshot = invoice.copy()

        logger.warning(f"Invoice {invoice_id} failed: {reason}")
        return snapshot

    def _get_locked(self, invoice_id: str) -> Invoice:
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice
