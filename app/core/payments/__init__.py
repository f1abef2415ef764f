"""
Payments Module

Merchant invoices and their on-chain settlement through the point-of-sale
contract.
"""

from .ledger import PaymentLedger, payment_digest
from .models import FINAL_STATUSES, Invoice, InvoiceStatus

__all__ = [
    "PaymentLedger",
    "payment_digest",
    "Invoice",
    "InvoiceStatus",
    "FINAL_STATUSES",
]
