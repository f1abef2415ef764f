"""
Payments API

Merchant invoices and their settlement through the point-of-sale contract.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..container import ServiceContainer
from ..core.recovery.errors import ValidationError
from .deps import get_container

router = APIRouter(prefix="/payments", tags=["payments"])


# ============================================================================
# Request/Response Models
# ============================================================================


class CreateInvoiceRequest(BaseModel):
    amount: str = Field(..., description="Decimal VYR amount")
    description: str
    expiry: Optional[int] = Field(None, description="Unix seconds; defaults to 24h from now")


class CreateInvoiceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invoice_id: str = Field(..., alias="invoiceId")
    message: str


class ProcessPaymentRequest(BaseModel):
    customer: str = Field(..., description="Payer address")


class ProcessPaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash")
    message: str


def _from_unix(value: int) -> datetime:
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ValidationError("expiry is not a valid unix timestamp")


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/invoice", response_model=CreateInvoiceResponse)
async def create_invoice(
    body: CreateInvoiceRequest,
    container: ServiceContainer = Depends(get_container),
) -> CreateInvoiceResponse:
    expires_at = _from_unix(body.expiry) if body.expiry is not None else None
    invoice = await container.payments.create_invoice(body.amount, body.description, expires_at)
    return CreateInvoiceResponse(invoice_id=invoice.id, message="Invoice created successfully")


@router.get("/{invoice_id}")
async def get_payment(
    invoice_id: str,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    invoice = await container.payments.get_payment(invoice_id)
    return invoice.to_dict()


@router.post("/{invoice_id}/process", response_model=ProcessPaymentResponse)
async def process_payment(
    invoice_id: str,
    body: ProcessPaymentRequest,
    container: ServiceContainer = Depends(get_container),
) -> ProcessPaymentResponse:
    tx_hash = await container.payments.process_payment(invoice_id, body.customer)
    return ProcessPaymentResponse(tx_hash=tx_hash, message="Payment processed successfully")
