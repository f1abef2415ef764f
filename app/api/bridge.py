"""
Bridge API

L1 -> L2 deposits and validator-attested L2 -> L1 withdrawals.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..container import ServiceContainer
from ..core.bridge import BridgeStatus
from ..core.recovery.errors import InsufficientSignaturesError
from .deps import get_container

router = APIRouter(prefix="/bridge", tags=["bridge"])


# ============================================================================
# Request/Response Models
# ============================================================================


class DepositRequest(BaseModel):
    amount: str = Field(..., description="Decimal ETH amount")


class DepositResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    deposit_id: str = Field(..., alias="depositId")
    message: str


class WithdrawRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: str = Field(..., description="Decimal ETH amount")
    l2_tx_hash: str = Field(..., alias="l2TxHash")
    signatures: Optional[List[str]] = Field(default_factory=list)


class WithdrawResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    withdrawal_id: str = Field(..., alias="withdrawalId")
    status: str
    message: str


class TransferStatusResponse(BaseModel):
    id: str
    status: str
    type: str
    amount: str


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/deposit", response_model=DepositResponse)
async def deposit(
    body: DepositRequest,
    container: ServiceContainer = Depends(get_container),
) -> DepositResponse:
    transfer = await container.bridge.deposit(body.amount)
    return DepositResponse(deposit_id=transfer.id, message="Deposit initiated successfully")


@router.post(
    "/withdraw",
    response_model=WithdrawResponse,
    responses={202: {"description": "Recorded; more validator signatures required"}},
)
async def withdraw(
    body: WithdrawRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Submit a withdrawal with validator signatures.

    Below the signature threshold the withdrawal is stored as pending and
    202 is returned with its id; resubmitting the same ``l2TxHash`` with more
    signatures completes it.
    """
    try:
        transfer = await container.bridge.withdraw(body.amount, body.l2_tx_hash, body.signatures)
    except InsufficientSignaturesError as exc:
        return JSONResponse(
            status_code=202,
            content={
                "withdrawalId": exc.transfer_id,
                "status": BridgeStatus.PENDING.value if exc.transfer_id else None,
                "collected": exc.collected,
                "threshold": exc.threshold,
                "error": exc.to_dict(),
            },
        )

    return WithdrawResponse(
        withdrawal_id=transfer.id,
        status=transfer.status.value,
        message="Withdrawal initiated successfully",
    )


@router.get("/status/{transfer_id}", response_model=TransferStatusResponse)
async def get_status(
    transfer_id: str,
    container: ServiceContainer = Depends(get_container),
) -> TransferStatusResponse:
    view = await container.bridge.get_status(transfer_id)
    return TransferStatusResponse(
        id=view["id"],
        status=view["status"],
        type=view["direction"],
        amount=view["amount"],
    )
