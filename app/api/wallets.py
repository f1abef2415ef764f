"""
Wallets API

Endpoints for key-derived wallets:
- Connect (derive the address from a private key)
- Native and VYR balances
- Session-key signed VYR payments
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..container import ServiceContainer
from .deps import get_container

router = APIRouter(prefix="/wallets", tags=["wallets"])


# ============================================================================
# Request/Response Models
# ============================================================================


class ConnectWalletRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="privateKey or mnemonic")
    private_key: Optional[str] = Field(None, alias="privateKey")
    mnemonic: Optional[str] = None
    derivation_index: Optional[int] = Field(None, alias="derivationIndex")


class ConnectWalletResponse(BaseModel):
    address: str
    message: str


class BalanceResponse(BaseModel):
    address: str
    balance: str


class VyraBalanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    vyra_balance: str = Field(..., alias="vyraBalance")


class SendPaymentRequest(BaseModel):
    to: str
    amount: str = Field(..., description="Decimal VYR amount")
    description: Optional[str] = None


class TxHashResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash")
    message: str


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/connect", response_model=ConnectWalletResponse)
async def connect_wallet(
    body: ConnectWalletRequest,
    container: ServiceContainer = Depends(get_container),
) -> ConnectWalletResponse:
    """Derive the wallet address for the supplied key material."""
    wallet = await container.wallets.connect(
        body.type,
        private_key=body.private_key,
        mnemonic=body.mnemonic,
        derivation_index=body.derivation_index,
    )
    return ConnectWalletResponse(address=wallet.address, message="Wallet connected successfully")


@router.get("/{address}/balance", response_model=BalanceResponse)
async def get_balance(
    address: str,
    container: ServiceContainer = Depends(get_container),
) -> BalanceResponse:
    balance = await container.wallets.get_balance(address)
    return BalanceResponse(address=address, balance=balance)


@router.get("/{address}/vyra-balance", response_model=VyraBalanceResponse)
async def get_vyra_balance(
    address: str,
    container: ServiceContainer = Depends(get_container),
) -> VyraBalanceResponse:
    balance = await container.wallets.get_vyra_balance(address)
    return VyraBalanceResponse(address=address, vyra_balance=balance)


@router.post("/{address}/send", response_model=TxHashResponse)
async def send_payment(
    address: str,
    body: SendPaymentRequest,
    container: ServiceContainer = Depends(get_container),
) -> TxHashResponse:
    """
    Send VYR from the wallet's smart account.

    The user operation is signed with the wallet's active session key, so a
    key must have been created through ``POST /paymaster/session-key`` first.
    """
    tx_hash = await container.wallets.send_payment(
        address,
        body.to,
        body.amount,
        body.description or "",
    )
    return TxHashResponse(tx_hash=tx_hash, message="Payment sent successfully")
