"""
Paymaster API

Session keys and gas sponsorship. The session key owner is named by the
``X-Wallet-Address`` header.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, ConfigDict, Field

from ..container import ServiceContainer
from ..core.recovery.errors import InvalidExpiryError, NotFoundError
from .deps import get_container

router = APIRouter(prefix="/paymaster", tags=["paymaster"])


# ============================================================================
# Request/Response Models
# ============================================================================


class CreateSessionKeyRequest(BaseModel):
    expiry: int = Field(..., description="Unix seconds")


class SessionKeyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_key: str = Field(..., alias="sessionKey")
    expiry: int
    status: Optional[str] = None
    message: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class SponsorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str
    gas_used: str = Field(..., alias="gasUsed", description="Integer gas amount")
    signature: str


class SponsorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash")
    message: str


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/session-key",
    response_model=SessionKeyResponse,
    response_model_exclude_none=True,
)
async def create_session_key(
    body: CreateSessionKeyRequest,
    wallet_address: str = Header(..., alias="X-Wallet-Address"),
    container: ServiceContainer = Depends(get_container),
) -> SessionKeyResponse:
    """Issue a session key for the wallet, replacing any active one."""
    try:
        expires_at = datetime.fromtimestamp(body.expiry, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise InvalidExpiryError("expiry is not a valid unix timestamp")

    session = await container.sessions.create_session_key(wallet_address, expires_at)
    return SessionKeyResponse(
        session_key=session.key_address,
        expiry=int(session.expires_at.timestamp()),
        message="Session key created successfully",
    )


@router.get(
    "/session-key",
    response_model=SessionKeyResponse,
    response_model_exclude_none=True,
)
async def get_session_key(
    wallet_address: str = Header(..., alias="X-Wallet-Address"),
    container: ServiceContainer = Depends(get_container),
) -> SessionKeyResponse:
    session = await container.sessions.get_active_session_key(wallet_address)
    if session is None:
        raise NotFoundError("No active session key")
    return SessionKeyResponse(
        session_key=session.key_address,
        expiry=int(session.expires_at.timestamp()),
        status=session.status.value,
    )


@router.delete("/session-key", response_model=MessageResponse)
async def revoke_session_key(
    wallet_address: str = Header(..., alias="X-Wallet-Address"),
    container: ServiceContainer = Depends(get_container),
) -> MessageResponse:
    await container.sessions.revoke_session_key(wallet_address)
    return MessageResponse(message="Session key revoked successfully")


@router.post("/sponsor", response_model=SponsorResponse)
async def sponsor_gas(
    body: SponsorRequest,
    container: ServiceContainer = Depends(get_container),
) -> SponsorResponse:
    """Credit the user's paymaster balance for a signed gas amount."""
    tx_hash = await container.paymaster.sponsor(body.user, body.gas_used, body.signature)
    return SponsorResponse(tx_hash=tx_hash, message="Gas sponsored successfully")
