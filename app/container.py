"""
Service container.

Builds every component once from Settings and hands them to the API through
``app.state.container``. Components receive their collaborators through
their constructors; nothing is looked up from module globals.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Coroutine, Dict, Optional

from eth_account import Account

from .config import Settings
from .core.bridge.coordinator import BridgeCoordinator
from .core.execution.nonce_manager import NonceManager
from .core.execution.relayer import Relayer
from .core.identity import IdentityManager
from .core.payments import PaymentLedger
from .core.paymaster import PaymasterRelay
from .core.recovery.errors import ConfigurationError
from .core.recovery.strategies import ExponentialBackoffStrategy
from .core.wallet import SessionKeyManager, utcnow
from .providers.chain import ChainClient, JsonRpcChainClient
from .services.wallet import WalletService


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Coroutine[Any, Any, None]]


@dataclass
class ServiceContainer:
    settings: Settings
    l1_chain: ChainClient
    l2_chain: ChainClient
    nonces: NonceManager
    l1_relayer: Relayer
    l2_relayer: Relayer
    identity: IdentityManager
    sessions: SessionKeyManager
    paymaster: PaymasterRelay
    bridge: BridgeCoordinator
    payments: PaymentLedger
    wallets: WalletService

    async def health(self) -> Dict[str, Any]:
        return {
            "l1": await self.l1_chain.health_check(),
            "l2": await self.l2_chain.health_check(),
        }

    async def aclose(self) -> None:
        for chain in (self.l1_chain, self.l2_chain):
            close = getattr(chain, "close", None)
            if close is not None:
                await close()


def build_container(
    settings: Settings,
    *,
    l1_chain: Optional[ChainClient] = None,
    l2_chain: Optional[ChainClient] = None,
    clock: Callable[[], datetime] = utcnow,
    sleep: Sleep = asyncio.sleep,
) -> ServiceContainer:
    """
    Wire all components.

    Raises:
        ConfigurationError: settings are incomplete or inconsistent
    """
    settings.validate_runtime()

    try:
        funding_account = Account.from_key(settings.relayer_private_key)
    except Exception as exc:
        raise ConfigurationError("RELAYER_PRIVATE_KEY is not a valid private key") from exc

    l1_chain = l1_chain or JsonRpcChainClient(
        settings.rpc_url,
        settings.chain_id,
        bundler_url=settings.bundler_url,
        timeout_s=settings.chain_request_timeout_seconds,
    )
    l2_chain = l2_chain or JsonRpcChainClient(
        settings.l2_rpc_url,
        settings.l2_chain_id,
        timeout_s=settings.chain_request_timeout_seconds,
    )

    def retry() -> ExponentialBackoffStrategy:
        return ExponentialBackoffStrategy(
            max_attempts=settings.chain_max_retries,
            initial_delay=settings.chain_retry_initial_delay_seconds,
            logger=logger,
            sleep=sleep,
        )

    nonces = NonceManager({l1_chain.chain_id: l1_chain, l2_chain.chain_id: l2_chain})
    relayer_options = dict(
        gas_limit=settings.gas_limit,
        max_priority_fee_per_gas=settings.max_priority_fee_per_gas_wei,
        clock=clock,
    )
    l1_relayer = Relayer(funding_account, l1_chain, nonces, retry=retry(), **relayer_options)
    l2_relayer = Relayer(funding_account, l2_chain, nonces, retry=retry(), **relayer_options)

    identity = IdentityManager()
    sessions = SessionKeyManager(
        max_lifetime=timedelta(seconds=settings.session_key_max_lifetime_seconds),
        clock=clock,
    )
    paymaster = PaymasterRelay(
        sessions,
        l1_relayer,
        paymaster_address=settings.paymaster_address,
        max_gas_per_request=settings.paymaster_max_gas_per_request,
        max_daily_sponsorships=settings.paymaster_max_daily_sponsorships,
        dedup_ttl_seconds=settings.paymaster_dedup_ttl_seconds,
        clock=clock,
    )
    bridge = BridgeCoordinator(
        validators=settings.bridge_validators,
        threshold=settings.bridge_signature_threshold,
        l1_relayer=l1_relayer,
        l2_relayer=l2_relayer,
        l1_bridge_address=settings.bridge_address,
        l2_bridge_address=settings.l2_bridge_address,
        merge_pending_withdrawals=settings.bridge_merge_pending_withdrawals,
        clock=clock,
    )
    payments = PaymentLedger(
        l1_relayer,
        pos_address=settings.pos_address,
        default_expiry=timedelta(seconds=settings.invoice_default_expiry_seconds),
        clock=clock,
    )
    wallets = WalletService(
        identity,
        sessions,
        l1_chain,
        token_address=settings.vyra_token_address,
        entry_point_address=settings.entry_point_address,
        paymaster_address=settings.paymaster_address,
        token_decimals=settings.token_decimals,
        execute_signature=settings.account_execute_signature,
        call_gas_limit=settings.userop_call_gas_limit,
        verification_gas_limit=settings.userop_verification_gas_limit,
        pre_verification_gas=settings.userop_pre_verification_gas,
        max_priority_fee_per_gas=settings.max_priority_fee_per_gas_wei,
        retry=retry(),
    )

    logger.info(
        f"Container ready: chain {l1_chain.chain_id} / L2 {l2_chain.chain_id}, "
        f"funding account {funding_account.address}, "
        f"{len(bridge.validators)} validators (threshold {bridge.threshold})"
    )

    return ServiceContainer(
        settings=settings,
        l1_chain=l1_chain,
        l2_chain=l2_chain,
        nonces=nonces,
        l1_relayer=l1_relayer,
        l2_relayer=l2_relayer,
        identity=identity,
        sessions=sessions,
        paymaster=paymaster,
        bridge=bridge,
        payments=payments,
        wallets=wallets,
    )
