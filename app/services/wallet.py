"""
Wallet service.

Connects key-derived wallets, reads native and VYR balances, and sends VYR
from an owner's smart account as an ERC-4337 user operation signed by the
owner's active session key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..core.amounts import AmountInput, format_units, parse_amount, to_base_units
from ..core.execution.userop import UserOperation
from ..core.execution.userop_builder import (
    DEFAULT_EXECUTE_SIGNATURE,
    build_entrypoint_get_nonce_call,
    build_erc20_balance_of_call,
    build_erc20_transfer_call,
    build_execute_call_data,
    decode_uint256,
)
from ..core.identity import ConnectionKind, IdentityManager, Wallet, normalize_address
from ..core.recovery.errors import UnauthorizedError
from ..core.recovery.strategies import ExponentialBackoffStrategy, RecoveryStrategy
from ..core.wallet import SessionKeyManager

if TYPE_CHECKING:
    from ..providers.chain import ChainClient

logger = logging.getLogger(__name__)


class WalletService:
    """
    Wallet operations for the REST surface.

    Usage:
        service = WalletService(identity, sessions, chain, token_address=..., ...)

        wallet = await service.connect("privateKey", private_key="0x...")
        balance = await service.get_balance(wallet.address)
        user_op_hash = await service.send_payment(wallet.address, "0x...", "1.5")
    """

    def __init__(
        self,
        identity: IdentityManager,
        sessions: SessionKeyManager,
        chain: "ChainClient",
        *,
        token_address: str,
        entry_point_address: str,
        paymaster_address: str,
        token_decimals: int = 18,
        execute_signature: str = DEFAULT_EXECUTE_SIGNATURE,
        call_gas_limit: int = 200_000,
        verification_gas_limit: int = 150_000,
        pre_verification_gas: int = 50_000,
        max_priority_fee_per_gas: int = 1_500_000_000,
        retry: Optional[RecoveryStrategy] = None,
    ):
        self._identity = identity
        self._sessions = sessions
        self._chain = chain
        self.token_address = normalize_address(token_address, field="vyra_token_address")
        self.entry_point_address = normalize_address(entry_point_address, field="entry_point_address")
        self.paymaster_address = normalize_address(paymaster_address, field="paymaster_address")
        self.token_decimals = token_decimals
        self.execute_signature = execute_signature
        self.call_gas_limit = call_gas_limit
        self.verification_gas_limit = verification_gas_limit
        self.pre_verification_gas = pre_verification_gas
        self.max_priority_fee_per_gas = max_priority_fee_per_gas
        self._retry = retry or ExponentialBackoffStrategy(logger=logger)

    async def connect(
        self,
        kind: str,
        private_key: Optional[str] = None,
        mnemonic: Optional[str] = None,
        derivation_index: Optional[int] = None,
    ) -> Wallet:
        material = mnemonic if kind == ConnectionKind.MNEMONIC.value else private_key
        return self._identity.connect(kind, material)

    async def get_balance(self, address: str) -> str:
        """Native balance in ether, 18 decimal places."""
        address = normalize_address(address)
        wei = await self._retry.execute(
            lambda: self._chain.get_balance(address),
            {"operation": "eth_getBalance"},
        )
        return format_units(wei, 18)

    async def get_vyra_balance(self, address: str) -> str:
        address = normalize_address(address)
        result = await self._retry.execute(
            lambda: self._chain.call(self.token_address, build_erc20_balance_of_call(address)),
            {"operation": "VYR balanceOf"},
        )
        return format_units(decode_uint256(result), self.token_decimals)

    async def send_payment(
        self,
        owner: str,
        to: str,
        amount: AmountInput,
        description: str = "",
    ) -> str:
        """
        Send VYR from the owner's smart account; returns the user operation hash.

        Raises:
            ValidationError: bad address or amount
            UnauthorizedError: the owner has no active session key
            ChainError: node or bundler failure
        """
        owner = normalize_address(owner, field="owner")
        to = normalize_address(to, field="to")
        value = parse_amount(amount, decimals=self.token_decimals)
        amount_units = to_base_units(value, self.token_decimals)

        # Fail before any chain reads when no session key exists
        if await self._sessions.get_active_session_key(owner) is None:
            raise UnauthorizedError(f"No active session key for {owner}")

        nonce_result = await self._retry.execute(
            lambda: self._chain.call(self.entry_point_address, build_entrypoint_get_nonce_call(owner, 0)),
            {"operation": "EntryPoint getNonce"},
        )
        gas_price = await self._retry.execute(
            self._chain.get_gas_price,
            {"operation": "eth_gasPrice"},
        )

        user_op = UserOperation(
            sender=owner,
            nonce=decode_uint256(nonce_result),
            init_code="0x",
            call_data=build_execute_call_data(
                self.token_address,
                0,
                build_erc20_transfer_call(to, amount_units),
                signature=self.execute_signature,
            ),
            call_gas_limit=self.call_gas_limit,
            verification_gas_limit=self.verification_gas_limit,
            pre_verification_gas=self.pre_verification_gas,
            max_fee_per_gas=2 * gas_price + self.max_priority_fee_per_gas,
            max_priority_fee_per_gas=self.max_priority_fee_per_gas,
            paymaster_and_data=self.paymaster_address,
        )
        user_op_hash = user_op.hash(self.entry_point_address, self._chain.chain_id)
        user_op.signature = await self._sessions.sign_with_session_key(owner, user_op_hash)

        result = await self._chain.send_user_operation(user_op, self.entry_point_address)
        logger.info(f"Sent {value} VYR from {owner} to {to}: {result} {description}".rstrip())
        return result
