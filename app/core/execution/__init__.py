"""
Transaction Execution Layer

Provides the infrastructure for getting transactions on-chain:
- Relayer: Signs and broadcasts funding-account transactions
- NonceManager: Manages nonces for concurrent transactions
- UserOperation: ERC-4337 v0.6 user operations and their hash
- Calldata builders for the contracts the service drives

Usage:
    from app.core.execution import Relayer, TransactionIntent, TransactionType

    tx_hash = await relayer.submit(
        TransactionIntent(
            tx_type=TransactionType.SPONSORSHIP,
            chain_id=relayer.chain_id,
            to_address=paymaster,
            data=build_add_sponsor_balance_call(user, gas_used),
        ),
        idempotency_key=signature,
    )
"""

from .models import (
    TransactionType,
    TransactionIntent,
    SubmittedTransaction,
)

from .nonce_manager import (
    NonceManager,
    NonceState,
)

from .relayer import Relayer

from .userop import UserOperation

from .userop_builder import (
    build_add_sponsor_balance_call,
    build_entrypoint_get_nonce_call,
    build_erc20_balance_of_call,
    build_erc20_transfer_call,
    build_execute_call_data,
    build_initiate_withdrawal_call,
    build_process_deposit_call,
    build_process_payment_call,
    decode_uint256,
    encode_call,
)

__all__ = [
    # Models
    "TransactionType",
    "TransactionIntent",
    "SubmittedTransaction",
    # Nonce Manager
    "NonceManager",
    "NonceState",
    # Relayer
    "Relayer",
    # User operations
    "UserOperation",
    # Calldata
    "build_add_sponsor_balance_call",
    "build_entrypoint_get_nonce_call",
    "build_erc20_balance_of_call",
    "build_erc20_transfer_call",
    "build_execute_call_data",
    "build_initiate_withdrawal_call",
    "build_process_deposit_call",
    "build_process_payment_call",
    "decode_uint256",
    "encode_call",
]
