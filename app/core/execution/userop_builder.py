"""
Contract calldata builders.

Covers the smart account (``execute``), the EntryPoint nonce query, the VYR
token, and the paymaster, bridge and point-of-sale contracts the service
drives through the relayer.
"""

from __future__ import annotations

from typing import Any, List, Sequence

from eth_abi import encode
from eth_utils import keccak

DEFAULT_EXECUTE_SIGNATURE = "execute(address,uint256,bytes)"

ERC20_TRANSFER = "transfer(address,uint256)"
ERC20_BALANCE_OF = "balanceOf(address)"
ENTRYPOINT_GET_NONCE = "getNonce(address,uint192)"
PAYMASTER_ADD_SPONSOR_BALANCE = "addSponsorBalance(address,uint256)"
BRIDGE_PROCESS_DEPOSIT = "processDeposit(bytes32,bytes[])"
BRIDGE_INITIATE_WITHDRAWAL = "initiateWithdrawal(uint256,bytes32,bytes[])"
POS_PROCESS_PAYMENT = "processPayment(bytes32,address,bytes)"


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def _to_bytes(data: str) -> bytes:
    hex_data = _strip_0x(data)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    return bytes.fromhex(hex_data)


def _selector_from_signature(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def _arg_types(signature: str) -> List[str]:
    inner = signature[signature.index("(") + 1 : signature.rindex(")")]
    return [t for t in inner.split(",") if t]


def encode_call(signature: str, args: Sequence[Any]) -> str:
    """Selector plus ABI-encoded arguments, as 0x hex."""
    body = encode(_arg_types(signature), list(args))
    return "0x" + (_selector_from_signature(signature) + body).hex()


def build_execute_call_data(
    to_address: str,
    value_wei: int,
    data: str,
    *,
    signature: str = DEFAULT_EXECUTE_SIGNATURE,
) -> str:
    """
    Build calldata for execute(address,uint256,bytes).
    """
    return encode_call(signature, [to_address, value_wei, _to_bytes(data)])


def build_entrypoint_get_nonce_call(sender: str, key: int = 0) -> str:
    """
    Build calldata for EntryPoint.getNonce(address,uint192).
    """
    return encode_call(ENTRYPOINT_GET_NONCE, [sender, key])


def build_erc20_transfer_call(to_address: str, amount: int) -> str:
    return encode_call(ERC20_TRANSFER, [to_address, amount])


def build_erc20_balance_of_call(owner: str) -> str:
    return encode_call(ERC20_BALANCE_OF, [owner])


def build_add_sponsor_balance_call(user: str, gas_used: int) -> str:
    return encode_call(PAYMASTER_ADD_SPONSOR_BALANCE, [user, gas_used])


def build_process_deposit_call(deposit_id: bytes, signatures: Sequence[bytes]) -> str:
    return encode_call(BRIDGE_PROCESS_DEPOSIT, [deposit_id, list(signatures)])


def build_initiate_withdrawal_call(
    amount_wei: int,
    source_tx_hash: bytes,
    signatures: Sequence[bytes],
) -> str:
    return encode_call(BRIDGE_INITIATE_WITHDRAWAL, [amount_wei, source_tx_hash, list(signatures)])


def build_process_payment_call(invoice_id: bytes, payer: str, authorization: bytes) -> str:
    return encode_call(POS_PROCESS_PAYMENT, [invoice_id, payer, authorization])


def decode_uint256(result: str) -> int:
    """Decode a single uint256 eth_call result."""
    body = _strip_0x(result or "")
    if not body:
        return 0
    return int(body[:64], 16)
