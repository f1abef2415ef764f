"""
ERC-4337 v0.6 UserOperation models and helpers.
"""

from dataclasses import dataclass
from typing import Any, Dict

from eth_abi import encode
from eth_utils import keccak


def _to_hex(value: int) -> str:
    return hex(value)


def _hex_bytes(value: str) -> bytes:
    body = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(body)


@dataclass
class UserOperation:
    """
    ERC-4337 UserOperation payload.

    Values should be supplied in raw units (wei / gas units) and are encoded
    as hex for RPC calls.
    """
    sender: str
    nonce: int
    init_code: str
    call_data: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: str = "0x"
    signature: str = "0x"

    def pack(self) -> bytes:
        """ABI-encode the operation without its signature, dynamic fields hashed."""
        return encode(
            [
                "address", "uint256", "bytes32", "bytes32", "uint256",
                "uint256", "uint256", "uint256", "uint256", "bytes32",
            ],
            [
                self.sender,
                self.nonce,
                keccak(_hex_bytes(self.init_code)),
                keccak(_hex_bytes(self.call_data)),
                self.call_gas_limit,
                self.verification_gas_limit,
                self.pre_verification_gas,
                self.max_fee_per_gas,
                self.max_priority_fee_per_gas,
                keccak(_hex_bytes(self.paymaster_and_data)),
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """The digest the account's owner signs (EntryPoint.getUserOpHash)."""
        return keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(self.pack()), entry_point, chain_id],
            )
        )

    def to_rpc_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "nonce": _to_hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "callGasLimit": _to_hex(self.call_gas_limit),
            "verificationGasLimit": _to_hex(self.verification_gas_limit),
            "preVerificationGas": _to_hex(self.pre_verification_gas),
            "maxFeePerGas": _to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex(self.max_priority_fee_per_gas),
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }
