"""
Chain client provider.

Reads state and submits transactions over Ethereum JSON-RPC. One client is
built per chain (the L1 home chain and the L2 chain); the bundler endpoint
for user operations may live on a different URL than the node.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import Provider
from ..core.execution.userop import UserOperation
from ..core.recovery.errors import ChainError


logger = logging.getLogger(__name__)


@dataclass
class TransactionReceipt:
    tx_hash: str
    success: bool
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "TransactionReceipt":
        def parse_hex(value: Optional[str]) -> Optional[int]:
            if value is None:
                return None
            return int(value, 16)

        return cls(
            tx_hash=data.get("transactionHash", ""),
            success=data.get("status") == "0x1",
            block_number=parse_hex(data.get("blockNumber")),
            gas_used=parse_hex(data.get("gasUsed")),
        )


class ChainClient(Provider):
    """Everything the service needs from a chain."""

    chain_id: int

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""

    @abstractmethod
    async def call(self, to: str, data: str) -> str:
        """eth_call against the latest block; returns raw hex."""

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """Pending nonce for ``address``."""

    @abstractmethod
    async def get_gas_price(self) -> int:
        pass

    @abstractmethod
    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast a signed transaction; returns its hash."""

    @abstractmethod
    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """None while the transaction is not mined."""

    @abstractmethod
    async def send_user_operation(self, user_op: UserOperation, entry_point: str) -> str:
        """Hand a signed user operation to the bundler; returns its hash."""


class JsonRpcChainClient(ChainClient):
    name = "chain"
    timeout_s = 30

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        *,
        bundler_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.bundler_url = bundler_url or rpc_url
        self.chain_id = chain_id
        self.name = f"chain-{chain_id}"
        if timeout_s is not None:
            self.timeout_s = timeout_s
        self._client = client

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "RPC URL not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": int(result, 16)}
        except ChainError as exc:
            return {"status": "error", "reason": exc.message}

    async def get_balance(self, address: str) -> int:
        result = await self._rpc_call("eth_getBalance", [address, "latest"])
        return self._parse_quantity(result, "eth_getBalance")

    async def call(self, to: str, data: str) -> str:
        result = await self._rpc_call("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str):
            raise ChainError("Invalid response for eth_call", chain_id=self.chain_id)
        return result

    async def get_transaction_count(self, address: str) -> int:
        result = await self._rpc_call("eth_getTransactionCount", [address, "pending"])
        return self._parse_quantity(result, "eth_getTransactionCount")

    async def get_gas_price(self) -> int:
        result = await self._rpc_call("eth_gasPrice", [])
        return self._parse_quantity(result, "eth_gasPrice")

    async def send_raw_transaction(self, raw_tx: str) -> str:
        result = await self._rpc_call("eth_sendRawTransaction", [raw_tx])
        if not isinstance(result, str):
            raise ChainError("Invalid response for eth_sendRawTransaction", chain_id=self.chain_id)
        return result

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        result = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        if not result:
            return None
        return TransactionReceipt.from_rpc(result)

    async def send_user_operation(self, user_op: UserOperation, entry_point: str) -> str:
        result = await self._rpc_call(
            "eth_sendUserOperation",
            [user_op.to_rpc_dict(), entry_point],
            url=self.bundler_url,
        )
        if not isinstance(result, str):
            raise ChainError("Invalid bundler response for eth_sendUserOperation", chain_id=self.chain_id)
        return result

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _parse_quantity(self, value: Any, method: str) -> int:
        try:
            return int(value, 16)
        except (TypeError, ValueError):
            raise ChainError(f"Invalid response for {method}", chain_id=self.chain_id)

    async def _rpc_call(self, method: str, params: list[Any], *, url: Optional[str] = None) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        try:
            response = await self._client.post(
                url or self.rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException:
            raise ChainError(f"{method} timed out", chain_id=self.chain_id)
        except httpx.HTTPError as exc:
            raise ChainError(f"{method} failed: {exc}", chain_id=self.chain_id)
        except ValueError:
            raise ChainError(f"{method} returned invalid JSON", chain_id=self.chain_id)

        if not isinstance(payload, dict):
            raise ChainError(f"{method} returned a non-object JSON-RPC response", chain_id=self.chain_id)
        if "error" in payload:
            error = payload["error"] or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning(f"RPC error on chain {self.chain_id} for {method}: {message}")
            raise ChainError(f"{method} failed: {message}", chain_id=self.chain_id)
        return payload.get("result")
