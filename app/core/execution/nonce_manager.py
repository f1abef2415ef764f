"""
Funding-account nonces.

The relayer can have several transactions in flight for the same account on
the same chain. Nonces are handed out from a local counter that is re-synced
with the node's pending count on every reservation, so a transaction that
never reached the node gives its nonce back and a gap is never left behind:
released nonces are handed out again, lowest first, before the counter
advances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator, Dict, Optional, Set

from ..locks import KeyedLocks

if TYPE_CHECKING:
    from app.providers.chain import ChainClient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NonceState:
    """Local view of one account's nonces on one chain."""
    address: str
    chain_id: int
    confirmed_nonce: int                        # Next nonce the node expects
    pending_nonce: int                          # Next nonce we will hand out
    reserved_nonces: Set[int] = field(default_factory=set)
    released_nonces: Set[int] = field(default_factory=set)   # Holes to fill first
    last_updated: datetime = field(default_factory=_utcnow)


class NonceManager:
    """
    Hands out nonces per (chain, address).

    Usage:
        async with nonces.reserve(address, chain_id) as nonce:
            await broadcast(nonce)   # confirmed on exit, released on error
    """

    def __init__(self, chains: Dict[int, "ChainClient"]):
        self._chains = chains
        self._states: Dict[str, NonceState] = {}
        self._locks = KeyedLocks("nonce")

    @staticmethod
    def _key(chain_id: int, address: str) -> str:
        return f"{chain_id}:{address.lower()}"

    async def get_next_nonce(self, address: str, chain_id: int, sync: bool = True) -> int:
        """
        Reserve and return the next nonce.

        Raises:
            ValueError: no client for ``chain_id``
            ChainError: the pending count could not be read
        """
        key = self._key(chain_id, address)

        async with self._locks.hold(key):
            state = self._states.get(key)
            if state is None or sync:
                on_chain = await self._pending_count(chain_id, address)
                if state is None:
                    state = NonceState(
                        address=address.lower(),
                        chain_id=chain_id,
                        confirmed_nonce=on_chain,
                        pending_nonce=on_chain,
                    )
                    self._states[key] = state
                else:
                    # The node may be ahead of us (another process); never behind
                    state.confirmed_nonce = max(state.confirmed_nonce, on_chain)
                    state.pending_nonce = max(state.pending_nonce, on_chain)
                    state.released_nonces = {n for n in state.released_nonces if n >= on_chain}
                    state.last_updated = _utcnow()

            if state.released_nonces:
                nonce = min(state.released_nonces)
                state.released_nonces.discard(nonce)
            else:
                nonce = state.pending_nonce
                while nonce in state.reserved_nonces:
                    nonce += 1
                state.pending_nonce = nonce + 1
            state.reserved_nonces.add(nonce)
            return nonce

    async def release_nonce(self, address: str, chain_id: int, nonce: int) -> None:
        """Give back a nonce whose transaction never reached the node."""
        key = self._key(chain_id, address)

        async with self._locks.hold(key):
            state = self._states.get(key)
            if state is None:
                return
            if nonce not in state.reserved_nonces:
                return
            state.reserved_nonces.discard(nonce)
            state.released_nonces.add(nonce)
            # A hole at the top of the range just shrinks the range
            while state.pending_nonce - 1 in state.released_nonces:
                state.pending_nonce -= 1
                state.released_nonces.discard(state.pending_nonce)

    async def confirm_nonce(self, address: str, chain_id: int, nonce: int) -> None:
        """The node accepted the transaction using ``nonce``."""
        key = self._key(chain_id, address)

        async with self._locks.hold(key):
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)
            state.confirmed_nonce = max(state.confirmed_nonce, nonce + 1)

    @asynccontextmanager
    async def reserve(self, address: str, chain_id: int) -> AsyncIterator[int]:
        nonce = await self.get_next_nonce(address, chain_id)
        try:
            yield nonce
        except BaseException:
            await self.release_nonce(address, chain_id, nonce)
            raise
        await self.confirm_nonce(address, chain_id, nonce)

    async def get_state(self, address: str, chain_id: int) -> Optional[NonceState]:
        return self._states.get(self._key(chain_id, address))

    async def clear_state(self, address: str, chain_id: int) -> None:
        """Forget the local view; the next reservation re-reads the node."""
        self._states.pop(self._key(chain_id, address), None)

    async def _pending_count(self, chain_id: int, address: str) -> int:
        client = self._chains.get(chain_id)
        if client is None:
            raise ValueError(f"No chain client configured for chain {chain_id}")
        return await client.get_transaction_count(address)
