"""
Shared fixtures: an in-memory chain client, fixed keys and a wired container.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from eth_account import Account
from eth_utils import keccak

from app.config import Settings
from app.container import build_container
from app.core.execution.userop import UserOperation
from app.core.recovery.errors import ChainError
from app.providers.chain import ChainClient, TransactionReceipt


RELAYER_KEY = "0x" + "a1" * 32
OWNER_KEY = "0x" + "b2" * 32
VALIDATOR_KEYS = ["0x" + "c3" * 32, "0x" + "d4" * 32, "0x" + "e5" * 32]
OUTSIDER_KEY = "0x" + "f6" * 32


class FakeChainClient(ChainClient):
    """
    In-memory ChainClient.

    ``send_failures`` makes the next N broadcasts raise ChainError with
    ``send_error``; ``send_gate`` holds broadcasts until the event is set.
    Every accepted raw transaction is kept in ``sent``.
    """

    name = "fake-chain"

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        self.balances: Dict[str, int] = {}
        self.call_results: Dict[str, str] = {}
        self.receipts: Dict[str, TransactionReceipt] = {}
        self.gas_price = 1_000_000_000
        self.tx_count = 0
        self.send_failures = 0
        self.send_error = "connection reset"
        self.send_attempts: List[str] = []
        self.sent: List[str] = []
        self.user_ops: List[UserOperation] = []
        self.healthy = True
        self.send_gate: Optional[asyncio.Event] = None

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        if not self.healthy:
            return {"status": "error", "reason": "node unreachable"}
        return {"status": "healthy", "chainId": self.chain_id}

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    async def call(self, to: str, data: str) -> str:
        # keyed by target and 4-byte selector
        return self.call_results.get(f"{to.lower()}:{data[:10]}", "0x")

    async def get_transaction_count(self, address: str) -> int:
        return self.tx_count

    async def get_gas_price(self) -> int:
        return self.gas_price

    async def send_raw_transaction(self, raw_tx: str) -> str:
        self.send_attempts.append(raw_tx)
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_failures > 0:
            self.send_failures -= 1
            raise ChainError(f"eth_sendRawTransaction failed: {self.send_error}", chain_id=self.chain_id)
        self.sent.append(raw_tx)
        return "0x" + keccak(hexstr=raw_tx).hex()

    async def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        return self.receipts.get(tx_hash.lower())

    async def send_user_operation(self, user_op: UserOperation, entry_point: str) -> str:
        self.user_ops.append(user_op)
        return "0x" + user_op.hash(entry_point, self.chain_id).hex()


class MutableClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def relayer_account():
    return Account.from_key(RELAYER_KEY)


@pytest.fixture
def owner_account():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def validator_accounts():
    return [Account.from_key(key) for key in VALIDATOR_KEYS]


@pytest.fixture
def outsider_account():
    return Account.from_key(OUTSIDER_KEY)


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def l1_chain():
    return FakeChainClient(31337)


@pytest.fixture
def l2_chain():
    return FakeChainClient(31338)


@pytest.fixture
def settings(validator_accounts):
    return Settings(
        relayer_private_key=RELAYER_KEY,
        bridge_validators=[account.address for account in validator_accounts],
        bridge_signature_threshold=2,
        chain_id=31337,
        l2_chain_id=31338,
        chain_max_retries=3,
        chain_retry_initial_delay_seconds=0,
        paymaster_max_daily_sponsorships=3,
    )


@pytest.fixture
def container(settings, l1_chain, l2_chain, clock):
    return build_container(
        settings,
        l1_chain=l1_chain,
        l2_chain=l2_chain,
        clock=clock,
        sleep=no_sleep,
    )
