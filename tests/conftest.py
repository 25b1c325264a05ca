import asyncio

import pytest
from fastapi.testclient import TestClient

from config import Settings
from kaspa_address import encode_address
from limiter import limiter
from main import create_app
from treasury import TreasuryClient, TreasuryError, UnknownTransaction

FAUCET_ADDRESS = encode_address("kaspatest", 0, bytes(range(32)))
USER_ADDRESS = encode_address("kaspatest", 0, bytes(range(100, 132)))
MAINNET_ADDRESS = encode_address("kaspa", 0, bytes(range(100, 132)))

AMOUNT = 100_000_000
INTERVAL = 3600
FEE = 2000


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubTreasury(TreasuryClient):
    """Deterministic in-memory treasury: balance drops by amount + fee per payout."""

    def __init__(self, balance: int = 10 * AMOUNT, fee: int = FEE) -> None:
        self.faucet_address = FAUCET_ADDRESS
        self.balance = balance
        self.fee = fee
        self.balance_error: TreasuryError | None = None
        self.submit_error: TreasuryError | None = None
        self.gate: asyncio.Event | None = None
        self.submissions: list[tuple[str, int]] = []
        self.balance_reads = 0
        self.confirmations: dict[str, bool] = {}
        self.closed = False

    async def get_balance(self, address: str) -> int:
        self.balance_reads += 1
        if self.balance_error:
            raise self.balance_error
        return self.balance

    async def estimate_fee(self) -> int:
        return self.fee

    async def submit_transfer(self, to_address, amount: int) -> str:
        if self.gate is not None:
            await self.gate.wait()
        if self.submit_error:
            raise self.submit_error
        self.balance -= amount + self.fee
        self.submissions.append((str(to_address), amount))
        return f"{len(self.submissions):064x}"

    async def get_confirmation(self, transaction_id: str) -> bool:
        if transaction_id not in self.confirmations:
            raise UnknownTransaction(transaction_id)
        return self.confirmations[transaction_id]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_flood_guard():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def treasury():
    return StubTreasury()


@pytest.fixture
def settings():
    return Settings(
        kaspad_url="http://127.0.0.1:8000",
        port=3010,
        faucet_private_key="11" * 32,
        amount_per_claim=AMOUNT,
        claim_interval_seconds=INTERVAL,
        trusted_proxy_header="X-Forwarded-For",
    )


@pytest.fixture
def app(settings, treasury, clock):
    return create_app(settings, treasury=treasury, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
