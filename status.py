"""
Kaspa Faucet: Status snapshot
Read-only view of the treasury for /status. Reads the balance and fee estimate and never
touches the cooldown records.
"""
from dataclasses import dataclass

from rate_limiter import RateLimiter
from treasury import TreasuryClient


@dataclass(frozen=True)
class FaucetStatus:
    active: bool
    faucet_address: str
    balance: int
    next_claim_seconds: int


class StatusReporter:
    def __init__(self, treasury: TreasuryClient, rate_limiter: RateLimiter, amount_per_claim: int) -> None:
        self._treasury = treasury
        self._limiter = rate_limiter
        self._amount_per_claim = amount_per_claim

    async def get_status(self, identity: str) -> FaucetStatus:
        """Raises TreasuryError when the balance or fee cannot be read."""
        balance = await self._treasury.get_balance(self._treasury.faucet_address)
        fee = await self._treasury.estimate_fee()
        return FaucetStatus(
            active=balance >= self._amount_per_claim + fee,
            faucet_address=self._treasury.faucet_address,
            balance=balance,
            next_claim_seconds=self._limiter.peek(identity),
        )
