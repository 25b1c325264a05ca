"""
Kaspa Faucet: Claim processing
Validates a claim, admits it through the cooldown limiter, checks the treasury can
cover it and submits the payout. A failed payout is reported, never retried, and
hands the requester's cooldown reservation back.
"""
import asyncio
import logging
from dataclasses import dataclass

from kaspa_address import AddressError, parse_network_address
from rate_limiter import Denied, RateLimiter, Reservation
from treasury import InsufficientFunds, TreasuryClient, TreasuryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimRequest:
    address: str
    identity: str


# ── Outcomes ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClaimSuccess:
    transaction_id: str
    amount: int
    next_claim_seconds: int


@dataclass(frozen=True)
class RateLimited:
    retry_after_seconds: int


@dataclass(frozen=True)
class InvalidAddress:
    reason: str


@dataclass(frozen=True)
class TreasuryUnavailable:
    pass


@dataclass(frozen=True)
class OutOfFunds:
    pass


ClaimOutcome = ClaimSuccess | RateLimited | InvalidAddress | TreasuryUnavailable | OutOfFunds


class ClaimProcessor:
    def __init__(
        self,
        treasury: TreasuryClient,
        rate_limiter: RateLimiter,
        amount_per_claim: int,
        claim_interval_seconds: int,
        network_prefix: str,
    ) -> None:
        self._treasury = treasury
        self._limiter = rate_limiter
        self.amount_per_claim = amount_per_claim
        self.claim_interval_seconds = claim_interval_seconds
        self.network_prefix = network_prefix
        self._inflight: set[asyncio.Task] = set()

    def _release(self, reservation: Reservation) -> None:
        if not self._limiter.release(reservation):
            logger.debug("Reservation for %s already superseded", reservation.identity)

    async def process_claim(self, request: ClaimRequest) -> ClaimOutcome:
        try:
            destination = parse_network_address(request.address, self.network_prefix)
        except AddressError as e:
            logger.warning("Invalid address from %s: %s", request.identity, e)
            return InvalidAddress(reason=str(e))

        admitted = self._limiter.check_and_reserve(request.identity)
        if isinstance(admitted, Denied):
            logger.warning("Rate limit exceeded for %s (%ds left)",
                           request.identity, admitted.retry_after_seconds)
            return RateLimited(retry_after_seconds=admitted.retry_after_seconds)

        try:
            balance = await self._treasury.get_balance(self._treasury.faucet_address)
            fee = await self._treasury.estimate_fee()
        except TreasuryError as e:
            logger.error("Treasury check failed: %s", e)
            self._release(admitted)
            return TreasuryUnavailable()
        except BaseException:
            self._release(admitted)
            raise

        if balance < self.amount_per_claim + fee:
            logger.error("Insufficient faucet funds: have %d sompi, need %d sompi",
                         balance, self.amount_per_claim + fee)
            self._release(admitted)
            return OutOfFunds()

        try:
            transaction_id = await self._treasury.submit_transfer(destination, self.amount_per_claim)
        except InsufficientFunds as e:
            logger.error("Faucet send failed: %s", e)
            self._release(admitted)
            return OutOfFunds()
        except TreasuryError as e:
            logger.error("Faucet send failed: %s", e)
            self._release(admitted)
            return TreasuryUnavailable()

        logger.info("Paid %d sompi to %s for %s: %s",
                    self.amount_per_claim, destination, request.identity, transaction_id)
        return ClaimSuccess(
            transaction_id=transaction_id,
            amount=self.amount_per_claim,
            next_claim_seconds=self.claim_interval_seconds,
        )

    async def process_claim_shielded(self, request: ClaimRequest) -> ClaimOutcome:
        """
        Run process_claim in its own task. Cancelling the caller (a dropped HTTP
        connection) does not cancel the payout or its cooldown bookkeeping.
        """
        task = asyncio.create_task(self.process_claim(request))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for claims whose callers went away to finish."""
        if self._inflight:
            logger.info("Waiting for %d in-flight claim(s)", len(self._inflight))
            await asyncio.gather(*self._inflight, return_exceptions=True)
