"""
Kaspa Faucet: Claim cooldown
One timestamp per requester identity, kept in memory only and lost on restart.
The eligibility check and the write of the new timestamp happen under one lock,
so two concurrent claims from the same identity cannot both be admitted.
"""
import math
import threading
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class Reservation:
    """An admitted claim. Hand it back to release() if the payout did not happen."""
    identity: str
    reserved_at: float
    previous: float | None


@dataclass(frozen=True)
class Denied:
    retry_after_seconds: int


class RateLimiter:
    def __init__(self, interval_seconds: int, clock=time.monotonic) -> None:
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._claims: dict[str, float] = {}

    def _remaining(self, identity: str, now: float) -> float:
        last = self._claims.get(identity)
        if last is None:
            return 0.0
        return max(0.0, self.interval_seconds - (now - last))

    def check_and_reserve(self, identity: str) -> Reservation | Denied:
        with self._lock:
            now = self._clock()
            remaining = self._remaining(identity, now)
            if remaining > 0:
                return Denied(retry_after_seconds=math.ceil(remaining))
            previous = self._claims.get(identity)
            self._claims[identity] = now
            return Reservation(identity=identity, reserved_at=now, previous=previous)

    def release(self, reservation: Reservation) -> bool:
        """
        Undo a reservation whose payout failed. Does nothing (returns False) if
        the identity's record has been overwritten since.
        """
        with self._lock:
            if self._claims.get(reservation.identity) != reservation.reserved_at:
                return False
            if reservation.previous is None:
                del self._claims[reservation.identity]
            else:
                self._claims[reservation.identity] = reservation.previous
            return True

    def peek(self, identity: str) -> int:
        """Seconds until `identity` may claim again; 0 when eligible now."""
        with self._lock:
            return math.ceil(self._remaining(identity, self._clock()))

    def __len__(self) -> int:
        return len(self._claims)
