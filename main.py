"""
Kaspa Testnet Faucet
====================
Dispenses a fixed amount of testnet KAS per requester per cooldown window from a
single funded wallet, and reports the wallet's live status.

Cooldown records are kept in memory only: restarting the faucet forgets them.
"""
import logging
import sys
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from claims import ClaimProcessor
from config import HOST, LOG_LEVEL, NETWORK_PREFIX, ConfigError, Settings, load_config
from limiter import limiter
from rate_limiter import RateLimiter
from routers import faucet, system
from routers.faucet import error_response
from signing import FaucetKey
from status import StatusReporter
from treasury import KaspaTreasury, TreasuryClient, TreasuryError

logger = logging.getLogger(__name__)


# ── Wiring ────────────────────────────────────────────────────────────────────

def build_treasury(settings: Settings) -> KaspaTreasury:
    try:
        key = FaucetKey(settings.faucet_private_key)
    except ValueError as e:
        raise ConfigError(f"Invalid faucet_private_key: {e}") from None
    return KaspaTreasury(
        settings.node_url,
        key,
        NETWORK_PREFIX,
        timeout=settings.node_timeout_seconds,
    )


# ── Lifespan ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    treasury: TreasuryClient = app.state.treasury
    logger.info("Faucet address: %s", treasury.faucet_address)
    try:
        balance = await treasury.get_balance(treasury.faucet_address)
        logger.info("Treasury balance: %d sompi", balance)
    except TreasuryError as e:
        logger.warning("Node not reachable at startup, serving anyway: %s", e)
    yield
    await app.state.claim_processor.drain()
    await treasury.aclose()


async def _flood_guard_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = exc.limit.limit.get_expiry()
    return error_response(
        429, "rate_limited",
        f"Too many requests ({exc.detail}). Try again in {retry_after} seconds.",
        retry_after=retry_after,
    )


async def _invalid_request_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    error = "invalid_address" if "body.address" in fields else "invalid_request"
    return JSONResponse(
        status_code=400,
        content={"error": error, "message": "Expected a JSON body like {\"address\": \"kaspatest:...\"}."},
    )


# ── App ───────────────────────────────────────────────────────────────────────

def create_app(settings: Settings, treasury: TreasuryClient | None = None, clock=time.monotonic) -> FastAPI:
    """
    Build the faucet application. `treasury` and `clock` are injectable so the
    claim path can run against a stub node and simulated time.
    """
    if treasury is None:
        treasury = build_treasury(settings)

    rate_limiter = RateLimiter(settings.claim_interval_seconds, clock=clock)

    app = FastAPI(
        lifespan=lifespan,
        title="Kaspa Testnet Faucet",
        description="""
Free testnet KAS for development.

- `GET /status` shows the faucet address and its live balance.
- `POST /claim` with `{"address": "kaspatest:..."}` sends the configured payout.
  Each requester may claim once per cooldown window; failed payouts do not count.
""",
        version="1.0.0",
    )

    app.state.settings = settings
    app.state.treasury = treasury
    app.state.rate_limiter = rate_limiter
    app.state.claim_processor = ClaimProcessor(
        treasury,
        rate_limiter,
        amount_per_claim=settings.amount_per_claim,
        claim_interval_seconds=settings.claim_interval_seconds,
        network_prefix=NETWORK_PREFIX,
    )
    app.state.status_reporter = StatusReporter(treasury, rate_limiter, settings.amount_per_claim)
    app.state.limiter = limiter

    app.add_exception_handler(RateLimitExceeded, _flood_guard_handler)
    app.add_exception_handler(RequestValidationError, _invalid_request_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(system.router)
    app.include_router(faucet.router)
    return app


def run() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        settings = load_config()
        app = create_app(settings)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)

    logger.info("Loaded config: %r", settings)
    logger.info("Using node at %s", settings.node_url)
    logger.info("Faucet listening on http://%s:%d", HOST, settings.port)
    uvicorn.run(app, host=HOST, port=settings.port, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
