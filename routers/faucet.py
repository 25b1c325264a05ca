"""
Kaspa Faucet: Faucet routes
  GET  /status                        treasury snapshot for the caller
  POST /claim                         request a payout
  GET  /transactions/{transaction_id} confirmation lookup for a payout
"""
import logging
import re

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from claims import (
    ClaimRequest,
    ClaimSuccess,
    InvalidAddress,
    OutOfFunds,
    RateLimited,
    TreasuryUnavailable,
)
from limiter import CLAIM_LIMIT, STATUS_LIMIT, get_client_ip, limiter
from models import (
    ClaimBody,
    ClaimResponse,
    ErrorResponse,
    FaucetStatusResponse,
    TransactionResponse,
    sompi_to_kas,
)
from treasury import TreasuryError, UnknownTransaction

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Faucet"])

_TXID = re.compile(r"^[0-9a-f]{64}$")

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid address or request body"},
    429: {"model": ErrorResponse, "description": "Cooldown active for this requester"},
    500: {"model": ErrorResponse, "description": "Treasury unavailable or out of funds"},
}


def error_response(status_code: int, error: str, message: str, retry_after: int | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, retry_after_seconds=retry_after)
    headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


@router.get("/status", response_model=FaucetStatusResponse, summary="Faucet status",
            responses={500: _ERRORS[500]})
@limiter.limit(STATUS_LIMIT)
async def faucet_status(request: Request):
    """
    Faucet address, live treasury balance and how long the caller has to wait
    before the next claim. `active` is false when the balance cannot cover a claim.
    """
    try:
        status = await request.app.state.status_reporter.get_status(get_client_ip(request))
    except TreasuryError as e:
        logger.error("Failed to get balance: %s", e)
        return error_response(500, "treasury_unavailable", "The faucet cannot reach its node right now.")

    return FaucetStatusResponse(
        active=status.active,
        faucet_address=status.faucet_address,
        balance_kas=sompi_to_kas(status.balance),
        next_claim_seconds=status.next_claim_seconds,
    )


@router.post("/claim", response_model=ClaimResponse, summary="Claim testnet KAS", responses=_ERRORS)
@limiter.limit(CLAIM_LIMIT)
async def claim(request: Request, data: ClaimBody):
    """
    Send the fixed payout to a `kaspatest:` address. One successful claim per
    requester per cooldown window; failed payouts do not start the cooldown.
    """
    identity = get_client_ip(request)
    logger.info("Claim request from IP: %s, address: %s", identity, data.address)

    # A submitted transaction cannot be recalled, so the bookkeeping must finish
    # even if the client goes away.
    outcome = await request.app.state.claim_processor.process_claim_shielded(
        ClaimRequest(address=data.address, identity=identity)
    )

    if isinstance(outcome, ClaimSuccess):
        return ClaimResponse(
            transaction_id=outcome.transaction_id,
            amount_kas=sompi_to_kas(outcome.amount),
            next_claim_seconds=outcome.next_claim_seconds,
        )
    if isinstance(outcome, RateLimited):
        return error_response(
            429, "rate_limited",
            f"Already claimed. Try again in {outcome.retry_after_seconds} seconds.",
            retry_after=outcome.retry_after_seconds,
        )
    if isinstance(outcome, InvalidAddress):
        return error_response(400, "invalid_address", "Address is not a valid kaspatest address.")
    if isinstance(outcome, OutOfFunds):
        return error_response(500, "insufficient_funds", "The faucet is out of funds. Please try again later.")
    if isinstance(outcome, TreasuryUnavailable):
        return error_response(500, "treasury_unavailable", "The payout could not be sent. Please try again later.")
    raise TypeError(f"unhandled claim outcome {outcome!r}")


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse,
            summary="Payout confirmation", responses={404: {"model": ErrorResponse}, **_ERRORS})
@limiter.limit(STATUS_LIMIT)
async def transaction_status(request: Request, transaction_id: str):
    """Whether a payout transaction has been accepted into the DAG."""
    transaction_id = transaction_id.lower()
    if not _TXID.match(transaction_id):
        return error_response(400, "invalid_transaction_id", "Transaction ids are 64 hex characters.")

    try:
        accepted = await request.app.state.treasury.get_confirmation(transaction_id)
    except UnknownTransaction:
        return error_response(404, "unknown_transaction", "The node does not know this transaction.")
    except TreasuryError as e:
        logger.error("Transaction lookup failed: %s", e)
        return error_response(500, "treasury_unavailable", "The faucet cannot reach its node right now.")

    return TransactionResponse(transaction_id=transaction_id, accepted=accepted)
