"""
Kaspa Faucet: Pydantic models (request bodies + response shapes)
"""
from decimal import Decimal

from pydantic import BaseModel, field_validator

from config import NETWORK_PREFIX, SOMPI_PER_KAS
from kaspa_address import AddressError, parse_network_address


def sompi_to_kas(sompi: int) -> str:
    return f"{Decimal(sompi) / SOMPI_PER_KAS:.8f}"


class ClaimBody(BaseModel):
    address: str  # kaspatest:... bech32 address

    @field_validator("address")
    @classmethod
    def testnet_address(cls, v: str) -> str:
        v = v.strip()
        try:
            parse_network_address(v, NETWORK_PREFIX)
        except AddressError as e:
            raise ValueError(str(e))
        return v


class FaucetStatusResponse(BaseModel):
    active: bool
    faucet_address: str   # read by the seeder scripts, keep stable
    balance_kas: str
    next_claim_seconds: int


class ClaimResponse(BaseModel):
    transaction_id: str
    amount_kas: str
    next_claim_seconds: int


class TransactionResponse(BaseModel):
    transaction_id: str
    accepted: bool


class ErrorResponse(BaseModel):
    error: str
    message: str
    retry_after_seconds: int | None = None


class HealthResponse(BaseModel):
    status: str
    message: str
