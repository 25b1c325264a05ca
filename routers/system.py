"""
Kaspa Faucet: System routes
  GET /         welcome page
  GET /health   liveness check
"""
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from models import HealthResponse

INDEX_PATH = Path(__file__).resolve().parent.parent / "static" / "index.html"

router = APIRouter(tags=["System"])


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index():
    if INDEX_PATH.is_file():
        return HTMLResponse(INDEX_PATH.read_text(encoding="utf-8"))
    return HTMLResponse("<h1>Kaspa Testnet Faucet</h1>")


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health_check():
    """Returns 200 OK if the server is running. Does not contact the node."""
    return HealthResponse(status="ok", message="Kaspa faucet is running")
