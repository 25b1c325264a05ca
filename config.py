"""
Kaspa Faucet: Configuration
Process knobs come from environment variables; faucet settings come from a TOML
file that is read once at startup and never changes afterwards.
"""
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

# ── Process ───────────────────────────────────────────────────────────────────
CONFIG_PATH           = os.getenv("FAUCET_CONFIG", "faucet-config.toml")
LOG_LEVEL             = os.getenv("LOG_LEVEL", "INFO").upper()
HOST                  = os.getenv("FAUCET_HOST", "0.0.0.0")

# ── Network ───────────────────────────────────────────────────────────────────
NETWORK_PREFIX        = "kaspatest"   # only testnet destinations are served
SOMPI_PER_KAS         = 100_000_000

# ── Defaults written to a fresh config template ───────────────────────────────
DEFAULT_KASPAD_URL    = "http://127.0.0.1:8000"   # kaspa REST server, not kaspad gRPC
DEFAULT_PORT          = 3010
DEFAULT_AMOUNT        = 100_000_000   # 1 KAS in sompis
DEFAULT_INTERVAL_SEC  = 3600          # 1 hour

CONFIG_TEMPLATE = f"""\
# Kaspa testnet faucet configuration.
# Edit faucet_private_key (32-byte hex) before starting the faucet.

# URL of a kaspa REST server (kaspa-rest-server) connected to a testnet node.
# kaspad's own gRPC port (16210) does not speak HTTP and will not work here.
kaspad_url = "{DEFAULT_KASPAD_URL}"
port = {DEFAULT_PORT}
faucet_private_key = ""
amount_per_claim = {DEFAULT_AMOUNT}
claim_interval_seconds = {DEFAULT_INTERVAL_SEC}

# Optional:
# node_timeout_seconds = 10
# trusted_proxy_header = "CF-Connecting-IP"
"""


class ConfigError(Exception):
    """Raised when the faucet cannot start with the configuration it was given."""


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kaspad_url: str
    port: int
    faucet_private_key: str
    amount_per_claim: int
    claim_interval_seconds: int
    node_timeout_seconds: float = 10.0
    trusted_proxy_header: str = ""

    @field_validator("amount_per_claim", "claim_interval_seconds")
    @classmethod
    def positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("node_timeout_seconds")
    @classmethod
    def finite_timeout(cls, v: float) -> float:
        if not 0 < v <= 300:
            raise ValueError("must be between 0 and 300 seconds")
        return v

    @field_validator("port")
    @classmethod
    def valid_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("must be a TCP port number")
        return v

    @property
    def node_url(self) -> str:
        """kaspad_url normalised to an http(s) base URL."""
        url = self.kaspad_url.strip().rstrip("/")
        if url.startswith(("http://", "https://")):
            return url
        return f"http://{url}"

    def __repr__(self) -> str:
        return (
            f"Settings(kaspad_url={self.kaspad_url!r}, port={self.port}, "
            f"faucet_private_key=<redacted>, amount_per_claim={self.amount_per_claim}, "
            f"claim_interval_seconds={self.claim_interval_seconds})"
        )

    __str__ = __repr__


def write_template(path: Path) -> None:
    path.write_text(CONFIG_TEMPLATE, encoding="utf-8")


def load_config(path: str | os.PathLike = CONFIG_PATH) -> Settings:
    """
    Read the faucet configuration file.

    A missing file is replaced by the default template and reported as a
    ConfigError so the operator edits it before the next start.
    """
    path = Path(path)
    if not path.exists():
        try:
            write_template(path)
        except OSError as e:
            raise ConfigError(f"Cannot write default config at {path}: {e}") from e
        raise ConfigError(f"Created default config at {path}. Please edit and restart.")

    try:
        with path.open("rb") as fh:
            raw = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    try:
        return Settings(**raw)
    except ValidationError as e:
        # Field names only: values may include the signing key.
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "?" for err in e.errors())
        raise ConfigError(f"Invalid config {path}: check {fields}") from None
