"""
Kaspa Faucet: Treasury client
The only component that talks to the Kaspa node and the only owner of the faucet's
signing key. Reads (balance, fee estimate, confirmations) run concurrently;
transfers are built, signed and submitted one at a time.

The node is reached through its HTTP API:
  GET  /addresses/{address}/balance
  GET  /addresses/{address}/utxos
  GET  /info/fee-estimate
  POST /transactions
  GET  /transactions/{transaction_id}
"""
import abc
import asyncio
import logging
import math
import time

import httpx

from kaspa_address import Address
from signing import FaucetKey
from transaction import Outpoint, Transaction, TxInput, TxOutput, Utxo

logger = logging.getLogger(__name__)

FEE_PER_INPUT_SOMPI = 2000
DUST_SOMPI = 1000
SPENT_OUTPOINT_TTL_SEC = 600


# ── Errors ────────────────────────────────────────────────────────────────────

class TreasuryError(Exception):
    pass


class NodeUnavailable(TreasuryError):
    """Connection failure, timeout or server-side error at the node."""


class InsufficientFunds(TreasuryError):
    """The treasury cannot cover the payout plus fees."""


class RejectedByNode(TreasuryError):
    """The node refused the request or the transaction as invalid."""


class UnknownTransaction(TreasuryError):
    pass


# ── Contract ──────────────────────────────────────────────────────────────────

class TreasuryClient(abc.ABC):
    """Balance, fee, submission and confirmation access for the faucet wallet."""

    faucet_address: str

    @abc.abstractmethod
    async def get_balance(self, address: str) -> int:
        ...

    @abc.abstractmethod
    async def estimate_fee(self) -> int:
        ...

    @abc.abstractmethod
    async def submit_transfer(self, to_address: Address, amount: int) -> str:
        ...

    @abc.abstractmethod
    async def get_confirmation(self, transaction_id: str) -> bool:
        ...

    async def aclose(self) -> None:
        pass


# ── Coin selection ────────────────────────────────────────────────────────────

def transfer_fee(inputs: int, fee_per_input: int) -> int:
    return (inputs + 1) * fee_per_input


def select_utxos(utxos: list[Utxo], amount: int, fee_per_input: int) -> tuple[list[Utxo], int]:
    """Take UTXOs in order until they cover amount plus the fee for that many inputs."""
    selected: list[Utxo] = []
    total = 0
    for utxo in utxos:
        selected.append(utxo)
        total += utxo.amount
        if total >= amount + transfer_fee(len(selected), fee_per_input):
            break

    fee = transfer_fee(len(selected), fee_per_input)
    if total < amount + fee:
        raise InsufficientFunds(f"have {total} sompi, need {amount + fee} sompi")
    return selected, fee


# ── Node-backed implementation ────────────────────────────────────────────────

class KaspaTreasury(TreasuryClient):
    def __init__(
        self,
        node_url: str,
        key: FaucetKey,
        prefix: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock=time.monotonic,
    ) -> None:
        self._key = key
        self._address = key.address(prefix)
        self.faucet_address = str(self._address)
        self._client = httpx.AsyncClient(base_url=node_url, timeout=timeout, transport=transport)
        self._submit_lock = asyncio.Lock()
        self._clock = clock
        # outpoint -> monotonic time after which it may be selected again
        self._spent: dict[Outpoint, float] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise NodeUnavailable(f"{method} {path} failed: {e!r}") from e
        if resp.status_code >= 500:
            raise NodeUnavailable(f"{method} {path} returned HTTP {resp.status_code}")
        return resp

    @staticmethod
    def _json(resp: httpx.Response):
        try:
            return resp.json()
        except ValueError as e:
            raise NodeUnavailable(f"node returned non-JSON body: {e}") from e

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_balance(self, address: str) -> int:
        resp = await self._request("GET", f"/addresses/{address}/balance")
        if resp.status_code >= 400:
            raise RejectedByNode(f"balance query rejected: HTTP {resp.status_code}")
        try:
            return int(self._json(resp)["balance"])
        except (KeyError, TypeError, ValueError) as e:
            raise NodeUnavailable(f"malformed balance response: {e!r}") from e

    async def _fee_per_input(self) -> int:
        resp = await self._request("GET", "/info/fee-estimate")
        if resp.status_code >= 400:
            return FEE_PER_INPUT_SOMPI
        try:
            feerate = float(self._json(resp)["priorityBucket"]["feerate"])
        except (KeyError, TypeError, ValueError):
            return FEE_PER_INPUT_SOMPI
        return max(FEE_PER_INPUT_SOMPI, math.ceil(feerate * FEE_PER_INPUT_SOMPI))

    async def estimate_fee(self) -> int:
        """Fee of a single-input payout at the node's current priority feerate."""
        return transfer_fee(1, await self._fee_per_input())

    async def _fetch_utxos(self) -> list[Utxo]:
        resp = await self._request("GET", f"/addresses/{self.faucet_address}/utxos")
        if resp.status_code >= 400:
            raise RejectedByNode(f"utxo query rejected: HTTP {resp.status_code}")
        script = self._address.script_public_key()
        try:
            return [
                Utxo(
                    outpoint=Outpoint(
                        transaction_id=entry["outpoint"]["transactionId"],
                        index=int(entry["outpoint"]["index"]),
                    ),
                    amount=int(entry["utxoEntry"]["amount"]),
                    script_public_key=script,
                )
                for entry in self._json(resp) or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise NodeUnavailable(f"malformed utxo response: {e!r}") from e

    async def get_confirmation(self, transaction_id: str) -> bool:
        resp = await self._request("GET", f"/transactions/{transaction_id}")
        if resp.status_code == 404:
            raise UnknownTransaction(transaction_id)
        if resp.status_code >= 400:
            raise RejectedByNode(f"transaction lookup rejected: HTTP {resp.status_code}")
        data = self._json(resp)
        return bool(data.get("is_accepted")) if isinstance(data, dict) else False

    # ── Transfers ─────────────────────────────────────────────────────────────

    def _available(self, utxos: list[Utxo]) -> list[Utxo]:
        now = self._clock()
        listed = {u.outpoint for u in utxos}
        self._spent = {op: until for op, until in self._spent.items() if op in listed and until > now}
        return [u for u in utxos if u.outpoint not in self._spent]

    def _mark_spent(self, utxos: list[Utxo]) -> None:
        until = self._clock() + SPENT_OUTPOINT_TTL_SEC
        for u in utxos:
            self._spent[u.outpoint] = until

    async def submit_transfer(self, to_address: Address, amount: int) -> str:
        async with self._submit_lock:
            fee_per_input = await self._fee_per_input()
            utxos = self._available(await self._fetch_utxos())
            if not utxos:
                raise InsufficientFunds(f"faucet has no spendable UTXOs, fund {self.faucet_address}")
            selected, fee = select_utxos(utxos, amount, fee_per_input)

            change = sum(u.amount for u in selected) - amount - fee
            if change < DUST_SOMPI:
                change = 0

            outputs = [TxOutput(amount, to_address.script_public_key())]
            if change:
                outputs.append(TxOutput(change, self._address.script_public_key()))
            tx = Transaction(
                inputs=[TxInput(utxo=u, sequence=i) for i, u in enumerate(selected)],
                outputs=outputs,
            )
            tx.sign(self._key.sign)

            try:
                resp = await self._request(
                    "POST", "/transactions", json={"transaction": tx.to_json(), "allowOrphan": False}
                )
            except NodeUnavailable:
                # The node may have accepted it anyway; keep the inputs out of
                # the next selection rather than risk a conflicting spend.
                self._mark_spent(selected)
                raise

            try:
                data = resp.json()
            except ValueError:
                data = {}
            if not isinstance(data, dict):
                data = {}
            if resp.status_code >= 400 or not data.get("transactionId"):
                detail = data.get("error") or data.get("detail") or ""
                raise RejectedByNode(f"transaction rejected: HTTP {resp.status_code} {detail}".strip())

            self._mark_spent(selected)
            logger.info("Submitted %s: %d sompi, %d input(s), fee %d", data["transactionId"],
                        amount, len(selected), fee)
            return data["transactionId"]
