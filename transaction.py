"""
Kaspa Faucet: Transactions
Native-subnetwork Kaspa transactions, the SigHashAll signature hash used to sign
their inputs, and the JSON shape accepted by the node's `POST /transactions`.
"""
import hashlib
import struct
from dataclasses import dataclass, field

SIG_HASH_ALL = 0x01
OP_DATA_65 = 0x41

SUBNETWORK_ID_NATIVE = bytes(20)
ZERO_HASH = bytes(32)
TX_VERSION = 0
SCRIPT_VERSION = 0


@dataclass(frozen=True)
class Outpoint:
    transaction_id: str
    index: int

    def serialize(self) -> bytes:
        return bytes.fromhex(self.transaction_id) + struct.pack("<I", self.index)


@dataclass(frozen=True)
class Utxo:
    outpoint: Outpoint
    amount: int
    script_public_key: bytes


@dataclass
class TxInput:
    utxo: Utxo
    sequence: int = 0
    sig_op_count: int = 1
    signature_script: bytes = b""


@dataclass(frozen=True)
class TxOutput:
    amount: int
    script_public_key: bytes


@dataclass
class Transaction:
    inputs: list[TxInput]
    outputs: list[TxOutput]
    version: int = TX_VERSION
    lock_time: int = 0
    gas: int = 0
    subnetwork_id: bytes = SUBNETWORK_ID_NATIVE
    payload: bytes = field(default=b"")

    # ── Signing ───────────────────────────────────────────────────────────────

    def signature_hash(self, index: int) -> bytes:
        """SigHashAll hash of input `index`, as signed by Schnorr P2PK inputs."""
        txin = self.inputs[index]
        h = _hasher()
        h.update(struct.pack("<H", self.version))
        h.update(self._previous_outputs_hash())
        h.update(self._sequences_hash())
        h.update(self._sig_op_counts_hash())
        h.update(txin.utxo.outpoint.serialize())
        h.update(_script_bytes(txin.utxo.script_public_key))
        h.update(struct.pack("<Q", txin.utxo.amount))
        h.update(struct.pack("<Q", txin.sequence))
        h.update(bytes([txin.sig_op_count]))
        h.update(self._outputs_hash())
        h.update(struct.pack("<Q", self.lock_time))
        h.update(self.subnetwork_id)
        h.update(struct.pack("<Q", self.gas))
        h.update(self._payload_hash())
        h.update(bytes([SIG_HASH_ALL]))
        return h.digest()

    def sign(self, signer) -> None:
        """Fill every input's signature script. `signer(msg32) -> sig64`."""
        for i, txin in enumerate(self.inputs):
            sig = signer(self.signature_hash(i))
            txin.signature_script = bytes([OP_DATA_65]) + sig + bytes([SIG_HASH_ALL])

    def _previous_outputs_hash(self) -> bytes:
        h = _hasher()
        for txin in self.inputs:
            h.update(txin.utxo.outpoint.serialize())
        return h.digest()

    def _sequences_hash(self) -> bytes:
        h = _hasher()
        for txin in self.inputs:
            h.update(struct.pack("<Q", txin.sequence))
        return h.digest()

    def _sig_op_counts_hash(self) -> bytes:
        h = _hasher()
        for txin in self.inputs:
            h.update(bytes([txin.sig_op_count]))
        return h.digest()

    def _outputs_hash(self) -> bytes:
        h = _hasher()
        for out in self.outputs:
            h.update(struct.pack("<Q", out.amount))
            h.update(_script_bytes(out.script_public_key))
        return h.digest()

    def _payload_hash(self) -> bytes:
        if self.subnetwork_id == SUBNETWORK_ID_NATIVE and not self.payload:
            return ZERO_HASH
        h = _hasher()
        h.update(struct.pack("<Q", len(self.payload)) + self.payload)
        return h.digest()

    # ── Wire format ───────────────────────────────────────────────────────────

    def to_json(self) -> dict:
        return {
            "version": self.version,
            "inputs": [
                {
                    "previousOutpoint": {
                        "transactionId": txin.utxo.outpoint.transaction_id,
                        "index": txin.utxo.outpoint.index,
                    },
                    "signatureScript": txin.signature_script.hex(),
                    "sequence": txin.sequence,
                    "sigOpCount": txin.sig_op_count,
                }
                for txin in self.inputs
            ],
            "outputs": [
                {
                    "amount": out.amount,
                    "scriptPublicKey": {
                        "version": SCRIPT_VERSION,
                        "scriptPublicKey": out.script_public_key.hex(),
                    },
                }
                for out in self.outputs
            ],
            "lockTime": self.lock_time,
            "subnetworkId": self.subnetwork_id.hex(),
        }


def _hasher():
    return hashlib.blake2b(digest_size=32, key=b"TransactionSigningHash")


def _script_bytes(script: bytes) -> bytes:
    return struct.pack("<H", SCRIPT_VERSION) + struct.pack("<Q", len(script)) + script
