"""
Kaspa address encoding
======================
Kaspa addresses are `<prefix>:<payload>` where the payload is a cashaddr-style
base32 string: one version byte, the key or script hash, and an 8-character
(40-bit) BCH checksum computed over the prefix and the payload.

Versions:
    0  PubKey       32-byte x-only Schnorr public key
    1  PubKeyECDSA  33-byte compressed ECDSA public key
    8  ScriptHash   32-byte BLAKE2b script hash
"""
from dataclasses import dataclass

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_REV = {c: i for i, c in enumerate(CHARSET)}

PREFIXES = ("kaspa", "kaspatest", "kaspasim", "kaspadev")

VERSION_PUBKEY = 0
VERSION_PUBKEY_ECDSA = 1
VERSION_SCRIPT_HASH = 8

PAYLOAD_LENGTHS = {
    VERSION_PUBKEY: 32,
    VERSION_PUBKEY_ECDSA: 33,
    VERSION_SCRIPT_HASH: 32,
}

# Script opcodes needed to pay to an address
OP_DATA_32 = 0x20
OP_DATA_33 = 0x21
OP_CHECKSIG = 0xAC
OP_CHECKSIG_ECDSA = 0xAB
OP_BLAKE2B = 0xAA
OP_EQUAL = 0x87

_GENERATOR = (0x98F2BC8E61, 0x79B76D99E2, 0xF33E5FB3C4, 0xAE2EABE2A8, 0x1E4F43E470)


class AddressError(ValueError):
    pass


@dataclass(frozen=True)
class Address:
    prefix: str
    version: int
    payload: bytes

    def __str__(self) -> str:
        return encode_address(self.prefix, self.version, self.payload)

    def script_public_key(self) -> bytes:
        """Locking script that pays to this address (script version 0)."""
        if self.version == VERSION_PUBKEY:
            return bytes([OP_DATA_32]) + self.payload + bytes([OP_CHECKSIG])
        if self.version == VERSION_PUBKEY_ECDSA:
            return bytes([OP_DATA_33]) + self.payload + bytes([OP_CHECKSIG_ECDSA])
        return bytes([OP_BLAKE2B, OP_DATA_32]) + self.payload + bytes([OP_EQUAL])


# ── Checksum ──────────────────────────────────────────────────────────────────

def _polymod(values) -> int:
    c = 1
    for d in values:
        c0 = c >> 35
        c = ((c & 0x07FFFFFFFF) << 5) ^ d
        for i, g in enumerate(_GENERATOR):
            if (c0 >> i) & 1:
                c ^= g
    return c ^ 1


def _prefix_values(prefix: str) -> list[int]:
    return [ord(ch) & 0x1F for ch in prefix] + [0]


def _convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out = []
    maxv = (1 << to_bits) - 1
    for value in data:
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or (acc << (to_bits - bits)) & maxv:
        raise AddressError("non-zero padding in address payload")
    return out


# ── Encode / decode ───────────────────────────────────────────────────────────

def encode_address(prefix: str, version: int, payload: bytes) -> str:
    if prefix not in PREFIXES:
        raise AddressError(f"unknown address prefix {prefix!r}")
    if PAYLOAD_LENGTHS.get(version) != len(payload):
        raise AddressError(f"bad payload length {len(payload)} for version {version}")

    data = _convert_bits(bytes([version]) + payload, 8, 5, pad=True)
    checksum = _polymod(_prefix_values(prefix) + data + [0] * 8)
    checksum_5bit = [(checksum >> (5 * (7 - i))) & 0x1F for i in range(8)]
    return prefix + ":" + "".join(CHARSET[v] for v in data + checksum_5bit)


def decode_address(text: str) -> Address:
    if not isinstance(text, str) or not text:
        raise AddressError("empty address")
    if text.lower() != text and text.upper() != text:
        raise AddressError("mixed-case address")
    text = text.lower()

    prefix, sep, body = text.partition(":")
    if not sep:
        raise AddressError("address is missing its network prefix")
    if prefix not in PREFIXES:
        raise AddressError(f"unknown address prefix {prefix!r}")
    if len(body) < 9:
        raise AddressError("address is too short")

    try:
        values = [_CHARSET_REV[ch] for ch in body]
    except KeyError:
        raise AddressError("invalid character in address")

    if _polymod(_prefix_values(prefix) + values) != 0:
        raise AddressError("address checksum mismatch")

    decoded = bytes(_convert_bits(values[:-8], 5, 8, pad=False))
    version, payload = decoded[0], decoded[1:]
    expected = PAYLOAD_LENGTHS.get(version)
    if expected is None:
        raise AddressError(f"unknown address version {version}")
    if len(payload) != expected:
        raise AddressError(f"bad payload length {len(payload)} for version {version}")
    return Address(prefix=prefix, version=version, payload=payload)


def parse_network_address(text: str, prefix: str) -> Address:
    """Decode an address and require it to belong to the given network."""
    address = decode_address(text)
    if address.prefix != prefix:
        raise AddressError(f"address is for network {address.prefix!r}, expected {prefix!r}")
    return address
