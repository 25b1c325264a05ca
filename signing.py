"""
Kaspa Faucet: Signing key
Holds the faucet's secp256k1 private key and produces BIP-340 Schnorr signatures,
the scheme Kaspa uses for PubKey (version 0) addresses.

secp256k1 point multiplication comes from `cryptography`; the BIP-340 nonce and
challenge derivation is done here with SHA-256 tagged hashes.
"""
import hashlib
import secrets

from cryptography.hazmat.primitives.asymmetric import ec

from kaspa_address import VERSION_PUBKEY, Address

CURVE = ec.SECP256K1()
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def tagged_hash(tag: str, data: bytes) -> bytes:
    tag_digest = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_digest + tag_digest + data).digest()


def _point(scalar: int) -> tuple[int, int]:
    """scalar * G as affine (x, y)."""
    nums = ec.derive_private_key(scalar, CURVE).public_key().public_numbers()
    return nums.x, nums.y


def schnorr_sign(secret: int, message: bytes, aux_rand: bytes | None = None) -> bytes:
    """Sign a 32-byte message hash. Returns the 64-byte signature R.x || s."""
    if len(message) != 32:
        raise ValueError("Schnorr message must be a 32-byte hash")
    if not 0 < secret < N:
        raise ValueError("secret key out of range")
    if aux_rand is None:
        aux_rand = secrets.token_bytes(32)

    px, py = _point(secret)
    d = secret if py % 2 == 0 else N - secret
    p_bytes = px.to_bytes(32, "big")

    t = (d ^ int.from_bytes(tagged_hash("BIP0340/aux", aux_rand), "big")).to_bytes(32, "big")
    k0 = int.from_bytes(tagged_hash("BIP0340/nonce", t + p_bytes + message), "big") % N
    if k0 == 0:
        raise ValueError("nonce derivation produced zero")

    rx, ry = _point(k0)
    k = k0 if ry % 2 == 0 else N - k0
    r_bytes = rx.to_bytes(32, "big")

    e = int.from_bytes(tagged_hash("BIP0340/challenge", r_bytes + p_bytes + message), "big") % N
    return r_bytes + ((k + e * d) % N).to_bytes(32, "big")


class FaucetKey:
    """
    The treasury's signing credential. Constructed once at startup from the
    configured hex key and owned by the treasury client.
    """

    def __init__(self, secret_hex: str) -> None:
        text = (secret_hex or "").strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        if len(text) != 64:
            raise ValueError("faucet_private_key must be 32 bytes of hex")
        try:
            secret = int(text, 16)
        except ValueError:
            raise ValueError("faucet_private_key must be 32 bytes of hex") from None
        if not 0 < secret < N:
            raise ValueError("faucet_private_key is not a valid secp256k1 scalar")

        self._secret = secret
        self.x_only_public_key = _point(secret)[0].to_bytes(32, "big")

    def __repr__(self) -> str:
        return f"FaucetKey(public={self.x_only_public_key.hex()})"

    def address(self, prefix: str) -> Address:
        return Address(prefix=prefix, version=VERSION_PUBKEY, payload=self.x_only_public_key)

    def sign(self, message: bytes) -> bytes:
        return schnorr_sign(self._secret, message)
