"""
Cryptographic primitives for podcast event attestation.

- SHA-256 hashing (content digests bound into envelope claims)
- RSA key generation, RS256 signing and verification (RFC 7518 §3.3)
- base64url helpers (RFC 7515 §2, unpadded)

All operations use the `cryptography` library.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa


RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537


# ---------------------------------------------------------------------------
# SHA-256 utilities
# ---------------------------------------------------------------------------

def sha256_hex(data: str | bytes) -> str:
    """Return the lowercase SHA-256 hex digest of *data*."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# base64url (no padding)
# ---------------------------------------------------------------------------

def b64url_encode(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    """Decode unpadded base64url text. Raises ValueError on bad input."""
    raw = data.encode("ascii")
    raw += b"=" * (-len(raw) % 4)
    return base64.urlsafe_b64decode(raw)


# ---------------------------------------------------------------------------
# RSA key management
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyPair:
    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey


def generate_keypair() -> KeyPair:
    """Generate a fresh RSA-2048 key pair (e = 65537)."""
    sk = rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=RSA_KEY_SIZE,
    )
    return KeyPair(private_key=sk, public_key=sk.public_key())


# ---------------------------------------------------------------------------
# Signing & verification (RSASSA-PKCS1-v1_5 / SHA-256)
# ---------------------------------------------------------------------------

def sign_bytes(data: bytes, sk: rsa.RSAPrivateKey) -> bytes:
    """Sign raw bytes with RS256. Returns a 256-byte signature for RSA-2048."""
    return sk.sign(data, padding.PKCS1v15(), hashes.SHA256())


def verify_bytes(data: bytes, signature: bytes, pk: rsa.RSAPublicKey) -> bool:
    """Verify an RS256 signature. Returns True if valid, False otherwise."""
    try:
        pk.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
        return True
    except InvalidSignature:
        return False
